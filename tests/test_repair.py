"""
Tests for targeted hole filling and MultiPolygon normalization
"""

import sys
import unittest
from pathlib import Path

import geopandas as gpd

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from globemap.errors import NotFoundError, RepairError  # noqa: E402
from globemap.models import RecordLocator  # noqa: E402
from globemap.repair import (  # noqa: E402
    locate_record,
    repair_geometry,
    repair_record,
    repair_records,
    simplify_geometries,
)
from sample_data import bowtie, holed_square, square  # noqa: E402


def interior_count(geometry):
    return sum(len(part.interiors) for part in geometry.geoms)


def make_frame():
    return gpd.GeoDataFrame(
        {'name': ['Squareland', 'Holeland', 'Tieland'], 'population': [1.0, 2.0, 3.0]},
        geometry=[square(0, 0, 2), holed_square(), bowtie()],
        crs='EPSG:4326',
    )


class TestRepairGeometry(unittest.TestCase):

    def test_small_hole_filled_large_hole_kept(self):
        """Only holes below the km2 threshold are filled"""
        repaired = repair_geometry(holed_square(), threshold_km2=1000)
        self.assertEqual(repaired.geom_type, 'MultiPolygon')
        self.assertEqual(interior_count(repaired), 1)

    def test_threshold_above_all_holes(self):
        repaired = repair_geometry(holed_square(), threshold_km2=1_000_000)
        self.assertEqual(interior_count(repaired), 0)

    def test_self_intersecting_polygon(self):
        """A bow-tie becomes a valid MultiPolygon without interior rings"""
        repaired = repair_geometry(bowtie(), threshold_km2=1000)
        self.assertEqual(repaired.geom_type, 'MultiPolygon')
        self.assertTrue(repaired.is_valid)
        self.assertEqual(interior_count(repaired), 0)
        self.assertEqual(len(repaired.geoms), 2)

    def test_valid_polygon_only_cast(self):
        original = square(0, 0, 2)
        repaired = repair_geometry(original, threshold_km2=1000)
        self.assertEqual(repaired.geom_type, 'MultiPolygon')
        self.assertTrue(repaired.equals(original))

    def test_idempotent(self):
        once = repair_geometry(holed_square(), threshold_km2=1000)
        twice = repair_geometry(once, threshold_km2=1000)
        self.assertTrue(once.equals_exact(twice, 0.0))

    def test_island_inside_filled_hole_merged(self):
        """Parts covered by a filled hole are unioned so the result stays valid"""
        outer = holed_square()
        island = square(21.02, 1.02, 0.05)
        from shapely.geometry import MultiPolygon
        repaired = repair_geometry(MultiPolygon([outer, island]), threshold_km2=1000)
        self.assertTrue(repaired.is_valid)
        self.assertEqual(len(repaired.geoms), 1)

    def test_line_geometry_rejected(self):
        from shapely.geometry import LineString
        with self.assertRaises(RepairError):
            repair_geometry(LineString([(0, 0), (1, 1)]), threshold_km2=1000)

    def test_projected_area_in_square_metres(self):
        """In a projected CRS ring area is planar and in m2"""
        from shapely.geometry import Polygon
        hole = [(10, 10), (20, 10), (20, 20), (10, 20), (10, 10)]
        polygon = Polygon([(0, 0), (100, 0), (100, 100), (0, 100), (0, 0)], [hole])
        repaired = repair_geometry(polygon, threshold_km2=0.00005, geographic=False)
        self.assertEqual(interior_count(repaired), 1)
        repaired = repair_geometry(polygon, threshold_km2=0.001, geographic=False)
        self.assertEqual(interior_count(repaired), 0)


class TestRepairRecord(unittest.TestCase):

    def setUp(self):
        self.frame = make_frame()

    def test_locate_by_name_case_insensitive(self):
        self.assertEqual(locate_record(self.frame, RecordLocator(name='holeland'), name_column='name'), 1)

    def test_locate_by_index(self):
        self.assertEqual(locate_record(self.frame, RecordLocator(index=2), name_column='name'), 2)

    def test_missing_name_raises(self):
        with self.assertRaises(NotFoundError):
            repair_record(self.frame, RecordLocator(name='Atlantis'), threshold_km2=1000, name_column='name')

    def test_index_out_of_range_raises(self):
        with self.assertRaises(NotFoundError):
            repair_record(self.frame, RecordLocator(index=3), threshold_km2=1000, name_column='name')

    def test_only_target_record_changed(self):
        result = repair_record(self.frame, RecordLocator(name='Holeland'), threshold_km2=1000, name_column='name')
        self.assertEqual(result.geometry.iloc[1].geom_type, 'MultiPolygon')
        self.assertEqual(result.geometry.iloc[0].geom_type, 'Polygon')
        self.assertTrue(result.geometry.iloc[0].equals(self.frame.geometry.iloc[0]))
        self.assertEqual(self.frame.geometry.iloc[1].geom_type, 'Polygon')

    def test_record_repair_idempotent(self):
        locator = RecordLocator(name='Tieland')
        once = repair_record(self.frame, locator, threshold_km2=1000, name_column='name')
        twice = repair_record(once, locator, threshold_km2=1000, name_column='name')
        self.assertTrue(once.geometry.iloc[2].equals_exact(twice.geometry.iloc[2], 0.0))

    def test_repair_records_applies_all(self):
        locators = (RecordLocator(name='Holeland'), RecordLocator(index=2))
        result = repair_records(self.frame, locators, threshold_km2=1000, name_column='name')
        self.assertEqual(result.geometry.iloc[1].geom_type, 'MultiPolygon')
        self.assertEqual(result.geometry.iloc[2].geom_type, 'MultiPolygon')

    def test_simplify_keeps_row_count(self):
        result = simplify_geometries(self.frame, 0.01)
        self.assertEqual(len(result), len(self.frame))
        self.assertFalse(result.geometry.is_empty.any())


if __name__ == '__main__':
    unittest.main()
