"""
Tests for attribute selection and population rescaling
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from globemap.errors import SchemaError  # noqa: E402
from globemap.models import ColumnMapping  # noqa: E402
from globemap.normalize import select_attributes  # noqa: E402
from sample_data import raw_countries  # noqa: E402

MAPPING = ColumnMapping(
    columns=(('pop_est', 'population'), ('name', 'name')),
    population='population',
    name='name',
)


class TestSelectAttributes(unittest.TestCase):

    def setUp(self):
        self.raw = raw_countries()
        self.result = select_attributes(self.raw, MAPPING)

    def test_only_mapped_columns_and_geometry(self):
        """Extra source attributes such as ISO_A3 are dropped"""
        self.assertEqual(list(self.result.columns), ['population', 'name', 'geometry'])
        self.assertEqual(self.result.geometry.name, 'geometry')

    def test_population_in_millions_rounded(self):
        by_name = dict(zip(self.result['name'], self.result['population']))
        for name, pop in zip(self.raw['NAME'], self.raw['POP_EST']):
            self.assertEqual(by_name[name], round(pop / 1_000_000, 2))
        self.assertEqual(by_name['Tinyland'], 1.23)
        self.assertEqual(by_name['Midland'], 7.65)

    def test_sorted_ascending(self):
        values = self.result['population'].tolist()
        self.assertEqual(values, sorted(values))
        self.assertEqual(self.result['name'].tolist(), ['Tinyland', 'Midland', 'Holeland', 'Bigland'])
        self.assertEqual(list(self.result.index), [0, 1, 2, 3])

    def test_crs_preserved(self):
        self.assertEqual(self.result.crs, self.raw.crs)

    def test_input_not_mutated(self):
        self.assertIn('ISO_A3', self.raw.columns)
        self.assertEqual(self.raw['POP_EST'].iloc[0], 1_400_000_000)

    def test_missing_column_raises(self):
        raw = self.raw.drop(columns=['POP_EST'])
        with self.assertRaises(SchemaError) as ctx:
            select_attributes(raw, MAPPING)
        self.assertIn('pop_est', str(ctx.exception))
        self.assertIn('normalize stage failed', str(ctx.exception))

    def test_negative_population_dropped(self):
        """Natural Earth marks unknown estimates with -99"""
        raw = self.raw.copy()
        raw.loc[raw['NAME'] == 'Midland', 'POP_EST'] = -99
        result = select_attributes(raw, MAPPING)
        self.assertNotIn('Midland', result['name'].tolist())
        self.assertTrue((result['population'] >= 0).all())

    def test_two_sources_resolving_to_one_column(self):
        """`name` and `NAME` both match the shapefile's NAME column"""
        mapping = ColumnMapping(
            columns=(('pop_est', 'population'), ('name', 'name'), ('NAME', 'label')),
            population='population',
            name='name',
        )
        with self.assertRaises(SchemaError) as ctx:
            select_attributes(self.raw, mapping)
        self.assertIn('NAME', str(ctx.exception))

    def test_non_numeric_population_column(self):
        raw = self.raw.copy()
        raw['POP_EST'] = ['unknown', 'n/a', 'tbd', '?']
        with self.assertRaises(SchemaError) as ctx:
            select_attributes(raw, MAPPING)
        self.assertIn('no numeric values', str(ctx.exception))

    def test_custom_divisor(self):
        result = select_attributes(self.raw, MAPPING, scale_divisor=1000, decimals=0)
        self.assertEqual(result['population'].iloc[0], 1235.0)


if __name__ == '__main__':
    unittest.main()
