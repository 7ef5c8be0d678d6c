"""
Tests for palette sampling and the plotly globe figure
"""

import dataclasses
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from shapely.geometry import shape

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from globemap.classify import classify_frame, compute_scheme  # noqa: E402
from globemap.config import PaletteConfig, load_config  # noqa: E402
from globemap.errors import RenderError  # noqa: E402
from globemap.models import ColumnMapping  # noqa: E402
from globemap.normalize import select_attributes  # noqa: E402
from globemap.render import GlobeRenderer, _rewind, build_palette  # noqa: E402
from sample_data import CONFIG_PATH, square, three_countries  # noqa: E402

MAPPING = ColumnMapping(
    columns=(('pop_est', 'population'), ('name', 'name')),
    population='population',
    name='name',
)


def classified_countries():
    frame = select_attributes(three_countries(), MAPPING)
    scheme = compute_scheme(frame['population'], 3, seed=0)
    frame = classify_frame(frame, scheme, population_column='population', name_column='name')
    return frame, scheme


class TestBuildPalette(unittest.TestCase):

    def test_reversed_viridis(self):
        """Smallest interval gets the lightest viridis colour"""
        palette = build_palette(PaletteConfig(name='viridis', reverse=True, colors=None), 10)
        self.assertEqual(len(palette), 10)
        self.assertEqual(palette[0], '#fde725')
        self.assertEqual(palette[-1], '#440154')

    def test_explicit_colors_used_verbatim(self):
        colors = ('#111111', '#222222')
        self.assertEqual(build_palette(PaletteConfig(name='viridis', reverse=True, colors=colors), 2), colors)

    def test_unknown_colormap(self):
        with self.assertRaises(RenderError):
            build_palette(PaletteConfig(name='no-such-map', reverse=False, colors=None), 3)


class TestGlobeFigure(unittest.TestCase):

    def setUp(self):
        self.cfg = load_config(CONFIG_PATH).render
        self.frame, self.scheme = classified_countries()
        self.fig = GlobeRenderer(self.cfg).build_figure(self.frame, self.scheme)

    def test_one_trace_per_interval_in_legend_order(self):
        names = tuple(trace.name for trace in self.fig.data)
        self.assertEqual(names, self.scheme.legend_labels)

    def test_distinct_colour_per_interval(self):
        colours = {trace.colorscale[0][1] for trace in self.fig.data}
        self.assertEqual(len(colours), 3)

    def test_every_record_drawn_once(self):
        locations = [loc for trace in self.fig.data for loc in trace.locations]
        self.assertEqual(sorted(locations), ['0', '1', '2'])

    def test_hover_shows_name_and_population(self):
        for trace in self.fig.data:
            self.assertEqual(trace.hovertemplate, '%{text}<extra></extra>')
        texts = [text for trace in self.fig.data for text in trace.text]
        self.assertIn('Bigland<br>Population: 1400.00 million', texts)

    def test_orthographic_projection(self):
        geo = self.fig.layout.geo
        self.assertEqual(geo.projection.type, 'orthographic')
        self.assertEqual(geo.projection.rotation.lon, 20)

    def test_legend_is_static(self):
        """Clicking a legend entry does not hide its interval"""
        legend = self.fig.layout.legend
        self.assertIs(legend.itemclick, False)
        self.assertIs(legend.itemdoubleclick, False)
        self.assertEqual(legend.title.text, 'Population (millions)')

    def test_title_annotation(self):
        annotation = self.fig.layout.annotations[0]
        self.assertIn('World population', annotation.text)
        self.assertEqual(annotation.xref, 'paper')

    def test_exterior_rings_clockwise(self):
        for trace in self.fig.data:
            for feature in trace.geojson['features']:
                geometry = shape(feature['geometry'])
                for part in getattr(geometry, 'geoms', [geometry]):
                    self.assertFalse(part.exterior.is_ccw)


class TestRenderValidation(unittest.TestCase):
    """Inconsistent inputs are rejected before any figure is built"""

    def setUp(self):
        self.cfg = load_config(CONFIG_PATH).render
        self.frame, self.scheme = classified_countries()

    def test_palette_shorter_than_intervals(self):
        palette = dataclasses.replace(self.cfg.palette, colors=tuple(f'#0000{i:02x}' for i in range(2)))
        renderer = GlobeRenderer(dataclasses.replace(self.cfg, palette=palette))
        with patch('globemap.render._require_plotly') as mock_plotly:
            with self.assertRaises(RenderError):
                renderer.build_figure(self.frame, self.scheme)
        mock_plotly.assert_not_called()

    def test_repeated_colours(self):
        palette = dataclasses.replace(self.cfg.palette, colors=('#000000', '#ffffff', '#FFFFFF'))
        with self.assertRaises(RenderError):
            GlobeRenderer(dataclasses.replace(self.cfg, palette=palette)).build_figure(self.frame, self.scheme)

    def test_empty_frame(self):
        with self.assertRaises(RenderError):
            GlobeRenderer(self.cfg).build_figure(self.frame.iloc[0:0], self.scheme)

    def test_unclassified_frame(self):
        with self.assertRaises(RenderError):
            GlobeRenderer(self.cfg).build_figure(self.frame.drop(columns=['interval']), self.scheme)


class TestRenderHtml(unittest.TestCase):

    def setUp(self):
        self.cfg = load_config(CONFIG_PATH).render
        self.frame, self.scheme = classified_countries()
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.output = Path(self.temp_dir.name) / 'out' / 'globe.html'

    def test_html_written_without_toolbar(self):
        path = GlobeRenderer(self.cfg).render_html(self.frame, self.scheme, self.output)
        html = path.read_text(encoding='utf-8')
        self.assertIn('displayModeBar', html)
        self.assertIn('orthographic', html)
        self.assertEqual(list(self.output.parent.glob('*.tmp')), [])

    def test_nothing_written_on_failure(self):
        palette = dataclasses.replace(self.cfg.palette, colors=('#000000',))
        renderer = GlobeRenderer(dataclasses.replace(self.cfg, palette=palette))
        with self.assertRaises(RenderError):
            renderer.render_html(self.frame, self.scheme, self.output)
        self.assertFalse(self.output.exists())


class TestRewind(unittest.TestCase):

    def test_counter_clockwise_polygon_reversed(self):
        polygon = square(0, 0, 1)
        self.assertTrue(polygon.exterior.is_ccw)
        self.assertFalse(_rewind(polygon).exterior.is_ccw)


if __name__ == '__main__':
    unittest.main()
