"""Orthographic globe choropleth rendering with plotly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import pandas as pd
from shapely.geometry import MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from .classify import HOVER_COLUMN, INTERVAL_COLUMN
from .config import PaletteConfig, RenderConfig
from .errors import RenderError
from .models import ClassificationScheme
from .util import write_text_atomic

_LOGGER = logging.getLogger("globemap.render")

# plotly.js draws polygons with d3-geo, which expects clockwise exterior rings.
_CLOCKWISE = -1.0


@dataclass(frozen=True, slots=True)
class _IntervalLayer:
    code: int
    label: str
    color: str
    ids: tuple[str, ...]
    geometries: tuple[BaseGeometry, ...]
    hover: tuple[str, ...]


def build_palette(cfg: PaletteConfig, n: int) -> tuple[str, ...]:
    """Explicit colours from config, else `n` samples of a matplotlib colormap."""
    if cfg.colors is not None:
        return tuple(cfg.colors)
    matplotlib = _require_matplotlib()
    try:
        cmap = matplotlib.colormaps[cfg.name]
    except KeyError as exc:
        raise RenderError(f"Unknown colormap '{cfg.name}'") from exc
    sampled = cmap.resampled(n)
    colors = [matplotlib.colors.to_hex(sampled(idx)) for idx in range(n)]
    if cfg.reverse:
        colors.reverse()
    return tuple(colors)


class GlobeRenderer:
    """Builds the globe figure for a classified feature table."""

    def __init__(self, cfg: RenderConfig) -> None:
        self.cfg = cfg

    def build_figure(self, frame: Any, scheme: ClassificationScheme) -> Any:
        palette = build_palette(self.cfg.palette, scheme.n_classes)
        layers = self._prepare_layers(frame, scheme, palette)
        go = _require_plotly()

        fig = go.Figure()
        # Highest interval first so the legend reads top-down from large to small.
        for layer in reversed(layers):
            fig.add_trace(self._interval_trace(go, layer))
        fig.update_layout(
            geo=self._geo_layout(),
            legend=self._legend_layout(),
            annotations=[self._title_annotation()],
            paper_bgcolor=self.cfg.paper_bgcolor,
            margin=dict(l=0, r=0, t=0, b=0),
            width=self.cfg.width,
            height=self.cfg.height,
        )
        return fig

    def render_html(self, frame: Any, scheme: ClassificationScheme, output_path: Path) -> Path:
        fig = self.build_figure(frame, scheme)
        include_js: str | bool = True if self.cfg.include_plotlyjs == "inline" else "cdn"
        html = fig.to_html(
            full_html=True,
            include_plotlyjs=include_js,
            config={"displayModeBar": self.cfg.show_toolbar},
        )
        write_text_atomic(output_path, html)
        _LOGGER.info("Globe written to %s (%d records, %d intervals)", output_path, len(frame), scheme.n_classes)
        return output_path

    def _prepare_layers(
        self,
        frame: Any,
        scheme: ClassificationScheme,
        palette: Sequence[str],
    ) -> list[_IntervalLayer]:
        if frame is None or len(frame) == 0:
            raise RenderError("Feature table is empty")
        if len(palette) != scheme.n_classes:
            raise RenderError(
                f"Palette has {len(palette)} colours for {scheme.n_classes} intervals"
            )
        if len({color.strip().casefold() for color in palette}) != len(palette):
            raise RenderError("Palette contains repeated colours")
        for column in (INTERVAL_COLUMN, HOVER_COLUMN):
            if column not in frame.columns:
                raise RenderError(f"Feature table has no '{column}' column; classify it first")
        if not isinstance(frame[INTERVAL_COLUMN].dtype, pd.CategoricalDtype):
            raise RenderError(f"'{INTERVAL_COLUMN}' column must be categorical")
        categories = tuple(str(c) for c in frame[INTERVAL_COLUMN].cat.categories)
        if categories != scheme.labels:
            raise RenderError("Interval column does not match the classification scheme")

        lonlat = _to_lonlat(frame)
        codes = frame[INTERVAL_COLUMN].cat.codes.to_numpy()
        if (codes < 0).any():
            raise RenderError("Some records have no interval assigned")
        ids = [str(idx) for idx in range(len(lonlat))]
        geometries = list(lonlat.geometry)
        hover = [str(text) for text in frame[HOVER_COLUMN]]

        layers: list[_IntervalLayer] = []
        for code, label in enumerate(scheme.labels):
            members = [pos for pos, value in enumerate(codes) if value == code]
            layers.append(
                _IntervalLayer(
                    code=code,
                    label=label,
                    color=palette[code],
                    ids=tuple(ids[pos] for pos in members),
                    geometries=tuple(geometries[pos] for pos in members),
                    hover=tuple(hover[pos] for pos in members),
                )
            )
        return layers

    def _interval_trace(self, go: Any, layer: _IntervalLayer) -> Any:
        return go.Choropleth(
            geojson=_feature_collection(layer.ids, layer.geometries),
            locations=list(layer.ids),
            z=[layer.code] * len(layer.ids),
            colorscale=[[0.0, layer.color], [1.0, layer.color]],
            showscale=False,
            name=layer.label,
            legendgroup=layer.label,
            showlegend=True,
            text=list(layer.hover),
            hovertemplate="%{text}<extra></extra>",
            marker=dict(
                line=dict(
                    color=self.cfg.boundary.color,
                    width=self.cfg.boundary.width,
                )
            ),
        )

    def _geo_layout(self) -> dict[str, Any]:
        geo = self.cfg.geo
        axis = dict(showgrid=geo.show_grid, gridcolor=geo.grid_color)
        return dict(
            projection=dict(
                type=geo.projection,
                rotation=dict(lon=geo.rotation.lon, lat=geo.rotation.lat, roll=geo.rotation.roll),
            ),
            showland=geo.show_land,
            landcolor=geo.land_color,
            showocean=geo.show_ocean,
            oceancolor=geo.ocean_color,
            showlakes=geo.show_lakes,
            lakecolor=geo.lake_color,
            showcoastlines=geo.show_coastlines,
            showcountries=False,
            showframe=False,
            bgcolor=geo.bgcolor,
            lataxis=axis,
            lonaxis=dict(axis),
        )

    def _legend_layout(self) -> dict[str, Any]:
        legend = self.cfg.legend
        return dict(
            title=dict(text=legend.title),
            x=legend.x,
            y=legend.y,
            xanchor=legend.xanchor,
            yanchor=legend.yanchor,
            traceorder="normal",
            itemclick=False,
            itemdoubleclick=False,
            font=dict(family=legend.font.family, size=legend.font.size, color=legend.font.color),
            bgcolor=legend.bgcolor,
            bordercolor=legend.bordercolor,
            borderwidth=legend.borderwidth,
        )

    def _title_annotation(self) -> dict[str, Any]:
        title = self.cfg.title
        return dict(
            text=title.text,
            x=title.x,
            y=title.y,
            xref="paper",
            yref="paper",
            xanchor=title.xanchor,
            yanchor=title.yanchor,
            showarrow=False,
            font=dict(family=title.font.family, size=title.font.size, color=title.font.color),
        )


def _feature_collection(ids: Sequence[str], geometries: Sequence[BaseGeometry]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "id": fid,
                "properties": {},
                "geometry": mapping(_rewind(geometry)),
            }
            for fid, geometry in zip(ids, geometries)
        ],
    }


def _rewind(geometry: BaseGeometry) -> BaseGeometry:
    if isinstance(geometry, Polygon):
        return orient(geometry, sign=_CLOCKWISE)
    if isinstance(geometry, MultiPolygon):
        return MultiPolygon([orient(part, sign=_CLOCKWISE) for part in geometry.geoms])
    return geometry


def _to_lonlat(frame: Any) -> Any:
    crs = getattr(frame, "crs", None)
    if crs is None or crs.to_epsg() == 4326:
        return frame
    return frame.to_crs(epsg=4326)


def _require_plotly() -> Any:
    try:
        import plotly.graph_objects as go
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("plotly is required for globe rendering") from exc
    return go


def _require_matplotlib() -> Any:
    try:
        import matplotlib
        import matplotlib.colors
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for palette sampling") from exc
    return matplotlib
