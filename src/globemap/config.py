"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .models import ColumnMapping, RecordLocator


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _optional_float(value: Any, field_name: str) -> float | None:
    if value is None:
        return None
    return _float(value, field_name)


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


_SCALE_ALIASES = {"small": 110, "medium": 50, "large": 10}
_VALID_SCALES = {10, 50, 110}


@dataclass(frozen=True, slots=True)
class SourceConfig:
    scale: int
    type: str
    category: str
    base_url: str
    request_timeout_s: int
    max_retries: int
    retry_backoff_s: float
    user_agent: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> SourceConfig:
        scale_raw = raw.get("scale")
        if isinstance(scale_raw, str):
            scale = _SCALE_ALIASES.get(scale_raw.strip().casefold(), -1)
        else:
            scale = _int(scale_raw, "source.scale")
        if scale not in _VALID_SCALES:
            raise ValueError("source.scale must be one of: 10, 50, 110, large, medium, small")

        max_retries = _int(raw.get("max_retries", 2), "source.max_retries")
        retry_backoff_s = _float(raw.get("retry_backoff_s", 1.0), "source.retry_backoff_s")
        request_timeout_s = _int(raw.get("request_timeout_s", 60), "source.request_timeout_s")
        if max_retries < 0:
            raise ValueError("source.max_retries must be >= 0")
        if retry_backoff_s <= 0:
            raise ValueError("source.retry_backoff_s must be > 0")
        if request_timeout_s <= 0:
            raise ValueError("source.request_timeout_s must be > 0")

        return cls(
            scale=scale,
            type=_str(raw.get("type"), "source.type"),
            category=_str(raw.get("category"), "source.category"),
            base_url=_str(raw.get("base_url"), "source.base_url").rstrip("/"),
            request_timeout_s=request_timeout_s,
            max_retries=max_retries,
            retry_backoff_s=retry_backoff_s,
            user_agent=_str(raw.get("user_agent"), "source.user_agent"),
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    cache_dir: Path
    output_html: Path
    logs_dir: Path
    manifests_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (
            self.cache_dir,
            self.output_html.parent,
            self.logs_dir,
            self.manifests_dir,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            cache_dir=_path_from_cfg(raw.get("cache_dir"), "paths.cache_dir", root_dir),
            output_html=_path_from_cfg(raw.get("output_html"), "paths.output_html", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class AttributesConfig:
    mapping: ColumnMapping
    scale_divisor: float
    decimals: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AttributesConfig:
        columns_raw = _mapping(raw.get("columns"), "attributes.columns")
        if not columns_raw:
            raise ValueError("attributes.columns must not be empty")
        columns = tuple(
            (_str(source, "attributes.columns key"), _str(target, f"attributes.columns.{source}"))
            for source, target in columns_raw.items()
        )
        scale_divisor = _float(raw.get("scale_divisor", 1_000_000), "attributes.scale_divisor")
        decimals = _int(raw.get("decimals", 2), "attributes.decimals")
        if scale_divisor <= 0:
            raise ValueError("attributes.scale_divisor must be > 0")
        if decimals < 0:
            raise ValueError("attributes.decimals must be >= 0")
        return cls(
            mapping=ColumnMapping(
                columns=columns,
                population=_str(raw.get("population_column"), "attributes.population_column"),
                name=_str(raw.get("name_column"), "attributes.name_column"),
            ),
            scale_divisor=scale_divisor,
            decimals=decimals,
        )


@dataclass(frozen=True, slots=True)
class RepairConfig:
    hole_area_threshold_km2: float
    simplify_tolerance: float | None
    targets: tuple[RecordLocator, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RepairConfig:
        threshold = _float(raw.get("hole_area_threshold_km2"), "repair.hole_area_threshold_km2")
        if threshold < 0:
            raise ValueError("repair.hole_area_threshold_km2 must be >= 0")
        tolerance = _optional_float(raw.get("simplify_tolerance"), "repair.simplify_tolerance")
        if tolerance is not None and tolerance <= 0:
            raise ValueError("repair.simplify_tolerance must be > 0 when provided")

        targets_raw = raw.get("targets", [])
        if targets_raw is None:
            targets_raw = []
        if not isinstance(targets_raw, list):
            raise ValueError("Expected list for 'repair.targets'")
        targets = tuple(
            RecordLocator.from_mapping(_mapping(item, f"repair.targets[{idx}]"))
            for idx, item in enumerate(targets_raw)
        )
        return cls(
            hole_area_threshold_km2=threshold,
            simplify_tolerance=tolerance,
            targets=targets,
        )


@dataclass(frozen=True, slots=True)
class ClassifyConfig:
    n_classes: int
    seed: int
    n_init: int
    label_decimals: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ClassifyConfig:
        n_classes = _int(raw.get("n_classes"), "classify.n_classes")
        n_init = _int(raw.get("n_init", 10), "classify.n_init")
        label_decimals = _int(raw.get("label_decimals", 2), "classify.label_decimals")
        if n_classes < 2:
            raise ValueError("classify.n_classes must be >= 2")
        if n_init < 1:
            raise ValueError("classify.n_init must be >= 1")
        if label_decimals < 0:
            raise ValueError("classify.label_decimals must be >= 0")
        return cls(
            n_classes=n_classes,
            seed=_int(raw.get("seed", 0), "classify.seed"),
            n_init=n_init,
            label_decimals=label_decimals,
        )


@dataclass(frozen=True, slots=True)
class PaletteConfig:
    name: str
    reverse: bool
    colors: tuple[str, ...] | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PaletteConfig:
        colors_raw = raw.get("colors")
        colors = None if colors_raw is None else _str_list(colors_raw, "render.palette.colors")
        return cls(
            name=_str(raw.get("name"), "render.palette.name"),
            reverse=_bool(raw.get("reverse"), "render.palette.reverse"),
            colors=colors,
        )


@dataclass(frozen=True, slots=True)
class BoundaryConfig:
    color: str
    width: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BoundaryConfig:
        width = _float(raw.get("width"), "render.boundary.width")
        if width < 0:
            raise ValueError("render.boundary.width must be >= 0")
        return cls(color=_str(raw.get("color"), "render.boundary.color"), width=width)


@dataclass(frozen=True, slots=True)
class RotationConfig:
    lon: float
    lat: float
    roll: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RotationConfig:
        lon = _float(raw.get("lon", 0.0), "render.geo.rotation.lon")
        lat = _float(raw.get("lat", 0.0), "render.geo.rotation.lat")
        if not -180.0 <= lon <= 180.0:
            raise ValueError("render.geo.rotation.lon must be between -180 and 180")
        if not -90.0 <= lat <= 90.0:
            raise ValueError("render.geo.rotation.lat must be between -90 and 90")
        return cls(lon=lon, lat=lat, roll=_float(raw.get("roll", 0.0), "render.geo.rotation.roll"))


@dataclass(frozen=True, slots=True)
class GeoConfig:
    projection: str
    rotation: RotationConfig
    show_land: bool
    land_color: str
    show_ocean: bool
    ocean_color: str
    show_lakes: bool
    lake_color: str
    show_coastlines: bool
    show_grid: bool
    grid_color: str
    bgcolor: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GeoConfig:
        return cls(
            projection=_str(raw.get("projection"), "render.geo.projection"),
            rotation=RotationConfig.from_mapping(_mapping(raw.get("rotation"), "render.geo.rotation")),
            show_land=_bool(raw.get("show_land"), "render.geo.show_land"),
            land_color=_str(raw.get("land_color"), "render.geo.land_color"),
            show_ocean=_bool(raw.get("show_ocean"), "render.geo.show_ocean"),
            ocean_color=_str(raw.get("ocean_color"), "render.geo.ocean_color"),
            show_lakes=_bool(raw.get("show_lakes", False), "render.geo.show_lakes"),
            lake_color=_str(raw.get("lake_color", "#ffffff"), "render.geo.lake_color"),
            show_coastlines=_bool(raw.get("show_coastlines", False), "render.geo.show_coastlines"),
            show_grid=_bool(raw.get("show_grid"), "render.geo.show_grid"),
            grid_color=_str(raw.get("grid_color"), "render.geo.grid_color"),
            bgcolor=_str(raw.get("bgcolor"), "render.geo.bgcolor"),
        )


@dataclass(frozen=True, slots=True)
class FontConfig:
    family: str
    size: int
    color: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], prefix: str) -> FontConfig:
        return cls(
            family=_str(raw.get("family"), f"{prefix}.family"),
            size=_int(raw.get("size"), f"{prefix}.size"),
            color=_str(raw.get("color"), f"{prefix}.color"),
        )


@dataclass(frozen=True, slots=True)
class LegendConfig:
    title: str
    x: float
    y: float
    xanchor: str
    yanchor: str
    font: FontConfig
    bgcolor: str
    bordercolor: str
    borderwidth: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LegendConfig:
        return cls(
            title=_str(raw.get("title"), "render.legend.title"),
            x=_float(raw.get("x"), "render.legend.x"),
            y=_float(raw.get("y"), "render.legend.y"),
            xanchor=_str(raw.get("xanchor", "left"), "render.legend.xanchor"),
            yanchor=_str(raw.get("yanchor", "top"), "render.legend.yanchor"),
            font=FontConfig.from_mapping(_mapping(raw.get("font"), "render.legend.font"), "render.legend.font"),
            bgcolor=_str(raw.get("bgcolor"), "render.legend.bgcolor"),
            bordercolor=_str(raw.get("bordercolor"), "render.legend.bordercolor"),
            borderwidth=_float(raw.get("borderwidth", 0), "render.legend.borderwidth"),
        )


@dataclass(frozen=True, slots=True)
class TitleConfig:
    text: str
    x: float
    y: float
    xanchor: str
    yanchor: str
    font: FontConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TitleConfig:
        return cls(
            text=_str(raw.get("text"), "render.title.text"),
            x=_float(raw.get("x"), "render.title.x"),
            y=_float(raw.get("y"), "render.title.y"),
            xanchor=_str(raw.get("xanchor", "left"), "render.title.xanchor"),
            yanchor=_str(raw.get("yanchor", "top"), "render.title.yanchor"),
            font=FontConfig.from_mapping(_mapping(raw.get("font"), "render.title.font"), "render.title.font"),
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    palette: PaletteConfig
    boundary: BoundaryConfig
    geo: GeoConfig
    legend: LegendConfig
    title: TitleConfig
    show_toolbar: bool
    paper_bgcolor: str
    width: int | None
    height: int | None
    include_plotlyjs: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        width_raw = raw.get("width")
        height_raw = raw.get("height")
        include_plotlyjs = _str(raw.get("include_plotlyjs", "cdn"), "render.include_plotlyjs")
        allowed = {"cdn", "inline"}
        if include_plotlyjs not in allowed:
            raise ValueError(
                "render.include_plotlyjs must be one of: " + ", ".join(sorted(allowed))
            )
        return cls(
            palette=PaletteConfig.from_mapping(_mapping(raw.get("palette"), "render.palette")),
            boundary=BoundaryConfig.from_mapping(_mapping(raw.get("boundary"), "render.boundary")),
            geo=GeoConfig.from_mapping(_mapping(raw.get("geo"), "render.geo")),
            legend=LegendConfig.from_mapping(_mapping(raw.get("legend"), "render.legend")),
            title=TitleConfig.from_mapping(_mapping(raw.get("title"), "render.title")),
            show_toolbar=_bool(raw.get("show_toolbar", False), "render.show_toolbar"),
            paper_bgcolor=_str(raw.get("paper_bgcolor"), "render.paper_bgcolor"),
            width=None if width_raw is None else _int(width_raw, "render.width"),
            height=None if height_raw is None else _int(height_raw, "render.height"),
            include_plotlyjs=include_plotlyjs,
        )


@dataclass(frozen=True, slots=True)
class BuildConfig:
    write_manifest: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BuildConfig:
        return cls(write_manifest=_bool(raw.get("write_manifest"), "build.write_manifest"))


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    source: SourceConfig
    paths: PathsConfig
    attributes: AttributesConfig
    repair: RepairConfig
    classify: ClassifyConfig
    render: RenderConfig
    build: BuildConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            source=SourceConfig.from_mapping(_mapping(raw.get("source"), "source")),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            attributes=AttributesConfig.from_mapping(_mapping(raw.get("attributes"), "attributes")),
            repair=RepairConfig.from_mapping(_mapping(raw.get("repair"), "repair")),
            classify=ClassifyConfig.from_mapping(_mapping(raw.get("classify"), "classify")),
            render=RenderConfig.from_mapping(_mapping(raw.get("render"), "render")),
            build=BuildConfig.from_mapping(_mapping(raw.get("build"), "build")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
