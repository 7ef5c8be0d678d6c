"""End-to-end globe build: load, normalize, repair, classify, render."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .classify import classify_frame, compute_scheme
from .config import AppConfig
from .io_ne import NaturalEarthRepository
from .models import ClassificationScheme, RunManifest
from .normalize import select_attributes
from .render import GlobeRenderer
from .repair import repair_records, simplify_geometries
from .util import sha256_file, write_json

_LOGGER = logging.getLogger("globemap.pipeline")


@dataclass(slots=True)
class PipelineResult:
    frame: Any
    scheme: ClassificationScheme
    output_path: Path | None = None
    manifest_path: Path | None = None


def prepare_features(cfg: AppConfig, *, refresh: bool = False) -> PipelineResult:
    """Run the load, normalize, repair and classify stages."""
    repo = NaturalEarthRepository(cfg.source, cfg.paths.cache_dir)
    _LOGGER.info("Loading %s", repo.dataset_url())
    raw = repo.load(refresh=refresh)

    attrs = cfg.attributes
    frame = select_attributes(
        raw,
        attrs.mapping,
        scale_divisor=attrs.scale_divisor,
        decimals=attrs.decimals,
    )

    if cfg.repair.simplify_tolerance is not None:
        frame = simplify_geometries(frame, cfg.repair.simplify_tolerance)
    frame = repair_records(
        frame,
        cfg.repair.targets,
        threshold_km2=cfg.repair.hole_area_threshold_km2,
        name_column=attrs.mapping.name,
    )

    scheme = compute_scheme(
        frame[attrs.mapping.population].to_numpy(),
        cfg.classify.n_classes,
        seed=cfg.classify.seed,
        n_init=cfg.classify.n_init,
        label_decimals=cfg.classify.label_decimals,
    )
    frame = classify_frame(
        frame,
        scheme,
        population_column=attrs.mapping.population,
        name_column=attrs.mapping.name,
    )
    return PipelineResult(frame=frame, scheme=scheme)


def run_build(
    cfg: AppConfig,
    *,
    refresh: bool = False,
    output_path: Path | None = None,
) -> PipelineResult:
    """Run every stage and write the HTML globe (plus manifest when enabled)."""
    result = prepare_features(cfg, refresh=refresh)
    target = output_path or cfg.paths.output_html
    result.output_path = GlobeRenderer(cfg.render).render_html(result.frame, result.scheme, target)

    if cfg.build.write_manifest:
        manifest = RunManifest.create(
            config_hash_sha256=sha256_file(cfg.source_path),
            record_count=len(result.frame),
            scheme=result.scheme,
            artifacts={
                "globe_html": str(result.output_path),
                "dataset_cache": str(cfg.paths.cache_dir),
            },
        )
        result.manifest_path = cfg.paths.manifests_dir / "run_manifest.json"
        write_json(result.manifest_path, manifest.to_dict())
        _LOGGER.info("Run manifest written to %s", result.manifest_path)
    return result
