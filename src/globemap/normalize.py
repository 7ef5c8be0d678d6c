"""Attribute selection, population rescaling and ordering."""

from __future__ import annotations

import logging
from typing import Any

import pandas as pd

from .errors import SchemaError
from .io_ne import find_column
from .models import ColumnMapping

_LOGGER = logging.getLogger("globemap.normalize")


def select_attributes(
    frame: Any,
    mapping: ColumnMapping,
    *,
    scale_divisor: float = 1_000_000,
    decimals: int = 2,
) -> Any:
    """Keep geometry plus the mapped columns, rescale population and sort.

    Source columns are matched case-insensitively. The result is a new
    GeoDataFrame sorted ascending by population with a fresh index.
    """
    geometry_col = getattr(frame, "_geometry_column_name", None)
    if geometry_col is None or geometry_col not in frame.columns:
        raise SchemaError("Input has no active geometry column")

    renames: dict[str, str] = {}
    for source, target in mapping.columns:
        resolved = find_column(frame.columns, [source])
        if resolved is None:
            cols = ", ".join(str(c) for c in frame.columns)
            raise SchemaError(f"Missing required column '{source}'. Available columns: {cols}")
        if resolved in renames:
            raise SchemaError(
                f"Columns '{source}' and another mapping entry both resolve to '{resolved}'"
            )
        renames[resolved] = target

    selected = frame[[*renames.keys(), geometry_col]].copy().rename(columns=renames)
    if geometry_col != "geometry":
        selected = selected.rename_geometry("geometry")

    population = pd.to_numeric(selected[mapping.population], errors="coerce")
    if len(population) and population.isna().all():
        raise SchemaError(f"Population column '{mapping.population}' has no numeric values")
    selected[mapping.population] = (population / scale_divisor).round(decimals)

    # Checked on raw counts; -99 rescaled rounds to -0.0.
    keep = population.notna() & (population >= 0)
    keep &= selected.geometry.notna() & ~selected.geometry.is_empty
    dropped = int((~keep).sum())
    if dropped:
        names = selected.loc[~keep, mapping.name].astype(str).tolist()
        _LOGGER.warning(
            "Dropped %d record(s) with missing/negative population or empty geometry: %s",
            dropped,
            ", ".join(names),
        )
        selected = selected[keep]

    ordered = selected.sort_values(mapping.population, kind="mergesort").reset_index(drop=True)
    _LOGGER.info(
        "Selected %d records with columns %s",
        len(ordered),
        ", ".join(str(c) for c in ordered.columns),
    )
    return ordered
