"""K-means population classification, legend labels and hover text."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from .errors import ClassificationError
from .models import ClassificationScheme

_LOGGER = logging.getLogger("globemap.classify")

INTERVAL_COLUMN = "interval"
HOVER_COLUMN = "hover_text"


def compute_scheme(
    values: Sequence[float] | np.ndarray,
    n_classes: int,
    *,
    seed: int = 0,
    n_init: int = 10,
    label_decimals: int = 2,
) -> ClassificationScheme:
    """Cluster `values` into `n_classes` contiguous intervals.

    KMeans runs with a fixed `random_state`, so a given column, class count,
    seed and `n_init` always yield the same breaks. Interior breaks sit halfway
    between the largest member of one cluster and the smallest of the next.
    """
    arr = np.asarray(values, dtype=float).ravel()
    if n_classes < 2:
        raise ClassificationError(f"Need at least 2 classes, got {n_classes}")
    if arr.size == 0:
        raise ClassificationError("Cannot classify an empty column")
    if not np.all(np.isfinite(arr)):
        raise ClassificationError("Column contains missing or non-finite values")
    distinct = int(np.unique(arr).size)
    if distinct < n_classes:
        raise ClassificationError(
            f"Only {distinct} distinct values; cannot form {n_classes} classes"
        )

    model = KMeans(n_clusters=n_classes, n_init=n_init, random_state=seed)
    clusters = model.fit_predict(arr.reshape(-1, 1))

    ranges: list[tuple[float, float]] = []
    for cluster in np.argsort(model.cluster_centers_.ravel()):
        members = arr[clusters == cluster]
        if members.size == 0:
            raise ClassificationError(f"KMeans produced an empty cluster (seed={seed})")
        ranges.append((float(members.min()), float(members.max())))

    breaks = [ranges[0][0]]
    for (_, upper), (lower, _) in zip(ranges, ranges[1:]):
        if lower <= upper:
            raise ClassificationError("KMeans clusters overlap; cannot derive breaks")
        breaks.append(_label_break(upper, lower, label_decimals))
    breaks.append(ranges[-1][1])

    labels = interval_labels(breaks, decimals=label_decimals)
    if len(set(labels)) != len(labels) or breaks[-2] >= breaks[-1]:
        raise ClassificationError(
            f"Interval labels collide at {label_decimals} decimals; increase label_decimals"
        )
    scheme = ClassificationScheme(breaks=tuple(breaks), labels=labels)
    _LOGGER.info(
        "Computed %d classes over [%s, %s]: %s",
        scheme.n_classes,
        _format_value(breaks[0], label_decimals),
        _format_value(breaks[-1], label_decimals),
        ", ".join(_format_value(b, label_decimals) for b in breaks[1:-1]),
    )
    return scheme


def interval_labels(breaks: Sequence[float], *, decimals: int = 2) -> tuple[str, ...]:
    """Display labels in ascending order; the outer intervals are open-ended."""
    n = len(breaks) - 1
    labels: list[str] = []
    for idx in range(n):
        lower = _format_value(breaks[idx], decimals)
        upper = _format_value(breaks[idx + 1], decimals)
        if idx == 0:
            labels.append(f"below {upper}")
        elif idx == n - 1:
            labels.append(f"above {lower}")
        else:
            labels.append(f"{lower} - {upper}")
    return tuple(labels)


def hover_text(name: Any, population: float) -> str:
    return f"{name}<br>Population: {population:.2f} million"


def classify_frame(
    frame: Any,
    scheme: ClassificationScheme,
    *,
    population_column: str,
    name_column: str,
) -> Any:
    """Return a copy with `interval` and `hover_text` columns added."""
    out = frame.copy()
    codes = scheme.assign(out[population_column].to_numpy(dtype=float))
    out[INTERVAL_COLUMN] = pd.Categorical.from_codes(codes, categories=list(scheme.labels), ordered=True)
    out[HOVER_COLUMN] = [
        hover_text(name, float(value))
        for name, value in zip(out[name_column], out[population_column])
    ]
    return out


def format_scheme_lines(scheme: ClassificationScheme, frame: Any | None = None) -> Sequence[str]:
    counts: dict[str, int] = {}
    if frame is not None and INTERVAL_COLUMN in frame.columns:
        counts = {str(k): int(v) for k, v in frame[INTERVAL_COLUMN].value_counts().items()}
    lines = [f"[INFO] Breaks: {', '.join(f'{b:.4f}' for b in scheme.breaks)}"]
    for label in scheme.legend_labels:
        suffix = f" ({counts.get(label, 0)} records)" if counts else ""
        lines.append(f"[INFO] Legend: {label}{suffix}")
    return lines


def _label_break(upper: float, lower: float, decimals: int) -> float:
    """Break between two clusters, exactly as its label prints it.

    The midpoint is rounded to `decimals`; when that lands on or below the
    lower cluster's maximum it moves up one step. It never exceeds the next
    cluster's minimum.
    """
    step = 10.0 ** -decimals
    brk = round((upper + lower) / 2.0, decimals)
    if brk <= upper:
        brk = round(upper, decimals)
        if brk <= upper:
            brk = round(brk + step, decimals)
    if brk > lower:
        raise ClassificationError(
            f"Clusters ending at {upper} and starting at {lower} cannot be separated "
            f"at {decimals} decimals; increase label_decimals"
        )
    return brk


def _format_value(value: float, decimals: int) -> str:
    return f"{value:,.{decimals}f}"
