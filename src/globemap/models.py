"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import numpy as np


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Ordered source -> target column renames kept by attribute selection."""

    columns: tuple[tuple[str, str], ...]
    population: str
    name: str

    def __post_init__(self) -> None:
        targets = self.targets
        if len(set(targets)) != len(targets):
            raise ValueError("Column mapping targets must be unique")
        if "geometry" in targets:
            raise ValueError("'geometry' is reserved and cannot be a mapping target")
        for role, column in (("population", self.population), ("name", self.name)):
            if column not in targets:
                raise ValueError(f"{role} column '{column}' is not a mapping target")

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(source for source, _ in self.columns)

    @property
    def targets(self) -> tuple[str, ...]:
        return tuple(target for _, target in self.columns)


@dataclass(frozen=True, slots=True)
class RecordLocator:
    """Points at one record by row position or by its display name."""

    index: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if (self.index is None) == (self.name is None):
            raise ValueError("Record locator needs exactly one of 'index' or 'name'")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RecordLocator:
        index_raw = data.get("index")
        name_raw = data.get("name")
        if index_raw is not None and (not isinstance(index_raw, int) or isinstance(index_raw, bool)):
            raise ValueError("Expected integer for locator field 'index'")
        name = _require_str(name_raw, "name") if name_raw is not None else None
        return cls(index=index_raw, name=name)

    def describe(self) -> str:
        if self.name is not None:
            return f"name={self.name!r}"
        return f"index={self.index}"


@dataclass(frozen=True, slots=True)
class ClassificationScheme:
    """Break points and display labels for N half-open intervals.

    Interval ``i`` covers ``[breaks[i], breaks[i + 1])``; the last interval is
    closed so the maximum value is covered.
    """

    breaks: tuple[float, ...]
    labels: tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.breaks) != len(self.labels) + 1:
            raise ValueError("Expected one more break than labels")
        if any(right <= left for left, right in zip(self.breaks, self.breaks[1:])):
            raise ValueError("Breaks must be strictly increasing")

    @property
    def n_classes(self) -> int:
        return len(self.labels)

    @property
    def legend_labels(self) -> tuple[str, ...]:
        return tuple(reversed(self.labels))

    @property
    def bounds(self) -> tuple[tuple[float, float], ...]:
        return tuple(zip(self.breaks, self.breaks[1:]))

    def assign(self, values: Sequence[float] | np.ndarray) -> np.ndarray:
        """Return the interval code of each value; boundary values go up."""
        arr = np.asarray(values, dtype=float)
        codes = np.searchsorted(np.asarray(self.breaks, dtype=float), arr, side="right") - 1
        return np.clip(codes, 0, self.n_classes - 1)


@dataclass(frozen=True, slots=True)
class RunManifest:
    """Build metadata written next to the rendered globe."""

    generated_at_utc: str
    config_hash_sha256: str
    record_count: int
    breaks: tuple[float, ...]
    legend_labels: tuple[str, ...]
    artifacts: Mapping[str, str]

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        record_count: int,
        scheme: ClassificationScheme,
        artifacts: Mapping[str, str],
    ) -> RunManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            record_count=record_count,
            breaks=scheme.breaks,
            legend_labels=scheme.legend_labels,
            artifacts=artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "record_count": self.record_count,
            "breaks": list(self.breaks),
            "legend_labels": list(self.legend_labels),
            "artifacts": dict(self.artifacts),
        }
