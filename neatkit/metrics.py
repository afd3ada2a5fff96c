"""Per-generation population summaries and their CSV record."""

from __future__ import annotations

import csv
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from statistics import mean, median
from typing import IO, Any


@dataclass(frozen=True, slots=True)
class PopulationSummary:
    """Aggregate statistics for one evaluated generation."""

    generation: int
    population_size: int
    species_count: int
    best_fitness: float
    mean_fitness: float
    median_fitness: float
    eval_time_s: float = 0.0

    @classmethod
    def from_fitnesses(
        cls,
        generation: int,
        fitnesses: Mapping[int, float],
        species_count: int,
        *,
        eval_time_s: float = 0.0,
    ) -> PopulationSummary:
        """Summarise the fitness scores of an evaluated population."""
        if not fitnesses:
            msg = "Cannot summarise an empty population."
            raise ValueError(msg)
        values: Sequence[float] = list(fitnesses.values())
        return cls(
            generation=generation,
            population_size=len(values),
            species_count=species_count,
            best_fitness=max(values),
            mean_fitness=mean(values),
            median_fitness=median(values),
            eval_time_s=eval_time_s,
        )


class MetricsWriter:
    """Appends one CSV row per :class:`PopulationSummary`.

    The header is written only when the file is created, so several runs
    may share one file.
    """

    columns = tuple(item.name for item in fields(PopulationSummary))

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fresh = not self.path.exists() or self.path.stat().st_size == 0
        self._stream: IO[str] = self.path.open("a", encoding="utf-8", newline="")
        self._csv = csv.DictWriter(self._stream, fieldnames=self.columns)
        if fresh:
            self._csv.writeheader()
            self._stream.flush()

    def __enter__(self) -> MetricsWriter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def append(self, row: PopulationSummary) -> None:
        self._csv.writerow(asdict(row))
        self._stream.flush()

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()


__all__ = ["MetricsWriter", "PopulationSummary"]
