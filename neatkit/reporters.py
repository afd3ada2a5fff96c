"""Timestamped event log for long-running evolution sessions."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from .metrics import PopulationSummary
from .species import Species


class EventLogger:
    """Append-only text log; each line starts with a UTC ISO timestamp."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._stream: TextIO = self.path.open("a", encoding="utf-8")

    def __enter__(self) -> EventLogger:
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    def log(self, message: str) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        print(stamp, message, file=self._stream, flush=True)

    def generation(self, summary: PopulationSummary) -> None:
        """Log the headline numbers of an evaluated generation."""
        self.log(
            f"Generation {summary.generation}: "
            f"best={summary.best_fitness:.3f} "
            f"mean={summary.mean_fitness:.3f} "
            f"median={summary.median_fitness:.3f} "
            f"species={summary.species_count} "
            f"eval={summary.eval_time_s:.3f}s"
        )

    def species(self, generation: int, species: Iterable[Species]) -> None:
        """Log one line per species: size, best fitness and stagnation."""
        for item in species:
            self.log(
                f"  species {item.id}: members={len(item.members)} "
                f"best={item.best_fitness:.3f} "
                f"stagnant={item.stagnation(generation)}"
            )

    def champion(self, generation: int, fitness: float) -> None:
        self.log(f"New champion at generation {generation} (fitness={fitness:.3f}).")

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()


__all__ = ["EventLogger"]
