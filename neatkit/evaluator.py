"""Evaluators that score genomes with a user-supplied task."""

from __future__ import annotations

import multiprocessing
import queue
from collections.abc import Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Protocol

from .genome import Genome
from .network import Network


class Task(Protocol):
    """Fitness function supplied by the user.

    ``fitness`` receives a freshly compiled network for one genome and
    returns a scalar score. It is called once per genome per generation and
    may be called from worker processes, so parallel tasks must pickle.
    """

    def fitness(self, network: Network) -> float: ...


@dataclass(slots=True)
class EvaluationStats:
    """Aggregate statistics from the most recent evaluation pass."""

    evaluations: int = 0
    elapsed_s: float = 0.0


_WORKER_FAILED = "__error__"


def _evaluate_genome(task: Task, genome: Genome) -> float:
    return float(task.fitness(Network.from_genome(genome)))


class SyncEvaluator:
    """Single-process evaluator that scores genomes sequentially."""

    def __init__(self, task: Task) -> None:
        self.task = task
        self.last_stats = EvaluationStats()

    def __call__(self, genomes: Mapping[int, Genome]) -> dict[int, float]:
        start = perf_counter()
        results = {
            genome_id: _evaluate_genome(self.task, genomes[genome_id])
            for genome_id in sorted(genomes)
        }
        self.last_stats = EvaluationStats(
            evaluations=len(results),
            elapsed_s=perf_counter() - start,
        )
        return results


def _worker_loop(
    worker_id: int,
    task: Task,
    inbox: multiprocessing.queues.Queue[Any],
    outbox: multiprocessing.queues.Queue[Any],
) -> None:
    try:
        for genome_id, genome in iter(inbox.get, None):
            outbox.put((genome_id, _evaluate_genome(task, genome)))
    except Exception as error:  # pragma: no cover - reported to the parent
        outbox.put((_WORKER_FAILED, f"worker {worker_id}: {error!r}"))
        raise


class ParallelEvaluator:
    """Scores genomes in spawned worker processes.

    Genomes are queued in id order and every worker exits after reading a
    ``None`` sentinel. A call blocks until every genome has a fitness;
    partial results are never returned. If any worker fails, the remaining
    workers are terminated and :class:`RuntimeError` is raised.
    """

    def __init__(
        self,
        task: Task,
        *,
        workers: int,
        timeout_s: float | None = None,
    ) -> None:
        if workers <= 0:
            msg = "workers must be positive."
            raise ValueError(msg)
        if timeout_s is not None and timeout_s <= 0.0:
            msg = "timeout_s must be positive when provided."
            raise ValueError(msg)

        self.task = task
        self.workers = workers
        self.timeout_s = timeout_s
        self.last_stats = EvaluationStats()

    def __call__(self, genomes: Mapping[int, Genome]) -> dict[int, float]:
        self.last_stats = EvaluationStats()
        if not genomes:
            return {}

        start = perf_counter()
        ctx = multiprocessing.get_context("spawn")
        inbox: multiprocessing.queues.Queue[Any] = ctx.Queue()
        outbox: multiprocessing.queues.Queue[Any] = ctx.Queue()
        pool = [
            ctx.Process(
                target=_worker_loop,
                args=(worker_id, self.task, inbox, outbox),
                daemon=True,
            )
            for worker_id in range(min(self.workers, len(genomes)))
        ]
        for process in pool:
            process.start()

        completed = False
        try:
            for genome_id in sorted(genomes):
                inbox.put((genome_id, genomes[genome_id]))
            for _ in pool:
                inbox.put(None)
            results = self._collect(outbox, len(genomes))
            completed = True
        finally:
            self._shutdown(pool, completed)

        self.last_stats = EvaluationStats(
            evaluations=len(results),
            elapsed_s=perf_counter() - start,
        )
        return results

    def _collect(
        self,
        outbox: multiprocessing.queues.Queue[Any],
        expected: int,
    ) -> dict[int, float]:
        results: dict[int, float] = {}
        while len(results) < expected:
            try:
                genome_id, payload = outbox.get(timeout=self.timeout_s)
            except queue.Empty as error:
                msg = (
                    f"No result within {self.timeout_s}s; "
                    f"{expected - len(results)} genome(s) unscored."
                )
                raise RuntimeError(msg) from error
            if genome_id == _WORKER_FAILED:
                msg = f"Evaluation failed in {payload}"
                raise RuntimeError(msg)
            results[genome_id] = payload
        return results

    @staticmethod
    def _shutdown(pool: list[Any], completed: bool) -> None:
        for process in pool:
            if not completed and process.is_alive():
                process.terminate()
            process.join()
        if completed:
            crashed = [p.exitcode for p in pool if p.exitcode not in (0, None)]
            if crashed:
                msg = f"Worker process exited with code {crashed[0]}"
                raise RuntimeError(msg)


__all__ = [
    "EvaluationStats",
    "ParallelEvaluator",
    "SyncEvaluator",
    "Task",
]
