from __future__ import annotations

import time

import pytest
from neatkit.evaluator import ParallelEvaluator, SyncEvaluator
from neatkit.genes import ConnectionGene, NodeGene, NodeType
from neatkit.genome import Genome
from neatkit.network import Network


def _simple_genome(weight: float = 1.0) -> Genome:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.OUTPUT, "identity"),
    }
    connections = {0: ConnectionGene(0, 0, 1, weight)}
    return Genome(nodes=nodes, connections=connections)


class EchoTask:
    """Scores a network by its output for a unit input."""

    def fitness(self, network: Network) -> float:
        return network.prop([1.0])[0]


class FailingTask:
    def fitness(self, network: Network) -> float:
        raise RuntimeError("boom")


class SlowTask:
    def fitness(self, network: Network) -> float:
        time.sleep(10.0)
        return 0.0


def test_sync_evaluator_scores_every_genome() -> None:
    genomes = {0: _simple_genome(), 1: _simple_genome(weight=1.5)}
    evaluator = SyncEvaluator(EchoTask())

    result = evaluator(genomes)

    assert result == {0: pytest.approx(1.0), 1: pytest.approx(1.5)}
    assert evaluator.last_stats.evaluations == 2
    assert evaluator.last_stats.elapsed_s >= 0.0


def test_sync_evaluator_compiles_fresh_networks() -> None:
    class StatefulTask:
        def fitness(self, network: Network) -> float:
            assert all(value == 0.0 for value in network.state.values())
            return network.prop([1.0])[0]

    genomes = {0: _simple_genome(), 1: _simple_genome()}
    assert SyncEvaluator(StatefulTask())(genomes) == {0: 1.0, 1: 1.0}


def test_parallel_evaluator_matches_sync() -> None:
    genomes = {idx: _simple_genome(weight=1.0 + idx * 0.2) for idx in range(4)}
    expected = SyncEvaluator(EchoTask())(genomes)

    parallel_eval = ParallelEvaluator(EchoTask(), workers=2, timeout_s=60.0)
    result = parallel_eval(genomes)

    assert result == pytest.approx(expected)
    assert parallel_eval.last_stats.evaluations == 4


def test_parallel_evaluator_handles_empty_population() -> None:
    assert ParallelEvaluator(EchoTask(), workers=2)({}) == {}


def test_parallel_evaluator_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError):
        ParallelEvaluator(EchoTask(), workers=0)
    with pytest.raises(ValueError):
        ParallelEvaluator(EchoTask(), workers=1, timeout_s=0.0)


def test_parallel_evaluator_raises_on_worker_failure() -> None:
    genomes = {0: _simple_genome()}
    evaluator = ParallelEvaluator(FailingTask(), workers=1, timeout_s=60.0)

    with pytest.raises(RuntimeError):
        evaluator(genomes)


def test_parallel_evaluator_timeout_raises_runtime_error() -> None:
    evaluator = ParallelEvaluator(SlowTask(), workers=1, timeout_s=1.0)

    with pytest.raises(RuntimeError, match="No result within"):
        evaluator({0: _simple_genome()})
