from __future__ import annotations

import math
from random import Random
from statistics import mean, pstdev

import pytest
from neatkit.errors import ConfigurationError, StructuralMutationExhausted
from neatkit.genes import ConnectionGene, NodeGene, NodeType
from neatkit.genome import (
    AddConnectionConfig,
    AddNodeConfig,
    CrossoverConfig,
    Genome,
    WeightMutationConfig,
    initial_connection_pairs,
)
from neatkit.innovations import InnovationRegistry


def build_minimal_genome() -> Genome:
    nodes = {
        0: NodeGene(id=0, type=NodeType.INPUT, activation="identity"),
        1: NodeGene(id=1, type=NodeType.OUTPUT, activation="identity"),
    }
    connections = {}
    return Genome(nodes=nodes, connections=connections)


def _connected_genome(registry: InnovationRegistry, weight: float = 0.75) -> Genome:
    genome = build_minimal_genome()
    innovation = registry.register(0, 1)
    genome.add_connection(
        ConnectionGene(innovation=innovation, in_node_id=0, out_node_id=1, weight=weight)
    )
    return genome


def test_genome_rejects_inconsistent_genes() -> None:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.OUTPUT, "identity"),
    }
    with pytest.raises(ValueError):
        Genome(nodes={5: nodes[0]}, connections={})

    with pytest.raises(ValueError):
        Genome(nodes=nodes, connections={3: ConnectionGene(4, 0, 1, 0.1)})

    with pytest.raises(ValueError):
        Genome(nodes=nodes, connections={0: ConnectionGene(0, 0, 7, 0.1)})

    with pytest.raises(ValueError):
        Genome(
            nodes=nodes,
            connections={
                0: ConnectionGene(0, 0, 1, 0.1),
                1: ConnectionGene(1, 0, 1, 0.2),
            },
        )


def test_minimal_genome_layout() -> None:
    registry = InnovationRegistry()
    pairs = initial_connection_pairs(2, 1, mode="full", rng=Random(0))
    genome = Genome.minimal(2, 1, registry=registry, rng=Random(0), connected_pairs=pairs)

    assert genome.node_ids(NodeType.INPUT) == (0, 1)
    assert genome.node_ids(NodeType.OUTPUT) == (2,)
    assert genome.node_ids(NodeType.BIAS) == (3,)
    assert {conn.pair for conn in genome.connections.values()} == {(0, 2), (1, 2), (3, 2)}
    assert registry.next_node_id == 4
    assert all(-2.0 <= conn.weight <= 2.0 for conn in genome.connections.values())

    other = Genome.minimal(2, 1, registry=registry, rng=Random(1), connected_pairs=pairs)
    assert set(other.connections) == set(genome.connections)


def test_initial_connection_modes() -> None:
    full = initial_connection_pairs(2, 2, mode="full", rng=Random(0))
    assert len(full) == 6

    sparse = initial_connection_pairs(2, 2, mode="sparse", rng=Random(0), fraction=0.5)
    assert len(sparse) == 3
    assert set(sparse) <= set(full)

    assert initial_connection_pairs(2, 2, mode="none", rng=Random(0)) == ()

    with pytest.raises(ConfigurationError):
        initial_connection_pairs(2, 2, mode="dense", rng=Random(0))


def test_copy_drops_fitness_and_species() -> None:
    genome = _connected_genome(InnovationRegistry())
    genome.fitness = 3.0
    genome.species_id = 2

    clone = genome.copy()

    assert clone.fitness is None
    assert clone.species_id is None
    assert clone.connections == genome.connections
    clone.connections[0] = clone.connections[0].copy(weight=9.0)
    assert genome.connections[0].weight == pytest.approx(0.75)


def test_mutate_weight_statistics() -> None:
    rng = Random(0)
    nodes = {
        0: NodeGene(id=0, type=NodeType.INPUT, activation="identity"),
        **{
            i: NodeGene(id=i, type=NodeType.HIDDEN, activation="tanh")
            for i in range(1, 101)
        },
    }
    connections = {
        i: ConnectionGene(innovation=i, in_node_id=0, out_node_id=i, weight=0.0)
        for i in range(1, 101)
    }
    genome = Genome(nodes=nodes, connections=connections)

    config = WeightMutationConfig(
        mutate_rate=1.0,
        perturb_power=0.5,
        reset_rate=0.0,
    )
    mutated = genome.mutate_weight(rng, config)

    weights = [conn.weight for conn in genome.connections.values()]
    assert mutated == len(weights)
    assert all(abs(weight) <= 0.5 for weight in weights)
    assert abs(mean(weights)) < 0.1
    assert math.isclose(pstdev(weights), 0.5 / math.sqrt(3), rel_tol=0.25)


def test_mutate_weight_reset() -> None:
    genome = _connected_genome(InnovationRegistry(), weight=0.3)

    def constant_init(random: Random) -> float:
        return 0.75

    config = WeightMutationConfig(
        mutate_rate=1.0,
        perturb_power=0.5,
        reset_rate=1.0,
        weight_init=constant_init,
    )
    genome.mutate_weight(Random(1), config)

    assert genome.connections[0].weight == pytest.approx(0.75)


def test_mutate_weight_clamps_and_skips_disabled() -> None:
    genome = build_minimal_genome()
    genome.add_node(NodeGene(2, NodeType.HIDDEN, "sigmoid"))
    genome.add_connection(ConnectionGene(0, 0, 1, 0.95))
    genome.add_connection(ConnectionGene(1, 0, 2, 0.4, enabled=False))
    config = WeightMutationConfig(
        mutate_rate=1.0,
        perturb_power=5.0,
        reset_rate=0.0,
        weight_max=1.0,
    )

    for seed in range(20):
        genome.mutate_weight(Random(seed), config)
        assert -1.0 <= genome.connections[0].weight <= 1.0

    assert genome.connections[1].weight == pytest.approx(0.4)


def test_mutate_weight_respects_rate() -> None:
    genome = _connected_genome(InnovationRegistry(), weight=0.9)
    config = WeightMutationConfig(
        mutate_rate=0.0,
        perturb_power=0.5,
        reset_rate=0.5,
    )
    mutated = genome.mutate_weight(Random(2), config)

    assert mutated == 0
    assert genome.connections[0].weight == pytest.approx(0.9)


def test_mutation_configs_reject_invalid_values() -> None:
    with pytest.raises(ConfigurationError):
        WeightMutationConfig(mutate_rate=1.5, perturb_power=1.0, reset_rate=0.1)
    with pytest.raises(ConfigurationError):
        WeightMutationConfig(mutate_rate=0.5, perturb_power=0.0, reset_rate=0.1)
    with pytest.raises(ConfigurationError):
        AddConnectionConfig(max_attempts=0)
    with pytest.raises(ConfigurationError):
        AddNodeConfig(activation=" ")
    with pytest.raises(ConfigurationError):
        CrossoverConfig(reenable_rate=-0.1)


def test_mutate_add_connection_adds_new_edge() -> None:
    genome = build_minimal_genome()
    registry = InnovationRegistry()

    def zero_init(random: Random) -> float:
        return 0.0

    config = AddConnectionConfig(allow_recurrent=False, weight_init=zero_init)
    added = genome.mutate_add_connection(Random(3), registry, config)

    assert added is True
    assert genome.contains_connection(0, 1)
    assert genome.connections[0].weight == pytest.approx(0.0)


def test_mutate_add_connection_prevents_cycles() -> None:
    registry = InnovationRegistry()
    nodes = {
        0: NodeGene(id=0, type=NodeType.INPUT, activation="identity"),
        1: NodeGene(id=1, type=NodeType.HIDDEN, activation="tanh"),
        2: NodeGene(id=2, type=NodeType.HIDDEN, activation="relu"),
        3: NodeGene(id=3, type=NodeType.OUTPUT, activation="sigmoid"),
    }
    edges = [
        (0, 1, 0.5),
        (0, 2, -0.3),
        (0, 3, 0.8),
        (1, 2, 0.4),
        (1, 3, 1.2),
        (2, 3, -0.7),
    ]
    connections = {}
    for in_id, out_id, weight in edges:
        innovation = registry.register(in_id, out_id)
        connections[innovation] = ConnectionGene(innovation, in_id, out_id, weight)
    genome = Genome(nodes=nodes, connections=connections)

    feed_forward = AddConnectionConfig(allow_recurrent=False)
    added = genome.mutate_add_connection(Random(4), registry, feed_forward)
    assert added is False
    assert not genome.contains_connection(2, 1)

    recurrent = AddConnectionConfig(allow_recurrent=True)
    assert genome.mutate_add_connection(Random(4), registry, recurrent) is True
    assert len(genome.connections) == 7


def test_mutate_add_connection_skips_duplicate() -> None:
    registry = InnovationRegistry()
    genome = _connected_genome(registry, weight=0.2)
    config = AddConnectionConfig(allow_recurrent=False)

    added = genome.mutate_add_connection(Random(5), registry, config)
    assert added is False

    with pytest.raises(StructuralMutationExhausted):
        genome._select_connection_pair(Random(5), config)


def test_mutate_add_connection_reenables_disabled_pair() -> None:
    registry = InnovationRegistry()
    genome = _connected_genome(registry, weight=0.2)
    genome.connections[0] = genome.connections[0].copy(enabled=False)

    def one_init(random: Random) -> float:
        return 1.0

    config = AddConnectionConfig(allow_recurrent=False, weight_init=one_init)
    assert genome.mutate_add_connection(Random(5), registry, config) is True

    assert list(genome.connections) == [0]
    assert genome.connections[0].enabled is True
    assert genome.connections[0].weight == pytest.approx(1.0)


def test_recurrent_candidates_include_self_loops() -> None:
    genome = build_minimal_genome()
    pairs = set(genome._iter_connection_candidates(allow_recurrent=True))
    assert pairs == {(0, 1), (1, 1)}
    assert set(genome._iter_connection_candidates(allow_recurrent=False)) == {(0, 1)}


def test_mutate_add_node_splits_connection() -> None:
    registry = InnovationRegistry()
    genome = _connected_genome(registry)
    innovation = genome.connection_between(0, 1).innovation

    added = genome.mutate_add_node(Random(6), registry, AddNodeConfig(activation="relu"))
    assert added is True

    disabled = genome.connections[innovation]
    assert disabled.enabled is False

    new_node_id = max(genome.nodes)
    assert new_node_id == 2
    new_node = genome.nodes[new_node_id]
    assert new_node.type is NodeType.HIDDEN
    assert new_node.activation == "relu"

    incoming = genome.connections[registry.register(0, new_node_id)]
    outgoing = genome.connections[registry.register(new_node_id, 1)]

    assert incoming.weight == pytest.approx(1.0)
    assert outgoing.weight == pytest.approx(0.75)


def test_identical_splits_share_ids() -> None:
    registry = InnovationRegistry()
    genome_a = _connected_genome(registry, weight=0.5)
    genome_b = _connected_genome(registry, weight=-0.5)

    genome_a.mutate_add_node(Random(0), registry, AddNodeConfig())
    genome_b.mutate_add_node(Random(1), registry, AddNodeConfig())

    assert set(genome_a.nodes) == set(genome_b.nodes)
    assert set(genome_a.connections) == set(genome_b.connections)


def test_identical_new_connections_share_innovation() -> None:
    registry = InnovationRegistry()
    registry.register(1, 1)
    genome_a = build_minimal_genome()
    genome_b = build_minimal_genome()
    config = AddConnectionConfig(allow_recurrent=False)

    assert genome_a.mutate_add_connection(Random(0), registry, config) is True
    assert genome_b.mutate_add_connection(Random(9), registry, config) is True

    assert set(genome_a.connections) == set(genome_b.connections) == {1}
    assert genome_a.connections[1].pair == genome_b.connections[1].pair == (0, 1)
    assert registry.register(0, 1) == 1


def test_mutate_add_node_skips_already_split_connection() -> None:
    registry = InnovationRegistry()
    genome = _connected_genome(registry)
    genome.mutate_add_node(Random(0), registry, AddNodeConfig())
    original = genome.connection_between(0, 1)
    genome.connections[original.innovation] = original.copy(enabled=True)

    assert genome.mutate_add_node(Random(0), registry, AddNodeConfig()) is True
    assert genome.node_ids(NodeType.HIDDEN) == (2, 3)


def test_mutate_add_node_requires_enabled_connection() -> None:
    registry = InnovationRegistry()
    genome = _connected_genome(registry, weight=0.5)
    genome.connections[0] = genome.connections[0].copy(enabled=False)

    result = genome.mutate_add_node(
        Random(7),
        registry,
        AddNodeConfig(activation="tanh"),
    )
    assert result is False


def test_mutate_toggle_enable() -> None:
    genome = _connected_genome(InnovationRegistry())
    assert genome.mutate_toggle_enable(Random(0)) is True
    assert genome.connections[0].enabled is False
    assert build_minimal_genome().mutate_toggle_enable(Random(0)) is False


def _genome_for_crossover() -> tuple[Genome, Genome]:
    nodes = {
        0: NodeGene(0, NodeType.INPUT, "identity"),
        1: NodeGene(1, NodeType.HIDDEN, "tanh"),
        2: NodeGene(2, NodeType.OUTPUT, "sigmoid"),
    }
    genome_a = Genome(
        nodes=nodes.copy(),
        connections={
            0: ConnectionGene(0, 0, 1, 0.5, True),
            1: ConnectionGene(1, 1, 2, 1.0, True),
        },
    )
    genome_b = Genome(
        nodes=nodes.copy(),
        connections={
            0: ConnectionGene(0, 0, 1, -0.75, False),
            2: ConnectionGene(2, 0, 2, 0.25, True),
        },
    )
    return genome_a, genome_b


def test_crossover_prefers_fitter_parent() -> None:
    genome_a, genome_b = _genome_for_crossover()
    child = genome_a.crossover(
        genome_b,
        rng=Random(8),
        fitness_self=1.0,
        fitness_other=2.0,
        config=CrossoverConfig(reenable_rate=0.0),
    )

    # Disjoint and excess genes come from the fitter parent only.
    assert set(child.connections) == {0, 2}
    assert child.connections[0].weight in (pytest.approx(0.5), pytest.approx(-0.75))
    assert child.connections[0].enabled is False
    assert child.connections[2].weight == pytest.approx(0.25)
    assert set(child.nodes) == {0, 1, 2}


def test_crossover_reenables_with_probability_one() -> None:
    genome_a, genome_b = _genome_for_crossover()
    child = genome_a.crossover(
        genome_b,
        rng=Random(8),
        fitness_self=2.0,
        fitness_other=1.0,
        config=CrossoverConfig(reenable_rate=1.0),
    )

    assert set(child.connections) == {0, 1}
    assert child.connections[0].enabled is True
    assert child.connections[1].weight == pytest.approx(1.0)


def test_crossover_tie_breaks_with_rng() -> None:
    genome_a, genome_b = _genome_for_crossover()
    outcomes = set()
    for seed in range(20):
        child = genome_a.crossover(
            genome_b,
            rng=Random(seed),
            fitness_self=1.0,
            fitness_other=1.0,
        )
        outcomes.add(frozenset(child.connections))

    assert outcomes == {frozenset({0, 1}), frozenset({0, 2})}


def test_crossover_of_matching_parents_stays_within_their_genes() -> None:
    registry = InnovationRegistry(next_node_id=6)
    parent = Genome.minimal(
        3,
        2,
        registry=registry,
        rng=Random(2),
        connected_pairs=initial_connection_pairs(3, 2, mode="full", rng=Random(2)),
    )
    parent.mutate_add_node(Random(5), registry, AddNodeConfig())
    other = parent.copy()
    other.mutate_weight(
        Random(6),
        WeightMutationConfig(mutate_rate=1.0, perturb_power=0.5, reset_rate=0.0),
    )

    for seed in range(10):
        child = parent.crossover(
            other,
            rng=Random(seed),
            fitness_self=1.0,
            fitness_other=1.0,
        )
        assert set(child.connections) <= set(parent.connections) | set(other.connections)
        assert len(child.connections) <= len(parent.connections)
        assert len(child.connections) <= len(other.connections)
