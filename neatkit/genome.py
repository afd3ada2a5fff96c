"""Genome representation and mutation/crossover operators."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from random import Random

from .errors import ConfigurationError, StructuralMutationExhausted
from .genes import ConnectionGene, NodeGene, NodeType
from .innovations import InnovationRegistry, StructuralEvent

WeightInitializer = Callable[[Random], float]

INITIAL_CONNECTIONS = ("none", "sparse", "full")


def _default_weight_init(rng: Random) -> float:
    return rng.uniform(-2.0, 2.0)


def uniform_weight_init(limit: float) -> WeightInitializer:
    """Return an initializer drawing weights uniformly from [-limit, limit]."""
    if limit <= 0.0:
        msg = "Weight initialisation limit must be positive."
        raise ConfigurationError(msg)

    def _init(rng: Random) -> float:
        return rng.uniform(-limit, limit)

    return _init


@dataclass(frozen=True, slots=True)
class WeightMutationConfig:
    """Configuration for weight mutation behaviour."""

    mutate_rate: float
    perturb_power: float
    reset_rate: float
    weight_max: float = 10.0
    weight_init: WeightInitializer = _default_weight_init

    def __post_init__(self) -> None:
        for label, value in (
            ("mutate_rate", self.mutate_rate),
            ("reset_rate", self.reset_rate),
        ):
            if not 0.0 <= value <= 1.0:
                msg = f"{label} must be in [0, 1]."
                raise ConfigurationError(msg)
        if self.perturb_power <= 0.0:
            msg = "perturb_power must be positive."
            raise ConfigurationError(msg)
        if self.weight_max <= 0.0:
            msg = "weight_max must be positive."
            raise ConfigurationError(msg)
        if self.weight_init is None:
            msg = "weight_init callable must be provided."
            raise ConfigurationError(msg)


@dataclass(frozen=True, slots=True)
class AddConnectionConfig:
    """Configuration for add-connection mutation."""

    allow_recurrent: bool = True
    max_attempts: int = 32
    weight_init: WeightInitializer = _default_weight_init

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            msg = "max_attempts must be positive."
            raise ConfigurationError(msg)


@dataclass(frozen=True, slots=True)
class AddNodeConfig:
    """Configuration for add-node mutation."""

    activation: str = "sigmoid"

    def __post_init__(self) -> None:
        if not self.activation or not self.activation.strip():
            msg = "activation must be a non-empty string."
            raise ConfigurationError(msg)


@dataclass(frozen=True, slots=True)
class CrossoverConfig:
    """Configuration controlling crossover behaviour.

    ``reenable_rate`` is the chance that a matching gene disabled in either
    parent is enabled in the child.
    """

    reenable_rate: float = 0.25

    def __post_init__(self) -> None:
        if not 0.0 <= self.reenable_rate <= 1.0:
            msg = "reenable_rate must be in [0, 1]."
            raise ConfigurationError(msg)


@dataclass(slots=True)
class Genome:
    """NEAT genome containing nodes and connection genes keyed by innovation."""

    nodes: dict[int, NodeGene]
    connections: dict[int, ConnectionGene]
    fitness: float | None = None
    species_id: int | None = None
    _pair_index: dict[tuple[int, int], int] = field(
        init=False,
        default_factory=dict,
        repr=False,
    )

    def __post_init__(self) -> None:
        if not self.nodes:
            msg = "Genome must contain at least one node."
            raise ValueError(msg)
        for node_id, node in self.nodes.items():
            if node.id != node_id:
                msg = f"Node id mismatch: key {node_id} != node.id {node.id}"
                raise ValueError(msg)
        for innovation, connection in self.connections.items():
            if connection.innovation != innovation:
                msg = (
                    f"Connection innovation mismatch: key {innovation} "
                    f"!= connection.innovation {connection.innovation}"
                )
                raise ValueError(msg)
            if (
                connection.in_node_id not in self.nodes
                or connection.out_node_id not in self.nodes
            ):
                msg = "Connection references unknown node."
                raise ValueError(msg)
            pair = connection.pair
            if pair in self._pair_index:
                msg = f"Duplicate connection between nodes {pair}."
                raise ValueError(msg)
            self._pair_index[pair] = innovation

    @classmethod
    def minimal(
        cls,
        num_inputs: int,
        num_outputs: int,
        *,
        registry: InnovationRegistry,
        rng: Random,
        connected_pairs: Sequence[tuple[int, int]] = (),
        weight_init: WeightInitializer = _default_weight_init,
        output_activation: str = "sigmoid",
    ) -> Genome:
        """Build a genome holding only input, output and bias nodes.

        Node ids follow the population-wide layout: inputs first, then
        outputs, then a single bias node. ``connected_pairs`` lists the
        initial (source, target) connections, each with a fresh weight.
        """
        if num_inputs <= 0 or num_outputs <= 0:
            msg = "Genomes need at least one input and one output."
            raise ConfigurationError(msg)
        nodes: dict[int, NodeGene] = {}
        for node_id in input_ids(num_inputs):
            nodes[node_id] = NodeGene(node_id, NodeType.INPUT, "identity")
        for node_id in output_ids(num_inputs, num_outputs):
            nodes[node_id] = NodeGene(node_id, NodeType.OUTPUT, output_activation)
        bias = bias_id(num_inputs, num_outputs)
        nodes[bias] = NodeGene(bias, NodeType.BIAS, "identity")
        registry.reserve_node_ids(bias + 1)

        connections: dict[int, ConnectionGene] = {}
        for in_id, out_id in connected_pairs:
            innovation = registry.register(in_id, out_id)
            connections[innovation] = ConnectionGene(
                innovation=innovation,
                in_node_id=in_id,
                out_node_id=out_id,
                weight=weight_init(rng),
            )
        return cls(nodes=nodes, connections=connections)

    def copy(self) -> Genome:
        """Return a value copy without fitness or species assignment."""
        return Genome(nodes=dict(self.nodes), connections=dict(self.connections))

    @property
    def max_node_id(self) -> int:
        """Largest node id present in the genome."""
        return max(self.nodes)

    def node_ids(self, *types: NodeType) -> tuple[int, ...]:
        """Sorted ids of nodes whose type is among ``types``."""
        return tuple(
            sorted(
                node_id for node_id, node in self.nodes.items() if node.type in types
            )
        )

    def contains_connection(self, in_node: int, out_node: int) -> bool:
        """Return whether a connection between the nodes exists."""
        return (in_node, out_node) in self._pair_index

    def connection_between(self, in_node: int, out_node: int) -> ConnectionGene | None:
        """Return the connection between two nodes, enabled or not."""
        innovation = self._pair_index.get((in_node, out_node))
        if innovation is None:
            return None
        return self.connections[innovation]

    def add_connection(self, connection: ConnectionGene) -> None:
        """Add a new connection gene to the genome."""
        pair = connection.pair
        if pair in self._pair_index:
            msg = f"Connection between {pair} already exists."
            raise ValueError(msg)
        if connection.innovation in self.connections:
            msg = f"Connection innovation {connection.innovation} already present."
            raise ValueError(msg)
        if (
            connection.in_node_id not in self.nodes
            or connection.out_node_id not in self.nodes
        ):
            msg = "Connection references unknown node."
            raise ValueError(msg)
        self.connections[connection.innovation] = connection
        self._pair_index[pair] = connection.innovation

    def add_node(self, node: NodeGene) -> None:
        """Register a new node gene in the genome."""
        if node.id in self.nodes:
            msg = f"Node {node.id} already exists."
            raise ValueError(msg)
        self.nodes[node.id] = node

    def mutate_weight(self, rng: Random, config: WeightMutationConfig) -> int:
        """Perturb or reset the weights of enabled connections in-place.

        Returns:
            The number of connections that had their weight modified.
        """
        mutated = 0
        for innovation, connection in list(self.connections.items()):
            if not connection.enabled:
                continue
            if rng.random() >= config.mutate_rate:
                continue
            mutated += 1
            if rng.random() < config.reset_rate:
                new_weight = config.weight_init(rng)
            else:
                delta = rng.uniform(-config.perturb_power, config.perturb_power)
                new_weight = connection.weight + delta
            new_weight = max(-config.weight_max, min(config.weight_max, new_weight))
            self.connections[innovation] = connection.copy(weight=new_weight)
        return mutated

    def mutate_add_connection(
        self,
        rng: Random,
        registry: InnovationRegistry,
        config: AddConnectionConfig,
    ) -> bool:
        """Add a connection between two unconnected nodes if one can be found.

        A pair whose connection exists but is disabled is re-enabled with a
        fresh weight instead.
        """
        try:
            in_id, out_id = self._select_connection_pair(rng, config)
        except StructuralMutationExhausted:
            return False

        weight = config.weight_init(rng)
        existing = self.connection_between(in_id, out_id)
        if existing is not None:
            self.connections[existing.innovation] = existing.copy(
                weight=weight,
                enabled=True,
            )
            return True

        innovation = registry.register(in_id, out_id)
        self.add_connection(
            ConnectionGene(
                innovation=innovation,
                in_node_id=in_id,
                out_node_id=out_id,
                weight=weight,
                enabled=True,
            )
        )
        return True

    def mutate_add_node(
        self,
        rng: Random,
        registry: InnovationRegistry,
        config: AddNodeConfig,
    ) -> bool:
        """Split an enabled connection by inserting a hidden node."""
        registry.reserve_node_ids(self.max_node_id + 1)
        candidates = []
        for connection in self.connections.values():
            if not connection.enabled:
                continue
            previous = registry.peek(StructuralEvent.node_split(*connection.pair))
            if previous is not None and previous.node_id in self.nodes:
                continue
            candidates.append(connection)
        if not candidates:
            return False

        connection = rng.choice(candidates)
        record = registry.record_or_get(StructuralEvent.node_split(*connection.pair))
        if record.node_id is None or record.out_innovation is None:
            msg = f"Node split record for {connection.pair} is incomplete."
            raise RuntimeError(msg)

        self.connections[connection.innovation] = connection.copy(enabled=False)
        self.add_node(NodeGene(record.node_id, NodeType.HIDDEN, config.activation))
        self.add_connection(
            ConnectionGene(
                innovation=record.innovation,
                in_node_id=connection.in_node_id,
                out_node_id=record.node_id,
                weight=1.0,
            )
        )
        self.add_connection(
            ConnectionGene(
                innovation=record.out_innovation,
                in_node_id=record.node_id,
                out_node_id=connection.out_node_id,
                weight=connection.weight,
            )
        )
        return True

    def mutate_toggle_enable(self, rng: Random) -> bool:
        """Flip the enabled flag of one randomly chosen connection."""
        if not self.connections:
            return False
        innovation = rng.choice(sorted(self.connections))
        self.connections[innovation] = self.connections[innovation].toggled()
        return True

    def crossover(
        self,
        other: Genome,
        *,
        rng: Random,
        fitness_self: float,
        fitness_other: float,
        config: CrossoverConfig | None = None,
    ) -> Genome:
        """Create a child genome via crossover.

        Args:
            other: The second parent genome.
            rng: Random generator controlling stochastic choices.
            fitness_self: Fitness score of this genome.
            fitness_other: Fitness score of the other genome.
            config: Behavioural configuration (optional).
        """
        if config is None:
            config = CrossoverConfig()

        if fitness_self > fitness_other:
            leader, follower = self, other
        elif fitness_self < fitness_other:
            leader, follower = other, self
        else:
            if rng.random() < 0.5:
                leader, follower = self, other
            else:
                leader, follower = other, self

        child_connections: dict[int, ConnectionGene] = {}
        for innovation in sorted(leader.connections):
            lead_conn = leader.connections[innovation]
            follower_conn = follower.connections.get(innovation)
            if follower_conn is None:
                child_connections[innovation] = lead_conn
                continue

            picked = lead_conn if rng.random() < 0.5 else follower_conn
            if not (lead_conn.enabled and follower_conn.enabled):
                picked = picked.copy(enabled=rng.random() < config.reenable_rate)
            child_connections[innovation] = picked

        child_nodes: dict[int, NodeGene] = {}
        for parent in (leader, follower):
            for node_id, node in parent.nodes.items():
                if node.type is not NodeType.HIDDEN:
                    child_nodes.setdefault(node_id, node)
        for connection in child_connections.values():
            for node_id in connection.pair:
                if node_id not in child_nodes:
                    source = leader if node_id in leader.nodes else follower
                    child_nodes[node_id] = source.nodes[node_id]

        return Genome(nodes=child_nodes, connections=child_connections)

    def _select_connection_pair(
        self,
        rng: Random,
        config: AddConnectionConfig,
    ) -> tuple[int, int]:
        candidates = list(self._iter_connection_candidates(config.allow_recurrent))
        attempts = min(config.max_attempts, len(candidates))
        for in_id, out_id in rng.sample(candidates, k=attempts):
            existing = self.connection_between(in_id, out_id)
            if existing is not None and existing.enabled:
                continue
            if not config.allow_recurrent and self._introduces_cycle(in_id, out_id):
                continue
            return in_id, out_id
        msg = f"No valid connection pair found after {attempts} attempts."
        raise StructuralMutationExhausted(msg)

    def _iter_connection_candidates(
        self,
        allow_recurrent: bool,
    ) -> Iterator[tuple[int, int]]:
        """Yield potential connection pairs respecting node type constraints."""
        source_types = [NodeType.INPUT, NodeType.HIDDEN, NodeType.BIAS]
        if allow_recurrent:
            source_types.append(NodeType.OUTPUT)
        valid_inputs = self.node_ids(*source_types)
        valid_outputs = self.node_ids(NodeType.HIDDEN, NodeType.OUTPUT)
        for in_id in valid_inputs:
            for out_id in valid_outputs:
                if in_id == out_id and not allow_recurrent:
                    continue
                yield (in_id, out_id)

    def _introduces_cycle(self, in_id: int, out_id: int) -> bool:
        """Detect whether adding an edge would create a cycle."""
        stack = [out_id]
        visited: set[int] = set()
        while stack:
            current = stack.pop()
            if current == in_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            for connection in self.connections.values():
                if not connection.enabled:
                    continue
                if connection.in_node_id == current:
                    stack.append(connection.out_node_id)
        return False


def input_ids(num_inputs: int) -> range:
    """Ids of the input nodes shared by every genome."""
    return range(num_inputs)


def output_ids(num_inputs: int, num_outputs: int) -> range:
    """Ids of the output nodes shared by every genome."""
    return range(num_inputs, num_inputs + num_outputs)


def bias_id(num_inputs: int, num_outputs: int) -> int:
    """Id of the bias node shared by every genome."""
    return num_inputs + num_outputs


def initial_connection_pairs(
    num_inputs: int,
    num_outputs: int,
    *,
    mode: str,
    rng: Random,
    fraction: float = 0.5,
) -> tuple[tuple[int, int], ...]:
    """Choose the initial connectivity shared by every generation-0 genome.

    ``"full"`` connects every input and the bias to every output, ``"sparse"``
    keeps a random ``fraction`` of those pairs (at least one) and ``"none"``
    starts without connections.
    """
    if mode not in INITIAL_CONNECTIONS:
        msg = f"Unknown initial connection mode {mode!r}."
        raise ConfigurationError(msg)
    sources = [*input_ids(num_inputs), bias_id(num_inputs, num_outputs)]
    pairs = [
        (in_id, out_id)
        for in_id in sources
        for out_id in output_ids(num_inputs, num_outputs)
    ]
    if mode == "none":
        return ()
    if mode == "full":
        return tuple(pairs)
    if not 0.0 < fraction <= 1.0:
        msg = "initial connection fraction must be in (0, 1]."
        raise ConfigurationError(msg)
    count = max(1, round(len(pairs) * fraction))
    return tuple(sorted(rng.sample(pairs, k=count)))


__all__ = [
    "AddConnectionConfig",
    "AddNodeConfig",
    "CrossoverConfig",
    "Genome",
    "INITIAL_CONNECTIONS",
    "WeightInitializer",
    "WeightMutationConfig",
    "bias_id",
    "initial_connection_pairs",
    "input_ids",
    "output_ids",
    "uniform_weight_init",
]
