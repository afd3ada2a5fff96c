"""Network construction and stateful evaluation from NEAT genomes."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import InputArityError
from .genes import ConnectionGene, NodeType

if TYPE_CHECKING:
    from .genome import Genome

ActivationFunction = Callable[[float], float]
ActivationMap = Mapping[str, ActivationFunction]


def _sigmoid(x: float) -> float:
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


DEFAULT_ACTIVATIONS: dict[str, ActivationFunction] = {
    "identity": lambda x: x,
    "sigmoid": _sigmoid,
    "tanh": math.tanh,
    "relu": lambda x: x if x > 0.0 else 0.0,
}


def compute_activation_order(
    node_ids: Iterable[int],
    connections: Iterable[ConnectionGene],
    sources: Collection[int],
) -> tuple[int, ...]:
    """Order computed nodes so feed-forward paths settle within one pass.

    Source nodes (inputs and bias) are excluded. Nodes are released in
    dependency order; when a cycle blocks progress, the waiting node with the
    fewest unresolved inputs (lowest id on ties) is released next and reads
    the previous activation of its unresolved sources.
    """
    pending = {node_id for node_id in node_ids if node_id not in sources}
    indegree = dict.fromkeys(pending, 0)
    outgoing: dict[int, list[int]] = defaultdict(list)

    for connection in connections:
        if not connection.enabled:
            continue
        src, dst = connection.pair
        if src in sources or dst not in pending or src not in pending:
            continue
        indegree[dst] += 1
        outgoing[src].append(dst)

    order: list[int] = []
    while pending:
        ready = sorted(node_id for node_id in pending if indegree[node_id] == 0)
        if not ready:
            ready = [min(pending, key=lambda node_id: (indegree[node_id], node_id))]
        for node_id in ready:
            pending.discard(node_id)
            order.append(node_id)
            for target in outgoing.get(node_id, ()):
                if target in pending:
                    indegree[target] -= 1
    return tuple(order)


@dataclass(slots=True)
class Network:
    """Executable network compiled from a genome.

    Each node keeps its activation between calls to :meth:`prop`, which is
    what lets recurrent connections carry one step of memory. The network is
    independent of the genome it was built from and is not thread-safe.
    """

    input_ids: tuple[int, ...]
    bias_ids: tuple[int, ...]
    output_ids: tuple[int, ...]
    order: tuple[int, ...]
    incoming: Mapping[int, tuple[tuple[int, float], ...]]
    functions: Mapping[int, ActivationFunction]
    responses: Mapping[int, float]
    _state: dict[int, float] = field(init=False, default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.reset_state()

    @classmethod
    def from_genome(
        cls,
        genome: Genome,
        *,
        activation_functions: ActivationMap | None = None,
    ) -> Network:
        """Compile a genome, keeping only enabled connections and live nodes."""
        activation_lookup = (
            dict(DEFAULT_ACTIVATIONS)
            if activation_functions is None
            else {name.lower(): fn for name, fn in activation_functions.items()}
        )

        nodes = genome.nodes
        connections = [conn for conn in genome.connections.values() if conn.enabled]

        input_ids = genome.node_ids(NodeType.INPUT)
        bias_ids = genome.node_ids(NodeType.BIAS)
        output_ids = genome.node_ids(NodeType.OUTPUT)

        live = set(input_ids) | set(bias_ids) | set(output_ids)
        for connection in connections:
            live.update(connection.pair)

        incoming: dict[int, list[tuple[int, float]]] = defaultdict(list)
        for connection in connections:
            incoming[connection.out_node_id].append(
                (connection.in_node_id, connection.weight)
            )
        for edges in incoming.values():
            edges.sort(key=lambda item: item[0])

        sources = {node_id for node_id in live if nodes[node_id].type.is_source}
        order = compute_activation_order(live, connections, sources)

        functions: dict[int, ActivationFunction] = {}
        responses: dict[int, float] = {}
        for node_id in order:
            node = nodes[node_id]
            function = activation_lookup.get(node.activation)
            if function is None:
                msg = f"Unknown activation function: {node.activation!r}"
                raise ValueError(msg)
            functions[node_id] = function
            responses[node_id] = node.response

        return cls(
            input_ids=input_ids,
            bias_ids=bias_ids,
            output_ids=output_ids,
            order=order,
            incoming={node_id: tuple(edges) for node_id, edges in incoming.items()},
            functions=functions,
            responses=responses,
        )

    @property
    def state(self) -> dict[int, float]:
        """Copy of the activation carried over from the last call."""
        return dict(self._state)

    def reset_state(self) -> None:
        """Forget recurrent memory by zeroing every computed activation."""
        self._state = dict.fromkeys(self.order, 0.0)

    def prop(self, inputs: Sequence[float]) -> list[float]:
        """Advance the network one step and return output activations."""
        if len(inputs) != len(self.input_ids):
            raise InputArityError(len(self.input_ids), len(inputs))

        previous = self._state
        current: dict[int, float] = {}
        for bias_id in self.bias_ids:
            current[bias_id] = 1.0
        for node_id, value in zip(self.input_ids, inputs, strict=True):
            current[node_id] = float(value)

        for node_id in self.order:
            total = 0.0
            for src_id, weight in self.incoming.get(node_id, ()):
                value = current.get(src_id)
                if value is None:
                    value = previous.get(src_id, 0.0)
                total += value * weight
            current[node_id] = self.functions[node_id](self.responses[node_id] * total)

        self._state = current
        return [current[node_id] for node_id in self.output_ids]


def compile_genome(
    genome: Genome,
    *,
    activation_functions: ActivationMap | None = None,
) -> Network:
    """Compile a genome into an executable :class:`Network`."""
    return Network.from_genome(genome, activation_functions=activation_functions)


__all__ = [
    "ActivationFunction",
    "ActivationMap",
    "DEFAULT_ACTIVATIONS",
    "Network",
    "compile_genome",
    "compute_activation_order",
]
