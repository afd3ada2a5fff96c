"""Node and connection genes."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


def _finite(label: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as error:
        msg = f"{label} must be convertible to float, got {value!r}"
        raise ValueError(msg) from error
    if not math.isfinite(number):
        msg = f"{label} must be a finite number."
        raise ValueError(msg)
    return number


def _require_ids(**ids: int) -> None:
    for label, value in ids.items():
        if value < 0:
            msg = f"{label} must be non-negative."
            raise ValueError(msg)


class NodeType(str, Enum):
    """Role of a node within a genome."""

    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"
    BIAS = "bias"

    @classmethod
    def coerce(cls, value: NodeType | str) -> NodeType:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            msg = f"Node type must be a string, got {type(value).__name__}"
            raise TypeError(msg)
        lookup = {member.value: member for member in cls}
        member = lookup.get(value.strip().lower())
        if member is None:
            msg = f"Invalid node type {value!r}. Expected one of: {', '.join(lookup)}"
            raise ValueError(msg)
        return member

    @property
    def is_source(self) -> bool:
        """Whether values for this node are supplied rather than computed."""
        return self in (NodeType.INPUT, NodeType.BIAS)


@dataclass(frozen=True, slots=True)
class NodeGene:
    """A node within a NEAT genome.

    ``response`` scales the summed input before the activation function is
    applied. Activation names are stored stripped and lower-cased.
    """

    id: int
    type: NodeType
    activation: str
    response: float = 1.0

    def __post_init__(self) -> None:
        _require_ids(id=self.id)
        if not isinstance(self.activation, str) or not self.activation.strip():
            msg = "Activation must be a non-empty string."
            raise ValueError(msg)
        object.__setattr__(self, "type", NodeType.coerce(self.type))
        object.__setattr__(self, "activation", self.activation.strip().lower())
        object.__setattr__(self, "response", _finite("response", self.response))

    def copy(self, **overrides: Any) -> NodeGene:
        """Return a copy with ``activation`` or ``response`` replaced."""
        return replace(self, **overrides)


@dataclass(frozen=True, slots=True)
class ConnectionGene:
    """A weighted edge between two nodes, identified by its innovation id."""

    innovation: int
    in_node_id: int
    out_node_id: int
    weight: float
    enabled: bool = True

    def __post_init__(self) -> None:
        _require_ids(
            innovation=self.innovation,
            in_node_id=self.in_node_id,
            out_node_id=self.out_node_id,
        )
        object.__setattr__(self, "weight", _finite("weight", self.weight))

    @property
    def pair(self) -> tuple[int, int]:
        return self.in_node_id, self.out_node_id

    def copy(self, **overrides: Any) -> ConnectionGene:
        """Return a copy with ``weight`` or ``enabled`` replaced."""
        return replace(self, **overrides)

    def toggled(self) -> ConnectionGene:
        return replace(self, enabled=not self.enabled)


__all__ = ["NodeType", "NodeGene", "ConnectionGene"]
