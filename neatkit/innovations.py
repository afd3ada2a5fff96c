"""Innovation tracking for structural mutations within one evolutionary run."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum


class EventKind(str, Enum):
    """Kind of structural mutation that creates new genes."""

    NEW_CONNECTION = "new_connection"
    NEW_NODE_SPLIT = "new_node_split"


@dataclass(frozen=True, slots=True)
class StructuralEvent:
    """A structural mutation identified by its endpoints and kind."""

    kind: EventKind
    source: int
    target: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EventKind(self.kind))
        if self.source < 0 or self.target < 0:
            msg = "Event node ids must be non-negative."
            raise ValueError(msg)

    @classmethod
    def connection(cls, source: int, target: int) -> StructuralEvent:
        """Event for a new connection between two existing nodes."""
        return cls(EventKind.NEW_CONNECTION, source, target)

    @classmethod
    def node_split(cls, source: int, target: int) -> StructuralEvent:
        """Event for a hidden node inserted into the connection source -> target."""
        return cls(EventKind.NEW_NODE_SPLIT, source, target)


@dataclass(frozen=True, slots=True)
class InnovationRecord:
    """Identifiers assigned to a structural event.

    Attributes:
        innovation: Innovation id of the new connection. For a node split this
            is the connection from the split source to the new node.
        node_id: Hidden node minted by a node split, otherwise ``None``.
        out_innovation: For a node split, the innovation id of the connection
            from the new node to the split target.
    """

    innovation: int
    node_id: int | None = None
    out_innovation: int | None = None


@dataclass(slots=True)
class InnovationRegistry:
    """Assigns stable innovation and node ids for structural mutations.

    The same event seen twice in a run returns the record minted the first
    time. The registry only grows; create a new one for an independent run.
    All lookups and writes hold a lock so genomes can mutate concurrently.
    """

    next_innovation: int = 0
    next_node_id: int = 0
    _records: dict[StructuralEvent, InnovationRecord] = field(
        default_factory=dict,
        init=False,
        repr=False,
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock,
        init=False,
        repr=False,
        compare=False,
    )

    def __post_init__(self) -> None:
        if self.next_innovation < 0:
            msg = "next_innovation must be non-negative."
            raise ValueError(msg)
        if self.next_node_id < 0:
            msg = "next_node_id must be non-negative."
            raise ValueError(msg)

    def __len__(self) -> int:
        """Return the number of recorded structural events."""
        with self._lock:
            return len(self._records)

    def __contains__(self, event: object) -> bool:
        """Indicate whether an event already has a record."""
        with self._lock:
            return event in self._records

    def record_or_get(self, event: StructuralEvent) -> InnovationRecord:
        """Return the record for an event, minting new ids on first sight."""
        with self._lock:
            return self._record(event)

    def register(self, in_node_id: int, out_node_id: int) -> int:
        """Return the innovation id for a connection between two nodes."""
        return self.record_or_get(
            StructuralEvent.connection(in_node_id, out_node_id)
        ).innovation

    def peek(self, event: StructuralEvent) -> InnovationRecord | None:
        """Return the record for an event without creating one."""
        with self._lock:
            return self._records.get(event)

    def reserve_node_ids(self, floor: int) -> None:
        """Ensure future node ids are at least ``floor``."""
        with self._lock:
            if floor > self.next_node_id:
                self.next_node_id = floor

    def items(self) -> Iterator[tuple[StructuralEvent, InnovationRecord]]:
        """Iterate over a snapshot of recorded events."""
        with self._lock:
            return iter(list(self._records.items()))

    def _record(self, event: StructuralEvent) -> InnovationRecord:
        existing = self._records.get(event)
        if existing is not None:
            return existing

        if event.kind is EventKind.NEW_CONNECTION:
            record = InnovationRecord(innovation=self._mint_innovation())
        else:
            node_id = self.next_node_id
            self.next_node_id += 1
            incoming = self._record(StructuralEvent.connection(event.source, node_id))
            outgoing = self._record(StructuralEvent.connection(node_id, event.target))
            record = InnovationRecord(
                innovation=incoming.innovation,
                node_id=node_id,
                out_innovation=outgoing.innovation,
            )
        self._records[event] = record
        return record

    def _mint_innovation(self) -> int:
        innovation = self.next_innovation
        self.next_innovation += 1
        return innovation


__all__ = [
    "EventKind",
    "InnovationRecord",
    "InnovationRegistry",
    "StructuralEvent",
]
