"""
Diagram Model
=============
Blocks and connections as supplied by the diagram editor.

The editor owns these objects; the engine only reads them. Plain mappings
coming straight from the editor's JSON (camelCase keys) are accepted
everywhere a model object is.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

from .reliability_math import _safe_int, validate_ratio


def hashable_id(value):
    """Ids are opaque, but must be usable as dict keys; others become their repr."""
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def parse_reliability(value) -> float:
    """Clamped probability; a comma is accepted as decimal separator, junk is 0."""
    if isinstance(value, str):
        value = value.strip().replace(",", ".", 1)
    return validate_ratio(value, 0.0)


class Side:
    """Terminal side of a block: input on the left, output on the right."""

    LEFT = "left"
    RIGHT = "right"

    ALL = (LEFT, RIGHT)

    @classmethod
    def normalize(cls, value) -> Optional[str]:
        if not isinstance(value, str):
            return None
        value = value.strip().lower()
        return value if value in cls.ALL else None


@dataclass(frozen=True)
class Block:
    """An independently failing unit of the diagram."""
    id: str
    number: int
    reliability: float = 0.0
    is_reserve: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Block":
        reserve = data.get("isReserve", data.get("is_reserve", False))
        return cls(
            id=hashable_id(data.get("id")),
            number=_safe_int(data.get("number"), 0),
            reliability=parse_reliability(data.get("reliability")),
            is_reserve=bool(reserve),
        )


@dataclass(frozen=True)
class Connection:
    """A wire between two block terminals."""
    id: str
    from_block_id: str
    to_block_id: str
    from_side: Optional[str]
    to_side: Optional[str]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Connection":
        def pick(camel, snake):
            return data.get(camel, data.get(snake))

        return cls(
            id=hashable_id(data.get("id")),
            from_block_id=hashable_id(pick("fromBlockId", "from_block_id")),
            to_block_id=hashable_id(pick("toBlockId", "to_block_id")),
            from_side=Side.normalize(pick("fromSide", "from_side")),
            to_side=Side.normalize(pick("toSide", "to_side")),
        )

    @property
    def is_self_loop(self) -> bool:
        return self.from_block_id == self.to_block_id

    @property
    def is_signal(self) -> bool:
        """Output terminal wired to an input terminal."""
        return (
            (self.from_side == Side.RIGHT and self.to_side == Side.LEFT)
            or (self.from_side == Side.LEFT and self.to_side == Side.RIGHT)
        )

    @property
    def is_bus_tie(self) -> bool:
        """Two terminals of the same kind declared equipotential."""
        return self.from_side is not None and self.from_side == self.to_side

    def signal_direction(self):
        """(source_id, destination_id) of a signal edge, else None."""
        if self.from_side == Side.RIGHT and self.to_side == Side.LEFT:
            return self.from_block_id, self.to_block_id
        if self.from_side == Side.LEFT and self.to_side == Side.RIGHT:
            return self.to_block_id, self.from_block_id
        return None

    def other_end(self, block_id: str) -> Optional[str]:
        if self.from_block_id == block_id:
            return self.to_block_id
        if self.to_block_id == block_id:
            return self.from_block_id
        return None

    def touches(self, block_id: str, side: str) -> bool:
        return (
            (self.from_block_id == block_id and self.from_side == side)
            or (self.to_block_id == block_id and self.to_side == side)
        )


def _coerce_block(item) -> Block:
    if isinstance(item, Block):
        return Block(
            id=hashable_id(item.id),
            number=_safe_int(item.number, 0),
            reliability=parse_reliability(item.reliability),
            is_reserve=bool(item.is_reserve),
        )
    if isinstance(item, Mapping):
        return Block.from_dict(item)
    return Block(
        id=hashable_id(getattr(item, "id", None)),
        number=_safe_int(getattr(item, "number", 0), 0),
        reliability=parse_reliability(getattr(item, "reliability", 0.0)),
        is_reserve=bool(getattr(item, "is_reserve", getattr(item, "isReserve", False))),
    )


def _coerce_connection(item) -> Connection:
    if isinstance(item, Connection):
        return Connection(
            id=hashable_id(item.id),
            from_block_id=hashable_id(item.from_block_id),
            to_block_id=hashable_id(item.to_block_id),
            from_side=Side.normalize(item.from_side),
            to_side=Side.normalize(item.to_side),
        )
    if isinstance(item, Mapping):
        return Connection.from_dict(item)
    return Connection(
        id=hashable_id(getattr(item, "id", None)),
        from_block_id=hashable_id(getattr(item, "from_block_id", getattr(item, "fromBlockId", None))),
        to_block_id=hashable_id(getattr(item, "to_block_id", getattr(item, "toBlockId", None))),
        from_side=Side.normalize(getattr(item, "from_side", getattr(item, "fromSide", None))),
        to_side=Side.normalize(getattr(item, "to_side", getattr(item, "toSide", None))),
    )


def _items(collection) -> list:
    if collection is None or isinstance(collection, (str, bytes, Mapping)):
        return []
    try:
        return list(collection)
    except TypeError:
        return []


def coerce_blocks(blocks: Optional[Iterable]) -> List[Block]:
    """Blocks as a list of `Block`, whatever shape the caller handed over."""
    return [_coerce_block(b) for b in _items(blocks)]


def coerce_connections(connections: Optional[Iterable]) -> List[Connection]:
    """Connections as a list of `Connection`; malformed wires are kept but inert."""
    return [_coerce_connection(c) for c in _items(connections)]
