"""Change notifications delivered by a change feed.

Each event kind is its own frozen :class:`msgspec.Struct` tagged by ``type``,
so a wire notification such as ``{"type": "remove", "old_val": {...}}``
decodes straight into the matching variant. Consumers dispatch with
``match`` over :data:`ChangeEvent` and end with :func:`typing.assert_never`.
"""

from __future__ import annotations

import enum
import typing as typ

import msgspec

Record: typ.TypeAlias = dict[str, typ.Any]

RECORD_ID_FIELD = "id"
RecordId: typ.TypeAlias = str | int | list[typ.Any]


class ChangeKind(enum.StrEnum):
    """Wire tags for the change event variants."""

    INITIAL = "initial"
    ADD = "add"
    CHANGE = "change"
    REMOVE = "remove"
    STATE = "state"
    ERROR = "error"


class FeedState(enum.StrEnum):
    """Feed lifecycle states reported through ``state`` events."""

    INITIALIZING = "initializing"
    READY = "ready"


class _Event(msgspec.Struct, frozen=True, kw_only=True, tag_field="type"):
    """Common base for change event variants."""


class Initial(_Event, tag=ChangeKind.INITIAL.value):
    """A row that existed when the subscription started."""

    new_value: Record = msgspec.field(name="new_val")


class Added(_Event, tag=ChangeKind.ADD.value):
    """A row inserted after the feed became live."""

    new_value: Record = msgspec.field(name="new_val")


class Changed(_Event, tag=ChangeKind.CHANGE.value):
    """A row replaced or updated after the feed became live."""

    old_value: Record = msgspec.field(name="old_val")
    new_value: Record = msgspec.field(name="new_val")


class Removed(_Event, tag=ChangeKind.REMOVE.value):
    """A row deleted after the feed became live."""

    old_value: Record = msgspec.field(name="old_val")


class StateChanged(_Event, tag=ChangeKind.STATE.value):
    """The feed moved to a new lifecycle state."""

    state: FeedState


class FeedFailed(_Event, tag=ChangeKind.ERROR.value):
    """Terminal failure reported by the feed itself."""

    error: str


ChangeEvent: typ.TypeAlias = (
    Initial | Added | Changed | Removed | StateChanged | FeedFailed
)


def decode_change(raw: typ.Mapping[str, typ.Any]) -> ChangeEvent:
    """Convert a wire notification mapping into a :data:`ChangeEvent`.

    Raises
    ------
    msgspec.ValidationError
        If ``raw`` has an unknown ``type`` or lacks a field its type requires.

    """
    return msgspec.convert(dict(raw), type=ChangeEvent)


def encode_change(event: ChangeEvent) -> dict[str, typ.Any]:
    """Return the wire mapping for ``event``; the inverse of :func:`decode_change`."""
    return msgspec.to_builtins(event)


def record_id(record: Record | None) -> RecordId | None:
    """Return the identifier of ``record``, or ``None`` if it has no usable one.

    Identifiers are strings, integers, or non-empty arrays of them for
    compound keys such as ``["alice", "blog"]``. Tuples come back as lists.
    """
    if record is None:
        return None
    value = record.get(RECORD_ID_FIELD)
    if isinstance(value, tuple):
        value = list(value)
    if isinstance(value, list):
        if value and all(_is_scalar_id(part) for part in value):
            return value
        return None
    return value if _is_scalar_id(value) else None


def _is_scalar_id(value: object) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


__all__ = [
    "RECORD_ID_FIELD",
    "Added",
    "ChangeEvent",
    "ChangeKind",
    "Changed",
    "FeedFailed",
    "FeedState",
    "Initial",
    "Record",
    "RecordId",
    "Removed",
    "StateChanged",
    "decode_change",
    "encode_change",
    "record_id",
]
