"""Change feed events and the source protocol."""

from __future__ import annotations

from .events import (
    RECORD_ID_FIELD,
    Added,
    ChangeEvent,
    ChangeKind,
    Changed,
    FeedFailed,
    FeedState,
    Initial,
    Record,
    RecordId,
    Removed,
    StateChanged,
    decode_change,
    encode_change,
    record_id,
)
from .protocol import ChangeFeedSource

__all__ = [
    "RECORD_ID_FIELD",
    "Added",
    "ChangeEvent",
    "ChangeFeedSource",
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
