"""Event ingestion layer - Canonical contract event models."""

from contract_event_tracker.ingestor.models import (
    ContractEvent,
    EventPayload,
    GenericPayload,
    decode_payload,
    parse_decimal,
)

__all__ = [
    "ContractEvent",
    "EventPayload",
    "GenericPayload",
    "decode_payload",
    "parse_decimal",
]
