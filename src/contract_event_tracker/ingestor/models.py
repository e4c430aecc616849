"""Data models for the ingestor module.

A ContractEvent carries its raw payload mapping plus a typed payload decoded
from it at construction time. Decoding is keyed by event type, so a payload
that does not match its type's schema is rejected at ingestion instead of
surfacing later as a silent filter or detector miss.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Union

from contract_event_tracker.errors import PayloadDecodeError, ValidationError

FUNDS_LOCKED = "FundsLocked"
FUNDS_RELEASED = "FundsReleased"
FUNDS_REFUNDED = "FundsRefunded"
PROGRAM_FUNDS_LOCKED = "ProgramFundsLocked"
PROGRAM_FUNDS_RELEASED = "ProgramFundsReleased"
BATCH_PAYOUT = "BatchPayout"
OPERATION_METRIC = "OperationMetric"
PERFORMANCE_METRIC = "PerformanceMetric"

FINANCIAL_EVENT_TYPES = frozenset(
    {
        FUNDS_LOCKED,
        FUNDS_RELEASED,
        FUNDS_REFUNDED,
        PROGRAM_FUNDS_LOCKED,
        PROGRAM_FUNDS_RELEASED,
        BATCH_PAYOUT,
    }
)
OPERATIONAL_EVENT_TYPES = frozenset({OPERATION_METRIC})
PERFORMANCE_EVENT_TYPES = frozenset({PERFORMANCE_METRIC})


def parse_decimal(value: Any) -> Decimal | None:
    """Coerce a float, integer, Decimal or numeric string to Decimal.

    Returns None for anything else, including booleans and non-finite values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def _required_amount(event_type: str, data: Mapping[str, Any], key: str = "amount") -> Decimal:
    if key not in data:
        raise PayloadDecodeError(event_type, f"missing required field '{key}'")
    amount = parse_decimal(data[key])
    if amount is None:
        raise PayloadDecodeError(event_type, f"field '{key}' is not numeric: {data[key]!r}")
    return amount


def _optional_amount(event_type: str, data: Mapping[str, Any], key: str) -> Decimal | None:
    if data.get(key) is None:
        return None
    value = parse_decimal(data[key])
    if value is None:
        raise PayloadDecodeError(event_type, f"field '{key}' is not numeric: {data[key]!r}")
    return value


def _optional_int(event_type: str, data: Mapping[str, Any], key: str) -> int | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise PayloadDecodeError(event_type, f"field '{key}' must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise PayloadDecodeError(event_type, f"field '{key}' must be an integer: {raw!r}") from e


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    raw = data.get(key)
    return str(raw) if raw is not None else None


def _required_str(event_type: str, data: Mapping[str, Any], key: str) -> str:
    raw = data.get(key)
    if not isinstance(raw, str) or not raw:
        raise PayloadDecodeError(event_type, f"field '{key}' must be a non-empty string")
    return raw


@dataclass(frozen=True)
class FundsLockedPayload:
    """Funds deposited into a bounty escrow."""

    amount: Decimal
    bounty_id: int | None = None
    depositor: str | None = None
    deadline: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FundsLockedPayload:
        return cls(
            amount=_required_amount(FUNDS_LOCKED, data),
            bounty_id=_optional_int(FUNDS_LOCKED, data, "bounty_id"),
            depositor=_optional_str(data, "depositor"),
            deadline=_optional_int(FUNDS_LOCKED, data, "deadline"),
        )


@dataclass(frozen=True)
class FundsReleasedPayload:
    """Funds paid out of a bounty escrow."""

    amount: Decimal
    bounty_id: int | None = None
    recipient: str | None = None
    remaining_amount: Decimal | None = None
    is_partial: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FundsReleasedPayload:
        return cls(
            amount=_required_amount(FUNDS_RELEASED, data),
            bounty_id=_optional_int(FUNDS_RELEASED, data, "bounty_id"),
            recipient=_optional_str(data, "recipient"),
            remaining_amount=_optional_amount(FUNDS_RELEASED, data, "remaining_amount"),
            is_partial=bool(data.get("is_partial", False)),
        )


@dataclass(frozen=True)
class FundsRefundedPayload:
    """Funds returned to the depositor."""

    amount: Decimal
    bounty_id: int | None = None
    refund_to: str | None = None
    remaining_amount: Decimal | None = None
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FundsRefundedPayload:
        return cls(
            amount=_required_amount(FUNDS_REFUNDED, data),
            bounty_id=_optional_int(FUNDS_REFUNDED, data, "bounty_id"),
            refund_to=_optional_str(data, "refund_to"),
            remaining_amount=_optional_amount(FUNDS_REFUNDED, data, "remaining_amount"),
            reason=_optional_str(data, "reason"),
        )


@dataclass(frozen=True)
class ProgramFundsLockedPayload:
    """Funds deposited into a program escrow."""

    amount: Decimal
    program_id: str | None = None
    depositor: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgramFundsLockedPayload:
        return cls(
            amount=_required_amount(PROGRAM_FUNDS_LOCKED, data),
            program_id=_optional_str(data, "program_id"),
            depositor=_optional_str(data, "depositor"),
        )


@dataclass(frozen=True)
class ProgramFundsReleasedPayload:
    """Funds paid out of a program escrow."""

    amount: Decimal
    program_id: str | None = None
    recipient: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgramFundsReleasedPayload:
        return cls(
            amount=_required_amount(PROGRAM_FUNDS_RELEASED, data),
            program_id=_optional_str(data, "program_id"),
            recipient=_optional_str(data, "recipient"),
        )


@dataclass(frozen=True)
class BatchPayoutPayload:
    """A single payout transaction covering several recipients."""

    amount: Decimal
    count: int | None = None
    recipients: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BatchPayoutPayload:
        recipients = data.get("recipients") or ()
        if isinstance(recipients, str) or not isinstance(recipients, (list, tuple)):
            raise PayloadDecodeError(BATCH_PAYOUT, "field 'recipients' must be a list")
        return cls(
            amount=_required_amount(BATCH_PAYOUT, data),
            count=_optional_int(BATCH_PAYOUT, data, "count"),
            recipients=tuple(str(r) for r in recipients),
        )


@dataclass(frozen=True)
class OperationMetricPayload:
    """Outcome of a single contract operation."""

    operation: str
    success: bool
    caller: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OperationMetricPayload:
        success = data.get("success")
        if not isinstance(success, bool):
            raise PayloadDecodeError(OPERATION_METRIC, "field 'success' must be a boolean")
        return cls(
            operation=_required_str(OPERATION_METRIC, data, "operation"),
            success=success,
            caller=_optional_str(data, "caller"),
            error=_optional_str(data, "error"),
        )


@dataclass(frozen=True)
class PerformanceMetricPayload:
    """Wall-clock duration of a single contract operation."""

    operation: str
    duration_ms: Decimal

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PerformanceMetricPayload:
        duration = _required_amount(PERFORMANCE_METRIC, data, "duration_ms")
        if duration < 0:
            raise PayloadDecodeError(PERFORMANCE_METRIC, "field 'duration_ms' cannot be negative")
        return cls(
            operation=_required_str(PERFORMANCE_METRIC, data, "operation"),
            duration_ms=duration,
        )


@dataclass(frozen=True)
class GenericPayload:
    """Payload of an event type without a dedicated schema."""

    fields: Mapping[str, Any]
    amount: Decimal | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GenericPayload:
        return cls(fields=data, amount=parse_decimal(data.get("amount")))


EventPayload = Union[
    FundsLockedPayload,
    FundsReleasedPayload,
    FundsRefundedPayload,
    ProgramFundsLockedPayload,
    ProgramFundsReleasedPayload,
    BatchPayoutPayload,
    OperationMetricPayload,
    PerformanceMetricPayload,
    GenericPayload,
]

PAYLOAD_TYPES: dict[str, Any] = {
    FUNDS_LOCKED: FundsLockedPayload,
    FUNDS_RELEASED: FundsReleasedPayload,
    FUNDS_REFUNDED: FundsRefundedPayload,
    PROGRAM_FUNDS_LOCKED: ProgramFundsLockedPayload,
    PROGRAM_FUNDS_RELEASED: ProgramFundsReleasedPayload,
    BATCH_PAYOUT: BatchPayoutPayload,
    OPERATION_METRIC: OperationMetricPayload,
    PERFORMANCE_METRIC: PerformanceMetricPayload,
}


def decode_payload(event_type: str, data: Mapping[str, Any]) -> EventPayload:
    """Decode a raw payload into the typed payload for its event type.

    Raises:
        PayloadDecodeError: If the payload does not match the schema.
    """
    payload_cls = PAYLOAD_TYPES.get(event_type, GenericPayload)
    payload: EventPayload = payload_cls.from_dict(data)
    return payload


@dataclass(frozen=True)
class ContractEvent:
    """Immutable record of a single on-chain operation observation.

    Attributes:
        id: Globally unique identifier assigned at ingestion.
        contract_id: Address of the emitting contract.
        event_type: Discriminator driving payload decoding and detection.
        timestamp: Unix seconds of emission.
        data: Raw payload mapping (read-only).
        version: Payload schema version.
        correlation_id: Optional trace token linking related events.
        indexed: Whether asynchronous post-processing has completed.
        indexed_at: When post-processing completed.
        payload: Typed payload decoded from ``data``.
    """

    id: str
    contract_id: str
    event_type: str
    timestamp: int
    data: Mapping[str, Any] = field(default_factory=dict)
    version: int = 1
    correlation_id: str | None = None
    indexed: bool = False
    indexed_at: datetime | None = None
    payload: EventPayload = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("event id cannot be empty")
        if not self.event_type:
            raise ValidationError("event type cannot be empty")
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int) or self.timestamp < 0:
            raise ValidationError(f"timestamp must be a non-negative integer: {self.timestamp!r}")
        if not isinstance(self.data, Mapping):
            raise PayloadDecodeError(self.event_type, "payload must be a mapping")
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))
        object.__setattr__(self, "payload", decode_payload(self.event_type, self.data))

    @classmethod
    def create(
        cls,
        *,
        contract_id: str,
        event_type: str,
        timestamp: int,
        data: Mapping[str, Any] | None = None,
        version: int = 1,
        correlation_id: str | None = None,
    ) -> ContractEvent:
        """Create an event with a freshly assigned id."""
        return cls(
            id=str(uuid.uuid4()),
            contract_id=contract_id,
            event_type=event_type,
            timestamp=timestamp,
            data=data or {},
            version=version,
            correlation_id=correlation_id,
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ContractEvent:
        """Create a ContractEvent from a decoded ingestion record.

        A missing ``id`` is assigned here; retries must pass the same id back.

        Raises:
            ValidationError: If required fields are missing or malformed.
            PayloadDecodeError: If the payload does not match its event type.
        """
        try:
            contract_id = str(raw["contract_id"])
            event_type = str(raw["event_type"])
            timestamp = int(raw["timestamp"])
        except KeyError as e:
            raise ValidationError(f"missing required event field {e.args[0]!r}") from e
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid event timestamp: {raw.get('timestamp')!r}") from e

        correlation_id = raw.get("correlation_id")
        return cls(
            id=str(raw.get("id") or uuid.uuid4()),
            contract_id=contract_id,
            event_type=event_type,
            timestamp=timestamp,
            data=raw.get("data") or {},
            version=int(raw.get("version", 1)),
            correlation_id=str(correlation_id) if correlation_id else None,
            indexed=bool(raw.get("indexed", False)),
            indexed_at=raw.get("indexed_at"),
        )

    @property
    def amount(self) -> Decimal | None:
        """Return the payload amount, or None if this event type carries none."""
        amount: Decimal | None = getattr(self.payload, "amount", None)
        return amount

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "contract_id": self.contract_id,
            "event_type": self.event_type,
            "version": self.version,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "data": dict(self.data),
            "indexed": self.indexed,
            "indexed_at": self.indexed_at.isoformat() if self.indexed_at else None,
        }
