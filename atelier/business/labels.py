# ==== ORDER LABEL CODEC ==== #

"""
Codec between an order's flat label list and its decoded lifecycle state.

The commerce platform stores one comma-separated tag string per order. This
module is the only place that reads or writes raw label strings; everything
downstream works on ``DecodedOrderState``.

Decoding rules:
    - labels are split on commas, trimmed and compared case-insensitively
    - the first status flag encountered is the status; extra status flags are
      a data-integrity warning (or ``InvalidLabelState`` in strict mode)
    - ``key:value`` labels land in an ordered map, last write wins
    - legacy guard keys are read under their current names
    - stage date markers that do not belong to the current or a prior stage
      are dropped, malformed dates read as absent but are kept verbatim

Encoding emits the status flag first, then plain flags, then keyed labels.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from atelier.business.order_status import (
    KEY_ALIASES,
    STAGE_RANK,
    STATUS_ALIASES,
    STATUS_LABELS,
    STATUS_SINCE_KEY,
    LabelKey,
    OrderStatus,
)
from atelier.errors import InvalidLabelState
from atelier.observability.logging import get_logger


logger = get_logger(__name__)


# ==== DECODED STATE ==== #


@dataclass(frozen=True)
class DecodedOrderState:
    """
    Typed view of an order's label set.

    Attributes:
        status: Lifecycle status, ``PENDING`` when no status flag is present
        flags: Non-status flag labels in first-seen order, original casing
        keyed: Keyed labels, lowercased key to original-case value
        confirmed: A ``customer_confirmed`` flag was present anywhere
    """

    status: OrderStatus = OrderStatus.PENDING
    flags: tuple[str, ...] = ()
    keyed: dict[str, str] = field(default_factory=dict)
    confirmed: bool = False

    @property
    def status_since(self) -> Optional[date]:
        key = STATUS_SINCE_KEY.get(self.status)
        return self.date(key) if key else None

    @property
    def tracking_token(self) -> Optional[str]:
        token = self.keyed.get(LabelKey.SHIPPING_BARCODE, "").strip()
        return token or None

    def date(self, key: str) -> Optional[date]:
        """Parsed date marker, ``None`` when missing or malformed."""
        raw = self.keyed.get(key)
        return parse_label_date(raw) if raw is not None else None

    def has_flag(self, flag: str) -> bool:
        wanted = flag.lower()
        return any(existing.lower() == wanted for existing in self.flags)


def parse_label_date(raw: str) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` optionally followed by a time part."""
    value = raw.strip()
    if len(value) < 10 or (len(value) > 10 and value[10] not in "T "):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


# ==== MARKER RETENTION ==== #


def _marker_retained(key: str, status: OrderStatus) -> bool:
    """Whether a stage marker belongs to the current or a prior stage."""
    rank = STAGE_RANK.get(status)
    cancelled = status is OrderStatus.CANCELLED

    if key == LabelKey.ORDER_READY_DATE:
        return cancelled or rank >= STAGE_RANK[OrderStatus.ORDER_READY]
    if key in (LabelKey.MOVED_TO_ON_HOLD, LabelKey.NOTIFIED_ON_HOLD, LabelKey.ON_HOLD_REASON):
        return cancelled or status is OrderStatus.ON_HOLD
    if key == LabelKey.SHIPPING_DATE:
        return cancelled or rank >= STAGE_RANK[OrderStatus.SHIPPED]
    if key == LabelKey.FULFILLED_AT:
        return cancelled or status is OrderStatus.FULFILLED
    if key in (LabelKey.CANCELLED_DATE, LabelKey.NOTIFIED_CANCELLED):
        return cancelled
    return True


def _split(labels: str | Iterable[str]) -> list[str]:
    chunks = [labels] if isinstance(labels, str) else list(labels)
    return [
        part.strip()
        for chunk in chunks
        for part in chunk.split(",")
        if part.strip()
    ]


# ==== DECODE / ENCODE ==== #


def decode(labels: str | Iterable[str], *, strict: bool = False) -> DecodedOrderState:
    """
    Decode a raw label list into a ``DecodedOrderState``.

    Args:
        labels: Comma-separated tag string or iterable of labels
        strict: Raise instead of warning on conflicting status flags

    Returns:
        DecodedOrderState: Decoded view

    Raises:
        InvalidLabelState: Only when ``strict`` and several statuses are present
    """
    statuses: list[OrderStatus] = []
    flags: list[str] = []
    seen_flags: set[str] = set()
    keyed: dict[str, str] = {}

    for label in _split(labels):
        lowered = label.lower()

        status = STATUS_LABELS.get(lowered) or STATUS_ALIASES.get(lowered)
        if status is not None:
            if status not in statuses:
                statuses.append(status)
            continue

        if ":" in label:
            key, value = label.split(":", 1)
            key = key.strip().lower()
            key = KEY_ALIASES.get(key, key)
            if key:
                keyed[key] = value.strip()
                continue

        if lowered not in seen_flags:
            seen_flags.add(lowered)
            flags.append(label)

    if len(statuses) > 1:
        names = [status.value for status in statuses]
        if strict:
            raise InvalidLabelState(names)
        logger.warning(
            "Multiple status labels on order, using first",
            statuses=names,
            chosen=names[0],
        )

    current = statuses[0] if statuses else OrderStatus.PENDING
    retained = {
        key: value for key, value in keyed.items()
        if _marker_retained(key, current)
    }

    return DecodedOrderState(
        status=current,
        flags=tuple(flags),
        keyed=retained,
        confirmed=OrderStatus.CUSTOMER_CONFIRMED in statuses,
    )


def encode(state: DecodedOrderState) -> list[str]:
    """
    Encode a decoded state back into a label list.

    A confirmation recorded next to another status (the legacy double tag) is
    written back as a second ``customer_confirmed`` flag so it is never lost.

    Args:
        state: Decoded order state

    Returns:
        list[str]: Labels ready for the order store
    """
    labels: list[str] = []

    if state.status is not OrderStatus.PENDING:
        labels.append(state.status.value)
    if state.confirmed and state.status is not OrderStatus.CUSTOMER_CONFIRMED:
        labels.append(OrderStatus.CUSTOMER_CONFIRMED.value)

    labels.extend(state.flags)

    for key, value in state.keyed.items():
        if _marker_retained(key, state.status):
            labels.append(f"{key}:{value}")

    return labels


def format_label_date(day: date) -> str:
    """Render a date the way stage markers store it."""
    return day.isoformat()


__all__ = [
    "DecodedOrderState",
    "decode",
    "encode",
    "format_label_date",
    "parse_label_date",
]
