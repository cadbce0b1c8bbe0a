"""Order models as returned by the Shopify Admin REST API."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from atelier.business.order_status import OrderStatus


class Customer(BaseModel):
    """Order customer."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class ShippingAddress(BaseModel):
    """Order shipping address, only the fields this core reads."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None


class Order(BaseModel):
    """
    Commerce order owned by Shopify.

    Only ``tags`` is ever written back; every other field is read-only here.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    created_at: Optional[datetime] = None
    tags: str = ""
    phone: Optional[str] = None
    customer: Optional[Customer] = None
    shipping_address: Optional[ShippingAddress] = None

    @property
    def customer_name(self) -> str:
        if self.customer is not None:
            full_name = " ".join(
                part for part in (self.customer.first_name, self.customer.last_name) if part
            )
            if full_name:
                return full_name
        return (self.shipping_address.name if self.shipping_address else None) or ""

    @property
    def first_name(self) -> str:
        return (self.customer.first_name or "") if self.customer else ""

    def phones(self) -> list[str]:
        """Every phone number recorded on the order, customer first."""
        candidates = [
            self.customer.phone if self.customer else None,
            self.shipping_address.phone if self.shipping_address else None,
            self.phone,
        ]
        return [phone for phone in candidates if phone]


class OrderFilter(BaseModel):
    """Listing filter for the order store."""

    status: Optional[OrderStatus] = None
    created_at_min: Optional[datetime] = None
    created_at_max: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)


class OperatorEvent(str, Enum):
    """Events an operator may trigger by hand."""

    REQUEST_READY = "request_ready"
    MARK_READY_TO_SHIP = "mark_ready_to_ship"
    MANUAL_CANCEL = "manual_cancel"


class OrderEventRequest(BaseModel):
    """Body of ``POST /orders/{order_id}/events``."""

    event: OperatorEvent
    tracking_token: Optional[str] = Field(default=None, min_length=1)
    notify_customer: bool = True
    actor: Optional[str] = None


class OrderEventResponse(BaseModel):
    order_id: int
    order_name: str
    event: str
    applied: bool
    previous_status: OrderStatus
    new_status: OrderStatus
    labels: list[str] = Field(default_factory=list)
    confirmation_message_id: Optional[str] = None
