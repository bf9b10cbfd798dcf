"""
Inbound event payloads from other services.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import date, datetime
from decimal import Decimal


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal


class OrderCompletedEvent(BaseModel):
    """Published by order-service when an order is paid and fulfilled"""
    event_id: str
    event_type: Literal["OrderCompleted"] = "OrderCompleted"
    order_id: str
    order_number: str
    order_date: date
    customer_id: str
    customer_name: str
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: Decimal
    total_discount: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    grand_total: Decimal
    payment_method: str = "cash"
    sales_channel: str = "POS"


class OrderCancelledEvent(BaseModel):
    """Published by order-service when a completed order is cancelled"""
    event_id: str
    event_type: Literal["OrderCancelled"] = "OrderCancelled"
    order_id: str
    order_number: str
    cancelled_at: datetime
    cancelled_by: str
    cancel_reason: str
    refund_amount: Decimal = Decimal("0")
    original_journal_entry_id: Optional[int] = None


class EventHandlingResult(BaseModel):
    """What the handler did with an event"""
    event_id: str
    status: Literal["success", "failed", "skipped", "duplicate"]
    journal_entry_id: Optional[int] = None
    message: Optional[str] = None
