from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from coursestore.constants.order_status import OrderStatus
from coursestore.models.order_item import OrderItem


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    total_amount: Decimal = Field(max_digits=10, decimal_places=2)
    currency: str = Field(default="INR")

    status: str = Field(default=OrderStatus.pending.value, index=True)

    provider: Optional[str] = None
    provider_session_id: Optional[str] = Field(default=None, unique=True, index=True)
    payment_url: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    items: List["OrderItem"] = Relationship(back_populates="order")
