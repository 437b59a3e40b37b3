from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class Notification(SQLModel, table=True):
    """Admin dashboard notice about an order event."""

    id: Optional[int] = Field(default=None, primary_key=True)

    event: str = Field(index=True)          # OrderEvent value
    order_id: int = Field(foreign_key="order.id", index=True)
    # buyer the notice is about
    user_id: Optional[int] = Field(default=None, foreign_key="user.id")

    title: str
    content: str

    created_at: datetime = Field(default_factory=datetime.utcnow)
