# coursestore/schemas/checkout_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SnapshotLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    course_id: int
    title: str
    unit_price: Decimal       # catalog price at snapshot time
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartSnapshot(BaseModel):
    """Cart contents frozen for exactly one checkout attempt."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    lines: Tuple[SnapshotLine, ...]
    total_amount: Decimal
    captured_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def capture(cls, user_id: int, lines) -> "CartSnapshot":
        lines = tuple(lines)
        total = sum((line.line_total for line in lines), Decimal("0.00"))
        return cls(user_id=user_id, lines=lines, total_amount=total)

    @property
    def course_ids(self) -> List[int]:
        return [line.course_id for line in self.lines]


class CheckoutRequest(BaseModel):
    course_id: Optional[int] = None
    course_ids: Optional[List[int]] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    @model_validator(mode="after")
    def _one_selector(self):
        if self.course_id is not None and self.course_ids:
            raise ValueError("Send either course_id or course_ids, not both")
        return self

    def requested_course_ids(self) -> Optional[List[int]]:
        if self.course_id is not None:
            return [self.course_id]
        return self.course_ids or None


class CheckoutResponse(BaseModel):
    order_id: int
    session_id: str
    session_url: str
    total_amount: Decimal
    currency: str
    expires_at: Optional[datetime] = None


class ForceReconcileRequest(BaseModel):
    session_id: str
