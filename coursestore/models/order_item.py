from sqlmodel import SQLModel, Field , Relationship
from typing import Optional , TYPE_CHECKING
from decimal import Decimal

if TYPE_CHECKING:
    from coursestore.models.order import Order

class OrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    course_id: int = Field(foreign_key="course.id")

    course_title: str
    # price at purchase time, never recomputed from the catalog
    price: Decimal = Field(max_digits=10, decimal_places=2)
    quantity: int = 1

    order: Optional["Order"] = Relationship(back_populates="items")
