from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    short_description: Optional[str] = None
    image_url: Optional[str] = None

    price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    status: str = Field(default="draft", index=True)  # draft | published | archived

    students_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
