from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime

from coursestore.constants.enrollment_status import EnrollmentStatus


class Enrollment(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)

    status: str = Field(default=EnrollmentStatus.active.value)
    progress_percentage: int = Field(default=0, ge=0, le=100)

    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    certificate_url: Optional[str] = None

    # NULL for admin-granted access
    source_order_id: Optional[int] = Field(default=None, foreign_key="order.id")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
