from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    course_id: int
    status: str
    progress_percentage: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    certificate_url: Optional[str] = None
    source_order_id: Optional[int] = None


class ProgressUpdate(BaseModel):
    progress_percentage: float


class AdminEnrollmentCreate(BaseModel):
    user_id: int
    course_id: int
