from typing import Optional

from sqlmodel import Session

from coursestore.models.notifications import Notification


def record_admin_notice(
    session: Session,
    *,
    event: str,
    order_id: int,
    title: str,
    content: str,
    user_id: Optional[int] = None,
) -> Notification:
    # written with the caller's session; committed with its transaction
    notice = Notification(
        event=event,
        order_id=order_id,
        user_id=user_id,
        title=title,
        content=content,
    )
    session.add(notice)
    session.flush()
    return notice
