"""
Bounded FIFO request queue.

enqueue() is the admission gate: it counts queued+running items and refuses
new work at MAX_QUEUE_SIZE. Count and insert are separate statements, so two
concurrent submissions can both pass the check and briefly exceed the cap.

Items are never deleted; finished rows stay as the audit trail.
"""

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from app.errors import NotFoundError, QueueFullError
from app.log import get_logger
from app.models import ACTIVE_STATUSES, QueueItem, QueueStatus, check_transition, utcnow
from app.settings import settings

logger = get_logger(__name__)


def active_count(s: Session) -> int:
    return s.exec(
        select(func.count()).select_from(QueueItem).where(QueueItem.status.in_(ACTIVE_STATUSES))
    ).one()


def enqueue(
    s: Session,
    user_id: str,
    conversation_id: Optional[str],
    text: str,
    *,
    max_size: Optional[int] = None,
) -> QueueItem:
    cap = settings.MAX_QUEUE_SIZE if max_size is None else max_size
    depth = active_count(s)
    if depth >= cap:
        logger.info("queue_full", depth=depth, cap=cap, user_id=user_id)
        raise QueueFullError()

    item = QueueItem(user_id=user_id, conversation_id=conversation_id, text=text, status=QueueStatus.queued)
    s.add(item)
    s.commit()
    s.refresh(item)
    logger.info("request_enqueued", item_id=item.id, depth=depth + 1)
    return item


def claim_next(s: Session, *, now: Optional[datetime] = None) -> Optional[QueueItem]:
    """
    Oldest queued item flipped to running, or None.
    The flip is a single UPDATE guarded on status = queued; if another
    claimer got there first the update matches nothing and we return None.
    """
    item_id = s.exec(
        select(QueueItem.id)
        .where(QueueItem.status == QueueStatus.queued)
        .order_by(QueueItem.created_at)
        .limit(1)
    ).first()
    if item_id is None:
        return None

    # the status guard in the WHERE clause is the queued -> running check
    result = s.connection().execute(
        update(QueueItem)
        .where(QueueItem.id == item_id, QueueItem.status == QueueStatus.queued)
        .values(status=QueueStatus.running, started_at=now or utcnow())
    )
    s.commit()
    if result.rowcount != 1:
        logger.info("claim_lost", item_id=item_id)
        return None
    return s.get(QueueItem, item_id, populate_existing=True)


def _finish(s: Session, item_id: str, target: QueueStatus, **fields) -> QueueItem:
    item = s.get(QueueItem, item_id, populate_existing=True)
    if item is None:
        raise NotFoundError(f"queue item {item_id} not found")
    check_transition(item.status, target)
    item.status = target
    item.finished_at = utcnow()
    for k, v in fields.items():
        setattr(item, k, v)
    s.add(item)
    s.commit()
    s.refresh(item)
    return item


def mark_done(s: Session, item_id: str, result_meta: Optional[Dict] = None,
              output_text: Optional[str] = None) -> QueueItem:
    return _finish(s, item_id, QueueStatus.done, result_meta=result_meta or {}, output_text=output_text)


def mark_failed(s: Session, item_id: str, err, *, limit: Optional[int] = None) -> QueueItem:
    limit = settings.ERROR_TEXT_LIMIT if limit is None else limit
    return _finish(s, item_id, QueueStatus.failed, error=str(err)[:limit])


def get_item(s: Session, item_id: str, *, user_id: Optional[str] = None) -> QueueItem:
    item = s.get(QueueItem, item_id)
    if item is None or (user_id is not None and item.user_id != user_id):
        raise NotFoundError(f"queue item {item_id} not found")
    return item
