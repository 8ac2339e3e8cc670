"""
Single queue worker: one item per tick, oldest first.

Claiming an item also stamps model_state.last_request_at, which is the only
thing that holds off the idle shutdown.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from app.inference import InferenceClient
from app.log import get_logger
from app.model_state import set_model_state
from app.models import Message, QueueItem, UserSettings, utcnow
from app.prompt import build_messages
from app.request_queue import claim_next, mark_done, mark_failed
from app.settings import settings

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_TEMPERATURE = 0.7


def load_history(s: Session, conversation_id: Optional[str], limit: Optional[int] = None) -> List[Dict[str, str]]:
    """Most recent `limit` messages of the conversation, oldest first."""
    if not conversation_id:
        return []
    limit = settings.HISTORY_LIMIT if limit is None else limit
    rows = s.exec(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    ).all()
    return [{"role": m.role, "content": m.content} for m in reversed(rows)]


def _reply_text(resp: Dict) -> str:
    # KeyError/IndexError/TypeError here mean a malformed response; the caller records it
    return resp["choices"][0]["message"]["content"]


def run_item(s: Session, item: QueueItem, inference: InferenceClient) -> QueueItem:
    try:
        prefs = s.get(UserSettings, item.user_id)
        system_prompt = (prefs.system_prompt if prefs else None) or DEFAULT_SYSTEM_PROMPT
        memory = (prefs.memory if prefs else None) or ""
        temperature = prefs.temperature if prefs and prefs.temperature is not None else DEFAULT_TEMPERATURE

        messages = build_messages(
            system_prompt=system_prompt,
            memory=memory,
            history=load_history(s, item.conversation_id),
            user_text=item.text,
        )
        resp = inference.chat(messages, temperature=temperature)
        reply = _reply_text(resp)
    except Exception as e:
        logger.warning("queue_item_failed", item_id=item.id, error=str(e)[:200])
        s.rollback()
        return mark_failed(s, item.id, e)

    logger.info("queue_item_done", item_id=item.id)
    return mark_done(s, item.id, {"tokens": resp.get("usage")}, output_text=reply)


def process_queue_once(s: Session, inference: InferenceClient, *, now: Optional[datetime] = None) -> Optional[QueueItem]:
    now = now or utcnow()
    item = claim_next(s, now=now)
    if item is None:
        return None
    set_model_state(s, last_request_at=now)
    logger.info("queue_item_started", item_id=item.id, user_id=item.user_id)
    return run_item(s, item, inference)
