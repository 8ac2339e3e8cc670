from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field
from typing import Optional, Dict
from datetime import datetime, timezone
from enum import Enum
import uuid

from app.errors import InvalidTransitionError

MODEL_STATE_ID = 1


def utcnow() -> datetime:
    # aware UTC; datetime columns reject naive values
    return datetime.now(timezone.utc)


class QueueStatus(str, Enum):
    queued = "queued"
    running = "running"
    done = "done"
    failed = "failed"


class PodStatus(str, Enum):
    stopped = "stopped"
    starting = "starting"
    running = "running"
    stopping = "stopping"


QUEUE_TRANSITIONS = {
    QueueStatus.queued: {QueueStatus.running},
    QueueStatus.running: {QueueStatus.done, QueueStatus.failed},
    QueueStatus.done: set(),
    QueueStatus.failed: set(),
}

# Pod states are asserted when a command is issued, never observed, so most
# moves are legal. "stopped" is only reachable from "stopping".
POD_TRANSITIONS = {
    PodStatus.stopped: {PodStatus.starting, PodStatus.running, PodStatus.stopping},
    PodStatus.starting: {PodStatus.starting, PodStatus.running, PodStatus.stopping},
    PodStatus.running: {PodStatus.starting, PodStatus.running, PodStatus.stopping},
    PodStatus.stopping: {PodStatus.starting, PodStatus.running, PodStatus.stopping, PodStatus.stopped},
}

ACTIVE_STATUSES = (QueueStatus.queued, QueueStatus.running)


def check_transition(current, target) -> None:
    """Raise InvalidTransitionError unless current -> target is in the table for its type."""
    if isinstance(target, QueueStatus):
        table, kind = QUEUE_TRANSITIONS, "queue"
    else:
        table, kind = POD_TRANSITIONS, "pod"
    if target not in table[current]:
        raise InvalidTransitionError(kind, current.value, target.value)


class QueueItem(SQLModel, table=True):
    __tablename__ = "request_queue"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    user_id: str = Field(index=True)
    conversation_id: Optional[str] = None
    text: str = ""
    status: QueueStatus = Field(default=QueueStatus.queued, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result_meta: Optional[Dict] = Field(default=None, sa_column=Column(JSON))
    output_text: Optional[str] = None
    error: Optional[str] = None


class ModelState(SQLModel, table=True):
    __tablename__ = "model_state"

    id: int = Field(default=MODEL_STATE_ID, primary_key=True)
    pod_status: PodStatus = PodStatus.stopped
    last_request_at: Optional[datetime] = None
    last_start_at: Optional[datetime] = None
    last_stop_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)


class UserPresence(SQLModel, table=True):
    __tablename__ = "user_presence"

    user_id: str = Field(primary_key=True)
    last_seen: datetime = Field(default_factory=utcnow, index=True)


class UserSettings(SQLModel, table=True):
    __tablename__ = "user_settings"

    user_id: str = Field(primary_key=True)
    system_prompt: Optional[str] = None
    memory: Optional[str] = None
    temperature: Optional[float] = None


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    conversation_id: str = Field(index=True)
    role: str
    content: str
    created_at: datetime = Field(default_factory=utcnow, index=True)
