"""
The singleton coordination record shared by the pod controller and the worker.
Writes are single-statement upserts on the fixed key: no version check, last
write wins.
"""

from sqlmodel import Session

from app.db import upsert
from app.models import MODEL_STATE_ID, ModelState, PodStatus, check_transition, utcnow


def get_model_state(s: Session) -> ModelState:
    """Current record, or an unsaved default when nothing has been written yet."""
    return s.get(ModelState, MODEL_STATE_ID, populate_existing=True) or ModelState(id=MODEL_STATE_ID)


def set_model_state(s: Session, **fields) -> ModelState:
    target = fields.get("pod_status")
    if target is not None:
        target = PodStatus(target)
        check_transition(get_model_state(s).pod_status, target)
        fields["pod_status"] = target

    fields["updated_at"] = utcnow()
    # first write: unspecified columns take the model defaults
    row = ModelState(id=MODEL_STATE_ID, **fields)
    upsert(s, ModelState, row.model_dump(), "id", fields)
    return s.get(ModelState, MODEL_STATE_ID, populate_existing=True)
