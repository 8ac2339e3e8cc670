"""
Pod lifecycle: start the pod when someone is online, stop it once nobody is
online and no request has run for the idle threshold.

Target states ("starting", "stopping") are recorded when the command is
issued. Arrival in "running"/"stopped" is never confirmed by a callback; the
next ensure_running() call re-reads the pod's desired status.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from app.errors import PodControlError
from app.log import get_logger
from app.model_state import get_model_state, set_model_state
from app.models import PodStatus, utcnow
from app.pod_control import RunPodClient
from app.presence import is_anyone_online
from app.settings import settings

logger = get_logger(__name__)

RUNNING = "RUNNING"  # RunPod desiredStatus


@dataclass
class PodAction:
    ok: bool
    action: str
    online: Optional[bool] = None
    error: Optional[str] = None

    def as_dict(self):
        return {k: v for k, v in asdict(self).items() if v is not None}


def ensure_running(
    s: Session,
    pods: RunPodClient,
    *,
    window_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PodAction:
    now = now or utcnow()
    if not is_anyone_online(s, window_seconds, now=now):
        return PodAction(ok=True, action="none", online=False)

    try:
        pod = pods.describe()
    except PodControlError as e:
        logger.warning("pod_describe_failed", error=str(e))
        return PodAction(ok=False, action="error", online=True, error=str(e))

    desired = pod.get("desiredStatus")
    if desired and desired != RUNNING:
        try:
            pods.start()
        except PodControlError as e:
            logger.warning("pod_start_failed", error=str(e))
            return PodAction(ok=False, action="error", online=True, error=str(e))
        set_model_state(s, pod_status=PodStatus.starting, last_start_at=now)
        logger.info("pod_start_issued", desired_status=desired)
        return PodAction(ok=True, action="starting", online=True)

    set_model_state(s, pod_status=PodStatus.running)
    return PodAction(ok=True, action="running", online=True)


def maybe_stop(
    s: Session,
    pods: RunPodClient,
    *,
    window_seconds: Optional[int] = None,
    idle_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PodAction:
    now = now or utcnow()
    if is_anyone_online(s, window_seconds, now=now):
        return PodAction(ok=True, action="kept_running")

    threshold = settings.IDLE_SHUTDOWN_SECONDS if idle_seconds is None else idle_seconds
    last_request_at = get_model_state(s).last_request_at
    # never served a request: idle since forever
    if last_request_at is not None and (now - last_request_at).total_seconds() < threshold:
        return PodAction(ok=True, action="waiting_idle_timeout")

    try:
        pods.stop()
    except PodControlError as e:
        logger.warning("pod_stop_failed", error=str(e))
        return PodAction(ok=False, action="error", error=str(e))

    set_model_state(s, pod_status=PodStatus.stopping, last_stop_at=now)
    logger.info("pod_stop_issued", last_request_at=last_request_at.isoformat() if last_request_at else None)
    return PodAction(ok=True, action="stopping")
