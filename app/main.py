from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Depends, Body, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.auth import AuthUser, require_user
from app.db import get_session, init_db, make_engine
from app.errors import ControlPlaneError, PodControlError, ValidationError
from app.inference import InferenceClient
from app.lifecycle import ensure_running, maybe_stop
from app.log import configure_logging, get_logger
from app.pod_control import RunPodClient
from app.presence import record_heartbeat
from app.request_queue import enqueue, get_item
from app.scheduler import Scheduler
from app.settings import settings
from app.worker import process_queue_once

logger = get_logger(__name__)


def build_scheduler(engine, pods: RunPodClient, inference: InferenceClient) -> Scheduler:
    def worker_tick():
        with Session(engine) as s:
            process_queue_once(s, inference)

    def idle_tick():
        with Session(engine) as s:
            action = maybe_stop(s, pods)
        if not action.ok:
            logger.warning("idle_check_failed", error=action.error)

    scheduler = Scheduler()
    scheduler.add("queue_worker", settings.WORKER_TICK_SECONDS, worker_tick)
    scheduler.add("idle_check", settings.IDLE_CHECK_SECONDS, idle_tick)
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db(app.state.engine)
    if app.state.run_scheduler:
        app.state.scheduler.start()
    logger.info("control_plane_started", name=settings.PUBLIC_APP_NAME)
    try:
        yield
    finally:
        await app.state.scheduler.stop()


def get_pods(request: Request) -> RunPodClient:
    return request.app.state.pods


def get_inference(request: Request) -> InferenceClient:
    return request.app.state.inference


async def control_plane_error(request: Request, exc: ControlPlaneError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.code, "detail": exc.message},
    )


def create_app(
    engine=None,
    pods: Optional[RunPodClient] = None,
    inference: Optional[InferenceClient] = None,
    run_scheduler: Optional[bool] = None,
) -> FastAPI:
    app = FastAPI(title=settings.PUBLIC_APP_NAME, lifespan=lifespan)
    app.state.engine = engine if engine is not None else make_engine()
    app.state.pods = pods or RunPodClient()
    app.state.inference = inference or InferenceClient()
    app.state.run_scheduler = settings.SCHEDULER_ENABLED if run_scheduler is None else run_scheduler
    app.state.scheduler = build_scheduler(app.state.engine, app.state.pods, app.state.inference)

    app.add_exception_handler(ControlPlaneError, control_plane_error)

    # ----- CORS (browser clients send heartbeats directly) -----
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {
            "ok": True,
            "name": settings.PUBLIC_APP_NAME,
            "loops": app.state.scheduler.snapshot(),
        }

    # ----- presence -----
    @app.post("/api/presence/heartbeat")
    def heartbeat(
        user: AuthUser = Depends(require_user),
        s: Session = Depends(get_session),
        pods: RunPodClient = Depends(get_pods),
    ):
        # client calls this every ~30s while a tab is open
        record_heartbeat(s, user.id)
        action = ensure_running(s, pods)
        return {"ok": True, "pod": action.as_dict()}

    @app.get("/api/pod/status")
    def pod_status(pods: RunPodClient = Depends(get_pods)):
        return {"ok": True, "pod": pods.describe()}

    # ----- chat queue -----
    @app.post("/api/chat")
    def submit_chat(
        payload: Optional[Dict] = Body(None),
        user: AuthUser = Depends(require_user),
        s: Session = Depends(get_session),
        pods: RunPodClient = Depends(get_pods),
    ):
        """
        payload: { "conversation_id": "abc" (optional), "text": "hello" }
        """
        payload = payload or {}
        text = payload.get("text")
        if not isinstance(text, str) or not text:
            raise ValidationError(code="missing_text")
        conversation_id = payload.get("conversation_id")
        if conversation_id is not None and not isinstance(conversation_id, str):
            raise ValidationError(code="invalid_conversation_id")

        record_heartbeat(s, user.id)
        action = ensure_running(s, pods)
        if not action.ok:
            raise PodControlError(action.error)

        item = enqueue(s, user.id, conversation_id, text)
        return {"ok": True, "queued": item.model_dump(mode="json")}

    @app.get("/api/queue/{item_id}")
    def queue_item(
        item_id: str,
        user: AuthUser = Depends(require_user),
        s: Session = Depends(get_session),
    ):
        item = get_item(s, item_id, user_id=user.id)
        return {"ok": True, "item": item.model_dump(mode="json")}

    return app


app = create_app()
