"""Shared fixtures: in-memory store, fake pod control and inference, API client."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.auth import AuthUser, require_user
from app.errors import InferenceError, PodControlError
from app.main import create_app

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakePods:
    """Stands in for RunPodClient; records every call."""

    def __init__(self, desired_status: Optional[str] = "EXITED"):
        self.desired_status = desired_status
        self.calls: List[str] = []
        self.fail_on: set = set()

    def _call(self, name: str):
        self.calls.append(name)
        if name in self.fail_on:
            raise PodControlError(f"RunPod error: {name} refused")

    def describe(self) -> Dict:
        self._call("describe")
        return {"id": "pod-1", "desiredStatus": self.desired_status, "runtime": None}

    def start(self) -> Dict:
        self._call("start")
        self.desired_status = "RUNNING"
        return {"podResume": {"id": "pod-1"}}

    def stop(self) -> Dict:
        self._call("stop")
        self.desired_status = "EXITED"
        return {"podStop": {"id": "pod-1"}}


class FakeInference:
    def __init__(self, reply: str = "hi there", fail: Optional[str] = None):
        self.reply = reply
        self.fail = fail
        self.requests: List[Dict] = []

    def chat(self, messages, *, temperature):
        self.requests.append({"messages": messages, "temperature": temperature})
        if self.fail is not None:
            raise InferenceError(self.fail)
        return {
            "choices": [{"message": {"role": "assistant", "content": self.reply}}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
        }


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """On-disk store: each thread or session gets its own connection."""
    eng = create_engine(f"sqlite:///{tmp_path / 'store.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def pods():
    return FakePods()


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def app(engine, pods, inference):
    application = create_app(engine=engine, pods=pods, inference=inference, run_scheduler=False)
    application.dependency_overrides[require_user] = lambda: AuthUser(id="user-1")
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


def run_together(fn, n: int = 8) -> List[Exception]:
    """Start n threads on fn at the same instant; return whatever they raised."""
    barrier = threading.Barrier(n)
    errors: List[Exception] = []

    def go():
        barrier.wait(5)
        try:
            fn()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=go) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    return errors


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)
