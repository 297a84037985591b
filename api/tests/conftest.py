"""Shared test configuration.

Environment is set before any ``src`` import so the cached settings pick it up.
"""

import os
import tempfile
from collections.abc import Callable
from uuid import UUID

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="comments-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault("SIDE_EFFECTS_INLINE", "true")
os.environ.setdefault("TASK_WORKER_ENABLED", "false")

from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.auth.permissions import UserRole  # noqa: E402
from src.auth.security import create_access_token  # noqa: E402
from src.main import create_app  # noqa: E402


@pytest.fixture
def app() -> FastAPI:
    """Application without lifespan: no Cassandra or Redis connections."""
    return create_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a user."""

    def _headers(user_id: UUID, role: UserRole = UserRole.USER) -> dict[str, str]:
        token = create_access_token({"sub": str(user_id), "role": role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers
