"""Shared fixtures: a throwaway SQLite database and collaborator doubles."""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ.setdefault("SERVICE_NAME", "test")

import httpx  # noqa: E402
import pytest  # noqa: E402

from marketplace.common.db import Base, SessionLocal, engine  # noqa: E402
from marketplace.services.notification import models as notification_models  # noqa: E402,F401
from marketplace.services.orders import models as order_models  # noqa: E402,F401
from marketplace.services.payments import models as payment_models  # noqa: E402,F401
from marketplace.services.products import models as product_models  # noqa: E402,F401


@pytest.fixture
def session_factory():
    """Fresh schema for every test."""

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield SessionLocal
    Base.metadata.drop_all(engine)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it saw."""

    def __init__(self, handler) -> None:
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def matching(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def recording_transport():
    return RecordingTransport
