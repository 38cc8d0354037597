"""
Shared test fixtures for the audio LTI service.

Fixtures:
  - test_settings:      Settings(env="test") with a known LTI secret
  - database:           In-memory SQLite database with tables created
  - fake_redis_client:  fakeredis.FakeAsyncRedis instance
  - session_store:      RedisSessionStore backed by fake Redis
  - storage:            LocalStorageBackend in a temp directory
  - outcome_requests:   Requests captured by the fake outcome service
  - outcome_reporter:   OutcomeReporter wired to the fake outcome service
  - make_app:           Factory building an app with overridable components
  - app / client:       Default app and httpx.AsyncClient for it
  - launch:             Performs a correctly signed LTI launch on a client
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import fakeredis
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from oauthlib.oauth1 import SIGNATURE_TYPE_BODY, Client
from sqlalchemy import func, select

from audio_api.app import get_app
from audio_api.database import Database
from audio_api.lti.outcomes import OutcomeReporter
from audio_api.lti.sessions import SESSION_COOKIE_NAME, LaunchContext, RedisSessionStore
from audio_api.settings import Settings, clear_settings_cache
from audio_lti.models import SubmissionModel
from audio_lti.storage import LocalStorageBackend

TEST_LTI_SECRET = "test-lti-secret"
TEST_CONSUMER_KEY = "test-consumer-key"
TEST_BASE_URL = "http://test"
OUTCOME_URL = "https://lms.example.com/api/lti/outcomes"

POX_SUCCESS_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<imsx_POXEnvelopeResponse xmlns="http://www.imsglobal.org/services/ltiv1p1/xsd/imsoms_v1p0">
  <imsx_POXHeader>
    <imsx_POXResponseHeaderInfo>
      <imsx_version>V1.0</imsx_version>
      <imsx_messageIdentifier>resp-1</imsx_messageIdentifier>
      <imsx_statusInfo>
        <imsx_codeMajor>success</imsx_codeMajor>
        <imsx_severity>status</imsx_severity>
      </imsx_statusInfo>
    </imsx_POXResponseHeaderInfo>
  </imsx_POXHeader>
  <imsx_POXBody><replaceResultResponse/></imsx_POXBody>
</imsx_POXEnvelopeResponse>"""


# ---------------------------------------------------------------------------
# Launch helpers
# ---------------------------------------------------------------------------


def launch_params(
    user_id: str = "u1",
    course_id: str | None = "c1",
    assignment_id: str | None = "a1",
    outcome_url: str | None = None,
    **extras: str,
) -> dict[str, str]:
    """Build LTI 1.1 basic launch parameters as Canvas sends them."""
    params = {
        "lti_message_type": "basic-lti-launch-request",
        "lti_version": "LTI-1p0",
        "resource_link_id": "resource-link-1",
        "user_id": user_id,
        "roles": "Learner",
    }
    if course_id is not None:
        params["context_id"] = course_id
    if assignment_id is not None:
        params["custom_canvas_assignment_id"] = assignment_id
    if outcome_url:
        params["lis_outcome_service_url"] = outcome_url
        params["lis_result_sourcedid"] = f"sourcedid-{user_id}"
    params.update(extras)
    return params


def sign_launch(
    params: dict[str, str],
    url: str = f"{TEST_BASE_URL}/launch",
    secret: str = TEST_LTI_SECRET,
    consumer_key: str = TEST_CONSUMER_KEY,
) -> tuple[str, dict[str, str]]:
    """Sign launch params the way an LTI consumer does (OAuth1 body signature)."""
    client = Client(consumer_key, client_secret=secret, signature_type=SIGNATURE_TYPE_BODY)
    _, headers, body = client.sign(
        url,
        http_method="POST",
        body=params,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    return body, headers


AUDIO_BYTES = b"\x1a\x45\xdf\xa3" + b"\x00" * 2044


def audio_file(data: bytes = AUDIO_BYTES, content_type: str = "audio/webm") -> dict:
    """Multipart ``files=`` payload as the recorder page sends it."""
    return {"audio": ("recording.webm", data, content_type)}


def new_client(app) -> AsyncClient:
    """A client with its own cookie jar (i.e. a separate browser)."""
    return AsyncClient(transport=ASGITransport(app=app), base_url=TEST_BASE_URL)


async def count_submissions(database: Database) -> int:
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(SubmissionModel))
        return result.scalar_one()


async def session_context(app, client: AsyncClient) -> LaunchContext | None:
    """Read the server-side session bound to a client's cookie."""
    session_id = app.state.session_cookie.unsign(client.cookies.get(SESSION_COOKIE_NAME))
    if session_id is None:
        return None
    return await app.state.session_store.get(session_id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def test_settings(tmp_path) -> Settings:
    clear_settings_cache()
    return Settings(
        _env_file=None,
        env="test",
        lti_secret=TEST_LTI_SECRET,
        session_secret="test-session-secret",
        session_ttl_seconds=3600,
        redis_url="",
        database_path=":memory:",
        upload_dir=str(tmp_path / "uploads"),
        aws_access_key_id="",
        aws_secret_access_key="",
        s3_bucket_name="",
        public_url="",
        log_level="INFO",
    )


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def database() -> AsyncGenerator[Database, None]:
    db = Database.from_path(":memory:")
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture(scope="function")
def fake_redis_client() -> fakeredis.FakeAsyncRedis:
    server = fakeredis.FakeServer()
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest.fixture(scope="function")
def session_store(fake_redis_client) -> RedisSessionStore:
    return RedisSessionStore(fake_redis_client, ttl_seconds=3600)


@pytest.fixture(scope="function")
def storage(test_settings: Settings) -> LocalStorageBackend:
    return LocalStorageBackend(test_settings.upload_dir)


@pytest.fixture(scope="function")
def outcome_requests() -> list[httpx.Request]:
    return []


@pytest_asyncio.fixture(scope="function")
async def outcome_reporter(outcome_requests) -> AsyncGenerator[OutcomeReporter, None]:
    def handler(request: httpx.Request) -> httpx.Response:
        outcome_requests.append(request)
        return httpx.Response(200, text=POX_SUCCESS_RESPONSE)

    reporter = OutcomeReporter(
        TEST_LTI_SECRET,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    yield reporter
    await reporter.aclose()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def make_app(test_settings, database, session_store, storage, outcome_reporter):
    """Factory fixture: make_app(settings=..., storage=...) -> FastAPI."""

    def _make(**overrides: Any):
        components = {
            "database": database,
            "session_store": session_store,
            "storage": storage,
            "outcome_reporter": outcome_reporter,
        }
        settings = overrides.pop("settings", test_settings)
        components.update(overrides)
        return get_app(settings, **components)

    return _make


@pytest.fixture(scope="function")
def app(make_app):
    return make_app()


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with new_client(app) as c:
        yield c


@pytest.fixture
def launch():
    """Factory fixture: await launch(client, user_id=..., ...) -> response."""

    async def _launch(client: AsyncClient, **kwargs: Any) -> httpx.Response:
        body, headers = sign_launch(launch_params(**kwargs))
        return await client.post("/launch", content=body, headers=headers)

    return _launch
