"""Shared fixtures: throwaway SQLite databases and a fake Gemini endpoint."""
import asyncio
import uuid
import json
from typing import Any

import httpx
import pytest

from imagegate.config import Settings
from imagegate.database import Database
from imagegate.models import User
from imagegate.services.gemini import GeminiClient
from imagegate.utils.rate_limiter import limiter

ADMIN_TOKEN = "admin-secret"
PNG_B64 = "iVBORw0KGgo="


def image_candidate(data: str = PNG_B64, mime_type: str = "image/png", finish_reason: str = "STOP") -> dict:
    return {
        "content": {
            "role": "model",
            "parts": [{"inlineData": {"mimeType": mime_type, "data": data}}],
        },
        "finishReason": finish_reason,
    }


def text_candidate(text: str = "I cannot draw that.", finish_reason: str = "STOP") -> dict:
    return {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": finish_reason}


class FakeGemini:
    """Stand-in for the generateContent endpoint, served via httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: Any = {"candidates": [image_candidate()]}
        self.raw_body: bytes | None = None
        self.delay = 0.0
        self.error: Exception | None = None

    def reply(self, candidates: list[dict] | None = None, **extra) -> None:
        self.status_code = 200
        self.body = {"candidates": candidates or [], **extra}

    def fail(self, status_code: int, body: Any = None, raw_body: bytes | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.raw_body = raw_body

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(autouse=True)
def _no_rate_limits():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'imagegate.db'}",
        auto_migrate=False,
        db_connect_retries=2,
        db_retry_delay_seconds=0,
        db_heartbeat_interval_seconds=3600,
        gemini_api_key="test-key",
        gemini_base_url="https://gemini.test",
        gemini_timeout_seconds=5,
        admin_token=ADMIN_TOKEN,
        log_level="DEBUG",
    )


@pytest.fixture
async def db(settings):
    database = Database.from_settings(settings)
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def make_user(db):
    async def _make_user(credits: int = 100, token: str | None = None) -> User:
        async with db.session() as session:
            user = User(token=token or uuid.uuid4().hex, credits_balance=credits)
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def gemini_client(settings, fake_gemini) -> GeminiClient:
    return GeminiClient(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout_seconds,
        transport=fake_gemini.transport,
    )
