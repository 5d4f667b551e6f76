"""
Pytest configuration and fixtures for Vantage tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import AsyncMock, patch

import pytest

from vantage.config import Settings, clear_settings_cache
from vantage.llm.base import CallResponse
from vantage.llm.invoker import RetryingInvoker
from vantage.storage import (
    DurableSessionBackend,
    LocalBlobStore,
    LocalSessionBackend,
    SessionStore,
    SQLiteDocumentStore,
)
from vantage.types import TokenUsage
from vantage.workflow.stages import WorkflowConfig

Outcome = str | CallResponse | Exception
Handler = Callable[[str, str], Outcome]


class FakeCallClient:
    """Scripted CallClient.

    Either consumes ``outcomes`` in order or asks ``handler(model_id, prompt)``.
    A str outcome becomes a response with 10 total tokens; an exception
    instance is raised. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        outcomes: list[Outcome] | None = None,
        handler: Handler | None = None,
    ) -> None:
        self.outcomes = list(outcomes or [])
        self.handler = handler
        self.calls: list[tuple[str, str]] = []

    @property
    def provider(self) -> str:
        return "fake"

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        enable_web_search: bool = True,
    ) -> CallResponse:
        self.calls.append((model_id, prompt))
        if self.handler is not None:
            outcome = self.handler(model_id, prompt)
        elif self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = "OK"

        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, CallResponse):
            return outcome
        return CallResponse(
            text=outcome,
            usage=TokenUsage(prompt_tokens=6, completion_tokens=4, total_tokens=10),
            model=model_id,
        )

    def prompts_containing(self, marker: str) -> list[str]:
        return [prompt for _, prompt in self.calls if marker in prompt]


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "GEMINI_API_KEY": "test-gemini-key-1234567890",
        "MODEL_PRIMARY": "gemini-2.5-flash",
        "MODEL_FALLBACK": "gemini-2.0-flash",
        "INTER_CALL_DELAY_SECONDS": "0",
        "DATA_DIR": str(temp_dir / "data"),
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from vantage.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def fake_client() -> FakeCallClient:
    return FakeCallClient()


@pytest.fixture
def invoker(fake_client: FakeCallClient, no_sleep: AsyncMock) -> RetryingInvoker:
    return RetryingInvoker(fake_client, sleep=no_sleep)


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig(model_id="primary-model", fallback_model_id="fallback-model")


@pytest.fixture
def local_store(temp_dir: Path) -> SessionStore:
    """SessionStore with only the local backend."""
    return SessionStore(
        durable=None,
        local=LocalSessionBackend(LocalBlobStore(temp_dir / "local")),
    )


@pytest.fixture
async def document_store(temp_dir: Path) -> SQLiteDocumentStore:
    """Create an initialized document store for testing."""
    store = SQLiteDocumentStore(temp_dir / "db" / "vantage.db")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def session_store(document_store: SQLiteDocumentStore, temp_dir: Path) -> SessionStore:
    """SessionStore with both backends."""
    return SessionStore(
        durable=DurableSessionBackend(document_store),
        local=LocalSessionBackend(LocalBlobStore(temp_dir / "local")),
    )
