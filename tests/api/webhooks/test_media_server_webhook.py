"""Tests for media server play notifications."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from app.api.errors import app_error_handler
from app.api.v1.dependency import get_stream_service
from app.api.webhooks.media_server import router
from app.domain.live.stream.stream_domain import StreamService
from app.shared.api.utils import validation_exception_handler
from app.utils.app_errors import AppError


@pytest.fixture
def mock_stream_service() -> AsyncMock:
    return AsyncMock(spec=StreamService)


@pytest.fixture
def client(mock_stream_service: AsyncMock) -> TestClient:
    app = FastAPI()
    app.dependency_overrides[get_stream_service] = lambda: mock_stream_service
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return TestClient(app)


class TestMediaServerWebhook:
    def test_on_play(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.on_play.return_value = 1

        response = client.post("/webhooks/media/on_play", json={"stream_path": "/live/abc", "client_id": "c1"})

        assert response.status_code == 200
        assert response.json()["results"] == {"stream_id": "abc", "viewers": 1}
        mock_stream_service.on_play.assert_called_once_with("/live/abc")

    def test_on_play_done(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.on_play_done.return_value = 0

        response = client.post("/webhooks/media/on_play_done", json={"stream_path": "/live/abc"})

        assert response.status_code == 200
        assert response.json()["results"] == {"stream_id": "abc", "viewers": 0}
        mock_stream_service.on_play_done.assert_awaited_once_with("/live/abc")

    def test_unknown_stream_accepted(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.on_play.return_value = None

        response = client.post("/webhooks/media/on_play", json={"stream_path": "/live/unknown"})

        assert response.status_code == 200
        assert response.json()["results"]["viewers"] is None

    def test_missing_stream_path(self, client: TestClient):
        response = client.post("/webhooks/media/on_play", json={})

        assert response.status_code == 422
        assert response.json()["errcode"] == "E_INVALID_PARAMS"
