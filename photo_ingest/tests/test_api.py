"""
Tests for the Application Module.

This module contains tests for application assembly in photo_ingest/api.py:
startup configuration checks, health, documentation and the validation
error handler.
"""

import json
import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest
from fastapi.exceptions import RequestValidationError
from httpx import AsyncClient

from photo_ingest.api import configure_logging, create_app
from photo_ingest.core.config import ConfigurationError, Settings
from photo_ingest.services.admission_service import AdmissionController
from photo_ingest.utils.exception_utils import validation_exception_handler

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class TestLifespan:
    """Tests for startup checks."""

    @pytest.mark.asyncio
    async def test_startup_fails_without_storage_configuration(self) -> None:
        settings = Settings(
            _env_file=None,
            s3_endpoint=None,
            s3_bucket_name=None,
            s3_access_key_id=None,
            s3_secret_access_key=None,
            s3_region=None,
        )
        app = create_app(settings=settings)

        with pytest.raises(ConfigurationError, match="S3_ENDPOINT"):
            async with app.router.lifespan_context(app):
                pass

    @pytest.mark.asyncio
    async def test_startup_succeeds_when_configured(self, test_settings) -> None:
        app = create_app(settings=test_settings)

        async with app.router.lifespan_context(app):
            assert app.state.settings is test_settings


class TestCreateApp:
    """Tests for application assembly."""

    def test_admission_controller_built_from_settings(self, test_settings) -> None:
        test_settings.rate_limit_points = 4
        app = create_app(settings=test_settings)

        controller = app.state.admission_controller
        assert isinstance(controller, AdmissionController)
        assert controller.points == 4
        assert controller.duration_seconds == 60

    def test_injected_admission_controller(self, test_settings) -> None:
        controller = AdmissionController(points=1, duration_seconds=5)

        app = create_app(settings=test_settings, admission_controller=controller)

        assert app.state.admission_controller is controller

    def test_apps_have_separate_controllers(self, test_settings) -> None:
        first = create_app(settings=test_settings)
        second = create_app(settings=test_settings)

        assert first.state.admission_controller is not second.state.admission_controller


class TestEndpoints:
    """Tests for health and documentation endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_openapi_lists_routes(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/openapi.json")

        assert response.status_code == 200
        schema = response.json()
        assert "/api/upload" in schema["paths"]
        assert "/api/photos" in schema["paths"]
        assert schema["info"]["title"] == "Photo Ingest API"

    @pytest.mark.asyncio
    async def test_cors_allows_any_origin(self, async_client: AsyncClient) -> None:
        response = await async_client.options(
            "/api/photos",
            headers={
                "Origin": "https://gallery.example.com",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers


class TestValidationExceptionHandler:
    """Tests for the request validation error handler."""

    @pytest.mark.asyncio
    async def test_formats_errors(self) -> None:
        exc = RequestValidationError(
            [
                {
                    "loc": ("query", "limit"),
                    "msg": "Input should be a valid integer",
                    "type": "int_parsing",
                    "input": "abc",
                }
            ]
        )

        response = await validation_exception_handler(None, exc)

        assert response.status_code == 422
        assert json.loads(response.body) == {
            "errors": [
                {
                    "loc": ["query", "limit"],
                    "msg": "Input should be a valid integer",
                    "input": "abc",
                }
            ]
        }


class TestConfigureLogging:
    """Tests for LOG_LEVEL handling."""

    @pytest.fixture
    def root_level(self):
        root = logging.getLogger()
        previous = root.level
        yield root
        root.setLevel(previous)

    def test_applies_log_level(self, root_level) -> None:
        configure_logging(Settings(_env_file=None, log_level="debug"))

        assert root_level.level == logging.DEBUG

    def test_applies_when_handlers_exist(self, root_level) -> None:
        handler = logging.NullHandler()
        root_level.addHandler(handler)
        try:
            configure_logging(Settings(_env_file=None, log_level="WARNING"))
        finally:
            root_level.removeHandler(handler)

        assert root_level.level == logging.WARNING

    def test_log_level_from_environment_on_import(self) -> None:
        env = {**os.environ, "LOG_LEVEL": "DEBUG"}
        result = subprocess.run(
            [
                sys.executable,
                "-c",
                "import logging, photo_ingest.api; "
                "print(logging.getLevelName(logging.getLogger().level))",
            ],
            cwd=PROJECT_ROOT,
            env=env,
            capture_output=True,
            text=True,
            check=True,
        )

        assert result.stdout.strip().splitlines()[-1] == "DEBUG"
