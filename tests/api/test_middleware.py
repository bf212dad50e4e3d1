"""
Tests for API middleware: error translation and request IDs.
"""

from __future__ import annotations

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient

from jobdeck.api.middleware.errors import (
    CATEGORY_TO_STATUS,
    ErrorTranslatorMiddleware,
    status_for_exception,
    translate_exception,
)
from jobdeck.api.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from jobdeck.core.errors import (
    AuthenticationError,
    AuthorizationError,
    EngineError,
    JobNotFoundError,
    StartupError,
    ValidationError,
)


def make_app(exc: BaseException) -> FastAPI:
    app = FastAPI()
    app.add_middleware(ErrorTranslatorMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/boom")
    async def boom():
        raise exc

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    return app


class TestStatusMapping:
    def test_auth_errors_are_401(self):
        assert status_for_exception(AuthenticationError("no token")) == 401
        assert status_for_exception(AuthorizationError("wrong role")) == 401

    def test_validation_errors_are_400(self):
        assert status_for_exception(ValidationError("bad key")) == 400

    def test_foreign_value_error_is_500(self):
        assert status_for_exception(ValueError("run_date must be in the future")) == 500

    def test_everything_else_is_500(self):
        assert status_for_exception(JobNotFoundError("DEFAULT.A")) == 500
        assert status_for_exception(EngineError("down")) == 500
        assert status_for_exception(StartupError("failed")) == 500
        assert status_for_exception(KeyError("x")) == 500
        assert status_for_exception(RuntimeError("x")) == 500

    def test_mapping_completeness(self):
        for category, status in CATEGORY_TO_STATUS.items():
            assert status in (400, 401, 500), category


class TestTranslateException:
    def test_body(self):
        response = translate_exception(JobNotFoundError("DEFAULT.Missing"), "trace-1")
        assert response.status_code == 500
        assert json.loads(response.body) == {
            "statusCode": 500,
            "message": "An unexpected error occurred.",
            "detailedMessage": "Job not found: DEFAULT.Missing",
            "traceId": "trace-1",
        }

    def test_generic_message_per_status(self):
        body = json.loads(translate_exception(AuthenticationError("expired"), "t").body)
        assert body["message"] == "Authentication required."
        assert body["detailedMessage"] == "expired"

        body = json.loads(translate_exception(ValidationError("bad key"), "t").body)
        assert body["message"] == "Invalid request data."


class TestMiddlewareStack:
    def test_unhandled_exception_becomes_error_response(self):
        client = TestClient(make_app(RuntimeError("kaboom")))
        response = client.get("/boom", headers={REQUEST_ID_HEADER: "req-123"})
        assert response.status_code == 500
        body = response.json()
        assert body["detailedMessage"] == "kaboom"
        assert body["traceId"] == "req-123"

    def test_internal_value_error_is_not_client_error(self):
        client = TestClient(make_app(ValueError("bad interval")))
        response = client.get("/boom")
        assert response.status_code == 500
        assert response.json()["message"] == "An unexpected error occurred."

    def test_generated_request_id(self):
        client = TestClient(make_app(ValidationError("bad")))
        response = client.get("/boom")
        assert response.status_code == 400
        assert response.json()["traceId"]

    def test_request_id_echoed(self):
        client = TestClient(make_app(RuntimeError()))
        response = client.get("/ok", headers={REQUEST_ID_HEADER: "abc"})
        assert response.status_code == 200
        assert response.headers[REQUEST_ID_HEADER] == "abc"

    def test_request_id_generated_when_absent(self):
        client = TestClient(make_app(RuntimeError()))
        response = client.get("/ok")
        assert len(response.headers[REQUEST_ID_HEADER]) == 32
