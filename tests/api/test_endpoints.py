"""
Endpoint tests for the jobdeck REST API, running against an in-memory
engine through FastAPI's TestClient.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from fastapi.testclient import TestClient

from _support import TEST_SECRET
from _support.fake_engine import FakeEngine, FlakyFactory
from _support.jobs import SampleJob
from jobdeck.api.app import create_app
from jobdeck.core.errors import StartupError
from jobdeck.core.scheduling import ExecutionRecord, JobKey


def add_records(client: TestClient, count: int) -> list[ExecutionRecord]:
    recorder = client.app.state.controller.recorder
    records = []
    for index in range(count):
        record = ExecutionRecord(
            job_key="DEFAULT.SampleJob",
            trigger_key="DEFAULT.SampleJob-trigger",
            fire_time=datetime(2026, 1, 1, 12, index, tzinfo=UTC),
            duration=0.1,
            succeeded=index % 2 == 0,
            error=None if index % 2 == 0 else f"failure {index}",
        )
        recorder.add(record)
        records.append(record)
    return records


class TestHealth:
    def test_live(self, client):
        response = client.get("/api/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_ready_after_startup(self, client):
        response = client.get("/api/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["state"] == "Running"

    def test_not_ready_after_shutdown(self, client, auth_headers):
        client.post("/api/scheduler/shutdown", headers=auth_headers)
        response = client.get("/api/health/ready")
        assert response.status_code == 503
        assert response.json()["state"] == "Shutdown"

    def test_health_needs_no_token(self, client):
        assert client.get("/api/health/live").status_code == 200


class TestAuth:
    def test_login(self, client):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "s3cret"})
        assert response.status_code == 200
        body = response.json()

        claims = jwt.decode(body["token"], TEST_SECRET, algorithms=["HS256"], audience="jobdeck-users")
        assert claims["sub"] == "admin"
        assert claims["role"] == "Admin"
        expected_exp = datetime.now(UTC) + timedelta(minutes=60)
        assert abs(claims["exp"] - expected_exp.timestamp()) < 10
        assert datetime.fromisoformat(body["expiresAt"]).timestamp() == claims["exp"]

    def test_username_case_insensitive(self, client):
        response = client.post("/api/auth/login", json={"username": "Admin", "password": "s3cret"})
        assert response.status_code == 200
        claims = jwt.decode(
            response.json()["token"], TEST_SECRET, algorithms=["HS256"], audience="jobdeck-users"
        )
        assert claims["sub"] == "Admin"

    def test_bad_password(self, client):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "S3CRET"})
        assert response.status_code == 401
        assert response.json()["message"] == "Authentication required."

    @pytest.mark.parametrize("body", [{"username": "admin"}, {"password": "s3cret"}, {}])
    def test_missing_field_is_invalid_request(self, client, body):
        response = client.post("/api/auth/login", json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request data."

    def test_issued_token_grants_access(self, client):
        token = client.post(
            "/api/auth/login", json={"username": "admin", "password": "s3cret"}
        ).json()["token"]
        response = client.get("/api/jobs", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


class TestTokenRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/scheduler/status"),
            ("post", "/api/scheduler/start"),
            ("get", "/api/jobs"),
            ("get", "/api/jobs/history"),
            ("post", "/api/jobs/SampleJob/pause"),
            ("delete", "/api/jobs/SampleJob"),
            ("get", "/api/triggers"),
        ],
    )
    def test_missing_token(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json()["statusCode"] == 401

    def test_invalid_token(self, client):
        response = client.get("/api/jobs", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_expired_token(self, client):
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "admin",
                "role": "Admin",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
                "iss": "jobdeck",
                "aud": "jobdeck-users",
            },
            TEST_SECRET,
            algorithm="HS256",
        )
        response = client.get("/api/jobs", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestScheduler:
    def test_status(self, client, auth_headers):
        response = client.get("/api/scheduler/status", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["schedulerName"] == "TestScheduler"
        assert body["state"] == "Running"
        assert body["isStarted"] is True
        assert body["isShutdown"] is False
        assert body["inStandbyMode"] is False
        assert body["threadPoolSize"] == 1

    def test_start_when_running(self, client, auth_headers):
        response = client.post("/api/scheduler/start", headers=auth_headers)
        assert response.json() == {"success": False, "message": "Scheduler is already running"}

    def test_standby_then_start(self, client, auth_headers):
        response = client.post("/api/scheduler/standby", headers=auth_headers)
        assert response.json() == {"success": True, "message": "Scheduler is in standby mode"}
        assert client.get("/api/scheduler/status", headers=auth_headers).json()["state"] == "Standby"

        response = client.post("/api/scheduler/start", headers=auth_headers)
        assert response.json() == {"success": True, "message": "Scheduler started"}

    def test_standby_twice(self, client, auth_headers):
        client.post("/api/scheduler/standby", headers=auth_headers)
        response = client.post("/api/scheduler/standby", headers=auth_headers)
        assert response.json() == {"success": False, "message": "Scheduler is already in standby mode"}

    def test_standby_after_shutdown(self, client, auth_headers):
        client.post("/api/scheduler/shutdown", headers=auth_headers)
        response = client.post("/api/scheduler/standby", headers=auth_headers)
        assert response.json() == {
            "success": False,
            "message": "Scheduler is not running (state: Shutdown)",
        }

    def test_shutdown_twice(self, client, auth_headers, fake_engine):
        first = client.post("/api/scheduler/shutdown", headers=auth_headers)
        assert first.json() == {
            "success": True,
            "message": "Scheduler shut down (waitForJobsToComplete=true)",
        }
        second = client.post("/api/scheduler/shutdown", headers=auth_headers)
        assert second.json() == {"success": False, "message": "Scheduler is already shut down"}
        assert fake_engine.shutdown_calls == [True]

    def test_shutdown_without_waiting(self, client, auth_headers, fake_engine):
        response = client.post(
            "/api/scheduler/shutdown", params={"waitForJobsToComplete": "false"}, headers=auth_headers
        )
        assert response.json()["message"] == "Scheduler shut down (waitForJobsToComplete=false)"
        assert fake_engine.shutdown_calls == [False]

    def test_shutdown_body(self, client, auth_headers, fake_engine):
        client.post(
            "/api/scheduler/shutdown", json={"waitForJobsToComplete": False}, headers=auth_headers
        )
        assert fake_engine.shutdown_calls == [False]

    def test_start_after_shutdown_fails(self, client, auth_headers):
        client.post("/api/scheduler/shutdown", headers=auth_headers)
        response = client.post("/api/scheduler/start", headers=auth_headers)
        assert response.status_code == 500


class TestJobs:
    def test_list(self, client, auth_headers):
        response = client.get("/api/jobs", headers=auth_headers)
        assert response.status_code == 200
        (job,) = response.json()
        assert job["jobKey"] == "DEFAULT.SampleJob"
        assert job["groupName"] == "DEFAULT"
        assert job["jobName"] == "SampleJob"
        assert job["jobType"] == "_support.jobs.SampleJob"
        assert job["triggerCount"] == 1
        assert job["nextFireTime"].startswith("2030-01-01")

    @pytest.mark.parametrize("action", ["pause", "resume", "trigger"])
    def test_actions(self, client, auth_headers, action):
        response = client.post(f"/api/jobs/SampleJob/{action}", headers=auth_headers)
        assert response.status_code == 200
        past = {"pause": "paused", "resume": "resumed", "trigger": "triggered"}[action]
        assert response.json() == {"success": True, "message": f"Job DEFAULT.SampleJob {past}"}

    def test_trigger_reaches_engine(self, client, auth_headers, fake_engine):
        client.post("/api/jobs/DEFAULT.SampleJob/trigger", headers=auth_headers)
        assert fake_engine.triggered == [(JobKey("SampleJob"), {})]

    def test_delete(self, client, auth_headers):
        response = client.delete("/api/jobs/SampleJob", headers=auth_headers)
        assert response.json() == {"success": True, "message": "Job DEFAULT.SampleJob deleted"}
        assert client.get("/api/jobs", headers=auth_headers).json() == []

    def test_unknown_job(self, client, auth_headers):
        response = client.post("/api/jobs/Missing/pause", headers=auth_headers)
        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "An unexpected error occurred."
        assert body["detailedMessage"] == "Job not found: DEFAULT.Missing"

    def test_delete_unknown_job(self, client, auth_headers):
        response = client.delete("/api/jobs/Missing", headers=auth_headers)
        assert response.status_code == 500

    def test_malformed_key(self, client, auth_headers):
        response = client.post("/api/jobs/group./pause", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request data."

    def test_trace_id_matches_request_id(self, client, auth_headers):
        headers = {**auth_headers, "X-Request-ID": "trace-abc"}
        response = client.post("/api/jobs/Missing/pause", headers=headers)
        assert response.json()["traceId"] == "trace-abc"
        assert response.headers["X-Request-ID"] == "trace-abc"


class TestHistory:
    def test_count_limits_items(self, client, auth_headers):
        records = add_records(client, 8)
        response = client.get("/api/jobs/history", params={"count": 5}, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["totalCount"] == 5
        assert [item["id"] for item in body["items"]] == [r.id for r in records[7:2:-1]]

    def test_default_count(self, client, auth_headers):
        add_records(client, 60)
        body = client.get("/api/jobs/history", headers=auth_headers).json()
        assert body["totalCount"] == 50

    def test_zero_count(self, client, auth_headers):
        add_records(client, 3)
        body = client.get("/api/jobs/history", params={"count": 0}, headers=auth_headers).json()
        assert body == {"totalCount": 0, "items": []}

    def test_negative_count_rejected(self, client, auth_headers):
        response = client.get("/api/jobs/history", params={"count": -1}, headers=auth_headers)
        assert response.status_code == 400

    def test_failed_record_fields(self, client, auth_headers):
        add_records(client, 2)
        newest = client.get("/api/jobs/history", params={"count": 1}, headers=auth_headers).json()["items"][0]
        assert newest["succeeded"] is False
        assert newest["errorMessage"] == "failure 1"
        assert newest["jobKey"] == "DEFAULT.SampleJob"

    def test_history_from_engine_firings(self, client, auth_headers, fake_engine):
        fake_engine.fire(JobKey("SampleJob"))
        body = client.get("/api/jobs/history", headers=auth_headers).json()
        assert body["totalCount"] == 1
        assert body["items"][0]["succeeded"] is True


class TestTriggers:
    def test_list(self, client, auth_headers):
        (trigger,) = client.get("/api/triggers", headers=auth_headers).json()
        assert trigger["triggerKey"] == "DEFAULT.SampleJob-trigger"
        assert trigger["jobKey"] == "DEFAULT.SampleJob"
        assert trigger["triggerType"] == "cron"
        assert trigger["cronExpression"] == "0/30 * * * * ?"
        assert trigger["triggerState"] == "Normal"

    def test_pause_and_resume(self, client, auth_headers):
        response = client.post("/api/triggers/SampleJob-trigger/pause", headers=auth_headers)
        assert response.json() == {"success": True, "message": "Trigger DEFAULT.SampleJob-trigger paused"}
        (trigger,) = client.get("/api/triggers", headers=auth_headers).json()
        assert trigger["triggerState"] == "Paused"

        response = client.post("/api/triggers/DEFAULT.SampleJob-trigger/resume", headers=auth_headers)
        assert response.json()["message"] == "Trigger DEFAULT.SampleJob-trigger resumed"

    def test_unknown_trigger(self, client, auth_headers):
        response = client.post("/api/triggers/nope/pause", headers=auth_headers)
        assert response.status_code == 500
        assert response.json()["detailedMessage"] == "Trigger not found: DEFAULT.nope"


class TestLifespan:
    def test_stop_on_exit_clears_history(self, app, fake_engine):
        with TestClient(app) as client:
            add_records(client, 3)
        assert fake_engine.shutdown_calls == [True]
        assert len(app.state.controller.recorder) == 0

    def test_startup_failure_propagates(self, settings, monkeypatch):
        async def no_wait(delay):
            return None

        factory = FlakyFactory(FakeEngine(), failures=10)
        app = create_app(settings, [SampleJob], engine_factory=factory)
        monkeypatch.setattr(app.state.controller, "_sleep", no_wait)
        with pytest.raises(StartupError):
            with TestClient(app):
                pass
        assert factory.calls == 4
