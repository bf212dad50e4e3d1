"""
FastAPI application factory.

``create_app()`` wires the scheduler controller, auth gateway, middleware,
routers and lifespan events into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root: the history recorder,
    the engine factory, the controller and the gateway are created here and
    handed to each other explicitly, so nothing in the codebase reaches for
    a global.

Tags:
    jobdeck, api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from jobdeck import __version__
from jobdeck.api.middleware.errors import ErrorTranslatorMiddleware, request_validation_handler
from jobdeck.api.middleware.request_id import RequestIDMiddleware
from jobdeck.core.auth import AuthGateway
from jobdeck.core.logging import get_logger
from jobdeck.core.scheduling import (
    ExecutionHistoryRecorder,
    JobRegistryBuilder,
    SchedulerController,
    SchedulerFactory,
)
from jobdeck.core.scheduling.protocol import EngineFactory, Job
from jobdeck.core.settings import JobConfig, JobdeckSettings, get_settings

log = get_logger("jobdeck.api")

Registration = type[Job] | tuple[type[Job], JobConfig | None]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: start the scheduler, stop it on the way out.

    A startup failure (retries exhausted) propagates, so the server never
    reports itself ready.  Setting ``app.state.lifecycle_cancel`` abandons a
    startup that is still retrying.
    """
    controller: SchedulerController = app.state.controller
    cancel: asyncio.Event = app.state.lifecycle_cancel

    log.info("jobdeck_api_starting", version=__version__)
    await controller.start(cancel)
    try:
        yield
    finally:
        log.info("jobdeck_api_shutting_down")
        await controller.stop()
        controller.recorder.clear()


def create_app(
    settings: JobdeckSettings | None = None,
    registrations: Iterable[Registration] = (),
    *,
    engine_factory: EngineFactory | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : JobdeckSettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    registrations : iterable
        Job classes, optionally paired with a ``JobConfig``, to schedule at
        startup.  Without a pair the configured ``jobs`` entry whose ``type``
        contains the class name is used.
    engine_factory : EngineFactory | None
        Override the engine (tests pass an in-memory fake).  Defaults to an
        APScheduler engine built from ``settings.scheduler``.
    """
    settings = settings or get_settings()

    recorder = ExecutionHistoryRecorder(capacity=settings.scheduler.history_capacity)
    plans = JobRegistryBuilder(settings.jobs).add_all(registrations).build()
    controller = SchedulerController(
        engine_factory or SchedulerFactory(settings.scheduler),
        recorder,
        plans,
        wait_for_jobs_on_stop=settings.scheduler.wait_for_jobs_on_stop,
    )
    gateway = AuthGateway(settings.auth)

    prefix = settings.api_prefix.rstrip("/")
    app = FastAPI(
        title="jobdeck API",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url=f"{prefix}/docs",
        redoc_url=f"{prefix}/redoc",
        openapi_url=f"{prefix}/openapi.json",
    )

    # Stash components on app state for dependencies
    app.state.settings = settings
    app.state.controller = controller
    app.state.gateway = gateway
    app.state.lifecycle_cancel = asyncio.Event()

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (innermost → outermost) ────────────────────────────
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(ErrorTranslatorMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from jobdeck.api.routers import auth, health, jobs, scheduler, triggers

    app.include_router(health.router, prefix=prefix, tags=["health"])
    app.include_router(auth.router, prefix=prefix, tags=["auth"])
    app.include_router(scheduler.router, prefix=prefix, tags=["scheduler"])
    app.include_router(jobs.router, prefix=prefix, tags=["jobs"])
    app.include_router(triggers.router, prefix=prefix, tags=["triggers"])

    return app
