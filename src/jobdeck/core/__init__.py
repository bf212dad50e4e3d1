"""jobdeck core -- errors, logging, settings, retry, auth and scheduling.

Architecture::

    errors.py       Typed error hierarchy with categories (JobdeckError)
    logging.py      structlog configuration and context helpers
    settings.py     pydantic-settings configuration (JOBDECK_*, .env, YAML)
    retry.py        Linear backoff and the async retry runner used at startup
    auth.py         Bearer token gateway (PyJWT, HS256)
    scheduling/     Engine contract, APScheduler engine, history, controller
"""
