"""jobdeck HTTP API (FastAPI).

Start with :func:`jobdeck.api.app.create_app`.
"""

from jobdeck.api.app import create_app

__all__ = ["create_app"]
