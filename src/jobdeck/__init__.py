"""jobdeck - control plane for a background job scheduler.

Lifecycle management, job and trigger operations, execution history and a
token-protected HTTP API over an APScheduler engine.
"""

__version__ = "0.1.0"
