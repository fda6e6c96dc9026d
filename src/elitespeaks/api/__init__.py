"""HTTP API for Elite Speaks."""

from elitespeaks.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
