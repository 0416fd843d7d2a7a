"""HTTP API for the admin dashboard."""

from inbox_health.api.app import create_app

__all__ = ["create_app"]
