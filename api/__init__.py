"""
API Module for the dealership squad backend.

FastAPI application with routes for:
- Voice platform tool calls and squad events
- Shared inventory links
- Communication admin
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
