"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from treniko.api.dependencies.entitlements import require_feature

__all__ = ["require_feature"]
