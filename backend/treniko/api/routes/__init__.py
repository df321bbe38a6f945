# API routes
from treniko.api.routes import health
from treniko.api.routes import subscriptions

__all__ = ["health", "subscriptions"]
