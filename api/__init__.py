"""
HTTP boundary for the order pipeline.

create_app() builds a FastAPI application around an OrderPipeline:
- Order ingress and listing
- Notification subscription management
- Dead-letter inspection and redrive
"""

from api.main import create_app

__all__ = ["create_app"]
