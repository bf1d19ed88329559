"""REST and WebSocket surface."""

from cronpush.web.server import ApiServer, create_web_app

__all__ = ["ApiServer", "create_web_app"]
