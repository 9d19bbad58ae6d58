"""OrderTrack web route modules.

Each module exports a ``router`` (APIRouter instance) that
``ordertrack.web.app`` includes.
"""

from ordertrack.web.routes import health, orders

__all__ = ["health", "orders"]
