"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import bulk_orders

__all__ = [
    "bulk_orders",
]
