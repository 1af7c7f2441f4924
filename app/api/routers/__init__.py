"""
app/api/routers package marker.
"""

from app.api.routers.cron_router import router as cron_router

__all__ = ["cron_router"]
