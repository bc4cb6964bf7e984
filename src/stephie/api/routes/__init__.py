"""API route modules."""

from stephie.api.routes.admin import cron_router, router as admin_router

__all__ = ["admin_router", "cron_router"]
