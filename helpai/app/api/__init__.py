"""HTTP routes."""

from helpai.app.api.diag import router as diag_router

__all__ = ["diag_router"]
