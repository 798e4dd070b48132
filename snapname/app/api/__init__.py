"""API endpoints package for SnapName."""

from snapname.app.api.image import router as image_router

__all__ = [
    "image_router",
]
