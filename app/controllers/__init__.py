"""FastAPI routers acting as controllers in the MVC architecture."""

from . import media, subjects

__all__ = ["media", "subjects"]
