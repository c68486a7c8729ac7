"""Remote document sources."""

from .base import DocumentSource

__all__ = ["DocumentSource"]
