"""Web routes for Usage Lens."""

from usage_lens.web.routes import api

__all__ = ["api"]
