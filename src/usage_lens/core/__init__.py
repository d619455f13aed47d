"""Core components: configuration and day controller."""

from usage_lens.core.config import Config, get_config

__all__ = ["Config", "get_config"]
