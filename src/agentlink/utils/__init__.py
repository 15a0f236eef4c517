"""Client-wide configuration."""

from .config import CacheConfig, ClientConfig, TimeoutConfig

__all__ = [
    "CacheConfig",
    "ClientConfig",
    "TimeoutConfig",
]
