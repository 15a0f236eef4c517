from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class TimeoutConfig:
    request_seconds: float = 30.0
    send_and_wait_seconds: float = 60.0
    stop_seconds: float = 5.0


@dataclass
class CacheConfig:
    models_enabled: bool = True
    models_max_size: int = 8
    models_ttl_seconds: Optional[float] = None  # None: cached until stop()


@dataclass
class ClientConfig:
    auto_start: bool = True
    timeouts: TimeoutConfig = dataclasses.field(default_factory=TimeoutConfig)
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        def build(dc_cls, key):
            values = data.get(key, {})
            return dc_cls(**values)

        return cls(
            auto_start=data.get("auto_start", True),
            timeouts=build(TimeoutConfig, "timeouts"),
            cache=build(CacheConfig, "cache"),
        )
