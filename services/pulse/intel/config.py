"""Runtime configuration for the Pulse service."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


@dataclass
class PulseConfig:
    """Configuration for the engine, its store and the HTTP API."""
    max_alerts: int = 3
    max_insights: int = 3
    dismiss_cooldown_days: int = 7
    alert_max_age_days: int = 30
    progress_days: int = 14
    # Store - should be set from Truth config
    namespace: str = "pulse"
    redis_url: str = "redis://127.0.0.1:6379"
    store_ttl_seconds: Optional[int] = 86400 * 60
    # API
    host: str = "127.0.0.1"
    port: int = 8096

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "PulseConfig":
        """
        Build from a SetupBase config dict.

        The structural `pulse` block supplies values; env vars PULSE_REDIS_URL,
        PULSE_HOST and PULSE_PORT override it.
        """
        config = config or {}
        block = dict(config.get("pulse") or {})

        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {k: v for k, v in block.items() if k in known}

        env_overrides = {
            "redis_url": os.getenv("PULSE_REDIS_URL") or config.get("PULSE_REDIS_URL"),
            "host": os.getenv("PULSE_HOST") or config.get("PULSE_HOST"),
            "port": os.getenv("PULSE_PORT") or config.get("PULSE_PORT"),
        }
        values.update({k: v for k, v in env_overrides.items() if v})

        cfg = cls(**values)
        cfg.port = int(cfg.port)
        for name in ("max_alerts", "max_insights", "dismiss_cooldown_days",
                     "alert_max_age_days", "progress_days"):
            setattr(cfg, name, int(getattr(cfg, name)))
        return cfg
