# shared/setup_base.py

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional

from redis.asyncio import Redis


class SetupBase:
    """
    Base class for Pulse service setup.

    Responsibilities:
      - Load Truth (from a local file when TRUTH_FILE is set, else Redis)
      - Extract the component definition
      - Inject declared env vars (truth defaults + shell overrides)
      - Pass through structural (non-env) configuration blocks
    """

    # Structural config blocks that should be preserved verbatim
    STRUCTURAL_KEYS = {
        "pulse",
        "store",
        "api",
    }

    def __init__(self, service_name: str, logger=None):
        self.service_name = service_name
        self.logger = logger

    def log(self, message: str, emoji: str = "ℹ️"):
        if self.logger:
            self.logger.info(message, emoji=emoji)

    def load_truth_file(self, path: str) -> Dict[str, Any]:
        self.log(f"loading Truth from file (path={path})", emoji="📥")
        try:
            truth = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(
                f"[setup:{self.service_name}] Truth file '{path}' unreadable: {e}"
            ) from e
        self.log("Truth loaded successfully", emoji="📄")
        return truth

    async def load_truth(self) -> Dict[str, Any]:
        truth_file = os.getenv("TRUTH_FILE")
        if truth_file:
            return self.load_truth_file(truth_file)

        truth_url = os.getenv("TRUTH_REDIS_URL", "redis://127.0.0.1:6379")
        truth_key = os.getenv("TRUTH_REDIS_KEY", "truth")

        self.log(
            f"loading Truth from Redis (url={truth_url}, key={truth_key})",
            emoji="📥",
        )

        redis = Redis.from_url(truth_url, decode_responses=True)
        try:
            raw = await redis.get(truth_key)
        finally:
            await redis.aclose()

        if not raw:
            raise RuntimeError(
                f"[setup:{self.service_name}] Truth key '{truth_key}' not found or empty"
            )

        truth = json.loads(raw)
        self.log("Truth loaded successfully", emoji="📄")
        return truth

    def build_config(self, truth: Dict[str, Any]) -> Dict[str, Any]:
        components = truth.get("components", {})
        comp: Optional[Dict[str, Any]] = components.get(self.service_name)

        if not comp:
            raise RuntimeError(
                f"[setup:{self.service_name}] component missing in Truth"
            )

        self.log("parsing component definition", emoji="🔍")

        cfg: Dict[str, Any] = {
            "service_name": self.service_name,
            "meta": comp.get("meta", {}),
        }

        # --------------------------------------------------
        # Inject declared env vars (truth defaults + shell overrides)
        # --------------------------------------------------
        env_declared = comp.get("env", {})
        if env_declared:
            overridden = 0
            for key, default_value in env_declared.items():
                value = os.getenv(key, default_value)
                cfg[key] = value
                if os.getenv(key) is not None:
                    overridden += 1

            self.log(
                f"injected {len(env_declared)} env vars into config "
                f"({overridden} overridden by shell)",
                emoji="🔧",
            )

        # --------------------------------------------------
        # Pass through structural configuration blocks
        # --------------------------------------------------
        for key in sorted(self.STRUCTURAL_KEYS):
            if key in comp:
                cfg[key] = comp[key]
                self.log(f"loaded structural config '{key}'", emoji="🧩")

        return cfg

    async def load(self) -> Dict[str, Any]:
        truth = await self.load_truth()
        cfg = self.build_config(truth)
        self.log(f"setup complete for {self.service_name}", emoji="🎉")
        return cfg
