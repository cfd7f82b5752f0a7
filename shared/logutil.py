# shared/logutil.py
from datetime import datetime, UTC
from typing import Dict, Any, Optional
import os
import sys

STATUS_EMOJI = {
    "INFO": "ℹ️",
    "WARN": "⚠️",
    "ERROR": "❌",
    "DEBUG": "🔍",
    "OK": "✅",
}

# Log level hierarchy (lower number = more severe)
LOG_LEVELS = {
    "ERROR": 0,
    "WARN": 1,
    "WARNING": 1,
    "INFO": 2,
    "OK": 2,
    "DEBUG": 3,
}


class LogUtil:
    """
    Two-phase logger:
      - Bootstrap phase: env-driven (LOG_LEVEL, PULSE_DEBUG)
      - Configured phase: config-driven (Truth component block)

    Components receive a child logger via child("lifecycle") so every
    line carries both the service and the component that emitted it.

    Logging must NEVER raise.
    """

    def __init__(self, service_name: str, component: Optional[str] = None, stream=None):
        self.service_name = service_name
        self.component = component
        self._stream = stream

        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_level = LOG_LEVELS.get(env_level, LOG_LEVELS["INFO"])

        if os.getenv("PULSE_DEBUG", "false").lower() == "true":
            self.log_level = LOG_LEVELS["DEBUG"]

        self.debug_enabled = self.log_level >= LOG_LEVELS["DEBUG"]
        self._configured = False

    # -------------------------------------------------
    # Configuration phase
    # -------------------------------------------------

    def configure_from_config(self, config: Dict[str, Any]) -> None:
        if self._configured:
            return

        try:
            cfg_level = str(config.get("LOG_LEVEL", "")).upper()
            if cfg_level and cfg_level in LOG_LEVELS:
                self.log_level = LOG_LEVELS[cfg_level]

            if str(config.get("PULSE_DEBUG", "false")).lower() == "true":
                self.log_level = LOG_LEVELS["DEBUG"]

            self.debug_enabled = self.log_level >= LOG_LEVELS["DEBUG"]
            self._configured = True

            level_name = self.level_name()
            self.info(
                f"[LOG CONFIGURED] level={level_name}",
                emoji="🧪" if self.debug_enabled else "🔊",
            )
        except Exception:
            # Logging must never break the process
            pass

    def level_name(self) -> str:
        for name, value in LOG_LEVELS.items():
            if value == self.log_level and name not in ("WARNING", "OK"):
                return name
        return "INFO"

    def child(self, component: str) -> "LogUtil":
        """Return a logger sharing this logger's level, tagged with a component."""
        logger = LogUtil(self.service_name, component=component, stream=self._stream)
        logger.log_level = self.log_level
        logger.debug_enabled = self.debug_enabled
        logger._configured = self._configured
        return logger

    # -------------------------------------------------
    # Internal formatting
    # -------------------------------------------------

    def _stamp(self, level: str, message: str, emoji: str):
        now = datetime.now(UTC).isoformat(timespec="seconds")
        symbol = emoji or STATUS_EMOJI.get(level, "")
        name = f"{self.service_name}:{self.component}" if self.component else self.service_name
        return f"[{now}][{name}][{level}]{symbol} {message}"

    def _emit(self, level: str, message: str, emoji: str = ""):
        try:
            msg_level = LOG_LEVELS.get(level, LOG_LEVELS["INFO"])
            if msg_level > self.log_level:
                return
            stream = self._stream or sys.stdout
            stream.write(self._stamp(level, message, emoji) + "\n")
            stream.flush()
        except Exception:
            # Absolute last line of defense
            pass

    # -------------------------------------------------
    # Public API
    # -------------------------------------------------

    def info(self, message: str, emoji: str = STATUS_EMOJI["INFO"]):
        self._emit("INFO", message, emoji)

    def warn(self, message: str, emoji: str = STATUS_EMOJI["WARN"]):
        self._emit("WARN", message, emoji)

    def warning(self, message: str, emoji: str = STATUS_EMOJI["WARN"]):
        # Alias for compatibility with standard logging APIs
        self.warn(message, emoji)

    def error(self, message: str, emoji: str = STATUS_EMOJI["ERROR"]):
        self._emit("ERROR", message, emoji)

    def debug(self, message: str, emoji: str = STATUS_EMOJI["DEBUG"]):
        self._emit("DEBUG", message, emoji)

    def ok(self, message: str, emoji: str = STATUS_EMOJI["OK"]):
        self._emit("OK", message, emoji)
