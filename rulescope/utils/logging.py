import json
import logging
from datetime import datetime, timezone

from rich.logging import RichHandler


class StructuredLogger:
    """Logger that supports both human-readable and JSON output."""

    def __init__(self, structured: bool = False, level: str = "INFO"):
        self.structured = structured
        self.level = getattr(logging, level.upper(), logging.INFO)

        self.logger = logging.getLogger("rulescope")
        self.logger.setLevel(self.level)
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)

        if self.structured:
            # JSON lines are printed directly, nothing goes through the handler
            handler = logging.NullHandler()
        else:
            handler = RichHandler(rich_tracebacks=True, markup=False, show_path=False)
            handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        self.logger.addHandler(handler)

    def info(self, message: str, **kwargs):
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, **kwargs)

    def _log(self, level: str, message: str, **kwargs):
        level_val = getattr(logging, level, logging.INFO)
        if level_val < self.level:
            return

        if self.structured:
            log_entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": level,
                "message": str(message),
                **kwargs,
            }
            print(json.dumps(log_entry, default=str))
            return

        context_str = ""
        if kwargs:
            context_items = [f"{k}={v}" for k, v in kwargs.items()]
            context_str = f" ({', '.join(context_items)})"

        formatted_msg = f"{message}{context_str}"

        if level == "INFO":
            self.logger.info(formatted_msg)
        elif level == "WARNING":
            self.logger.warning(f"[WARN] {formatted_msg}")
        elif level == "ERROR":
            self.logger.error(f"[ERROR] {formatted_msg}")
        elif level == "DEBUG":
            self.logger.debug(f"[DEBUG] {formatted_msg}")


# Global instance, replaced by configure_logging()
logger = StructuredLogger()


def configure_logging(structured: bool, level: str) -> StructuredLogger:
    """Configure the global logger.

    Components look the logger up through this module at call time, so a
    reconfigured instance takes effect immediately.
    """
    global logger
    logger = StructuredLogger(structured=structured, level=level)
    return logger


def get_logger() -> StructuredLogger:
    """Return the currently configured global logger."""
    return logger
