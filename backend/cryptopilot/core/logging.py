import logging
import sys
import uuid
from typing import Any, MutableMapping


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging to output to stdout with proper formatting."""
    root_logger = logging.getLogger()
    if any(getattr(h, "_cryptopilot", False) for h in root_logger.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    handler._cryptopilot = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Set lower log levels for some noisy libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def new_rid() -> str:
    """Short correlation id shared by a request and the jobs it spawns."""
    return uuid.uuid4().hex[:8]


class RidAdapter(logging.LoggerAdapter):
    """Prefix every message with ``[rid]`` and expose the rid as a record attribute."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        rid = self.extra.get("rid") if self.extra else None
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("rid", rid)
        kwargs["extra"] = extra
        return f"[{rid}] {msg}", kwargs


def with_rid(logger: logging.Logger, rid: str | None) -> RidAdapter:
    return RidAdapter(logger, {"rid": rid or "-"})
