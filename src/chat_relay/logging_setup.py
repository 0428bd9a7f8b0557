import json
import logging


class StructuredFormatter(logging.Formatter):
    """Formatter that appends a record's ``structured`` payload as JSON."""

    def __init__(self, fmt: str | None = None):
        super().__init__(fmt or "%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        structured = getattr(record, "structured", None)
        if structured:
            line = f"{line} {json.dumps(structured, ensure_ascii=False, default=str)}"
        return line


def setup_logging(level: str = "INFO") -> None:
    """Route all logs through a single stderr handler with structured output."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
