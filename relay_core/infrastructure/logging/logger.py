import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from relay_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(log_dir: str | None = None) -> logging.Logger:
    logger = logging.getLogger("relay_core")
    logger.setLevel(logging.INFO)
    if any(getattr(h, "_relay_core", False) for h in logger.handlers):
        return logger
    path = Path(log_dir or settings.log_dir)
    path.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(path / "relay.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(redact=settings.log_redact_content))
    fh._relay_core = True  # type: ignore[attr-defined]
    logger.addHandler(fh)
    return logger


logger = setup_logger()
