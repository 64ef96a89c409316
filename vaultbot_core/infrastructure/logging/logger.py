import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from vaultbot_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if settings.log_redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info and not settings.log_redact_content:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("vaultbot_core")
    # 非调试模式下只记录 WARNING 以上；错误始终记录
    logger.setLevel(logging.DEBUG if settings.debug_mode else logging.WARNING)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "vaultbot.log", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


def set_debug_mode(enabled: bool) -> None:
    """宿主切换调试模式时调用，立即生效。"""

    logger.setLevel(logging.DEBUG if enabled else logging.WARNING)


logger = setup_logger()
