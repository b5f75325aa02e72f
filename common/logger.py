"""日志配置"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Iterable

from common.config import LoggingConfig

# 允许通过 extra 传入的上下文字段
_CONTEXT_FIELDS = ("openid", "login_type", "operation", "request_id", "token")

_REDACTED = "***"


class JSONFormatter(logging.Formatter):
    """JSON 格式日志"""

    def __init__(self, redact_fields: Iterable[str] = ()):
        super().__init__()
        self._redact = {f.lower() for f in redact_fields}

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # 添加额外上下文
        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                value = getattr(record, field)
                if field in self._redact and value:
                    value = _REDACTED
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(config: LoggingConfig) -> None:
    """配置日志系统"""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    # 清除已有 handler
    root_logger.handlers.clear()

    formatter = JSONFormatter(config.redact_fields)

    # 控制台输出
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # 文件输出（按日期轮转）
    log_path = Path(config.file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = TimedRotatingFileHandler(
        config.file_path,
        when="midnight",
        interval=1,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # 特定模块日志级别
    for module, level in config.module_levels.items():
        module_logger = logging.getLogger(module)
        module_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """获取命名 logger"""
    return logging.getLogger(name)
