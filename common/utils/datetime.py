"""时间处理工具"""

import threading
import time
from datetime import datetime

_last_ms = 0
_ms_lock = threading.Lock()


def now() -> datetime:
    """获取当前时间"""
    return datetime.now()


def seconds_since(dt: datetime) -> float:
    """计算距离给定时间过去了多少秒"""
    return (datetime.now() - dt).total_seconds()


def monotonic_ms() -> int:
    """毫秒时间戳，同一进程内严格递增"""
    global _last_ms
    with _ms_lock:
        current = time.time_ns() // 1_000_000
        if current <= _last_ms:
            current = _last_ms + 1
        _last_ms = current
        return current
