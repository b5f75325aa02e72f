"""本地持久化键值存储"""

import copy
import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from common.config import settings
from common.exceptions import StorageFailure
from common.logger import get_logger

logger = get_logger(__name__)


class StorageKeys:
    """存储键（与小程序端保持一致）"""

    USER_INFO = "userInfo"
    OPENID = "openid"
    TOKEN = "token"
    IS_LOGGED_IN = "isLoggedIn"
    USER_ID = "userId"

    # 作为一个逻辑整体写入/清除的会话键
    SESSION_GROUP = (USER_INFO, OPENID, TOKEN, IS_LOGGED_IN)


class KeyValueStore(ABC):
    """同步键值存储，每个操作独立失败，失败时抛出 StorageFailure"""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    """进程内存储，用于测试和无盘环境"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


class JsonFileStore(KeyValueStore):
    """单个 JSON 文件作为持久化存储

    读走内存快照；每次写入整文件重写（临时文件 + os.replace），
    写失败时快照保持不变。
    """

    def __init__(self, file_path: Optional[Path] = None):
        self._path = Path(file_path) if file_path else settings.storage_file
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Storage file unreadable, starting empty: {self._path} ({e})")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Storage file is not a JSON object, starting empty: {self._path}")
            return {}
        return data

    def _flush(self, data: Dict[str, Any], key: str) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageFailure(f"Failed to persist key {key}: {e}", key=key) from e

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = dict(self._data)
            data[key] = copy.deepcopy(value)
            self._flush(data, key)
            self._data = data

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            data = dict(self._data)
            del data[key]
            self._flush(data, key)
            self._data = data
