"""配置管理"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ValidationError
from dotenv import load_dotenv

from common.exceptions import ConfigError

# 加载 .env
load_dotenv()

# 项目根目录
BASE_DIR = Path(__file__).resolve().parent.parent


class GatewayConfig(BaseModel):
    base_url: str = "http://localhost:8010/functions"
    login_function: str = "login"
    save_user_info_function: str = "saveUserInfo"
    get_user_info_function: str = "getUserInfo"
    timeout_seconds: float = 10.0
    connect_timeout_seconds: float = 5.0


class StorageConfig(BaseModel):
    file_path: str = "./identity_data/storage.json"


class ProfileDefaultsConfig(BaseModel):
    age: int = 28
    height: int = 170
    weight: int = 65
    phone: str = ""
    wechat_nickname: str = "微信用户"
    guest_nickname: str = "游客用户"
    gender_labels: Dict[int, str] = {1: "男", 2: "女"}
    unknown_gender: str = "未知"


class SessionConfig(BaseModel):
    # None 表示网络不可达时一直信任本地会话，直到下次验证成功或主动退出
    max_unverified_trust_seconds: Optional[int] = None
    push_profile_after_login: bool = True
    guest_id_prefix: str = "guest_"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "logs/identity.log"
    backup_count: int = 30
    module_levels: Dict[str, str] = {}
    redact_fields: List[str] = ["token", "authorization"]


class Settings(BaseModel):
    """全局配置"""

    # 本地桥接服务（UI 壳调用）
    host: str = "127.0.0.1"
    port: int = 8020
    debug: bool = False

    # 子配置
    gateway: GatewayConfig = GatewayConfig()
    storage: StorageConfig = StorageConfig()
    profile_defaults: ProfileDefaultsConfig = ProfileDefaultsConfig()
    session: SessionConfig = SessionConfig()
    logging: LoggingConfig = LoggingConfig()

    @property
    def storage_file(self) -> Path:
        path = Path(self.storage.file_path)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path.resolve()


def _resolve_env_vars(value: Any) -> Any:
    """递归解析配置中的环境变量引用 ${VAR:default}"""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        inner = value[2:-1]
        if ":" in inner:
            var_name, default = inner.split(":", 1)
        else:
            var_name, default = inner, ""
        return os.getenv(var_name, default)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def load_settings(yaml_path: Optional[Path] = None) -> Settings:
    """加载配置：settings.yaml + 环境变量"""
    config_data: Dict[str, Any] = {}

    # 从 settings.yaml 加载
    yaml_path = yaml_path or BASE_DIR / "config" / "settings.yaml"
    if yaml_path.exists():
        with open(yaml_path, "r", encoding="utf-8") as f:
            try:
                yaml_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {yaml_path}", detail=str(e)) from e
            config_data = _resolve_env_vars(yaml_data)

    # 环境变量覆盖
    env_overrides = {
        "host": os.getenv("IDENTITY_HOST", config_data.get("host", "127.0.0.1")),
        "port": int(os.getenv("IDENTITY_PORT", config_data.get("port", 8020))),
        "debug": os.getenv("IDENTITY_DEBUG", "false").lower() == "true",
    }
    config_data.update({k: v for k, v in env_overrides.items() if v})

    gateway_url = os.getenv("IDENTITY_GATEWAY_URL")
    if gateway_url:
        config_data.setdefault("gateway", {})["base_url"] = gateway_url

    storage_path = os.getenv("IDENTITY_STORAGE_PATH")
    if storage_path:
        config_data.setdefault("storage", {})["file_path"] = storage_path

    try:
        return Settings(**config_data)
    except ValidationError as e:
        raise ConfigError("Invalid settings", detail=str(e)) from e


# 全局配置单例
settings = load_settings()
