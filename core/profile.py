"""资料组装与默认值补齐"""

from typing import Any, Dict, Optional, Tuple

from common.config import ProfileDefaultsConfig
from storage.models.identity import SERVER_OWNED_FIELDS, ConsentProfile, UserProfile


def gender_from_code(code: Optional[int], defaults: ProfileDefaultsConfig) -> str:
    """性别码 -> 文本：1 男 / 2 女 / 其他 未知"""
    if code is None:
        return defaults.unknown_gender
    return defaults.gender_labels.get(code, defaults.unknown_gender)


def strip_server_owned(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in SERVER_OWNED_FIELDS}


def _clean_server_info(
    server_info: Optional[Dict[str, Any]],
) -> Tuple[Dict[str, Any], Optional[int]]:
    """规范字段名并取出数字形式的性别码"""
    info = UserProfile.normalize_keys(strip_server_owned(server_info or {}))
    gender_code = None
    gender = info.get("gender")
    if isinstance(gender, int) and not isinstance(gender, bool):
        gender_code = info.pop("gender")
    return info, gender_code


def backfill(
    profile: UserProfile,
    defaults: ProfileDefaultsConfig,
    gender_code: Optional[int] = None,
    default_nickname: str = "",
) -> UserProfile:
    """仅在字段缺失（或为空值）时补默认值"""
    updates: Dict[str, Any] = {}
    if not profile.nick_name and default_nickname:
        updates["nickName"] = default_nickname
    if not profile.gender:
        updates["gender"] = gender_from_code(gender_code, defaults)
    if not profile.age:
        updates["age"] = defaults.age
    if not profile.height:
        updates["height"] = defaults.height
    if not profile.weight:
        updates["weight"] = defaults.weight
    if profile.phone is None:
        updates["phone"] = defaults.phone
    if not updates:
        return profile
    return profile.merged(updates)


def build_wechat_profile(
    consent: ConsentProfile,
    server_info: Optional[Dict[str, Any]],
    defaults: ProfileDefaultsConfig,
) -> UserProfile:
    """授权资料打底，服务端资料覆盖，再补默认值"""
    base = consent.to_payload()
    consent_code = base.pop("genderCode", None)

    info, server_code = _clean_server_info(server_info)
    base.update(info)

    return backfill(
        UserProfile(**base),
        defaults,
        gender_code=server_code if server_code is not None else consent_code,
        default_nickname=defaults.wechat_nickname,
    )


def build_guest_profile(
    server_info: Optional[Dict[str, Any]],
    defaults: ProfileDefaultsConfig,
) -> UserProfile:
    info, server_code = _clean_server_info(server_info)
    return backfill(
        UserProfile(**info),
        defaults,
        gender_code=server_code,
        default_nickname=defaults.guest_nickname,
    )


def build_synced_profile(
    current: UserProfile,
    server_info: Optional[Dict[str, Any]],
    defaults: ProfileDefaultsConfig,
) -> UserProfile:
    """云端资料合并到本地资料"""
    info, server_code = _clean_server_info(server_info)
    return backfill(current.merged(info), defaults, gender_code=server_code)
