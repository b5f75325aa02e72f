"""自定义异常类"""


class IdentityBaseError(Exception):
    """身份会话基础异常"""

    def __init__(self, message: str = "", detail: str = ""):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ConsentDenied(IdentityBaseError):
    """用户拒绝授权资料"""
    pass


class GatewayRejected(IdentityBaseError):
    """后端明确返回 success=false"""
    pass


class MalformedResponse(GatewayRejected):
    """后端返回 success=true 但缺少必要字段"""
    pass


class NetworkUnavailable(IdentityBaseError):
    """云函数调用未完成（网络或后端不可达）"""
    pass


class StorageFailure(IdentityBaseError):
    """本地持久化存储读写失败"""

    def __init__(self, message: str = "", key: str = ""):
        self.key = key
        super().__init__(message)


class NotAuthenticatedError(IdentityBaseError):
    """当前没有已登录的身份"""
    pass


class ProfileInvalid(IdentityBaseError):
    """提交的资料字段未通过本地校验"""
    pass


class ConfigError(IdentityBaseError):
    """配置错误"""
    pass
