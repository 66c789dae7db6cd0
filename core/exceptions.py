"""
领域异常

API 层在 api/middleware/error_handler.py 中把它们映射为统一错误响应。
"""


class AlertingError(Exception):
    """告警系统异常基类"""
    pass


class RuleValidationError(AlertingError):
    """规则条件不合法"""
    pass


class ChannelConfigError(AlertingError):
    """通知渠道配置不合法"""
    pass


class ProviderNotFoundError(AlertingError):
    """API 提供方不存在"""
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider {provider_id} not found")


class ResourceNotFoundError(AlertingError):
    """资源不存在或不属于当前用户"""
    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class InvalidTransitionError(AlertingError):
    """投递状态转换非法"""
    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid delivery transition: {from_state} -> {to_state}")
