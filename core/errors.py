"""付款计划引擎的异常体系

所有异常都带 kind + message，由 CLI / 页面边界统一展示，中间层不吞掉。
"""
from typing import Iterable, Optional


class PaymentPlanError(Exception):
    kind = "PaymentPlanError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        return f"{self.kind}: {self.message}"


class ConfigurationUnavailable(PaymentPlanError):
    """策略配置缺失或加载失败：引擎拒绝计算，不回退到硬编码默认值"""
    kind = "ConfigurationUnavailable"

    def __init__(self, message: str, missing_keys: Iterable[str] = ()):
        super().__init__(message)
        self.missing_keys = tuple(missing_keys)


class ValidationError(PaymentPlanError):
    """字段级校验失败，requested / clamped_value 用于告知调用方被截断的差额"""
    kind = "ValidationError"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        requested: Optional[float] = None,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        clamped_value: Optional[float] = None,
    ):
        super().__init__(message)
        self.field = field
        self.requested = requested
        self.minimum = minimum
        self.maximum = maximum
        self.clamped_value = clamped_value

    @property
    def delta(self) -> Optional[float]:
        if self.requested is None or self.clamped_value is None:
            return None
        return round(self.clamped_value - self.requested, 2)


class InvalidTransitionError(PaymentPlanError):
    kind = "InvalidTransitionError"

    def __init__(self, attempted: str, actual: str, version_id: Optional[str] = None):
        target = f"version {version_id}" if version_id else "version"
        super().__init__(f"Cannot {attempted} {target} in state {actual}")
        self.attempted = attempted
        self.actual = actual
        self.version_id = version_id


class VersionNotFound(InvalidTransitionError):
    kind = "VersionNotFound"

    def __init__(self, attempted: str, version_id: str):
        super().__init__(attempted, "missing", version_id)


class StaleResultDiscarded(PaymentPlanError):
    """过期的异步结果，调用方静默丢弃"""
    kind = "StaleResultDiscarded"

    def __init__(self, ticket: int, current: int):
        super().__init__(f"Result #{ticket} superseded by #{current}")
        self.ticket = ticket
        self.current = current


class CalculationServiceError(PaymentPlanError):
    kind = "CalculationServiceError"


class PersistenceConflict(PaymentPlanError):
    kind = "PersistenceConflict"

    def __init__(self, case_id: str, expected: Optional[str], actual: Optional[str]):
        super().__init__(
            f"Primary version of case {case_id} changed "
            f"(expected {expected or 'none'}, found {actual or 'none'}); reload required"
        )
        self.case_id = case_id
        self.expected = expected
        self.actual = actual
