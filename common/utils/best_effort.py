"""尽力而为的多步操作

逐个执行相互独立的子步骤，某一步失败不影响后续步骤，最后汇总失败信息。
"""

from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

from common.logger import get_logger

logger = get_logger(__name__)

Step = Tuple[str, Callable[[], object]]


@dataclass
class StepFailure:
    """单个子步骤的失败记录"""

    name: str
    error: Exception


@dataclass
class BestEffortResult:
    """多步操作结果"""

    attempted: int = 0
    failures: List[StepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return ", ".join(f"{f.name}: {f.error}" for f in self.failures)


def attempt_all(steps: Sequence[Step], context: str = "") -> BestEffortResult:
    """依次执行所有步骤，收集异常并统一记录日志"""
    result = BestEffortResult()
    for name, step in steps:
        result.attempted += 1
        try:
            step()
        except Exception as e:
            result.failures.append(StepFailure(name=name, error=e))

    if result.failures:
        logger.warning(
            "%s: %d/%d steps failed (%s)",
            context or "best-effort",
            len(result.failures),
            result.attempted,
            result.summary(),
        )
    return result
