"""Named, sequential steps with optional compensation.

Every multi-step reconciliation flow (mark paid, goal contribution, category
rename) commits each step on its own. A ``Saga`` records which steps completed
so a failure can be reported precisely and, when compensation is enabled,
unwound in reverse order.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import get_settings

logger = logging.getLogger(__name__)


def committed(session: Session, fn: Callable[[], object]) -> Callable[[], object]:
    """Wrap ``fn`` so it runs as its own store round trip."""

    def run() -> object:
        try:
            result = fn()
            session.commit()
        except Exception:
            session.rollback()
            raise
        return result

    return run


@dataclass
class SagaStep:
    name: str
    action: Callable[[], object]
    compensate: Optional[Callable[[], None]] = None


class SagaStepFailed(RuntimeError):
    def __init__(
        self,
        saga: str,
        step: str,
        completed: list[str],
        compensated: list[str],
        cause: BaseException,
    ) -> None:
        super().__init__(f"{saga}: step '{step}' failed: {cause}")
        self.saga = saga
        self.step = step
        self.completed = completed
        self.compensated = compensated
        self.cause = cause


@dataclass
class Saga:
    name: str
    steps: list[SagaStep] = field(default_factory=list)
    compensate_on_failure: Optional[bool] = None

    def step(
        self,
        name: str,
        action: Callable[[], object],
        compensate: Optional[Callable[[], None]] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate))
        return self

    def run(self) -> dict[str, object]:
        compensate = self.compensate_on_failure
        if compensate is None:
            compensate = get_settings().saga_compensate

        results: dict[str, object] = {}
        completed: list[SagaStep] = []
        for current in self.steps:
            try:
                results[current.name] = current.action()
            except Exception as exc:
                done = [s.name for s in completed]
                compensated: list[str] = []
                if compensate:
                    compensated = self._unwind(completed)
                else:
                    logger.warning(
                        "saga_failed: saga=%s step=%s left_applied=%s",
                        self.name,
                        current.name,
                        ",".join(done) or "-",
                    )
                raise SagaStepFailed(
                    self.name, current.name, done, compensated, exc
                ) from exc
            completed.append(current)
        return results

    def _unwind(self, completed: list[SagaStep]) -> list[str]:
        compensated: list[str] = []
        for done in reversed(completed):
            if done.compensate is None:
                continue
            try:
                done.compensate()
            except Exception:
                logger.exception(
                    "saga_compensation_failed: saga=%s step=%s", self.name, done.name
                )
                break
            compensated.append(done.name)
        logger.warning(
            "saga_compensated: saga=%s steps=%s",
            self.name,
            ",".join(compensated) or "-",
        )
        return compensated
