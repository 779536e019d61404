from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["succeeded", "failed_ignorable"]


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of a best-effort step such as an analytics event or a feed callback.

    Failures the caller may ignore come back as ``failed_ignorable``; anything
    outside ``ignorable`` propagates from ``run_side_effect``.
    """

    name: str
    status: OutcomeStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"


def run_side_effect(
    name: str,
    fn: Callable[[], object],
    *,
    ignorable: tuple[type[BaseException], ...],
) -> SideEffectOutcome:
    try:
        fn()
    except ignorable as exc:
        logger.warning("side effect %s failed (ignored): %s", name, exc)
        return SideEffectOutcome(name=name, status="failed_ignorable", error=str(exc)[:400])
    return SideEffectOutcome(name=name, status="succeeded")
