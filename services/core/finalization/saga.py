"""
Compensation log for load-bearing writes.

Every load-bearing step registers an undo action after it commits. When a
later load-bearing step fails, the log is unwound in reverse order so the
aborted run does not leave orphaned operations / metrics / goals behind.
Unwinding is best effort: a compensation that fails is logged together
with the ids it was supposed to remove, for manual cleanup.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from infrastructure.uow import UnitOfWork
from logging_config import get_logger

logger = get_logger(__name__)

Undo = Callable[[UnitOfWork], Awaitable[None]]


@dataclass
class Compensation:
    step: str
    ids: List[UUID]
    undo: Undo


@dataclass
class UnwindReport:
    compensated: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.failed


class CompensationLog:

    def __init__(self, uow_provider, run_id: str):
        self._uow_provider = uow_provider
        self._run_id = run_id
        self._entries: List[Compensation] = []

    def register(self, step: str, ids: List[UUID], undo: Undo) -> None:
        if not ids:
            return
        self._entries.append(Compensation(step=step, ids=list(ids), undo=undo))

    def pending(self) -> List[Compensation]:
        return list(self._entries)

    async def unwind(self) -> UnwindReport:
        report = UnwindReport()
        while self._entries:
            entry = self._entries.pop()
            try:
                async with self._uow_provider() as uow:
                    await entry.undo(uow)
                report.compensated.append(entry.step)
                logger.info(
                    "compensation_applied",
                    step=entry.step,
                    rows=len(entry.ids),
                    run_id=self._run_id
                )
            except SQLAlchemyError as e:
                report.failed.append(entry.step)
                logger.error(
                    "compensation_failed",
                    step=entry.step,
                    orphaned_ids=[str(i) for i in entry.ids],
                    error=str(e),
                    run_id=self._run_id
                )
        return report
