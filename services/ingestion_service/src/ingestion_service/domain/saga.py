from __future__ import annotations

from collections.abc import Awaitable, Callable
from types import TracebackType

import structlog

logger = structlog.get_logger(__name__)

UndoAction = Callable[[], Awaitable[object]]


class CompensatingTransaction:
    """Manual two-step transaction for stores without cross-statement transactions.

    Each successful step pushes an undo action. If the ``async with`` block
    raises, the undo actions run newest first and the original exception
    propagates. A failing undo action is logged and the remaining ones
    still run.

        async with CompensatingTransaction() as tx:
            doc = await repo.insert_document(new_doc)
            tx.push("delete_document", lambda: repo.delete_document(doc.id, owner))
            await repo.insert_chunks(records)
    """

    def __init__(self, name: str = "transaction") -> None:
        self._name = name
        self._undo: list[tuple[str, UndoAction]] = []

    def push(self, step: str, action: UndoAction) -> None:
        self._undo.append((step, action))

    @property
    def pending_steps(self) -> list[str]:
        return [step for step, _ in self._undo]

    async def rollback(self) -> list[str]:
        """Run every registered undo action in reverse; return the failed step names."""
        failed: list[str] = []
        while self._undo:
            step, action = self._undo.pop()
            try:
                await action()
            except Exception as exc:  # noqa: BLE001
                failed.append(step)
                logger.error(
                    "saga.compensation.failed",
                    transaction=self._name,
                    step=step,
                    error=str(exc),
                    exc_info=True,
                )
            else:
                logger.info("saga.compensation.applied", transaction=self._name, step=step)
        return failed

    def commit(self) -> None:
        self._undo.clear()

    async def __aenter__(self) -> CompensatingTransaction:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.commit()
            return False
        logger.warning(
            "saga.rolling_back",
            transaction=self._name,
            steps=self.pending_steps,
            error=str(exc),
        )
        await self.rollback()
        return False
