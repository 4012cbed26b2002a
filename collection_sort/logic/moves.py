"""Apply a sales ranking to a collection with move-to-front calls."""

from __future__ import annotations

import asyncio
import enum
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from collection_sort.errors import CollectionNotFoundError, TransportError
from collection_sort.logic.ranking import PRODUCT_GID_PREFIX, RankedMove, preview
from collection_sort.remote.models import Collection, MoveOutcome, MoveStatus
from collection_sort.utils.events import EventLog

PRODUCT_GID_RE = re.compile(rf"^{re.escape(PRODUCT_GID_PREFIX)}[0-9]+$")
DEFAULT_DELAY_SECONDS = 0.65


class RunState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    MOVING = "moving"
    DONE = "done"


class CollectionMover(Protocol):
    async def resolve_collection(self, handle: str) -> Collection:
        ...

    async def move_to_front(self, collection_id: str, product_gid: str) -> MoveOutcome:
        ...


@dataclass(slots=True)
class MoveResult:
    move: RankedMove
    status: MoveStatus
    detail: str = ""
    job_id: str | None = None


@dataclass(slots=True)
class SortReport:
    state: RunState = RunState.IDLE
    collection: Collection | None = None
    results: list[MoveResult] = field(default_factory=list)

    def count(self, status: MoveStatus) -> int:
        return sum(1 for result in self.results if result.status == status)

    def summary(self) -> str:
        parts = [f"{status.value}={self.count(status)}" for status in MoveStatus if self.count(status)]
        return ", ".join(parts) or "no moves"


class MoveOrchestrator:
    """Drives ``Idle -> Resolving -> Moving -> Done`` for one run.

    The remote store only supports moving one product to the front, so the
    ranking is walked from the lowest seller up: the best seller is moved
    last and ends at position 0. Calls are strictly sequential with a fixed
    pause after each one. A failed item is logged and the batch continues.
    Queued reorder jobs are not polled; if the store ran queued jobs out of
    submission order the final order could differ.
    """

    def __init__(
        self,
        client: CollectionMover,
        events: EventLog,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.events = events
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self.state = RunState.IDLE

    async def run(self, handle: str, ranking: Sequence[RankedMove]) -> SortReport:
        report = SortReport()
        if not ranking:
            self.events.warn(
                "Prepare Product List",
                details="List of products to move is empty (either file empty or no valid IDs). Nothing to do.",
            )
            return self._finish(report)

        self._enter(report, RunState.RESOLVING)
        self.events.info("Fetch Collection Start", details=f"Handle: {handle}")
        try:
            collection = await self.client.resolve_collection(handle)
        except CollectionNotFoundError as exc:
            self.events.error("Fetch Collection Failed", details=str(exc))
            raise
        self.events.info("Fetch Collection Success", collection.title, collection.id)
        report.collection = collection

        self._enter(report, RunState.MOVING)
        total = len(ranking)
        self.events.info("Prepare Product List Success", details=f"Products to move: {total}")
        self.events.info("Target Order Preview", details=f"Top 5: {preview(ranking)}")
        self.events.info("Execute Moves Start", details=f"Total moves: {total}")
        for index, move in enumerate(reversed(ranking), start=1):
            result = await self._move_one(collection, move, f"Move {index}/{total}")
            report.results.append(result)
        self.events.info("Execute Moves End", details=report.summary())
        return self._finish(report)

    def _enter(self, report: SortReport, state: RunState) -> None:
        self.state = state
        report.state = state

    def _finish(self, report: SortReport) -> SortReport:
        self._enter(report, RunState.DONE)
        return report

    async def _move_one(self, collection: Collection, move: RankedMove, action: str) -> MoveResult:
        gid = move.remote_product_id
        self.events.info(action, move.title, gid, "Moving to top")
        if not PRODUCT_GID_RE.match(gid):
            self.events.error(action, move.title, gid, "Invalid GID format. Skipping.")
            return MoveResult(move=move, status=MoveStatus.SKIPPED, detail="Invalid GID format")

        try:
            outcome = await self.client.move_to_front(collection.id, gid)
        except TransportError as exc:
            self.events.error(action, move.title, gid, f"Mutation Exception: {exc}")
            result = MoveResult(move=move, status=MoveStatus.FAILED, detail=str(exc))
        except Exception as exc:
            detail = f"{exc.__class__.__name__}: {exc}"
            self.events.error(action, move.title, gid, f"Mutation Exception: {detail}")
            result = MoveResult(move=move, status=MoveStatus.FAILED, detail=detail)
        else:
            result = self._record_outcome(action, move, outcome)

        self.events.debug("Delaying", details=f"Waiting {round(self.delay_seconds * 1000)}ms...")
        await self._sleep(self.delay_seconds)
        return result

    def _record_outcome(self, action: str, move: RankedMove, outcome: MoveOutcome) -> MoveResult:
        gid = move.remote_product_id
        if outcome.status is MoveStatus.REJECTED:
            detail = f"Move Failed: {outcome.user_errors_json()}"
            self.events.error(action, move.title, gid, detail)
        elif outcome.status is MoveStatus.QUEUED:
            detail = f"Submitted as job: {outcome.job_id}"
            self.events.info(action, move.title, gid, detail)
        elif outcome.status is MoveStatus.APPLIED:
            detail = "Completed immediately."
            self.events.info(action, move.title, gid, detail)
        else:
            detail = "Submitted, but no job details/status."
            self.events.warn(action, move.title, gid, detail)
        return MoveResult(move=move, status=outcome.status, detail=detail, job_id=outcome.job_id)
