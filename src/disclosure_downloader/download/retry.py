"""Bounded retry around a single-record fetch.

Each record moves through ``START -> (RETRYABLE -> START)* -> TERMINAL``.
The transition itself is a pure function of the policy, the last fetch
result and the attempt counters, so it can be tested without any I/O.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel, Field

from disclosure_downloader.download.identity import IdentityRotator
from disclosure_downloader.models.download import (
    DownloadOutcome,
    FetchResult,
    FetchStatus,
    RecordOutcome,
)
from disclosure_downloader.models.record import Record

logger = logging.getLogger(__name__)


class RetryState(StrEnum):
    START = "start"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=5.0, ge=0.0)
    backoff_jitter: float = Field(default=0.0, ge=0.0)
    # When False, blocked responses do not use up max_attempts and are
    # retried until max_blocked_attempts instead.
    blocked_counts_against_budget: bool = True
    max_blocked_attempts: int = Field(default=10, ge=1)

    def backoff(self) -> float:
        if self.backoff_jitter:
            return self.backoff_seconds + random.uniform(0, self.backoff_jitter)
        return self.backoff_seconds


class AttemptCounters(BaseModel):
    attempts: int = 0
    budget_used: int = 0
    blocked: int = 0

    def record(self, result: FetchResult, policy: RetryPolicy) -> None:
        self.attempts += 1
        if result.status is FetchStatus.BLOCKED:
            self.blocked += 1
            if not policy.blocked_counts_against_budget:
                return
        self.budget_used += 1


class RetryDecision(BaseModel):
    state: RetryState
    outcome: DownloadOutcome | None = None


def exhausted_outcome(result: FetchResult) -> DownloadOutcome:
    if result.status is FetchStatus.BLOCKED:
        return DownloadOutcome.BLOCKED
    return DownloadOutcome.FAILED


def next_state(
    policy: RetryPolicy, result: FetchResult, counters: AttemptCounters
) -> RetryDecision:
    """Classify a fetch result given the attempts made so far (inclusive)."""
    if result.status is FetchStatus.OK:
        return RetryDecision(
            state=RetryState.TERMINAL, outcome=DownloadOutcome.SUCCESS
        )
    if result.status is FetchStatus.NOT_FOUND:
        return RetryDecision(
            state=RetryState.TERMINAL, outcome=DownloadOutcome.NOT_FOUND
        )
    if result.status is FetchStatus.PERSISTENCE:
        return RetryDecision(
            state=RetryState.TERMINAL, outcome=DownloadOutcome.FAILED
        )

    if (
        result.status is FetchStatus.BLOCKED
        and not policy.blocked_counts_against_budget
    ):
        exhausted = counters.blocked >= policy.max_blocked_attempts
    else:
        exhausted = counters.budget_used >= policy.max_attempts

    if exhausted:
        return RetryDecision(
            state=RetryState.TERMINAL, outcome=exhausted_outcome(result)
        )
    return RetryDecision(state=RetryState.RETRYABLE)


class Fetcher(Protocol):
    async def fetch(self, record: Record) -> FetchResult: ...


class RetryController:
    """Runs one record's fetch attempts until a terminal outcome."""

    def __init__(
        self,
        fetcher: Fetcher,
        rotator: IdentityRotator,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.rotator = rotator
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._stop_event = stop_event

    @property
    def stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def run(self, record: Record) -> RecordOutcome:
        counters = AttemptCounters()
        rotations = 0

        while True:
            logger.debug(
                "Document id %d: attempt %d",
                record.document_id,
                counters.attempts + 1,
            )
            result = await self.fetcher.fetch(record)
            counters.record(result, self.policy)
            decision = next_state(self.policy, result, counters)

            if decision.state is RetryState.RETRYABLE and not self.stopping:
                logger.warning(
                    "Failed to download PDF for document id %d: %s. Retrying...",
                    record.document_id,
                    result.detail or result.status,
                )
                await self._rotate_identity()
                rotations += 1
                if not self.stopping:
                    await self._sleep(self.policy.backoff())
                if not self.stopping:
                    continue

            outcome = decision.outcome
            if outcome is None:
                logger.info(
                    "Stop requested, not retrying document id %d", record.document_id
                )
                outcome = exhausted_outcome(result)

            self._log_terminal(record, outcome, result, counters)
            return RecordOutcome(
                document_id=record.document_id,
                outcome=outcome,
                attempts=counters.attempts,
                rotations=rotations,
                detail=result.detail,
            )

    async def _rotate_identity(self) -> None:
        try:
            await self.rotator.rotate()
        except Exception as e:
            logger.warning("Identity rotation failed, continuing: %s", e)

    def _log_terminal(
        self,
        record: Record,
        outcome: DownloadOutcome,
        result: FetchResult,
        counters: AttemptCounters,
    ) -> None:
        doc_id = record.document_id
        filer = record.display_name or "unknown filer"
        if outcome is DownloadOutcome.SUCCESS:
            logger.info(
                "Successfully downloaded PDF for document id %d (%s)", doc_id, filer
            )
        elif outcome is DownloadOutcome.NOT_FOUND:
            logger.info("Document id %d (%s) not found (404)", doc_id, filer)
        elif outcome is DownloadOutcome.BLOCKED:
            logger.warning(
                "Document id %d (%s) blocked after %d attempts: %s",
                doc_id,
                filer,
                counters.attempts,
                result.detail,
            )
        else:
            logger.error(
                "Failed to download PDF for document id %d (%s) "
                "after %d attempts: %s",
                doc_id,
                filer,
                counters.attempts,
                result.detail,
            )
