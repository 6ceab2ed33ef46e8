import asyncio
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

import aiohttp
import gidgethub
import humanize
import pydantic

from herald.checks import RawCheck, Verdict, evaluate_checks, format_checks_table
from herald.gate import evaluate_gate
from herald.github.api import API
from herald.github.model import PullRequest
from herald.metric import poll_counter, transient_error_counter
from herald.notification import Notifier, StatusComment

logger = logging.getLogger("herald")

TRANSIENT_ERRORS = (
    gidgethub.GitHubException,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    pydantic.ValidationError,
)


class PollOutcome(Enum):
    notified = 1
    failed = 2
    timed_out = 3


@dataclass
class PollResult:
    outcome: PollOutcome
    elapsed: float
    iterations: int
    verdict: Optional[Verdict] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome == PollOutcome.notified


async def fetch_checks(api: API, head_sha: str) -> List[RawCheck]:
    async def load_check_runs():
        return [cr async for cr in api.get_check_runs_for_ref(head_sha)]

    statuses, check_runs = await asyncio.gather(
        api.get_status_for_ref(head_sha), load_check_runs()
    )
    logger.info(
        "Found %d status check(s) and %d check run(s)", len(statuses), len(check_runs)
    )
    for s in statuses:
        logger.info("  • %s: %s", s.display_name, s.state)
    for cr in check_runs:
        logger.info("  • %s: %s/%s", cr.display_name, cr.status, cr.conclusion)
    return [*statuses, *check_runs]


def summarize(verdict: Verdict) -> str:
    summary = []
    if len(verdict.failed) > 0:
        summary += [f":x: failed: {', '.join(sorted(verdict.failed))}"]
    if len(verdict.pending) > 0:
        summary += [f":yellow_circle: waiting for: {', '.join(sorted(verdict.pending))}"]
    if verdict.all_passed:
        summary += [f":white_check_mark: all {len(verdict.passed)} checks successful"]
    elif not verdict.has_checks:
        summary += [":hourglass: no checks found yet"]
    return "\n".join(summary)


class Poller:
    """
    Repeatedly evaluates the checks on a PR head commit until the PR author has
    been notified, a check failed (with ``fail_fast``) or ``timeout`` seconds
    have elapsed.

    Failed checks keep the poller waiting by default so a re-run of a flaky job
    can still lead to a notification.
    """

    def __init__(
        self,
        api: API,
        pr: PullRequest,
        notifier: Notifier,
        *,
        message: str,
        excluded: Sequence[str] = (),
        poll_interval: float = 30,
        timeout: float = 30 * 60,
        fail_fast: bool = False,
        require_mergeable: bool = True,
        status_comment: Optional[StatusComment] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.pr = pr
        self.notifier = notifier
        self.message = message
        self.excluded = list(excluded)
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.fail_fast = fail_fast
        self.require_mergeable = require_mergeable
        self.status_comment = status_comment
        self.clock = clock
        self.sleep = sleep
        self.verdict: Optional[Verdict] = None

    async def evaluate(self) -> Verdict:
        logger.info("Checking status for %s@%s", self.api.repo, self.pr.head.sha)
        if self.excluded:
            logger.info("Excluding: %s", ", ".join(self.excluded))
        checks = await fetch_checks(self.api, self.pr.head.sha)
        verdict = evaluate_checks(checks, self.excluded)
        if logger.isEnabledFor(logging.DEBUG) and verdict.has_checks:
            logger.debug("Checks:\n%s", format_checks_table(verdict.checks))
        self.verdict = verdict
        return verdict

    async def step(self) -> Optional[PollOutcome]:
        verdict = await self.evaluate()
        poll_counter.labels(verdict=verdict.label).inc()

        if self.status_comment is not None:
            await self.status_comment.publish(
                summarize(verdict)
                + "\n\n"
                + format_checks_table(verdict.checks, icons=True)
            )

        if not verdict.has_checks:
            logger.info("No checks found yet, waiting...")
            return None

        if not verdict.all_completed:
            logger.info("Waiting for the following checks:")
            for name in verdict.pending:
                logger.info("  - %s", name)
            if verdict.failed:
                logger.info("Already failed: %s", ", ".join(verdict.failed))
            return None

        if verdict.all_passed:
            logger.info("All checks passed!")
            if self.require_mergeable:
                decision = await evaluate_gate(self.api, self.pr.number)
                if not decision:
                    logger.info("Skipping notification - %s", decision.reason)
                    return None
            logger.info("Creating notification on PR #%d...", self.pr.number)
            await self.notifier.notify(self.pr.number, self.message)
            return PollOutcome.notified

        logger.warning("The following checks failed:")
        for name in verdict.failed:
            logger.warning("  - %s", name)
        if self.fail_fast:
            return PollOutcome.failed
        logger.info("Continuing to monitor for changes...")
        return None

    async def run(self) -> PollResult:
        start = self.clock()
        iterations = 0
        while True:
            elapsed = self.clock() - start
            if elapsed > self.timeout:
                message = (
                    f"Timed out after {humanize.naturaldelta(timedelta(seconds=self.timeout))}"
                    f" waiting for checks on PR #{self.pr.number}"
                )
                logger.error(message)
                return PollResult(
                    PollOutcome.timed_out, elapsed, iterations, self.verdict, message
                )

            iterations += 1
            logger.info(
                "Checking status (%s elapsed)...",
                humanize.precisedelta(timedelta(seconds=int(elapsed))),
            )

            try:
                outcome = await self.step()
            except TRANSIENT_ERRORS as e:
                transient_error_counter.inc()
                logger.warning("Error checking status (will retry): %s", e)
                outcome = None

            if outcome is not None:
                elapsed = self.clock() - start
                if outcome == PollOutcome.notified:
                    message = f"Notified PR #{self.pr.number}"
                else:
                    message = (
                        f"Checks failed on PR #{self.pr.number}: "
                        + ", ".join(self.verdict.failed)
                    )
                logger.info(message)
                return PollResult(outcome, elapsed, iterations, self.verdict, message)

            logger.debug("Sleeping for %s", self.poll_interval)
            await self.sleep(self.poll_interval)
