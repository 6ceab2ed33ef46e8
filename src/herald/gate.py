import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Dict, Iterable

from herald.github.api import API
from herald.github.model import PullRequest, Review

logger = logging.getLogger("herald")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


def latest_reviews(reviews: Iterable[Review]) -> Dict[int, str]:
    """Map each reviewer id to the state of their most recent review.

    Reviews without a user are ignored. Reviews are ordered by submission time,
    keeping the API order for ties and for reviews without a timestamp.
    """
    ordered = sorted(
        (r for r in reviews if r.user is not None),
        key=lambda r: r.submitted_at or _EPOCH,
    )
    latest: Dict[int, str] = {}
    for review in ordered:
        latest[review.user.id] = review.state
    return latest


def is_approved(reviews: Iterable[Review]) -> bool:
    return "APPROVED" in latest_reviews(reviews).values()


def check_gate(pr: PullRequest, reviews: Iterable[Review]) -> GateDecision:
    logger.info("PR mergeable state: %s", pr.mergeable_state)
    if pr.mergeable is False:
        return GateDecision(False, "PR is not mergeable")
    if pr.mergeable_state != "clean":
        return GateDecision(
            False, f"PR is not mergeable (state: {pr.mergeable_state})"
        )
    if not is_approved(reviews):
        return GateDecision(False, "PR is not approved")
    return GateDecision(True, "PR is mergeable and approved")


async def evaluate_gate(api: API, number: int) -> GateDecision:
    try:
        pr, reviews = await asyncio.gather(
            api.get_pull(number), api.get_reviews(number)
        )
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to check PR #%d mergeable status: %s", number, e)
        return GateDecision(False, f"gate check failed: {e}")

    decision = check_gate(pr, reviews)
    logger.info("Gate for PR #%d: %s", number, decision.reason)
    return decision
