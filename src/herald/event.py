from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from typing import Any, Dict, Mapping

from herald.exceptions import ResolutionError
from herald.github.api import API
from herald.github.model import PullRequest

logger = logging.getLogger("herald")

PR_EVENTS = frozenset({"pull_request", "pull_request_target"})
CHECK_EVENTS = frozenset({"check_run", "check_suite"})


@dataclass(frozen=True)
class ActionContext:
    repo: str
    sha: str
    event_name: str
    actor: str | None = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def pr_number(self) -> int | None:
        if self.event_name in PR_EVENTS:
            pr = self.payload.get("pull_request")
            if pr is not None:
                return int(pr["number"])
        elif self.event_name in CHECK_EVENTS:
            # only set for PRs whose head branch lives in this repository
            prs = self.payload.get(self.event_name, {}).get("pull_requests") or []
            if prs:
                return int(prs[0]["number"])
        return None

    @property
    def head_sha(self) -> str:
        """The commit the event is about.

        ``GITHUB_SHA`` points at the default branch for status and check events,
        the payload carries the actual commit.
        """
        if self.event_name == "status":
            return self.payload.get("sha") or self.sha
        if self.event_name in CHECK_EVENTS:
            return self.payload.get(self.event_name, {}).get("head_sha") or self.sha
        if self.event_name in PR_EVENTS:
            head = self.payload.get("pull_request", {}).get("head") or {}
            return head.get("sha") or self.sha
        return self.sha

    @classmethod
    def for_pull_request(cls, repo: str, number: int) -> "ActionContext":
        return cls(
            repo=repo,
            sha="",
            event_name="pull_request",
            payload={"pull_request": {"number": number}},
        )

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str] | None = None,
        repo: str | None = None,
    ) -> "ActionContext":
        if environ is None:
            environ = os.environ

        repo = repo or environ.get("GITHUB_REPOSITORY")
        if not repo:
            raise ResolutionError("GITHUB_REPOSITORY is not set")

        payload: Dict[str, Any] = {}
        event_path = environ.get("GITHUB_EVENT_PATH")
        if event_path:
            try:
                with open(event_path) as fh:
                    payload = json.load(fh)
            except (OSError, ValueError) as e:
                raise ResolutionError(
                    f"Unable to read event payload {event_path}: {e}"
                ) from e

        return cls(
            repo=repo,
            sha=environ.get("GITHUB_SHA", ""),
            event_name=environ.get("GITHUB_EVENT_NAME", ""),
            actor=environ.get("GITHUB_ACTOR"),
            payload=payload,
        )


async def find_pr_for_sha(api: API, sha: str) -> int | None:
    prs = [pr async for pr in api.get_pulls()]
    logger.info("Found %d open PRs", len(prs))
    for pr in prs:
        logger.debug("- PR #%d: %s (%s)", pr.number, pr.head.sha, pr.title)
    for pr in prs:
        if pr.head.sha == sha:
            return pr.number
    return None


async def resolve_pull_request(api: API, context: ActionContext) -> PullRequest:
    logger.info(
        "Event %s on %s@%s (actor %s)",
        context.event_name,
        context.repo,
        context.head_sha,
        context.actor,
    )

    number = context.pr_number
    if number is not None:
        logger.info("Found PR number from %s event: %d", context.event_name, number)
    else:
        sha = context.head_sha
        if not sha:
            raise ResolutionError("Event carries neither a PR number nor a SHA")
        number = await find_pr_for_sha(api, sha)
        if number is None:
            raise ResolutionError(f"No matching PR found for SHA: {sha}")
        logger.info("Found matching PR #%d for SHA %s", number, sha)

    return await api.get_pull(number)
