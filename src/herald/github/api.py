import logging
from typing import AsyncIterator, List

from gidgethub.abc import GitHubAPI

from herald.github.model import (
    CheckRun,
    CommitStatus,
    IssueComment,
    PullRequest,
    Review,
)
from herald.metric import record_api_call

logger = logging.getLogger("herald")


class API:
    gh: GitHubAPI
    repo: str

    call_count: int

    def __init__(self, gh: GitHubAPI, repo: str):
        self.gh = gh
        self.repo = repo
        self.call_count = 0

    @property
    def repo_url(self) -> str:
        return f"/repos/{self.repo}"

    def _count(self, url: str) -> None:
        self.call_count += 1
        record_api_call(url)

    async def get_status_for_ref(self, ref: str) -> List[CommitStatus]:
        url = f"{self.repo_url}/commits/{ref}/status?per_page=100"
        self._count(url)
        logger.debug("Get commit status for ref %s", url)
        # the combined status is paginated like a list, statuses beyond the
        # first page would otherwise be dropped
        return [
            CommitStatus.model_validate(item)
            async for item in self.gh.getiter(url, iterable_key="statuses")
        ]

    async def get_check_runs_for_ref(self, ref: str) -> AsyncIterator[CheckRun]:
        url = f"{self.repo_url}/commits/{ref}/check-runs"
        self._count(url)
        logger.debug("Get check runs for ref %s", url)
        async for item in self.gh.getiter(url, iterable_key="check_runs"):
            yield CheckRun.model_validate(item)

    async def get_pull(self, number: int) -> PullRequest:
        url = f"{self.repo_url}/pulls/{number}"
        self._count(url)
        logger.debug("Get pull %s", url)
        return PullRequest.model_validate(await self.gh.getitem(url))

    async def get_pulls(self) -> AsyncIterator[PullRequest]:
        url = f"{self.repo_url}/pulls?state=open"
        self._count(url)
        logger.debug("Get open pulls %s", url)
        async for item in self.gh.getiter(url):
            yield PullRequest.model_validate(item)

    async def get_reviews(self, number: int) -> List[Review]:
        url = f"{self.repo_url}/pulls/{number}/reviews"
        self._count(url)
        logger.debug("Get reviews %s", url)
        return [Review.model_validate(item) async for item in self.gh.getiter(url)]

    async def get_comments(self, number: int) -> AsyncIterator[IssueComment]:
        url = f"{self.repo_url}/issues/{number}/comments"
        self._count(url)
        logger.debug("Get comments %s", url)
        async for item in self.gh.getiter(url):
            yield IssueComment.model_validate(item)

    async def post_comment(self, number: int, body: str) -> IssueComment:
        url = f"{self.repo_url}/issues/{number}/comments"
        self._count(url)
        logger.debug("Creating comment on %s", url)
        return IssueComment.model_validate(
            await self.gh.post(url, data={"body": body})
        )

    async def update_comment(self, comment_id: int, body: str) -> IssueComment:
        url = f"{self.repo_url}/issues/comments/{comment_id}"
        self._count(url)
        logger.debug("Updating comment %d, %s", comment_id, url)
        return IssueComment.model_validate(
            await self.gh.patch(url, data={"body": body})
        )
