from dataclasses import dataclass
import logging
import re
from typing import Optional, Set

from herald.exceptions import NotificationError
from herald.github.api import API
from herald.metric import notification_counter

logger = logging.getLogger("herald")

STATUS_COMMENT_MARKER = "<!-- herald:status-comment -->"

_UNICODE_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")
_OTHER_ESCAPE = re.compile(r"\\(.)")
_WHITESPACE = re.compile(r"\s+")


def unescape(body: str) -> str:
    body = body.replace("\\n", "\n").replace("\\t", "\t")
    body = _UNICODE_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), body)
    return _OTHER_ESCAPE.sub(r"\1", body)


def render_message(template: str, user: str) -> str:
    return unescape(template.replace("{user}", user))


def normalize_message(message: str) -> str:
    return _WHITESPACE.sub(" ", message).strip().casefold()


def same_body(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


@dataclass(frozen=True)
class NotificationKey:
    pr_number: int
    message: Optional[str] = None

    def __str__(self) -> str:
        return f"pr-{self.pr_number}"


class NotificationStore:
    """
    Notifications delivered during this process invocation.

    Create one per run and hand it to the :class:`Notifier`. When
    ``distinct_messages`` is false, one notification per PR is allowed
    regardless of its text, otherwise the normalized message is part of the key.
    """

    def __init__(self, distinct_messages: bool = False):
        self.distinct_messages = distinct_messages
        self._keys: Set[NotificationKey] = set()

    def key(self, pr_number: int, message: str) -> NotificationKey:
        if self.distinct_messages:
            return NotificationKey(pr_number, normalize_message(message))
        return NotificationKey(pr_number)

    def contains(self, pr_number: int, message: str) -> bool:
        return self.key(pr_number, message) in self._keys

    def add(self, pr_number: int, message: str) -> None:
        self._keys.add(self.key(pr_number, message))

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)


class Notifier:
    def __init__(self, api: API, store: NotificationStore, dry_run: bool = False):
        self.api = api
        self.store = store
        self.dry_run = dry_run

    async def has_existing_comment(self, pr_number: int, message: str) -> bool:
        async for comment in self.api.get_comments(pr_number):
            if comment.body is not None and same_body(comment.body, message):
                logger.debug("Comment %d matches notification", comment.id)
                return True
        return False

    async def should_notify(self, pr_number: int, message: str) -> bool:
        if self.store.contains(pr_number, message):
            logger.info("Skipping duplicate notification (same session)")
            notification_counter.labels(result="duplicate_session").inc()
            return False

        if await self.has_existing_comment(pr_number, message):
            logger.info("Skipping duplicate notification (found in PR history)")
            notification_counter.labels(result="duplicate_history").inc()
            self.store.add(pr_number, message)
            return False

        return True

    def record_notified(self, pr_number: int, message: str) -> None:
        self.store.add(pr_number, message)

    async def notify(self, pr_number: int, message: str) -> bool:
        if not await self.should_notify(pr_number, message):
            return False

        if self.dry_run:
            logger.info("Dry run, not posting to PR #%d:\n%s", pr_number, message)
            notification_counter.labels(result="dry_run").inc()
            self.record_notified(pr_number, message)
            return True

        try:
            comment = await self.api.post_comment(pr_number, message)
        except Exception as e:
            logger.error("Failed to create comment on PR #%d: %s", pr_number, e)
            notification_counter.labels(result="error").inc()
            raise NotificationError(
                f"Failed to create comment on PR #{pr_number}: {e}"
            ) from e

        self.record_notified(pr_number, message)
        notification_counter.labels(result="sent").inc()
        logger.info("Posted notification comment %d on PR #%d", comment.id, pr_number)
        return True


class StatusComment:
    """
    A single comment on the PR that is kept up to date with the check summary.

    The comment is found by its marker, created if missing and edited in place
    afterwards. Updates with an unchanged body are skipped.
    """

    def __init__(self, api: API, pr_number: int, dry_run: bool = False):
        self.api = api
        self.pr_number = pr_number
        self.dry_run = dry_run
        self.comment_id: Optional[int] = None
        self.body: Optional[str] = None

    async def find(self) -> Optional[int]:
        async for comment in self.api.get_comments(self.pr_number):
            if comment.body is not None and STATUS_COMMENT_MARKER in comment.body:
                self.body = comment.body
                return comment.id
        return None

    async def publish(self, text: str) -> bool:
        body = f"{STATUS_COMMENT_MARKER}\n{text}"

        if self.comment_id is None:
            self.comment_id = await self.find()

        if body == self.body:
            logger.debug("Status comment unchanged, skipping update")
            return False

        if self.dry_run:
            logger.info("Dry run, status comment would be:\n%s", body)
        elif self.comment_id is None:
            comment = await self.api.post_comment(self.pr_number, body)
            self.comment_id = comment.id
            logger.info("Created status comment %d", comment.id)
        else:
            await self.api.update_comment(self.comment_id, body)
            logger.info("Updated status comment %d", self.comment_id)

        self.body = body
        return True
