import aiohttp
import pytest

from conftest import FakeAPI
from herald.github.model import IssueComment
from herald.notification import (
    STATUS_COMMENT_MARKER,
    NotificationError,
    NotificationStore,
    Notifier,
    StatusComment,
    normalize_message,
    render_message,
    unescape,
)

MESSAGE = "@octocat All checks have passed! ✅\nThis PR is ready!"


def test_render_message():
    template = "@{user} All checks have passed! ✅\\nThis PR is ready!"
    assert render_message(template, "octocat") == MESSAGE


def test_unescape():
    assert unescape("a\\tb") == "a\tb"
    assert unescape("\\u2705 done") == "✅ done"
    assert unescape("\\*bold\\*") == "*bold*"


def test_normalize_message():
    assert normalize_message("  Hello\n  World ") == "hello world"


def test_store_keys_are_pr_scoped():
    store = NotificationStore()
    store.add(1, "hi")
    assert store.contains(1, "something else")
    assert not store.contains(2, "hi")


def test_store_distinct_messages():
    store = NotificationStore(distinct_messages=True)
    store.add(1, "Hello  World")
    assert store.contains(1, "hello world")
    assert not store.contains(1, "another message")


@pytest.mark.asyncio
async def test_notify_once_per_session():
    api = FakeAPI()
    notifier = Notifier(api, NotificationStore())

    assert await notifier.notify(42, MESSAGE)
    assert not await notifier.notify(42, MESSAGE)
    assert api.post_calls == [(42, MESSAGE)]


@pytest.mark.asyncio
async def test_session_layer_avoids_remote_lookup():
    api = FakeAPI()
    notifier = Notifier(api, NotificationStore())
    notifier.record_notified(42, MESSAGE)

    assert not await notifier.should_notify(42, MESSAGE)
    assert api.comment_list_calls == 0


@pytest.mark.asyncio
async def test_different_message_same_pr_is_blocked():
    api = FakeAPI()
    notifier = Notifier(api, NotificationStore())

    await notifier.notify(42, MESSAGE)
    assert not await notifier.notify(42, "Something else")
    assert len(api.post_calls) == 1


@pytest.mark.asyncio
async def test_same_message_different_prs():
    api = FakeAPI()
    notifier = Notifier(api, NotificationStore())

    assert await notifier.notify(1, MESSAGE)
    assert await notifier.notify(2, MESSAGE)
    assert [n for n, _ in api.post_calls] == [1, 2]


@pytest.mark.asyncio
async def test_durable_layer_after_store_reset():
    api = FakeAPI()
    store = NotificationStore()
    notifier = Notifier(api, store)

    await notifier.notify(42, MESSAGE)
    store.clear()

    assert not await notifier.notify(42, MESSAGE)
    assert len(api.post_calls) == 1
    # durable hit is remembered for the rest of the session
    assert store.contains(42, MESSAGE)


@pytest.mark.asyncio
async def test_existing_comment_matches_case_insensitive():
    api = FakeAPI(comments=[IssueComment(id=1, body="  " + MESSAGE.upper() + "\n")])
    notifier = Notifier(api, NotificationStore())

    assert await notifier.has_existing_comment(42, MESSAGE)
    assert not await notifier.notify(42, MESSAGE)
    assert api.post_calls == []


@pytest.mark.asyncio
async def test_send_error_is_not_recorded():
    api = FakeAPI()
    api.fail_post = aiohttp.ClientError("nope")
    store = NotificationStore()
    notifier = Notifier(api, store)

    with pytest.raises(NotificationError):
        await notifier.notify(42, MESSAGE)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_dry_run_does_not_post():
    api = FakeAPI()
    notifier = Notifier(api, NotificationStore(), dry_run=True)
    assert await notifier.notify(42, MESSAGE)
    assert api.post_calls == []


@pytest.mark.asyncio
async def test_status_comment_find_or_create_then_update():
    api = FakeAPI()
    comment = StatusComment(api, 42)

    assert await comment.publish("waiting")
    assert len(api.post_calls) == 1
    assert api.post_calls[0][1] == f"{STATUS_COMMENT_MARKER}\nwaiting"

    assert not await comment.publish("waiting")
    assert await comment.publish("done")
    assert len(api.post_calls) == 1
    assert api.update_calls == [(1000, f"{STATUS_COMMENT_MARKER}\ndone")]


@pytest.mark.asyncio
async def test_status_comment_reuses_existing():
    api = FakeAPI(
        comments=[IssueComment(id=5, body=f"{STATUS_COMMENT_MARKER}\nold")]
    )
    comment = StatusComment(api, 42)
    await comment.publish("new")
    assert api.post_calls == []
    assert api.update_calls == [(5, f"{STATUS_COMMENT_MARKER}\nnew")]
