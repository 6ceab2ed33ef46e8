import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Optional

import aiohttp
import cachetools
from gidgethub import aiohttp as gh_aiohttp
import typer

from herald.checks import format_checks_table
from herald.config import ConfigError, Settings, load_settings
from herald.event import ActionContext, ResolutionError, resolve_pull_request
from herald.github.api import API
from herald.logger import LOG_FORMAT, setup_logging
from herald.metric import push_metrics
from herald.notification import (
    NotificationError,
    NotificationStore,
    Notifier,
    StatusComment,
    render_message,
)
from herald.poller import TRANSIENT_ERRORS, Poller, PollOutcome

logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
logger = logging.getLogger("herald")

EXIT_FAILURE = 1
EXIT_STARTUP = 2

app = typer.Typer()
httpcache = cachetools.LRUCache(maxsize=500)


@asynccontextmanager
async def github_client(token: str):
    async with aiohttp.ClientSession() as session:
        yield gh_aiohttp.GitHubAPI(
            session,
            "pr-herald",
            oauth_token=token,
            cache=httpcache,
        )


def _load(**overrides) -> Settings:
    try:
        settings = load_settings(**overrides)
    except ConfigError as e:
        logger.error("%s", e)
        raise typer.Exit(EXIT_STARTUP)
    setup_logging(settings)
    return settings


def _context(repo: Optional[str], pr: Optional[int]) -> ActionContext:
    try:
        if repo is not None and pr is not None:
            return ActionContext.for_pull_request(repo, pr)
        context = ActionContext.from_environment(repo=repo)
        if pr is not None:
            return ActionContext.for_pull_request(context.repo, pr)
        return context
    except ResolutionError as e:
        logger.error("%s", e)
        raise typer.Exit(EXIT_STARTUP)


async def _resolve(api: API, context: ActionContext):
    try:
        return await resolve_pull_request(api, context)
    except ResolutionError as e:
        logger.error("%s", e)
    except TRANSIENT_ERRORS as e:
        logger.error("Unable to load target PR: %s", e)
    raise typer.Exit(EXIT_STARTUP)


async def watch(settings: Settings, context: ActionContext) -> int:
    async with github_client(settings.token) as gh:
        api = API(gh, context.repo)
        pr = await _resolve(api, context)

        message = render_message(settings.notification_message, pr.user.login)
        store = NotificationStore(distinct_messages=settings.distinct_messages)
        notifier = Notifier(api, store, dry_run=settings.dry_run)
        status_comment = None
        if settings.status_comment:
            status_comment = StatusComment(api, pr.number, dry_run=settings.dry_run)

        poller = Poller(
            api,
            pr,
            notifier,
            message=message,
            excluded=settings.excluded_checks,
            poll_interval=settings.poll_interval,
            timeout=settings.timeout_seconds,
            fail_fast=settings.fail_fast,
            require_mergeable=settings.require_mergeable,
            status_comment=status_comment,
        )

        try:
            result = await poller.run()
        except NotificationError as e:
            logger.error("%s", e)
            return EXIT_FAILURE
        finally:
            logger.info("Finished handling %s, API calls: %d", pr, api.call_count)

    if result.outcome == PollOutcome.timed_out:
        logger.error("%s", result.message)
    return 0 if result.success else EXIT_FAILURE


@app.command()
def run(
    repo: Optional[str] = typer.Option(None, help="owner/name, defaults to GITHUB_REPOSITORY"),
    pr: Optional[int] = typer.Option(None, help="PR number, resolved from the event if omitted"),
    excluded_checks: Optional[str] = typer.Option(None, help="Comma separated substrings"),
    poll_interval: Optional[float] = typer.Option(None, help="Seconds between polls"),
    timeout: Optional[float] = typer.Option(None, help="Minutes before giving up"),
    fail_fast: Optional[bool] = typer.Option(None, "--fail-fast/--keep-polling"),
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--no-dry-run"),
):
    """Poll the PR checks and notify the PR author once they all pass."""
    settings = _load(
        excluded_checks=excluded_checks,
        poll_interval=poll_interval,
        timeout=timeout,
        fail_fast=fail_fast,
        dry_run=dry_run,
    )
    context = _context(repo, pr)
    try:
        code = asyncio.run(watch(settings, context))
    finally:
        if settings.push_gateway is not None:
            push_metrics(settings.push_gateway)
    raise typer.Exit(code)


@app.command()
def status(
    repo: Optional[str] = typer.Option(None),
    pr: Optional[int] = typer.Option(None),
    excluded_checks: Optional[str] = typer.Option(None),
):
    """Evaluate the PR checks once and print them."""
    settings = _load(excluded_checks=excluded_checks)
    context = _context(repo, pr)

    async def handle():
        async with github_client(settings.token) as gh:
            api = API(gh, context.repo)
            pull = await _resolve(api, context)
            poller = Poller(
                api,
                pull,
                Notifier(api, NotificationStore(), dry_run=True),
                message="",
                excluded=settings.excluded_checks,
            )
            return await poller.evaluate()

    verdict = asyncio.run(handle())
    typer.echo(format_checks_table(verdict.checks))
    typer.echo(f"\nverdict: {verdict.label}")
    raise typer.Exit(0 if verdict.all_passed else EXIT_FAILURE)


def main():
    app()
