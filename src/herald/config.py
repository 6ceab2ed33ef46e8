import logging
import os
from typing import Any, List, Mapping, Optional

import dotenv
import pydantic

from herald.checks import parse_excluded
from herald.exceptions import ConfigError

DEFAULT_EXCLUDED_CHECKS = "notify-check"
DEFAULT_MESSAGE = "@{user} All checks have passed! ✅\\nThis PR is ready!"

# option name -> environment variables, action input first
ENV_NAMES = {
    "token": ("INPUT_GITHUB-TOKEN", "GITHUB_TOKEN"),
    "excluded_checks": ("INPUT_EXCLUDED-CHECKS", "EXCLUDED_CHECKS"),
    "notification_message": ("INPUT_NOTIFICATION-MESSAGE", "NOTIFICATION_MESSAGE"),
    "poll_interval": ("INPUT_POLL-INTERVAL", "POLL_INTERVAL"),
    "timeout": ("INPUT_TIMEOUT", "TIMEOUT"),
    "fail_fast": ("INPUT_FAIL-FAST", "FAIL_FAST"),
    "require_mergeable": ("INPUT_REQUIRE-MERGEABLE", "REQUIRE_MERGEABLE"),
    "distinct_messages": ("INPUT_DISTINCT-MESSAGES", "DISTINCT_MESSAGES"),
    "status_comment": ("INPUT_STATUS-COMMENT", "STATUS_COMMENT"),
    "log_level": ("OVERRIDE_LOGGING",),
    "telegram_token": ("TELEGRAM_TOKEN",),
    "telegram_chat_id": ("TELEGRAM_CHAT_ID",),
    "push_gateway": ("PUSH_GATEWAY",),
    "dry_run": ("DRY_RUN",),
}

# an empty value for these means "none" rather than "use the default"
ALLOW_EMPTY = frozenset({"excluded_checks"})


class Settings(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid")

    token: str = pydantic.Field(min_length=1)
    excluded_checks: List[str] = pydantic.Field(
        default_factory=lambda: parse_excluded(DEFAULT_EXCLUDED_CHECKS)
    )
    notification_message: str = DEFAULT_MESSAGE
    poll_interval: float = pydantic.Field(30, gt=0)
    timeout: float = pydantic.Field(30, gt=0)
    fail_fast: bool = False
    require_mergeable: bool = True
    distinct_messages: bool = False
    status_comment: bool = False
    log_level: str = "INFO"
    telegram_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    push_gateway: Optional[str] = None
    dry_run: bool = False

    @pydantic.field_validator("excluded_checks", mode="before")
    @classmethod
    def split_excluded(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_excluded(value)
        return value

    @pydantic.field_validator("notification_message", mode="before")
    @classmethod
    def default_message(cls, value: Any) -> Any:
        if value is None or value == "":
            return DEFAULT_MESSAGE
        return value

    @pydantic.field_validator("log_level")
    @classmethod
    def valid_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level {value}")
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout * 60


def read_environment(environ: Mapping[str, str]) -> dict:
    values = {}
    for option, names in ENV_NAMES.items():
        for name in names:
            value = environ.get(name)
            if value is None:
                continue
            if value != "" or option in ALLOW_EMPTY:
                values[option] = value
                break
    return values


def load_settings(
    environ: Optional[Mapping[str, str]] = None, **overrides: Any
) -> Settings:
    if environ is None:
        dotenv.load_dotenv()
        environ = os.environ

    values = read_environment(environ)
    values.update({k: v for k, v in overrides.items() if v is not None})

    if not values.get("token"):
        raise ConfigError(
            "No GitHub token configured, set INPUT_GITHUB-TOKEN or GITHUB_TOKEN"
        )

    try:
        return Settings(**values)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e
