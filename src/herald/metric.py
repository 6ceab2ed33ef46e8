import logging
import re

from prometheus_client import CollectorRegistry, Counter, push_to_gateway

logger = logging.getLogger("herald")

push_registry = CollectorRegistry()

api_call_count = Counter(
    "herald_num_api_calls",
    "Total number of GitHub API calls",
    labelnames=["endpoint"],
    registry=push_registry,
)

poll_counter = Counter(
    "herald_num_polls",
    "Number of poll iterations by verdict",
    labelnames=["verdict"],
    registry=push_registry,
)

notification_counter = Counter(
    "herald_num_notifications",
    "Number of notification attempts by result",
    labelnames=["result"],
    registry=push_registry,
)

transient_error_counter = Counter(
    "herald_num_transient_errors",
    "Number of poll iterations skipped due to fetch errors",
    registry=push_registry,
)

_ENDPOINT_PATTERNS = [
    (re.compile(r"/commits/[^/]+/status(\?.*)?$"), "status"),
    (re.compile(r"/commits/[^/]+/check-runs"), "check-runs"),
    (re.compile(r"/pulls/\d+/reviews"), "reviews"),
    (re.compile(r"/pulls/\d+$"), "pull"),
    (re.compile(r"/pulls(\?.*)?$"), "pulls"),
    (re.compile(r"/issues/\d+/comments"), "comments"),
    (re.compile(r"/issues/comments/\d+$"), "comment"),
]


def _normalize_api_endpoint(url: str) -> str:
    for pattern, name in _ENDPOINT_PATTERNS:
        if pattern.search(url):
            return name
    return "other"


def record_api_call(endpoint: str) -> None:
    api_call_count.labels(endpoint=_normalize_api_endpoint(endpoint)).inc()


def push_metrics(gateway: str, job: str = "herald") -> None:
    logger.debug("Pushing metrics to %s", gateway)
    push_to_gateway(gateway, job=job, registry=push_registry)
