from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Iterable, List, Optional, Sequence, Union

from tabulate import tabulate

from herald.github.model import CheckRun, CommitStatus

logger = logging.getLogger("herald")

RawCheck = Union[CommitStatus, CheckRun]

UNNAMED = "<unnamed>"

SUCCESSFUL_CONCLUSIONS = frozenset({"success", "skipped", "neutral"})


class Classification(Enum):
    pending = 1
    passed = 2
    failed = 3


@dataclass(frozen=True)
class NormalizedCheck:
    name: str
    classification: Classification

    def __str__(self):
        return f"{self.name}: {self.classification.name}"

    @classmethod
    def from_check_run(cls, cr: CheckRun) -> "NormalizedCheck":
        if not cr.display_name:
            return cls(name=UNNAMED, classification=Classification.failed)
        if cr.status != "completed":
            classification = Classification.pending
        elif cr.conclusion is None:
            classification = Classification.pending
        elif cr.conclusion in SUCCESSFUL_CONCLUSIONS:
            classification = Classification.passed
        else:
            classification = Classification.failed
        return cls(name=cr.display_name, classification=classification)

    @classmethod
    def from_status(cls, cs: CommitStatus) -> "NormalizedCheck":
        if not cs.display_name:
            return cls(name=UNNAMED, classification=Classification.failed)
        if cs.state in SUCCESSFUL_CONCLUSIONS:
            classification = Classification.passed
        elif cs.state == "pending":
            classification = Classification.pending
        else:
            classification = Classification.failed
        return cls(name=cs.display_name, classification=classification)


def normalize(check: RawCheck) -> NormalizedCheck:
    if isinstance(check, CheckRun):
        result = NormalizedCheck.from_check_run(check)
        logger.debug(
            "Check run '%s': %s/%s -> %s",
            result.name,
            check.status,
            check.conclusion,
            result.classification.name,
        )
    elif isinstance(check, CommitStatus):
        result = NormalizedCheck.from_status(check)
        logger.debug(
            "Status '%s': %s -> %s",
            result.name,
            check.state,
            result.classification.name,
        )
    else:
        raise TypeError(f"Unsupported check type {type(check).__name__}")
    return result


def parse_excluded(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def is_excluded(name: str, patterns: Iterable[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(p.lower() in lowered for p in patterns if p)


def exclude_checks(
    checks: Iterable[RawCheck], patterns: Sequence[str]
) -> List[RawCheck]:
    relevant = []
    for check in checks:
        if is_excluded(check.display_name, patterns):
            logger.info("Excluding check: %s", check.display_name)
            continue
        relevant.append(check)
    return relevant


@dataclass
class Verdict:
    has_checks: bool = False
    all_completed: bool = True
    all_passed: bool = False
    pending: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    passed: List[str] = field(default_factory=list)

    @property
    def checks(self) -> List[NormalizedCheck]:
        return (
            [NormalizedCheck(n, Classification.pending) for n in self.pending]
            + [NormalizedCheck(n, Classification.failed) for n in self.failed]
            + [NormalizedCheck(n, Classification.passed) for n in self.passed]
        )

    @property
    def label(self) -> str:
        if not self.has_checks:
            return "no_checks"
        if not self.all_completed:
            return "pending"
        if self.all_passed:
            return "passed"
        return "failed"


def aggregate(checks: Iterable[NormalizedCheck]) -> Verdict:
    verdict = Verdict()
    for check in checks:
        verdict.has_checks = True
        if check.classification == Classification.pending:
            verdict.pending.append(check.name)
        elif check.classification == Classification.passed:
            verdict.passed.append(check.name)
        else:
            verdict.failed.append(check.name)

    verdict.all_completed = len(verdict.pending) == 0
    verdict.all_passed = (
        verdict.all_completed and len(verdict.failed) == 0 and len(verdict.passed) > 0
    )
    return verdict


def evaluate_checks(checks: Iterable[RawCheck], excluded: Sequence[str]) -> Verdict:
    relevant = exclude_checks(checks, excluded)
    logger.info("Found %d relevant checks after filtering", len(relevant))
    return aggregate(normalize(c) for c in relevant)


_ICONS = {
    Classification.pending: ":yellow_circle:",
    Classification.passed: ":white_check_mark:",
    Classification.failed: ":x:",
}


def format_checks_table(checks: Iterable[NormalizedCheck], icons: bool = False) -> str:
    rows = []
    for check in sorted(checks, key=lambda c: c.name):
        row = (check.name, check.classification.name)
        if icons:
            row = (_ICONS[check.classification],) + row
        rows.append(row)
    headers = ("Check", "Status")
    if icons:
        headers = ("",) + headers
    return tabulate(rows, headers=headers, tablefmt="github")
