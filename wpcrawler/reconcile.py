"""
Decide what to persist for a package after its developers page was fetched.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Union

from .fetcher import FetchResult
from .models import Package
from .parser import parse_versions

HTTP_OK = 200


@dataclass(frozen=True)
class TransportError:
    message: str


@dataclass(frozen=True)
class HttpError:
    status: int


@dataclass(frozen=True)
class Parsed:
    versions: Dict[str, str] = field(default_factory=dict)


FetchOutcome = Union[TransportError, HttpError, Parsed]


@dataclass(frozen=True)
class Activate:
    versions: Dict[str, str]


@dataclass(frozen=True)
class Deactivate:
    reason: str = ''


ReconciliationDecision = Union[Activate, Deactivate]


def outcome_from_result(result: FetchResult, package: Package) -> FetchOutcome:
    """Classify a fetch result, parsing the body only for 200 responses."""
    if result.transport_failed:
        return TransportError(result.error)
    if result.status_code != HTTP_OK:
        return HttpError(result.status_code)
    return Parsed(parse_versions(result.content, package.is_plugin))


def decide(outcome: FetchOutcome) -> ReconciliationDecision:
    if isinstance(outcome, TransportError):
        return Deactivate(f"transport error: {outcome.message}")
    if isinstance(outcome, HttpError):
        return Deactivate(f"http status {outcome.status}")
    if isinstance(outcome, Parsed):
        if outcome.versions:
            return Activate(dict(outcome.versions))
        return Deactivate("no versions found")
    raise TypeError(f"Unknown fetch outcome: {outcome!r}")


def apply_decision(decision: ReconciliationDecision, package: Package, repository, now: datetime):
    """
    Persist a decision. Repository errors are not caught here.

    Activate stores the version map and marks the package active, Deactivate
    only marks it inactive and keeps whatever versions were stored before.
    """
    if isinstance(decision, Activate):
        repository.activate(package, decision.versions, now)
    elif isinstance(decision, Deactivate):
        repository.deactivate(package, now)
    else:
        raise TypeError(f"Unknown reconciliation decision: {decision!r}")
