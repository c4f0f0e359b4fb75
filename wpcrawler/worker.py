"""
Refresh the version map of every due package.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from .fetcher import FetchResult, HTTPFetcher
from .models import Package
from .reconcile import Activate, apply_decision, decide, outcome_from_result
from .scheduler import DEFAULT_MAX_CONCURRENT, FetchRequest, FetchScheduler
from .storage import PackageRepository

logger = structlog.get_logger(__name__)

# progress(package, result, completed, total)
ProgressCallback = Callable[[Package, FetchResult, int, int], None]


class UpdateSummary:
    def __init__(self, total: int = 0):
        self.total = total
        self.activated = 0
        self.deactivated = 0
        self.transport_errors = 0

    @property
    def completed(self) -> int:
        return self.activated + self.deactivated

    def __repr__(self):
        return (f"UpdateSummary(total={self.total}, activated={self.activated}, "
                f"deactivated={self.deactivated}, transport_errors={self.transport_errors})")


class Updater:
    """Fetches the developers page of due packages and reconciles the registry."""

    def __init__(
        self,
        repository: PackageRepository,
        fetcher: HTTPFetcher,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        progress: Optional[ProgressCallback] = None,
        clock: Callable[[], datetime] = None,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.max_concurrent = max_concurrent
        self.progress = progress
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self, packages: List[Package] = None) -> UpdateSummary:
        """
        Update the given packages, or every due package when none are given.

        Repository errors abort the run and propagate.
        """
        if packages is None:
            packages = self.repository.due_packages(self.clock())

        summary = UpdateSummary(total=len(packages))
        logger.info("update_started", packages=summary.total, concurrent=self.max_concurrent)

        requests = [FetchRequest(url=package.developers_url, extra_info=package) for package in packages]
        scheduler = FetchScheduler(self.fetcher, self.max_concurrent)

        def on_complete(request: FetchRequest, result: FetchResult, scheduler: FetchScheduler):
            self._handle(request.extra_info, result, scheduler, summary)

        await scheduler.run(requests, on_complete)

        logger.info(
            "update_finished",
            total=summary.total,
            activated=summary.activated,
            deactivated=summary.deactivated,
            transport_errors=summary.transport_errors,
        )
        return summary

    def _handle(self, package: Package, result: FetchResult, scheduler: FetchScheduler, summary: UpdateSummary):
        if self.progress:
            self.progress(package, result, scheduler.completed, scheduler.total)

        if result.transport_failed:
            summary.transport_errors += 1

        outcome = outcome_from_result(result, package)
        decision = decide(outcome)
        apply_decision(decision, package, self.repository, self.clock())

        if isinstance(decision, Activate):
            summary.activated += 1
            logger.debug("package_activated", type=package.type.value, name=package.name,
                         versions=len(decision.versions), fetch_time=round(result.fetch_time, 3))
        else:
            summary.deactivated += 1
            logger.info("package_deactivated", type=package.type.value, name=package.name,
                        reason=decision.reason, fetch_time=round(result.fetch_time, 3))
