"""Correlation aggregator: runs adapters and catalog lookups across projects.

Projects are audited concurrently through a bounded pool of subprocess
slots.  Each project's unit of work owns its own data; a timeout, crash or
parse failure in one unit becomes an error on that project's result and
never affects another.  Results keep the input order.

Only projects with findings or errors are returned.  A project missing from
the output was scanned and found clean.

Usage from synchronous code::

    from depsonar.aggregator import audit_all
    results = audit_all(projects, max_workers=4)
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .adapters import AUDIT_TIMEOUT, PROBE_TIMEOUT, get_adapter
from .advisories import AdvisoryCatalog, check_project_cves, default_catalog
from .errors import AuditError, ToolTimeout
from .models import AuditResult, CveCheckResult, Project

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class ScanOptions:
    """Tuning knobs for one scan.

    Attributes:
        max_workers: Concurrent subprocess slots.
        audit_timeout: Per-audit timeout in seconds.
        probe_timeout: Version-probe timeout in seconds.
        scan_deadline: Optional budget in seconds for the whole scan.
        exclude: Project names to skip (lower-cased).
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    audit_timeout: float = AUDIT_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    scan_deadline: float | None = None
    exclude: frozenset[str] = frozenset()


def select_projects(projects: Iterable[Project], exclude: Iterable[str] = ()) -> list[Project]:
    """Drop projects whose name (case-insensitive) is in ``exclude``."""
    exclude = {n.strip().lower() for n in exclude}
    kept = []
    for p in projects:
        if p.name.strip().lower() in exclude:
            logger.info("Skipping excluded project %s", p.name)
            continue
        kept.append(p)
    return kept


async def audit_project(
    project: Project,
    options: ScanOptions = ScanOptions(),
    deadline: float | None = None,
) -> AuditResult:
    """Audit one project with the adapter for its ecosystem tag.

    Args:
        project: Project to audit.
        options: Scan options.
        deadline: Absolute event-loop time after which no new work starts.

    Returns:
        ``AuditResult``; errors are recorded on it, never raised.
    """
    try:
        adapter = get_adapter(
            project.ecosystem,
            timeout=options.audit_timeout,
            probe_timeout=options.probe_timeout,
        )
    except AuditError as e:
        logger.warning("Cannot audit %s: %s", project.name, e)
        return AuditResult(
            project=project.name,
            ecosystem=project.ecosystem,
            command="N/A",
            error=str(e),
            error_kind=e.kind,
        )

    timeout = options.audit_timeout
    if deadline is not None:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            err = ToolTimeout("Scan deadline reached before the audit started.")
            return AuditResult(
                project=project.name,
                ecosystem=adapter.ecosystem,
                command=shlex.join(adapter.command(Path(project.path))),
                error=str(err),
                error_kind=err.kind,
            )
        timeout = min(timeout, remaining)

    return await adapter.audit_async(Path(project.path), project.name, timeout=timeout)


async def audit_all_async(
    projects: Sequence[Project],
    options: ScanOptions = ScanOptions(),
) -> list[AuditResult]:
    """Audit every project concurrently, at most ``max_workers`` at a time.

    Returns:
        Results with findings or errors, in input order.
    """
    selected = select_projects(projects, options.exclude)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + options.scan_deadline if options.scan_deadline else None
    slots = asyncio.Semaphore(max(1, options.max_workers))

    async def _unit(project: Project) -> AuditResult:
        async with slots:
            logger.info("Auditing %s (%s)", project.name, project.ecosystem)
            try:
                return await audit_project(project, options, deadline)
            except Exception as e:
                logger.exception("Unexpected failure auditing %s", project.name)
                return AuditResult(
                    project=project.name,
                    ecosystem=project.ecosystem,
                    error=f"Unexpected error: {e}",
                    error_kind="internal_error",
                )

    results = await asyncio.gather(*(_unit(p) for p in selected))
    return [r for r in results if r.total > 0 or r.error]


def audit_all(
    projects: Sequence[Project],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    audit_timeout: float = AUDIT_TIMEOUT,
    probe_timeout: float = PROBE_TIMEOUT,
    scan_deadline: float | None = None,
    exclude: Iterable[str] = (),
) -> list[AuditResult]:
    """Synchronous entry point for a multi-project audit.

    Args:
        projects: Discovered projects.
        max_workers: Concurrent subprocess slots.
        audit_timeout: Per-audit timeout in seconds.
        probe_timeout: Version-probe timeout in seconds.
        scan_deadline: Optional budget in seconds for the whole scan.
        exclude: Project names to skip.

    Returns:
        ``AuditResult`` for each project with findings or an error.

    Example::

        results = audit_all(projects, max_workers=8, scan_deadline=300)
        for r in results:
            print(r.project, r.counts)
    """
    options = ScanOptions(
        max_workers=max_workers,
        audit_timeout=audit_timeout,
        probe_timeout=probe_timeout,
        scan_deadline=scan_deadline,
        exclude=frozenset(n.strip().lower() for n in exclude),
    )
    return asyncio.run(audit_all_async(projects, options))


def match_all_cves(
    projects: Sequence[Project],
    catalog: AdvisoryCatalog | None = None,
    exclude: Iterable[str] = (),
) -> list[CveCheckResult]:
    """Match every project's installed versions against the advisory catalog.

    This view is computed independently of ``audit_all``; callers combine the
    two if they need both.

    Returns:
        One ``CveCheckResult`` per project with at least one match.
    """
    catalog = catalog if catalog is not None else default_catalog()
    results: list[CveCheckResult] = []
    for project in select_projects(projects, exclude):
        result = check_project_cves(Path(project.path), project.name, catalog)
        if result.affected:
            results.append(result)
    return results
