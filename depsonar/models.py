"""Core data model shared by adapters, the catalog and the aggregator.

``Vulnerability`` and ``CveMatch`` are immutable once built.  Severity
counts on ``AuditResult`` are computed from its vulnerability list, never
stored, so summary and detail cannot drift apart.
"""

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SEVERITIES: tuple[str, ...] = ("critical", "high", "moderate", "low", "info")
ADVISORY_SEVERITIES: tuple[str, ...] = ("critical", "high", "moderate", "low")

_SEVERITY_ALIASES = {
    "medium": "moderate",
    "informational": "info",
    "none": "info",
}


def normalize_severity(value: Any, default: str = "moderate") -> str:
    """Map an upstream severity label onto the common taxonomy.

    Args:
        value: Raw label from a tool (any case, may be None).
        default: Returned when the label is missing or unknown.

    Returns:
        One of ``SEVERITIES``.
    """
    label = str(value or "").strip().lower()
    label = _SEVERITY_ALIASES.get(label, label)
    return label if label in SEVERITIES else default


def severity_rank(severity: str) -> int:
    """Sort key: lower is more severe."""
    try:
        return SEVERITIES.index(severity)
    except ValueError:
        return len(SEVERITIES)


class Project(BaseModel):
    """A discovered project handed in by the caller.

    Example YAML::

        projects:
          - name: web
            path: ~/code/web
            ecosystem: node
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    ecosystem: str

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("ecosystem", mode="before")
    @classmethod
    def _normalize_ecosystem(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


@dataclass(frozen=True)
class Vulnerability:
    """A normalized finding from one ecosystem audit tool.

    Attributes:
        package: Affected package name.
        severity: One of ``SEVERITIES``.
        title: Human-readable summary (advisory title or id).
        url: Reference URL, empty string when the tool gives none.
        fix_version: Version that fixes the issue, or ``None`` (no fix yet).
        current_version: Affected version or range reported by the tool.
    """

    package: str
    severity: str
    title: str
    url: str = ""
    fix_version: str | None = None
    current_version: str | None = None

    def __post_init__(self) -> None:
        if self.severity not in SEVERITIES:
            raise ValueError(f"unknown severity {self.severity!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "severity": self.severity,
            "title": self.title,
            "url": self.url,
            "fix_version": self.fix_version,
            "current_version": self.current_version,
        }


@dataclass
class AuditResult:
    """Outcome of auditing one project with one ecosystem tool.

    A result with no error and no vulnerabilities means the project is clean.

    Attributes:
        project: Project name.
        ecosystem: Ecosystem tag (``node``, ``rust``, ...).
        vulnerabilities: Normalized findings, in tool order.
        command: The exact command line that was (or would be) run.
        error: Human-readable error, ``None`` on success.
        error_kind: ``AuditError.kind`` of the error, ``None`` on success.
    """

    project: str
    ecosystem: str
    vulnerabilities: tuple[Vulnerability, ...] = ()
    command: str = ""
    error: str | None = None
    error_kind: str | None = None

    def __post_init__(self) -> None:
        self.vulnerabilities = tuple(self.vulnerabilities)

    def count(self, severity: str) -> int:
        return sum(1 for v in self.vulnerabilities if v.severity == severity)

    @property
    def counts(self) -> dict[str, int]:
        """Severity → number of findings, for every severity level."""
        return {sev: self.count(sev) for sev in SEVERITIES}

    @property
    def critical(self) -> int:
        return self.count("critical")

    @property
    def high(self) -> int:
        return self.count("high")

    @property
    def moderate(self) -> int:
        return self.count("moderate")

    @property
    def low(self) -> int:
        return self.count("low")

    @property
    def info(self) -> int:
        return self.count("info")

    @property
    def total(self) -> int:
        return len(self.vulnerabilities)

    @property
    def is_clean(self) -> bool:
        return self.error is None and not self.vulnerabilities

    def sorted_vulnerabilities(self) -> list[Vulnerability]:
        """Findings ordered most-severe first (stable within a level)."""
        return sorted(self.vulnerabilities, key=lambda v: severity_rank(v.severity))

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "ecosystem": self.ecosystem,
            "command": self.command,
            "error": self.error,
            "error_kind": self.error_kind,
            "total": self.total,
            "counts": self.counts,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
        }


class Advisory(BaseModel):
    """A known advisory from the embedded catalog.

    ``affected_versions`` uses the AND-only range syntax understood by
    ``depsonar.versions.is_in_range``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    package: str
    severity: Literal["critical", "high", "moderate", "low"]
    title: str
    affected_versions: str
    patched_version: str
    url: str
    date: dt.date = Field(description="Disclosure date")


@dataclass(frozen=True)
class CveMatch:
    """An advisory paired with the installed version it was tested against."""

    advisory: Advisory
    installed_version: str
    is_affected: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "advisory": self.advisory.model_dump(mode="json"),
            "installed_version": self.installed_version,
            "is_affected": self.is_affected,
        }


@dataclass
class CveCheckResult:
    """Catalog matches for one project.

    Attributes:
        project: Project name.
        affected: Matches whose range includes the installed version.
        scanned_packages: Number of installed packages considered.
    """

    project: str
    affected: list[CveMatch] = field(default_factory=list)
    scanned_packages: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "scanned_packages": self.scanned_packages,
            "affected": [m.to_dict() for m in self.affected],
        }
