"""Deprecated and replaced Node package detection.

Two sources, checked in order for each declared dependency:

1. The embedded replacement table (``data/deprecated.yaml``) for packages
   that still work but have a preferred successor.
2. The ``deprecated`` flag npm writes into
   ``node_modules/<name>/package.json`` when the registry marks a release as
   deprecated.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Literal

import yaml

from .advisories import read_json
from .models import Project
from .versions import strip_specifier

logger = logging.getLogger(__name__)

REPLACEMENTS_PATH = Path(__file__).parent / "data" / "deprecated.yaml"

Reason = Literal["deprecated", "unmaintained", "replaced"]


@dataclass(frozen=True)
class DeprecatedPackage:
    """A dependency that should be reviewed.

    Attributes:
        name: Package name.
        version: Installed version (or declared specifier, stripped).
        reason: ``deprecated``, ``unmaintained`` or ``replaced``.
        message: Why the package was flagged.
        replacement: Suggested successor, ``None`` when there is none.
    """

    name: str
    version: str
    reason: Reason
    message: str
    replacement: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "reason": self.reason,
            "message": self.message,
            "replacement": self.replacement,
        }


@dataclass
class DeprecatedResult:
    project: str
    deprecated: list[DeprecatedPackage] = field(default_factory=list)
    scanned_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "scanned_count": self.scanned_count,
            "deprecated": [d.to_dict() for d in self.deprecated],
        }


def load_replacements(path: Path = REPLACEMENTS_PATH) -> dict[str, dict[str, str]]:
    """Load the package → ``{replacement, reason}`` table from YAML."""
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    table = raw.get("replacements") if isinstance(raw, dict) else None
    if not isinstance(table, dict):
        return {}
    return {str(name): dict(entry) for name, entry in table.items() if isinstance(entry, dict)}


@lru_cache(maxsize=1)
def known_replacements() -> dict[str, dict[str, str]]:
    return load_replacements()


def check_deprecated(
    project_path: Path,
    project_name: str,
    replacements: dict[str, dict[str, str]] | None = None,
) -> DeprecatedResult:
    """Flag deprecated or replaced dependencies of one Node project.

    Args:
        project_path: Project root containing ``package.json``.
        project_name: Name recorded on the result.
        replacements: Override for the embedded replacement table.

    Returns:
        ``DeprecatedResult``; empty when there is no readable manifest.
    """
    table = known_replacements() if replacements is None else replacements
    project_path = Path(project_path)
    pkg = read_json(project_path / "package.json")
    if not isinstance(pkg, dict):
        return DeprecatedResult(project=project_name)

    declared: dict[str, Any] = {}
    for key in ("dependencies", "devDependencies"):
        deps = pkg.get(key)
        if isinstance(deps, dict):
            declared.update(deps)

    found: list[DeprecatedPackage] = []
    for name, specifier in declared.items():
        known = table.get(name)
        if known:
            found.append(
                DeprecatedPackage(
                    name=name,
                    version=strip_specifier(specifier),
                    reason="replaced",
                    message=str(known.get("reason", "")),
                    replacement=known.get("replacement"),
                )
            )
            continue

        meta = read_json(project_path / "node_modules" / name / "package.json")
        if isinstance(meta, dict) and meta.get("deprecated"):
            flag = meta["deprecated"]
            found.append(
                DeprecatedPackage(
                    name=name,
                    version=str(meta.get("version") or strip_specifier(specifier)),
                    reason="deprecated",
                    message=flag if isinstance(flag, str) else "Package is deprecated",
                )
            )

    return DeprecatedResult(project=project_name, deprecated=found, scanned_count=len(declared))


def check_all_deprecated(projects: Iterable[Project]) -> list[DeprecatedResult]:
    """Run ``check_deprecated`` over Node projects, keeping those with findings."""
    results = []
    for project in projects:
        if project.ecosystem != "node":
            continue
        result = check_deprecated(Path(project.path), project.name)
        if result.deprecated:
            logger.info("%s: %d deprecated package(s)", project.name, len(result.deprecated))
            results.append(result)
    return results
