"""License compliance check for installed Node packages.

Every package under ``node_modules`` (scoped ``@scope/name`` packages
included) is classified from the ``license`` field of its ``package.json``
using the table in ``data/licenses.yaml``:

- ``permissive``: safe for commercial use, not reported.
- ``copyleft``: GPL, AGPL, LGPL and similar, flagged for review.
- ``non_commercial``: cannot be used in a commercial product.
- ``unknown``: missing or unrecognised license, review manually.

An SPDX ``OR`` expression is permissive when any of its options is.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, Literal

import yaml

from .advisories import read_json
from .models import Project

logger = logging.getLogger(__name__)

LICENSES_PATH = Path(__file__).parent / "data" / "licenses.yaml"

Status = Literal["permissive", "copyleft", "non_commercial", "unknown"]

UNKNOWN_LICENSE = "UNKNOWN"

_NOTES = {
    "permissive": "Permissive, safe for commercial use",
    "non_commercial": "Non-commercial license, cannot use in SaaS",
    "copyleft": "Copyleft license, review for your use case",
    "unknown": "Unknown license, review manually",
}


@dataclass(frozen=True)
class LicenseTable:
    permissive: frozenset[str] = frozenset()
    copyleft: frozenset[str] = frozenset()
    non_commercial: frozenset[str] = frozenset()
    copyleft_notes: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class LicenseInfo:
    """License of one installed package.

    Attributes:
        name: Package name (``@scope/name`` for scoped packages).
        version: Installed version, ``?`` when the manifest has none.
        license: License expression as declared.
        status: Classification from the license table.
        note: What the status means for the project.
    """

    name: str
    version: str
    license: str
    status: Status
    note: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "license": self.license,
            "status": self.status,
            "note": self.note,
        }


@dataclass
class LicenseResult:
    project: str
    packages: list[LicenseInfo] = field(default_factory=list)
    scanned_count: int = 0

    @property
    def issues(self) -> int:
        """Packages whose license restricts use (copyleft or non-commercial)."""
        return sum(1 for p in self.packages if p.status in ("copyleft", "non_commercial"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "scanned_count": self.scanned_count,
            "issues": self.issues,
            "packages": [p.to_dict() for p in self.packages],
        }


def _names(raw: dict[str, Any], key: str) -> frozenset[str]:
    values = raw.get(key)
    if not isinstance(values, list):
        return frozenset()
    return frozenset(str(v) for v in values)


def load_license_table(path: Path = LICENSES_PATH) -> LicenseTable:
    """Load the license classification table from YAML."""
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        return LicenseTable()
    notes = raw.get("copyleft_notes")
    return LicenseTable(
        permissive=_names(raw, "permissive"),
        copyleft=_names(raw, "copyleft"),
        non_commercial=_names(raw, "non_commercial"),
        copyleft_notes=tuple((str(k), str(v)) for k, v in notes.items()) if isinstance(notes, dict) else (),
    )


@lru_cache(maxsize=1)
def known_licenses() -> LicenseTable:
    return load_license_table()


def _strip_parens(expression: str) -> str:
    return expression.replace("(", "").replace(")", "").strip()


def classify_license(expression: str, table: LicenseTable | None = None) -> Status:
    """Classify a license expression such as ``MIT`` or ``(MIT OR GPL-3.0)``."""
    table = known_licenses() if table is None else table
    if not expression or expression == UNKNOWN_LICENSE:
        return "unknown"
    if " OR " in expression:
        options = [_strip_parens(part) for part in expression.split(" OR ")]
        if any(option in table.permissive for option in options):
            return "permissive"

    normalized = _strip_parens(expression)
    if normalized in table.permissive:
        return "permissive"
    if normalized in table.non_commercial:
        return "non_commercial"
    if normalized in table.copyleft:
        return "copyleft"
    return "unknown"


def license_note(expression: str, status: Status, table: LicenseTable | None = None) -> str:
    if status == "copyleft":
        table = known_licenses() if table is None else table
        for marker, note in table.copyleft_notes:
            if marker in expression:
                return note
    return _NOTES[status]


def declared_license(manifest: dict[str, Any]) -> str:
    """The license expression of a ``package.json``.

    Accepts the SPDX string form, the legacy ``{"type": ...}`` object and
    the legacy ``licenses`` array (joined with ``OR``).
    """
    value = manifest.get("license")
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and value.get("type"):
        return str(value["type"])
    legacy = manifest.get("licenses")
    if isinstance(legacy, list) and legacy:
        kinds = [str(item.get("type") if isinstance(item, dict) else item) for item in legacy]
        return " OR ".join(kinds)
    return UNKNOWN_LICENSE


def _installed_packages(node_modules: Path) -> Iterator[tuple[str, Path]]:
    """``(name, directory)`` for each package directory, scoped ones included."""
    for entry in sorted(node_modules.iterdir()):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if entry.name.startswith("@"):
            for scoped in sorted(entry.iterdir()):
                if scoped.is_dir():
                    yield f"{entry.name}/{scoped.name}", scoped
            continue
        yield entry.name, entry


def check_licenses(
    project_path: Path,
    project_name: str,
    table: LicenseTable | None = None,
) -> LicenseResult:
    """Classify the licenses of every package installed in a Node project.

    Args:
        project_path: Project root containing ``node_modules``.
        project_name: Name recorded on the result.
        table: Override for the embedded license table.

    Returns:
        ``LicenseResult`` listing only packages that are not permissive;
        empty when ``node_modules`` is missing.
    """
    table = known_licenses() if table is None else table
    node_modules = Path(project_path) / "node_modules"
    if not node_modules.is_dir():
        return LicenseResult(project=project_name)

    flagged: list[LicenseInfo] = []
    scanned = 0
    for name, pkg_dir in _installed_packages(node_modules):
        manifest = read_json(pkg_dir / "package.json")
        if not isinstance(manifest, dict):
            continue
        scanned += 1
        expression = declared_license(manifest)
        status = classify_license(expression, table)
        if status == "permissive":
            continue
        flagged.append(
            LicenseInfo(
                name=name,
                version=str(manifest.get("version") or "?"),
                license=expression,
                status=status,
                note=license_note(expression, status, table),
            )
        )
    return LicenseResult(project=project_name, packages=flagged, scanned_count=scanned)


def check_all_licenses(projects: Iterable[Project]) -> list[LicenseResult]:
    """Run ``check_licenses`` over Node projects, keeping those that need review."""
    results = []
    for project in projects:
        if project.ecosystem != "node":
            continue
        result = check_licenses(Path(project.path), project.name)
        if result.packages:
            logger.info("%s: %d package license(s) to review", project.name, len(result.packages))
            results.append(result)
    return results
