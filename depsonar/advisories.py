"""Embedded advisory catalog and installed-version resolution.

The catalog is a point-in-time snapshot shipped as ``data/advisories.yaml``.
It is loaded once per process and never mutated; lookups are pure.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from .models import Advisory, CveCheckResult, CveMatch
from .versions import is_in_range, strip_specifier

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent / "data"
DEFAULT_CATALOG_PATH = _DATA_DIR / "advisories.yaml"


@dataclass(frozen=True)
class CatalogStats:
    """Observability summary of a catalog snapshot.

    Attributes:
        total: Number of advisory records.
        packages: Covered package names, sorted.
        last_update: Most recent disclosure date (ISO), or ``"unknown"``.
    """

    total: int
    packages: tuple[str, ...]
    last_update: str


class AdvisoryCatalog:
    """Read-only collection of ``Advisory`` records keyed by package name.

    Records sharing an advisory id are kept separate: each gates on its own
    package.
    """

    def __init__(self, advisories: Iterable[Advisory]):
        self._advisories: tuple[Advisory, ...] = tuple(advisories)
        by_package: dict[str, list[Advisory]] = {}
        for adv in self._advisories:
            by_package.setdefault(adv.package, []).append(adv)
        self._by_package = {name: tuple(advs) for name, advs in by_package.items()}

    def __len__(self) -> int:
        return len(self._advisories)

    def __iter__(self):
        return iter(self._advisories)

    @property
    def advisories(self) -> tuple[Advisory, ...]:
        return self._advisories

    def find_advisories(self, package: str) -> list[Advisory]:
        """Return every advisory recorded for an exact package name."""
        return list(self._by_package.get(package, ()))

    def match_installed(self, installed: Mapping[str, str]) -> list[CveMatch]:
        """Match installed versions against the catalog.

        Args:
            installed: Package name → installed version.

        Returns:
            One ``CveMatch`` per advisory whose range includes the installed
            version, in catalog order.
        """
        matches: list[CveMatch] = []
        for adv in self._advisories:
            version = installed.get(adv.package)
            if not version:
                continue
            if is_in_range(version, adv.affected_versions):
                matches.append(CveMatch(advisory=adv, installed_version=version, is_affected=True))
        return matches

    def stats(self) -> CatalogStats:
        packages = tuple(sorted({a.package for a in self._advisories}))
        dates = sorted(a.date for a in self._advisories)
        return CatalogStats(
            total=len(self._advisories),
            packages=packages,
            last_update=dates[-1].isoformat() if dates else "unknown",
        )


def load_catalog(path: Path = DEFAULT_CATALOG_PATH) -> AdvisoryCatalog:
    """Load and validate an advisory table from YAML.

    Args:
        path: YAML file with a top-level ``advisories`` list.

    Returns:
        ``AdvisoryCatalog`` with validated records.

    Raises:
        FileNotFoundError: if the file doesn't exist.
        pydantic.ValidationError: if an entry fails validation.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    entries = (raw.get("advisories") if isinstance(raw, dict) else None) or []
    return AdvisoryCatalog(Advisory.model_validate(e) for e in entries)


@lru_cache(maxsize=1)
def default_catalog() -> AdvisoryCatalog:
    """The process-wide catalog built from the embedded table."""
    catalog = load_catalog()
    logger.debug("Loaded %d advisories from %s", len(catalog), DEFAULT_CATALOG_PATH.name)
    return catalog


def read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError):
        return None


def installed_versions(project_path: Path) -> dict[str, str]:
    """Resolve installed package versions for a Node project.

    Reads ``dependencies`` and ``devDependencies`` from ``package.json``.
    Each version comes from ``node_modules/<name>/package.json`` when that is
    readable, otherwise from the declared specifier with range operators
    stripped.

    Args:
        project_path: Project root.

    Returns:
        Package name → version.  Empty when there is no readable manifest.
    """
    pkg = read_json(project_path / "package.json")
    if not isinstance(pkg, dict):
        return {}

    declared: dict[str, Any] = {}
    for key in ("dependencies", "devDependencies"):
        deps = pkg.get(key)
        if isinstance(deps, dict):
            declared.update(deps)

    versions: dict[str, str] = {}
    for name, specifier in declared.items():
        meta = read_json(project_path / "node_modules" / name / "package.json")
        if isinstance(meta, dict) and isinstance(meta.get("version"), str):
            versions[name] = meta["version"]
        else:
            versions[name] = strip_specifier(specifier)
    return versions


def check_project_cves(
    project_path: Path,
    project_name: str,
    catalog: AdvisoryCatalog | None = None,
) -> CveCheckResult:
    """Match one project's installed versions against the catalog."""
    catalog = catalog if catalog is not None else default_catalog()
    installed = installed_versions(Path(project_path))
    return CveCheckResult(
        project=project_name,
        affected=catalog.match_installed(installed),
        scanned_packages=len(installed),
    )
