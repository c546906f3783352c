"""Live vulnerability lookup against the OSV.dev batch API.

Complements the embedded catalog with current data.  All network I/O for the
package is isolated here; a failed lookup is recorded on that project's
result and never aborts the batch.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import __version__
from .advisories import installed_versions
from .models import Project

logger = logging.getLogger(__name__)

OSV_QUERYBATCH_URL = "https://api.osv.dev/v1/querybatch"
OSV_VULN_URL = "https://osv.dev/vulnerability/{id}"

DEFAULT_HTTP_TIMEOUT = (10, 60)  # (connect, read)
BATCH_SIZE = 1000

# ecosystem tag -> OSV ecosystem name
OSV_ECOSYSTEMS: dict[str, str] = {
    "node": "npm",
    "python": "PyPI",
    "rust": "crates.io",
    "php": "Packagist",
    "go": "Go",
}


@dataclass(frozen=True)
class OsvMatch:
    package: str
    version: str
    vuln_id: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"package": self.package, "version": self.version, "vuln_id": self.vuln_id, "url": self.url}


@dataclass
class OsvResult:
    """Live lookup outcome for one project.

    Attributes:
        project: Project name.
        matches: Known vulnerabilities for the installed versions.
        queried: Number of package versions sent to OSV.
        error: Network or API error, ``None`` on success.
    """

    project: str
    matches: list[OsvMatch] = field(default_factory=list)
    queried: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "queried": self.queried,
            "error": self.error,
            "matches": [m.to_dict() for m in self.matches],
        }


def requests_session() -> requests.Session:
    """Create a requests session with the package's default headers."""
    s = requests.Session()
    s.headers.update(
        {
            "User-Agent": f"depsonar/{__version__}",
            "Accept": "application/json",
        }
    )
    return s


@retry(
    retry=retry_if_exception_type(requests.RequestException),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)
def post_json(session: requests.Session, url: str, payload: dict[str, Any]) -> Any:
    """POST a JSON payload and return the decoded response, with retry logic."""
    r = session.post(url, json=payload, timeout=DEFAULT_HTTP_TIMEOUT)
    r.raise_for_status()
    return r.json()


def query_osv(
    session: requests.Session,
    installed: Mapping[str, str],
    ecosystem: str,
) -> list[OsvMatch]:
    """Look up installed package versions in OSV.

    Args:
        session: Requests session.
        installed: Package name → version.
        ecosystem: Ecosystem tag (``node``, ``python``, ...).

    Returns:
        One ``OsvMatch`` per (package, vulnerability id) pair.

    Raises:
        ValueError: if OSV has no mapping for the ecosystem.
        requests.RequestException: after retries are exhausted.
    """
    osv_ecosystem = OSV_ECOSYSTEMS.get(ecosystem)
    if osv_ecosystem is None:
        raise ValueError(f"OSV lookup not supported for {ecosystem}")

    items = sorted(installed.items())
    matches: list[OsvMatch] = []
    for start in range(0, len(items), BATCH_SIZE):
        chunk = items[start : start + BATCH_SIZE]
        payload = {
            "queries": [
                {"package": {"name": name, "ecosystem": osv_ecosystem}, "version": version}
                for name, version in chunk
            ]
        }
        data = post_json(session, OSV_QUERYBATCH_URL, payload)
        results = data.get("results", []) if isinstance(data, dict) else []
        for (name, version), entry in zip(chunk, results):
            for vuln in (entry or {}).get("vulns") or []:
                vuln_id = vuln.get("id") if isinstance(vuln, dict) else None
                if vuln_id:
                    matches.append(OsvMatch(name, version, vuln_id, OSV_VULN_URL.format(id=vuln_id)))
    return matches


def check_project_osv(session: requests.Session, project: Project) -> OsvResult:
    """Live lookup for one project; network errors land on the result."""
    installed = installed_versions(Path(project.path)) if project.ecosystem == "node" else {}
    if not installed:
        return OsvResult(project=project.name)
    try:
        matches = query_osv(session, installed, project.ecosystem)
    except (requests.RequestException, ValueError) as e:
        logger.warning("OSV lookup for %s failed: %s", project.name, e)
        return OsvResult(project=project.name, queried=len(installed), error=str(e))
    return OsvResult(project=project.name, matches=matches, queried=len(installed))


def check_all_osv(
    projects: Iterable[Project],
    session: requests.Session | None = None,
) -> list[OsvResult]:
    """Run the live lookup over every project, keeping those with matches or errors."""
    session = session or requests_session()
    results = []
    for project in projects:
        result = check_project_osv(session, project)
        if result.matches or result.error:
            results.append(result)
    return results
