"""Python audit via ``pip-audit --format=json``.

pip-audit has emitted two shapes over time: a bare list of dependencies and
``{"dependencies": [...]}``.  Both are accepted.  There is no severity field,
so a finding with a known fix is ``high`` and one without is ``moderate``.
"""

from pathlib import Path
from typing import Any

from ..errors import ParseFailure
from ..models import Vulnerability
from .base import AuditAdapter, load_json

NVD_URL = "https://nvd.nist.gov/vuln/detail/{id}"
OSV_URL = "https://osv.dev/vulnerability/{id}"


def _reference_url(vuln: dict[str, Any]) -> str:
    aliases = vuln.get("aliases")
    if not isinstance(aliases, list):
        aliases = []
    for alias in aliases:
        if isinstance(alias, str) and alias.upper().startswith("CVE-"):
            return NVD_URL.format(id=alias)
    vuln_id = vuln.get("id")
    return OSV_URL.format(id=vuln_id) if vuln_id else ""


class PythonAdapter(AuditAdapter):
    """Audit adapter for requirements / pyproject projects."""

    ecosystem = "python"
    manifests = ("requirements.txt", "pyproject.toml")
    install_hint = "Run: pip install pip-audit"

    def command(self, project_path: Path) -> list[str]:
        if (project_path / "requirements.txt").is_file():
            return ["pip-audit", "--format=json", "-r", "requirements.txt"]
        return ["pip-audit", "--format=json", "."]

    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        data = load_json(raw, "pip-audit")
        if isinstance(data, list):
            deps = data
        elif isinstance(data, dict):
            deps = data.get("dependencies") or []
        else:
            raise ParseFailure("Failed to parse pip-audit output: unexpected JSON type")
        if not isinstance(deps, list):
            raise ParseFailure("pip-audit 'dependencies' is not a list")

        vulns: list[Vulnerability] = []
        for dep in deps:
            if not isinstance(dep, dict) or dep.get("skip_reason"):
                continue
            found = dep.get("vulns") or []
            if not isinstance(found, list):
                continue
            for v in found:
                if not isinstance(v, dict):
                    continue
                fixes = v.get("fix_versions") or []
                if not isinstance(fixes, list):
                    raise ParseFailure(f"pip-audit 'fix_versions' for {dep.get('name')} is not a list")
                vulns.append(
                    Vulnerability(
                        package=str(dep.get("name") or "unknown"),
                        severity="high" if fixes else "moderate",
                        title=str(v.get("id") or "Vulnerability"),
                        url=_reference_url(v),
                        fix_version=str(fixes[0]) if fixes else None,
                        current_version=dep.get("version") or None,
                    )
                )
        return vulns
