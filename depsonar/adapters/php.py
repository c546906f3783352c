"""PHP audit via ``composer audit --format=json``."""

from pathlib import Path

from ..errors import ParseFailure
from ..models import Vulnerability
from .base import AuditAdapter, load_json


class PhpAdapter(AuditAdapter):
    """Audit adapter for Composer projects.

    Advisories arrive grouped by package.  Composer's JSON carries no
    severity we rely on, so every finding is reported as ``high``.
    """

    ecosystem = "php"
    manifests = ("composer.lock", "composer.json")
    install_hint = "Install Composer: https://getcomposer.org/download/"
    default_severity = "high"

    def command(self, project_path: Path) -> list[str]:
        return ["composer", "audit", "--format=json"]

    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        data = load_json(raw, "composer audit")
        if not isinstance(data, dict):
            raise ParseFailure("Failed to parse composer audit output: expected a JSON object")
        grouped = data.get("advisories") or {}
        if isinstance(grouped, list):
            # composer prints [] instead of {} when there is nothing to report
            grouped = {}
        if not isinstance(grouped, dict):
            raise ParseFailure("composer audit 'advisories' is not an object")

        vulns: list[Vulnerability] = []
        for pkg, advisories in grouped.items():
            if isinstance(advisories, dict):
                advisories = list(advisories.values())
            if not isinstance(advisories, list):
                continue
            for adv in advisories:
                if not isinstance(adv, dict):
                    continue
                vulns.append(
                    Vulnerability(
                        package=str(pkg),
                        severity=self.default_severity,
                        title=str(adv.get("title") or adv.get("advisoryId") or "Vulnerability"),
                        url=str(adv.get("link") or ""),
                        fix_version=None,
                        current_version=adv.get("affectedVersions") or None,
                    )
                )
        return vulns
