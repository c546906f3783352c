"""Rust audit via ``cargo audit --json``.

cargo-audit reports a CVSS value per advisory instead of a severity label.
Numeric scores map onto the common taxonomy with fixed thresholds; a missing
score, or a CVSS vector string with no base score, maps to ``moderate``.
"""

from pathlib import Path
from typing import Any

from ..errors import ParseFailure
from ..models import Vulnerability
from .base import AuditAdapter, load_json

RUSTSEC_URL = "https://rustsec.org/advisories/{id}"


def severity_from_cvss(cvss: Any) -> str:
    """Map a CVSS base score onto the severity taxonomy.

    Args:
        cvss: Score as a number or numeric string; anything else counts as
            missing.

    Returns:
        ``critical`` (>= 9), ``high`` (>= 7), ``moderate`` (>= 4) or ``low``.
    """
    if cvss is None or isinstance(cvss, bool):
        return "moderate"
    try:
        score = float(cvss)
    except (TypeError, ValueError):
        return "moderate"
    if score != score:  # NaN
        return "moderate"
    if score >= 9:
        return "critical"
    if score >= 7:
        return "high"
    if score >= 4:
        return "moderate"
    return "low"


class RustAdapter(AuditAdapter):
    """Audit adapter for Cargo projects."""

    ecosystem = "rust"
    manifests = ("Cargo.lock", "Cargo.toml")
    install_hint = "Run: cargo install cargo-audit"

    def command(self, project_path: Path) -> list[str]:
        return ["cargo", "audit", "--json"]

    def required_tools(self, project_path: Path) -> list[str]:
        return ["cargo", "cargo-audit"]

    def probe_command(self) -> list[str]:
        return ["cargo-audit", "--version"]

    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        data = load_json(raw, "cargo audit")
        if not isinstance(data, dict):
            raise ParseFailure("Failed to parse cargo audit output: expected a JSON object")
        section = data.get("vulnerabilities") or {}
        entries = section.get("list") if isinstance(section, dict) else None
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ParseFailure("cargo audit 'vulnerabilities.list' is not a list")

        vulns: list[Vulnerability] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            advisory = entry.get("advisory") or {}
            package = entry.get("package") or {}
            versions = entry.get("versions") or {}
            for name, value in (("advisory", advisory), ("package", package), ("versions", versions)):
                if not isinstance(value, dict):
                    raise ParseFailure(f"cargo audit entry '{name}' is not an object")
            patched = versions.get("patched") or []
            adv_id = advisory.get("id")
            url = advisory.get("url") or (RUSTSEC_URL.format(id=adv_id) if adv_id else "")
            vulns.append(
                Vulnerability(
                    package=str(advisory.get("package") or package.get("name") or "unknown"),
                    severity=severity_from_cvss(advisory.get("cvss")),
                    title=str(advisory.get("title") or adv_id or "Unknown vulnerability"),
                    url=str(url),
                    fix_version=str(patched[0]) if isinstance(patched, list) and patched else None,
                    current_version=package.get("version") or None,
                )
            )
        return vulns
