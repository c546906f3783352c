"""Node.js audit via ``npm audit``, ``pnpm audit`` or ``yarn audit``.

Three upstream schemas are accepted:

- npm v7+: ``{"vulnerabilities": {name: {severity, via, fixAvailable, range}}}``
- npm v6 / pnpm: ``{"advisories": {id: {module_name, severity, title, ...}}}``
- yarn classic: newline-delimited ``{"type": "auditAdvisory", "data": ...}``
"""

import logging
from pathlib import Path
from typing import Any

from ..errors import ParseFailure, ToolFailed
from ..models import Vulnerability, normalize_severity
from .base import AuditAdapter, iter_json_documents, load_json

logger = logging.getLogger(__name__)

# Checked in this order; the first lockfile found decides.
LOCKFILES: tuple[tuple[str, str], ...] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
)

AUDIT_COMMANDS: dict[str, list[str]] = {
    "pnpm": ["pnpm", "audit", "--json"],
    "yarn": ["yarn", "audit", "--json"],
    "npm": ["npm", "audit", "--json"],
}

NO_FIX_RANGE = "<0.0.0"


def detect_package_manager(project_path: Path) -> str:
    """Pick the package manager from lockfile presence (pnpm > yarn > bun > npm)."""
    for lockfile, manager in LOCKFILES:
        if (project_path / lockfile).exists():
            return manager
    return "npm"


def _representative_advisory(via: Any) -> dict[str, Any]:
    """First ``via`` entry that is an advisory object with a title."""
    if not isinstance(via, list):
        return {}
    for entry in via:
        if isinstance(entry, dict) and entry.get("title"):
            return entry
    return {}


def _fix_from_fix_available(fix: Any) -> str | None:
    if isinstance(fix, dict):
        version = fix.get("version")
        return str(version) if version else None
    return "available" if fix else None


def parse_npm_vulnerabilities(data: dict[str, Any]) -> list[Vulnerability]:
    """Normalize the npm v7+ ``vulnerabilities`` map."""
    vulns: list[Vulnerability] = []
    entries = data.get("vulnerabilities") or {}
    if not isinstance(entries, dict):
        raise ParseFailure("npm audit 'vulnerabilities' is not an object")

    for pkg, info in entries.items():
        if not isinstance(info, dict):
            continue
        advisory = _representative_advisory(info.get("via"))
        vulns.append(
            Vulnerability(
                package=str(pkg),
                severity=normalize_severity(info.get("severity")),
                title=str(advisory.get("title") or f"Vulnerability in {pkg}"),
                url=str(advisory.get("url") or ""),
                fix_version=_fix_from_fix_available(info.get("fixAvailable")),
                current_version=info.get("range") or None,
            )
        )

    metadata = data.get("metadata")
    meta = metadata.get("vulnerabilities") if isinstance(metadata, dict) else None
    if isinstance(meta, dict) and isinstance(meta.get("total"), int) and meta["total"] != len(vulns):
        logger.debug("npm metadata reports %s vulnerabilities, parsed %d", meta["total"], len(vulns))
    return vulns


def _from_legacy_advisory(adv: dict[str, Any]) -> Vulnerability:
    findings = adv.get("findings") or []
    current = None
    if isinstance(findings, list) and findings and isinstance(findings[0], dict):
        current = findings[0].get("version")
    patched = adv.get("patched_versions")
    fix = None if not patched or patched == NO_FIX_RANGE else str(patched)
    pkg = str(adv.get("module_name") or "unknown")
    return Vulnerability(
        package=pkg,
        severity=normalize_severity(adv.get("severity")),
        title=str(adv.get("title") or f"Vulnerability in {pkg}"),
        url=str(adv.get("url") or ""),
        fix_version=fix,
        current_version=str(current) if current else adv.get("vulnerable_versions") or None,
    )


def parse_legacy_advisories(data: dict[str, Any]) -> list[Vulnerability]:
    """Normalize the npm v6 / pnpm ``advisories`` map."""
    entries = data.get("advisories") or {}
    if not isinstance(entries, dict):
        raise ParseFailure("audit 'advisories' is not an object")
    return [_from_legacy_advisory(adv) for adv in entries.values() if isinstance(adv, dict)]


def parse_yarn_stream(raw: str) -> list[Vulnerability]:
    """Normalize yarn classic's NDJSON stream, one entry per advisory."""
    vulns: list[Vulnerability] = []
    seen: set[tuple[str, Any]] = set()
    recognised = False
    for doc in iter_json_documents(raw):
        if not isinstance(doc, dict):
            continue
        kind = doc.get("type")
        if kind in ("auditSummary", "auditAdvisory", "info", "warning"):
            recognised = True
        if kind != "auditAdvisory":
            continue
        payload = doc.get("data")
        adv = payload.get("advisory") if isinstance(payload, dict) else None
        if not isinstance(adv, dict):
            continue
        key = (str(adv.get("module_name")), adv.get("id"))
        if key in seen:
            continue
        seen.add(key)
        vulns.append(_from_legacy_advisory(adv))
    if not recognised:
        raise ParseFailure("Failed to parse yarn audit output")
    return vulns


class NodeAdapter(AuditAdapter):
    """Audit adapter for ``package.json`` projects."""

    ecosystem = "node"
    manifests = ("package.json",)
    install_hint = "Install Node.js (npm) or the project's package manager."

    def command(self, project_path: Path) -> list[str]:
        manager = detect_package_manager(project_path)
        return list(AUDIT_COMMANDS.get(manager, AUDIT_COMMANDS["npm"]))

    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        if detect_package_manager(project_path) == "yarn":
            return parse_yarn_stream(raw)

        data = load_json(raw, "npm audit")
        if not isinstance(data, dict):
            raise ParseFailure("Failed to parse audit output: expected a JSON object")
        error = data.get("error")
        if isinstance(error, dict):
            summary = error.get("summary") or error.get("code") or "unknown error"
            raise ToolFailed(f"audit reported an error: {summary}")
        if "vulnerabilities" in data:
            return parse_npm_vulnerabilities(data)
        if "advisories" in data:
            return parse_legacy_advisories(data)
        raise ParseFailure("Failed to parse audit output: no 'vulnerabilities' or 'advisories' key")
