"""Go audit via ``govulncheck -json ./...``.

govulncheck writes a stream of JSON messages rather than one document.
Older releases emit ``{"vulnerability": {...}}`` per finding; 1.0 and later
emit ``{"osv": {...}}`` entries plus ``{"finding": {...}}`` entries that
reference them by id.  Only OSV entries with at least one finding are
reported.  Messages that fail to decode are skipped.
"""

from pathlib import Path
from typing import Any

from ..models import Vulnerability
from .base import AuditAdapter, iter_json_documents

GO_VULN_URL = "https://pkg.go.dev/vuln/{id}"


def _legacy_vulnerability(v: dict[str, Any]) -> Vulnerability:
    modules = v.get("modules") or []
    first = modules[0] if isinstance(modules, list) and modules and isinstance(modules[0], dict) else {}
    vuln_id = v.get("id") or ""
    return Vulnerability(
        package=str(first.get("module") or "unknown"),
        severity="high",
        title=str(vuln_id or "Vulnerability"),
        url=GO_VULN_URL.format(id=vuln_id) if vuln_id else "",
        fix_version=first.get("fixed_version") or None,
        current_version=first.get("found_version") or None,
    )


class GoAdapter(AuditAdapter):
    """Audit adapter for Go modules."""

    ecosystem = "go"
    manifests = ("go.mod",)
    install_hint = "Run: go install golang.org/x/vuln/cmd/govulncheck@latest"
    default_severity = "high"

    def command(self, project_path: Path) -> list[str]:
        return ["govulncheck", "-json", "./..."]

    def probe_command(self) -> list[str]:
        return ["govulncheck", "-version"]

    def parse(self, raw: str, project_path: Path) -> list[Vulnerability]:
        vulns: list[Vulnerability] = []
        osv_by_id: dict[str, dict[str, Any]] = {}
        findings: dict[tuple[str, str], dict[str, Any]] = {}

        for doc in iter_json_documents(raw):
            if not isinstance(doc, dict):
                continue
            if isinstance(doc.get("vulnerability"), dict):
                vulns.append(_legacy_vulnerability(doc["vulnerability"]))
            elif isinstance(doc.get("osv"), dict):
                osv = doc["osv"]
                if osv.get("id"):
                    osv_by_id[str(osv["id"])] = osv
            elif isinstance(doc.get("finding"), dict):
                finding = doc["finding"]
                trace = finding.get("trace") or []
                frame = trace[0] if isinstance(trace, list) and trace and isinstance(trace[0], dict) else {}
                key = (str(finding.get("osv") or ""), str(frame.get("module") or "unknown"))
                if key[0] and key not in findings:
                    findings[key] = {"finding": finding, "frame": frame}

        for (vuln_id, module), hit in findings.items():
            osv = osv_by_id.get(vuln_id, {})
            vulns.append(
                Vulnerability(
                    package=module,
                    severity=self.default_severity,
                    title=str(osv.get("summary") or vuln_id),
                    url=GO_VULN_URL.format(id=vuln_id),
                    fix_version=hit["finding"].get("fixed_version") or None,
                    current_version=hit["frame"].get("version") or None,
                )
            )
        return vulns
