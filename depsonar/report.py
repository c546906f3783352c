"""Report generation using Jinja2 templates.

Markdown sections live in ``depsonar/templates/``; one template per view
(audit, CVE, deprecated, licenses, live).  JSON output is the ``to_dict()``
form of each result with a generation timestamp.  Both writers replace the
target file atomically.
"""

import datetime as dt
import json
from pathlib import Path
from typing import Any, Iterable, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .advisories import CatalogStats
from .deprecated import DeprecatedResult
from .licenses import LicenseResult
from .models import AuditResult, CveCheckResult
from .osv import OsvResult

_TEMPLATES_DIR = Path(__file__).parent / "templates"

# Rows shown per project before the table is cut short.
MAX_ROWS = 20

_SEVERITY_EMOJI = {
    "critical": "🔴",
    "high": "🟠",
    "moderate": "🟡",
}

_LICENSE_EMOJI = {
    "non_commercial": "🔴",
    "copyleft": "🟡",
}

_REASON_EMOJI = {
    "deprecated": "🔴",
    "replaced": "🟡",
}


def severity_emoji(severity: str) -> str:
    return _SEVERITY_EMOJI.get(severity, "⚪")


def _project_emoji(result: AuditResult) -> str:
    if result.critical:
        return "🔴"
    if result.high:
        return "🟠"
    return "🟡"


def _cell(text: Any) -> str:
    """Make a value safe for a Markdown table cell."""
    return " ".join(str(text if text is not None else "").split()).replace("|", "\\|")


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(default_for_string=False, default=False),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["severity_emoji"] = severity_emoji
    env.filters["project_emoji"] = _project_emoji
    env.filters["reason_emoji"] = lambda reason: _REASON_EMOJI.get(reason, "⚠️")
    env.filters["license_emoji"] = lambda status: _LICENSE_EMOJI.get(status, "❓")
    env.filters["cell"] = _cell
    return env


def _headline(parts: Iterable[str]) -> str:
    return " | ".join(p for p in parts if p)


def _render(template: str, **context: Any) -> str:
    text = _environment().get_template(template).render(**context)
    return text.strip() + "\n"


def render_audit(results: Sequence[AuditResult], scanned: int | None = None) -> str:
    """Render the security-audit section.

    Args:
        results: Aggregator output (projects with findings or errors).
        scanned: Number of projects scanned; defaults to ``len(results)``.

    Returns:
        Markdown text.
    """
    flagged = [r for r in results if r.total > 0]
    errored = [r for r in results if r.error and r.total == 0]
    total = sum(r.total for r in results)
    critical = sum(r.critical for r in results)
    high = sum(r.high for r in results)
    headline = _headline(
        [
            f"**{scanned if scanned is not None else len(results)}** projects scanned",
            f"**{total}** vulnerabilities found",
            f"**{critical} CRITICAL**" if critical else "",
            f"**{high} HIGH**" if high else "",
        ]
    )
    return _render(
        "audit.md.j2",
        flagged=flagged,
        errored=errored,
        headline=headline,
        max_rows=MAX_ROWS,
    )


def render_cve(results: Sequence[CveCheckResult], stats: CatalogStats | None = None) -> str:
    """Render the catalog-match section, with catalog stats when clean."""
    matches = [m for r in results for m in r.affected]
    critical = sum(1 for m in matches if m.advisory.severity == "critical")
    high = sum(1 for m in matches if m.advisory.severity == "high")
    headline = _headline(
        [
            f"**{len(matches)}** known CVE(s) affect your projects",
            f"**{critical} CRITICAL**" if critical else "",
            f"**{high} HIGH**" if high else "",
        ]
    )
    return _render(
        "cve.md.j2",
        results=[r for r in results if r.affected],
        headline=headline,
        stats=stats,
    )


def render_deprecated(results: Sequence[DeprecatedResult]) -> str:
    """Render the deprecated / replaced packages section."""
    total = sum(len(r.deprecated) for r in results)
    return _render("deprecated.md.j2", results=list(results), total=total)


def render_licenses(results: Sequence[LicenseResult]) -> str:
    """Render the license compliance section."""
    packages = [p for r in results for p in r.packages]
    counts = {s: sum(1 for p in packages if p.status == s) for s in ("non_commercial", "copyleft", "unknown")}
    headline = _headline(
        [
            f"**{len(packages)}** package(s) need review",
            f"**{counts['non_commercial']} non-commercial**" if counts["non_commercial"] else "",
            f"**{counts['copyleft']} copyleft**" if counts["copyleft"] else "",
            f"**{counts['unknown']} unknown**" if counts["unknown"] else "",
        ]
    )
    return _render("licenses.md.j2", results=[r for r in results if r.packages], headline=headline)


def render_live(results: Sequence[OsvResult]) -> str:
    """Render the live OSV lookup section."""
    return _render(
        "live.md.j2",
        found=[r for r in results if r.matches],
        errored=[r for r in results if r.error],
        total=sum(len(r.matches) for r in results),
    )


def _now_utc_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


def write_markdown_report(path: Path, text: str) -> None:
    """Write rendered Markdown to ``path`` atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        f.write(text)
    tmp.replace(path)


def write_json_report(path: Path, payload: dict[str, Any]) -> None:
    """Write a JSON report with a ``generated_at`` timestamp, atomically.

    Args:
        path: Output path.
        payload: JSON-serializable report body.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = {"generated_at": _now_utc_iso(), **payload}
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(path)
