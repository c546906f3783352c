"""Command-line entry point (``depsonar``).

Commands:

- ``audit``       run each project's ecosystem audit tool
- ``cve``         match installed versions against the embedded catalog
- ``deprecated``  flag deprecated or replaced Node packages
- ``licenses``    flag copyleft, non-commercial and unknown licenses
- ``live``        look up installed versions on OSV.dev
- ``catalog``     show what the embedded catalog covers
- ``tools``       probe which audit tools are installed

Projects come from a config file (see ``depsonar.config``) and/or repeated
``--project ECOSYSTEM:PATH`` options.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import yaml
from pydantic import ValidationError

from . import __version__
from .adapters import ADAPTERS, get_adapter
from .advisories import default_catalog
from .aggregator import audit_all, match_all_cves, select_projects
from .config import ScanConfig, find_config, load_config
from .deprecated import check_all_deprecated
from .licenses import check_all_licenses
from .models import SEVERITIES, Project, severity_rank
from .osv import check_all_osv
from .report import (
    render_audit,
    render_cve,
    render_deprecated,
    render_licenses,
    render_live,
    write_json_report,
    write_markdown_report,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_THRESHOLD = 1
EXIT_CONFIG = 2


def parse_project(value: str) -> Project:
    """Parse ``ECOSYSTEM:PATH``; the project is named after the directory."""
    ecosystem, sep, path = value.partition(":")
    if not sep or not ecosystem.strip() or not path.strip():
        raise argparse.ArgumentTypeError(f"expected ECOSYSTEM:PATH, got {value!r}")
    resolved = Path(path).expanduser()
    return Project(name=resolved.resolve().name or str(resolved), path=resolved, ecosystem=ecosystem)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Config file (default: depsonar.yaml if present)")
    common.add_argument(
        "--project",
        dest="projects",
        action="append",
        type=parse_project,
        default=[],
        metavar="ECOSYSTEM:PATH",
        help="Project to scan; repeatable",
    )
    common.add_argument("--workers", type=int, help="Concurrent audit subprocesses")
    common.add_argument("--timeout", type=float, help="Per-audit timeout in seconds")
    common.add_argument("--deadline", type=float, help="Wall-clock budget for the whole scan in seconds")
    common.add_argument("--json", dest="json_out", type=Path, metavar="OUT", help="Write a JSON report")
    common.add_argument("--markdown", dest="markdown_out", type=Path, metavar="OUT", help="Write Markdown here instead of stdout")
    common.add_argument("--fail-on", choices=SEVERITIES, help="Exit 1 when a finding at or above this severity exists")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(prog="depsonar", description="Dependency audit and advisory correlation")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("audit", parents=[common], help="Run ecosystem audit tools")
    sub.add_parser("cve", parents=[common], help="Match installed versions against the embedded catalog")
    sub.add_parser("deprecated", parents=[common], help="Flag deprecated or replaced Node packages")
    sub.add_parser("licenses", parents=[common], help="Flag copyleft, non-commercial and unknown licenses")
    sub.add_parser("live", parents=[common], help="Look up installed versions on OSV.dev")
    sub.add_parser("catalog", parents=[common], help="Show embedded catalog coverage")
    sub.add_parser("tools", parents=[common], help="Probe installed audit tools")
    return parser


def resolve_config(args: argparse.Namespace) -> ScanConfig:
    """Merge the config file (if any) with command-line overrides.

    Raises:
        FileNotFoundError: if ``--config`` names a missing file.
        pydantic.ValidationError: if the merged values are invalid.
    """
    path = args.config if args.config is not None else Path(find_config())
    if args.config is not None or path.exists():
        cfg = load_config(path)
        logger.debug("Loaded config from %s", path)
    else:
        cfg = ScanConfig()

    data = cfg.model_dump()
    if args.projects:
        data["projects"] = [*data["projects"], *(p.model_dump() for p in args.projects)]
    for field, value in (
        ("max_workers", args.workers),
        ("audit_timeout", args.timeout),
        ("scan_deadline", args.deadline),
        ("fail_on", args.fail_on),
    ):
        if value is not None:
            data[field] = value
    return ScanConfig.model_validate(data)


def _at_or_above(severities: Sequence[str], threshold: str | None) -> bool:
    if threshold is None:
        return False
    limit = severity_rank(threshold)
    return any(severity_rank(s) <= limit for s in severities)


def _emit(args: argparse.Namespace, markdown: str, payload: dict[str, Any]) -> None:
    if args.markdown_out:
        write_markdown_report(args.markdown_out, markdown)
        print(f"Wrote {args.markdown_out}")
    else:
        print(markdown, end="")
    if args.json_out:
        write_json_report(args.json_out, payload)
        print(f"Wrote {args.json_out}")


def _cmd_audit(args: argparse.Namespace, cfg: ScanConfig) -> int:
    projects = select_projects(cfg.projects, cfg.exclude)
    results = audit_all(
        projects,
        max_workers=cfg.max_workers,
        audit_timeout=cfg.audit_timeout,
        probe_timeout=cfg.probe_timeout,
        scan_deadline=cfg.scan_deadline,
    )
    _emit(
        args,
        render_audit(results, scanned=len(projects)),
        {"command": "audit", "scanned": len(projects), "results": [r.to_dict() for r in results]},
    )
    severities = [v.severity for r in results for v in r.vulnerabilities]
    return EXIT_THRESHOLD if _at_or_above(severities, cfg.fail_on) else EXIT_OK


def _cmd_cve(args: argparse.Namespace, cfg: ScanConfig) -> int:
    catalog = default_catalog()
    results = match_all_cves(cfg.projects, catalog, exclude=cfg.exclude)
    _emit(
        args,
        render_cve(results, catalog.stats()),
        {"command": "cve", "results": [r.to_dict() for r in results]},
    )
    severities = [m.advisory.severity for r in results for m in r.affected]
    return EXIT_THRESHOLD if _at_or_above(severities, cfg.fail_on) else EXIT_OK


def _cmd_deprecated(args: argparse.Namespace, cfg: ScanConfig) -> int:
    results = check_all_deprecated(select_projects(cfg.projects, cfg.exclude))
    _emit(
        args,
        render_deprecated(results),
        {"command": "deprecated", "results": [r.to_dict() for r in results]},
    )
    return EXIT_OK


def _cmd_licenses(args: argparse.Namespace, cfg: ScanConfig) -> int:
    results = check_all_licenses(select_projects(cfg.projects, cfg.exclude))
    _emit(
        args,
        render_licenses(results),
        {"command": "licenses", "results": [r.to_dict() for r in results]},
    )
    return EXIT_OK


def _cmd_live(args: argparse.Namespace, cfg: ScanConfig) -> int:
    results = check_all_osv(select_projects(cfg.projects, cfg.exclude))
    _emit(
        args,
        render_live(results),
        {"command": "live", "results": [r.to_dict() for r in results]},
    )
    return EXIT_OK


def _cmd_catalog(args: argparse.Namespace, cfg: ScanConfig) -> int:
    stats = default_catalog().stats()
    print(f"Advisories:   {stats.total}")
    print(f"Packages:     {len(stats.packages)} ({', '.join(stats.packages)})")
    print(f"Last update:  {stats.last_update}")
    if args.json_out:
        write_json_report(
            args.json_out,
            {"command": "catalog", "total": stats.total, "packages": list(stats.packages), "last_update": stats.last_update},
        )
        print(f"Wrote {args.json_out}")
    return EXIT_OK


def _cmd_tools(args: argparse.Namespace, cfg: ScanConfig) -> int:
    rows = []
    for ecosystem in ADAPTERS:
        adapter = get_adapter(ecosystem, timeout=cfg.audit_timeout, probe_timeout=cfg.probe_timeout)
        tool = adapter.probe_command()[0]
        version = adapter.probe_version()
        rows.append({"ecosystem": ecosystem, "tool": tool, "version": version})
        status = f"✅ {version}" if version else "❌ not installed"
        print(f"{ecosystem:<8} {tool:<14} {status}")
    if args.json_out:
        write_json_report(args.json_out, {"command": "tools", "tools": rows})
        print(f"Wrote {args.json_out}")
    return EXIT_OK


COMMANDS = {
    "audit": _cmd_audit,
    "cve": _cmd_cve,
    "deprecated": _cmd_deprecated,
    "licenses": _cmd_licenses,
    "live": _cmd_live,
    "catalog": _cmd_catalog,
    "tools": _cmd_tools,
}

# Commands that need at least one project.
_NEEDS_PROJECTS = {"audit", "cve", "deprecated", "licenses", "live"}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        cfg = resolve_config(args)
    except FileNotFoundError as e:
        print(f"Config file not found: {e.filename}", file=sys.stderr)
        return EXIT_CONFIG
    except (ValidationError, yaml.YAMLError, json.JSONDecodeError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command in _NEEDS_PROJECTS and not cfg.projects:
        print("No projects configured. Use --project ECOSYSTEM:PATH or a config file.", file=sys.stderr)
        return EXIT_CONFIG

    return COMMANDS[args.command](args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
