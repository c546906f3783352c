"""Unit tests for depsonar.cli — argument handling and exit codes."""

import argparse
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from depsonar.cli import EXIT_CONFIG, EXIT_OK, EXIT_THRESHOLD, main, parse_project
from depsonar.models import AuditResult, Vulnerability


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch):
    """Keep a stray depsonar.yaml in the working directory out of the tests."""
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)
    return cwd


# ── parse_project ────────────────────────────────────────────────────────────


class TestParseProject:
    def test_valid(self, tmp_path: Path):
        project = parse_project(f"Node:{tmp_path / 'web'}")
        assert project.name == "web"
        assert project.ecosystem == "node"
        assert project.path == tmp_path / "web"

    @pytest.mark.parametrize("value", ["node", ":path", "node:"])
    def test_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_project(value)


# ── configuration errors ─────────────────────────────────────────────────────


class TestConfigErrors:
    def test_no_projects(self, capsys):
        assert main(["audit"]) == EXIT_CONFIG
        assert "No projects configured" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path: Path):
        assert main(["cve", "--config", str(tmp_path / "missing.yaml")]) == EXIT_CONFIG

    def test_invalid_config(self, tmp_path: Path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("max_workers: 0\n")
        assert main(["audit", "--config", str(path)]) == EXIT_CONFIG
        assert "Invalid configuration" in capsys.readouterr().err

    def test_config_discovered_in_cwd(self, _isolated_cwd: Path, node_project: Path, capsys):
        (_isolated_cwd / "depsonar.yaml").write_text(
            f"projects:\n  - name: web\n    path: {node_project}\n    ecosystem: node\n"
        )
        assert main(["cve"]) == EXIT_OK
        assert "CVE-2026-22775" in capsys.readouterr().out


# ── commands ─────────────────────────────────────────────────────────────────


class TestCveCommand:
    def test_fail_on_met(self, node_project: Path):
        assert main(["cve", "--project", f"node:{node_project}", "--fail-on", "high"]) == EXIT_THRESHOLD

    def test_fail_on_not_met(self, node_project: Path):
        assert main(["cve", "--project", f"node:{node_project}", "--fail-on", "critical"]) == EXIT_OK

    def test_json_output(self, node_project: Path, tmp_path: Path):
        out = tmp_path / "cve.json"
        main(["cve", "--project", f"node:{node_project}", "--json", str(out)])
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["command"] == "cve"
        assert data["results"][0]["project"] == "web"


class TestAuditCommand:
    def _results(self):
        return [
            AuditResult(
                project="web",
                ecosystem="node",
                vulnerabilities=(Vulnerability(package="devalue", severity="moderate", title="DoS"),),
            )
        ]

    def test_markdown_file(self, node_project: Path, tmp_path: Path):
        out = tmp_path / "audit.md"
        with patch("depsonar.cli.audit_all", return_value=self._results()) as audit_all:
            code = main(["audit", "--project", f"node:{node_project}", "--markdown", str(out), "--workers", "2"])
        assert code == EXIT_OK
        assert "### 🟡 web (node)" in out.read_text(encoding="utf-8")
        assert audit_all.call_args.kwargs["max_workers"] == 2

    def test_fail_on(self, node_project: Path):
        with patch("depsonar.cli.audit_all", return_value=self._results()):
            assert main(["audit", "--project", f"node:{node_project}", "--fail-on", "moderate"]) == EXIT_THRESHOLD
            assert main(["audit", "--project", f"node:{node_project}", "--fail-on", "high"]) == EXIT_OK

    def test_overrides_passed(self, node_project: Path):
        with patch("depsonar.cli.audit_all", return_value=[]) as audit_all:
            main(["audit", "--project", f"node:{node_project}", "--timeout", "30", "--deadline", "120"])
        kwargs = audit_all.call_args.kwargs
        assert kwargs["audit_timeout"] == 30
        assert kwargs["scan_deadline"] == 120


class TestOtherCommands:
    def test_catalog(self, capsys):
        assert main(["catalog"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Advisories:   11" in out
        assert "2026-01-15" in out

    def test_deprecated(self, tmp_path: Path, capsys):
        root = tmp_path / "app"
        root.mkdir()
        (root / "package.json").write_text('{"dependencies": {"moment": "^2.29.4"}}')
        assert main(["deprecated", "--project", f"node:{root}"]) == EXIT_OK
        assert "Replace with `dayjs or date-fns`" in capsys.readouterr().out

    def test_licenses(self, tmp_path: Path, capsys):
        root = tmp_path / "app"
        (root / "node_modules" / "gpl-thing").mkdir(parents=True)
        (root / "package.json").write_text('{"dependencies": {"gpl-thing": "^0.1.0"}}')
        (root / "node_modules" / "gpl-thing" / "package.json").write_text('{"version": "0.1.0", "license": "GPL-3.0"}')
        out = tmp_path / "licenses.json"
        assert main(["licenses", "--project", f"node:{root}", "--json", str(out)]) == EXIT_OK
        assert "| gpl-thing | 0.1.0 | GPL-3.0 | 🟡 copyleft |" in capsys.readouterr().out
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["command"] == "licenses"
        assert data["results"][0]["issues"] == 1

    def test_licenses_needs_projects(self):
        assert main(["licenses"]) == EXIT_CONFIG

    def test_tools_none_installed(self, capsys):
        with patch("depsonar.adapters.base.tool_available", return_value=False):
            assert main(["tools"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "cargo-audit" in out
        assert "not installed" in out
