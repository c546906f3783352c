"""Unit tests for depsonar.deprecated — deprecated / replaced package detection."""

from pathlib import Path

from depsonar.deprecated import check_all_deprecated, check_deprecated, known_replacements
from depsonar.models import Project

from conftest import write_json


def _project(root: Path, deps: dict, dev: dict | None = None) -> Path:
    write_json(root / "package.json", {"dependencies": deps, "devDependencies": dev or {}})
    return root


class TestKnownReplacements:
    def test_table_loaded(self):
        table = known_replacements()
        assert len(table) == 19
        assert table["moment"]["replacement"] == "dayjs or date-fns"
        assert table["rimraf"]["replacement"] == "fs.rm with { recursive: true }"


class TestCheckDeprecated:
    def test_replaced(self, tmp_path: Path):
        root = _project(tmp_path, {"moment": "^2.29.4"})
        result = check_deprecated(root, "app")
        assert result.scanned_count == 1
        [dep] = result.deprecated
        assert dep.name == "moment"
        assert dep.version == "2.29.4"
        assert dep.reason == "replaced"
        assert dep.replacement == "dayjs or date-fns"

    def test_registry_flag_string(self, tmp_path: Path):
        root = _project(tmp_path, {}, {"old-lib": "^1.0.0"})
        write_json(root / "node_modules" / "old-lib" / "package.json", {"version": "1.0.3", "deprecated": "Use new-lib"})
        [dep] = check_deprecated(root, "app").deprecated
        assert dep.reason == "deprecated"
        assert dep.version == "1.0.3"
        assert dep.message == "Use new-lib"
        assert dep.replacement is None

    def test_registry_flag_boolean(self, tmp_path: Path):
        root = _project(tmp_path, {"old-lib": "1.0.0"})
        write_json(root / "node_modules" / "old-lib" / "package.json", {"version": "1.0.0", "deprecated": True})
        [dep] = check_deprecated(root, "app").deprecated
        assert dep.message == "Package is deprecated"

    def test_table_takes_precedence(self, tmp_path: Path):
        root = _project(tmp_path, {"request": "^2.88.0"})
        write_json(root / "node_modules" / "request" / "package.json", {"version": "2.88.2", "deprecated": "gone"})
        [dep] = check_deprecated(root, "app").deprecated
        assert dep.reason == "replaced"

    def test_clean(self, tmp_path: Path):
        root = _project(tmp_path, {"svelte": "^5.0.0"})
        result = check_deprecated(root, "app")
        assert result.deprecated == []
        assert result.scanned_count == 1

    def test_no_manifest(self, tmp_path: Path):
        result = check_deprecated(tmp_path, "app")
        assert result.deprecated == []
        assert result.scanned_count == 0

    def test_custom_table(self, tmp_path: Path):
        root = _project(tmp_path, {"left-pad": "1.3.0"})
        table = {"left-pad": {"replacement": "String.prototype.padStart", "reason": "Native"}}
        [dep] = check_deprecated(root, "app", replacements=table).deprecated
        assert dep.replacement == "String.prototype.padStart"


class TestCheckAllDeprecated:
    def test_keeps_only_findings_and_node(self, tmp_path: Path):
        flagged = _project(tmp_path / "a", {"chalk": "^5.0.0"})
        clean = _project(tmp_path / "b", {"svelte": "^5.0.0"})
        projects = [
            Project(name="a", path=flagged, ecosystem="node"),
            Project(name="b", path=clean, ecosystem="node"),
            Project(name="c", path=flagged, ecosystem="rust"),
        ]
        results = check_all_deprecated(projects)
        assert [r.project for r in results] == ["a"]
