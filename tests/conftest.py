"""Shared fixtures: sample audit-tool outputs and on-disk projects."""

import json
from pathlib import Path

import pytest

NPM_V7_OUTPUT = {
    "auditReportVersion": 2,
    "vulnerabilities": {
        "devalue": {
            "name": "devalue",
            "severity": "critical",
            "via": [
                {
                    "source": 1101,
                    "name": "devalue",
                    "title": "Prototype pollution in devalue",
                    "url": "https://github.com/advisories/GHSA-xxxx",
                }
            ],
            "fixAvailable": {"name": "devalue", "version": "5.6.2", "isSemVerMajor": False},
            "range": "<5.6.2",
        },
        "cookie": {
            "name": "cookie",
            "severity": "low",
            "via": ["@sveltejs/kit"],
            "fixAvailable": True,
            "range": "<0.7.0",
        },
        "semver": {
            "name": "semver",
            "severity": "medium",
            "via": [{"title": "ReDoS in semver", "url": "https://github.com/advisories/GHSA-yyyy"}],
            "fixAvailable": False,
            "range": ">=7.0.0 <7.5.2",
        },
    },
    "metadata": {
        "vulnerabilities": {"info": 0, "low": 1, "moderate": 1, "high": 0, "critical": 1, "total": 3}
    },
}

NPM_LEGACY_OUTPUT = {
    "advisories": {
        "1179": {
            "id": 1179,
            "module_name": "minimist",
            "severity": "moderate",
            "title": "Prototype Pollution",
            "url": "https://npmjs.com/advisories/1179",
            "patched_versions": ">=1.2.3",
            "vulnerable_versions": "<1.2.3",
            "findings": [{"version": "1.2.0", "paths": ["mkdirp>minimist"]}],
        },
        "1500": {
            "id": 1500,
            "module_name": "yargs-parser",
            "severity": "low",
            "title": "Prototype Pollution",
            "url": "https://npmjs.com/advisories/1500",
            "patched_versions": "<0.0.0",
            "vulnerable_versions": "<13.1.2",
            "findings": [],
        },
    }
}

CARGO_AUDIT_OUTPUT = {
    "database": {"advisory-count": 500},
    "vulnerabilities": {
        "found": True,
        "count": 2,
        "list": [
            {
                "advisory": {
                    "id": "RUSTSEC-2023-0001",
                    "package": "tokio",
                    "title": "reject_remote_clients configuration corruption",
                    "url": "https://github.com/tokio-rs/tokio/security/advisories/GHSA-7rrj",
                    "cvss": 9.8,
                },
                "versions": {"patched": [">=1.18.4"], "unaffected": []},
                "package": {"name": "tokio", "version": "1.18.0"},
            },
            {
                "advisory": {
                    "id": "RUSTSEC-2022-0090",
                    "package": "time",
                    "title": "Segfault in time",
                    "cvss": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
                },
                "versions": {"patched": []},
                "package": {"name": "time", "version": "0.1.44"},
            },
        ],
    },
}

PIP_AUDIT_OUTPUT = {
    "dependencies": [
        {
            "name": "jinja2",
            "version": "3.1.2",
            "vulns": [
                {
                    "id": "GHSA-h5c8-rqwp-cp95",
                    "fix_versions": ["3.1.3"],
                    "aliases": ["CVE-2024-22195"],
                    "description": "xss",
                }
            ],
        },
        {
            "name": "somepkg",
            "version": "0.1",
            "vulns": [{"id": "PYSEC-2023-1", "fix_versions": [], "aliases": []}],
        },
        {"name": "localpkg", "skip_reason": "Dependency not found on PyPI", "vulns": []},
        {"name": "requests", "version": "2.32.0", "vulns": []},
    ],
    "fixes": [],
}

COMPOSER_AUDIT_OUTPUT = {
    "advisories": {
        "symfony/http-kernel": [
            {
                "advisoryId": "PKSA-1",
                "packageName": "symfony/http-kernel",
                "affectedVersions": ">=5.0.0,<5.4.20",
                "title": "CVE-2022-24894: Prevent storing cookie headers in HttpCache",
                "link": "https://symfony.com/cve-2022-24894",
            }
        ],
        "guzzlehttp/psr7": {
            "0": {
                "advisoryId": "PKSA-2",
                "affectedVersions": "<1.9.1",
                "title": "",
                "link": "https://github.com/advisories/GHSA-wxmh",
            }
        },
    }
}

GOVULNCHECK_STREAM = "\n".join(
    json.dumps(doc)
    for doc in (
        {"config": {"protocol_version": "v1.0.0", "scanner_name": "govulncheck"}},
        {"osv": {"id": "GO-2023-1571", "summary": "Denial of service in net/http"}},
        {"osv": {"id": "GO-2022-0969", "summary": "Unused advisory"}},
        {
            "finding": {
                "osv": "GO-2023-1571",
                "fixed_version": "v0.7.0",
                "trace": [{"module": "golang.org/x/net", "version": "v0.5.0"}],
            }
        },
        {
            "finding": {
                "osv": "GO-2023-1571",
                "fixed_version": "v0.7.0",
                "trace": [{"module": "golang.org/x/net", "version": "v0.5.0", "function": "Get"}],
            }
        },
    )
)


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def node_project(tmp_path: Path) -> Path:
    """A Node project with one installed and one declared-only dependency."""
    root = tmp_path / "web"
    write_json(
        root / "package.json",
        {
            "name": "web",
            "dependencies": {"devalue": "^5.1.0", "express": "^4.21.0"},
            "devDependencies": {"vite": "~6.0.0"},
        },
    )
    write_json(root / "node_modules" / "devalue" / "package.json", {"name": "devalue", "version": "5.3.0"})
    return root


@pytest.fixture
def rust_project(tmp_path: Path) -> Path:
    root = tmp_path / "engine"
    root.mkdir()
    (root / "Cargo.toml").write_text('[package]\nname = "engine"\n', encoding="utf-8")
    return root
