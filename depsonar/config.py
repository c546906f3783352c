"""Scan configuration using Pydantic.

A config file lists the projects to scan plus scan tuning.  Example YAML::

    max_workers: 8
    audit_timeout: 90
    scan_deadline: 600
    fail_on: high
    exclude:
      - legacy-app
    projects:
      - name: web
        path: ~/code/web
        ecosystem: node
      - name: engine
        path: ~/code/engine
        ecosystem: rust
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .models import SEVERITIES, Project

CONFIG_NAMES = ("depsonar.yaml", "depsonar.yml", "depsonar.json")


class ScanConfig(BaseModel):
    """Validated scan configuration.

    Attributes:
        max_workers: Concurrent subprocess slots (1–64).
        audit_timeout: Per-audit timeout in seconds.
        probe_timeout: Timeout for ``--version`` probes in seconds.
        scan_deadline: Optional wall-clock budget for a whole scan.
        exclude: Project names to skip (normalized: stripped, lower-cased).
        projects: Projects to scan.
        fail_on: Severity at or above which the CLI exits non-zero.
    """

    max_workers: int = Field(default=4, ge=1, le=64)
    audit_timeout: float = Field(default=60.0, gt=0)
    probe_timeout: float = Field(default=15.0, gt=0)
    scan_deadline: float | None = Field(default=None, gt=0)
    exclude: set[str] = Field(default_factory=set)
    projects: list[Project] = Field(default_factory=list)
    fail_on: str | None = None

    @field_validator("exclude", mode="before")
    @classmethod
    def _normalize_exclude(cls, v: Any) -> set[str]:
        if v is None:
            return set()
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set)):
            return set()
        return {item.strip().lower() for item in v if isinstance(item, str) and item.strip()}

    @field_validator("fail_on", mode="before")
    @classmethod
    def _check_fail_on(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        label = str(v).strip().lower()
        if label == "medium":
            label = "moderate"
        if label not in SEVERITIES:
            raise ValueError(f"fail_on must be one of {', '.join(SEVERITIES)}")
        return label


def load_config(path: Path) -> ScanConfig:
    """Load a scan config from a YAML or JSON file.

    Args:
        path: Path to the config file.

    Returns:
        Validated ``ScanConfig`` instance.

    Raises:
        FileNotFoundError: if the file doesn't exist.
        pydantic.ValidationError: if content fails validation.
    """
    suffix = path.suffix.lower()
    content = path.read_text(encoding="utf-8")

    if suffix in (".yaml", ".yml"):
        raw = yaml.safe_load(content) or {}
    elif suffix == ".json":
        raw = json.loads(content) if content.strip() else {}
    else:
        try:
            raw = yaml.safe_load(content) or {}
        except yaml.YAMLError:
            raw = json.loads(content)

    return ScanConfig.model_validate(raw)


def find_config() -> str:
    """Find the config file, preferring YAML over JSON.

    Returns:
        Filename of the first existing config file, or ``"depsonar.yaml"``
        as a default.
    """
    for name in CONFIG_NAMES:
        if Path(name).exists():
            return name
    return "depsonar.yaml"
