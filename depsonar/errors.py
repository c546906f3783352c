"""Error taxonomy for audit units.

Every error here is scoped to a single (project, ecosystem) audit.  Adapters
raise them internally and convert them to ``AuditResult.error`` at their
boundary, so none of them ever aborts a multi-project scan.
"""


class AuditError(Exception):
    """Base class for per-project audit failures.

    Attributes:
        kind: Stable machine-readable identifier stored on
            ``AuditResult.error_kind``.
    """

    kind: str = "audit_error"


class ToolMissing(AuditError):
    """The external audit binary is not installed."""

    kind = "tool_missing"


class ToolTimeout(AuditError):
    """The audit subprocess exceeded its wall-clock budget."""

    kind = "tool_timeout"


class ToolFailed(AuditError):
    """The tool exited non-zero without output, or reported its own error."""

    kind = "tool_failed"


class ParseFailure(AuditError):
    """The tool's stdout did not match the expected schema."""

    kind = "parse_failure"


class UnsupportedEcosystem(AuditError):
    """No adapter is registered for the project's ecosystem tag."""

    kind = "unsupported_ecosystem"
