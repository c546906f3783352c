"""Ecosystem audit adapters.

Each adapter subclasses ``AuditAdapter`` and is registered in ``ADAPTERS``
under its ecosystem tag.  Adding an ecosystem means adding a module here and
one registry entry; the aggregator never branches on ecosystem names.
"""

from ..errors import UnsupportedEcosystem
from .base import AUDIT_TIMEOUT, PROBE_TIMEOUT, AuditAdapter, ToolOutput, run_tool
from .go import GoAdapter
from .node import NodeAdapter
from .php import PhpAdapter
from .python import PythonAdapter
from .rust import RustAdapter

__all__ = [
    "ADAPTERS",
    "AuditAdapter",
    "GoAdapter",
    "NodeAdapter",
    "PhpAdapter",
    "PythonAdapter",
    "RustAdapter",
    "ToolOutput",
    "get_adapter",
    "run_tool",
]

ADAPTERS: dict[str, type[AuditAdapter]] = {
    NodeAdapter.ecosystem: NodeAdapter,
    RustAdapter.ecosystem: RustAdapter,
    PythonAdapter.ecosystem: PythonAdapter,
    PhpAdapter.ecosystem: PhpAdapter,
    GoAdapter.ecosystem: GoAdapter,
}


def get_adapter(
    ecosystem: str,
    *,
    timeout: float = AUDIT_TIMEOUT,
    probe_timeout: float = PROBE_TIMEOUT,
) -> AuditAdapter:
    """Instantiate the adapter registered for an ecosystem tag.

    Args:
        ecosystem: Tag such as ``node`` or ``rust`` (case-insensitive).
        timeout: Audit timeout in seconds.
        probe_timeout: Version-probe timeout in seconds.

    Returns:
        A configured ``AuditAdapter``.

    Raises:
        UnsupportedEcosystem: if no adapter handles the tag.
    """
    cls = ADAPTERS.get((ecosystem or "").strip().lower())
    if cls is None:
        raise UnsupportedEcosystem(f"No audit tool available for {ecosystem}.")
    return cls(timeout=timeout, probe_timeout=probe_timeout)
