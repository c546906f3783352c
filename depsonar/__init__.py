"""depsonar: dependency audit and advisory correlation.

This package runs per-ecosystem audit tools, normalizes their findings,
cross-references installed versions against an embedded advisory catalog,
and reports on the results.
"""

__version__ = "0.3.0"
