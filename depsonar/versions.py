"""Version comparison and range matching.

Pure functions used by the advisory catalog.  Versions are treated as
dotted numeric sequences; pre-release and build-metadata ordering from
semantic versioning is deliberately not implemented (``1.0.0-beta`` compares
equal to ``1.0.0``).  Changing that would change which advisories match.
"""

import re

_LEADING_NON_DIGITS = re.compile(r"^[^0-9]*")
_DIGIT_PREFIX = re.compile(r"^\d+")
_CONSTRAINT = re.compile(r"^([><=!]+)(.+)$")
_OPERATORS = frozenset({">=", "<=", ">", "<", "=", "=="})
_SPECIFIER_PREFIX = re.compile(r"^[\^~>=<]+")


def parse_version(version: str) -> list[int]:
    """Split a version string into numeric components.

    Leading non-digit characters (``v``, ``^``, ``~``) are stripped.  Each
    component contributes its leading digits (``3-rc1`` is ``3``); a component
    with no leading digit parses to ``0``.  This never fails.

    Args:
        version: Version string such as ``v5.1.0`` or ``^2.49``.

    Returns:
        List of integer components.
    """
    stripped = _LEADING_NON_DIGITS.sub("", (version or "").strip())
    parts: list[int] = []
    for piece in stripped.split("."):
        m = _DIGIT_PREFIX.match(piece)
        parts.append(int(m.group(0)) if m else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """Compare two dotted version strings.

    Missing trailing components count as zero, so ``5.1`` equals ``5.1.0``.

    Args:
        a: Left-hand version.
        b: Right-hand version.

    Returns:
        ``-1`` if ``a < b``, ``0`` if equal, ``1`` if ``a > b``.
    """
    pa = parse_version(a)
    pb = parse_version(b)
    for i in range(max(len(pa), len(pb))):
        va = pa[i] if i < len(pa) else 0
        vb = pb[i] if i < len(pb) else 0
        if va != vb:
            return -1 if va < vb else 1
    return 0


def is_in_range(version: str, range_expression: str) -> bool:
    """Check whether ``version`` satisfies every constraint in a range.

    The range is a whitespace-separated conjunction such as
    ``">=5.1.0 <5.6.2"``.  There is no ``OR`` support.  Tokens that are not
    a recognised ``<op><version>`` constraint are skipped, including ones
    with an unknown operator such as ``=>`` or ``!=``.  An expression with no
    parseable constraint matches every version (fail-open).

    Args:
        version: Installed version to test.
        range_expression: AND-only constraint list.

    Returns:
        ``True`` if no constraint rejects the version.
    """
    for token in (range_expression or "").split():
        m = _CONSTRAINT.match(token)
        if not m:
            continue
        op, target = m.groups()
        if op not in _OPERATORS:
            continue
        cmp = compare_versions(version, target)
        if op == ">=" and cmp < 0:
            return False
        if op == ">" and cmp <= 0:
            return False
        if op == "<=" and cmp > 0:
            return False
        if op == "<" and cmp >= 0:
            return False
        if op in ("=", "==") and cmp != 0:
            return False
    return True


def strip_specifier(specifier: str) -> str:
    """Drop leading range operators from a declared dependency specifier.

    ``"^5.1.0"`` becomes ``"5.1.0"``; ``">=2.0"`` becomes ``"2.0"``.
    """
    return _SPECIFIER_PREFIX.sub("", str(specifier).strip())
