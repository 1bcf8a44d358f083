"""
Dotted path resolution against an evaluation context.
"""

from collections.abc import Mapping
from typing import Any, NamedTuple

from .models import EvaluationContext


class PathResolution(NamedTuple):
    """Result of walking a path; ``found`` separates absent from explicit None."""
    found: bool
    value: Any = None


NOT_FOUND = PathResolution(False, None)


def resolve_path(path: str, context: EvaluationContext) -> PathResolution:
    """Resolve ``facet.key.key`` through the context.

    The first segment selects the ``user``, ``organization`` or ``entity``
    facet; the rest walk nested mappings. Anything that cannot be followed
    (unknown facet, missing key, non-mapping intermediate) is reported as not
    found rather than raised.
    """
    if not isinstance(path, str) or not path:
        return NOT_FOUND

    facet_name, *segments = path.split(".")
    value = context.facet(facet_name)
    if value is None:
        return NOT_FOUND

    for segment in segments:
        if not segment or not isinstance(value, Mapping) or segment not in value:
            return NOT_FOUND
        value = value[segment]

    return PathResolution(True, value)
