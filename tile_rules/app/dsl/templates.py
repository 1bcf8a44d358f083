"""
Template resolution for tile configuration strings.

Two token grammars are recognised in a single left-to-right pass:

- ``$facet.key.key``: a context path, resolved like a condition field.
- ``{{name}}``: a lookup in the flat ``variables`` facet.

Unresolved tokens render as the empty string. Substituted text is never
scanned again.
"""

import json
import math
from typing import Any, List

from shared.errors import TemplateTooLongError
from shared.logging import caller_fields, get_logger

from .models import EvaluationContext, ValueKind, value_kind
from .paths import resolve_path

DEFAULT_MAX_TEMPLATE_LENGTH = 10000

_IDENT_START = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_")
_IDENT_CHARS = _IDENT_START | frozenset("0123456789")
_PATH_CHARS = _IDENT_CHARS | frozenset(".")


def render(value: Any) -> str:
    """String form of a resolved value."""
    kind = value_kind(value)
    if kind == ValueKind.STRING:
        return value
    if kind == ValueKind.NULL:
        return ""
    if kind == ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind == ValueKind.NUMBER:
        if isinstance(value, float) and math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    if kind in (ValueKind.ARRAY, ValueKind.MAP):
        try:
            return json.dumps(value, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            # non-string map keys, circular references
            return str(value)
    return str(value)


class TemplateResolver:
    """Substitutes path and variable tokens in strings."""

    def __init__(self, max_length: int = DEFAULT_MAX_TEMPLATE_LENGTH):
        self.max_length = max_length
        self.logger = get_logger("tile_rules.dsl.templates")

    def resolve_value(self, value: Any, context: EvaluationContext) -> Any:
        """Resolve tokens in a string; any other value is returned as-is."""
        if not isinstance(value, str):
            return value

        if len(value) > self.max_length:
            logger = self.logger.bind(**caller_fields(context.user, context.organization))
            logger.warning(
                "Template exceeds length limit",
                length=len(value),
                limit=self.max_length
            )
            raise TemplateTooLongError(len(value), self.max_length)

        if "$" not in value and "{{" not in value:
            return value

        return self._scan(value, context)

    def _scan(self, text: str, context: EvaluationContext) -> str:
        out: List[str] = []
        length = len(text)
        literal_start = 0
        i = 0

        while i < length:
            char = text[i]

            if char == "$":
                end = self._path_end(text, i + 1)
                if end > i + 1:
                    out.append(text[literal_start:i])
                    found, resolved = resolve_path(text[i + 1:end], context)
                    out.append(render(resolved) if found else "")
                    i = literal_start = end
                    continue

            elif char == "{" and text.startswith("{{", i):
                name, end = self._variable_token(text, i + 2)
                if name is not None:
                    out.append(text[literal_start:i])
                    variables = context.variables
                    out.append(render(variables[name]) if name in variables else "")
                    i = literal_start = end
                    continue

            i += 1

        out.append(text[literal_start:])
        return "".join(out)

    @staticmethod
    def _path_end(text: str, start: int) -> int:
        """End index of a path token starting at ``start``, trailing dots excluded."""
        if start >= len(text) or text[start] not in _IDENT_START:
            return start
        end = start
        while end < len(text) and text[end] in _PATH_CHARS:
            end += 1
        while text[end - 1] == ".":
            end -= 1
        return end

    @staticmethod
    def _variable_token(text: str, start: int):
        """Parse ``name }}`` after an opening ``{{``; returns (name, end) or (None, start)."""
        length = len(text)
        i = start
        while i < length and text[i] == " ":
            i += 1
        if i >= length or text[i] not in _IDENT_START:
            return None, start
        name_start = i
        while i < length and text[i] in _IDENT_CHARS:
            i += 1
        name = text[name_start:i]
        while i < length and text[i] == " ":
            i += 1
        if not text.startswith("}}", i):
            return None, start
        return name, i + 2
