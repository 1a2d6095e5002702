# packages/ml_ops/codegen/source_builder.py

import keyword
import math
import re
from typing import Any, List

INDENT = "    "


class SourceBuilder:
    """
    Append-only text buffer with an indentation level, used to emit Python.
    Methods return self so emission reads as one chain.
    """

    def __init__(self, indent: int = 0):
        self._parts: List[str] = []
        self._indent = indent

    def p(self, text: Any) -> "SourceBuilder":
        self._parts.append(str(text))
        return self

    def ip(self, text: Any) -> "SourceBuilder":
        """Indented print."""
        return self.p(INDENT * self._indent).p(text)

    def nl(self) -> "SourceBuilder":
        return self.p("\n")

    def line(self, text: Any = "") -> "SourceBuilder":
        if text == "":
            return self.nl()
        return self.ip(text).nl()

    def ii(self, n: int = 1) -> "SourceBuilder":
        self._indent += n
        return self

    def di(self, n: int = 1) -> "SourceBuilder":
        self._indent -= n
        return self

    def __str__(self) -> str:
        return "".join(self._parts)


def to_python_id(key: str) -> str:
    """Turns an arbitrary key into a valid module/identifier name."""
    ident = re.sub(r"\W", "_", key)
    if not ident or ident[0].isdigit() or keyword.iskeyword(ident):
        ident = f"model_{ident}"
    return ident


def literal(value: Any) -> str:
    """
    Python literal that evaluates back to exactly `value`.
    repr() round-trips finite floats bit-for-bit; non-finite floats and
    numpy scalars need spelling out.
    """
    if value is None or isinstance(value, (bool, str)):
        return repr(value)
    if isinstance(value, int):
        return repr(int(value))
    if isinstance(value, float) or hasattr(value, "__float__"):
        f = float(value)
        if math.isnan(f):
            return 'float("nan")'
        if math.isinf(f):
            return 'float("inf")' if f > 0 else 'float("-inf")'
        return repr(f)
    if isinstance(value, (list, tuple)):
        inner = ", ".join(literal(v) for v in value)
        return f"({inner},)" if len(value) == 1 else f"({inner})"
    raise TypeError(f"No literal for {type(value).__name__}")


def static_var(sb: SourceBuilder, name: str, values, comment: str) -> SourceBuilder:
    """One constant per line, e.g. NAMES = (\n    "a",\n    "b",\n)."""
    sb.line(f"# {comment}")
    if not isinstance(values, (list, tuple)):
        return sb.line(f"{name} = {literal(values)}").nl()
    sb.line(f"{name} = (")
    sb.ii()
    for v in values:
        sb.line(f"{literal(v)},")
    sb.di()
    return sb.line(")").nl()
