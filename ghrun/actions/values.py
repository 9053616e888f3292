"""
Typed literal-or-expression values.

Fields in action metadata and step definitions may hold either a concrete
value or a ``${{ ... }}`` expression evaluated later against a Context. Each
scalar type is a small dataclass holding exactly one of ``value`` (literal)
or ``expression`` (deferred text).
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from ..exceptions import ExpressionError
from ..variables.expressions import evaluate, extract_expressions, to_text

EXPRESSION_PATTERN = re.compile(r'\$\{\{.*?\}\}', re.DOTALL)

_TRUE_STRINGS = {"true", "1"}
_FALSE_STRINGS = {"false", "0"}


def is_expression(text: Any) -> bool:
    return isinstance(text, str) and EXPRESSION_PATTERN.search(text) is not None


class QuotedString(str):
    """A str written with ' or " quotes in the YAML source."""


@dataclass
class String:
    """String value; may embed any number of ``${{ }}`` fragments.

    A quoted string is a literal: its fragments are never evaluated.
    """
    value: str = ""
    quoted: bool = False

    @classmethod
    def parse(cls, raw: Any) -> Optional["String"]:
        if raw is None:
            return None
        if isinstance(raw, String):
            return raw
        if isinstance(raw, QuotedString):
            return cls(str(raw), quoted=True)
        if isinstance(raw, dict) and 'quoted' in raw:
            return cls(str(raw.get('value') or ""), quoted=bool(raw['quoted']))
        if isinstance(raw, bool):
            return cls('true' if raw else 'false')
        return cls(str(raw))

    @property
    def is_expression(self) -> bool:
        return not self.quoted and is_expression(self.value)

    def eval(self, context) -> str:
        if self.quoted:
            return self.value

        fragments = extract_expressions(self.value)
        if not fragments:
            return self.value

        text = self.value
        for fragment, source in fragments:
            result = evaluate(source, context)
            text = text.replace(fragment, to_text(result), 1)

        return text

    def to_json(self) -> Any:
        # quoting only matters when the text looks like an expression
        if self.quoted and is_expression(self.value):
            return {'value': self.value, 'quoted': True}
        return self.value

    def __str__(self) -> str:
        return self.value


@dataclass
class _Scalar:
    """Shared shape for Bool/Int/Float: a literal or a single expression."""
    value: Any = None
    expression: Optional[str] = None

    type_name = "value"

    @classmethod
    def _coerce(cls, raw: Any) -> Any:
        raise NotImplementedError

    @classmethod
    def parse(cls, raw: Any):
        if raw is None:
            return None
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, String):
            raw = raw.value
        if is_expression(raw):
            return cls(expression=raw)
        return cls(value=cls._coerce(raw))

    @property
    def is_expression(self) -> bool:
        return self.expression is not None

    def _check(self, result: Any) -> bool:
        raise NotImplementedError

    def eval(self, context) -> Any:
        if self.expression is None:
            return self.value

        fragments = extract_expressions(self.expression)
        source = fragments[0][1] if fragments else self.expression
        result = evaluate(source, context)

        if self._check(result):
            return result

        raise ExpressionError(
            f"cannot evaluate expression: {self.expression} as {self.type_name}"
        )

    def to_json(self) -> Any:
        if self.expression is not None:
            return self.expression
        return self.value


@dataclass
class Bool(_Scalar):
    type_name = "bool"

    @classmethod
    def _coerce(cls, raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, (int, float)):
            return raw != 0
        text = str(raw).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"invalid boolean value: {raw!r}")

    def _check(self, result: Any) -> bool:
        return isinstance(result, bool)


@dataclass
class Int(_Scalar):
    type_name = "int"

    @classmethod
    def _coerce(cls, raw: Any) -> int:
        if isinstance(raw, bool):
            raise ValueError(f"invalid integer value: {raw!r}")
        return int(raw)

    def _check(self, result: Any) -> bool:
        if isinstance(result, bool):
            return False
        if isinstance(result, float) and result.is_integer():
            return True
        return isinstance(result, int)

    def eval(self, context) -> int:
        return int(super().eval(context))


@dataclass
class Float(_Scalar):
    type_name = "float"

    @classmethod
    def _coerce(cls, raw: Any) -> float:
        if isinstance(raw, bool):
            raise ValueError(f"invalid float value: {raw!r}")
        return float(raw)

    def _check(self, result: Any) -> bool:
        return isinstance(result, (int, float)) and not isinstance(result, bool)

    def eval(self, context) -> float:
        return float(super().eval(context))


def value_to_json(value: Any) -> Any:
    """Serialise a typed value (or None) back to plain JSON."""
    if value is None:
        return None
    return value.to_json()
