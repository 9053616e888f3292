"""
Expression parsing and evaluation.
Handles ${{ ... }} fragments with the GitHub Actions expression syntax.

Supports:
- literals: 'single quoted' strings (with '' escape), numbers, true, false, null
- context access: github.sha, steps.build.outputs.version, env['MY_VAR']
- operators: ( ) [ ] . ! < <= > >= == != && ||
- functions: contains, startsWith, endsWith, format, join, toJSON, fromJSON,
  success, always, cancelled, failure

Variable names are resolved through ``context.get_variable(name)``.
"""

import dataclasses
import json
import math
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..exceptions import ExpressionError

# Fragment delimiters; the body may not contain '}}' outside a string literal
FRAGMENT_PATTERN = re.compile(r"\$\{\{((?:'(?:[^']|'')*'|[^}']|\}(?!\}))*)\}\}", re.DOTALL)

TOKEN_PATTERN = re.compile(r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^']|'')*')
  | (?P<number>0x[0-9a-fA-F]+|[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<op>&&|\|\||==|!=|<=|>=|[<>!()\[\].,*])
  | (?P<ident>[A-Za-z_][A-Za-z0-9_-]*)
""", re.VERBOSE)


def extract_expressions(text: str) -> List[Tuple[str, str]]:
    """Return (fragment, source) pairs for every ${{ }} in text, in order."""
    if not isinstance(text, str) or '${{' not in text:
        return []
    return [(m.group(0), m.group(1).strip()) for m in FRAGMENT_PATTERN.finditer(text)]


def tokenize(source: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(source):
        match = TOKEN_PATTERN.match(source, pos)
        if not match:
            raise ExpressionError(f"unexpected character {source[pos]!r} in expression: {source}")
        kind = match.lastgroup
        if kind != 'ws':
            tokens.append((kind, match.group(0)))
        pos = match.end()
    return tokens


def to_text(value: Any) -> str:
    """Convert an evaluated value to the text substituted into a string."""
    if value is None:
        return ''
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return 'Infinity' if value > 0 else '-Infinity'
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (int, str)):
        return str(value)
    return json.dumps(to_plain(value), indent=2)


def to_plain(value: Any) -> Any:
    """Convert dataclasses and enums to plain JSON-compatible values."""
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ''
    return True


def to_number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text == '':
            return 0.0
        try:
            if text.lower().startswith('0x'):
                return float(int(text, 16))
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def get_property(obj: Any, name: str) -> Any:
    """Case-insensitive property lookup on mappings and dataclasses."""
    if obj is None:
        return None

    if isinstance(obj, dict):
        if name in obj:
            return obj[name]
        lowered = name.lower()
        for key, value in obj.items():
            if str(key).lower() == lowered:
                return value
        return None

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        lowered = name.lower().replace('-', '_')
        for f in dataclasses.fields(obj):
            if f.name.lower() == lowered or f.metadata.get('key', '').lower() == name.lower():
                return getattr(obj, f.name)
        return None

    return None


def _loose_equals(left: Any, right: Any) -> bool:
    if isinstance(left, Enum):
        left = left.value
    if isinstance(right, Enum):
        right = right.value

    if left is None and right is None:
        return True

    if isinstance(left, str) and isinstance(right, str):
        return left.lower() == right.lower()

    if type(left) is type(right) and not isinstance(left, (int, float, str, bool)):
        return left is right

    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False

    return to_number(left) == to_number(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a, b = left.lower(), right.lower()
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == '<':
        return a < b
    if op == '<=':
        return a <= b
    if op == '>':
        return a > b
    return a >= b


def _format(fmt: Any, *args: Any) -> str:
    text = to_text(fmt)
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '{':
            if text.startswith('{{', i):
                out.append('{')
                i += 2
                continue
            end = text.find('}', i)
            index = text[i + 1:end] if end != -1 else ''
            if not index.isdigit():
                raise ExpressionError(f"invalid format string: {text}")
            position = int(index)
            if position >= len(args):
                raise ExpressionError(f"format index {position} out of range: {text}")
            out.append(to_text(args[position]))
            i = end + 1
        elif ch == '}':
            if text.startswith('}}', i):
                out.append('}')
                i += 2
                continue
            raise ExpressionError(f"invalid format string: {text}")
        else:
            out.append(ch)
            i += 1
    return ''.join(out)


def _contains(search: Any, item: Any) -> bool:
    if isinstance(search, list):
        return any(_loose_equals(element, item) for element in search)
    return to_text(item).lower() in to_text(search).lower()


def _join(array: Any, separator: Any = ',') -> str:
    if isinstance(array, list):
        return to_text(separator).join(to_text(v) for v in array)
    return to_text(array)


def _from_json(value: Any) -> Any:
    try:
        return json.loads(to_text(value))
    except ValueError as e:
        raise ExpressionError(f"fromJSON: invalid JSON: {e}")


class _Parser:
    """Recursive-descent evaluator over a token list."""

    def __init__(self, source: str, context: Any):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0
        self.context = context

    def peek(self) -> Optional[Tuple[str, str]]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def accept(self, value: str) -> bool:
        token = self.peek()
        if token and token[0] == 'op' and token[1] == value:
            self.pos += 1
            return True
        return False

    def expect(self, value: str) -> None:
        if not self.accept(value):
            raise ExpressionError(f"expected '{value}' in expression: {self.source}")

    def parse(self) -> Any:
        if not self.tokens:
            return None
        value = self.parse_or()
        if self.peek() is not None:
            raise ExpressionError(f"unexpected token {self.peek()[1]!r} in expression: {self.source}")
        return value

    def parse_or(self) -> Any:
        left = self.parse_and()
        while self.accept('||'):
            right = self.parse_and()
            left = left if truthy(left) else right
        return left

    def parse_and(self) -> Any:
        left = self.parse_equality()
        while self.accept('&&'):
            right = self.parse_equality()
            left = right if truthy(left) else left
        return left

    def parse_equality(self) -> Any:
        left = self.parse_comparison()
        while True:
            if self.accept('=='):
                left = _loose_equals(left, self.parse_comparison())
            elif self.accept('!='):
                left = not _loose_equals(left, self.parse_comparison())
            else:
                return left

    def parse_comparison(self) -> Any:
        left = self.parse_unary()
        while True:
            token = self.peek()
            if token and token[0] == 'op' and token[1] in ('<', '<=', '>', '>='):
                self.pos += 1
                left = _compare(token[1], left, self.parse_unary())
            else:
                return left

    def parse_unary(self) -> Any:
        if self.accept('!'):
            return not truthy(self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> Any:
        value = self.parse_primary()
        while True:
            if self.accept('.'):
                token = self.peek()
                if token is None or token[0] != 'ident':
                    raise ExpressionError(f"expected property name in expression: {self.source}")
                self.pos += 1
                value = get_property(value, token[1])
            elif self.accept('['):
                index = self.parse_or()
                self.expect(']')
                if isinstance(value, list):
                    number = to_number(index)
                    if math.isnan(number) or not 0 <= int(number) < len(value):
                        value = None
                    else:
                        value = value[int(number)]
                else:
                    value = get_property(value, to_text(index))
            else:
                return value

    def parse_primary(self) -> Any:
        token = self.peek()
        if token is None:
            raise ExpressionError(f"unexpected end of expression: {self.source}")

        kind, text = token
        self.pos += 1

        if kind == 'string':
            return text[1:-1].replace("''", "'")

        if kind == 'number':
            if text.lower().startswith('0x'):
                return int(text, 16)
            if re.fullmatch(r'[+-]?\d+', text):
                return int(text)
            return float(text)

        if kind == 'op' and text == '(':
            value = self.parse_or()
            self.expect(')')
            return value

        if kind == 'ident':
            lowered = text.lower()
            if lowered == 'true':
                return True
            if lowered == 'false':
                return False
            if lowered == 'null':
                return None
            if self.accept('('):
                return self.call(text, self.parse_arguments())
            return self.context.get_variable(lowered)

        raise ExpressionError(f"unexpected token {text!r} in expression: {self.source}")

    def parse_arguments(self) -> List[Any]:
        args: List[Any] = []
        if self.accept(')'):
            return args
        while True:
            args.append(self.parse_or())
            if self.accept(')'):
                return args
            self.expect(',')

    def call(self, name: str, args: List[Any]) -> Any:
        function = FUNCTIONS.get(name.lower())
        if function is None:
            raise ExpressionError(f"unknown function: {name}")
        try:
            if name.lower() in STATUS_FUNCTIONS:
                return function(self.context, *args)
            return function(*args)
        except TypeError:
            raise ExpressionError(f"invalid arguments for function {name}: {self.source}")


def _failure(context: Any) -> bool:
    steps = getattr(context, 'steps', None) or {}
    for result in steps.values():
        if _loose_equals(get_property(result, 'conclusion'), 'failure'):
            return True
    return False


STATUS_FUNCTIONS = {'success', 'always', 'cancelled', 'failure'}

FUNCTIONS: Dict[str, Callable[..., Any]] = {
    'contains': _contains,
    'startswith': lambda s, v: to_text(s).lower().startswith(to_text(v).lower()),
    'endswith': lambda s, v: to_text(s).lower().endswith(to_text(v).lower()),
    'format': _format,
    'join': _join,
    'tojson': lambda v: json.dumps(to_plain(v), indent=2),
    'fromjson': _from_json,
    'success': lambda context: not _failure(context),
    'always': lambda context: True,
    'cancelled': lambda context: False,
    'failure': _failure,
}


def evaluate(source: str, context: Any) -> Any:
    """Evaluate a single expression body (without the ${{ }} delimiters)."""
    return _Parser(source, context).parse()
