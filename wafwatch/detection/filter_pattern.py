"""CloudWatch Logs JSON filter patterns.

Compiles the subset of the metric filter syntax used for CloudTrail records::

    { ($.eventSource = "wafv2.amazonaws.com") && (($.eventName = "UpdateWebACL")
      || ($.eventName = "DeleteWebACL")) && ($.requestParameters.name = "MyWebACL") }

Supported: selectors (``$.a.b``, ``$.a[0].b``), ``=`` and ``!=`` against strings
(``*`` wildcard) or numbers, ``<``, ``<=``, ``>``, ``>=`` against numbers,
``IS TRUE``, ``IS FALSE``, ``IS NULL``, ``NOT EXISTS``, ``&&``, ``||`` and
parentheses. ``&&`` binds tighter than ``||``.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from wafwatch.exceptions import FilterPatternError

_MISSING = object()

_TOKEN_PATTERNS = [
    ("WS", r"\s+"),
    ("AND", r"&&"),
    ("OR", r"\|\|"),
    ("OP", r"!=|<=|>=|=|<|>"),
    ("LBRACE", r"\{"),
    ("RBRACE", r"\}"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("SELECTOR", r"\$(?:\.[A-Za-z_][\w-]*|\[\d+\])+"),
    ("STRING", r'"(?:[^"\\]|\\.)*"'),
    ("NUMBER", r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?(?![\w.*-])"),
    ("WORD", r"[A-Za-z0-9_.:/*@+-]+"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{regex})" for name, regex in _TOKEN_PATTERNS))
_KEYWORDS = {"IS", "NOT", "EXISTS", "TRUE", "FALSE", "NULL"}
_SEGMENT_RE = re.compile(r"\.([A-Za-z_][\w-]*)|\[(\d+)\]")


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def _tokenize(pattern: str) -> List[_Token]:
    tokens = []
    position = 0
    while position < len(pattern):
        match = _TOKEN_RE.match(pattern, position)
        if not match:
            raise FilterPatternError(f"Unexpected character {pattern[position]!r}", position)
        kind = match.lastgroup
        text = match.group()
        if kind == "WORD" and text.upper() in _KEYWORDS:
            kind = text.upper()
        if kind != "WS":
            tokens.append(_Token(kind, text, position))
        position = match.end()
    return tokens


def _resolve(record: Any, path: List[Union[str, int]]) -> Any:
    current = record
    for segment in path:
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return _MISSING
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return _MISSING
            current = current[segment]
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class _Selector:
    text: str
    path: tuple

    @classmethod
    def parse(cls, text: str) -> "_Selector":
        path = []
        for name, index in _SEGMENT_RE.findall(text[1:]):
            path.append(int(index) if index else name)
        return cls(text=text, path=tuple(path))

    def resolve(self, record: Any) -> Any:
        return _resolve(record, list(self.path))


class _Node:
    def evaluate(self, record: Dict[str, Any]) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class _Or(_Node):
    operands: tuple

    def evaluate(self, record):
        return any(operand.evaluate(record) for operand in self.operands)


@dataclass(frozen=True)
class _And(_Node):
    operands: tuple

    def evaluate(self, record):
        return all(operand.evaluate(record) for operand in self.operands)


@dataclass(frozen=True)
class _Compare(_Node):
    selector: _Selector
    operator: str
    value: Union[str, float]

    def evaluate(self, record):
        actual = self.selector.resolve(record)
        if actual is _MISSING:
            return False

        if isinstance(self.value, str):
            if not isinstance(actual, str):
                return False
            matched = self._string_matches(actual)
            return matched if self.operator == "=" else not matched

        if not _is_number(actual):
            return False
        if self.operator == "=":
            return actual == self.value
        if self.operator == "!=":
            return actual != self.value
        if self.operator == "<":
            return actual < self.value
        if self.operator == "<=":
            return actual <= self.value
        if self.operator == ">":
            return actual > self.value
        return actual >= self.value

    def _string_matches(self, actual: str) -> bool:
        if "*" not in self.value:
            return actual == self.value
        regex = ".*".join(re.escape(part) for part in self.value.split("*"))
        return re.fullmatch(regex, actual, flags=re.DOTALL) is not None


@dataclass(frozen=True)
class _Is(_Node):
    selector: _Selector
    expected: Optional[bool]  # None means IS NULL

    def evaluate(self, record):
        actual = self.selector.resolve(record)
        if self.expected is None:
            return actual is None
        return actual is self.expected


@dataclass(frozen=True)
class _NotExists(_Node):
    selector: _Selector

    def evaluate(self, record):
        return self.selector.resolve(record) is _MISSING


class _Parser:
    def __init__(self, pattern: str):
        self.pattern = pattern
        self.tokens = _tokenize(pattern)
        self.index = 0

    def _peek(self) -> Optional[_Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self, *kinds: str) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterPatternError(f"Unexpected end of pattern, expected {' or '.join(kinds)}", len(self.pattern))
        if kinds and token.kind not in kinds:
            raise FilterPatternError(f"Expected {' or '.join(kinds)}, found {token.text!r}", token.position)
        self.index += 1
        return token

    def parse(self) -> _Node:
        self._next("LBRACE")
        node = self._expression()
        self._next("RBRACE")
        trailing = self._peek()
        if trailing is not None:
            raise FilterPatternError(f"Unexpected {trailing.text!r} after pattern", trailing.position)
        return node

    def _expression(self) -> _Node:
        operands = [self._term()]
        while self._peek() is not None and self._peek().kind == "OR":
            self._next("OR")
            operands.append(self._term())
        return operands[0] if len(operands) == 1 else _Or(tuple(operands))

    def _term(self) -> _Node:
        operands = [self._factor()]
        while self._peek() is not None and self._peek().kind == "AND":
            self._next("AND")
            operands.append(self._factor())
        return operands[0] if len(operands) == 1 else _And(tuple(operands))

    def _factor(self) -> _Node:
        token = self._peek()
        if token is not None and token.kind == "LPAREN":
            self._next("LPAREN")
            node = self._expression()
            self._next("RPAREN")
            return node
        return self._comparison()

    def _comparison(self) -> _Node:
        selector = _Selector.parse(self._next("SELECTOR").text)
        token = self._next("OP", "IS", "NOT")

        if token.kind == "IS":
            keyword = self._next("TRUE", "FALSE", "NULL")
            expected = {"TRUE": True, "FALSE": False, "NULL": None}[keyword.kind]
            return _Is(selector, expected)

        if token.kind == "NOT":
            self._next("EXISTS")
            return _NotExists(selector)

        value_token = self._next("STRING", "NUMBER", "WORD", "TRUE", "FALSE", "NULL")
        if value_token.kind == "STRING":
            value = json.loads(value_token.text)
        elif value_token.kind == "NUMBER":
            value = float(value_token.text)
        else:
            value = value_token.text

        if token.text not in ("=", "!=") and not isinstance(value, float):
            raise FilterPatternError(
                f"Operator {token.text} needs a numeric value, found {value_token.text!r}",
                value_token.position,
            )
        return _Compare(selector, token.text, value)


class FilterPattern:
    """A compiled metric filter pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern.strip()
        self._root = _Parser(self.pattern).parse()

    def matches(self, record: Dict[str, Any]) -> bool:
        if not isinstance(record, dict):
            return False
        return self._root.evaluate(record)

    def matches_line(self, line: str) -> bool:
        """Evaluate against a raw log line; lines that are not JSON objects never match."""
        try:
            record = json.loads(line)
        except (TypeError, ValueError):
            return False
        return self.matches(record)

    def __repr__(self):
        return f"FilterPattern({self.pattern!r})"
