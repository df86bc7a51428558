"""Evaluate KSC search-filter expressions against in-memory records.

Supports the subset the collector emits::

    (&(A)(B)...)   (|(A)(B)...)   (!(A))
    (FIELD OP VALUE)   OP: = <> < <= > >=
    VALUE: 123 | "text" (``*`` wildcards) | T"YYYY-MM-DD hh:mm:ss"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from ksc_collector.primitives import as_utc, parse_iso_datetime

Predicate = Callable[[Mapping[str, Any]], bool]

_COMPARISON_RE = re.compile(r'\s*([A-Za-z_][A-Za-z0-9_]*)\s*(<>|<=|>=|=|<|>)\s*')
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_STRING_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_ESCAPE_RE = re.compile(r"\\(.)")


class FilterSyntaxError(ValueError):
    pass


def _wildcard(pattern: str) -> re.Pattern[str]:
    """Only ``*`` is special; every other character matches itself."""
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "=":
        return left == right
    if op == "<>":
        return left != right
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
    except TypeError:
        return False


def _field_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value))
    except (TypeError, ValueError):
        return None


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _expect(self, char: str) -> None:
        self._skip()
        if not self.text.startswith(char, self.pos):
            raise FilterSyntaxError(f"Expected '{char}' at offset {self.pos} in {self.text!r}")
        self.pos += 1

    def _peek(self) -> str:
        self._skip()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def parse(self) -> Predicate:
        predicate = self._expression()
        self._skip()
        if self.pos != len(self.text):
            raise FilterSyntaxError(f"Trailing input at offset {self.pos} in {self.text!r}")
        return predicate

    def _expression(self) -> Predicate:
        self._expect("(")
        head = self._peek()
        if head in ("&", "|"):
            self.pos += 1
            terms = []
            while self._peek() == "(":
                terms.append(self._expression())
            if not terms:
                raise FilterSyntaxError(f"Empty '{head}' group in {self.text!r}")
            self._expect(")")
            if head == "&":
                return lambda record: all(t(record) for t in terms)
            return lambda record: any(t(record) for t in terms)
        if head == "!":
            self.pos += 1
            inner = self._expression()
            self._expect(")")
            return lambda record: not inner(record)

        predicate = self._comparison()
        self._expect(")")
        return predicate

    def _comparison(self) -> Predicate:
        match = _COMPARISON_RE.match(self.text, self.pos)
        if not match:
            raise FilterSyntaxError(f"Expected comparison at offset {self.pos} in {self.text!r}")
        field, op = match.group(1), match.group(2)
        self.pos = match.end()

        if self.text.startswith('T"', self.pos):
            self.pos += 1
            moment = parse_iso_datetime(self._string())
            if moment is None:
                raise FilterSyntaxError(f"Bad datetime literal in {self.text!r}")
            return self._time_predicate(field, op, moment)

        if self.text.startswith('"', self.pos):
            return self._text_predicate(field, op, self._string())

        number = _NUMBER_RE.match(self.text, self.pos)
        if not number:
            raise FilterSyntaxError(f"Expected value at offset {self.pos} in {self.text!r}")
        self.pos = number.end()
        target = float(number.group(0))

        def numeric(record: Mapping[str, Any]) -> bool:
            value = _field_number(record.get(field))
            return value is not None and _compare(op, value, target)
        return numeric

    def _string(self) -> str:
        match = _STRING_RE.match(self.text, self.pos)
        if not match:
            raise FilterSyntaxError(f"Unterminated string at offset {self.pos} in {self.text!r}")
        self.pos = match.end()
        return _ESCAPE_RE.sub(r"\1", match.group(1))

    @staticmethod
    def _text_predicate(field: str, op: str, pattern: str) -> Predicate:
        wildcard = _wildcard(pattern)

        def text(record: Mapping[str, Any]) -> bool:
            value = record.get(field)
            if value is None:
                return False
            if op in ("=", "<>"):
                matched = wildcard.fullmatch(str(value)) is not None
                return matched if op == "=" else not matched
            return _compare(op, str(value), pattern)
        return text

    @staticmethod
    def _time_predicate(field: str, op: str, moment: datetime) -> Predicate:
        def timed(record: Mapping[str, Any]) -> bool:
            value = record.get(field)
            if not isinstance(value, datetime):
                value = parse_iso_datetime(value)
            return value is not None and _compare(op, as_utc(value), moment)
        return timed


def compile_filter(expression: str | None) -> Predicate:
    """Compile *expression*; an empty expression matches every record."""
    if not expression or not expression.strip():
        return lambda record: True
    return _Parser(expression.strip()).parse()
