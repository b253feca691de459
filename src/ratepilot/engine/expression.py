"""
RatePilot Expression Evaluator

Evaluates the restricted arithmetic used by expression steps.

Grammar:
    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | power
    power   := primary ("^" unary)?
    primary := NUMBER | "(" expr ")"

Key features:
- Whole-word substitution of known field codes
- Characters outside the arithmetic allowlist are stripped
- "^" is right-associative exponentiation and binds tighter than unary minus
- Nesting (parentheses, unary signs, exponents) is capped at MAX_NESTING_DEPTH
- No dynamic code construction
"""
from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import Mapping, Union

from ..exceptions import InvalidExpressionError


_IDENTIFIER = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\b")
_DISALLOWED = re.compile(r"[^0-9+\-*/().^,\s]")
_TOKEN = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|(.))")

# Deepest nesting of parentheses, unary signs and exponents accepted
MAX_NESTING_DEPTH = 100


def _render(value: Union[int, float]) -> str:
    """Plain positional notation, negatives parenthesized."""
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidExpressionError(message=f"Non-finite value {value} in expression")
        text = format(Decimal(repr(value)), "f")
    else:
        text = str(value)
    return f"({text})" if text.startswith("-") else text


def substitute(expression: str, values: Mapping[str, Union[int, float]]) -> str:
    """Replace every known field code with its value."""
    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return _render(values[name])
        return name

    return _IDENTIFIER.sub(replace, expression)


def sanitize(text: str) -> str:
    """Strip anything outside the arithmetic allowlist."""
    return _DISALLOWED.sub("", text)


class _Parser:
    """Recursive-descent parser over a sanitized expression."""

    def __init__(self, text: str):
        self.tokens: list[str] = []
        for number, symbol in _TOKEN.findall(text):
            if number:
                self.tokens.append(number)
            elif symbol.strip():
                self.tokens.append(symbol)
        self.pos = 0
        self.depth = 0

    def parse(self) -> float:
        if not self.tokens:
            raise InvalidExpressionError(message="Empty expression")
        value = self._expr()
        if self.pos != len(self.tokens):
            raise InvalidExpressionError(
                message=f"Unexpected token '{self.tokens[self.pos]}'",
            )
        return value

    def _peek(self) -> str:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else ""

    def _next(self) -> str:
        token = self._peek()
        if not token:
            raise InvalidExpressionError(message="Unexpected end of expression")
        self.pos += 1
        return token

    def _nested(self, parse) -> float:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise InvalidExpressionError(message="Expression nested too deeply")
        value = parse()
        self.depth -= 1
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            if self._next() == "+":
                value = value + self._term()
            else:
                value = value - self._term()
        return value

    def _term(self) -> float:
        value = self._unary()
        while self._peek() in ("*", "/"):
            op = self._next()
            rhs = self._unary()
            if op == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise InvalidExpressionError(message="Division by zero")
                value = value / rhs
        return value

    def _unary(self) -> float:
        if self._peek() == "-":
            self._next()
            return -self._nested(self._unary)
        if self._peek() == "+":
            self._next()
            return self._nested(self._unary)
        return self._power()

    def _power(self) -> float:
        base = self._primary()
        if self._peek() == "^":
            self._next()
            exponent = self._nested(self._unary)
            try:
                result = base ** exponent
            except (OverflowError, ZeroDivisionError) as e:
                raise InvalidExpressionError(message=f"Invalid exponentiation: {e}")
            if isinstance(result, complex):
                raise InvalidExpressionError(message="Exponentiation produced a complex result")
            return result
        return base

    def _primary(self) -> float:
        token = self._next()
        if token == "(":
            value = self._nested(self._expr)
            if self._next() != ")":
                raise InvalidExpressionError(message="Expected ')'")
            return value
        if token[0].isdigit() or token[0] == ".":
            return float(token)
        raise InvalidExpressionError(message=f"Unexpected token '{token}'")


def evaluate_arithmetic(text: str) -> float:
    """Evaluate a sanitized arithmetic string."""
    try:
        result = _Parser(text).parse()
    except OverflowError as e:
        raise InvalidExpressionError(message=f"Numeric overflow: {e}")
    if not math.isfinite(result):
        raise InvalidExpressionError(message=f"Expression evaluated to invalid result: {result}")
    return result


def evaluate_expression(
    expression: str,
    values: Mapping[str, Union[int, float]],
) -> tuple[float, str]:
    """
    Substitute field values into an expression and evaluate it.

    Args:
        expression: Formula such as "base_rate * territory_factor ^ 2"
        values: Known numeric field values

    Returns:
        Tuple of (result, substituted expression text)

    Raises:
        InvalidExpressionError: On parse failure, division by zero or a
            non-finite result
    """
    substituted = substitute(expression, values)
    try:
        result = evaluate_arithmetic(sanitize(substituted))
    except InvalidExpressionError as e:
        raise InvalidExpressionError(
            message=f'Failed to evaluate expression "{expression}": {e.message}',
            details={"expression": expression, "substituted": substituted},
        )
    return result, substituted
