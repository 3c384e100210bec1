"""Arithmetic expression language for combining feeds.

A program is a sequence of assignments followed by a result expression::

    wbtc_usd = mean(WBTC_ETH_SUSHI, WBTC_ETH_UNI) / USDETH;
    1 / (wbtc_usd * BADGER_WBTC)

Supported: ``+ - * /``, unary minus, parentheses, decimal numbers
(``1.5``, ``1e-5``), names and the calls ``median mean min max round abs``.
Names consist of letters, digits and underscores; any other character can
be part of a name when escaped with a backslash, so ``ETH\\-USDC`` is the
name ``ETH-USDC``.

Evaluation uses :class:`decimal.Decimal` in a high-precision context.

.. code-block:: python

    >>> program = parse_expression("A + B * 2")
    >>> program.free_symbols()
    ['A', 'B']
    >>> evaluate(program, {"A": Decimal(10), "B": Decimal(5)})
    Decimal('20')
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, DivisionByZero, InvalidOperation, localcontext

from .errors import EvaluationError, ExpressionSyntaxError, UnresolvedSymbolError

logger = logging.getLogger(__name__)

EVALUATION_PRECISION = 80

OPERATORS = frozenset("+-*/(),=;")


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "name", "op" or "end"
    text: str
    position: int


def tokenize(text: str) -> Iterator[Token]:
    """Split expression text into tokens.

    :raises ExpressionSyntaxError: On an unexpected character.
    """
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            while i < n and (text[i].isdigit() or text[i] == "."):
                i += 1
            if i < n and text[i] in "eE":
                j = i + 1
                if j < n and text[j] in "+-":
                    j += 1
                if j < n and text[j].isdigit():
                    i = j
                    while i < n and text[i].isdigit():
                        i += 1
            yield Token("number", text[start:i], start)
        elif ch.isalpha() or ch in "_\\":
            start = i
            chars: list[str] = []
            while i < n and (text[i].isalnum() or text[i] in "_\\"):
                if text[i] == "\\":
                    if i + 1 >= n:
                        raise ExpressionSyntaxError("Dangling escape", i)
                    chars.append(text[i + 1])
                    i += 2
                else:
                    chars.append(text[i])
                    i += 1
            yield Token("name", "".join(chars), start)
        elif ch in OPERATORS:
            yield Token("op", ch, i)
            i += 1
        else:
            raise ExpressionSyntaxError(f"Unexpected character '{ch}'", i)
    yield Token("end", "", n)


# Syntax tree


@dataclass(frozen=True)
class Number:
    value: Decimal


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    function: str
    args: tuple[Node, ...]


Node = Number | Name | Unary | Binary | Call


@dataclass(frozen=True)
class Assignment:
    name: str
    value: Node


@dataclass(frozen=True)
class Program:
    """A parsed expression program.

    :ivar assignments: Intermediate ``name = expr;`` statements, in order.
    :ivar result: Final expression.
    :ivar source: Original text.
    """

    assignments: tuple[Assignment, ...]
    result: Node
    source: str = ""

    def free_symbols(self) -> list[str]:
        """Names the program reads without assigning them first, in order."""
        assigned: set[str] = set()
        free: list[str] = []

        def visit(node: Node) -> None:
            match node:
                case Name(name=name):
                    if name not in assigned and name not in free:
                        free.append(name)
                case Unary(operand=operand):
                    visit(operand)
                case Binary(left=left, right=right):
                    visit(left)
                    visit(right)
                case Call(args=args):
                    for arg in args:
                        visit(arg)

        for assignment in self.assignments:
            visit(assignment.value)
            assigned.add(assignment.name)
        visit(self.result)
        return free


def _median(values: Sequence[Decimal]) -> Decimal:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _round(value: Decimal, places: Decimal = Decimal(0)) -> Decimal:
    if places != places.to_integral_value():
        raise EvaluationError(f"round() places must be an integer, got {places}")
    return value.quantize(Decimal(1).scaleb(-int(places)), rounding=ROUND_HALF_UP)


# name -> (implementation, min args, max args or None for variadic)
FUNCTIONS: dict[str, tuple[Callable[..., Decimal], int, int | None]] = {
    "median": (lambda *args: _median(args), 1, None),
    "mean": (lambda *args: sum(args, Decimal(0)) / len(args), 1, None),
    "min": (lambda *args: min(args), 1, None),
    "max": (lambda *args: max(args), 1, None),
    "round": (_round, 1, 2),
    "abs": (abs, 1, 1),
}


class Parser:
    """Recursive-descent parser for expression programs."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = list(tokenize(text))
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self.current
        if token.kind != "end":
            self.index += 1
        return token

    def _accept(self, op: str) -> bool:
        if self.current.kind == "op" and self.current.text == op:
            self._advance()
            return True
        return False

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            found = self.current.text or "end of expression"
            raise ExpressionSyntaxError(f"Expected '{op}', found '{found}'", self.current.position)

    def parse(self) -> Program:
        assignments: list[Assignment] = []
        while (
            self.current.kind == "name"
            and self._peek().kind == "op"
            and self._peek().text == "="
        ):
            name = self._advance().text
            self._advance()
            assignments.append(Assignment(name, self._expression()))
            self._expect(";")

        if self.current.kind == "end":
            raise ExpressionSyntaxError("Missing result expression", self.current.position)
        result = self._expression()
        self._accept(";")
        if self.current.kind != "end":
            raise ExpressionSyntaxError(
                f"Unexpected '{self.current.text}'", self.current.position
            )
        return Program(tuple(assignments), result, self.text)

    def _expression(self) -> Node:
        node = self._term()
        while self.current.kind == "op" and self.current.text in "+-":
            op = self._advance().text
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while self.current.kind == "op" and self.current.text in "*/":
            op = self._advance().text
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._accept("-"):
            return Unary("-", self._unary())
        if self._accept("+"):
            return self._unary()
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            try:
                return Number(Decimal(token.text))
            except InvalidOperation as e:
                raise ExpressionSyntaxError(f"Malformed number '{token.text}'", token.position) from e
        if token.kind == "name":
            self._advance()
            if not self._accept("("):
                return Name(token.text)
            if token.text not in FUNCTIONS:
                raise ExpressionSyntaxError(f"Unknown function '{token.text}'", token.position)
            args: list[Node] = []
            if not self._accept(")"):
                args.append(self._expression())
                while self._accept(","):
                    args.append(self._expression())
                self._expect(")")
            return Call(token.text, tuple(args))
        if self._accept("("):
            node = self._expression()
            self._expect(")")
            return node
        found = token.text or "end of expression"
        raise ExpressionSyntaxError(f"Unexpected '{found}'", token.position)


def parse_expression(text: str) -> Program:
    """Parse expression text into a :class:`Program`.

    :raises ExpressionSyntaxError: If the text is malformed.
    """
    return Parser(text).parse()


def _evaluate_node(node: Node, env: Mapping[str, Decimal]) -> Decimal:
    match node:
        case Number(value=value):
            return value
        case Name(name=name):
            if name not in env:
                raise UnresolvedSymbolError(name)
            return env[name]
        case Unary(operand=operand):
            return -_evaluate_node(operand, env)
        case Binary(op=op, left=left, right=right):
            a = _evaluate_node(left, env)
            b = _evaluate_node(right, env)
            if op == "+":
                return a + b
            if op == "-":
                return a - b
            if op == "*":
                return a * b
            if b == 0:
                raise EvaluationError("Division by zero")
            return a / b
        case Call(function=function, args=args):
            implementation, min_args, max_args = FUNCTIONS[function]
            if len(args) < min_args or (max_args is not None and len(args) > max_args):
                raise EvaluationError(f"{function}() takes {min_args}..{max_args or 'n'} arguments, got {len(args)}")
            return implementation(*(_evaluate_node(arg, env) for arg in args))
    raise EvaluationError(f"Cannot evaluate {node!r}")


def evaluate(program: Program, symbols: Mapping[str, Decimal]) -> Decimal:
    """Evaluate a program against a symbol table.

    :param program: Parsed program.
    :param symbols: Values of the free symbols.
    :returns: The result expression's value.
    :raises UnresolvedSymbolError: If a referenced name has no value.
    :raises EvaluationError: On division by zero or another arithmetic fault.
    """
    env = dict(symbols)
    with localcontext() as ctx:
        ctx.prec = EVALUATION_PRECISION
        try:
            for assignment in program.assignments:
                env[assignment.name] = _evaluate_node(assignment.value, env)
            return _evaluate_node(program.result, env)
        except (DivisionByZero, InvalidOperation) as e:
            raise EvaluationError(f"Arithmetic fault: {e!r}") from e
