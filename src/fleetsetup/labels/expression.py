# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/labels/expression.py

"""
Boolean label expressions.

Grammar, lowest precedence first::

    expr    := implies ( "<->" implies )*
    implies := or ( "->" implies )?          # right associative
    or      := and ( "||" and )*
    and     := not ( "&&" not )*
    not     := "!" not | primary
    primary := "(" expr ")" | ATOM | QUOTED
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Tuple

UNSAFE_CHARS = "!&|()<>\"'="
MAX_DEPTH = 200


class LabelExpressionError(ValueError):
    pass


def _is_unsafe(ch: str) -> bool:
    return ch.isspace() or ch in UNSAFE_CHARS


def escape(name: str) -> str:
    """Quote a label name so it parses back as a single atom."""
    if name and not any(_is_unsafe(c) for c in name):
        return name
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


# ---------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------
class Expr:
    def evaluate(self, labels: AbstractSet[str]) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Atom(Expr):
    name: str

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return self.name in labels

    def __str__(self) -> str:
        return escape(self.name)


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return not self.operand.evaluate(labels)

    def __str__(self) -> str:
        return f"!{self.operand}"


@dataclass(frozen=True)
class And(Expr):
    left: Expr
    right: Expr

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return self.left.evaluate(labels) and self.right.evaluate(labels)

    def __str__(self) -> str:
        return f"({self.left} && {self.right})"


@dataclass(frozen=True)
class Or(Expr):
    left: Expr
    right: Expr

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return self.left.evaluate(labels) or self.right.evaluate(labels)

    def __str__(self) -> str:
        return f"({self.left} || {self.right})"


@dataclass(frozen=True)
class Implies(Expr):
    left: Expr
    right: Expr

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return (not self.left.evaluate(labels)) or self.right.evaluate(labels)

    def __str__(self) -> str:
        return f"({self.left} -> {self.right})"


@dataclass(frozen=True)
class Iff(Expr):
    left: Expr
    right: Expr

    def evaluate(self, labels: AbstractSet[str]) -> bool:
        return self.left.evaluate(labels) == self.right.evaluate(labels)

    def __str__(self) -> str:
        return f"({self.left} <-> {self.right})"


# ---------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------
_OPERATORS = ("<->", "->", "&&", "||", "!", "(", ")")

Token = Tuple[str, str]  # (kind, text); kind is "op" or "atom"


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        op = next((o for o in _OPERATORS if text.startswith(o, i)), None)
        if op:
            tokens.append(("op", op))
            i += len(op)
            continue

        if ch == '"':
            i += 1
            buf = []
            while True:
                if i >= n:
                    raise LabelExpressionError(f"Unterminated quoted label in {text!r}")
                c = text[i]
                if c == "\\" and i + 1 < n:
                    buf.append(text[i + 1])
                    i += 2
                    continue
                if c == '"':
                    i += 1
                    break
                buf.append(c)
                i += 1
            tokens.append(("atom", "".join(buf)))
            continue

        if _is_unsafe(ch):
            raise LabelExpressionError(f"Unexpected character {ch!r} at {i} in {text!r}")

        start = i
        while i < n and not _is_unsafe(text[i]) and not text.startswith("->", i):
            i += 1
        tokens.append(("atom", text[start:i]))
    return tokens


# ---------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------
class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, op: str) -> bool:
        tok = self._peek()
        if tok == ("op", op):
            self.pos += 1
            return True
        return False

    def parse(self) -> Expr:
        if not self.tokens:
            raise LabelExpressionError("Empty label expression")
        expr = self._iff()
        if self._peek() is not None:
            raise LabelExpressionError(
                f"Unexpected token {self._peek()[1]!r} in {self.text!r}"
            )
        return expr

    def _iff(self) -> Expr:
        left = self._implies()
        while self._accept("<->"):
            left = Iff(left, self._implies())
        return left

    def _implies(self) -> Expr:
        left = self._or()
        if self._accept("->"):
            return Implies(left, self._implies())
        return left

    def _or(self) -> Expr:
        left = self._and()
        while self._accept("||"):
            left = Or(left, self._and())
        return left

    def _and(self) -> Expr:
        left = self._not()
        while self._accept("&&"):
            left = And(left, self._not())
        return left

    def _not(self) -> Expr:
        if self._accept("!"):
            return Not(self._not())
        return self._primary()

    def _primary(self) -> Expr:
        tok = self._peek()
        if tok is None:
            raise LabelExpressionError(f"Unexpected end of {self.text!r}")
        if tok == ("op", "("):
            self.pos += 1
            inner = self._iff()
            if not self._accept(")"):
                raise LabelExpressionError(f"Missing ')' in {self.text!r}")
            return inner
        if tok[0] == "atom":
            self.pos += 1
            return Atom(tok[1])
        raise LabelExpressionError(f"Unexpected token {tok[1]!r} in {self.text!r}")


def depth(expr: Expr) -> int:
    """Nesting depth of an expression tree, computed without recursion."""
    deepest = 0
    stack = [(expr, 1)]
    while stack:
        node, level = stack.pop()
        deepest = max(deepest, level)
        if isinstance(node, Not):
            stack.append((node.operand, level + 1))
        elif not isinstance(node, Atom):
            stack.append((node.left, level + 1))
            stack.append((node.right, level + 1))
    return deepest


def parse(text: str) -> Expr:
    """
    Parse a label expression. Raises LabelExpressionError when malformed or
    nested deeper than MAX_DEPTH.
    """
    try:
        expr = _Parser(text).parse()
    except RecursionError:
        raise LabelExpressionError(f"Label expression nested too deeply: {text[:40]!r}...") from None
    if depth(expr) > MAX_DEPTH:
        raise LabelExpressionError(f"Label expression nested deeper than {MAX_DEPTH} levels")
    return expr
