# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/labels/matcher.py

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from ..nodes.models import NodeLike
from .expression import Atom, Expr, LabelExpressionError, escape, parse

log = logging.getLogger("fleetsetup")


class LabelMatcher:
    """
    Decides whether a node is targeted by a bundle's label expression.

    Blank expressions select every node. Text that does not parse (old
    free-text host names with spaces, stray quotes) is treated as one
    literal label, so it only selects nodes carrying exactly that label.
    """

    def __init__(self):
        self._cache: Dict[str, Expr] = {}
        self._lock = threading.Lock()

    def compile(self, expression: Optional[str]) -> Optional[Expr]:
        if expression is None or not expression.strip():
            return None
        with self._lock:
            cached = self._cache.get(expression)
        if cached is not None:
            return cached
        try:
            expr = parse(expression)
        except (LabelExpressionError, RecursionError) as e:
            log.debug("label expression %r did not parse (%s), using it as a literal label", expression, e)
            expr = Atom(expression)
        with self._lock:
            self._cache[expression] = expr
        return expr

    def effective_expression(self, expression: Optional[str]) -> str:
        """The expression text as evaluated: raw if it parses, escaped otherwise."""
        if expression is None or not expression.strip():
            return ""
        try:
            parse(expression)
            return expression
        except (LabelExpressionError, RecursionError):
            return escape(expression)

    def matches(self, node: NodeLike, expression: Optional[str]) -> bool:
        expr = self.compile(expression)
        if expr is None:
            return True
        return expr.evaluate(node.label_set)
