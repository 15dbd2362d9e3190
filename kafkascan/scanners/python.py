"""Python call-site scanner (confluent-kafka, kafka-python, aiokafka)."""

from __future__ import annotations

import ast
from typing import List, Optional

from ..models import Ecosystem
from ..syntax import Argument
from .base import CallSiteScanner


class PythonScanner(CallSiteScanner):
    """Topic arguments are evaluated with :func:`ast.literal_eval`.

    This accepts implicit string concatenation and list/tuple/set literals
    while rejecting f-strings, names and calls.
    """

    ecosystem = Ecosystem.PYTHON

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        try:
            node = ast.parse(argument.text.strip(), mode="eval").body
        except SyntaxError:
            return None
        if isinstance(node, ast.JoinedStr):
            return None
        try:
            value = ast.literal_eval(node)
        except (ValueError, TypeError, SyntaxError):
            return None
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple, set, frozenset)) and value and all(isinstance(item, str) for item in value):
            return sorted(value) if isinstance(value, (set, frozenset)) else list(value)
        return None


__all__ = ["PythonScanner"]
