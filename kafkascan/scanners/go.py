"""Go call-site scanner (confluent-kafka-go, segmentio/kafka-go, sarama)."""

from __future__ import annotations

from typing import List, Optional

from ..models import Ecosystem
from ..syntax import Argument, literal_values
from .base import CallSiteScanner


class GoScanner(CallSiteScanner):
    """Topics are read from ``Topic:`` fields of composite literals.

    ``Topic: &topic`` and other pointer or variable forms stay unresolved.
    """

    ecosystem = Ecosystem.GO

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        text = argument.text.strip()
        if text.startswith("&"):
            return None
        return literal_values(text)


__all__ = ["GoScanner"]
