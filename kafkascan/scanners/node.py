"""JavaScript/TypeScript call-site scanner (kafkajs, node-rdkafka)."""

from __future__ import annotations

from typing import List, Optional

from ..models import Ecosystem
from ..syntax import Argument, literal_values
from .base import CallSiteScanner


class NodeScanner(CallSiteScanner):
    ecosystem = Ecosystem.NODE_TS

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        text = argument.text.strip()
        # `topic: /orders-.*/` subscribes by pattern.
        if text.startswith("/"):
            return None
        if text.endswith(" as const"):
            text = text[: -len(" as const")].rstrip()
        return literal_values(text)


__all__ = ["NodeScanner"]
