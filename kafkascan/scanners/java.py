"""Java and Kotlin call-site scanner (kafka-clients, Spring Kafka)."""

from __future__ import annotations

import re
from typing import List, Optional

from ..models import Ecosystem
from ..syntax import Argument, literal_values, positional_arguments, read_arguments
from .base import CallSiteScanner

_NESTED_RECORD = re.compile(r"^new\s+ProducerRecord\s*(?:<[^()]*?>)?\s*\(")


class JavaScanner(CallSiteScanner):
    """Reads topics from ``ProducerRecord``, ``KafkaTemplate`` and ``@KafkaListener``."""

    ecosystem = Ecosystem.JAVA

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        # template.send(new ProducerRecord<>("orders", key, value))
        nested = _NESTED_RECORD.match(argument.text)
        if nested:
            arguments, close = read_arguments(argument.text, nested.end() - 1)
            positional = positional_arguments(arguments)
            if close == -1 or not positional:
                return None
            return literal_values(positional[0].text)
        return literal_values(argument.text)


__all__ = ["JavaScanner"]
