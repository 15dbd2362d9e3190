"""C# call-site scanner for Confluent.Kafka."""

from __future__ import annotations

import re
from typing import List, Optional

from ..models import Ecosystem
from ..syntax import Argument, literal_values, positional_arguments, read_arguments
from .base import CallSiteScanner

_TOPIC_PARTITION = re.compile(r"^new\s+TopicPartition\s*\(")


class DotNetScanner(CallSiteScanner):
    ecosystem = Ecosystem.DOTNET

    def topic_values(self, argument: Argument) -> Optional[List[str]]:
        text = argument.text.strip()
        partition = _TOPIC_PARTITION.match(text)
        if partition:
            arguments, close = read_arguments(text, partition.end() - 1)
            positional = positional_arguments(arguments)
            if close == -1 or not positional:
                return None
            text = positional[0].text
        return literal_values(text)


__all__ = ["DotNetScanner"]
