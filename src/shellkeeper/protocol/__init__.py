"""Command-completion protocol, marker generation and output sanitizing."""

from shellkeeper.protocol.completion import (
    CommandResult,
    CompletionProtocol,
    filter_scaffolding,
    parse_exchange,
)
from shellkeeper.protocol.markers import MarkerSet
from shellkeeper.protocol.sanitizer import clean_output, strip_escapes

__all__ = [
    "CommandResult",
    "CompletionProtocol",
    "MarkerSet",
    "clean_output",
    "filter_scaffolding",
    "parse_exchange",
    "strip_escapes",
]
