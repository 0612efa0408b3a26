"""
Tool directive grammar.

Agents request side effects by embedding a bracketed directive in free text:

    [TOOL:<KIND>:<argument>]

KIND is one word (case-insensitive) and the argument runs up to the first
closing bracket. Only the first directive in a message is acted on. Parsing
yields one of three outcomes: a ``ToolCall``, a ``MalformedDirective`` (the
text tried to call a tool but the call cannot be honoured), or ``None``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


DIRECTIVE_PATTERN = re.compile(r"\[TOOL:(\w+):(.+?)\]")
DIRECTIVE_PREFIX = "[TOOL:"
# Looser form used to scrub directives (including broken ones) from speech
DIRECTIVE_MARKUP = re.compile(r"\[TOOL:[^\]\n]*\]?")

INVALID_FORMAT = "Invalid tool format."
INVALID_WRITEFILE = "Invalid WRITEFILE format. Use [TOOL:WRITEFILE:path,content]"


class ToolKind(str, Enum):
    SEARCH = "SEARCH"
    READFILE = "READFILE"
    WRITEFILE = "WRITEFILE"
    EXECUTE = "EXECUTE"


@dataclass(frozen=True)
class ToolCall:
    kind: ToolKind
    argument: str
    directive: str = ""


@dataclass(frozen=True)
class MalformedDirective:
    directive: str
    reason: str


Directive = Union[ToolCall, MalformedDirective]


def directive_from_parts(kind: str, argument: str, directive: str = "") -> Directive:
    """Validate an already-split ``(kind, argument)`` pair."""
    name = kind.strip().upper()
    try:
        tool_kind = ToolKind(name)
    except ValueError:
        return MalformedDirective(directive=directive, reason=f"Unknown tool: {name}")

    if tool_kind is ToolKind.WRITEFILE and "," not in argument:
        return MalformedDirective(directive=directive, reason=INVALID_WRITEFILE)

    return ToolCall(kind=tool_kind, argument=argument, directive=directive)


def parse_directive(text: str) -> Optional[Directive]:
    """Extract the first tool directive from model output."""
    if not text:
        return None

    match = DIRECTIVE_PATTERN.search(text)
    if match:
        return directive_from_parts(match.group(1), match.group(2), match.group(0))

    start = text.find(DIRECTIVE_PREFIX)
    if start != -1:
        end = text.find("]", start)
        snippet = text[start:end + 1] if end != -1 else text[start:start + 80]
        return MalformedDirective(directive=snippet, reason=INVALID_FORMAT)

    return None


def strip_directives(text: str) -> str:
    """Remove every directive from text."""
    return DIRECTIVE_MARKUP.sub("", text)
