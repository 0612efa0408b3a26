from __future__ import annotations

from sentinel.tool_protocol import (
    INVALID_FORMAT,
    INVALID_WRITEFILE,
    MalformedDirective,
    ToolCall,
    ToolKind,
    directive_from_parts,
    parse_directive,
    strip_directives,
)


def test_plain_text_has_no_directive() -> None:
    assert parse_directive("Just musing about rubber chickens.") is None
    assert parse_directive("") is None


def test_search_directive_is_extracted() -> None:
    directive = parse_directive("Let me check. [TOOL:SEARCH:quantum foam]")

    assert directive == ToolCall(
        kind=ToolKind.SEARCH,
        argument="quantum foam",
        directive="[TOOL:SEARCH:quantum foam]",
    )


def test_kind_is_case_insensitive() -> None:
    directive = parse_directive("[TOOL:readfile:/etc/hostname]")

    assert isinstance(directive, ToolCall)
    assert directive.kind is ToolKind.READFILE
    assert directive.argument == "/etc/hostname"


def test_only_first_directive_is_acted_on() -> None:
    directive = parse_directive("[TOOL:EXECUTE:uname -a] and then [TOOL:SEARCH:bash]")

    assert isinstance(directive, ToolCall)
    assert directive.kind is ToolKind.EXECUTE
    assert directive.argument == "uname -a"


def test_writefile_keeps_commas_in_content() -> None:
    directive = parse_directive("[TOOL:WRITEFILE:plan.txt,step one, step two]")

    assert isinstance(directive, ToolCall)
    assert directive.argument == "plan.txt,step one, step two"


def test_unknown_kind_is_malformed() -> None:
    directive = parse_directive("[TOOL:DANCE:wildly]")

    assert directive == MalformedDirective(directive="[TOOL:DANCE:wildly]", reason="Unknown tool: DANCE")


def test_writefile_without_comma_is_malformed() -> None:
    directive = parse_directive("[TOOL:WRITEFILE:just-a-path.txt]")

    assert isinstance(directive, MalformedDirective)
    assert directive.reason == INVALID_WRITEFILE


def test_broken_directive_is_malformed() -> None:
    for text in ("[TOOL:SEARCH]", "[TOOL:SEARCH:]", "trailing [TOOL:EXECUTE"):
        directive = parse_directive(text)
        assert isinstance(directive, MalformedDirective), text
        assert directive.reason == INVALID_FORMAT


def test_directive_from_parts_matches_parser() -> None:
    assert directive_from_parts("search", "foam") == ToolCall(kind=ToolKind.SEARCH, argument="foam")
    assert directive_from_parts("nope", "x").reason == "Unknown tool: NOPE"


def test_strip_directives_removes_markup() -> None:
    text = "Observe. [TOOL:SEARCH:foam] Then [TOOL:BROKEN] done."

    assert strip_directives(text) == "Observe.  Then  done."


def test_unterminated_directive_only_strips_its_own_line() -> None:
    text = "Watch this [TOOL:SEARCH:never closed\nThe rest of the reply survives."

    assert strip_directives(text) == "Watch this \nThe rest of the reply survives."
