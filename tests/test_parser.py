import pytest

from quill.agents.parser import ParseError, parse
from quill.agents.types import Step


def test_fenced_json_block():
    text = 'Sure.\n```json\n{"thought": "t", "finalAnswer": "hi"}\n```\nanything after'
    step = parse(text)
    assert step.thought == "t"
    assert step.final_answer == "hi"
    assert step.tool_call is None


def test_bare_fence_without_language():
    step = parse('```\n{"thought": "x", "toolCall": {"name": "read_file", "arguments": {"path": "a.py"}}}\n```')
    assert step.tool_call.name == "read_file"
    assert step.tool_call.arguments == {"path": "a.py"}


def test_outer_braces_in_prose():
    text = 'Here is my step: {"thought": "look", "toolCall": {"name": "list_dir", "arguments": {"path": "."}}} ok?'
    step = parse(text)
    assert step.tool_call.name == "list_dir"


def test_verbatim_json():
    step = parse('{"thought": "plain", "finalAnswer": "42"}')
    assert step.final_answer == "42"


def test_literal_newlines_inside_strings_are_tolerated():
    step = parse('{"thought": "a", "finalAnswer": "line one\nline two"}')
    assert step.final_answer == "line one\nline two"


def test_snake_case_keys_and_args_alias():
    step = parse('{"thought": "s", "tool_call": {"name": "todo_read", "args": null}}')
    assert step.tool_call.name == "todo_read"
    assert step.tool_call.arguments == {}


def test_structured_final_answer_is_serialised():
    step = parse('{"thought": "s", "finalAnswer": {"files": ["a", "b"]}}')
    assert isinstance(step.final_answer, str)
    assert '"files"' in step.final_answer


def test_missing_thought_defaults_to_empty():
    step = parse('{"finalAnswer": "ok"}')
    assert step.thought == ""


def test_completion_marker_fallback():
    text = "All done, the file has been updated."
    step = parse(text)
    assert step.final_answer == text
    assert step.tool_call is None


def test_completion_marker_is_case_insensitive():
    assert parse("COMPLETED").final_answer == "COMPLETED"


def test_json_without_step_keys_is_not_a_step():
    with pytest.raises(ParseError):
        parse('{"name": "read_file", "path": "x"}')


def test_unparseable_text_raises_with_snippet():
    text = "I am thinking about it " * 20
    with pytest.raises(ParseError) as exc_info:
        parse(text)
    assert exc_info.value.snippet == text[:100]


def test_fenced_block_wins_over_later_braces():
    text = (
        '```json\n{"thought": "first", "finalAnswer": "from fence"}\n```\n'
        'and also {"thought": "second", "finalAnswer": "from prose"}'
    )
    assert parse(text).final_answer == "from fence"


def test_invalid_fence_falls_through_to_next_strategy():
    # The fence holds prose, the outer braces hold a step
    text = '```\nnot json\n```\n{"thought": "t", "finalAnswer": "recovered"}'
    assert parse(text).final_answer == "recovered"


def test_step_to_model_json_prefers_final_answer():
    step = Step.model_validate({
        "thought": "both",
        "toolCall": {"name": "read_file", "arguments": {"path": "a"}},
        "finalAnswer": "answer",
    })
    assert '"finalAnswer"' in step.to_model_json()
    assert '"toolCall"' not in step.to_model_json()
