from types import SimpleNamespace
from unittest.mock import patch

import pytest

from quill.config_loader import QuillConfig
from quill.router import BudgetExceededError, Router, _build_kwargs


def _response(text, total_tokens=10):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=6, completion_tokens=4, total_tokens=total_tokens),
    )


def _chunk(text=None, usage=None):
    choices = [] if text is None else [SimpleNamespace(delta=SimpleNamespace(content=text))]
    return SimpleNamespace(choices=choices, usage=usage)


@patch("quill.router.litellm.completion_cost", return_value=0.001)
@patch("quill.router.litellm.completion")
def test_chat_returns_content_and_records_usage(mock_completion, _cost):
    mock_completion.return_value = _response("hello")
    router = Router(QuillConfig())

    assert router.chat([{"role": "user", "content": "hi"}]) == "hello"
    assert router.budget.usage.total_tokens == 10
    assert router.budget.usage.call_count == 1

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "gemini/gemini-2.5-flash"
    assert kwargs["temperature"] == 0.2
    assert "stream" not in kwargs


@patch("quill.router.litellm.completion_cost", return_value=0.002)
@patch("quill.router.litellm.stream_chunk_builder")
@patch("quill.router.litellm.completion")
def test_chat_stream_prices_the_rebuilt_response(mock_completion, mock_builder, mock_cost):
    usage = SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5)
    chunks = [_chunk("{\"thou"), _chunk("ght\": 1}"), _chunk(usage=usage)]
    mock_completion.return_value = iter(chunks)
    rebuilt = _response('{"thought": 1}', total_tokens=5)
    mock_builder.return_value = rebuilt
    router = Router(QuillConfig())
    messages = [{"role": "user", "content": "hi"}]

    fragments = list(router.chat_stream(messages))

    assert "".join(fragments) == '{"thought": 1}'
    assert mock_completion.call_args.kwargs["stream"] is True
    mock_builder.assert_called_once_with(chunks, messages=messages)
    mock_cost.assert_called_once_with(completion_response=rebuilt)
    assert router.budget.usage.total_tokens == 5
    assert router.budget.usage.estimated_cost == pytest.approx(0.002)


@patch("quill.router.litellm.completion")
def test_budget_exhaustion_blocks_calls(mock_completion):
    config = QuillConfig()
    config.limits.max_tokens_per_session = 10
    router = Router(config)
    router.budget.usage.total_tokens = 10

    with pytest.raises(BudgetExceededError):
        router.chat([{"role": "user", "content": "hi"}])
    mock_completion.assert_not_called()


def test_reasoning_models_skip_temperature():
    assert "temperature" not in _build_kwargs("openai/o3-mini", [], 0.2, 100)
    assert "temperature" not in _build_kwargs("gpt-5", [], 0.2, 100)
    assert _build_kwargs("anthropic/claude-3-5-sonnet", [], 0.2, 100)["temperature"] == 0.2
