import json
from unittest.mock import MagicMock

from conftest import ScriptedLLM, final, tool_call

from quill.config_loader import QuillConfig
from quill.session import Session
from quill.tools.permissions import PermissionResponse


def _session(tmp_path, llm, event_bus, approver=None, **config_overrides):
    config = QuillConfig()
    for key, value in config_overrides.items():
        section, field = key.split("__")
        setattr(getattr(config, section), field, value)
    return Session(tmp_path, config, llm=llm, approver=approver, event_bus=event_bus)


def test_turns_share_conversation_history(tmp_path, event_bus):
    llm = ScriptedLLM([final("first answer"), final("second answer")])
    session = _session(tmp_path, llm, event_bus)

    assert session.ask("first question").wait() == "first answer"
    assert session.ask("follow up").wait() == "second answer"

    second_call = llm.calls[1]
    assert [m["content"] for m in second_call[1:]] == ["first question", "first answer", "follow up"]
    assert len(session.steps) == 1
    session.close()


def test_denied_write_is_reported_to_the_model(tmp_path, event_bus):
    approver = MagicMock(return_value=PermissionResponse(allowed=False, feedback="name it b.txt"))
    llm = ScriptedLLM([tool_call("write_file", path="a.txt", content="x"), final("ok")])
    session = _session(tmp_path, llm, event_bus, approver=approver)

    session.ask("write a.txt").wait()

    assert not (tmp_path / "a.txt").exists()
    assert llm.calls[1][-1]["content"] == (
        "Tool 'write_file' returned: User denied permission with feedback: name it b.txt"
    )
    session.close()


def test_autopilot_from_config_skips_approver(tmp_path, event_bus):
    approver = MagicMock()
    llm = ScriptedLLM([tool_call("write_file", path="a.txt", content="x"), final("ok")])
    session = _session(tmp_path, llm, event_bus, approver=approver, permissions__autopilot=True)

    session.ask("write a.txt").wait()

    approver.assert_not_called()
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "x"
    assert session.autopilot
    session.close()


def test_max_steps_comes_from_config(tmp_path, event_bus):
    llm = ScriptedLLM([tool_call("todo_read")] * 3)
    session = _session(tmp_path, llm, event_bus, limits__max_steps=2)

    assert session.ask("loop").wait() == "Max steps reached."
    assert len(llm.calls) == 2
    session.close()


def test_pause_ends_the_turn(tmp_path, event_bus):
    llm = ScriptedLLM([tool_call("create_dir", path="pkg")])
    session = _session(tmp_path, llm, event_bus)

    run = session.ask("make a package")
    for _ in run:
        session.pause()

    assert run.result == "Run paused."
    assert session.paused
    assert not (tmp_path / "pkg").exists()
    session.close()


def test_audit_log_written_on_close(tmp_path, event_bus):
    session = _session(tmp_path, ScriptedLLM([final("hi")]), event_bus)
    session.ask("hello").wait()
    session.close()

    log_files = list((tmp_path / ".quill" / "logs").glob("session-*.jsonl"))
    assert len(log_files) == 1
    events = [json.loads(line)["event_type"] for line in log_files[0].read_text(encoding="utf-8").splitlines()]
    assert events == ["step", "run_finished"]


def test_project_files_reach_the_system_prompt(tmp_path, event_bus):
    (tmp_path / "main.py").write_text("print('hi')\n", encoding="utf-8")
    llm = ScriptedLLM([final("seen")])
    session = _session(tmp_path, llm, event_bus)

    session.ask("what files are here?").wait()

    assert "- main.py" in llm.calls[0][0]["content"]
    session.close()
