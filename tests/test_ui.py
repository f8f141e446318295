# tests/test_ui.py
from __future__ import annotations

import contextlib
from pathlib import Path
import threading

import pytest

prompt_toolkit = pytest.importorskip("prompt_toolkit")

from modeshell import config  # noqa: E402
from modeshell import ui  # noqa: E402
from modeshell.browser import FileSystemBrowser  # noqa: E402
from modeshell.config import ANSI_COLORS  # noqa: E402
from modeshell.db import ensure_schema  # noqa: E402
from modeshell.dispatcher import CommandDispatcher  # noqa: E402
from modeshell.executor import EntryKind, ProcessExecutor, TranscriptEntry  # noqa: E402
from modeshell.modes import Mode  # noqa: E402
from modeshell.search import SearchIndex  # noqa: E402
from modeshell.session import ChatEntry, ChatRole, EntryStatus, Session  # noqa: E402
from modeshell.store import SQLiteStore  # noqa: E402
from modeshell.advisory import CommandPage  # noqa: E402


@pytest.fixture(autouse=True)
def data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data = tmp_path / "data_home"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("MODESHELL_DATA_HOME", str(data))
    return data


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    w = tmp_path / "work"
    (w / "sub").mkdir(parents=True)
    (w / "notes.txt").write_text("n", encoding="utf-8")
    return w


@pytest.fixture
def session(tmp_path: Path, workdir: Path) -> Session:
    db_path = tmp_path / "history.db"
    ensure_schema(db_path)
    store = SQLiteStore(db_path)
    cfg = config.load_system_config()
    executor = ProcessExecutor(store=store, cwd=str(workdir))
    return Session(
        store=store,
        executor=executor,
        dispatcher=CommandDispatcher(executor, store, cfg.modes),
        search_index=SearchIndex(store, cfg.search),
        browser=FileSystemBrowser(store, executor.get_working_directory),
        config=cfg,
    )


@pytest.fixture
def inst(session: Session) -> ui.PromptToolkitUI:
    return ui.PromptToolkitUI(session)


# Helpers: fake prompt_toolkit event objects for key handlers
class FakeBuffer:
    def __init__(self, text: str = ""):
        self.text = text
        self.cursor_position = len(text)
        self.resets = 0
        self.accepted = 0

    def reset(self) -> None:
        self.text = ""
        self.resets += 1

    def validate_and_handle(self) -> None:
        self.accepted += 1


class FakeApp:
    def __init__(self):
        self.exit_result: str | None = None
        self.invalidated = 0

    def exit(self, result: str = "") -> None:
        self.exit_result = result

    def invalidate(self) -> None:
        self.invalidated += 1


class FakeEvent:
    def __init__(self, text: str = ""):
        self.app = FakeApp()
        self.current_buffer = FakeBuffer(text)


def _press(kb, key: str, event: FakeEvent | None = None) -> FakeEvent:
    """Run the first active handler bound to key."""
    event = event or FakeEvent()
    for binding in kb.bindings:
        keys = [getattr(k, "value", k) for k in binding.keys]
        if keys == [key] and binding.filter():
            binding.handler(event)
            return event
    raise AssertionError(f"no active binding for {key}")


def _active(kb, key: str) -> bool:
    return any(
        [getattr(k, "value", k) for k in b.keys] == [key] and b.filter()
        for b in kb.bindings
    )


# ----------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------


def test_format_entry_tags_commands() -> None:
    entry = TranscriptEntry(EntryKind.COMMAND, "ls", "t")
    assert ui.format_entry(entry) == (
        f"{ANSI_COLORS['green']}[CMD]{ANSI_COLORS['reset']} ls"
    )


def test_format_entry_plain_output() -> None:
    assert ui.format_entry(TranscriptEntry(EntryKind.OUTPUT, "hello", "t")) == "hello"


@pytest.mark.parametrize(
    "text", ["Error executing command: boom", 'Busy: "sleep 5" is still running']
)
def test_format_entry_highlights_errors(text: str) -> None:
    out = ui.format_entry(TranscriptEntry(EntryKind.OUTPUT, text, "t"))
    assert out.startswith(ANSI_COLORS["red"])
    assert text in out


def test_format_chat_entry() -> None:
    asked = ui.format_chat_entry(ChatEntry(ChatRole.USER, "hi"))
    pending = ui.format_chat_entry(
        ChatEntry(ChatRole.ASSISTANT, "Thinking...", EntryStatus.PENDING)
    )

    assert "[YOU]" in asked and asked.endswith(" hi")
    assert "[AI]" in pending
    assert ANSI_COLORS["dim"] in pending


# ----------------------------------------------------------------
# Config + style
# ----------------------------------------------------------------


def test_style_overrides_from_config(session: Session) -> None:
    session.config._config["ui"]["theme"]["style"] = {  # type: ignore[attr-defined]
        "modeshell.list": "bg:#000000 #ffffff",
        "ignored": 3,
    }
    style = ui._build_style(session)
    assert ("modeshell.list", "bg:#000000 #ffffff") in style.style_rules
    assert all(rule[0] != "ignored" for rule in style.style_rules)


def test_cfg_helpers_fall_back_without_config() -> None:
    assert ui._cfg_bool(None, "ui.modebar.enabled", True) is True
    assert ui._cfg_dict(None, "ui.theme.style", {}) == {}
    assert ui._cfg_int(None, "ui.toolbar.max_items", 8) == 8


def test_toolbar_width_defaults_to_120(inst: ui.PromptToolkitUI) -> None:
    assert inst._toolbar_width() == 120


# ----------------------------------------------------------------
# Toolbar
# ----------------------------------------------------------------


def test_modebar_marks_active_mode_and_cwd(
    inst: ui.PromptToolkitUI, session: Session, workdir: Path
) -> None:
    session.set_mode(Mode.AGENT)
    tokens = inst._build_modebar_tokens()

    active = [text for style, text in tokens if style.endswith(".active")]
    assert active == [" agent "]
    assert tokens[-1] == ("class:modeshell.modebar.cwd", f"  {workdir}")


def test_modebar_can_be_disabled(inst: ui.PromptToolkitUI, session: Session) -> None:
    session.config._config["ui"]["modebar"]["enabled"] = False  # type: ignore[attr-defined]
    assert inst._build_modebar_tokens() == []


def test_list_rows_follow_active_list(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    assert inst._list_rows() == ([], -1)

    session.on_input_change("/s")
    rows, current = inst._list_rows()
    assert rows[0].startswith("/settings")
    assert current == 0

    session.on_input_change("cat @")
    assert inst._list_rows() == (["sub/", "notes.txt"], 0)


def test_list_rows_show_search_results(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    session.store.upsert_command_stat("make test")  # type: ignore[attr-defined]
    session.set_mode(Mode.SEARCH)
    session.on_input_change("make")

    assert inst._list_rows() == (["make test (1×)"], 0)


def test_list_rows_show_current_page(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    session.set_mode(Mode.AGENT)
    session.pages = [CommandPage("ls", "List"), CommandPage("pwd", "Where")]
    session.move_page(1)

    rows, current = inst._list_rows()
    assert rows[0] == "[2/2] pwd"
    assert current == -1


def test_list_tokens_scroll_and_count_overflow(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    for i in range(12):
        session.store.upsert_command_stat(f"echo {i}")  # type: ignore[attr-defined]
    session.set_mode(Mode.SEARCH)
    session.on_input_change("**")
    for _ in range(9):
        session.move_search(1)

    tokens = inst._build_list_tokens(width=80)

    current = [t for s, t in tokens if s == "class:modeshell.list.current"]
    assert len(current) == 1
    assert current[0].startswith("> ")
    rows = [t for s, t in tokens if t != "\n" and s != "class:modeshell.list.meta"]
    assert len(rows) == 8
    assert tokens[-1] == ("class:modeshell.list.meta", "  … 2 more\n")


def test_bottom_toolbar_empty_when_everything_disabled(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    session.config._config["ui"]["modebar"]["enabled"] = False  # type: ignore[attr-defined]
    session.config._config["ui"]["toolbar"]["enabled"] = False  # type: ignore[attr-defined]
    assert inst._bottom_toolbar() == ""


# ----------------------------------------------------------------
# Output wiring
# ----------------------------------------------------------------


def test_write_noops_on_empty(
    inst: ui.PromptToolkitUI, capsys: pytest.CaptureFixture[str]
) -> None:
    inst.write("")
    assert capsys.readouterr().out == ""


def test_write_tracks_trailing_newline(
    inst: ui.PromptToolkitUI, capsys: pytest.CaptureFixture[str]
) -> None:
    inst.write("partial")
    assert inst._needs_newline_before_prompt is True
    inst.write_line("done")
    assert inst._needs_newline_before_prompt is False
    assert capsys.readouterr().out == "partialdone\n"


def test_attach_streams_transcript_in_command_mode(
    inst: ui.PromptToolkitUI,
    session: Session,
    capsys: pytest.CaptureFixture[str],
) -> None:
    inst.attach()
    session.executor.add_entry(EntryKind.OUTPUT, "line one")
    session.executor.add_entry(EntryKind.OUTPUT, "line two")

    assert capsys.readouterr().out == "line one\nline two\n"


def test_transcript_is_deferred_outside_transcript_modes(
    inst: ui.PromptToolkitUI,
    session: Session,
    capsys: pytest.CaptureFixture[str],
) -> None:
    inst.attach()
    session.set_mode(Mode.CHAT)
    session.executor.add_entry(EntryKind.OUTPUT, "while chatting")
    assert capsys.readouterr().out == ""

    session.set_mode(Mode.COMMAND)
    assert capsys.readouterr().out == "while chatting\n"


def test_cleared_transcript_prints_from_the_start(
    inst: ui.PromptToolkitUI,
    session: Session,
    capsys: pytest.CaptureFixture[str],
) -> None:
    inst.attach()
    session.executor.add_entry(EntryKind.OUTPUT, "a")
    session.executor.add_entry(EntryKind.OUTPUT, "b")
    session.executor.clear()
    session.executor.add_entry(EntryKind.OUTPUT, "c")

    assert capsys.readouterr().out == "a\nb\nc\n"


def test_attach_prints_chat_updates(
    inst: ui.PromptToolkitUI,
    session: Session,
    capsys: pytest.CaptureFixture[str],
) -> None:
    inst.attach()
    session.set_mode(Mode.CHAT)
    session.submit("hello")

    out = capsys.readouterr().out
    assert "[YOU]" in out and "hello" in out
    assert "No agent configured" in out


def test_read_creates_prompt_session_and_hooks_input(
    inst: ui.PromptToolkitUI,
    session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    created: dict = {}

    class FakeHandlers:
        def __init__(self):
            self.handlers: list = []

        def __iadd__(self, handler):
            self.handlers.append(handler)
            return self

    class FakeDefaultBuffer:
        def __init__(self):
            self.text = ""
            self.on_text_changed = FakeHandlers()

    class FakePromptSession:
        def __init__(self, **kwargs):
            created.update(kwargs)
            self.default_buffer = FakeDefaultBuffer()

        def prompt(self, arg):
            created["prompt_arg"] = arg
            return "typed"

    monkeypatch.setattr(ui, "PromptSession", FakePromptSession)
    monkeypatch.setattr(ui, "patch_stdout", lambda raw=False: contextlib.nullcontext())

    assert inst.read("cli>") == "typed"
    assert created["prompt_arg"].__class__.__name__ == "ANSI"
    assert created["bottom_toolbar"] == inst._bottom_toolbar
    assert created["key_bindings"] is not None

    buf = inst.session.default_buffer  # type: ignore[union-attr]
    buf.text = "/ch"
    for handler in buf.on_text_changed.handlers:
        handler(buf)
    assert [c.name for c in session.slash_suggestions] == ["/chat"]


# ----------------------------------------------------------------
# Key bindings
# ----------------------------------------------------------------


def test_ctrl_l_clears_screen(inst: ui.PromptToolkitUI) -> None:
    kb = inst.build_key_bindings()
    calls = {"clear": 0}

    class Renderer:
        def clear(self):
            calls["clear"] += 1

    event = FakeEvent("typed")
    event.app.renderer = Renderer()  # type: ignore[attr-defined]
    _press(kb, "c-l", event)

    assert calls["clear"] == 1
    assert event.current_buffer.resets == 1
    assert event.app.invalidated == 1


@pytest.mark.parametrize(
    "key, expected",
    [("c-up", Mode.CHAT), ("c-n", Mode.CHAT), ("c-down", Mode.SEARCH), ("c-p", Mode.SEARCH)],
)
def test_mode_cycling_keys(
    inst: ui.PromptToolkitUI, session: Session, key: str, expected: Mode
) -> None:
    kb = inst.build_key_bindings()

    event = _press(kb, key, FakeEvent("half typed"))

    assert session.mode == expected
    assert event.current_buffer.text == ""
    assert event.app.exit_result == ""


def test_ctrl_x_cancels(
    inst: ui.PromptToolkitUI, session: Session, monkeypatch: pytest.MonkeyPatch
) -> None:
    done = threading.Event()
    callers: list[threading.Thread] = []

    def _cancel() -> bool:
        callers.append(threading.current_thread())
        done.set()
        return True

    monkeypatch.setattr(session.executor, "cancel", _cancel)

    _press(inst.build_key_bindings(), "c-x")

    assert done.wait(5.0)
    assert callers[0] is not threading.current_thread()


def test_list_keys_inactive_without_lists(inst: ui.PromptToolkitUI) -> None:
    kb = inst.build_key_bindings()
    assert not _active(kb, "up")
    assert not _active(kb, "c-m")
    assert not _active(kb, "escape")


def test_browser_keys(
    inst: ui.PromptToolkitUI, session: Session, workdir: Path
) -> None:
    kb = inst.build_key_bindings()
    session.on_input_change("cat @")

    _press(kb, "down")
    assert session.browser.selected_index == 1

    event = _press(kb, "c-m", FakeEvent("cat @"))
    assert event.current_buffer.text == "cat " + str(workdir / "notes.txt")
    assert session.browser.visible is False


def test_browser_space_accepts_directory(
    inst: ui.PromptToolkitUI, session: Session, workdir: Path
) -> None:
    kb = inst.build_key_bindings()
    session.on_input_change("cd @")

    event = _press(kb, " ", FakeEvent("cd @"))

    assert event.current_buffer.text == "cd " + str(workdir / "sub") + " "


def test_browser_escape_closes(inst: ui.PromptToolkitUI, session: Session) -> None:
    kb = inst.build_key_bindings()
    session.on_input_change("@")

    _press(kb, "escape")

    assert session.browser.visible is False


def test_slash_enter_accepts_mode_directive(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    kb = inst.build_key_bindings()
    session.on_input_change("/ch")

    event = _press(kb, "c-m", FakeEvent("/ch"))

    assert event.current_buffer.text == "/chat"
    assert event.current_buffer.accepted == 1


def test_slash_enter_on_cwd_waits_for_argument(
    inst: ui.PromptToolkitUI, session: Session
) -> None:
    kb = inst.build_key_bindings()
    session.on_input_change("/cw")

    event = _press(kb, "c-m", FakeEvent("/cw"))

    assert event.current_buffer.text == "/cwd "
    assert event.current_buffer.accepted == 0


def test_search_keys(inst: ui.PromptToolkitUI, session: Session) -> None:
    session.store.upsert_command_stat("make a")  # type: ignore[attr-defined]
    session.store.upsert_command_stat("make b")  # type: ignore[attr-defined]
    session.set_mode(Mode.SEARCH)
    session.on_input_change("make")
    kb = inst.build_key_bindings()

    _press(kb, "down")
    assert session.search_selected == 1

    _press(kb, "delete")
    assert [r.command for r in session.search_results] == ["make b"]

    event = _press(kb, "c-m", FakeEvent("make"))
    assert event.current_buffer.text == "make b"
    assert session.pending is not None


def test_search_escape_dismisses(inst: ui.PromptToolkitUI, session: Session) -> None:
    session.store.upsert_command_stat("make a")  # type: ignore[attr-defined]
    session.set_mode(Mode.SEARCH)
    session.on_input_change("make")

    event = _press(inst.build_key_bindings(), "escape", FakeEvent("make"))

    assert event.current_buffer.text == ""
    assert session.search_results == []


def test_page_keys(inst: ui.PromptToolkitUI, session: Session) -> None:
    session.set_mode(Mode.AGENT)
    session.pages = [CommandPage("ls", "List"), CommandPage("pwd", "Where")]
    kb = inst.build_key_bindings()

    _press(kb, "c-right")
    assert session.page_index == 1
    _press(kb, "c-left")
    _press(kb, "c-left")
    assert session.page_index == 1

    event = _press(kb, "c-m")
    assert event.current_buffer.text == "pwd"
    assert session.pending is not None
    assert session.pending.source == "agent"
