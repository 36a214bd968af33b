"""Interactive session picker.

``Picker`` is the state machine (listing, renaming, confirming-delete,
exited) and has no terminal dependency. ``run_picker`` drives it from a
Textual inline app. Nothing is written to disk here: the chosen action is
returned to the caller, which performs it.
"""

from __future__ import annotations

from dataclasses import dataclass

from codexer.formatting import format_datetime, shorten_path
from codexer.sessions import SessionRecord, display_name
from codexer.store import NameOverride


LISTING = "listing"
RENAMING = "renaming"
CONFIRMING_DELETE = "confirming-delete"
EXITED = "exited"

PLACEHOLDER = "untitled"
VISIBLE_ROWS = 15


@dataclass
class PickerAction:
    kind: str  # "resume" | "rename" | "delete" | "new" | "exit"
    session: SessionRecord | None = None
    name: str | None = None


class Picker:
    def __init__(self, sessions: list[SessionRecord], names: dict[str, NameOverride]) -> None:
        self.sessions = sessions
        self.names = names
        self.state = LISTING
        self.cursor = 0
        self.result: PickerAction | None = None

    @property
    def current(self) -> SessionRecord | None:
        if not self.sessions:
            return None
        return self.sessions[self.cursor]

    def label(self, session: SessionRecord) -> str:
        return display_name(session, self.names, PLACEHOLDER)

    def row(self, session: SessionRecord) -> str:
        when = format_datetime(session.last_modified)
        cwd = f"  {shorten_path(session.cwd)}" if session.cwd else ""
        return f"{when}  {session.id[:8]}  {self.label(session)}{cwd}"

    def window(self, size: int = VISIBLE_ROWS) -> tuple[int, list[SessionRecord]]:
        """Offset and slice of sessions to show so the cursor stays visible."""
        start = max(0, min(self.cursor - size // 2, len(self.sessions) - size))
        return start, self.sessions[start : start + size]

    def rename_default(self) -> str:
        session = self.current
        if session is None:
            return ""
        override = self.names.get(session.id)
        return override.name if override else ""

    def move(self, delta: int) -> None:
        if self.sessions:
            self.cursor = max(0, min(len(self.sessions) - 1, self.cursor + delta))

    def _finish(self, kind: str, session: SessionRecord | None = None, name: str | None = None) -> PickerAction:
        self.state = EXITED
        self.result = PickerAction(kind=kind, session=session, name=name)
        return self.result

    def exit(self) -> PickerAction:
        return self._finish("exit")

    def handle_key(self, key: str) -> PickerAction | None:
        """Apply one key press. Returns the action once the picker has finished."""
        if self.state == EXITED:
            return None
        if key == "ctrl+c":
            return self.exit()

        if self.state == LISTING:
            if key in ("q", "escape"):
                return self.exit()
            if key in ("up", "k"):
                self.move(-1)
            elif key in ("down", "j"):
                self.move(1)
            elif key == "home":
                self.cursor = 0
            elif key == "end":
                self.move(len(self.sessions))
            elif key == "n":
                return self._finish("new")
            elif self.current is None:
                return None
            elif key == "enter":
                return self._finish("resume", self.current)
            elif key == "r":
                self.state = RENAMING
            elif key == "d":
                self.state = CONFIRMING_DELETE
            return None

        if self.state == RENAMING:
            if key == "escape":
                return self.exit()
            return None

        if self.state == CONFIRMING_DELETE:
            if key in ("q", "escape"):
                return self.exit()
            if key in ("y", "enter"):
                return self._finish("delete", self.current)
            if key == "n":
                self.state = LISTING
        return None

    def submit_name(self, text: str) -> PickerAction | None:
        if self.state != RENAMING:
            return None
        name = text.strip()
        if not name:
            self.state = LISTING
            return None
        return self._finish("rename", self.current, name)

    def prompt(self) -> str:
        if self.state == RENAMING and self.current is not None:
            return f"Rename session {self.current.id}"
        if self.state == CONFIRMING_DELETE and self.current is not None:
            return f"Delete {self.label(self.current)} ({self.current.id})? This removes the transcript file."
        return "Select a Codex session"

    def help(self) -> str:
        if self.state == RENAMING:
            return "Press enter to save, esc to exit."
        if self.state == CONFIRMING_DELETE:
            return "y/enter: delete  n: back  q/esc: exit"
        if not self.sessions:
            return "No sessions found. n: new session  q/esc: exit"
        return "↑/↓ move  enter: resume  r: rename  d: delete  n: new  q/esc: exit"


def picker_app(sessions: list[SessionRecord], names: dict[str, NameOverride]):
    """Build the inline Textual app driving a Picker. Its return value is a PickerAction."""
    from rich.text import Text
    from textual import events
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.widgets import Input, Static

    picker = Picker(sessions, names)

    class SessionPicker(App[PickerAction]):
        CSS = """
        Screen {
            &:inline { height: auto; }
        }
        #prompt { text-style: bold; }
        #help { color: $text-muted; }
        Input { width: 80; }
        """
        INLINE_PADDING = 0
        # Keys must reach on_key until the rename box is opened.
        AUTO_FOCUS = None
        BINDINGS = [Binding("ctrl+c", "cancel", show=False, priority=True)]

        def compose(self) -> ComposeResult:
            yield Static(id="prompt")
            yield Static(id="rows")
            yield Input(id="rename", placeholder="Enter a new name", disabled=True)
            yield Static(id="help")

        def on_mount(self) -> None:
            self.query_one("#rename", Input).display = False
            self._refresh_view()

        def _refresh_view(self) -> None:
            self.query_one("#prompt", Static).update(Text(picker.prompt()))
            rows = Text()
            start, visible = picker.window()
            for offset, session in enumerate(visible):
                if offset:
                    rows.append("\n")
                if start + offset == picker.cursor:
                    rows.append(f"› {picker.row(session)}", style="reverse")
                else:
                    rows.append(f"  {picker.row(session)}")
            self.query_one("#rows", Static).update(rows)
            self.query_one("#help", Static).update(Text(picker.help()))

            rename = self.query_one("#rename", Input)
            if picker.state == RENAMING and not rename.display:
                rename.value = picker.rename_default()
                rename.disabled = False
                rename.display = True
                rename.focus()
            elif picker.state != RENAMING and rename.display:
                self.set_focus(None)
                rename.display = False
                rename.disabled = True

        def _apply(self, action: PickerAction | None) -> None:
            if action is not None:
                self.exit(action)
            else:
                self._refresh_view()

        def action_cancel(self) -> None:
            self.exit(picker.exit())

        def on_key(self, event: events.Key) -> None:
            # Typing in the rename box belongs to the Input widget.
            if picker.state == RENAMING and event.key != "escape":
                return
            event.stop()
            self._apply(picker.handle_key(event.key))

        def on_input_submitted(self, event: Input.Submitted) -> None:
            event.stop()
            self._apply(picker.submit_name(event.value))

    return SessionPicker()


def run_picker(sessions: list[SessionRecord], names: dict[str, NameOverride]) -> PickerAction:
    """Show the picker using Textual inline mode. Returns the chosen action."""
    result = picker_app(sessions, names).run(inline=True)
    if result is None:
        return PickerAction(kind="exit")
    return result
