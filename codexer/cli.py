from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape
from rich.table import Table

from codexer import codex, git
from codexer.formatting import format_datetime, format_iso, shorten_path
from codexer.picker import run_picker
from codexer.sessions import (
    SessionRecord,
    delete_transcript,
    display_name,
    filter_sessions_by_cwd,
    find_session,
    load_sessions,
)
from codexer.store import NameOverride, NameStore, default_sessions_dir, load_config

app = typer.Typer(add_completion=False, help="Wrapper CLI for Codex session management in this repo or folder.")
_config_path: Path | None = None
_sessions_dir: Path | None = None
_data_dir: Path | None = None


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Annotated[Optional[Path], typer.Option("--config", help="Path to config file")] = None,
    sessions_dir: Annotated[Optional[Path], typer.Option("--sessions-dir", help="Path to the Codex sessions directory")] = None,
    data_dir: Annotated[Optional[Path], typer.Option("--data-dir", help="Path to the codexer data directory")] = None,
    all: Annotated[bool, typer.Option("--all", help="Include sessions from all directories in the picker")] = False,
) -> None:
    """Pick, rename, delete and resume Codex sessions. Runs the picker when no command is given."""
    global _config_path, _sessions_dir, _data_dir
    _config_path = config
    _sessions_dir = sessions_dir
    _data_dir = data_dir
    if ctx.invoked_subcommand is None:
        _interactive(all)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config() -> dict:
    try:
        return load_config(_config_path)
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: Could not read config: {exc}", err=True)
        raise typer.Exit(code=1)


def _sessions_root() -> Path:
    """Resolve the transcript root. Priority: --sessions-dir > config file > CODEX_HOME > ~/.codex/sessions."""
    if _sessions_dir is not None:
        return _sessions_dir
    configured = _config().get("sessions_dir")
    if configured:
        return Path(configured).expanduser()
    return default_sessions_dir()


def _store() -> NameStore:
    if _data_dir is not None:
        return NameStore(data_dir=_data_dir)
    configured = _config().get("data_dir")
    return NameStore(data_dir=Path(configured).expanduser() if configured else None)


def _resolve_scope() -> str:
    """Git repository root, else the current directory."""
    return git.toplevel() or os.getcwd()


def _scan(root: Path) -> list[SessionRecord]:
    return load_sessions(root, title_length=_config()["title_length"])


def _load_all() -> list[SessionRecord]:
    root = _sessions_root()
    try:
        return _scan(root)
    except OSError as exc:
        typer.echo(f"Error: Cannot read sessions in {root}: {exc}", err=True)
        raise typer.Exit(code=1)


def _load_scoped(all_dirs: bool) -> list[SessionRecord]:
    sessions = _load_all()
    if all_dirs:
        return sessions
    return filter_sessions_by_cwd(sessions, _resolve_scope())


def _require_session(session_id: str) -> SessionRecord:
    session = find_session(_load_all(), session_id)
    if session is None:
        typer.echo(f"Session '{session_id}' not found.", err=True)
        raise typer.Exit(code=1)
    return session


def _run_codex(args: list[str]) -> int:
    command = _config().get("codex_command", "codex")
    try:
        return codex.run(args, command=command)
    except OSError as exc:
        typer.echo(f"Failed to run {command}: {exc}", err=True)
        return 1


def _resume(session: SessionRecord, names: dict[str, NameOverride], prompt: str | None = None) -> int:
    typer.echo(f"Resuming {display_name(session, names, 'untitled')} ({session.id})", err=True)
    return _run_codex(codex.resume_args(session.id, prompt))


def _rename(store: NameStore, session_id: str, name: str) -> None:
    try:
        store.upsert(session_id, name)
    except OSError as exc:
        typer.echo(f"Error: Failed to write {store.names_file}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Renamed {session_id} to {json.dumps(name)}", err=True)


def _delete(store: NameStore, session: SessionRecord) -> None:
    """Remove the transcript and its name override."""
    try:
        delete_transcript(session, _sessions_root())
    except OSError as exc:
        typer.echo(f"Error: Could not delete {session.file}: {exc}", err=True)
        raise typer.Exit(code=1)
    try:
        store.delete(session.id)
    except OSError as exc:
        typer.echo(f"Error: Failed to write {store.names_file}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted session '{session.id}'.", err=True)


def _interactive(all_dirs: bool) -> None:
    sessions = _load_scoped(all_dirs)
    store = _store()
    names = store.load()
    action = run_picker(sessions, names)

    if action.kind == "rename" and action.session is not None:
        _rename(store, action.session.id, action.name or "")
    elif action.kind == "delete" and action.session is not None:
        _delete(store, action.session)
    elif action.kind == "resume" and action.session is not None:
        raise typer.Exit(code=_resume(action.session, names))
    elif action.kind == "new":
        raise typer.Exit(code=_run_codex(codex.new_args()))


def _session_dict(session: SessionRecord, names: dict[str, NameOverride]) -> dict:
    override = names.get(session.id)
    git_info = session.git
    return {
        "id": session.id,
        "name": override.name if override else None,
        "title": session.title,
        "started_at": format_iso(session.started_at) or None,
        "last_modified": format_iso(session.last_modified),
        "cwd": session.cwd,
        "file": session.file,
        "git": {
            "repository_url": git_info.repository_url,
            "branch": git_info.branch,
            "commit_hash": git_info.commit_hash,
        } if git_info else None,
    }


# ---------------------------------------------------------------------------
# codexer list
# ---------------------------------------------------------------------------


@app.command("list")
def list_sessions(
    all: Annotated[bool, typer.Option("--all", help="Include sessions from all directories")] = False,
    limit: Annotated[Optional[int], typer.Option("--limit", min=1, help="Limit number of sessions")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    plain: Annotated[bool, typer.Option("--plain", help="One line per session, no table")] = False,
) -> None:
    """List sessions scoped to the current repo or directory."""
    sessions = _load_scoped(all)
    if limit is not None:
        sessions = sessions[:limit]
    names = _store().load()

    if json_output:
        typer.echo(json.dumps([_session_dict(s, names) for s in sessions], indent=2))
        return

    if not sessions:
        typer.echo("No sessions found.", err=True)
        return

    if plain:
        for s in sessions:
            parts = [format_iso(s.started_at), s.id, display_name(s, names), s.cwd]
            typer.echo(" ".join(p for p in parts if p))
        return

    _print_table(sessions, names)


def _print_table(sessions: list[SessionRecord], names: dict[str, NameOverride]) -> None:
    table = Table()
    table.add_column("MODIFIED")
    table.add_column("ID")
    table.add_column("NAME")
    table.add_column("DIR")

    for s in sessions:
        name = escape(display_name(s, names))
        if s.id not in names:
            name = f"[dim]{name}[/dim]"
        table.add_row(format_datetime(s.last_modified), s.id, name, escape(shorten_path(s.cwd)))

    from rich.console import Console

    console = Console(stderr=True)
    console.print(table)


# ---------------------------------------------------------------------------
# codexer info
# ---------------------------------------------------------------------------


@app.command()
def info(
    session_id: Annotated[str, typer.Argument(help="Codex session ID or unique prefix")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show details of a session."""
    session = _require_session(session_id)
    names = _store().load()

    if json_output:
        typer.echo(json.dumps(_session_dict(session, names), indent=2))
        return

    override = names.get(session.id)
    typer.echo(f"ID:        {session.id}")
    typer.echo(f"Name:      {display_name(session, names)}")
    if override and session.title:
        typer.echo(f"Title:     {session.title}")
    typer.echo(f"Started:   {format_datetime(session.started_at) or 'unknown'}")
    typer.echo(f"Modified:  {format_datetime(session.last_modified)}")
    typer.echo(f"Dir:       {session.cwd or '-'}")
    typer.echo(f"File:      {session.file}")
    if session.git:
        if session.git.repository_url:
            typer.echo(f"Repo:      {session.git.repository_url}")
        if session.git.branch:
            typer.echo(f"Branch:    {session.git.branch}")
        if session.git.commit_hash:
            typer.echo(f"Commit:    {session.git.commit_hash}")


# ---------------------------------------------------------------------------
# codexer rename / unname
# ---------------------------------------------------------------------------


def _resolve_id(session_id: str) -> str:
    """Expand a unique id prefix. Unknown ids are kept as given."""
    try:
        sessions = _scan(_sessions_root())
    except OSError:
        return session_id
    session = find_session(sessions, session_id)
    return session.id if session else session_id


@app.command()
def rename(
    session_id: Annotated[str, typer.Argument(help="Codex session ID")],
    name: Annotated[list[str], typer.Argument(help="New display name")],
) -> None:
    """Rename a Codex session in the local index."""
    _rename(_store(), _resolve_id(session_id), " ".join(name))


@app.command()
def unname(
    session_id: Annotated[str, typer.Argument(help="Codex session ID")],
) -> None:
    """Remove a session's display name."""
    session_id = _resolve_id(session_id)
    store = _store()
    try:
        removed = store.delete(session_id)
    except OSError as exc:
        typer.echo(f"Error: Failed to write {store.names_file}: {exc}", err=True)
        raise typer.Exit(code=1)
    if not removed:
        typer.echo(f"Session '{session_id}' has no name.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Removed name of {session_id}.", err=True)


# ---------------------------------------------------------------------------
# codexer resume / new
# ---------------------------------------------------------------------------


@app.command()
def resume(
    session_id: Annotated[Optional[str], typer.Argument(help="Codex session ID (latest in scope if omitted)")] = None,
    prompt: Annotated[Optional[list[str]], typer.Argument(help="Optional prompt")] = None,
    all: Annotated[bool, typer.Option("--all", help="Include sessions from all directories")] = False,
) -> None:
    """Resume a session, by default the latest one for this repo or directory."""
    prompt_text = " ".join(prompt) if prompt else None
    names = _store().load()

    if session_id is None:
        sessions = _load_scoped(all)
        if sessions:
            raise typer.Exit(code=_resume(sessions[0], names, prompt_text))
        raise typer.Exit(code=_run_codex(codex.resume_args(None, prompt_text)))

    session = find_session(_load_all(), session_id)
    if session is not None:
        raise typer.Exit(code=_resume(session, names, prompt_text))
    raise typer.Exit(code=_run_codex(codex.resume_args(session_id, prompt_text)))


@app.command()
def new(
    prompt: Annotated[Optional[list[str]], typer.Argument(help="Optional prompt")] = None,
) -> None:
    """Start a new Codex session in the current directory."""
    prompt_text = " ".join(prompt) if prompt else None
    raise typer.Exit(code=_run_codex(codex.new_args(prompt_text)))


# ---------------------------------------------------------------------------
# codexer delete
# ---------------------------------------------------------------------------


@app.command()
def delete(
    session_id: Annotated[str, typer.Argument(help="Codex session ID or unique prefix")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete a session's transcript and its display name."""
    session = _require_session(session_id)
    store = _store()
    names = store.load()

    if not yes:
        typer.echo(f"  Session ID:  {session.id}", err=True)
        typer.echo(f"  Name:        {display_name(session, names)}", err=True)
        typer.echo(f"  Dir:         {session.cwd or '-'}", err=True)
        typer.echo(f"  Modified:    {format_datetime(session.last_modified)}", err=True)
        if not typer.confirm("Delete this session?", default=False, err=True):
            typer.echo("Aborted.", err=True)
            return

    _delete(store, session)


# ---------------------------------------------------------------------------
# codexer sessions-dir / names-file
# ---------------------------------------------------------------------------


@app.command("sessions-dir")
def sessions_dir_cmd() -> None:
    """Print the path to the Codex sessions directory."""
    typer.echo(str(_sessions_root()))


@app.command("names-file")
def names_file() -> None:
    """Print the path to the session names file."""
    typer.echo(str(_store().names_file))
