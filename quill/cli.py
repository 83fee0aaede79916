"""
QUILL CLI — The Interface

Two modes:
  1. quill run "<request>" --repo <path>     (one request, then exit)
  2. quill chat --repo <path>                (multi-turn conversation)

Plus utilities:
  - quill status                      (check config + API keys)
  - quill init <path>                 (bootstrap .quill in a repo)
  - quill context scan | gather <q>   (what the agent sees)
  - quill patch apply <file> <diff>   (apply a diff by hand)
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from quill.agents.orchestrator import PAUSED_SENTINEL, AgentRun
from quill.agents.types import Step
from quill.config_loader import QuillConfig, load_config, validate_api_keys
from quill.editing.patcher import Patcher
from quill.identity import BANNER, __codename__, __tagline__, __version__
from quill.session import Session
from quill.tools.permissions import ConsoleApprover
from quill.workspace import Workspace, WorkspaceError
from quill.workspace.context import ContextManager
from quill.workspace.scanner import ProjectScanner

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".quill" / ".env")

app = typer.Typer(
    name="quill",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

EXIT_WORDS = {"exit", "quit", ":q"}


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner / rendering
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_cyan]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


def _render_step(step: Step) -> None:
    if step.thought:
        console.print(f"[dim]💭 {escape(step.thought)}[/]")
    if step.final_answer is not None:
        return
    if step.tool_call is not None:
        args = json.dumps(step.tool_call.arguments)
        console.print(f"[cyan]🛠  {step.tool_call.name}[/] [dim]{escape(args[:200])}[/]")
    elif step.tool_output:
        console.print(f"[yellow]{escape(step.tool_output)}[/]")


def _print_tool_output(step: Step | None) -> None:
    if step is not None and step.tool_output:
        console.print(f"[dim]   ↳ {escape(step.tool_output[:500])}[/]")


def _drive(session: Session, run: AgentRun) -> str:
    """
    Render each step as the run produces it. A tool step's output is
    printed once the next step arrives (or the run ends).

    Ctrl-C pauses the run instead of leaving: the step on screen is not
    acted on and control returns to the caller.
    """
    pending: Step | None = None
    while not run.finished:
        try:
            for step in run:
                _print_tool_output(pending)
                _render_step(step)
                pending = step if step.tool_call is not None else None
        except KeyboardInterrupt:
            console.print("\n[yellow]Pausing...[/]")
            session.pause()

    _print_tool_output(pending)

    # An interrupt inside the model call ends the run without a return value
    result = run.result or (PAUSED_SENTINEL if session.paused else "Done.")
    console.print(Panel(escape(result), title="[bold green]Quill[/]", border_style="green"))
    return result


def _open_session(repo: Path, autopilot: bool, max_steps: Optional[int]) -> Session:
    repo = repo.resolve()
    if not repo.exists():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)

    config: QuillConfig = load_config(repo)
    if autopilot:
        config.permissions.autopilot = True
    if max_steps:
        config.limits.max_steps = max_steps

    return Session(repo, config, approver=ConsoleApprover(console))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    prompt: str = typer.Argument(..., help="What you want done"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Project root"),
    autopilot: bool = typer.Option(False, "--autopilot", "-y", help="Approve every tool call without asking"),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", "-n", help="Step budget for this request"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run a single request and exit."""
    _configure_logging(verbose)

    session = _open_session(repo, autopilot, max_steps)
    try:
        _drive(session, session.ask(prompt))
    finally:
        session.close()


@app.command()
def chat(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Project root"),
    autopilot: bool = typer.Option(False, "--autopilot", "-y"),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", "-n"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Interactive mode: talk to Quill turn by turn."""
    _print_banner()
    _configure_logging(verbose)

    session = _open_session(repo, autopilot, max_steps)
    console.print(f"[dim]Project: {session.workspace.root} | model: {session.config.routing.model}[/]")
    console.print("[dim]Type 'exit' to leave.[/]\n")

    try:
        while True:
            mode = "[magenta]AUTOPILOT[/] " if session.autopilot else ""
            request = console.input(f"{mode}[bold]>> [/]").strip()
            if not request:
                continue
            if request.lower() in EXIT_WORDS:
                break
            _drive(session, session.ask(request))
    except (EOFError, KeyboardInterrupt):
        console.print()
    finally:
        session.close()


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check QUILL configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    config = load_config(repo.resolve() if repo else None)
    console.print(f"\n[bold]Model:[/] {config.routing.model}")
    console.print(f"[bold]Limits:[/]")
    console.print(f"  Max steps/request:  {config.limits.max_steps}")
    console.print(f"  Max tokens/session: {config.limits.max_tokens_per_session:,}")
    console.print(f"  Max $/session:      ${config.limits.max_dollars_per_session}")
    console.print(f"[bold]Autopilot:[/] {'on' if config.permissions.autopilot else 'off'}")
    console.print(f"[bold]Gated tools:[/] {', '.join(config.permissions.gated_tools) or '—'}")

    tools_table = Table(title="System Tools", border_style="cyan")
    tools_table.add_column("Tool")
    tools_table.add_column("Status")

    for tool in ["git", "python3", "node", "npx"]:
        found = shutil.which(tool)
        s = f"[green]✓ {found}[/]" if found else "[dim]✗ Not found[/]"
        tools_table.add_row(tool, s)

    console.print(tools_table)


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize the .quill directory in a repository."""
    _print_banner()

    repo = (repo or Path.cwd()).resolve()
    state_dir = repo / ".quill"
    state_dir.mkdir(exist_ok=True)
    (state_dir / "backups").mkdir(exist_ok=True)
    (state_dir / "logs").mkdir(exist_ok=True)

    config_path = state_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# QUILL repo-level config overrides
# These merge with the built-in defaults.

# routing:
#   model: "anthropic/claude-sonnet-4-20250514"

# limits:
#   max_steps: 15

# permissions:
#   autopilot: false
#   gated_tools: [create_file, write_file, edit_file, create_dir, run_command, git_commit, test_run, format_file]

# tools:
#   test_command: "python -m pytest -q"
#   format_command: "black {path}"
""", encoding="utf-8")

    gitignore = repo / ".gitignore"
    ignore_entries = [".quill/backups/", ".quill/logs/"]
    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a", encoding="utf-8") as f:
                f.write("\n# QUILL\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# QUILL\n" + "\n".join(ignore_entries) + "\n", encoding="utf-8")

    console.print(f"[green]✅ Initialized QUILL in {state_dir}[/]")
    console.print(f"  Config:  {config_path}")


# ---------------------------------------------------------------------------
# Context / patch utilities
# ---------------------------------------------------------------------------

context_app = typer.Typer(help="Inspect the project context the agent sees.", no_args_is_help=True)
patch_app = typer.Typer(help="Apply patches without the agent.", no_args_is_help=True)
app.add_typer(context_app, name="context")
app.add_typer(patch_app, name="patch")

SCAN_PREVIEW = 20


def _project_root(repo: Path) -> Path:
    repo = repo.resolve()
    if not repo.is_dir():
        console.print(f"[red]Project root not found: {repo}[/]")
        raise typer.Exit(1)
    return repo


@context_app.command("scan")
def context_scan(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Project root"),
):
    """List project files, respecting .gitignore."""
    root = _project_root(repo)
    config = load_config(root)

    console.print(f"Scanning project at: {root}")
    files = ProjectScanner(root, config.context.extra_ignores).scan()

    console.print(f"Found {len(files)} files:")
    for f in files[:SCAN_PREVIEW]:
        console.print(f" - {escape(f)}", highlight=False)
    if len(files) > SCAN_PREVIEW:
        console.print(f"... and {len(files) - SCAN_PREVIEW} more.")


@context_app.command("gather")
def context_gather(
    query: List[str] = typer.Argument(..., help="Query to score files against"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Project root"),
    limit: int = typer.Option(10, "--limit", "-l", help="How many files to show"),
):
    """Rank project files by relevance to a query."""
    root = _project_root(repo)
    config = load_config(root)
    text = " ".join(query)

    console.print(f'Gathering context for: "{escape(text)}"')
    manager = ContextManager(Workspace(root), ProjectScanner(root, config.context.extra_ignores))
    ranked = manager.gather(text)

    console.print(f"Top {min(limit, len(ranked))} Relevant Files:")
    for f in ranked[:limit]:
        console.print(f"{escape(f'[{f.relevance:.1f}]')} {f.tier.upper()} - {escape(f.path)}", highlight=False)


@patch_app.command("apply")
def patch_apply(
    target: str = typer.Argument(..., help="File to patch, relative to the project root"),
    patch_file: Path = typer.Argument(..., help="File containing a unified diff"),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Project root"),
):
    """Apply a diff file to one project file."""
    root = _project_root(repo)
    config = load_config(root)

    try:
        diff_text = patch_file.read_text(encoding="utf-8")
        patcher = Patcher(Workspace(root), config.workspace.backup_dir)
        applied = patcher.apply_patch(target, diff_text)
    except (OSError, UnicodeDecodeError, WorkspaceError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not applied:
        console.print(f"[red]Failed to patch {escape(target)}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Successfully patched {escape(target)}[/]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False, markup=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"{msg}", style="dim", highlight=False, markup=False, end=""),
            level="WARNING",
            format="{message}\n",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
