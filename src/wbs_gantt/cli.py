"""CLI entry point using Click."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from pathlib import Path

import click
from rich.console import Console

from wbs_gantt.errors import RepositoryRejected, WBSError


class _DefaultGroup(click.Group):
    """Insert 'run' when the first arg is not a registered subcommand."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.no_args_is_help = False

    def invoke(self, ctx):
        if not ctx._protected_args and not ctx.args:
            ctx._protected_args = ["run"]
        return super().invoke(ctx)

    def resolve_command(self, ctx, args):
        cmd_name = args[0] if args else None
        if cmd_name and cmd_name in self.commands:
            return super().resolve_command(ctx, args)
        return super().resolve_command(ctx, ["run"] + list(args))


@click.group(cls=_DefaultGroup)
@click.option("--no-color", is_flag=True, help="Disable color output")
@click.option("-v", "--verbose", is_flag=True, help="Log to stderr")
@click.version_option(package_name="wbs-gantt")
@click.pass_context
def main(ctx, no_color: bool, verbose: bool) -> None:
    """WBS Gantt - hierarchical work breakdown and Gantt scheduling."""
    ctx.ensure_object(dict)
    ctx.obj["no_color"] = no_color
    ctx.obj["verbose"] = verbose


# ── Helpers ──────────────────────────────────────────────────────


def _project_dir(path: str) -> Path:
    project_dir = Path(path).resolve()
    if not project_dir.is_dir():
        raise click.ClickException(f"'{project_dir}' is not a directory")
    return project_dir


def _console(ctx) -> Console:
    return Console(no_color=ctx.obj.get("no_color", False), highlight=False)


def _open_session(ctx, path: str):
    """Build a JSON-backed session for PATH (not yet loaded)."""
    from wbs_gantt.config import load_config, load_settings
    from wbs_gantt.logging_config import setup_logging
    from wbs_gantt.repository import JsonFileRepository
    from wbs_gantt.session import WBSSession

    project_dir = _project_dir(path)
    setup_logging(load_settings(project_dir), ctx.obj.get("verbose", False), project_dir)
    config = load_config(project_dir)
    repo = JsonFileRepository(project_dir)
    session = WBSSession(
        repo,
        config.project_id,
        weight_mode=config.weight_mode,
        cell_width=config.cell_width,
    )
    return session, config


def _run_edit(ctx, path: str, action):
    """Load, apply ``action(session)``, wait for the commit, surface failures.

    Returns the session and whatever the action returned.
    """
    session, config = _open_session(ctx, path)
    failures: list[RepositoryRejected] = []
    session.add_failure_listener(failures.append)

    async def _main():
        await session.load()
        result = action(session)
        if asyncio.iscoroutine(result):
            result = await result
        await session.flush()
        return result

    try:
        result = asyncio.run(_main())
    except (WBSError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    if failures:
        raise click.ClickException("; ".join(str(f) for f in failures))
    return session, result


def _find(session, ref: str) -> str:
    """Resolve an item reference given as a WBS code or an id."""
    if ref in session.tree:
        return ref
    for item in session.tree:
        if item.code == ref:
            return item.id
    raise click.ClickException(f"no work item with code or id '{ref}'")


def _parse_day(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an ISO date (YYYY-MM-DD)") from None


def _path_option(fn):
    return click.option(
        "-p", "--path", default=".", type=click.Path(), show_default=True, help="Project directory"
    )(fn)


def _sample_items(name: str, today: date):
    """A small starter tree for `init`."""
    from wbs_gantt.models import Level, WorkItem

    def unit(title, offset, days, progress=0):
        start = today + timedelta(days=offset)
        return WorkItem(
            name=title,
            level=Level.LEVEL4,
            planned_start=start,
            planned_end=start + timedelta(days=days - 1),
            progress=progress,
        )

    design = WorkItem(
        name="Design",
        level=Level.LEVEL1,
        weight=40,
        children=(
            WorkItem(
                name="Requirements",
                level=Level.LEVEL2,
                children=(
                    WorkItem(
                        name="Interviews",
                        level=Level.LEVEL3,
                        children=(unit("Stakeholder list", 0, 2), unit("Interview notes", 2, 5)),
                    ),
                ),
            ),
        ),
    )
    build = WorkItem(
        name="Build",
        level=Level.LEVEL1,
        weight=60,
        children=(
            WorkItem(
                name=f"{name} core",
                level=Level.LEVEL2,
                children=(
                    WorkItem(
                        name="Implementation",
                        level=Level.LEVEL3,
                        children=(unit("Data model", 7, 5), unit("Screens", 12, 10)),
                    ),
                ),
            ),
        ),
    )
    return [design, build]


# ── Commands ─────────────────────────────────────────────────────


@main.command()
@click.argument("path", default=".", type=click.Path())
@click.pass_context
def run(ctx, path: str) -> None:
    """Open the project in PATH in the terminal UI."""
    from wbs_gantt.app import WBSApp

    project_dir = Path(path).resolve()
    if not project_dir.exists():
        if click.confirm(f"'{project_dir}' does not exist. Create it?"):
            project_dir.mkdir(parents=True, exist_ok=True)
            click.echo(f"Created {project_dir}")
        else:
            raise SystemExit(0)
    elif not project_dir.is_dir():
        click.echo(f"Error: '{project_dir}' is not a directory.", err=True)
        raise SystemExit(1)
    app = WBSApp(project_dir=project_dir, no_color=ctx.obj["no_color"], verbose=ctx.obj["verbose"])
    app.run()


@main.command("init")
@click.argument("path", default=".", type=click.Path())
@click.option("--name", prompt="Project name", default="My Project", help="Project name")
@click.option("--empty", is_flag=True, help="Do not add the sample work breakdown")
@click.option("--theme", "with_theme", is_flag=True, help="Also copy the default theme for editing")
def init_cmd(path: str, name: str, empty: bool, with_theme: bool) -> None:
    """Initialize a new project (.wbs-gantt/config.toml + store.json)."""
    from wbs_gantt.config import CONFIG_DIR, save_config
    from wbs_gantt.models import ProjectConfig
    from wbs_gantt.repository import JsonFileRepository
    from wbs_gantt.rollup import rollup_tree
    from wbs_gantt.tree import WBSTree

    project_dir = Path(path).resolve()
    repo = JsonFileRepository(project_dir)
    if repo.path.exists():
        click.echo(f"Project already initialized: {repo.path}", err=True)
        raise SystemExit(1)

    project_dir.mkdir(parents=True, exist_ok=True)
    save_config(project_dir, ProjectConfig(name=name))
    click.echo(f"Created {project_dir / CONFIG_DIR / 'config.toml'}")

    roots = () if empty else rollup_tree(WBSTree(_sample_items(name, date.today())).roots)
    repo.save_all(roots)
    click.echo(f"Created {repo.path}")

    if with_theme:
        from wbs_gantt.theme import init_theme

        try:
            click.echo(f"Created {init_theme(project_dir)}")
        except FileExistsError as e:
            click.echo(f"Already exists: {e}", err=True)

    click.echo(f"\nProject initialized at {project_dir}")
    click.echo("Run 'wbs-gantt' to open the project.")


@main.command("show")
@_path_option
@click.option("--depth", type=click.IntRange(1, 4), default=4, show_default=True, help="Deepest level to list")
@click.option("--assignee", default=None, help="Only items assigned to this person id")
@click.pass_context
def show_cmd(ctx, path: str, depth: int, assignee: str | None) -> None:
    """Print the work breakdown as a table."""
    from wbs_gantt.renderer import ExpansionState, filter_by_assignee, flatten_visible, render_tree_table
    from wbs_gantt.rollup import weight_total, weights_balanced

    session, _ = _run_edit(ctx, path, lambda s: None)
    roots = session.tree.roots
    if assignee:
        roots = filter_by_assignee(roots, assignee)
    expanded = ExpansionState()
    expanded.expand_to_level(roots, depth)
    rows = flatten_visible(roots, expanded.ids, session.today())

    console = _console(ctx)
    people = {p.id: p.name for p in session.people}
    console.print(render_tree_table(rows, people=people, title=f"{len(session.tree)} items"))
    console.print(f"Project progress: {session.project_progress():.1f}%")
    if session.tree.roots and not weights_balanced(session.tree.roots):
        console.print(f"[yellow]LEVEL1 weights add up to {weight_total(session.tree.roots)}, not 100[/yellow]")


@main.command("add")
@click.argument("name")
@click.option("--parent", "parent_ref", default=None, help="Parent code or id (omit for a LEVEL1 item)")
@click.option("--sibling-of", "sibling_ref", default=None, help="Insert right after this item instead")
@click.option("--start", default=None, help="Planned start (YYYY-MM-DD)")
@click.option("--end", default=None, help="Planned end (YYYY-MM-DD)")
@click.option("--weight", type=click.IntRange(1, 100), default=None, help="Weight (LEVEL1 only)")
@_path_option
@click.pass_context
def add_cmd(ctx, name: str, parent_ref, sibling_ref, start, end, weight, path: str) -> None:
    """Add a work item."""
    fields = {}
    if start:
        fields["planned_start"] = _parse_day(start)
    if end:
        fields["planned_end"] = _parse_day(end)
    if weight is not None:
        fields["weight"] = weight

    def action(session):
        if sibling_ref:
            mutation = session.add_sibling(_find(session, sibling_ref), name, **fields)
        else:
            parent_id = _find(session, parent_ref) if parent_ref else None
            level = 1 if parent_id is None else int(session.tree.get(parent_id).level) + 1
            mutation = session.add_child(parent_id, level, name, **fields)
        return mutation.result.item_id

    session, item_id = _run_edit(ctx, path, action)
    item = session.tree.get(session.resolve(item_id))
    click.echo(f"Added {item.code} {item.name} ({item.level.name})")


def _structural(command: str, ctx, path: str, ref: str) -> None:
    def action(session):
        item_id = _find(session, ref)
        getattr(session, command)(item_id)
        return item_id

    session, item_id = _run_edit(ctx, path, action)
    item = session.tree.get(item_id)
    click.echo(f"{item.code} {item.name} is now {item.level.name}")


@main.command("promote")
@click.argument("ref")
@_path_option
@click.pass_context
def promote_cmd(ctx, ref: str, path: str) -> None:
    """Move an item up one level, after its parent."""
    _structural("promote", ctx, path, ref)


@main.command("demote")
@click.argument("ref")
@_path_option
@click.pass_context
def demote_cmd(ctx, ref: str, path: str) -> None:
    """Move an item under its preceding sibling."""
    _structural("demote", ctx, path, ref)


@main.command("delete")
@click.argument("ref")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@_path_option
@click.pass_context
def delete_cmd(ctx, ref: str, yes: bool, path: str) -> None:
    """Delete an item and its whole subtree."""

    def action(session):
        item_id = _find(session, ref)
        count = len(session.tree.get(item_id).all_nodes())
        if not yes and not click.confirm(f"Delete {ref} and {count - 1} descendant(s)?"):
            return None
        return session.delete(item_id).result

    _, result = _run_edit(ctx, path, action)
    if result is not None:
        click.echo(f"Deleted {len(result.removed_ids)} item(s)")


@main.command("shift")
@click.argument("ref")
@click.argument("days", type=int)
@click.option(
    "--mode",
    type=click.Choice(["move", "start", "end"]),
    default="move",
    show_default=True,
    help="Move the bar, or resize its start or end",
)
@_path_option
@click.pass_context
def shift_cmd(ctx, ref: str, days: int, mode: str, path: str) -> None:
    """Reschedule a work unit by DAYS, like dragging its Gantt bar."""
    from wbs_gantt.gantt import DragMode

    drag_mode = {"move": DragMode.MOVE, "start": DragMode.RESIZE_START, "end": DragMode.RESIZE_END}[mode]

    def action(session):
        item_id = _find(session, ref)
        width = session.drag.cell_width
        session.begin_drag(item_id, drag_mode, 0)
        session.drag_to(days * width)
        session.end_drag()
        return session.tree.get(item_id)

    _, item = _run_edit(ctx, path, action)
    click.echo(f"{item.code} {item.name}: {item.planned_start} .. {item.planned_end}")


@main.command("progress")
@click.argument("ref")
@click.argument("value", type=click.IntRange(0, 100))
@_path_option
@click.pass_context
def progress_cmd(ctx, ref: str, value: int, path: str) -> None:
    """Set the progress of a leaf item."""

    def action(session):
        item_id = _find(session, ref)
        session.set_progress(item_id, value)

    session, _ = _run_edit(ctx, path, action)
    click.echo(f"Project progress: {session.project_progress():.1f}%")


@main.command("status")
@click.argument("ref")
@click.argument("value", type=click.Choice(["PENDING", "IN_PROGRESS", "HOLDING", "COMPLETED", "CANCELLED"], case_sensitive=False))
@_path_option
@click.pass_context
def status_cmd(ctx, ref: str, value: str, path: str) -> None:
    """Set the status of an item."""
    _run_edit(ctx, path, lambda s: s.update_fields(_find(s, ref), status=value.upper()))
    click.echo(f"{ref}: {value.upper()}")


@main.command("assign")
@click.argument("refs", nargs=-1, required=True)
@click.option("--to", "people", multiple=True, required=True, help="Person id (repeatable)")
@_path_option
@click.pass_context
def assign_cmd(ctx, refs: tuple[str, ...], people: tuple[str, ...], path: str) -> None:
    """Assign every REF to the given people."""
    from wbs_gantt.bulk import bulk_assign

    _, result = _run_edit(ctx, path, lambda s: bulk_assign(s, [_find(s, r) for r in refs], people))
    click.echo(f"Assigned: {result.summary()}")


@main.command("register")
@click.argument("refs", nargs=-1, required=True)
@click.option("--fallback", default=None, help="Person id for items without assignees")
@_path_option
@click.pass_context
def register_cmd(ctx, refs: tuple[str, ...], fallback: str | None, path: str) -> None:
    """Register LEVEL4 work units as tasks."""
    from wbs_gantt.bulk import bulk_register_tasks

    _, result = _run_edit(ctx, path, lambda s: bulk_register_tasks(s, [_find(s, r) for r in refs], fallback))
    click.echo(f"Registered: {result.summary()}")


@main.command("person-add")
@click.argument("person_id")
@click.argument("name")
@click.option("--email", default="", help="E-mail address")
@_path_option
def person_add_cmd(person_id: str, name: str, email: str, path: str) -> None:
    """Add a person to the project directory."""
    from wbs_gantt.models import Person
    from wbs_gantt.repository import JsonFileRepository

    repo = JsonFileRepository(_project_dir(path))
    repo.read()
    if any(p.id == person_id for p in repo.people):
        raise click.ClickException(f"person '{person_id}' already exists")
    repo.people.append(Person(id=person_id, name=name, email=email))
    repo.write()
    click.echo(f"Added {name} ({person_id})")


@main.command("stats")
@_path_option
@click.pass_context
def stats_cmd(ctx, path: str) -> None:
    """Print schedule and progress statistics."""
    from rich.table import Table

    from wbs_gantt.config import get_holidays, load_settings
    from wbs_gantt.rollup import rollup_dates
    from wbs_gantt.stats import assignee_stats, schedule_stats, wbs_stats

    session, _ = _run_edit(ctx, path, lambda s: None)
    console = _console(ctx)
    today = session.today()
    roots = session.tree.roots

    start, end = rollup_dates(roots)
    schedule = schedule_stats(start, end, today, get_holidays(load_settings(_project_dir(path))))
    if schedule is not None:
        console.print(
            f"Schedule {start} .. {end}: {schedule.total_days} days, "
            f"{schedule.workable_days} workable ({schedule.weekend_days} weekend, "
            f"{schedule.holiday_days} holiday), {schedule.elapsed_days} elapsed, "
            f"{schedule.remaining_days} remaining"
        )
    else:
        console.print("Schedule: no planned dates")

    summary = wbs_stats(roots, today)
    console.print(
        f"Work units: {summary.total} total, {summary.completed} completed, "
        f"{summary.in_progress} in progress, {summary.pending} pending, "
        f"{summary.holding} holding, {summary.delayed} delayed"
    )
    console.print(
        f"Weighted progress: {summary.overall_progress:.1f}%  "
        f"Project progress: {session.project_progress():.1f}%"
    )

    per_person = assignee_stats(roots)
    if per_person:
        names = {p.id: p.name for p in session.people}
        table = Table(title="Assignees")
        table.add_column("Person")
        table.add_column("Items", justify="right")
        table.add_column("Completed", justify="right")
        table.add_column("Avg progress", justify="right")
        for person_id, entry in sorted(per_person.items()):
            table.add_row(
                names.get(person_id, person_id),
                str(entry.total),
                str(entry.completed),
                f"{entry.average_progress:.0f}%",
            )
        console.print(table)
