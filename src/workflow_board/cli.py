from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from rich.console import Console

from .config import build_service, get_dashboard_config, get_log_level, load_board_config
from .errors import WorkflowError
from .logging_utils import configure_logging
from .render import render_board, render_calendar, render_list, render_stages, render_stats, render_tasks
from .task_engine.engine import WorkflowEngine
from .task_engine.query import SortKey, TaskFilter

Command = Callable[[argparse.Namespace, WorkflowEngine, Console, dict[str, Any]], Awaitable[int]]


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _run(args: argparse.Namespace, command: Command) -> int:
    """Build the engine for *args* and drive one async command to completion."""
    project_dir = _resolve_project_dir(args.project_dir)
    config, err = load_board_config(project_dir)
    if err:
        sys.stderr.write(f"Invalid config: {err}\n")
        return 1
    configure_logging(args.log_level or get_log_level(config, default="WARNING"))
    console = Console()

    async def _main() -> int:
        service = build_service(project_dir, config)
        engine = WorkflowEngine(service, user=args.user)
        try:
            return await command(args, engine, console, config)
        finally:
            await service.aclose()

    try:
        return asyncio.run(_main())
    except (WorkflowError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1


def _filter_from(args: argparse.Namespace, project_id: Optional[str] = None) -> TaskFilter:
    return TaskFilter(
        project_id=project_id,
        assignee=getattr(args, "assignee", None),
        priority=getattr(args, "priority", None),
        query=getattr(args, "query", None),
        completed=getattr(args, "completed", None),
    )


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

async def _board(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    render_board(console, engine.board(_filter_from(args), args.sort))
    return 0


async def _list(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    render_list(console, engine.list_rows(_filter_from(args), args.sort))
    return 0


async def _calendar(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    today = date.today()
    year = args.year or today.year
    month = args.month or today.month
    await engine.load_project(args.project)
    render_calendar(console, year, month, engine.calendar(year, month, _filter_from(args)))
    return 0


async def _stats(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    if args.project:
        await engine.load_project(args.project)
    else:
        await engine.load_dashboard()
    render_stats(console, engine.stats(args.today or date.today(), _filter_from(args)))
    return 0


async def _dashboard(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    defaults = get_dashboard_config(config)
    show_completed = args.show_completed or defaults["show_completed"]
    snapshot = await engine.load_dashboard(completed=None if show_completed else False)
    task_filter = _filter_from(args, project_id=args.project_id)
    sort_key = SortKey.coerce(args.sort or defaults["sort"])
    if args.view == "board":
        render_board(console, engine.board(task_filter, sort_key), show_project=True)
    elif args.view == "calendar":
        today = date.today()
        year = args.year or today.year
        month = args.month or today.month
        render_calendar(console, year, month, engine.calendar(year, month, task_filter))
    else:
        render_tasks(console, snapshot.select(task_filter, sort_key))
    return 0


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

async def _stage_list(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    snapshot = await engine.load_project(args.project)
    render_stages(console, snapshot.registry, snapshot.orphaned_stage_ids)
    return 0


async def _stage_add(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    stage = await engine.add_stage(args.label)
    console.print(f"Added stage [bold]{stage.label}[/bold] ({stage.id})")
    return 0


async def _stage_rename(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    stage = await engine.rename_stage(args.stage_id, args.label)
    console.print(f"Renamed {stage.id} to [bold]{stage.label}[/bold]")
    return 0


async def _stage_recolor(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    stage = await engine.recolor_stage(args.stage_id, args.color)
    console.print(f"Recolored {stage.id} to {stage.color}")
    return 0


async def _stage_move(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    if await engine.move_stage(args.stage_id, args.direction):
        console.print(f"Moved {args.stage_id} {args.direction}")
    else:
        console.print(f"[dim]{args.stage_id} is already at the {'top' if args.direction == 'up' else 'bottom'}[/dim]")
    return 0


async def _stage_delete(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    stage = await engine.delete_stage(args.stage_id)
    console.print(f"Deleted stage {stage.id}")
    return 0


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

async def _task_add(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    task = await engine.create_task(
        args.title,
        description=args.description or "",
        stage_id=args.stage,
        priority=args.priority,
        due_date=args.due,
        assignees=args.assignee,
        subtasks=args.subtask,
    )
    console.print(f"Created task {task.id} in {task.stage_id}")
    return 0


async def _task_toggle(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    task = await engine.toggle_task(args.task_id)
    console.print(f"{task.id} {'completed' if task.completed else 'reopened'}")
    return 0


async def _task_move(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    task = await engine.move_task(args.task_id, args.stage_id)
    console.print(f"Moved {task.id} to {task.stage_id}")
    return 0


async def _task_delete(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    await engine.delete_task(args.task_id)
    console.print(f"Deleted {args.task_id}")
    return 0


async def _task_comment(args: argparse.Namespace, engine: WorkflowEngine, console: Console, config: dict[str, Any]) -> int:
    await engine.load_project(args.project)
    task = await engine.add_comment(args.task_id, args.text)
    console.print(f"{task.id} now has {len(task.comments)} comment(s)")
    return 0


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'workflow-board[server]'\n")
        return 1

    from .server import create_app

    project_dir = _resolve_project_dir(args.project_dir)
    config, err = load_board_config(project_dir)
    if err:
        sys.stderr.write(f"Invalid config: {err}\n")
        return 1
    configure_logging(args.log_level or get_log_level(config))
    try:
        app = create_app(project_dir=project_dir)
    except ValueError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _add_filters(parser: argparse.ArgumentParser, sort: bool = True) -> None:
    parser.add_argument('--assignee', default=None)
    parser.add_argument('--priority', choices=['low', 'medium', 'high'], default=None)
    parser.add_argument('--query', '-q', default=None, help='Case-insensitive text search')
    state = parser.add_mutually_exclusive_group()
    state.add_argument('--completed', dest='completed', action='store_const', const=True, default=None)
    state.add_argument('--open', dest='completed', action='store_const', const=False)
    if sort:
        parser.add_argument('--sort', choices=[k.value for k in SortKey], default=None)


def _cmd(command: Command) -> Callable[[argparse.Namespace], int]:
    return lambda args: _run(args, command)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Workflow board: stage pipelines, boards and dashboards')
    parser.add_argument('--project-dir', default=None, help='Directory holding .workflow_board/ (default: current working directory)')
    parser.add_argument('--log-level', default=None, help='Override logging.level from the config')
    parser.add_argument('--user', default=None, help='Acting user recorded on completions and comments')
    subparsers = parser.add_subparsers(dest='command', required=True)

    board = subparsers.add_parser('board', help='Show a project board')
    board.add_argument('project')
    _add_filters(board)
    board.set_defaults(func=_cmd(_board))

    listing = subparsers.add_parser('list', help='Show a project grouped by stage')
    listing.add_argument('project')
    _add_filters(listing)
    listing.set_defaults(func=_cmd(_list))

    cal = subparsers.add_parser('calendar', help='Show a project month calendar')
    cal.add_argument('project')
    cal.add_argument('--year', type=int, default=None)
    cal.add_argument('--month', type=int, default=None)
    _add_filters(cal, sort=False)
    cal.set_defaults(func=_cmd(_calendar))

    stats = subparsers.add_parser('stats', help='Show task counters')
    stats.add_argument('project', nargs='?', default=None)
    stats.add_argument('--today', type=date.fromisoformat, default=None)
    stats.add_argument('--assignee', default=None)
    stats.set_defaults(func=_cmd(_stats))

    dash = subparsers.add_parser('dashboard', help='Tasks across all projects')
    dash.add_argument('--view', choices=['list', 'board', 'calendar'], default='list')
    dash.add_argument('--project-id', default=None)
    dash.add_argument('--show-completed', action='store_true')
    dash.add_argument('--year', type=int, default=None)
    dash.add_argument('--month', type=int, default=None)
    _add_filters(dash)
    dash.set_defaults(func=_cmd(_dashboard))

    stage = subparsers.add_parser('stage', help='Manage a project stage registry')
    stage_sub = stage.add_subparsers(dest='stage_cmd', required=True)
    slist = stage_sub.add_parser('list', help='List stages')
    slist.add_argument('project')
    slist.set_defaults(func=_cmd(_stage_list))
    sadd = stage_sub.add_parser('add', help='Append a stage')
    sadd.add_argument('project')
    sadd.add_argument('label')
    sadd.set_defaults(func=_cmd(_stage_add))
    srename = stage_sub.add_parser('rename', help='Rename a stage')
    srename.add_argument('project')
    srename.add_argument('stage_id')
    srename.add_argument('label')
    srename.set_defaults(func=_cmd(_stage_rename))
    srecolor = stage_sub.add_parser('recolor', help='Change a stage colour')
    srecolor.add_argument('project')
    srecolor.add_argument('stage_id')
    srecolor.add_argument('color')
    srecolor.set_defaults(func=_cmd(_stage_recolor))
    smove = stage_sub.add_parser('move', help='Move a stage one step')
    smove.add_argument('project')
    smove.add_argument('stage_id')
    smove.add_argument('direction', choices=['up', 'down'])
    smove.set_defaults(func=_cmd(_stage_move))
    sdelete = stage_sub.add_parser('delete', help='Delete an unused stage')
    sdelete.add_argument('project')
    sdelete.add_argument('stage_id')
    sdelete.set_defaults(func=_cmd(_stage_delete))

    task = subparsers.add_parser('task', help='Manage tasks')
    task_sub = task.add_subparsers(dest='task_cmd', required=True)
    tadd = task_sub.add_parser('add', help='Create a task')
    tadd.add_argument('project')
    tadd.add_argument('title')
    tadd.add_argument('--description', default=None)
    tadd.add_argument('--stage', default=None)
    tadd.add_argument('--priority', choices=['low', 'medium', 'high'], default='medium')
    tadd.add_argument('--due', default=None, help='Due date (YYYY-MM-DD)')
    tadd.add_argument('--assignee', action='append', default=[])
    tadd.add_argument('--subtask', action='append', default=[])
    tadd.set_defaults(func=_cmd(_task_add))
    ttoggle = task_sub.add_parser('toggle', help='Flip completion')
    ttoggle.add_argument('project')
    ttoggle.add_argument('task_id')
    ttoggle.set_defaults(func=_cmd(_task_toggle))
    tmove = task_sub.add_parser('move', help='Move a task to another stage')
    tmove.add_argument('project')
    tmove.add_argument('task_id')
    tmove.add_argument('stage_id')
    tmove.set_defaults(func=_cmd(_task_move))
    tdelete = task_sub.add_parser('delete', help='Delete a task')
    tdelete.add_argument('project')
    tdelete.add_argument('task_id')
    tdelete.set_defaults(func=_cmd(_task_delete))
    tcomment = task_sub.add_parser('comment', help='Comment on a task')
    tcomment.add_argument('project')
    tcomment.add_argument('task_id')
    tcomment.add_argument('text')
    tcomment.set_defaults(func=_cmd(_task_comment))

    server = subparsers.add_parser('server', help='Start the web API server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8000, type=int)
    server.set_defaults(func=_server)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
