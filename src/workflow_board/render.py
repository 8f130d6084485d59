"""Terminal rendering of board projections with rich."""

from __future__ import annotations

import calendar
from typing import Iterable

from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from .task_engine.model import Priority, Stage, Task
from .task_engine.stages import StageRegistry
from .task_engine.stats import TaskStats
from .task_engine.views import BoardColumn, CalendarCell, ListRow

_PRIORITY_STYLE = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "yellow",
    Priority.LOW: "dim",
}


def _task_line(task: Task, show_project: bool = False) -> Text:
    text = Text()
    text.append("[x] " if task.completed else "[ ] ")
    text.append(task.title, style="strike dim" if task.completed else "")
    text.append(f"  {task.priority.value}", style=_PRIORITY_STYLE[task.priority])
    if task.due_date:
        text.append(f"  due {task.due_date.isoformat()}", style="cyan")
    done, total = task.subtask_progress
    if total:
        text.append(f"  {done}/{total}", style="dim")
    if show_project and task.project_name:
        text.append(f"  ({task.project_name})", style="magenta")
    text.append(f"  {task.id}", style="dim")
    return text


def _swatch(color: str, base: str = "") -> str:
    """Style with *color* as background; stage colours are free text."""
    style = f"{base} on {color}".strip()
    try:
        Style.parse(style)
    except StyleSyntaxError:
        return base
    return style


def _stage_title(stage: Stage, completed: int, total: int) -> Text:
    title = Text(stage.label, style=_swatch(stage.color, "bold"))
    if stage.is_placeholder:
        title.stylize("italic")
    title.append(f"  {completed}/{total}", style="dim")
    return title


def render_board(console: Console, columns: list[BoardColumn], show_project: bool = False) -> None:
    """One table column per stage, in stage order."""
    table = Table(show_lines=False, expand=True)
    for column in columns:
        table.add_column(_stage_title(column.stage, column.completed_count, column.total_count))
    depth = max((len(c.tasks) for c in columns), default=0)
    for i in range(depth):
        table.add_row(*[
            _task_line(c.tasks[i], show_project) if i < len(c.tasks) else Text("")
            for c in columns
        ])
    console.print(table)


def render_list(console: Console, rows: list[ListRow], show_project: bool = False) -> None:
    if not rows:
        console.print("[dim]No tasks[/dim]")
        return
    for row in rows:
        if row.kind == "header":
            console.print(_stage_title(row.stage, row.completed_count, row.total_count))
        elif row.task is not None:
            console.print(Text("  ").append_text(_task_line(row.task, show_project)))


def render_tasks(console: Console, tasks: Iterable[Task]) -> None:
    """Flat dashboard table."""
    table = Table()
    table.add_column("Done")
    table.add_column("Title")
    table.add_column("Project")
    table.add_column("Stage")
    table.add_column("Priority")
    table.add_column("Due")
    table.add_column("ID", style="dim")
    for task in tasks:
        table.add_row(
            "x" if task.completed else "",
            task.title,
            task.project_name or task.project_id,
            task.stage_id,
            Text(task.priority.value, style=_PRIORITY_STYLE[task.priority]),
            task.due_date.isoformat() if task.due_date else "",
            task.id,
        )
    console.print(table)


def render_calendar(console: Console, year: int, month: int, cells: list[CalendarCell]) -> None:
    """Six Monday-first weeks with the titles due each day."""
    table = Table(title=f"{calendar.month_name[month]} {year}", show_lines=True)
    for name in calendar.day_abbr:
        table.add_column(name, justify="left", min_width=10)
    for week in range(0, len(cells), 7):
        row = []
        for cell in cells[week:week + 7]:
            text = Text(str(cell.day.day), style="bold" if cell.in_month else "dim")
            for task in cell.tasks[:3]:
                text.append("\n" + task.title[:12], style="strike dim" if task.completed else "")
            if len(cell.tasks) > 3:
                text.append(f"\n+{len(cell.tasks) - 3} more", style="dim")
            row.append(text)
        table.add_row(*row)
    console.print(table)


def render_stats(console: Console, stats: TaskStats) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Overdue", Text(str(stats.overdue), style="red" if stats.overdue else ""))
    table.add_row("Due today", str(stats.due_today))
    table.add_row("Due this week", str(stats.due_this_week))
    table.add_row("High priority (open)", str(stats.high_priority_open))
    table.add_row("Completed today", str(stats.completed_today))
    table.add_row("Total", str(stats.total))
    console.print(Panel(table, title="Tasks"))


def render_stages(console: Console, registry: StageRegistry, orphaned: list[str]) -> None:
    table = Table()
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Label")
    table.add_column("Color")
    for stage in registry:
        table.add_row(
            str(stage.order),
            stage.id,
            Text(stage.label, style="italic" if stage.is_placeholder else ""),
            Text(stage.color, style=_swatch(stage.color)),
        )
    console.print(table)
    if orphaned:
        console.print(f"[yellow]Tasks reference unknown stages: {', '.join(orphaned)}[/yellow]")
