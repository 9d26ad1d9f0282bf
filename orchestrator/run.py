# -*- coding: utf-8 -*-
import datetime as dt
import json
import typing as t

import click
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from timetable_server import patterns as pattern_ops
from timetable_server.config import DB_PATH, WRITE_RETRIES, open_store
from timetable_server.dates import parse_date, parse_time, week_bounds
from timetable_server.display import load_occurrences
from timetable_server.errors import ScheduleError
from timetable_server.logger import setup_logging
from timetable_server.models import ClassInfo, Holiday, Occurrence, Pattern
from timetable_server.reconciler import Reconciler, RetryConfig
from timetable_server.store import ScheduleStore


console = Console()


def _fail(message: str) -> t.NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(1)


def _date_arg(value: t.Optional[str], name: str) -> t.Optional[dt.date]:
    try:
        return parse_date(value)
    except ValueError:
        _fail(f"{name} must be a date like 2025-01-14, got {value!r}")


def _time_arg(value: t.Optional[str], name: str) -> t.Optional[dt.time]:
    try:
        return parse_time(value)
    except ValueError:
        _fail(f"{name} must be a time like 10:00, got {value!r}")


def _hhmm(value: t.Optional[dt.time]) -> str:
    return value.strftime("%H:%M") if value else "—"


def create_week_table(occurrences: list[Occurrence], title: str) -> Table:
    """Create a table of materialized occurrences."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Day", style="cyan", no_wrap=True)
    table.add_column("Time", style="yellow", no_wrap=True)
    table.add_column("Class", style="white")
    table.add_column("Tutor", style="white")
    table.add_column("Notes", style="dim")

    for occ in occurrences:
        notes = []
        if occ.relocated:
            notes.append("moved")
        elif occ.override_id:
            notes.append("edited")
        if occ.is_inactive:
            notes.append(f"inactive ({occ.holiday_name})" if occ.holiday_name else "inactive")
        elif occ.active_during_holiday:
            notes.append("held on holiday")
        table.add_row(
            occ.start.strftime("%a %d/%m"),
            f"{occ.start.strftime('%H:%M')} → {occ.end.strftime('%H:%M')}",
            occ.title or occ.class_id,
            occ.tutor_name or "",
            ", ".join(notes),
        )
    return table


def create_pattern_table(patterns: list[Pattern], program_id: str) -> Table:
    """Create a table of a program's weekly slots."""
    table = Table(title=f"🗓  Weekly slots of {program_id}", show_header=True, header_style="bold magenta")
    table.add_column("Pattern", style="dim", no_wrap=True)
    table.add_column("Day", style="cyan")
    table.add_column("Time", style="yellow")
    table.add_column("Class", style="white")
    table.add_column("Valid", style="white")

    for pattern in patterns:
        valid_from = pattern.start_date.isoformat() if pattern.start_date else "…"
        valid_until = pattern.end_date.isoformat() if pattern.end_date else "…"
        table.add_row(
            pattern.id,
            (pattern.day_of_week or "—").capitalize(),
            f"{_hhmm(pattern.start_time)} → {_hhmm(pattern.end_time)}",
            pattern.class_id,
            f"{valid_from} – {valid_until}",
        )
    return table


def _occurrence_json(occ: Occurrence) -> dict:
    return {
        "id": occ.display_id,
        "pattern_id": occ.pattern_id,
        "class_id": occ.class_id,
        "start": occ.start.isoformat(),
        "end": occ.end.isoformat(),
        "relocated": occ.relocated,
        "is_inactive": occ.is_inactive,
    }


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--db",
    "db_path",
    default=DB_PATH or "timetable.db",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="SQLite file holding the timetable.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, db_path: str, verbose: bool) -> None:
    """Manage weekly class slots and one-off changes to single classes."""
    if verbose:
        setup_logging(level="DEBUG")
    ctx.ensure_object(dict)
    try:
        ctx.obj["store"] = open_store(db_path)
    except ScheduleError as e:
        _fail(str(e))
    ctx.obj["verbose"] = verbose


def _store(ctx: click.Context) -> ScheduleStore:
    return ctx.obj["store"]


def _reconciler(ctx: click.Context) -> Reconciler:
    return Reconciler(_store(ctx), retry=RetryConfig(max_retries=WRITE_RETRIES))


@main.command()
@click.argument("program_id")
@click.option("--date", "on_date", default=None, help="Any day of the week to show (default: today).")
@click.option("--until", "until", default=None, help="Show up to this date instead of one week.")
@click.pass_context
def week(ctx: click.Context, program_id: str, on_date: t.Optional[str], until: t.Optional[str]) -> None:
    """Show the classes of PROGRAM_ID for one week."""
    day = _date_arg(on_date, "--date") or dt.date.today()
    if until:
        window_start, window_end = day, _date_arg(until, "--until")
    else:
        window_start, window_end = week_bounds(day)

    try:
        occurrences = load_occurrences(_store(ctx), program_id, window_start, window_end)
    except ScheduleError as e:
        _fail(str(e))

    if ctx.obj["verbose"]:
        data = [_occurrence_json(o) for o in occurrences]
        console.print(Panel(JSON(json.dumps(data, indent=2)), title="📄 Occurrences", border_style="blue"))

    if not occurrences:
        console.print(f"📅 No classes scheduled between {window_start.isoformat()} and {window_end.isoformat()}.")
        return

    title = f"📅 {program_id}: {window_start.isoformat()} → {window_end.isoformat()}"
    console.print(create_week_table(occurrences, title))

    stats_text = Text()
    stats_text.append("Classes: ", style="white")
    stats_text.append(f"{len(occurrences)}", style="bold green")
    inactive = sum(1 for o in occurrences if o.is_inactive)
    if inactive:
        stats_text.append("  Inactive: ", style="white")
        stats_text.append(f"{inactive}", style="bold red")
    console.print(stats_text)


@main.command()
@click.argument("program_id")
@click.pass_context
def patterns(ctx: click.Context, program_id: str) -> None:
    """List the weekly slots of PROGRAM_ID."""
    try:
        items = _store(ctx).list_patterns(program_id)
    except ScheduleError as e:
        _fail(str(e))
    if not items:
        console.print(f"No weekly slots in {program_id}.")
        return
    console.print(create_pattern_table(items, program_id))


@main.command("add-pattern")
@click.argument("program_id")
@click.argument("class_id")
@click.argument("day")
@click.argument("start")
@click.argument("end")
@click.option("--from", "valid_from", default=None, help="First date the slot applies.")
@click.option("--until", "valid_until", default=None, help="Last date the slot applies.")
@click.pass_context
def add_pattern(
    ctx: click.Context,
    program_id: str,
    class_id: str,
    day: str,
    start: str,
    end: str,
    valid_from: t.Optional[str],
    valid_until: t.Optional[str],
) -> None:
    """Schedule CLASS_ID every DAY from START to END in PROGRAM_ID."""
    try:
        pattern = pattern_ops.create_pattern(
            _store(ctx),
            program_id,
            class_id,
            day,
            _time_arg(start, "START"),
            _time_arg(end, "END"),
            _date_arg(valid_from, "--from"),
            _date_arg(valid_until, "--until"),
        )
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Created pattern {pattern.id}")


@main.command("remove-pattern")
@click.argument("pattern_id")
@click.pass_context
def remove_pattern(ctx: click.Context, pattern_id: str) -> None:
    """Remove a weekly slot and all of its one-off changes."""
    try:
        pattern_ops.delete_pattern(_store(ctx), pattern_id)
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Removed pattern {pattern_id}")


@main.command()
@click.argument("pattern_id")
@click.argument("date")
@click.argument("start")
@click.argument("end")
@click.option(
    "--holiday-active/--holiday-inactive",
    default=None,
    help="Whether the class is held if DATE is a holiday (default: held).",
)
@click.pass_context
def retime(
    ctx: click.Context,
    pattern_id: str,
    date: str,
    start: str,
    end: str,
    holiday_active: t.Optional[bool],
) -> None:
    """Move the class of PATTERN_ID on DATE to START-END."""
    on_date = _date_arg(date, "DATE")
    try:
        override = _reconciler(ctx).retime_occurrence(
            pattern_id,
            on_date,
            _time_arg(start, "START"),
            _time_arg(end, "END"),
            active_during_holiday=holiday_active,
        )
    except ScheduleError as e:
        _fail(str(e))
    console.print(
        f"[green]✓[/green] {on_date.isoformat()} now runs "
        f"{_hhmm(override.start_time)} → {_hhmm(override.end_time)}"
    )


@main.command()
@click.argument("pattern_id")
@click.argument("from_date")
@click.argument("to_date")
@click.option("--start", default=None, help="New start time (default: the slot's).")
@click.option("--end", default=None, help="New end time (default: the slot's).")
@click.option("--holiday-active/--holiday-inactive", default=None)
@click.pass_context
def relocate(
    ctx: click.Context,
    pattern_id: str,
    from_date: str,
    to_date: str,
    start: t.Optional[str],
    end: t.Optional[str],
    holiday_active: t.Optional[bool],
) -> None:
    """Move the class of PATTERN_ID from FROM_DATE to TO_DATE."""
    source = _date_arg(from_date, "FROM_DATE")
    target = _date_arg(to_date, "TO_DATE")
    try:
        _reconciler(ctx).relocate_occurrence(
            pattern_id,
            source,
            target,
            _time_arg(start, "--start"),
            _time_arg(end, "--end"),
            active_during_holiday=holiday_active,
        )
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Moved {source.isoformat()} → {target.isoformat()}")


@main.command()
@click.argument("pattern_id")
@click.argument("date")
@click.pass_context
def delete(ctx: click.Context, pattern_id: str, date: str) -> None:
    """Cancel the class of PATTERN_ID on DATE only."""
    on_date = _date_arg(date, "DATE")
    try:
        _reconciler(ctx).delete_occurrence(pattern_id, on_date)
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Cancelled {on_date.isoformat()}")


@main.command("add-holiday")
@click.argument("date")
@click.option("--name", default=None, help="Name shown next to inactive classes.")
@click.pass_context
def add_holiday(ctx: click.Context, date: str, name: t.Optional[str]) -> None:
    """Mark DATE as a holiday."""
    holiday = Holiday(date=_date_arg(date, "DATE"), name=name)
    try:
        _store(ctx).add_holiday(holiday)
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Holiday on {holiday.date.isoformat()}")


@main.command("set-class")
@click.argument("class_id")
@click.argument("title")
@click.option("--subject", default=None)
@click.option("--tutor", "tutor_name", default=None)
@click.pass_context
def set_class(
    ctx: click.Context,
    class_id: str,
    title: str,
    subject: t.Optional[str],
    tutor_name: t.Optional[str],
) -> None:
    """Set the TITLE (and subject, tutor) shown for CLASS_ID."""
    try:
        _store(ctx).put_class(ClassInfo(id=class_id, title=title, subject=subject, tutor_name=tutor_name))
    except ScheduleError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Saved class {class_id}")


if __name__ == "__main__":
    main()
