"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.booking_repository import InMemoryBookingRepository, JsonBookingRepository
from ..adapters.config_rules import ConfigRulesProvider, ConfigServiceCatalog
from ..adapters.identity import StaticIdentityProvider
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import SlotEngineError
from ..domain.models import DayAvailability, as_date
from ..services.availability import AvailabilityService

app = typer.Typer(
    name="slotengine",
    help="Inspect bookable appointment slots",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
BookingsOption = Annotated[
    Optional[Path],
    typer.Option("--bookings", "-b", help="JSON bookings file. Overrides bookings_file from the config."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")]


def _setup_logging(config: AppConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_service(
    *,
    config_file: Optional[Path],
    bookings_file: Optional[Path],
    verbose: bool,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Tuple[AppConfig, AvailabilityService]:
    """
    Load configuration and wire the reference adapters into the service.
    """
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _setup_logging(config, verbose)

    bookings_path = bookings_file or config.bookings_file
    if bookings_path is not None:
        repository = JsonBookingRepository(bookings_path)
    else:
        repository = InMemoryBookingRepository()

    identity = StaticIdentityProvider(user_id=user_id, email=email) if (user_id or email) else None

    service = AvailabilityService(
        rules=ConfigRulesProvider(config),
        bookings=repository,
        catalog=ConfigServiceCatalog(config),
        identity=identity,
        timezone=config.timezone,
    )
    return config, service


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _slot_table(availability: DayAvailability, show_all: bool) -> Table:
    table = Table(
        title=f"Slots on {availability.date.format('dddd, DD.MM.YYYY')}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Time", style="bold yellow")
    table.add_column("Status")
    table.add_column("Booking", style="dim")
    table.add_column("Notes", style="dim")

    slots = availability.slots if show_all else availability.available_only()
    for slot in slots:
        status = "[green]free[/green]" if slot.available else "[red]taken[/red]"
        booking = ""
        if slot.conflicting_booking_id:
            booking = slot.conflicting_booking_id
            if slot.occupant_name:
                booking = f"{booking} ({slot.occupant_name})"
        table.add_row(slot.time, status, booking, slot.notes or "")

    return table


@app.command()
def day(
    date: Annotated[str, typer.Argument(help="Day to inspect (YYYY-MM-DD)")],
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Service id. All active services when omitted.")] = None,
    show_all: Annotated[bool, typer.Option("--all", help="Also list slots taken by existing bookings.")] = False,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
    verbose: VerboseOption = False,
):
    """
    Show the slot grid of one day.

    Examples:

        slotengine day 2024-11-26 --service haircut

        slotengine day 2024-11-26 --all
    """
    try:
        _, availability_service = _build_service(
            config_file=config_file, bookings_file=bookings_file, verbose=verbose
        )
        availability = availability_service.get_day_availability(date, service)
    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)

    console.print()
    if not availability.is_working_day:
        console.print("[yellow]⚠ Not a working day.[/yellow]\n")
        return

    if not availability.slots:
        console.print("[yellow]⚠ No slots offered on this day.[/yellow]\n")
        return

    console.print(_slot_table(availability, show_all))
    console.print(
        f"\n[bold green]{availability.available_slots}[/bold green] of "
        f"{availability.total_slots} slot(s) available\n"
    )


@app.command()
def week(
    start: Annotated[Optional[str], typer.Option("--start", help="First day of the week (YYYY-MM-DD). Defaults to this Monday.")] = None,
    service: Annotated[Optional[str], typer.Option("--service", "-s", help="Service id. All active services when omitted.")] = None,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
    verbose: VerboseOption = False,
):
    """
    Summarize availability for seven days.
    """
    try:
        config, availability_service = _build_service(
            config_file=config_file, bookings_file=bookings_file, verbose=verbose
        )
        week_start = as_date(start) if start else pendulum.now(config.timezone).start_of("week").date()
        availability = availability_service.get_week(week_start, service)
    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)

    table = Table(
        title=(
            f"Week {availability.week_start.format('DD.MM.YYYY')} - "
            f"{availability.week_end.format('DD.MM.YYYY')}"
        ),
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Day", style="bold yellow")
    table.add_column("Available")
    table.add_column("First free slot", style="dim")

    for day_availability in availability.days:
        label = day_availability.date.format("ddd DD.MM.")
        if not day_availability.is_working_day:
            table.add_row(label, "[dim]closed[/dim]", "")
            continue

        free = day_availability.available_only()
        table.add_row(
            label,
            f"{day_availability.available_slots} / {day_availability.total_slots}",
            free[0].time if free else "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command("next")
def next_slot(
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    from_date: Annotated[Optional[str], typer.Option("--from", help="First day to search (YYYY-MM-DD). Defaults to today.")] = None,
    horizon: Annotated[int, typer.Option("--horizon", help="Number of days to search ahead.")] = 30,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
    verbose: VerboseOption = False,
):
    """
    Find the next bookable slot for a service.
    """
    try:
        _, availability_service = _build_service(
            config_file=config_file, bookings_file=bookings_file, verbose=verbose
        )
        found = availability_service.get_next_available_slot(service, from_date, horizon)
    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)

    console.print()
    if found is None:
        console.print(
            f"[yellow]⚠ No free slot within {horizon} day(s).[/yellow]\n"
            "Try a longer horizon or a different service."
        )
    else:
        console.print(f"[bold green]✓ Next free slot:[/bold green] {found.format_display()}")
    console.print()


@app.command()
def check(
    date: Annotated[str, typer.Argument(help="Day (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    service: Annotated[str, typer.Option("--service", "-s", help="Service id")],
    user: Annotated[Optional[str], typer.Option("--user", help="Current user id for the booking cap.")] = None,
    email: Annotated[Optional[str], typer.Option("--email", help="Current user email for the booking cap.")] = None,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
    verbose: VerboseOption = False,
):
    """
    Check whether a booking request would be accepted.
    """
    try:
        _, availability_service = _build_service(
            config_file=config_file,
            bookings_file=bookings_file,
            verbose=verbose,
            user_id=user,
            email=email,
        )
        decision = availability_service.check_booking(date, time, service)
        deadline = availability_service.validator().cancellation_deadline(as_date(date), time)
    except (FileNotFoundError, SlotEngineError, ValueError) as e:
        _fail(e)

    if decision.allowed:
        body = f"[bold green]✓ {date} {time} can be booked.[/bold green]"
        if deadline is not None:
            body += f"\n\n[bold]Cancellable until:[/bold] {deadline.format('DD.MM.YYYY HH:mm')}"
        console.print(Panel.fit(body, title="Booking check"))
        return

    reasons = "\n".join(f"  • {reason.value.replace('_', ' ')}" for reason in decision.reasons)
    if decision.conflicting_booking_id:
        reasons += f"\n\n[bold]Conflicting booking:[/bold] {decision.conflicting_booking_id}"
    console.print(Panel.fit(
        f"[bold red]✗ {date} {time} cannot be booked:[/bold red]\n{reasons}",
        title="Booking check"
    ))
    raise typer.Exit(2)


@app.command()
def services(
    config_file: ConfigOption = None,
):
    """
    List all configured services.
    """
    try:
        config = AppConfig.load_from_yaml(config_file or get_default_config_path())
    except (FileNotFoundError, SlotEngineError) as e:
        _fail(e)

    if not config.services:
        console.print("[yellow]No services defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured services",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Id", style="bold yellow")
    table.add_column("Name")
    table.add_column("Duration", justify="right")
    table.add_column("Active", style="dim")

    for service in config.services:
        table.add_row(
            service.id,
            service.display_name(),
            f"{service.duration_minutes} min",
            "yes" if service.active else "no",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
