"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.credentials import (
    clear_service_role_key,
    resolve_service_role_key,
    store_service_role_key,
)
from ..adapters.mock_store import InMemoryStore
from ..adapters.supabase_client import SupabaseClient
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingError
from ..domain.models import Appointment, AvailabilityStatus, ClientInfo, Slot
from ..domain.slot_calculator import SlotCalculator
from ..services.booking import DEFAULT_CANCEL_REASON, BookingService, CartItem
from ..services.provisioning import ROLES, ProfessionalProvisioner

app = typer.Typer(
    name="salonbooking",
    help="Agendamento de horários do salão: serviços, disponibilidade e reservas",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
MockOption = Annotated[bool, typer.Option("--mock", help="Usar dados de exemplo em memória em vez do Supabase.")]

UNAVAILABLE_MESSAGES = {
    AvailabilityStatus.SERVICE_NOT_OFFERED: "O serviço não é oferecido nesta data.",
    AvailabilityStatus.PROFESSIONAL_OFF: "O profissional não atende neste dia da semana.",
    AvailabilityStatus.FULLY_BOOKED: "Todos os horários deste dia já estão ocupados ou passaram.",
}


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Mostrar logs detalhados.")] = False,
):
    """
    Salon booking command line.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    """Load the YAML config; mock mode works without one."""
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        return AppConfig(supabase_url="http://localhost")
    return AppConfig.load_from_yaml(config_path)


def _build_store(config: AppConfig, mock: bool, admin: bool = False):
    if mock:
        return InMemoryStore.from_json(config.mock_data_file, timezone=config.timezone)

    service_role_key = resolve_service_role_key(config) if admin else None
    return SupabaseClient(
        url=config.supabase_url,
        api_key=config.supabase_key,
        timezone=config.timezone,
        service_role_key=service_role_key,
        timeout=config.booking.request_timeout_seconds,
    )


def _build_booking_service(config: AppConfig, mock: bool) -> BookingService:
    return BookingService(
        store=_build_store(config, mock),
        slot_calculator=SlotCalculator(timezone=config.timezone),
        booking_horizon_months=config.booking.booking_horizon_months,
        max_cart_items=config.booking.max_cart_items,
    )


def _parse_day(value: Optional[str], tz: str):
    if not value:
        return pendulum.now(tz).date()
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz).date()
    except ValueError as e:
        console.print(f"[red]Erro ao interpretar a data '{value}': {e}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Erro:[/bold red] {error}")
    raise typer.Exit(1)


def _print_slots(slots: List[Slot], status: AvailabilityStatus) -> None:
    if not slots:
        console.print(f"[yellow]⚠ Nenhum horário disponível.[/yellow] {UNAVAILABLE_MESSAGES[status]}")
        return

    console.print(f"[bold green]✓ {len(slots)} horário(s) disponível(is):[/bold green]\n")
    for idx, slot in enumerate(slots, 1):
        console.print(f"  {idx}. {slot.format_display()}")


@app.command()
def services(
    category: Annotated[Optional[str], typer.Option("--category", help="Filtrar por categoria (id).")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List the services offered by the salon.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        service_list = booking.list_services(category)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not service_list:
        console.print("[yellow]Nenhum serviço cadastrado.[/yellow]")
        return

    table = Table(title="Serviços", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Serviço", style="bold yellow")
    table.add_column("Duração")
    table.add_column("Preço", justify="right")

    for service in service_list:
        table.add_row(service.id, service.name, f"{service.duration_minutes} min", f"R$ {service.price:.2f}")

    console.print()
    console.print(table)
    console.print()


@app.command()
def professionals(
    service_id: Annotated[str, typer.Argument(help="ID do serviço")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    List the professionals who perform a service.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        professional_list = booking.list_professionals(service_id)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not professional_list:
        console.print("[yellow]Nenhum profissional atende este serviço.[/yellow]")
        return

    for professional in professional_list:
        console.print(f"  {professional.id}  [bold]{professional.name}[/bold]")


@app.command()
def slots(
    service_id: Annotated[str, typer.Argument(help="ID do serviço")],
    professional_id: Annotated[str, typer.Argument(help="ID do profissional")],
    day: Annotated[Optional[str], typer.Option("--date", help="Data (YYYY-MM-DD). Padrão: hoje")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the available start times for a service with a professional on one day.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        target = _parse_day(day, config.timezone)

        result = booking.find_slots(
            professional_id=professional_id,
            service_id=service_id,
            day=target,
            now=pendulum.now(config.timezone),
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print()
    _print_slots(result.slots, result.status)
    console.print()


@app.command()
def book(
    service_id: Annotated[str, typer.Argument(help="ID do serviço")],
    professional_id: Annotated[str, typer.Argument(help="ID do profissional")],
    at: Annotated[str, typer.Option("--at", help="Início (YYYY-MM-DD HH:mm)")],
    name: Annotated[str, typer.Option("--name", help="Nome do cliente")],
    phone: Annotated[str, typer.Option("--phone", help="Telefone com DDD")],
    birth_date: Annotated[Optional[str], typer.Option("--birth-date", help="Data de nascimento (YYYY-MM-DD)")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Book one appointment after re-checking that the time is still free.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        tz = config.timezone

        try:
            start = pendulum.from_format(at, "YYYY-MM-DD HH:mm", tz=tz)
        except ValueError as e:
            console.print(f"[red]Erro ao interpretar o horário '{at}': {e}[/red]")
            raise typer.Exit(1)

        client = ClientInfo(
            name=name,
            phone=phone,
            birth_date=_parse_day(birth_date, tz) if birth_date else None,
        )
        appointments = booking.book_cart(
            [CartItem(professional_id=professional_id, service_id=service_id, start=start)],
            client=client,
            now=pendulum.now(tz),
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    appointment = appointments[0]
    console.print(Panel.fit(
        f"[bold green]✓ Agendamento confirmado![/bold green]\n\n"
        f"[bold]Cliente:[/bold] {appointment.client_name}\n"
        f"[bold]Horário:[/bold] {appointment.start.format('DD/MM/YYYY HH:mm')} - {appointment.end.format('HH:mm')}",
        title="Agendamento"
    ))


def _choose(items: list, label: str, render) -> object:
    """Print a numbered list and return the chosen item."""
    for idx, item in enumerate(items, 1):
        console.print(f"  {idx}. {render(item)}")

    while True:
        choice = typer.prompt(f"\n→ {label} (número)", default="1")
        if choice.isdigit() and 1 <= int(choice) <= len(items):
            return items[int(choice) - 1]
        console.print(f"[yellow]Aviso: opção {choice} inválida[/yellow]")


def _run_selection(booking: BookingService, tz: str, chosen: List[Slot]) -> Optional[Slot]:
    """
    Walk category, service, professional, date and time for one cart item.

    Slots overlapping ones already in the cart with the same professional are
    not offered. Returns None when the chosen combination has nothing to offer.
    """
    console.print("[bold]1️⃣  Categoria[/bold]")
    categories = booking.list_categories()
    if not categories:
        console.print("[yellow]Nenhuma categoria cadastrada.[/yellow]")
        return None
    category = _choose(categories, "Categoria", lambda c: c.name)

    console.print("\n[bold]2️⃣  Serviço[/bold]")
    service_list = booking.list_services(category.id)
    if not service_list:
        console.print("[yellow]Nenhum serviço nesta categoria.[/yellow]")
        return None
    service = _choose(
        service_list, "Serviço",
        lambda s: f"{s.name} ({s.duration_minutes} min, R$ {s.price:.2f})",
    )

    console.print("\n[bold]3️⃣  Profissional[/bold]")
    professional_list = booking.list_professionals(service.id)
    if not professional_list:
        console.print("[yellow]Nenhum profissional atende este serviço.[/yellow]")
        return None
    professional = _choose(professional_list, "Profissional", lambda p: p.name)

    console.print("\n[bold]4️⃣  Data[/bold]")
    day_str = typer.prompt("→ Data (YYYY-MM-DD)", default=pendulum.now(tz).format("YYYY-MM-DD")).strip()
    target = _parse_day(day_str, tz)

    console.print("\n[bold]5️⃣  Horário[/bold]")
    result = booking.find_slots(
        professional_id=professional.id,
        service_id=service.id,
        day=target,
        now=pendulum.now(tz),
    )
    if not result.slots:
        _print_slots(result.slots, result.status)
        return None

    open_slots = [
        slot for slot in result.slots
        if not any(
            taken.professional_id == slot.professional_id and taken.time_range.overlaps(slot.time_range)
            for taken in chosen
        )
    ]
    if not open_slots:
        console.print("[yellow]⚠ Os horários restantes deste dia já estão no seu carrinho.[/yellow]")
        return None

    return _choose(open_slots, "Horário", lambda s: s.format_display())


@app.command()
def wizard(
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Interactive booking: category, service, professional, date, time and client details.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        tz = config.timezone

        console.print("\n" + "="*60)
        console.print("[bold cyan]💇  Agendamento - Escolha seu horário[/bold cyan]")
        console.print("="*60 + "\n")

        if mock:
            console.print("[yellow]⚠  MODO MOCK: usando dados de exemplo[/yellow]\n")

        cart: List[Slot] = []
        while len(cart) < config.booking.max_cart_items:
            slot = _run_selection(booking, tz, cart)
            if slot is not None:
                cart.append(slot)
                console.print(f"[green]✓ Adicionado ao carrinho ({len(cart)}/{config.booking.max_cart_items})[/green]")

            if len(cart) >= config.booking.max_cart_items:
                break
            if not typer.confirm("\n→ Agendar outro serviço?", default=False):
                break
            console.print()

        if not cart:
            console.print("\n[yellow]Nenhum horário selecionado.[/yellow]")
            raise typer.Exit(0)

        console.print("\n[bold]6️⃣  Seus dados[/bold]")
        name = typer.prompt("→ Nome")
        phone = typer.prompt("→ Telefone (com DDD)")
        birth = typer.prompt("→ Data de nascimento (YYYY-MM-DD)", default="", show_default=False).strip()

        client = ClientInfo(
            name=name,
            phone=phone,
            birth_date=_parse_day(birth, tz) if birth else None,
        )

        items = [
            CartItem(professional_id=slot.professional_id, service_id=slot.service_id, start=slot.start)
            for slot in cart
        ]
        appointments = booking.book_cart(items, client=client, now=pendulum.now(tz))
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("\n[bold green]✓ Agendamento(s) confirmado(s):[/bold green]")
    for appointment in appointments:
        console.print(
            f"  {appointment.start.format('DD/MM/YYYY')} às {appointment.start.format('HH:mm')}"
        )
    console.print()


def _print_appointment(appointment: Appointment, title: str) -> None:
    lines = [
        f"[bold]Código:[/bold] {appointment.id}",
        f"[bold]Cliente:[/bold] {appointment.client_name}",
        f"[bold]Horário:[/bold] {appointment.start.format('DD/MM/YYYY HH:mm')} - {appointment.end.format('HH:mm')}",
        f"[bold]Status:[/bold] {appointment.status.value}",
    ]
    if appointment.cancellation_reason:
        lines.append(f"[bold]Motivo:[/bold] {appointment.cancellation_reason}")
    console.print(Panel.fit("\n".join(lines), title=title))


@app.command()
def lookup(
    appointment_id: Annotated[str, typer.Argument(help="Código do agendamento")],
    phone: Annotated[str, typer.Option("--phone", help="Telefone usado no agendamento")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Find an appointment by its code and the client's phone number.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        appointment = booking.lookup(appointment_id, phone)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    _print_appointment(appointment, "Agendamento")


@app.command()
def cancel(
    appointment_id: Annotated[str, typer.Argument(help="Código do agendamento")],
    phone: Annotated[Optional[str], typer.Option("--phone", help="Telefone do cliente (cancelamento pelo cliente)")] = None,
    reason: Annotated[str, typer.Option("--reason", help="Motivo do cancelamento")] = DEFAULT_CANCEL_REASON,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Cancel an appointment. Without --phone it is cancelled by the salon.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        appointment = booking.cancel(
            appointment_id,
            reason,
            phone=phone,
            cancelled_by="Cliente" if phone else "Admin",
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("\n[green]✓ Agendamento cancelado com sucesso![/green]\n")
    _print_appointment(appointment, "Cancelado")


@app.command()
def set_status(
    appointment_id: Annotated[str, typer.Argument(help="Código do agendamento")],
    status: Annotated[str, typer.Argument(help="confirmado, finalizado ou cancelado")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Change an appointment's status from the salon agenda.
    """
    try:
        config = _load_config(config_file, mock)
        booking = _build_booking_service(config, mock)
        appointment = booking.update_status(appointment_id, status)
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Status atualizado para {appointment.status.value}.[/green]\n")


@app.command()
def create_professional(
    name: Annotated[str, typer.Option("--name", help="Nome do profissional")],
    email: Annotated[str, typer.Option("--email", help="E-mail de login")],
    password: Annotated[str, typer.Option("--password", prompt=True, hide_input=True, confirmation_prompt=True)],
    role: Annotated[str, typer.Option("--role", help=f"Perfil: {', '.join(ROLES)}")] = "profissional",
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Create a professional's login and profile (requires the service-role key).
    """
    try:
        config = _load_config(config_file, mock)
        store = _build_store(config, mock, admin=True)
        message = ProfessionalProvisioner(store).create_professional(
            name=name,
            email=email,
            password=password,
            role=role,
        )
    except (BookingError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ {message}[/green]\n")


@app.command()
def store_key(
    config_file: ConfigOption = None,
):
    """
    Save the service-role key in the system keyring.
    """
    try:
        config = _load_config(config_file, mock=False)
        key = typer.prompt("Service-role key", hide_input=True)
        store_service_role_key(config, key)
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("\n[green]✓ Chave salva no keyring.[/green]\n")


@app.command()
def clear_key(
    config_file: ConfigOption = None,
):
    """
    Remove the service-role key from the system keyring.
    """
    try:
        config = _load_config(config_file, mock=False)
        removed = clear_service_role_key(config)
    except (FileNotFoundError, ValueError) as e:
        _fail(e)

    if removed:
        console.print("\n[green]✓ Chave removida do keyring.[/green]\n")
    else:
        console.print("\n[yellow]Nenhuma chave armazenada.[/yellow]\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]salonbooking[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
