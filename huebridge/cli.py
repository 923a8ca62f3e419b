"""
huebridge CLI - pair a hub, inspect it, control lights and run the sync engine.
"""

import asyncio
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import Config, get_config, set_config
from .discovery.mdns import HubDiscovery
from .hub.api import HueApi
from .registry.devices import DeviceRegistry, HubInfo, LightFeature
from .setup import (
    AbortSetup,
    InputField,
    RequestUserConfirmation,
    RequestUserInput,
    SetupAction,
    SetupComplete,
    SetupError,
    SetupFlow,
    SetupMessage,
    SetupRequest,
    UserConfirmationResponse,
    UserDataResponse,
)
from .sync import (
    Attributes,
    DeviceState,
    HostIntegration,
    LightCommand,
    Session,
    StatusCode,
    SyncEngine,
)

console = Console()


def setup_logging(verbose: bool = False, level: str = "INFO"):
    """Set up logging configuration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


# ============================================================================
# Wiring
# ============================================================================

def _api_factory(config: Config):
    def factory(base_url: str) -> HueApi:
        return HueApi(
            base_url,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )
    return factory


def _session_factory(config: Config):
    def factory(hub: HubInfo) -> Session:
        return Session(
            hub,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )
    return factory


def _registry(config: Config) -> DeviceRegistry:
    return DeviceRegistry(config.data_dir)


def _setup_flow(config: Config, registry: DeviceRegistry) -> SetupFlow:
    api_factory = _api_factory(config)
    return SetupFlow(
        registry,
        discovery=HubDiscovery(api_factory=api_factory, timeout=config.discovery_timeout),
        api_factory=api_factory,
        app_name=config.app_name,
    )


def _engine(config: Config, registry: DeviceRegistry, host: HostIntegration) -> SyncEngine:
    return SyncEngine(
        registry,
        host,
        session_factory=_session_factory(config),
        reconnect_delay=config.reconnect_delay,
        refresh_interval=config.refresh_interval,
    )


def _value(value) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class ConsoleHost(HostIntegration):
    """Host that prints what the engine publishes."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.lights: Dict[str, str] = {}

    def add_available_light(self, light_id: str, name: str, features: List[LightFeature]) -> None:
        self.lights[light_id] = name
        if not self.quiet:
            console.print(f"[dim]+ {name} ({', '.join(f.value for f in features)})[/dim]")

    def clear_available_lights(self) -> None:
        self.lights.clear()

    def update_light_attributes(self, light_id: str, attributes: Attributes) -> None:
        if self.quiet:
            return
        name = self.lights.get(light_id, light_id)
        values = ", ".join(f"{key.value}={_value(value)}" for key, value in attributes.items())
        console.print(f"[cyan]{name}[/cyan] {values}")

    def set_device_state(self, state: DeviceState) -> None:
        if not self.quiet:
            color = "green" if state == DeviceState.CONNECTED else "yellow"
            console.print(f"[{color}]Hub {state.value}[/{color}]")

    def configured_light_ids(self) -> Iterable[str]:
        return list(self.lights)


# ============================================================================
# Setup rendering
# ============================================================================

def _print_labels(fields: List[InputField]) -> None:
    for f in fields:
        if f.kind != "label":
            continue
        if f.items:
            table = Table(title=f.label)
            table.add_column("ID", style="dim")
            table.add_column("Name")
            for item in f.items:
                table.add_row(item["id"], item.get("label", ""))
            console.print(table)
        else:
            console.print(f.label)


def _prompt_input(action: RequestUserInput) -> UserDataResponse:
    console.print(f"\n[bold]{action.title}[/bold]")
    _print_labels(action.fields)

    values: Dict[str, str] = {}
    for f in action.fields:
        if f.kind == "label":
            continue
        console.print(f.label)
        for item in f.items:
            description = f" [dim]{item['description']}[/dim]" if item.get("description") else ""
            console.print(f"  [cyan]{item['id']}[/cyan] {item.get('label', '')}{description}")
        values[f.id] = click.prompt(
            "Choice",
            type=click.Choice([item["id"] for item in f.items]),
            default=f.value,
        )
    return UserDataResponse(values)


async def _drive_setup(flow: SetupFlow, message: SetupMessage) -> bool:
    """Run the setup flow interactively until it completes or fails."""
    action: SetupAction = await flow.handle(message)
    try:
        while True:
            if isinstance(action, SetupComplete):
                return True
            if isinstance(action, SetupError):
                console.print(f"[red]✗ {action.error}[/red] [dim]({action.code.value})[/dim]")
                return False
            if isinstance(action, RequestUserConfirmation):
                if action.header:
                    console.print(f"\n[bold yellow]{action.header}[/bold yellow]")
                console.print(action.message)
                reply: SetupMessage = UserConfirmationResponse(click.confirm("Continue?", default=True))
            else:
                reply = _prompt_input(action)
            action = await flow.handle(reply)
    except click.Abort:
        await flow.handle(AbortSetup("Aborted by user"))
        raise


async def _configuration_action(config: Config, action: str) -> SetupAction:
    registry = _registry(config)
    flow = _setup_flow(config, registry)
    first = await flow.handle(SetupRequest(reconfigure=True))
    if isinstance(first, SetupError):
        return first
    return await flow.handle(UserDataResponse({"action": action}))


# ============================================================================
# Commands
# ============================================================================

@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.pass_context
def main(ctx, verbose: bool, data_dir: Optional[str]):
    """💡 huebridge - Philips Hue hub bridge"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    config = Config.load(Path(data_dir) if data_dir else None)
    set_config(config)
    setup_logging(verbose, config.log_level)


@main.command()
def discover():
    """Find hubs on the local network."""
    config = get_config()
    discovery = HubDiscovery(api_factory=_api_factory(config), timeout=config.discovery_timeout)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        progress.add_task("Searching for hubs...", total=None)
        hubs = run_async(discovery.discover())

    if not hubs:
        console.print("[yellow]No hubs found.[/yellow]")
        return

    table = Table(title="Hubs")
    table.add_column("Name")
    table.add_column("Address")
    table.add_column("Hub ID", style="cyan")
    for hub in hubs:
        table.add_row(hub.name, hub.address, hub.hub_id or "")
    console.print(table)


@main.command()
@click.option('--address', '-a', help='Hub address (skips network discovery)')
def pair(address: Optional[str]):
    """Pair with a hub."""
    config = get_config()
    registry = _registry(config)

    if registry.is_paired and not click.confirm(
        f"Already paired with {registry.hub.name or registry.hub.ip}. Pair again?"
    ):
        return

    flow = _setup_flow(config, registry)
    ok = run_async(_drive_setup(flow, SetupRequest(manual_address=address)))
    if not ok:
        sys.exit(1)

    console.print(f"\n[bold green]✓ Paired with {registry.hub.name or registry.hub.ip}[/bold green]")
    console.print(f"  {len(registry.lights)} lights registered")


@main.command()
def info():
    """Show the paired hub and its lights."""
    config = get_config()
    if not _registry(config).is_paired:
        console.print("[yellow]No hub paired. Run 'huebridge pair' first.[/yellow]")
        return

    action = run_async(_configuration_action(config, "info"))
    if isinstance(action, SetupError):
        console.print(f"[red]✗ {action.error}[/red]")
        sys.exit(1)
    if isinstance(action, RequestUserInput):
        _print_labels(action.fields)


@main.command()
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation')
def remove(yes: bool):
    """Forget the paired hub and its lights."""
    config = get_config()
    if not _registry(config).is_paired:
        console.print("[yellow]No hub paired.[/yellow]")
        return
    if not yes and not click.confirm("Remove the hub and all of its lights?"):
        return

    action = run_async(_configuration_action(config, "remove"))
    if isinstance(action, SetupError):
        console.print(f"[red]✗ {action.error}[/red]")
        sys.exit(1)
    console.print("[green]✓ Hub removed[/green]")


@main.command()
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation')
def reset(yes: bool):
    """Reset the stored configuration."""
    config = get_config()
    if not yes and not click.confirm("Reset the configuration?"):
        return

    registry = _registry(config)
    if registry.is_paired:
        action = run_async(_configuration_action(config, "reset"))
        if isinstance(action, SetupError):
            console.print(f"[red]✗ {action.error}[/red]")
            sys.exit(1)
    else:
        registry.clear()
    console.print("[green]✓ Configuration reset[/green]")


@main.command('lights')
def list_lights():
    """List registered lights."""
    registry = _registry(get_config())
    if not registry.lights:
        console.print("[yellow]No lights registered.[/yellow]")
        return

    table = Table(title="Lights")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Features")
    for light_id, light in registry.lights.items():
        table.add_row(light_id, light.name, ", ".join(f.value for f in light.features))
    console.print(table)


@main.command('light')
@click.argument('light_id')
@click.argument('command', type=click.Choice([c.value for c in LightCommand]))
@click.option('--brightness', '-b', type=click.IntRange(0, 255), help='Brightness 0-255 (0 turns off)')
@click.option('--hue', type=click.IntRange(0, 359), help='Hue in degrees')
@click.option('--saturation', type=click.IntRange(0, 100), help='Saturation percent')
@click.option('--color-temp', type=click.IntRange(0, 100), help='Color temperature percent (0 = coolest)')
def light_command(
    light_id: str,
    command: str,
    brightness: Optional[int],
    hue: Optional[int],
    saturation: Optional[int],
    color_temp: Optional[int],
):
    """Send a command to a light."""
    config = get_config()
    params = {
        "brightness": brightness,
        "hue": hue,
        "saturation": saturation,
        "color_temperature": color_temp,
    }

    async def do_command() -> StatusCode:
        engine = _engine(config, _registry(config), ConsoleHost(quiet=True))
        await engine.start()
        try:
            if command == LightCommand.TOGGLE.value:
                await engine.refresh_light(light_id)
            return await engine.handle_command(light_id, command, params)
        finally:
            await engine.stop()

    status = run_async(do_command())
    if status != StatusCode.OK:
        console.print(f"[red]✗ {command} failed: {status.value}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ {command}[/green]")


@main.command()
def run():
    """Mirror light state to the console until interrupted."""
    config = get_config()
    registry = _registry(config)
    if not registry.is_paired:
        console.print("[yellow]No hub paired. Run 'huebridge pair' first.[/yellow]")
        return

    async def do_run():
        engine = _engine(config, registry, ConsoleHost())
        await engine.start()
        try:
            await engine.on_connect()
            await engine.on_subscribe()
            await asyncio.Event().wait()
        finally:
            await engine.on_disconnect()
            await engine.stop()

    console.print(f"[bold]Watching {registry.hub.name or registry.hub.ip}[/bold] (Ctrl+C to stop)\n")
    try:
        run_async(do_run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


if __name__ == '__main__':
    main()
