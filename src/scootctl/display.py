"""
Display manager for Rich-based REPL output and live scan updates.

Handles all console output including device tables, connection status,
received notification data, and the live-updating scan list.
"""

import logging
from typing import Any, Optional, Sequence

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .catalog import Peripheral

logger = logging.getLogger(__name__)


class DisplayManager:
    """Manages console output with Rich library."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize display manager.

        Args:
            console: Rich Console instance (creates one if None)
        """
        self.console = console or Console()
        self.live_enabled = False
        self._live: Optional[Live] = None

    def print_banner(self) -> None:
        """Print startup banner."""
        panel = Panel(
            "[bold cyan]ScootCtl - BLE Scooter Control[/bold cyan]\n"
            "[dim]Type 'help' for commands, 'quit' to exit[/dim]",
            expand=False,
        )
        self.console.print(panel)

    def print_devices(self, peripherals: Sequence[Peripheral]) -> None:
        """Display discovered devices.

        Args:
            peripherals: Devices in list order
        """
        if not peripherals:
            self.print_info("No devices found")
            return
        self.console.print(self.format_device_table(peripherals))

    def print_status(self, status: dict[str, Any]) -> None:
        """Display connection status table.

        Args:
            status: Dictionary from ScooterController.get_status()
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="yellow")

        table.add_row("State", status.get("state", "UNKNOWN"))
        table.add_row("Address", status.get("address") or "-")
        table.add_row("Write channel", status.get("write_channel") or "-")
        table.add_row("Notify channel", status.get("notify_channel") or "-")
        table.add_row("Remembered device", status.get("cached_address") or "-")

        self.console.print(table)

    def print_sent(self, label: str, sent: bool) -> None:
        """Display command result.

        Args:
            label: What was sent
            sent: Whether the write was accepted
        """
        if sent:
            self.console.print(f"[green]✓[/green] {label} sent", highlight=False)
        else:
            self.console.print(f"[red]✗[/red] {label} failed", highlight=False)

    def print_rx(self, hex_data: str) -> None:
        """Print notification data received from the device."""
        self.console.print(f"[magenta]RX:[/magenta] {hex_data}", highlight=False)

    def print_error(self, message: str) -> None:
        """Print red error message.

        Args:
            message: Error message text
        """
        self.console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_info(self, message: str) -> None:
        """Print blue info message.

        Args:
            message: Info message text
        """
        self.console.print(f"[cyan]Info:[/cyan] {message}", highlight=False)

    def print_help(self, commands: list) -> None:
        """Display command reference.

        Args:
            commands: List of Command objects
        """
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Aliases", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("Usage", style="yellow")

        for cmd in commands:
            aliases = ", ".join(cmd.aliases) if cmd.aliases else "-"
            table.add_row(cmd.name, aliases, cmd.description, cmd.usage)

        self.console.print(table)
        self.console.print(
            "[dim]Keyboard shortcuts: Ctrl+C to interrupt, Ctrl+D to exit[/dim]"
        )

    def start_live(self) -> None:
        """Start live scan list refresh."""
        if self.live_enabled:
            return

        self.live_enabled = True
        self._live = Live(
            self.format_device_table([]), console=self.console, refresh_per_second=4
        )
        self._live.start()

    def stop_live(self) -> None:
        """Stop live scan list refresh."""
        if not self.live_enabled:
            return

        self.live_enabled = False
        if self._live is not None:
            self._live.stop()
            self._live = None

    def update_live(self, peripherals: Sequence[Peripheral]) -> None:
        """Replace the live scan list.

        Args:
            peripherals: Current filtered scan results
        """
        if not self.live_enabled or self._live is None:
            return

        try:
            self._live.update(self.format_device_table(peripherals))
        except Exception as e:
            logger.error(f"Live update error: {e}")

    def format_device_table(self, peripherals: Sequence[Peripheral]) -> Table:
        """Create Rich Table listing devices.

        Args:
            peripherals: Devices in list order

        Returns:
            Rich Table object
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Name", style="cyan")
        table.add_column("Address", style="yellow")
        table.add_column("RSSI", justify="right")

        for index, peripheral in enumerate(peripherals, start=1):
            table.add_row(
                str(index),
                peripheral.display_name,
                peripheral.address,
                self.format_rssi(peripheral.rssi),
            )

        return table

    @staticmethod
    def format_rssi(rssi: Optional[int]) -> str:
        """Format signal strength.

        Args:
            rssi: Signal strength in dBm, if known

        Returns:
            Formatted RSSI string
        """
        if rssi is None:
            return "-"
        return f"{rssi} dBm"
