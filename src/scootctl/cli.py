"""
Main REPL application for BLE scooter control.

Interactive command loop with async support, auto-completion,
live scan results and printing of received notification data.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory

from .catalog import Peripheral
from .codec import DrivingMode, LockState, driving_mode_description
from .commands import COMMANDS, CommandCompleter, get_command
from .connection import ConnectionState
from .controller import ScooterController
from .core import SCAN_PERIOD
from .display import DisplayManager
from .events import (
    ConnectionFailed,
    Connected,
    DataReceived,
    Disconnected,
    Event,
    ScanFailed,
    ScanFinished,
    ScanResults,
    ServicesDiscovered,
)
from .scanner import ScanSession

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
)
logger = logging.getLogger(__name__)

MODE_ALIASES = {"dev": DrivingMode.DEVELOPER}


def parse_driving_mode(text: str) -> Optional[DrivingMode]:
    """Parse a driving mode name such as "eco" or "sport"."""
    key = text.strip().lower()
    if key in MODE_ALIASES:
        return MODE_ALIASES[key]
    try:
        return DrivingMode[key.upper()]
    except KeyError:
        return None


class ScootCtlREPL:
    """Interactive REPL for BLE scooter control."""

    def __init__(
        self,
        controller: Optional[ScooterController] = None,
        scan: Optional[ScanSession] = None,
        display: Optional[DisplayManager] = None,
    ) -> None:
        """Initialize REPL with controller, scan session and display manager."""
        self.controller = controller or ScooterController()
        self.scan = scan or ScanSession()
        self.display = display or DisplayManager()
        self.running = False
        self.session: Optional[PromptSession] = None

        self._last_results: List[Peripheral] = []
        self._scan_done = asyncio.Event()
        self._event_task: Optional[asyncio.Task] = None

        self.scan.events.subscribe(self._on_scan_event)

    async def run(self) -> None:
        """Run the main REPL loop."""
        self.running = True
        self.session = PromptSession(
            completer=CommandCompleter(),
            history=InMemoryHistory(),
            enable_history_search=True,
        )
        self.display.print_banner()

        # Background task printing connection events and received data
        self._event_task = asyncio.create_task(self._event_loop())

        # Auto-reconnect to the last device
        if self.controller.store.load():
            self.display.print_info("Reconnecting to last device...")
            if not await self.controller.reconnect_last():
                self.display.print_info(
                    "Could not reconnect. Use 'scan' and 'connect' to pick a device."
                )

        try:
            while self.running:
                try:
                    text = await self.session.prompt_async(self._get_prompt())
                    if text.strip():
                        await self._handle_input(text.strip())
                except KeyboardInterrupt:
                    # Just show new prompt on Ctrl+C
                    self.display.console.print()
                    continue

        except EOFError:
            # End of input (Ctrl+D)
            await self.cmd_quit([])
        finally:
            self.running = False
            if self._event_task:
                self._event_task.cancel()
                try:
                    await self._event_task
                except asyncio.CancelledError:
                    pass

    def _get_prompt(self) -> FormattedText:
        """Get dynamic prompt based on connection state.

        Returns:
            FormattedText for prompt_toolkit
        """
        if self.controller.is_connected:
            return FormattedText([("class:prompt", f"[{self.controller.address}] > ")])
        return FormattedText([("class:prompt", "[disconnected] > ")])

    async def _handle_input(self, text: str) -> None:
        """Parse and dispatch command.

        Args:
            text: Raw user input text
        """
        parts = text.split(maxsplit=1)
        if not parts:
            return

        cmd_name = parts[0].lower()
        args = parts[1].split() if len(parts) > 1 else []

        cmd = get_command(cmd_name)
        if not cmd:
            self.display.print_error(
                f"Unknown command: {cmd_name}. Type 'help' for available commands."
            )
            return

        handler = getattr(self, cmd.handler, None)
        if handler is None:
            self.display.print_error(f"Handler not found: {cmd.handler}")
            return

        try:
            await handler(args)
        except Exception as e:
            self.display.print_error(f"Command failed: {e}")
            logger.exception("Command exception")

    async def _event_loop(self) -> None:
        """Background task to report connection events."""
        try:
            async for event in self.controller.events.stream():
                self._on_connection_event(event)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Event loop error: {e}")

    def _on_connection_event(self, event: Event) -> None:
        if isinstance(event, Connected):
            self.display.print_info(f"Connected to {event.address}, discovering services...")
        elif isinstance(event, ServicesDiscovered):
            if event.has_both_channels:
                self.display.print_info("UART-like characteristic pair found")
            else:
                self.display.print_error(str(event.error))
        elif isinstance(event, ConnectionFailed):
            self.display.print_error(event.reason)
        elif isinstance(event, Disconnected):
            self.display.print_info("Device disconnected")
        elif isinstance(event, DataReceived):
            self.display.print_rx(event.hex)

    def _on_scan_event(self, event: Event) -> None:
        if isinstance(event, ScanResults):
            self._last_results = list(event.peripherals)
            self.display.update_live(event.peripherals)
        elif isinstance(event, ScanFailed):
            self.display.print_error(f"Scan failed (error: {event.code})")
            self._scan_done.set()
        elif isinstance(event, ScanFinished):
            self._scan_done.set()

    # ========== Command Handlers ==========

    async def cmd_scan(self, args: list) -> None:
        """Scan for nearby devices."""
        duration = SCAN_PERIOD
        include_unnamed = "--named" not in args
        values = [a for a in args if not a.startswith("--")]
        if values:
            try:
                duration = float(values[0])
            except ValueError:
                self.display.print_error(f"Invalid duration: {values[0]}")
                return
            if duration <= 0:
                self.display.print_error("Duration must be positive")
                return

        self._scan_done.clear()
        self._last_results = []
        self.display.print_info(f"Scanning for devices ({duration:.0f}s)...")
        self.display.start_live()
        try:
            if not await self.scan.start(duration, include_unnamed=include_unnamed):
                return
            await self._scan_done.wait()
        finally:
            await self.scan.stop()
            self.display.stop_live()

        self.display.print_devices(self._last_results)
        if self._last_results:
            self.display.print_info("Use 'connect <#>' to pick a device")

    async def cmd_connect(self, args: list) -> None:
        """Connect to a device."""
        if self.scan.is_running:
            await self.scan.stop()

        if not args:
            if not await self.controller.reconnect_last():
                self.display.print_error(
                    "No remembered device or it is unreachable. Usage: connect <address|#>"
                )
            return

        target = args[0]
        if target.isdigit():
            index = int(target) - 1
            if not 0 <= index < len(self._last_results):
                self.display.print_error(f"No device #{target} in the last scan")
                return
            target = self._last_results[index].address

        self.display.print_info(f"Connecting to {target}...")
        if await self.controller.connect(target):
            self.display.print_info("Ready")
        else:
            self.display.print_error("Connection failed. Please try again.")

    async def cmd_disconnect(self, args: list) -> None:
        """Disconnect from device."""
        if self.controller.manager.state is ConnectionState.DISCONNECTED:
            self.display.print_info("Not connected")
            return
        await self.controller.disconnect()

    async def cmd_mode(self, args: list) -> None:
        """Select driving mode."""
        if not args:
            self.display.print_error("Usage: mode <eco|normal|sport|developer>")
            return

        mode = parse_driving_mode(args[0])
        if mode is None:
            self.display.print_error(f"Unknown mode: {args[0]}")
            return

        sent = await self.controller.set_driving_mode(mode)
        self.display.print_sent(driving_mode_description(mode), sent)

    async def cmd_lock(self, args: list) -> None:
        """Lock the scooter."""
        self.display.print_sent("lock", await self.controller.set_lock(LockState.LOCKED))

    async def cmd_unlock(self, args: list) -> None:
        """Unlock the scooter."""
        self.display.print_sent("unlock", await self.controller.set_lock(LockState.UNLOCKED))

    async def cmd_speed(self, args: list) -> None:
        """Set speed limit in km/h."""
        speed_range = f"{self.controller.SPEED_MIN}-{self.controller.SPEED_MAX} km/h"
        if not args:
            self.display.print_error("Usage: speed <km/h>")
            self.display.print_info(f"Range: {speed_range}")
            return

        try:
            speed = int(args[0])
        except ValueError:
            self.display.print_error(f"Invalid speed: {args[0]}")
            return

        if not self.controller.SPEED_MIN <= speed <= self.controller.SPEED_MAX:
            self.display.print_error(f"Speed out of range. Must be {speed_range}")
            return

        sent = await self.controller.set_speed_limit(speed)
        self.display.print_sent(f"speed limit {speed} km/h", sent)

    async def cmd_advanced(self, args: list) -> None:
        """Select advanced mode by number."""
        mode_range = f"{self.controller.MODE_MIN}-{self.controller.MODE_MAX}"
        if not args:
            self.display.print_error(f"Usage: advanced <{mode_range}>")
            return

        try:
            mode = int(args[0])
        except ValueError:
            self.display.print_error(f"Invalid mode: {args[0]}")
            return

        if not self.controller.MODE_MIN <= mode <= self.controller.MODE_MAX:
            self.display.print_error(f"Mode out of range. Must be {mode_range}")
            return

        sent = await self.controller.set_advanced_mode(mode)
        self.display.print_sent(f"advanced mode {mode}", sent)

    async def cmd_hex(self, args: list) -> None:
        """Send a raw hex command."""
        if not args:
            self.display.print_error("Usage: hex <hex string>")
            return

        hex_string = "".join(args)
        sent = await self.controller.send_hex(hex_string)
        self.display.print_sent(hex_string.upper(), sent)

    async def cmd_status(self, args: list) -> None:
        """Show connection status."""
        self.display.print_status(self.controller.get_status())

    async def cmd_forget(self, args: list) -> None:
        """Clear the remembered device address."""
        self.controller.forget_device()
        self.display.print_info("Cleared cached device address")

    async def cmd_help(self, args: list) -> None:
        """Show all available commands."""
        self.display.print_help(COMMANDS)

    async def cmd_quit(self, args: list) -> None:
        """Exit the REPL."""
        if self.scan.is_running:
            await self.scan.stop()

        if self.controller.manager.state is not ConnectionState.DISCONNECTED:
            self.display.print_info("Disconnecting...")
        await self.controller.cleanup()

        self.display.console.print("[cyan]Goodbye![/cyan]")
        self.running = False


async def run_scan(duration: float, include_unnamed: bool = True) -> List[Peripheral]:
    """Run a single scan and return the filtered results."""
    scan = ScanSession()
    done = asyncio.Event()

    def _on_event(event: Event) -> None:
        if isinstance(event, (ScanFinished, ScanFailed)):
            done.set()

    scan.events.subscribe(_on_event)
    if not await scan.start(duration, include_unnamed=include_unnamed):
        return []
    try:
        await done.wait()
    finally:
        await scan.stop()
    return scan.results()


async def run_cli_command(
    command: str,
    value: Optional[str] = None,
    address: Optional[str] = None,
    duration: float = SCAN_PERIOD,
    include_unnamed: bool = True,
) -> int:
    """Run a single CLI command and return the exit code."""
    display = DisplayManager()

    if command == "scan":
        display.print_info(f"Scanning for devices ({duration:.0f}s)...")
        display.print_devices(await run_scan(duration, include_unnamed=include_unnamed))
        return 0

    controller = ScooterController()

    if command == "clear-cache":
        controller.forget_device()
        display.print_info("Cleared cached device address")
        return 0

    def _on_event(event: Event) -> None:
        if isinstance(event, ConnectionFailed):
            display.print_error(event.reason)
        elif isinstance(event, DataReceived):
            display.print_rx(event.hex)

    controller.events.subscribe(_on_event)

    try:
        display.print_info("Connecting to device...")
        if address:
            connected = await controller.connect(address)
        else:
            connected = await controller.reconnect_last()
        if not connected:
            display.print_error("Failed to connect to device")
            return 1

        if command == "lock":
            sent = await controller.set_lock(LockState.LOCKED)
            display.print_sent("lock", sent)
        elif command == "unlock":
            sent = await controller.set_lock(LockState.UNLOCKED)
            display.print_sent("unlock", sent)
        elif command == "mode":
            mode = parse_driving_mode(value or "")
            if mode is None:
                display.print_error(f"Unknown mode: {value}")
                return 1
            sent = await controller.set_driving_mode(mode)
            display.print_sent(driving_mode_description(mode), sent)
        elif command == "speed":
            speed = int(value or 0)
            sent = await controller.set_speed_limit(speed)
            display.print_sent(f"speed limit {speed} km/h", sent)
        elif command == "advanced":
            mode_number = int(value or -1)
            sent = await controller.set_advanced_mode(mode_number)
            display.print_sent(f"advanced mode {mode_number}", sent)
        elif command == "hex":
            sent = await controller.send_hex(value or "")
            display.print_sent((value or "").upper(), sent)
        elif command == "status":
            display.print_status(controller.get_status())
            sent = True
        else:
            display.print_error(f"Unknown command: {command}")
            return 1

        return 0 if sent else 1

    finally:
        await controller.cleanup()


def main() -> None:
    """Entry point for the REPL application."""
    parser = argparse.ArgumentParser(
        description="BLE Scooter Control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  scootctl                          # Start interactive REPL
  scootctl --scan                   # List nearby devices
  scootctl --scan --named           # List only devices with a name
  scootctl --lock                   # Lock (connects to the remembered device)
  scootctl --address AA:BB:CC:DD:EE:FF --unlock
  scootctl --mode sport             # Select driving mode
  scootctl --speed 20               # Set speed limit in km/h
  scootctl --advanced 42            # Select advanced mode 0-254
  scootctl --hex D707A0000101A9     # Send a raw command
  scootctl --clear-cache            # Forget the remembered device
        """,
    )

    parser.add_argument("--scan", action="store_true", help="Scan for devices")
    parser.add_argument("--lock", action="store_true", help="Lock the scooter")
    parser.add_argument("--unlock", action="store_true", help="Unlock the scooter")
    parser.add_argument(
        "--mode", metavar="MODE", help="Driving mode: eco, normal, sport, developer"
    )
    parser.add_argument("--speed", type=int, metavar="KMH", help="Speed limit (8-30)")
    parser.add_argument(
        "--advanced", type=int, metavar="N", help="Advanced mode number (0-254)"
    )
    parser.add_argument("--hex", metavar="HEX", help="Send a raw hex command")
    parser.add_argument("--status", action="store_true", help="Show connection status")
    parser.add_argument(
        "--clear-cache", action="store_true", help="Clear cached device address"
    )
    parser.add_argument(
        "--address", metavar="ADDR", help="Device address (default: remembered device)"
    )
    parser.add_argument(
        "--duration", type=float, default=SCAN_PERIOD, help="Scan duration in seconds"
    )
    parser.add_argument(
        "--named", action="store_true", help="Only list devices that advertise a name"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Check which command was requested
    commands: List[tuple] = []
    if args.scan:
        commands.append(("scan", None))
    if args.lock:
        commands.append(("lock", None))
    if args.unlock:
        commands.append(("unlock", None))
    if args.mode is not None:
        commands.append(("mode", args.mode))
    if args.speed is not None:
        commands.append(("speed", str(args.speed)))
    if args.advanced is not None:
        commands.append(("advanced", str(args.advanced)))
    if args.hex is not None:
        commands.append(("hex", args.hex))
    if args.status:
        commands.append(("status", None))
    if args.clear_cache:
        commands.append(("clear-cache", None))

    # If no CLI commands, start REPL
    if not commands:
        try:
            repl = ScootCtlREPL()
            asyncio.run(repl.run())
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(0)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        if len(commands) > 1:
            print("Error: Only one command can be specified at a time", file=sys.stderr)
            sys.exit(1)

        command, value = commands[0]
        try:
            code = asyncio.run(
                run_cli_command(
                    command,
                    value,
                    address=args.address,
                    duration=args.duration,
                    include_unnamed=not args.named,
                )
            )
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(1)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        sys.exit(code)


if __name__ == "__main__":
    main()
