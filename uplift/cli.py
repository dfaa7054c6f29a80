"""
CLI interface for desk control.

Usage: uplift <command> [args]
"""

import asyncio
import logging
import sys
from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from uplift.codec import Height, HeightCodec
from uplift.config import Settings, load_settings
from uplift.controller import ControlState, HeightController
from uplift.errors import DeskError, DeskReadError
from uplift.link import DeskLink
from uplift.protocol import DeskProtocol, PresetCommand
from uplift.scanner import print_desks, scan_desks

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130

USAGE = """
Usage: uplift [-v] <command> [args]

Commands:
  sit              Move to the saved sitting preset
  sit save         Save the current height as the sitting preset
  stand            Move to the saved standing preset
  stand save       Save the current height as the standing preset
  query            Show the current height
  listen           Print heights as the desk moves (Ctrl-C to quit)
  set <inches>     Move to a specific height (best effort)
  stop             Stop the motor
  scan             List nearby desks

Examples:
  uplift stand                  # Go to standing preset
  uplift set 30.5               # Move to 30.5"
"""

RECALL = {"sit": PresetCommand.RECALL_SIT, "stand": PresetCommand.RECALL_STAND}
SAVE = {"sit": PresetCommand.SAVE_SIT, "stand": PresetCommand.SAVE_STAND}


class UsageError(ValueError):
    """Raised for unknown commands or malformed arguments."""


@dataclass(frozen=True)
class Command:
    name: str
    preset: PresetCommand | None = None
    target: Height | None = None


def parse_command(args: list[str], codec: HeightCodec | None = None) -> Command:
    """
    Turn CLI words into a Command.

    Raises:
        UsageError: If the command is unknown or malformed
        HeightOutOfRangeError: If a `set` target is outside the travel envelope
    """
    if not args:
        raise UsageError("No command given")

    name, rest = args[0].lower(), args[1:]

    if name in RECALL:
        if not rest:
            return Command(name, preset=RECALL[name])
        if rest == ["save"]:
            return Command(name, preset=SAVE[name])
        raise UsageError(f"Unexpected arguments for {name}: {' '.join(rest)}")

    if name in ("query", "listen", "stop", "scan"):
        if rest:
            raise UsageError(f"{name} takes no arguments")
        return Command(name)

    if name == "set":
        if len(rest) != 1:
            raise UsageError("Usage: set <inches>")
        try:
            inches = float(rest[0])
        except ValueError:
            raise UsageError(f"Not a height: {rest[0]!r}") from None
        target = (codec or HeightCodec()).validate(Height(inches))
        return Command(name, target=target)

    raise UsageError(f"Unknown command: {args[0]}")


class CommandDispatcher:
    """Runs one parsed command against a connected desk."""

    def __init__(
        self,
        protocol: DeskProtocol,
        console: Console,
        settings: Settings | None = None,
        controller: HeightController | None = None,
    ):
        settings = settings or Settings()
        self.protocol = protocol
        self.console = console
        self.controller = controller or HeightController(
            protocol,
            tolerance=settings.tolerance,
            max_iterations=settings.max_corrections,
            timeout=settings.set_timeout,
            codec=protocol.codec,
        )

    async def dispatch(self, command: Command) -> int:
        if command.preset is not None:
            if command.preset.is_save:
                return await self._save(command)
            return await self._recall(command)
        if command.name == "query":
            return await self._query()
        if command.name == "listen":
            return await self._listen()
        if command.name == "set":
            return await self._set(command.target)
        if command.name == "stop":
            await self.protocol.stop()
            self.console.print("🛑 Stopped")
            return EXIT_OK
        raise UsageError(f"Command {command.name} needs no desk connection")

    async def _recall(self, command: Command) -> int:
        self.console.print(f"📍 Moving to {command.name} preset...")
        await self.protocol.recall(command.preset)
        return EXIT_OK

    async def _save(self, command: Command) -> int:
        height = await self.protocol.query_height()
        await self.protocol.save(command.preset)
        self.console.print(f"💾 Saved {command.name} preset at {height}")
        return EXIT_OK

    async def _query(self) -> int:
        height = await self.protocol.query_height()
        self.console.print(f"📏 Height: {height} ({height.millimeters:.0f}mm)")
        return EXIT_OK

    async def _listen(self) -> int:
        async for height in self.protocol.listen_height():
            self.console.print(str(height))
        if not self.protocol.link.is_connected:
            raise DeskReadError("Desk disconnected while listening")
        return EXIT_OK

    async def _set(self, target: Height) -> int:
        self.console.print(f"📏 Moving to {target}...")
        result = await self.controller.run(target)

        if result.state is ControlState.REACHED:
            self.console.print(f"✅ Reached: {result.final_height} (target {target})")
        else:
            self.console.print(
                f"⚠️  Timed out: stopped at {result.final_height} (target {target}, "
                f"{result.iterations} corrections). The desk cannot always be positioned precisely."
            )
        return EXIT_OK


async def _log_desk_name(protocol: DeskProtocol):
    """Log the desk's name; diagnostic only, failures never abort the command."""
    if not logger.isEnabledFor(logging.INFO):
        return
    try:
        logger.info("Desk name: %s", await protocol.read_name())
    except DeskError as e:
        logger.warning("Could not read desk name: %s", e)


async def run(args: list[str], settings: Settings, console: Console, err_console: Console) -> int:
    """Parse and run one command. Returns the process exit code."""
    codec = HeightCodec()
    try:
        command = parse_command(args, codec)
    except UsageError as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        err_console.print(USAGE, markup=False)
        return EXIT_USAGE
    except DeskError as e:
        err_console.print(f"[red]{e.kind}:[/] {escape(str(e))}")
        return EXIT_ERROR

    try:
        if command.name == "scan":
            console.print(f"🔍 Scanning for desks ({settings.scan_timeout:.0f} seconds)...")
            desks = await scan_desks(timeout=settings.scan_timeout, adapter=settings.adapter)
            print_desks(desks, console)
            return EXIT_OK

        async with DeskLink(
            address=settings.address,
            adapter=settings.adapter,
            scan_timeout=settings.scan_timeout,
            connect_timeout=settings.connect_timeout,
        ) as link:
            protocol = DeskProtocol(link, codec)
            try:
                await protocol.wake()
                await _log_desk_name(protocol)
                return await CommandDispatcher(protocol, console, settings).dispatch(command)
            except asyncio.CancelledError:
                # Never leave the motor running when interrupted
                try:
                    await protocol.stop()
                except DeskError as e:
                    logger.error("Failed to stop desk after interrupt: %s", e)
                raise

    except DeskError as e:
        err_console.print(f"[red]{e.kind}:[/] {escape(str(e))}")
        return EXIT_ERROR


def main():
    """Entry point for the uplift command."""
    args = sys.argv[1:]
    verbose = any(a in ("-v", "--verbose") for a in args)
    args = [a for a in args if a not in ("-v", "--verbose")]

    console = Console()
    err_console = Console(stderr=True)

    if not args or args[0] in ("-h", "--help", "help"):
        console.print(USAGE, markup=False)
        return

    try:
        settings = load_settings()
    except ValueError as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_USAGE)

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        code = asyncio.run(run(args, settings, console, err_console))
    except KeyboardInterrupt:
        err_console.print("\n🛑 Cancelled")
        code = EXIT_CANCELLED
    sys.exit(code)


if __name__ == "__main__":
    main()
