"""
Uplift desk command vocabulary.

Every command is a framed packet written to the command characteristic:

    F1 F1 <opcode> <length> <payload...> <checksum> 7E

where checksum is the low byte of opcode + length + sum(payload). The desk
sends no acknowledgement; presets run to completion in firmware.
"""

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from contextlib import suppress

from uplift.codec import Height, HeightCodec
from uplift.errors import DeskError
from uplift.link import CharacteristicRef, DeskLink

logger = logging.getLogger(__name__)

# === FRAMING ===
PACKET_HEADER = bytes([0xF1, 0xF1])
PACKET_FOOTER = bytes([0x7E])

# === OPCODES ===
OP_UP = 0x01
OP_DOWN = 0x02
OP_SAVE_SIT = 0x03
OP_SAVE_STAND = 0x04
OP_RECALL_SIT = 0x05
OP_RECALL_STAND = 0x06
OP_QUERY = 0x07
OP_STOP = 0x2B

# The desk treats a repeated motor packet as a held button
PULSE_REPEAT_INTERVAL = 0.1
# A stationary desk only reports its height when queried
QUERY_REPEAT_INTERVAL = 1.0


def build_packet(opcode: int, payload: bytes = b"") -> bytes:
    """Frame an opcode and optional payload as a command packet."""
    checksum = (opcode + len(payload) + sum(payload)) & 0xFF
    return PACKET_HEADER + bytes([opcode, len(payload)]) + payload + bytes([checksum]) + PACKET_FOOTER


class PresetCommand(enum.Enum):
    RECALL_SIT = OP_RECALL_SIT
    RECALL_STAND = OP_RECALL_STAND
    SAVE_SIT = OP_SAVE_SIT
    SAVE_STAND = OP_SAVE_STAND

    @property
    def is_save(self) -> bool:
        return self in (PresetCommand.SAVE_SIT, PresetCommand.SAVE_STAND)

    @property
    def packet(self) -> bytes:
        return build_packet(self.value)


class MotorPulse(enum.Enum):
    UP = OP_UP
    DOWN = OP_DOWN
    STOP = OP_STOP

    @property
    def packet(self) -> bytes:
        return build_packet(self.value)


QUERY_PACKET = build_packet(OP_QUERY)
STOP_PACKET = MotorPulse.STOP.packet


class DeskProtocol:
    """Commands and height readings on top of a DeskLink."""

    def __init__(self, link: DeskLink, codec: HeightCodec | None = None):
        self.link = link
        self.codec = codec or HeightCodec()

    async def wake(self) -> None:
        """Send a status query; the desk ignores other writes until it has seen one."""
        await self.link.write_command(QUERY_PACKET)

    async def query_height(self) -> Height:
        """Read the current height once."""
        payload = await self.link.read(CharacteristicRef.HEIGHT_READ)
        height = self.codec.decode_payload(payload)
        logger.debug("Height: %s", height)
        return height

    async def listen_height(self) -> AsyncIterator[Height]:
        """
        Yield heights from notifications, in arrival order, until the link ends.

        A QUERY is written once notifications are enabled and repeated every
        QUERY_REPEAT_INTERVAL until the first height arrives. A failed repeat
        ends the stream with that error.
        """
        reported = asyncio.Event()
        failures: list[DeskError] = []
        repeater: asyncio.Task | None = None

        async def repeat_queries():
            try:
                while not reported.is_set():
                    try:
                        await asyncio.wait_for(reported.wait(), QUERY_REPEAT_INTERVAL)
                    except asyncio.TimeoutError:
                        logger.debug("No height reported yet, querying again")
                        await self.link.write_command(QUERY_PACKET)
            except DeskError as e:
                failures.append(e)
                self.link.unsubscribe_height()

        async def request_height():
            nonlocal repeater
            await self.link.write_command(QUERY_PACKET)
            repeater = asyncio.create_task(repeat_queries())

        try:
            async for payload in self.link.subscribe_height(on_subscribed=request_height):
                reported.set()
                yield self.codec.decode_payload(payload)
        finally:
            if repeater is not None:
                repeater.cancel()
                with suppress(asyncio.CancelledError):
                    await repeater

        if failures:
            raise failures[0]

    async def recall(self, preset: PresetCommand) -> None:
        """Start moving to a saved preset. Returns once the command is written."""
        if preset.is_save:
            raise ValueError(f"{preset.name} is not a recall command")
        logger.debug("Recall %s", preset.name)
        await self.link.write_command(preset.packet)

    async def save(self, preset: PresetCommand) -> None:
        """Save the current position as a preset."""
        if not preset.is_save:
            raise ValueError(f"{preset.name} is not a save command")
        logger.debug("Save %s", preset.name)
        await self.link.write_command(preset.packet)

    async def pulse(self, direction: MotorPulse, duration: float) -> None:
        """
        Drive the motor for `duration` seconds, then stop.

        STOP is written on every exit path, including cancellation.
        """
        if direction is MotorPulse.STOP:
            await self.stop()
            return

        logger.debug("Pulse %s for %.2fs", direction.name, duration)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        try:
            while True:
                await self.link.write_command(direction.packet)
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(PULSE_REPEAT_INTERVAL, remaining))
        finally:
            await self.stop()

    async def stop(self) -> None:
        await self.link.write_command(STOP_PACKET)

    async def read_name(self) -> str | None:
        """Read the desk's name, if it exposes one."""
        if not self.link.has_characteristic(CharacteristicRef.NAME):
            return None
        data = await self.link.read(CharacteristicRef.NAME)
        return data.decode("utf-8", errors="ignore").strip("\x00") or None
