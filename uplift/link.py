"""
BLE link to an Uplift desk.

GATT layout from the uplift desk reverse-engineering work:
- https://github.com/justintout/uplift-reconnect
- https://github.com/librick/uplift-desk-controller
"""

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import suppress

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_16

from uplift.errors import (
    AdapterUnavailableError,
    DeskConnectionError,
    DeskNotFoundError,
    DeskReadError,
    DeskWriteError,
    MissingCharacteristicError,
)

logger = logging.getLogger(__name__)

# Backend warnings (e.g. CoreBluetooth state races) are not actionable here
logging.getLogger("bleak").setLevel(logging.ERROR)


# === UPLIFT BLE UUIDS ===
DESK_SERVICE_UUID = normalize_uuid_16(0xFF12)
UUID_DATA_IN = normalize_uuid_16(0xFF01)
UUID_DATA_OUT = normalize_uuid_16(0xFF02)
UUID_NAME = normalize_uuid_16(0xFF06)


class CharacteristicRef(enum.Enum):
    HEIGHT_READ = "height-read"
    COMMAND_WRITE = "command-write"
    HEIGHT_NOTIFY = "height-notify"
    NAME = "name"


CHARACTERISTIC_UUIDS = {
    CharacteristicRef.HEIGHT_READ: UUID_DATA_OUT,
    CharacteristicRef.COMMAND_WRITE: UUID_DATA_IN,
    CharacteristicRef.HEIGHT_NOTIFY: UUID_DATA_OUT,
    CharacteristicRef.NAME: UUID_NAME,
}

REQUIRED_CHARACTERISTICS = (
    CharacteristicRef.HEIGHT_READ,
    CharacteristicRef.COMMAND_WRITE,
    CharacteristicRef.HEIGHT_NOTIFY,
)

# Marks the end of a height subscription
_END_OF_STREAM = None


def advertises_desk_service(device: BLEDevice, adv: AdvertisementData) -> bool:
    """Check whether an advertisement carries the desk's service UUID."""
    return any(uuid.lower() == DESK_SERVICE_UUID for uuid in adv.service_uuids or ())


class DeskLink:
    """
    Owns the single BLE connection to the desk.

    Use as an async context manager so the connection is released on every
    exit path:

        async with DeskLink() as link:
            payload = await link.read(CharacteristicRef.HEIGHT_READ)
    """

    def __init__(
        self,
        address: str | None = None,
        adapter: str | None = None,
        scan_timeout: float = 10.0,
        connect_timeout: float = 20.0,
    ):
        self.address = address
        self.adapter = adapter
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self.device: BLEDevice | None = None
        self.client: BleakClient | None = None
        self._characteristics: dict[CharacteristicRef, BleakGATTCharacteristic] = {}
        self._subscribers: list[asyncio.Queue] = []
        self._notifying = False
        self._write_lock = asyncio.Lock()
        self._connected = False
        self._disconnecting = False

    async def __aenter__(self) -> "DeskLink":
        device = await self.discover(self.scan_timeout)
        await self.connect(device)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _backend_kwargs(self) -> dict:
        return {"adapter": self.adapter} if self.adapter else {}

    async def discover(self, timeout: float | None = None) -> BLEDevice:
        """
        Scan for the desk.

        Args:
            timeout: Scan duration in seconds

        Raises:
            AdapterUnavailableError: If the Bluetooth adapter cannot scan
            DeskNotFoundError: If no desk advertises before the timeout
        """
        timeout = self.scan_timeout if timeout is None else timeout
        kwargs = self._backend_kwargs()

        try:
            if self.address:
                logger.debug("Looking for desk at %s (%.1fs)", self.address, timeout)
                device = await BleakScanner.find_device_by_address(
                    self.address, timeout=timeout, **kwargs
                )
            else:
                logger.debug("Scanning for desk service %s (%.1fs)", DESK_SERVICE_UUID, timeout)
                device = await BleakScanner.find_device_by_filter(
                    advertises_desk_service,
                    timeout=timeout,
                    service_uuids=[DESK_SERVICE_UUID],
                    **kwargs,
                )
        except (BleakError, OSError) as e:
            raise AdapterUnavailableError(f"Bluetooth adapter unavailable: {e}") from e

        if device is None:
            target = self.address or "advertising the desk service"
            raise DeskNotFoundError(f"No desk {target} found within {timeout:.1f}s. Is it powered on?")

        logger.info("Found desk %s (%s)", device.name, device.address)
        self.device = device
        return device

    async def connect(self, device: BLEDevice) -> None:
        """
        Connect to a discovered desk and resolve its characteristics.

        Raises:
            DeskConnectionError: If the connection cannot be established
            MissingCharacteristicError: If the device lacks the desk's GATT layout
        """
        self.device = device
        self._disconnecting = False
        self.client = BleakClient(
            device,
            timeout=self.connect_timeout,
            disconnected_callback=self._on_disconnect,
            **self._backend_kwargs(),
        )

        try:
            await self.client.connect()
        except asyncio.TimeoutError as e:
            raise DeskConnectionError(f"Connection to {device.address} timed out") from e
        except BleakError as e:
            raise DeskConnectionError(f"BLE error connecting to {device.address}: {e}") from e

        self._connected = True
        logger.info("Connected to %s", device.address)

        try:
            self._resolve_characteristics()
        except MissingCharacteristicError:
            await self.disconnect()
            raise

    def _resolve_characteristics(self):
        self._characteristics.clear()
        for ref, uuid in CHARACTERISTIC_UUIDS.items():
            characteristic = self.client.services.get_characteristic(uuid)
            if characteristic is not None:
                self._characteristics[ref] = characteristic

        missing = [ref.value for ref in REQUIRED_CHARACTERISTICS if ref not in self._characteristics]
        if missing:
            raise MissingCharacteristicError(
                f"Device {self.device.address} lacks characteristic(s) {', '.join(missing)}; "
                "is this an Uplift desk?"
            )

    def has_characteristic(self, ref: CharacteristicRef) -> bool:
        return ref in self._characteristics

    def _characteristic(self, ref: CharacteristicRef) -> BleakGATTCharacteristic:
        if not self._connected or self.client is None:
            raise DeskConnectionError("Not connected")
        try:
            return self._characteristics[ref]
        except KeyError:
            raise MissingCharacteristicError(f"Characteristic {ref.value} not resolved") from None

    def _on_disconnect(self, client: BleakClient):
        """Handle unexpected disconnection."""
        was_connected = self._connected
        self._connected = False
        if was_connected and not self._disconnecting:
            logger.warning("Desk disconnected unexpectedly")
        self._end_subscriptions()

    async def read(self, ref: CharacteristicRef) -> bytes:
        """One-shot read of a characteristic."""
        characteristic = self._characteristic(ref)
        try:
            data = await self.client.read_gatt_char(characteristic)
        except BleakError as e:
            raise DeskReadError(f"Failed to read {ref.value}: {e}") from e
        logger.debug("Read %s: %s", ref.value, bytes(data).hex())
        return bytes(data)

    async def write_command(self, payload: bytes) -> None:
        """
        Write a packet to the command characteristic.

        Success only means the BLE stack accepted the write; the desk does
        not acknowledge commands.
        """
        characteristic = self._characteristic(CharacteristicRef.COMMAND_WRITE)
        async with self._write_lock:
            try:
                await self.client.write_gatt_char(characteristic, payload, response=False)
            except BleakError as e:
                raise DeskWriteError(f"Failed to write command: {e}") from e
        logger.debug("Wrote command: %s", bytes(payload).hex())

    def _height_callback(self, sender: BleakGATTCharacteristic, data: bytearray):
        payload = bytes(data)
        for queue in self._subscribers:
            queue.put_nowait(payload)

    async def subscribe_height(
        self, on_subscribed: Callable[[], Awaitable[None]] | None = None
    ) -> AsyncIterator[bytes]:
        """
        Yield raw height payloads as notifications arrive.

        Args:
            on_subscribed: Awaited once notifications are enabled, before the
                first payload is waited for

        The stream ends when the link drops, unsubscribe_height() is called
        or the link is disconnected.
        """
        characteristic = self._characteristic(CharacteristicRef.HEIGHT_NOTIFY)
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)

        try:
            if not self._notifying:
                try:
                    await self.client.start_notify(characteristic, self._height_callback)
                except BleakError as e:
                    raise DeskReadError(f"Failed to subscribe to height: {e}") from e
                self._notifying = True
                logger.debug("Height notifications enabled")

            if on_subscribed is not None:
                await on_subscribed()

            while True:
                payload = await queue.get()
                if payload is _END_OF_STREAM:
                    break
                yield payload
        finally:
            self._subscribers.remove(queue)
            if not self._subscribers:
                await self._stop_notify()

    def unsubscribe_height(self) -> None:
        """End every active height subscription."""
        self._end_subscriptions()

    def _end_subscriptions(self):
        for queue in self._subscribers:
            queue.put_nowait(_END_OF_STREAM)

    async def _stop_notify(self):
        if not self._notifying:
            return
        self._notifying = False
        if self._connected and self.client:
            with suppress(BleakError):
                await self.client.stop_notify(self._characteristics[CharacteristicRef.HEIGHT_NOTIFY])
            logger.debug("Height notifications disabled")

    async def disconnect(self) -> None:
        """Disconnect from the desk gracefully."""
        self._disconnecting = True
        self._end_subscriptions()
        if self.client:
            with suppress(BleakError, asyncio.TimeoutError, OSError):
                await self._stop_notify()
                await self.client.disconnect()
            if self._connected:
                logger.info("Disconnected from %s", self.device.address if self.device else "desk")
        self._connected = False
        self._characteristics.clear()
