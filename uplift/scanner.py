"""
BLE Desk Scanner

Lists nearby desks advertising the Uplift desk service.
"""

from dataclasses import dataclass

from bleak import BleakScanner
from bleak.exc import BleakError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from uplift.errors import AdapterUnavailableError
from uplift.link import DESK_SERVICE_UUID


@dataclass
class ScannedDesk:
    """Information about a discovered desk."""

    name: str | None
    address: str
    rssi: int
    service_uuids: list[str] | None = None

    @property
    def is_desk(self) -> bool:
        if not self.service_uuids:
            return False
        return any(uuid.lower() == DESK_SERVICE_UUID for uuid in self.service_uuids)


async def scan_desks(timeout: float = 10.0, adapter: str | None = None) -> list[ScannedDesk]:
    """
    Scan for desks.

    Args:
        timeout: Scan duration in seconds
        adapter: Optional BlueZ adapter name

    Returns:
        Desks found, sorted by signal strength (strongest first)
    """
    kwargs = {"adapter": adapter} if adapter else {}
    try:
        discovered = await BleakScanner.discover(
            timeout=timeout, return_adv=True, service_uuids=[DESK_SERVICE_UUID], **kwargs
        )
    except (BleakError, OSError) as e:
        raise AdapterUnavailableError(f"BLE scan failed: {e}") from e

    desks: list[ScannedDesk] = []
    for address, (device, adv_data) in discovered.items():
        scanned = ScannedDesk(
            name=device.name,
            address=address,
            rssi=adv_data.rssi,
            service_uuids=adv_data.service_uuids or None,
        )
        # Some backends ignore the service filter
        if scanned.is_desk:
            desks.append(scanned)

    desks.sort(key=lambda d: d.rssi, reverse=True)
    return desks


def print_desks(desks: list[ScannedDesk], console: Console) -> None:
    """Print a table of discovered desks."""
    if not desks:
        console.print("No desks found. Make sure your desk is powered on.")
        return

    table = Table()
    table.add_column("Name")
    table.add_column("Address")
    table.add_column("RSSI", justify="right")

    for desk in desks:
        name = desk.name or "(unknown)"
        if len(name) > 24:
            name = name[:21] + "..."
        table.add_row(escape(name), desk.address, f"{desk.rssi} dBm")

    console.print(table)
