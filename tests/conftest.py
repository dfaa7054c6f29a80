"""Shared fakes for the desk tests."""

from __future__ import annotations

import asyncio
import struct

import pytest

from uplift.codec import Height, HeightCodec
from uplift.errors import DeskWriteError
from uplift.link import CharacteristicRef
from uplift.protocol import MotorPulse


def raw_payload(raw: int) -> bytes:
    return struct.pack("<H", raw)


class FakeLink:
    """Stands in for DeskLink: records writes and serves canned reads."""

    def __init__(self, height_raw: int = 2800, name: bytes | None = b"Uplift Desk"):
        self.height_raw = height_raw
        self.name = name
        self.writes: list[bytes] = []
        self.fail_on: bytes | None = None
        self.is_connected = True
        self.notifications: asyncio.Queue | None = None
        self.name_error: Exception | None = None

    def has_characteristic(self, ref):
        return ref is not CharacteristicRef.NAME or self.name is not None

    async def read(self, ref):
        if ref is CharacteristicRef.NAME:
            if self.name_error is not None:
                raise self.name_error
            return self.name
        return raw_payload(self.height_raw)

    async def write_command(self, payload):
        if self.fail_on is not None and payload == self.fail_on:
            raise DeskWriteError("link lost")
        self.writes.append(payload)

    async def subscribe_height(self, on_subscribed=None):
        self.notifications = asyncio.Queue()
        if on_subscribed is not None:
            await on_subscribed()
        while True:
            payload = await self.notifications.get()
            if payload is None:
                break
            yield payload

    def unsubscribe_height(self):
        if self.notifications is not None:
            self.notifications.put_nowait(None)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.is_connected = False


class SimulatedDesk:
    """
    Protocol stand-in that moves a fixed distance per second of pulse.

    Advances `now` by each pulse's duration so controller deadlines can be
    exercised without sleeping.
    """

    def __init__(self, height: float, speed: float = 0.5):
        self.height = height
        self.speed = speed
        self.now = 0.0
        self.calls: list[tuple] = []
        self.codec = HeightCodec()

    def clock(self) -> float:
        return self.now

    async def query_height(self) -> Height:
        self.calls.append(("query",))
        return Height(round(self.height, 2))

    async def pulse(self, direction: MotorPulse, duration: float):
        self.calls.append(("pulse", direction, duration))
        step = self.speed * duration
        self.height += step if direction is MotorPulse.UP else -step
        self.now += duration

    async def stop(self):
        self.calls.append(("stop",))

    @property
    def pulses(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "pulse"]


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "UPLIFT_ADDRESS",
        "UPLIFT_ADAPTER",
        "UPLIFT_SCAN_TIMEOUT",
        "UPLIFT_CONNECT_TIMEOUT",
        "UPLIFT_TOLERANCE",
        "UPLIFT_SET_TIMEOUT",
        "UPLIFT_MAX_CORRECTIONS",
        "UPLIFT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
