"""
Uplift - Bluetooth Low Energy control for Uplift standing desks.

Presets, height queries, height streaming and best-effort positioning to an
arbitrary height.
"""

from uplift.codec import MAX_HEIGHT_IN, MIN_HEIGHT_IN, Height, HeightCodec
from uplift.controller import ControlResult, ControlState, HeightController
from uplift.errors import (
    AdapterUnavailableError,
    DeskCancelledError,
    DeskCommunicationError,
    DeskConnectionError,
    DeskError,
    DeskNotFoundError,
    DeskReadError,
    DeskWriteError,
    HeightOutOfRangeError,
    MissingCharacteristicError,
)
from uplift.link import CharacteristicRef, DeskLink
from uplift.protocol import DeskProtocol, MotorPulse, PresetCommand

__all__ = [
    # Height
    "Height",
    "HeightCodec",
    "MIN_HEIGHT_IN",
    "MAX_HEIGHT_IN",
    # Device
    "DeskLink",
    "CharacteristicRef",
    "DeskProtocol",
    "PresetCommand",
    "MotorPulse",
    "HeightController",
    "ControlResult",
    "ControlState",
    # Errors
    "DeskError",
    "AdapterUnavailableError",
    "DeskNotFoundError",
    "DeskConnectionError",
    "MissingCharacteristicError",
    "DeskCommunicationError",
    "DeskReadError",
    "DeskWriteError",
    "HeightOutOfRangeError",
    "DeskCancelledError",
]
