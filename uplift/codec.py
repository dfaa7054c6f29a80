"""
Height encoding for the desk's height characteristic.

The desk reports its height as a 2-byte little-endian unsigned integer in
hundredths of an inch. Everything above this module works in inches.
"""

import struct
from decimal import Decimal
from dataclasses import dataclass

from uplift.errors import DeskReadError, HeightOutOfRangeError

# === CONSTANTS ===
HEIGHT_SCALE_IN = 0.01
HEIGHT_OFFSET_IN = 0.0
MIN_HEIGHT_IN = 24.0
MAX_HEIGHT_IN = 51.0

MM_PER_INCH = 25.4

_RAW_FORMAT = struct.Struct("<H")


def _decimal_places(value: float) -> int:
    exponent = Decimal(str(value)).normalize().as_tuple().exponent
    return max(0, -exponent)


@dataclass(frozen=True, order=True)
class Height:
    """A desk height in inches."""

    inches: float

    @property
    def millimeters(self) -> float:
        return self.inches * MM_PER_INCH

    def __str__(self) -> str:
        return f'{self.inches:.1f}"'


class HeightCodec:
    """Linear transform between device units and inches, with bounds checking."""

    def __init__(
        self,
        scale: float = HEIGHT_SCALE_IN,
        offset: float = HEIGHT_OFFSET_IN,
        minimum: float = MIN_HEIGHT_IN,
        maximum: float = MAX_HEIGHT_IN,
    ):
        self.scale = scale
        self.offset = offset
        self.minimum = minimum
        self.maximum = maximum
        # Decoded values carry no more precision than one device unit
        self.digits = max(_decimal_places(scale), _decimal_places(offset))

    def unpack(self, payload: bytes) -> int:
        """Extract the raw sample from a height characteristic payload."""
        if len(payload) < _RAW_FORMAT.size:
            raise DeskReadError(f"Height payload too short: {bytes(payload).hex()}")
        return _RAW_FORMAT.unpack_from(payload)[0]

    def decode(self, raw: int) -> Height:
        """
        Convert a raw sample to a Height.

        Raises:
            HeightOutOfRangeError: If the decoded value is outside the travel
                envelope (corrupt or misread data, never clamped)
        """
        inches = round(self.offset + raw * self.scale, self.digits)
        if not self.minimum <= inches <= self.maximum:
            raise HeightOutOfRangeError(
                f"Raw height {raw} decodes to {inches:.2f}\", "
                f"outside {self.minimum:.1f}-{self.maximum:.1f}\""
            )
        return Height(inches)

    def decode_payload(self, payload: bytes) -> Height:
        return self.decode(self.unpack(payload))

    def validate(self, height: Height) -> Height:
        """Check that a requested height lies within the travel envelope."""
        if not self.minimum <= height.inches <= self.maximum:
            raise HeightOutOfRangeError(
                f"{height} is outside the desk's range "
                f'({self.minimum:.1f}-{self.maximum:.1f}")'
            )
        return height

    def encode(self, height: Height) -> int:
        """Convert a Height back to device units (nearest unit)."""
        self.validate(height)
        return round((height.inches - self.offset) / self.scale)
