"""Exceptions raised while talking to the desk."""


class DeskError(Exception):
    """Base exception for desk errors."""

    kind = "DeskError"


class AdapterUnavailableError(DeskError):
    """Raised when the local Bluetooth adapter cannot be used."""

    kind = "AdapterUnavailable"


class DeskNotFoundError(DeskError):
    """Raised when no desk advertises before the discovery timeout."""

    kind = "NotFound"


class DeskConnectionError(DeskError):
    """Raised when connection to desk fails."""

    kind = "ConnectFailed"


class MissingCharacteristicError(DeskConnectionError):
    """Raised when the connected device lacks the desk's GATT layout."""

    kind = "MissingCharacteristic"


class DeskCommunicationError(DeskError):
    """Raised when BLE communication fails during operation."""

    kind = "CommunicationFailed"


class DeskReadError(DeskCommunicationError):
    kind = "ReadFailed"


class DeskWriteError(DeskCommunicationError):
    kind = "WriteFailed"


class HeightOutOfRangeError(DeskError):
    """Raised for heights outside the desk's travel envelope."""

    kind = "OutOfRange"


class DeskCancelledError(DeskError):
    """Recorded when the user interrupts a running operation."""

    kind = "Cancelled"
