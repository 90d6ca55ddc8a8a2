# aranet_errors.py
"""
Exception hierarchy shared by the protocol client, the device layer and
the store. Callers can catch ``AranetError`` to handle every failure the
sync can raise.
"""


class AranetError(Exception):
    """Base class for every error raised by this project."""


class NotConnected(AranetError):
    """An operation needed an open session but the device is not connected."""

    def __init__(self, message: str = "device is not connected"):
        super().__init__(message)


class InvalidData(AranetError):
    """A response was malformed, too short, or could not be decoded."""


class CharacteristicNotFound(InvalidData):
    def __init__(self, uuid: str):
        super().__init__(f"characteristic {uuid} not found on device")
        self.uuid = uuid


class OperationTimeout(AranetError):
    """The operation did not finish within its time bound."""

    def __init__(self, operation: str, seconds: float):
        super().__init__(f"{operation} timed out after {seconds:g} s")
        self.operation = operation
        self.seconds = seconds


# ``Timeout`` is the name used throughout the sync documentation.
Timeout = OperationTimeout


class DeviceNotFound(AranetError):
    """The device could not be discovered or refused the connection."""


class WriteFailed(AranetError):
    def __init__(self, uuid: str, reason: str):
        super().__init__(f"write to {uuid} failed: {reason}")
        self.uuid = uuid


class InvalidConfig(ValueError, AranetError):
    """A configuration value is out of range or unparseable."""


class StoreError(AranetError):
    """The history database could not complete a read or write."""
