"""Status definitions and exceptions for SitePresets.

This module provides:
    - Status: enumeration of possible operation outcomes
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., MalformedDocumentException) for error handling in the engine
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of operation status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Nothing applied, nothing listed
    NothingToDo = enum.auto()

    # Record lookup
    PresetNotFound = enum.auto()
    ApplicationNotFound = enum.auto()

    # Document status
    MalformedDocument = enum.auto()

    # Live configuration status
    WriteFailure = enum.auto()
    ConfigInvalid = enum.auto()

    # Registry status
    RegistryInvalid = enum.auto()

    # Persistence status
    StoreUnavailable = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',
    Status.Okay: 'Everything is okay.',

    Status.NothingToDo: 'Nothing to do.',

    Status.PresetNotFound: 'Preset not found.',
    Status.ApplicationNotFound: 'Preset application record not found.',

    Status.MalformedDocument: 'The preset document is malformed and could not be read.',

    Status.WriteFailure: 'The setting could not be written to the live configuration.',
    Status.ConfigInvalid: 'The live configuration file is missing or contains invalid values.',

    Status.RegistryInvalid: 'The setting registry is incomplete, or contains invalid descriptors.',

    Status.StoreUnavailable: 'The preset store is unavailable.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in SitePresets.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.message = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class PresetNotFoundException(BaseStatusException):
    """Exception raised when a preset id or name cannot be resolved."""
    status = Status.PresetNotFound


class ApplicationNotFoundException(BaseStatusException):
    """Exception raised when a preset application record cannot be resolved."""
    status = Status.ApplicationNotFound


class MalformedDocumentException(BaseStatusException):
    """Exception raised when a preset document is structurally invalid."""
    status = Status.MalformedDocument


class WriteFailureException(BaseStatusException):
    """Exception raised when the live configuration rejects a write."""
    status = Status.WriteFailure


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the live configuration file cannot be loaded."""
    status = Status.ConfigInvalid


class RegistryInvalidException(BaseStatusException):
    """Exception raised when a setting descriptor file is invalid."""
    status = Status.RegistryInvalid


class StoreUnavailableException(BaseStatusException):
    """Exception raised when the preset database cannot be reached."""
    status = Status.StoreUnavailable
