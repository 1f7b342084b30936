"""Status definitions and exceptions for ExpenseClient.

This module provides:
    - Status: enumeration of possible client states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions raised by the settings, storage, session and service layers
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of client status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ClientConfigNotFound = enum.auto()
    ClientConfigInvalid = enum.auto()

    # Local storage status
    StorageInvalid = enum.auto()

    # Input status
    ValidationFailed = enum.auto()

    # Session status
    ReauthenticationRequired = enum.auto()

    # Remote API status
    ApiError = enum.auto()
    ServiceUnavailable = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Something went wrong.',
    Status.Okay: 'Everything is okay.',

    Status.ClientConfigNotFound: 'Could not find the client config.',
    Status.ClientConfigInvalid: 'The client config seems to be incomplete, or contains invalid values.',

    Status.StorageInvalid: 'The local storage could not be opened. Try signing in again.',

    Status.ValidationFailed: 'Please check the form fields.',

    Status.ReauthenticationRequired: 'Session Expired. Please login again.',

    Status.ApiError: 'The server rejected the request.',
    Status.ServiceUnavailable: 'Network error. Please try again.',
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
    """Base exception for status-based errors in ExpenseClient.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        message (str): The additional context passed by the caller, if any.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        self.message = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(message or self.status_message)

    @property
    def user_message(self) -> str:
        """The text shown to the user: the caller's message when given, else the status message."""
        return self.message or self.status_message


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ClientConfigNotFoundException(BaseStatusException):
    """Exception raised when the client configuration file cannot be found."""
    status = Status.ClientConfigNotFound


class ClientConfigInvalidException(BaseStatusException):
    """Exception raised when the client configuration is invalid or malformed."""
    status = Status.ClientConfigInvalid


class StorageInvalidException(BaseStatusException):
    """Exception raised when the local key-value store cannot be opened or recreated."""
    status = Status.StorageInvalid


class ValidationException(BaseStatusException):
    """Exception raised when a form field is empty or invalid. Never sent to the network."""
    status = Status.ValidationFailed


class ReauthenticationRequiredException(BaseStatusException):
    """Exception raised when the session is gone and the user must sign in again.

    The stored session has already been cleared when this is raised.
    """
    status = Status.ReauthenticationRequired


class ApiException(BaseStatusException):
    """Exception raised when the remote API answers with a non-success status.

    Attributes:
        status_code (int): HTTP status code of the rejected response, if any.
    """
    status = Status.ApiError

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the remote API cannot be reached (no response)."""
    status = Status.ServiceUnavailable
