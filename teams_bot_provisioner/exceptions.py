"""Exceptions raised by the provisioning flows."""

from typing import Optional


class ProvisionerError(Exception):
    """Base exception for the provisioner."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class ValidationError(ProvisionerError):
    """Malformed input, rejected before any remote call."""
    pass


class ConflictError(ProvisionerError):
    """An app registration with the requested name already exists."""
    pass


class NotFoundError(ProvisionerError):
    """The bot (or its app registration) does not exist."""
    pass


class RemoteCallError(ProvisionerError):
    """A call to Azure Resource Manager or Microsoft Graph failed."""

    def __init__(self, message: str, step: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, step)
        self.status_code = status_code


class AuthenticationError(ProvisionerError):
    """No usable Azure credential could be obtained."""
    pass


class OperationCancelled(ProvisionerError):
    """The operator declined a confirmation prompt."""
    pass
