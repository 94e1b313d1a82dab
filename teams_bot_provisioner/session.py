"""
Authenticated Azure session shared by every provisioning call.

Resolves, once per invocation, the credential to use together with the
subscription and tenant it operates on. The session is passed explicitly
to the clients instead of being read from ambient CLI state.
"""

import logging
from typing import Callable, Optional

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import (
    ClientSecretCredential,
    DefaultAzureCredential,
    InteractiveBrowserCredential,
)
from azure.mgmt.resource import SubscriptionClient

from .config import AzureConfig
from .exceptions import AuthenticationError, RemoteCallError


ARM_SCOPE = "https://management.azure.com/.default"


class AzureSession:
    """Credential plus the subscription/tenant it is bound to."""

    def __init__(self, settings: AzureConfig):
        self.settings = settings
        self.credential = None
        self.subscription_id: Optional[str] = settings.subscription_id
        self.subscription_name: Optional[str] = None
        self.tenant_id: Optional[str] = settings.tenant_id
        self.interactive = False
        self.logger = logging.getLogger(__name__)

    @property
    def is_logged_in(self) -> bool:
        return self.credential is not None and self.subscription_id is not None

    def login(self, on_interactive: Optional[Callable[[], None]] = None) -> "AzureSession":
        """
        Make sure a working credential exists, logging in interactively if needed.

        Args:
            on_interactive: Called just before the browser login starts

        Returns:
            self, for chaining

        Raises:
            AuthenticationError: If neither the ambient nor the interactive
                credential can produce a token
        """
        if self.is_logged_in:
            return self

        credential = self._ambient_credential()
        if not self._can_get_token(credential):
            if self.settings.has_service_principal:
                raise AuthenticationError("Service principal credentials were rejected")
            self.logger.warning("No Azure login found, starting interactive browser login")
            if on_interactive:
                on_interactive()
            credential = InteractiveBrowserCredential(tenant_id=self.settings.tenant_id)
            self.interactive = True
            if not self._can_get_token(credential):
                raise AuthenticationError("Interactive Azure login failed")

        self.credential = credential
        self._resolve_subscription()
        return self

    def _ambient_credential(self):
        if self.settings.has_service_principal:
            return ClientSecretCredential(
                tenant_id=self.settings.tenant_id,
                client_id=self.settings.client_id,
                client_secret=self.settings.client_secret,
            )
        return DefaultAzureCredential(exclude_interactive_browser_credential=True)

    def _can_get_token(self, credential) -> bool:
        try:
            credential.get_token(ARM_SCOPE)
            return True
        except AzureError as e:
            self.logger.debug(f"Credential {type(credential).__name__} unavailable: {e}")
            return False

    def _list_subscriptions(self) -> list:
        try:
            return list(SubscriptionClient(self.credential).subscriptions.list())
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Could not list subscriptions: {e.message}", step="login") from e
        except AzureError as e:
            self.logger.error(f"Failed to list subscriptions: {e}")
            raise RemoteCallError(
                f"Failed to list subscriptions: {e.message}",
                step="login",
                status_code=getattr(e, "status_code", None),
            ) from e

    def _resolve_subscription(self):
        subscriptions = self._list_subscriptions()
        if self.subscription_id:
            match = next(
                (s for s in subscriptions if s.subscription_id == self.subscription_id),
                None,
            )
            if match is None:
                raise AuthenticationError(
                    f"Subscription {self.subscription_id} is not visible to the signed-in account"
                )
        else:
            enabled = [s for s in subscriptions if s.state == "Enabled"]
            if not enabled:
                raise AuthenticationError("The signed-in account has no enabled subscription")
            match = enabled[0]
            self.subscription_id = match.subscription_id

        self.subscription_name = match.display_name or self.subscription_id
        self.tenant_id = self.tenant_id or match.tenant_id
        self.logger.info(f"Using subscription {self.subscription_name} ({self.subscription_id})")
