"""
Azure client for the resource-manager side of bot provisioning.
"""

import logging
from typing import Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.botservice import AzureBotService
from azure.mgmt.botservice.models import (
    Bot,
    BotChannel,
    BotProperties,
    MsTeamsChannel,
    MsTeamsChannelProperties,
    Sku,
)
from azure.mgmt.resource import ResourceManagementClient

from .exceptions import RemoteCallError
from .models import AppType, BotResource
from .session import AzureSession


BOT_LOCATION = "global"
BOT_KIND = "azurebot"
BOT_SKU = "F0"
TEAMS_CHANNEL = "MsTeamsChannel"


class AzureClient:
    """Azure client for resource groups, bot services and channels."""

    def __init__(self, session: AzureSession):
        """Initialize the management clients from a logged-in session."""
        self.session = session
        self.subscription_id = session.subscription_id

        self.resource_client = ResourceManagementClient(
            credential=session.credential,
            subscription_id=self.subscription_id
        )

        self.bot_client = AzureBotService(
            credential=session.credential,
            subscription_id=self.subscription_id
        )

        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_resource(bot: Bot, resource_group: str, name: str) -> BotResource:
        props = bot.properties
        return BotResource(
            name=bot.name or name,
            resource_group=resource_group,
            endpoint=props.endpoint or "",
            app_id=props.msa_app_id,
            app_type=props.msa_app_type,
            tenant_id=props.msa_app_tenant_id,
            resource_id=bot.id,
        )

    def _remote_error(self, action: str, error: AzureError) -> RemoteCallError:
        """Log a management-plane failure and translate it."""
        self.logger.error(f"{action}: {error}")
        return RemoteCallError(f"{action}: {error.message}", status_code=getattr(error, "status_code", None))

    def ensure_resource_group(self, resource_group: str, location: str) -> bool:
        """
        Ensure the resource group exists.

        Returns:
            True if it had to be created, False if it already existed
        """
        try:
            if self.resource_client.resource_groups.check_existence(resource_group):
                return False
            self.resource_client.resource_groups.create_or_update(
                resource_group,
                {"location": location}
            )
            return True
        except AzureError as e:
            raise self._remote_error(f"Failed to create resource group {resource_group}", e) from e

    def _get_raw_bot(self, resource_group: str, name: str) -> Optional[Bot]:
        try:
            return self.bot_client.bots.get(resource_group, name)
        except ResourceNotFoundError:
            return None
        except AzureError as e:
            if getattr(e, "status_code", None) == 404:
                return None
            raise self._remote_error(f"Failed to read bot {name}", e) from e

    def get_bot(self, resource_group: str, name: str) -> Optional[BotResource]:
        """Return the bot, or None if the resource group or bot does not exist."""
        bot = self._get_raw_bot(resource_group, name)
        return self._to_resource(bot, resource_group, name) if bot else None

    def create_bot(
        self,
        resource_group: str,
        name: str,
        app_id: str,
        tenant_id: str,
        endpoint: str,
    ) -> BotResource:
        """Create a single-tenant Azure Bot bound to an existing app registration."""
        parameters = Bot(
            location=BOT_LOCATION,
            kind=BOT_KIND,
            sku=Sku(name=BOT_SKU),
            properties=BotProperties(
                display_name=name,
                endpoint=endpoint,
                msa_app_id=app_id,
                msa_app_type=AppType.SINGLE_TENANT.value,
                msa_app_tenant_id=tenant_id,
            ),
        )

        try:
            bot = self.bot_client.bots.create(resource_group, name, parameters)
        except AzureError as e:
            raise self._remote_error(f"Failed to create bot {name}", e) from e

        self.logger.info(f"Created bot {name} in {resource_group}")
        return self._to_resource(bot, resource_group, name)

    def update_bot_endpoint(self, resource_group: str, name: str, endpoint: str) -> Optional[BotResource]:
        """
        Overwrite the messaging endpoint of an existing bot.

        Returns:
            The updated bot, or None if it does not exist
        """
        bot = self._get_raw_bot(resource_group, name)
        if bot is None:
            return None

        bot.properties.endpoint = endpoint
        try:
            updated = self.bot_client.bots.create(resource_group, name, bot)
        except AzureError as e:
            raise self._remote_error(f"Failed to update bot {name}", e) from e
        return self._to_resource(updated, resource_group, name)

    def delete_bot(self, resource_group: str, name: str):
        try:
            self.bot_client.bots.delete(resource_group, name)
        except AzureError as e:
            raise self._remote_error(f"Failed to delete bot {name}", e) from e
        self.logger.info(f"Deleted bot {name} from {resource_group}")

    def enable_teams_channel(self, resource_group: str, name: str):
        """Enable the Microsoft Teams channel. Safe to call again."""
        parameters = BotChannel(
            location=BOT_LOCATION,
            properties=MsTeamsChannel(properties=MsTeamsChannelProperties(is_enabled=True)),
        )
        try:
            self.bot_client.channels.create(resource_group, name, TEAMS_CHANNEL, parameters)
        except AzureError as e:
            raise self._remote_error(f"Failed to enable Teams channel on {name}", e) from e
