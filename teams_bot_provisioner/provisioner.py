"""
Main provisioner for Teams bot identities and Azure Bot resources.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional, Type, TypeVar

import pydantic

from .azure_client import AzureClient
from .config import Config, config as default_config
from .exceptions import (
    ConflictError,
    NotFoundError,
    OperationCancelled,
    ProvisionerError,
    RemoteCallError,
    ValidationError,
)
from .graph_client import GraphClient, GRAPH_API_APP_ID, USER_READ_ALL_ROLE_ID
from .models import (
    BotResource,
    BotState,
    CreateBotRequest,
    CredentialsRecord,
    RotateSecretRequest,
    SecretRotation,
    TeardownRequest,
    UpdateEndpointRequest,
)
from .reporter import Reporter
from .rollback import Rollback
from .session import AzureSession


RequestT = TypeVar("RequestT", bound=pydantic.BaseModel)


def parse_request(model: Type[RequestT], **values) -> RequestT:
    """Build a request model, turning pydantic errors into ValidationError."""
    try:
        return model(**values)
    except pydantic.ValidationError as e:
        messages = [err["msg"].replace("Value error, ", "", 1) for err in e.errors()]
        raise ValidationError("; ".join(messages), step="validate input") from e


class BotProvisioner:
    """Drives the create, update-endpoint, rotate-secret and teardown flows."""

    def __init__(
        self,
        session: AzureSession,
        reporter: Optional[Reporter] = None,
        settings: Optional[Config] = None,
        graph: Optional[GraphClient] = None,
        azure: Optional[AzureClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the provisioner around an explicit session."""
        self.session = session
        self.reporter = reporter or Reporter()
        self.settings = settings or default_config
        self._graph = graph
        self._azure = azure
        self._sleep = sleep
        self.state = BotState.ABSENT
        self.logger = logging.getLogger(__name__)

    @property
    def graph(self) -> GraphClient:
        if self._graph is None:
            self._graph = GraphClient(self.session.credential)
        return self._graph

    @property
    def azure(self) -> AzureClient:
        if self._azure is None:
            self._azure = AzureClient(self.session)
        return self._azure

    @contextmanager
    def _step(self, name: str):
        """Tag any provisioner error raised inside with the step name."""
        try:
            yield
        except ProvisionerError as e:
            if e.step is None:
                e.step = name
            raise

    def _wait_for_propagation(self):
        delay = self.settings.provisioning.propagation_delay_seconds
        if delay:
            self._sleep(delay)

    def _login(self):
        self.reporter.info("Checking Azure login status...")
        with self._step("login"):
            self.session.login(
                on_interactive=lambda: self.reporter.warning("Not logged into Azure. Initiating login...")
            )
            user = self.graph.get_signed_in_user() or self.session.settings.client_id or "service principal"
        self.reporter.success(f"Logged in as: {user}")
        self.reporter.info(
            f"Using subscription: {self.session.subscription_name} ({self.session.subscription_id})"
        )

    def _require_bot(self, resource_group: str, name: str) -> BotResource:
        with self._step("look up bot"):
            bot = self.azure.get_bot(resource_group, name)
        if bot is None:
            raise NotFoundError(
                f"Bot '{name}' not found in resource group '{resource_group}'",
                step="look up bot",
            )
        return bot

    # ========== Create ==========

    def create_bot(
        self,
        bot_name: str,
        resource_group: str,
        endpoint: str,
        location: Optional[str] = None,
        skip_consent: bool = False,
    ) -> CredentialsRecord:
        """
        Register a Teams bot end to end.

        Args:
            bot_name: Name for both the app registration and the bot resource
            resource_group: Resource group, created if missing
            endpoint: HTTPS messaging endpoint
            location: Region for a newly created resource group
            skip_consent: Leave admin consent to be granted manually

        Returns:
            CredentialsRecord, also written to ``<bot>-credentials.json``

        Raises:
            ValidationError: Bad name or endpoint, before any remote call
            ConflictError: An app registration with this name already exists
            RemoteCallError: A fatal step failed; earlier steps were rolled back
        """
        request = parse_request(
            CreateBotRequest,
            name=bot_name,
            resource_group=resource_group,
            endpoint=endpoint,
            location=location,
            skip_consent=skip_consent,
        )
        location = request.location or self.settings.azure.default_location
        self.state = BotState.ABSENT

        self._login()
        tenant_id = self.session.tenant_id

        # Name guard runs before the resource group so a conflict mutates nothing
        self.reporter.info("Checking if app registration already exists...")
        with self._step("check existing app registration"):
            existing = self.graph.find_applications(request.name)
        if existing:
            raise ConflictError(
                f"App registration '{request.name}' already exists with App ID: {existing[0].app_id}. "
                "Use a different name or delete the existing one.",
                step="check existing app registration",
            )

        self.reporter.info(f"Checking resource group: {request.resource_group}")
        with self._step("ensure resource group"):
            created = self.azure.ensure_resource_group(request.resource_group, location)
        if created:
            self.reporter.success(f"Resource group created in {location}")
        else:
            self.reporter.success("Resource group already exists")

        with Rollback(self.reporter) as rollback:
            self.reporter.info(f"Creating Azure AD App Registration: {request.name}")
            with self._step("create app registration"):
                app = self.graph.create_application(request.name)
            rollback.push(
                f"delete app registration {app.app_id}",
                lambda: self._undo_registration(app.object_id),
            )
            self.state = BotState.REGISTERED
            self.reporter.success(f"App Registration created with ID: {app.app_id}")

            years = self.settings.provisioning.secret_validity_years
            self.reporter.info(f"Creating client secret (valid for {years} years)...")
            with self._step("create client secret"):
                secret = self.graph.add_password(app.object_id, years=years)
            self.state = BotState.SECRETED
            self.reporter.success("Client secret created")
            self._wait_for_propagation()

            self.reporter.info("Adding Microsoft Graph User.Read.All permission...")
            try:
                self.graph.add_required_permission(
                    app.object_id, GRAPH_API_APP_ID, USER_READ_ALL_ROLE_ID
                )
                self.reporter.success("Microsoft Graph User.Read.All permission added")
            except RemoteCallError as e:
                self.logger.warning(f"Adding permission failed: {e}")
                self.reporter.warning("Permission may already exist")
            self.state = BotState.PERMISSIONED

            self.reporter.info("Creating service principal...")
            with self._step("create service principal"):
                self.graph.ensure_service_principal(app.app_id)
            self._wait_for_propagation()

            self._grant_consent(request.name, app.app_id, request.skip_consent)

            self.reporter.info(f"Creating Azure Bot Service: {request.name}")
            with self._step("create bot resource"):
                bot = self.azure.create_bot(
                    request.resource_group,
                    request.name,
                    app_id=app.app_id,
                    tenant_id=tenant_id,
                    endpoint=request.endpoint,
                )
            self.state = BotState.BOT_CREATED
            self.reporter.success("Azure Bot Service created")

        self.reporter.info("Enabling Microsoft Teams channel...")
        try:
            self.azure.enable_teams_channel(request.resource_group, bot.name)
            self.state = BotState.CHANNEL_ENABLED
            self.reporter.success("Microsoft Teams channel enabled")
        except RemoteCallError as e:
            self.logger.warning(f"Enabling Teams channel failed: {e}")
            self.reporter.warning(
                "Failed to enable Teams channel. You may need to enable it manually in Azure Portal."
            )

        record = CredentialsRecord(
            bot_name=request.name,
            resource_group=request.resource_group,
            endpoint=request.endpoint,
            app_id=app.app_id,
            app_secret=secret.secret_text,
            tenant_id=tenant_id,
            subscription_id=self.session.subscription_id,
        )
        self._report_created(record)
        path = record.save(self.settings.provisioning.credentials_dir)
        self.reporter.info(f"Credentials also saved to: {path}")
        return record

    def _undo_registration(self, object_id: str):
        self.graph.delete_application(object_id)
        self.state = BotState.ABSENT

    def _grant_consent(self, bot_name: str, app_id: str, skip_consent: bool):
        remediation = (
            f"  Azure Portal > App registrations > {bot_name} > API permissions > Grant admin consent"
        )
        if skip_consent:
            self.reporter.warning("Skipping admin consent. Grant it manually in Azure Portal:")
            self.reporter.warning(remediation)
            return

        self.reporter.info("Granting admin consent for Microsoft Graph permissions...")
        try:
            self.graph.grant_admin_consent(app_id, GRAPH_API_APP_ID, USER_READ_ALL_ROLE_ID)
            self.reporter.success("Admin consent granted")
        except RemoteCallError as e:
            self.logger.warning(f"Admin consent failed: {e}")
            self.reporter.warning("Could not auto-grant admin consent. Please grant manually in Azure Portal:")
            self.reporter.warning(remediation)

    def _report_created(self, record: CredentialsRecord):
        self.reporter.banner("BOT REGISTRATION COMPLETE")
        self.reporter.fields([
            ("Bot Name", record.bot_name),
            ("Resource Group", record.resource_group),
            ("Messaging Endpoint", record.endpoint),
        ])
        self.reporter.credentials([
            ("App ID (MicrosoftAppId)", record.app_id),
            ("App Secret (MicrosoftAppPassword)", record.app_secret),
            ("Tenant ID (MicrosoftAppTenantId)", record.tenant_id),
        ])
        self.reporter.info("Add these to your bot's configuration (appsettings.json, .env, etc.)")

    # ========== Update endpoint ==========

    def update_endpoint(self, bot_name: str, resource_group: str, endpoint: str) -> BotResource:
        """Point an existing bot at a new HTTPS messaging endpoint."""
        request = parse_request(
            UpdateEndpointRequest, name=bot_name, resource_group=resource_group, endpoint=endpoint
        )
        self._login()

        bot = self._require_bot(request.resource_group, request.name)
        self.reporter.info(f"Updating messaging endpoint: {bot.endpoint} -> {request.endpoint}")
        with self._step("update bot endpoint"):
            updated = self.azure.update_bot_endpoint(request.resource_group, request.name, request.endpoint)
        if updated is None:
            raise NotFoundError(f"Bot '{request.name}' disappeared during update", step="update bot endpoint")

        self.reporter.success(f"Messaging endpoint updated to {updated.endpoint}")
        return updated

    # ========== Rotate secret ==========

    def rotate_secret(self, bot_name: str, resource_group: str, years: int = 2) -> SecretRotation:
        """
        Issue an additional client secret for the bot's app registration.

        Previously issued secrets are left valid until their own expiry.
        """
        request = parse_request(
            RotateSecretRequest, name=bot_name, resource_group=resource_group, years=years
        )
        self._login()

        bot = self._require_bot(request.resource_group, request.name)
        with self._step("look up app registration"):
            app = self.graph.get_application_by_app_id(bot.app_id)
        if app is None:
            raise NotFoundError(
                f"App registration {bot.app_id} linked to bot '{request.name}' not found",
                step="look up app registration",
            )

        self.reporter.info(f"Creating new client secret (valid for {request.years} years)...")
        with self._step("create client secret"):
            secret = self.graph.add_password(app.object_id, years=request.years)
        self.reporter.success("New client secret created")

        rotation = SecretRotation(
            bot_name=request.name,
            app_id=app.app_id,
            app_secret=secret.secret_text,
            tenant_id=bot.tenant_id or self.session.tenant_id,
            expires_on=secret.end_date_time,
        )
        self.reporter.credentials([
            ("App ID (MicrosoftAppId)", rotation.app_id),
            ("App Secret (MicrosoftAppPassword)", rotation.app_secret),
            ("Expires On", rotation.expires_on.strftime("%Y-%m-%d")),
        ])
        self.reporter.warning("Old secrets remain valid. Remove them in Azure Portal once the bot uses the new one.")
        return rotation

    # ========== Teardown ==========

    def teardown(
        self,
        bot_name: str,
        resource_group: str,
        keep_app: bool = False,
        skip_confirmation: bool = False,
        confirm: Optional[Callable[[str], bool]] = None,
    ) -> BotResource:
        """
        Delete the bot resource and, unless ``keep_app``, its app registration.

        Raises:
            NotFoundError: The bot does not exist; nothing is deleted
            OperationCancelled: The confirmation prompt was declined
        """
        request = parse_request(
            TeardownRequest,
            name=bot_name,
            resource_group=resource_group,
            keep_app=keep_app,
            skip_confirmation=skip_confirmation,
        )
        self._login()

        bot = self._require_bot(request.resource_group, request.name)

        if not request.skip_confirmation:
            target = "the bot resource" if request.keep_app else "the bot resource and its app registration"
            question = f"Delete {target} for '{request.name}' (App ID {bot.app_id})?"
            if confirm is None or not confirm(question):
                raise OperationCancelled("Teardown cancelled", step="confirm teardown")

        self.reporter.info(f"Deleting Azure Bot Service: {request.name}")
        with self._step("delete bot resource"):
            self.azure.delete_bot(request.resource_group, request.name)
        self.reporter.success("Azure Bot Service deleted")

        if request.keep_app:
            self.reporter.info(f"Keeping app registration {bot.app_id}")
            return bot

        with self._step("look up app registration"):
            app = self.graph.get_application_by_app_id(bot.app_id)
        if app is None:
            self.reporter.warning(f"App registration {bot.app_id} was already deleted")
            return bot

        self.reporter.info(f"Deleting app registration: {app.display_name} ({app.app_id})")
        with self._step("delete app registration"):
            self.graph.delete_application(app.object_id)
        self.reporter.success("App registration deleted")
        return bot
