"""Shared fixtures: a provisioner wired to mocked Graph and ARM clients."""

import io
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from teams_bot_provisioner.azure_client import AzureClient
from teams_bot_provisioner.config import AzureConfig, Config, ProvisioningConfig
from teams_bot_provisioner.graph_client import GraphClient
from teams_bot_provisioner.models import AppRegistration, BotResource, ClientSecret
from teams_bot_provisioner.provisioner import BotProvisioner
from teams_bot_provisioner.reporter import Reporter


TENANT_ID = "11111111-2222-3333-4444-555555555555"
SUBSCRIPTION_ID = "99999999-8888-7777-6666-555555555555"
APP_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"
OBJECT_ID = "00000000-1111-2222-3333-444444444444"
ENDPOINT = "https://acme.example.com/api/messages"


@pytest.fixture
def settings(tmp_path):
    return Config(
        azure=AzureConfig(default_location="westus"),
        provisioning=ProvisioningConfig(
            propagation_delay_seconds=0,
            credentials_dir=str(tmp_path),
        ),
    )


@pytest.fixture
def session():
    fake = MagicMock()
    fake.settings = AzureConfig()
    fake.tenant_id = TENANT_ID
    fake.subscription_id = SUBSCRIPTION_ID
    fake.subscription_name = "Contoso Dev"
    fake.is_logged_in = True
    return fake


@pytest.fixture
def app_registration():
    return AppRegistration(app_id=APP_ID, object_id=OBJECT_ID, display_name="acme-bot")


@pytest.fixture
def bot_resource():
    return BotResource(
        name="acme-bot",
        resource_group="acme-rg",
        endpoint=ENDPOINT,
        app_id=APP_ID,
        app_type="SingleTenant",
        tenant_id=TENANT_ID,
    )


@pytest.fixture
def remote():
    """Graph and ARM mocks attached to one manager so call order is visible."""
    manager = MagicMock()
    graph = MagicMock(spec=GraphClient)
    azure = MagicMock(spec=AzureClient)
    manager.attach_mock(graph, "graph")
    manager.attach_mock(azure, "azure")

    graph.get_signed_in_user.return_value = "admin@contoso.com"
    graph.find_applications.return_value = []
    graph.create_application.return_value = AppRegistration(
        app_id=APP_ID, object_id=OBJECT_ID, display_name="acme-bot"
    )
    graph.add_password.return_value = ClientSecret(
        key_id="key-1",
        secret_text="s3cr3t~value",
        end_date_time=datetime(2028, 10, 17, tzinfo=timezone.utc),
    )
    graph.add_required_permission.return_value = True
    graph.ensure_service_principal.return_value = {"id": "sp-1", "appId": APP_ID}

    azure.ensure_resource_group.return_value = False
    azure.create_bot.side_effect = lambda rg, name, app_id, tenant_id, endpoint: BotResource(
        name=name,
        resource_group=rg,
        endpoint=endpoint,
        app_id=app_id,
        app_type="SingleTenant",
        tenant_id=tenant_id,
    )
    return manager


@pytest.fixture
def reporter():
    return Reporter(Console(file=io.StringIO(), width=200, color_system=None))


@pytest.fixture
def provisioner(session, reporter, settings, remote):
    return BotProvisioner(
        session,
        reporter=reporter,
        settings=settings,
        graph=remote.graph,
        azure=remote.azure,
        sleep=MagicMock(),
    )


def output_of(reporter: Reporter) -> str:
    return reporter.console.file.getvalue()
