"""
Data models for bot provisioning requests, remote resources and credentials.
"""

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


BOT_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]{2,35}$")

MIN_SECRET_YEARS = 1
MAX_SECRET_YEARS = 5


class BotState(str, Enum):
    """Where a bot name sits in the create flow."""

    ABSENT = "absent"
    REGISTERED = "registered"
    SECRETED = "secreted"
    PERMISSIONED = "permissioned"
    BOT_CREATED = "bot_created"
    CHANNEL_ENABLED = "channel_enabled"


class AppType(str, Enum):
    """Bot identity tenancy modes."""

    SINGLE_TENANT = "SingleTenant"
    MULTI_TENANT = "MultiTenant"
    USER_ASSIGNED_MSI = "UserAssignedMSI"


def validate_bot_name(name: str) -> str:
    if not BOT_NAME_PATTERN.fullmatch(name or ""):
        raise ValueError(
            f"Invalid bot name '{name}': must start with a letter followed by "
            "2-35 letters, digits or hyphens"
        )
    return name


def validate_endpoint(endpoint: str) -> str:
    if not (endpoint or "").startswith("https://") or not urlparse(endpoint).hostname:
        raise ValueError("Messaging endpoint must start with https://")
    return endpoint


def _require_text(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} must not be empty")
    return value


class BotTarget(BaseModel):
    """A bot addressed by name inside a resource group."""

    name: str
    resource_group: str

    @field_validator("name")
    @classmethod
    def _name_present(cls, value: str) -> str:
        return _require_text(value, "Bot name")

    @field_validator("resource_group")
    @classmethod
    def _resource_group_present(cls, value: str) -> str:
        return _require_text(value, "Resource group")


class CreateBotRequest(BotTarget):
    """Request model for the create flow."""

    endpoint: str
    location: Optional[str] = None
    skip_consent: bool = False

    @field_validator("name")
    @classmethod
    def _name_pattern(cls, value: str) -> str:
        return validate_bot_name(value)

    @field_validator("endpoint")
    @classmethod
    def _https_endpoint(cls, value: str) -> str:
        return validate_endpoint(value)


class UpdateEndpointRequest(BotTarget):
    """Request model for the update-endpoint flow."""

    endpoint: str

    @field_validator("endpoint")
    @classmethod
    def _https_endpoint(cls, value: str) -> str:
        return validate_endpoint(value)


class RotateSecretRequest(BotTarget):
    """Request model for the rotate-secret flow."""

    years: int = 2

    @field_validator("years")
    @classmethod
    def _years_in_range(cls, value: int) -> int:
        if not MIN_SECRET_YEARS <= value <= MAX_SECRET_YEARS:
            raise ValueError(
                f"Secret validity must be between {MIN_SECRET_YEARS} and {MAX_SECRET_YEARS} years"
            )
        return value


class TeardownRequest(BotTarget):
    """Request model for the teardown flow."""

    keep_app: bool = False
    skip_confirmation: bool = False


class AppRegistration(BaseModel):
    """An Entra ID application registration."""

    app_id: str
    object_id: str
    display_name: str


class ClientSecret(BaseModel):
    """A password credential. ``secret_text`` is only known at creation time."""

    key_id: str
    secret_text: str
    end_date_time: datetime


class BotResource(BaseModel):
    """The Azure Bot Service record, reduced to what the flows use."""

    name: str
    resource_group: str
    endpoint: str
    app_id: str
    app_type: Optional[str] = None
    tenant_id: Optional[str] = None
    resource_id: Optional[str] = None


class CredentialsRecord(BaseModel):
    """Output of a successful create run, persisted as ``<bot>-credentials.json``."""

    model_config = ConfigDict(populate_by_name=True)

    bot_name: str = Field(alias="botName")
    resource_group: str = Field(alias="resourceGroup")
    endpoint: str
    app_id: str = Field(alias="appId")
    app_secret: str = Field(alias="appSecret")
    tenant_id: str = Field(alias="tenantId")
    subscription_id: str = Field(alias="subscriptionId")

    @staticmethod
    def filename(bot_name: str) -> str:
        return f"{bot_name}-credentials.json"

    def save(self, directory: str = ".") -> Path:
        """Write the record as JSON, readable by the owner only."""
        path = Path(directory) / self.filename(self.bot_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(json.dumps(self.model_dump(by_alias=True), indent=2) + "\n")
        # O_CREAT's mode only applies to new files
        os.chmod(path, 0o600)
        return path

    @classmethod
    def load(cls, bot_name: str, directory: str = ".") -> "CredentialsRecord":
        path = Path(directory) / cls.filename(bot_name)
        return cls.model_validate_json(path.read_text())


class SecretRotation(BaseModel):
    """A freshly issued secret for an existing bot identity."""

    model_config = ConfigDict(populate_by_name=True)

    bot_name: str = Field(alias="botName")
    app_id: str = Field(alias="appId")
    app_secret: str = Field(alias="appSecret")
    tenant_id: Optional[str] = Field(None, alias="tenantId")
    expires_on: datetime = Field(alias="expiresOn")
