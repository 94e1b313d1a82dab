"""
Configuration management for the Teams bot provisioner.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class AzureConfig(BaseSettings):
    """Azure-specific configuration settings."""

    model_config = _ENV

    subscription_id: Optional[str] = Field(None, validation_alias="AZURE_SUBSCRIPTION_ID")
    tenant_id: Optional[str] = Field(None, validation_alias="AZURE_TENANT_ID")
    client_id: Optional[str] = Field(None, validation_alias="AZURE_CLIENT_ID")
    client_secret: Optional[str] = Field(None, validation_alias="AZURE_CLIENT_SECRET")

    default_location: str = Field("westus", validation_alias="DEFAULT_LOCATION")

    @property
    def has_service_principal(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


class ProvisioningConfig(BaseSettings):
    """Knobs for the provisioning flows."""

    model_config = _ENV

    secret_validity_years: int = Field(2, ge=1, le=5, validation_alias="SECRET_VALIDITY_YEARS")
    propagation_delay_seconds: float = Field(2.0, ge=0, validation_alias="PROPAGATION_DELAY_SECONDS")
    credentials_dir: str = Field(".", validation_alias="CREDENTIALS_DIR")


class ManifestConfig(BaseSettings):
    """Branding strings for the Teams app manifest."""

    model_config = _ENV

    developer_name: str = Field("Contoso", validation_alias="MANIFEST_DEVELOPER_NAME")
    website_url: str = Field("https://www.example.com", validation_alias="MANIFEST_WEBSITE_URL")
    privacy_url: str = Field("https://www.example.com/privacy", validation_alias="MANIFEST_PRIVACY_URL")
    terms_of_use_url: str = Field("https://www.example.com/terms", validation_alias="MANIFEST_TERMS_URL")
    short_description: str = Field("A Microsoft Teams bot", validation_alias="MANIFEST_SHORT_DESCRIPTION")
    full_description: Optional[str] = Field(None, validation_alias="MANIFEST_FULL_DESCRIPTION")
    accent_color: str = Field("#4F6BED", validation_alias="MANIFEST_ACCENT_COLOR")
    app_version: str = Field("1.0.0", validation_alias="MANIFEST_APP_VERSION")


class MonitoringConfig(BaseSettings):
    """Logging configuration."""

    model_config = _ENV

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")


class Config(BaseSettings):
    """Main configuration class that combines all settings."""

    model_config = _ENV

    azure: AzureConfig = Field(default_factory=AzureConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    manifest: ManifestConfig = Field(default_factory=ManifestConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


# Global configuration instance
config = Config()
