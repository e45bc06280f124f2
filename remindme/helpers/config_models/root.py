from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from remindme.helpers.config_models.monitoring import MonitoringModel
from remindme.helpers.config_models.storage import StorageModel


class RootModel(BaseSettings):
    # Pydantic settings
    model_config = SettingsConfigDict(
        env_ignore_empty=True,
        env_nested_delimiter="__",
        env_prefix="REMINDME_",
    )

    # Immutable fields
    version: str = Field(default="0.0.0-unknown", frozen=True)
    # Editable fields
    monitoring: MonitoringModel = (
        MonitoringModel()
    )  # Object is fully defined by default
    storage: StorageModel = StorageModel()  # Object is fully defined by default

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],  # noqa: ARG003
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Customise the order of the settings sources.

        Order is now:
        1. Environment variables
        2. .env file
        3. Docker secrets
        4. Initial settings

        See: https://docs.pydantic.dev/latest/concepts/pydantic_settings/#changing-priority
        """
        return env_settings, dotenv_settings, file_secret_settings, init_settings
