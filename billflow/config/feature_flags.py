from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    ENABLE_STRIPE: bool = True

    model_config = SettingsConfigDict(env_prefix="FEATURE_", case_sensitive=True)


feature_flags = FeatureFlags()
