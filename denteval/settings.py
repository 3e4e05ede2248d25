"""Application settings loaded from environment variables."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the DentEval backend."""

    model_config = SettingsConfigDict(env_prefix="DENTEVAL_", extra="ignore")

    app_name: str = "DentEval API"

    # OpenAI vision evaluation
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("DENTEVAL_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    openai_model: str = "gpt-4.1-mini"
    openai_timeout_seconds: float = 90.0
    openai_mock: bool = Field(
        default=False,
        validation_alias=AliasChoices("DENTEVAL_OPENAI_MOCK", "OPENAI_MOCK"),
    )

    # Upload handling
    max_upload_mb: int = 15
    max_image_width: int = 1600
    jpeg_quality: int = 85

    # In-memory evaluation sessions
    max_sessions: int = 256

    # CORS and API key gate
    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("DENTEVAL_CORS_ALLOW_ORIGINS", "CORS_ALLOW_ORIGINS"),
    )
    backend_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("DENTEVAL_BACKEND_API_KEY", "BACKEND_API_KEY"),
    )

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key.strip())

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> list[str]:
        if self.cors_allow_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


settings = Settings()
