"""Settings via pydantic-settings with GROQCHAT_ env prefix.

The Groq API key reads from the unprefixed GROQ_API_KEY env var, the same
name the hosted provider's own tooling uses, so a single .env file works
for both.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from groqchat.catalog import DEFAULT_MODE, DEFAULT_MODELS, ModeCatalog


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GROQCHAT_", env_file=".env", extra="ignore")

    # Provider
    groq_api_key: str = Field("", validation_alias="GROQ_API_KEY")
    api_base_url: str = "https://api.groq.com/openai"
    api_timeout_connect: float = 10.0  # seconds
    api_timeout_read: float = 120.0  # seconds

    # Streaming
    inactivity_timeout: float = Field(30.0, gt=0)  # seconds without a chunk before errored(timeout)

    # Mode catalog (JSON object in env: GROQCHAT_MODELS='{"fast": "..."}')
    models: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODELS))
    default_mode: str = DEFAULT_MODE

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    # Console client target (the /api/chat route of a running server)
    relay_url: str = "http://127.0.0.1:8000"

    @model_validator(mode="after")
    def _validate_default_mode(self) -> "Settings":
        if self.default_mode not in self.models:
            raise ValueError(
                f"default_mode '{self.default_mode}' is not in models "
                f"({', '.join(sorted(self.models))})"
            )
        return self

    def catalog(self) -> ModeCatalog:
        return ModeCatalog.from_mapping(self.models)
