"""Mode catalog -- human-readable mode keys mapped to backend model ids.

The catalog is loaded once (from Settings) and validated at load time:
every key and model id must be a non-empty string. After that the set of
valid keys is closed and lookups never re-derive it.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, field_validator

from groqchat.errors import ValidationError

DEFAULT_MODELS: dict[str, str] = {
    "fast": "llama-3.1-8b-instant",
    "default": "llama-3.3-70b-versatile",
    "reasoning": "openai/gpt-oss-120b",
    "browserLite": "openai/gpt-oss-20b",
    "safety": "meta-llama/llama-guard-4-12b",
    "compound": "groq/compound",
}

DEFAULT_MODE = "default"


class ModeCatalog(BaseModel):
    """Immutable mode key -> model id lookup."""

    model_config = ConfigDict(frozen=True)

    models: dict[str, str]

    @field_validator("models")
    @classmethod
    def _validate_models(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("mode catalog must define at least one mode")
        for key, model_id in value.items():
            if not key.strip():
                raise ValueError("mode keys must be non-empty")
            if not model_id.strip():
                raise ValueError(f"mode '{key}' has an empty model id")
        return dict(value)

    @classmethod
    def from_mapping(cls, models: Mapping[str, str]) -> ModeCatalog:
        return cls(models=dict(models))

    def resolve(self, mode_key: str) -> str:
        """Return the backend model id for mode_key.

        Raises ValidationError for keys outside the catalog.
        """
        try:
            return self.models[mode_key]
        except (KeyError, TypeError):
            raise ValidationError(
                f"Unknown mode {mode_key!r}. Valid: {', '.join(sorted(self.models))}"
            ) from None

    def keys(self) -> frozenset[str]:
        return frozenset(self.models)

    def as_dict(self) -> dict[str, str]:
        return dict(self.models)

    def __contains__(self, mode_key: object) -> bool:
        return isinstance(mode_key, str) and mode_key in self.models

    def __len__(self) -> int:
        return len(self.models)
