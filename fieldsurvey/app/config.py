from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from fieldsurvey.app.errors import MissingCredential


PROVIDERS = ("openai", "gemini")

PROVIDER_DISPLAY_NAMES = {
    "openai": "OpenAI",
    "gemini": "Gemini",
}

PROVIDER_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    # Gemini exposes an OpenAI-compatible chat completions endpoint.
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
}

PROVIDER_KEY_URLS = {
    "openai": "https://platform.openai.com/api-keys",
    "gemini": "https://makersuite.google.com/app/apikey",
}


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _env_int(key: str, default: int) -> int:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    v = _env_str(key)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ProviderConfig:
    """
    Everything the matcher agent needs to reach one LLM provider.
    Built from Settings and passed explicitly; no global provider state.
    """

    provider: str
    model: str
    api_key: str = ""
    base_url: Optional[str] = None
    temperature: float = 0.3
    timeout_seconds: float = 60.0

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES.get(self.provider, self.provider)

    @property
    def key_url(self) -> str:
        return PROVIDER_KEY_URLS.get(self.provider, "")

    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def require_api_key(self) -> str:
        # Fail before any network call is attempted.
        if not self.has_api_key():
            raise MissingCredential(self.display_name, self.key_url)
        return self.api_key.strip()


@dataclass(frozen=True)
class Settings:
    # Core paths
    exports_dir: str
    catalog_path: str

    # Logging
    log_level: str
    log_json: bool

    # LLM provider selection + credentials
    llm_provider: str
    openai_model: str
    gemini_model: str
    openai_api_key: str
    gemini_api_key: str
    temperature: float
    request_timeout_seconds: int

    # Parsing / aggregation
    skip_invalid_matches: bool
    aggregation_workers: int

    @staticmethod
    def from_env() -> "Settings":
        # Read configuration from environment variables (and a local .env file).
        load_dotenv()

        provider = (_env_str("FIELDSURVEY_LLM_PROVIDER", "openai") or "openai").lower()
        if provider not in PROVIDERS:
            provider = "openai"

        return Settings(
            exports_dir=_env_str("FIELDSURVEY_EXPORTS_DIR", "SurveyExports") or "SurveyExports",
            catalog_path=_env_str("FIELDSURVEY_CATALOG_PATH", "questionnaire.json") or "questionnaire.json",

            log_level=_env_str("FIELDSURVEY_LOG_LEVEL", "INFO") or "INFO",
            log_json=_env_bool("FIELDSURVEY_LOG_JSON", True),

            llm_provider=provider,
            openai_model=_env_str("FIELDSURVEY_OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            gemini_model=_env_str("FIELDSURVEY_GEMINI_MODEL", "gemini-2.0-flash-exp") or "gemini-2.0-flash-exp",
            openai_api_key=_env_str("OPENAI_API_KEY", "") or "",
            gemini_api_key=_env_str("GEMINI_API_KEY", "") or "",
            temperature=_env_float("FIELDSURVEY_TEMPERATURE", 0.3),
            request_timeout_seconds=_env_int("FIELDSURVEY_REQUEST_TIMEOUT_SECONDS", 60),

            skip_invalid_matches=_env_bool("FIELDSURVEY_SKIP_INVALID_MATCHES", False),
            aggregation_workers=max(1, _env_int("FIELDSURVEY_AGGREGATION_WORKERS", 4)),
        )

    def provider_config(self, provider: Optional[str] = None) -> ProviderConfig:
        name = (provider or self.llm_provider).lower()
        if name not in PROVIDERS:
            raise ValueError(f"Unknown LLM provider: {name!r}")

        if name == "gemini":
            model, api_key = self.gemini_model, self.gemini_api_key
        else:
            model, api_key = self.openai_model, self.openai_api_key

        return ProviderConfig(
            provider=name,
            model=model,
            api_key=api_key,
            base_url=PROVIDER_BASE_URLS[name],
            temperature=self.temperature,
            timeout_seconds=float(self.request_timeout_seconds),
        )
