from dataclasses import dataclass
from typing import List, Optional
import logging
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class TaskSettings:
    """Provider parameters for one kind of request (detection, correction, translation)."""

    model: str
    prompt: str
    max_tokens: int
    temperature: float


class Settings(BaseSettings):
    # Telegram
    bot_token: str = Field(default="", alias="BOT_TOKEN")
    operator_ids_raw: str = Field(default="", alias="OPERATOR_IDS")
    admin_contact: str = Field(default="@admin", alias="ADMIN_CONTACT")

    # Key-value store
    store_backend: str = Field(default="redis", alias="STORE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    db_path: str = Field(default="./data/supervisor.sqlite3", alias="DB_PATH")
    group_key_prefix: str = Field(default="group:", alias="GROUP_KEY_PREFIX")

    # Cache
    cache_ttl_days: int = Field(default=30, alias="CACHE_TTL_DAYS")
    cache_maxsize: int = Field(default=10000, alias="CACHE_MAXSIZE")

    # Completion provider
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    provider_mode: str = Field(default="chat", alias="PROVIDER_MODE")
    provider_timeout: float = Field(default=20.0, alias="PROVIDER_TIMEOUT")

    # Eligibility
    default_language: str = Field(default="Deutsch", alias="DEFAULT_LANGUAGE")
    message_marker: str = Field(default="..", alias="MESSAGE_MARKER")
    min_words: int = Field(default=4, alias="MIN_WORDS")
    max_words: int = Field(default=35, alias="MAX_WORDS")

    # Language detection
    language_detection_enabled: bool = Field(default=True, alias="LANGUAGE_DETECTION_ENABLED")
    detection_model: str = Field(default="gpt-4o-mini", alias="DETECTION_MODEL")
    detection_prompt: str = Field(
        default=(
            "In which language is the following text written? "
            "Answer with the German name of the language only, for example Deutsch or Englisch."
        ),
        alias="DETECTION_PROMPT",
    )
    detection_max_tokens: int = Field(default=10, alias="DETECTION_MAX_TOKENS")
    detection_temperature: float = Field(default=0.0, alias="DETECTION_TEMPERATURE")

    # Correction
    correction_model: str = Field(default="gpt-4o-mini", alias="CORRECTION_MODEL")
    correction_prompt: str = Field(
        default=(
            "Correct the spelling and grammar of the following text. "
            "Keep its meaning and language. Reply with the corrected text only."
        ),
        alias="CORRECTION_PROMPT",
    )
    correction_max_tokens: int = Field(default=200, alias="CORRECTION_MAX_TOKENS")
    correction_temperature: float = Field(default=0.2, alias="CORRECTION_TEMPERATURE")

    # Translation
    translation_model: str = Field(default="gpt-4o-mini", alias="TRANSLATION_MODEL")
    translation_prompt: str = Field(
        default=(
            "Translate the following text into {language} and correct any mistakes. "
            "Reply with the translation only."
        ),
        alias="TRANSLATION_PROMPT",
    )
    translation_max_tokens: int = Field(default=200, alias="TRANSLATION_MAX_TOKENS")
    translation_temperature: float = Field(default=0.2, alias="TRANSLATION_TEMPERATURE")

    # Rate limiting
    rate_limit_per_user: int = Field(default=5, alias="RATE_LIMIT_PER_USER")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = (value or "INFO").upper()
        if level not in valid_levels:
            logging.getLogger(__name__).warning(
                "Invalid LOG_LEVEL '%s', defaulting to INFO", value
            )
            return "INFO"
        return level

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, value: str) -> str:
        backend = (value or "").lower()
        if backend not in {"redis", "sqlite"}:
            raise ValueError("STORE_BACKEND must be 'redis' or 'sqlite'")
        return backend

    @field_validator("provider_mode")
    @classmethod
    def validate_provider_mode(cls, value: str) -> str:
        mode = (value or "").lower()
        if mode not in {"chat", "completions"}:
            raise ValueError("PROVIDER_MODE must be 'chat' or 'completions'")
        return mode

    @model_validator(mode="after")
    def validate_word_range(self) -> "Settings":
        if self.min_words < 0 or self.max_words < self.min_words:
            raise ValueError("MIN_WORDS/MAX_WORDS must form a non-negative inclusive range")
        if not self.message_marker:
            raise ValueError("MESSAGE_MARKER must not be empty")
        return self

    _placeholder_markers = ("CHANGE_ME", "YOUR_SECRET_HERE", "REPLACE_ME", "INSERT_SECRET", "EXAMPLE")

    def _is_placeholder(self, value: str) -> bool:
        return any(marker in value for marker in self._placeholder_markers)

    @property
    def bot_token_valid(self) -> bool:
        return bool(self.bot_token and not self._is_placeholder(self.bot_token))

    @property
    def operator_ids(self) -> List[int]:
        ids = []
        for chunk in self.operator_ids_raw.split(","):
            chunk = chunk.strip()
            if chunk.lstrip("-").isdigit():
                ids.append(int(chunk))
        return ids

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_days * 24 * 60 * 60

    @property
    def detection(self) -> TaskSettings:
        return TaskSettings(
            model=self.detection_model,
            prompt=self.detection_prompt,
            max_tokens=self.detection_max_tokens,
            temperature=self.detection_temperature,
        )

    @property
    def correction(self) -> TaskSettings:
        return TaskSettings(
            model=self.correction_model,
            prompt=self.correction_prompt,
            max_tokens=self.correction_max_tokens,
            temperature=self.correction_temperature,
        )

    @property
    def translation(self) -> TaskSettings:
        return TaskSettings(
            model=self.translation_model,
            prompt=self.translation_prompt,
            max_tokens=self.translation_max_tokens,
            temperature=self.translation_temperature,
        )


settings = Settings()
