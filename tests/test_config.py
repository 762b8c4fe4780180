import pytest
from pydantic import ValidationError as SettingsError

from supervisor_bot.config import Settings


def make_settings(**values):
    return Settings(_env_file=None, **values)


class TestSettings:
    def test_defaults(self):
        config = make_settings()
        assert config.default_language == "Deutsch"
        assert config.message_marker == ".."
        assert (config.min_words, config.max_words) == (4, 35)
        assert config.cache_ttl_seconds == 30 * 24 * 60 * 60

    def test_invalid_log_level_falls_back(self):
        assert make_settings(LOG_LEVEL="verbose").log_level == "INFO"
        assert make_settings(LOG_LEVEL="debug").log_level == "DEBUG"

    def test_invalid_backend(self):
        with pytest.raises(SettingsError):
            make_settings(STORE_BACKEND="memcached")

    def test_invalid_provider_mode(self):
        with pytest.raises(SettingsError):
            make_settings(PROVIDER_MODE="stream")

    def test_inverted_word_range(self):
        with pytest.raises(SettingsError):
            make_settings(MIN_WORDS=10, MAX_WORDS=5)

    def test_operator_ids(self):
        config = make_settings(OPERATOR_IDS="123, 456,abc, -7")
        assert config.operator_ids == [123, 456, -7]

    def test_placeholder_token_invalid(self):
        assert make_settings(BOT_TOKEN="CHANGE_ME").bot_token_valid is False
        assert make_settings(BOT_TOKEN="").bot_token_valid is False
        assert make_settings(BOT_TOKEN="123:abc").bot_token_valid is True

    def test_task_settings(self):
        config = make_settings(TRANSLATION_MODEL="gpt-4o", TRANSLATION_MAX_TOKENS=120)
        assert config.translation.model == "gpt-4o"
        assert config.translation.max_tokens == 120
        assert "{language}" in config.translation.prompt
        assert config.detection.temperature == 0.0
