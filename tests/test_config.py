import os
import unittest
from pathlib import Path
from unittest.mock import patch

from docqa_bot.config import DEFAULT_DENYLIST_PHRASES, load_settings
from docqa_bot.errors import ConfigurationError

_MANAGED_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "OLLAMA_MODEL",
    "OLLAMA_BASE_URL",
    "OLLAMA_TEMPERATURE",
    "OLLAMA_NUM_PREDICT",
    "OLLAMA_TIMEOUT_S",
    "OLLAMA_VERIFY_ON_START",
    "ANSWER_MAX_WORKERS",
    "DENYLIST_PHRASES",
    "LOG_PATH",
    "LOG_LEVEL",
)


def _clean_env(**overrides) -> dict:
    env = {key: value for key, value in os.environ.items() if key not in _MANAGED_VARS}
    env.update(overrides)
    return env


class TestLoadSettings(unittest.TestCase):
    def test_missing_token_is_a_configuration_error(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            with self.assertRaises(ConfigurationError):
                load_settings(load_env_file=False)

    def test_blank_token_is_a_configuration_error(self):
        with patch.dict(os.environ, _clean_env(TELEGRAM_BOT_TOKEN="   "), clear=True):
            with self.assertRaises(ConfigurationError):
                load_settings(load_env_file=False)

    def test_defaults(self):
        with patch.dict(os.environ, _clean_env(TELEGRAM_BOT_TOKEN="123:abc"), clear=True):
            settings = load_settings(load_env_file=False)
        self.assertEqual(settings.telegram_bot_token, "123:abc")
        self.assertEqual(settings.ollama_model, "gemma3:1b")
        self.assertEqual(settings.ollama_base_url, "http://localhost:11434")
        self.assertTrue(settings.ollama_verify_on_start)
        self.assertEqual(settings.answer_max_workers, 8)
        self.assertEqual(settings.denylist_phrases, DEFAULT_DENYLIST_PHRASES)
        self.assertEqual(settings.log_level, "INFO")

    def test_environment_overrides(self):
        env = _clean_env(
            TELEGRAM_BOT_TOKEN="123:abc",
            OLLAMA_MODEL="llama3.2:3b",
            OLLAMA_BASE_URL="http://gpu-box:11434",
            OLLAMA_TEMPERATURE="0.1",
            OLLAMA_NUM_PREDICT="512",
            OLLAMA_VERIFY_ON_START="no",
            ANSWER_MAX_WORKERS="2",
            DENYLIST_PHRASES="act as root, jailbreak ,",
            LOG_PATH="/tmp/docqa/test.log",
            LOG_LEVEL="debug",
        )
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings(load_env_file=False)
        self.assertEqual(settings.ollama_model, "llama3.2:3b")
        self.assertEqual(settings.ollama_base_url, "http://gpu-box:11434")
        self.assertEqual(settings.ollama_temperature, 0.1)
        self.assertEqual(settings.ollama_num_predict, 512)
        self.assertFalse(settings.ollama_verify_on_start)
        self.assertEqual(settings.answer_max_workers, 2)
        self.assertEqual(settings.denylist_phrases, ("act as root", "jailbreak"))
        self.assertEqual(settings.log_path, Path("/tmp/docqa/test.log"))
        self.assertEqual(settings.log_level, "DEBUG")

    def test_invalid_numbers_fall_back_to_defaults(self):
        env = _clean_env(TELEGRAM_BOT_TOKEN="t", ANSWER_MAX_WORKERS="many", OLLAMA_TEMPERATURE="hot")
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings(load_env_file=False)
        self.assertEqual(settings.answer_max_workers, 8)
        self.assertEqual(settings.ollama_temperature, 0.4)

    def test_worker_count_has_a_floor(self):
        with patch.dict(os.environ, _clean_env(TELEGRAM_BOT_TOKEN="t", ANSWER_MAX_WORKERS="0"), clear=True):
            settings = load_settings(load_env_file=False)
        self.assertEqual(settings.answer_max_workers, 1)


if __name__ == "__main__":
    unittest.main()
