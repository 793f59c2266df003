"""
Configuration management for services.

Two sources are combined: environment variables (optionally from a ``.env``
file at the project root) for keys, endpoints and storage paths, and the YAML
pipeline file for orchestration tunables.
"""

import json
import os
from typing import Any

import yaml

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DEFAULT_PIPELINE_PATH = os.path.join(PROJECT_ROOT, "config", "pipeline.yaml")
PIPELINE_FLAG_PREFIX = "PIPELINE_FLAG_"

# config key -> (environment variable, default)
ENVIRONMENT_KEYS: dict[str, tuple[str, str | None]] = {
    "openai_api_key": ("OPENAI_API_KEY", None),
    "openai_text_model": ("OPENAI_TEXT_MODEL", "gpt-4o-mini"),
    "openai_vision_model": ("OPENAI_VISION_MODEL", "gpt-4o-mini"),
    "openai_tts_model": ("OPENAI_TTS_MODEL", "tts-1"),
    "openai_tts_voice": ("OPENAI_TTS_VOICE", "alloy"),
    "groq_api_key": ("GROQ_API_KEY", None),
    "groq_model": ("GROQ_MODEL", "moonshotai/kimi-k2-instruct"),
    "azure_speech_key": ("AZURE_SPEECH_KEY", None),
    "azure_speech_region": ("AZURE_SPEECH_REGION", None),
    "azure_speech_voice": ("AZURE_SPEECH_VOICE", "en-US-AriaNeural"),
    "hf_token": ("HF_TOKEN", None),
    "media_root": ("MEDIA_ROOT", "./media"),
    "uploads_root": ("UPLOADS_ROOT", "./uploads"),
    "log_level": ("LOG_LEVEL", "INFO"),
}


class ServiceConfig:
    """Environment settings plus the YAML pipeline tunables."""

    def __init__(self) -> None:
        load_dotenv(dotenv_path=os.path.join(PROJECT_ROOT, ".env"), override=False)
        self.config: dict[str, Any] = {}
        self.pipeline_config: dict[str, Any] = {}
        self.pipeline_config_path = os.getenv("PIPELINE_CONFIG_PATH", DEFAULT_PIPELINE_PATH)
        self.reload()

    def reload(self) -> None:
        self.load_from_env()
        self.load_pipeline_config()

    def load_from_env(self) -> None:
        self.config = {key: os.getenv(env_name, default) for key, (env_name, default) in ENVIRONMENT_KEYS.items()}
        self.config["debug"] = os.getenv("DEBUG", "false").lower() == "true"
        self.config["allowed_origins"] = json.loads(os.getenv("ALLOWED_ORIGINS", '["*"]'))

    def load_pipeline_config(self) -> None:
        """Read the pipeline YAML file; a missing file means every tunable takes its default."""
        try:
            with open(os.path.abspath(self.pipeline_config_path), "r", encoding="utf-8") as stream:
                self.pipeline_config = yaml.safe_load(stream) or {}
        except FileNotFoundError:
            self.pipeline_config = {}

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key
            default: Returned when the key is unknown or unset

        Returns:
            Configuration value
        """
        value = self.config.get(key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        self.config[key] = value

    def get_pipeline_value(self, path: str, default: Any = None) -> Any:
        """
        Retrieve a pipeline tunable via dotted path, e.g. ``"pregeneration.lookahead"``.

        An environment variable ``PIPELINE_FLAG_PREGENERATION_LOOKAHEAD`` takes
        precedence over the file.
        """
        override = os.getenv(PIPELINE_FLAG_PREFIX + path.replace(".", "_").upper())
        if override is not None:
            return self._coerce_env_value(override, default)

        node: Any = self.pipeline_config
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return default if node is None else node

    @staticmethod
    def _coerce_env_value(raw: str, default: Any) -> Any:
        lowered = raw.strip().lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        try:
            return int(lowered)
        except ValueError:
            pass
        try:
            return float(lowered)
        except ValueError:
            pass
        if isinstance(default, list):
            return [item.strip() for item in raw.split(",") if item.strip()]
        return raw or default


# Global configuration instance
config = ServiceConfig()
