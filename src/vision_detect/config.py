"""Inference endpoint configuration.

The credential and endpoint are resolved once at startup, from a `.env`
file first and the process environment second, then passed explicitly to
the client. Nothing below the CLI reads the environment.

Example:
    config = load_config()
    async with InferenceClient(config) as client:
        ...
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

API_KEY_ENV_VAR = "API_KEY"
API_URL_ENV_VAR = "API_URL"
API_TIMEOUT_ENV_VAR = "API_TIMEOUT"
ENV_FILE_NAME = ".env"

DEFAULT_MODEL = "OpenGVLab/InternVL3_5-14B-Instruct"
DEFAULT_MAX_TOKENS = 400
DEFAULT_TIMEOUT = 120.0


class ConfigurationError(ValueError):
    """Credential or endpoint missing. Fatal for the whole invocation."""


@dataclass(frozen=True)
class InferenceConfig:
    """Connection settings for the vision inference endpoint."""

    api_key: str
    api_url: str
    timeout: float = DEFAULT_TIMEOUT
    media_type: str = "video_url"

    @property
    def completions_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/v1/chat/completions"


def _lookup(name: str, file_values: Mapping[str, str | None], environ: Mapping[str, str]) -> str | None:
    value = file_values.get(name)
    if value and value.strip():
        return value.strip()
    value = environ.get(name)
    if value and value.strip():
        return value.strip()
    return None


def load_config(
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InferenceConfig:
    """Build the inference config from a .env file and the environment.

    Args:
        env_file: .env file to read (default: ./.env, skipped if absent)
        environ: Environment mapping (default: os.environ)

    Returns:
        InferenceConfig

    Raises:
        ConfigurationError: API_KEY or API_URL is missing or blank
    """
    env_file = env_file or Path.cwd() / ENV_FILE_NAME
    environ = os.environ if environ is None else environ
    file_values = dotenv_values(env_file) if env_file.is_file() else {}

    api_key = _lookup(API_KEY_ENV_VAR, file_values, environ)
    if not api_key:
        raise ConfigurationError(
            f"No API key configured. Set {API_KEY_ENV_VAR} in {ENV_FILE_NAME} "
            f"or the environment."
        )

    api_url = _lookup(API_URL_ENV_VAR, file_values, environ)
    if not api_url:
        raise ConfigurationError(
            f"No API URL configured. Set {API_URL_ENV_VAR} in {ENV_FILE_NAME} "
            f"or the environment."
        )

    timeout_raw = _lookup(API_TIMEOUT_ENV_VAR, file_values, environ)
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
    except ValueError:
        raise ConfigurationError(
            f"{API_TIMEOUT_ENV_VAR} must be a number of seconds, got {timeout_raw!r}"
        )

    return InferenceConfig(api_key=api_key, api_url=api_url, timeout=timeout)
