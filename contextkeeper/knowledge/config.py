"""Configuration for the OpenAI-compatible knowledge extractor."""

from __future__ import annotations

import dataclasses
import os

from contextkeeper.knowledge.errors import ExtractorConfigError, OpenAIConfigError

# Default configuration values - single source of truth
_DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
_DEFAULT_MODEL = "gpt-4o-mini"
_DEFAULT_TIMEOUT_S = 30.0
_DEFAULT_TEMPERATURE = 0.0
_DEFAULT_MAX_TOKENS = 2048

# Validation bounds for temperature (OpenAI API range)
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


@dataclasses.dataclass(frozen=True, slots=True)
class OpenAIExtractorConfig:
    """Configuration for the OpenAI-compatible knowledge extractor.

    Attributes
    ----------
    api_key
        API key for authentication with the OpenAI API.
    endpoint
        Chat completions endpoint URL.
    model
        Model identifier to use for completions.
    timeout_s
        Per-request timeout in seconds.
    temperature
        Sampling temperature (0.0 to 2.0). Extraction defaults to 0.0 for
        repeatable output.
    max_tokens
        Maximum tokens in the completion response.

    """

    api_key: str
    endpoint: str = _DEFAULT_ENDPOINT
    model: str = _DEFAULT_MODEL
    timeout_s: float = _DEFAULT_TIMEOUT_S
    temperature: float = _DEFAULT_TEMPERATURE
    max_tokens: int = _DEFAULT_MAX_TOKENS

    @staticmethod
    def _parse_temperature_from_env() -> float:
        raw_temperature = os.environ.get("CONTEXTKEEPER_OPENAI_TEMPERATURE")
        if raw_temperature is None:
            return _DEFAULT_TEMPERATURE

        constraint = f"Must be a float between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}"
        try:
            temperature = float(raw_temperature)
        except ValueError as exc:
            raise ExtractorConfigError.invalid_parameter(
                "temperature", raw_temperature, constraint
            ) from exc

        if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
            raise ExtractorConfigError.invalid_parameter(
                "temperature", raw_temperature, constraint
            )

        return temperature

    @staticmethod
    def _parse_positive_from_env[T: (int, float)](
        env_var: str, parameter: str, default: T, kind: type[T]
    ) -> T:
        raw = os.environ.get(env_var)
        if raw is None:
            return default

        constraint = f"Must be a positive {kind.__name__}"
        try:
            value = kind(raw)
        except ValueError as exc:
            raise ExtractorConfigError.invalid_parameter(
                parameter, raw, constraint
            ) from exc

        if value <= 0:
            raise ExtractorConfigError.invalid_parameter(parameter, raw, constraint)

        return value

    @classmethod
    def from_env(cls) -> OpenAIExtractorConfig:
        """Build configuration from environment variables.

        Reads the following environment variables:

        - ``CONTEXTKEEPER_OPENAI_API_KEY``: Required API key
        - ``CONTEXTKEEPER_OPENAI_ENDPOINT``: Optional endpoint override
        - ``CONTEXTKEEPER_OPENAI_MODEL``: Optional model override
        - ``CONTEXTKEEPER_OPENAI_TEMPERATURE``: Optional temperature (0.0 to 2.0)
        - ``CONTEXTKEEPER_OPENAI_MAX_TOKENS``: Optional max tokens (positive int)
        - ``CONTEXTKEEPER_OPENAI_TIMEOUT_SECONDS``: Optional request timeout

        Returns
        -------
        OpenAIExtractorConfig
            Configuration instance with values from environment.

        Raises
        ------
        OpenAIConfigError
            If the API key is missing or blank.
        ExtractorConfigError
            If a numeric value is malformed or out of range.

        """
        raw_api_key = os.environ.get("CONTEXTKEEPER_OPENAI_API_KEY")
        if raw_api_key is None:
            raise OpenAIConfigError.missing_api_key()
        api_key = raw_api_key.strip()
        if not api_key:
            raise OpenAIConfigError.empty_api_key()

        return cls(
            api_key=api_key,
            endpoint=os.environ.get("CONTEXTKEEPER_OPENAI_ENDPOINT", _DEFAULT_ENDPOINT),
            model=os.environ.get("CONTEXTKEEPER_OPENAI_MODEL", _DEFAULT_MODEL),
            timeout_s=cls._parse_positive_from_env(
                "CONTEXTKEEPER_OPENAI_TIMEOUT_SECONDS",
                "timeout_s",
                _DEFAULT_TIMEOUT_S,
                float,
            ),
            temperature=cls._parse_temperature_from_env(),
            max_tokens=cls._parse_positive_from_env(
                "CONTEXTKEEPER_OPENAI_MAX_TOKENS",
                "max_tokens",
                _DEFAULT_MAX_TOKENS,
                int,
            ),
        )
