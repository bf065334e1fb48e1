"""Unit tests for environment-driven configuration dataclasses."""

from __future__ import annotations

import datetime as dt
import os
from unittest import mock

import pytest

from contextkeeper.ingestion import OrchestratorConfig
from contextkeeper.knowledge import (
    ExtractorConfigError,
    OpenAIConfigError,
    OpenAIExtractorConfig,
)
from contextkeeper.processing import ProcessorConfig


class TestProcessorConfigFromEnv:
    """Loading processor policy from ``CONTEXTKEEPER_*`` variables."""

    def test_uses_defaults_when_unset(self) -> None:
        """Unset variables keep the documented defaults."""
        with mock.patch.dict(os.environ, {}, clear=True):
            config = ProcessorConfig.from_env()

        assert config == ProcessorConfig()
        assert config.batch_size == 100
        assert config.max_retries == 3
        assert config.retry_delay == dt.timedelta(seconds=2)
        assert config.extraction_timeout == dt.timedelta(seconds=30)

    def test_reads_custom_values(self) -> None:
        """Every knob can be overridden."""
        env = {
            "CONTEXTKEEPER_BATCH_SIZE": "25",
            "CONTEXTKEEPER_MAX_RETRIES": "0",
            "CONTEXTKEEPER_RETRY_DELAY_SECONDS": "0.5",
            "CONTEXTKEEPER_EXTRACTION_TIMEOUT_SECONDS": "90",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = ProcessorConfig.from_env()

        assert config.batch_size == 25
        assert config.max_retries == 0
        assert config.retry_delay == dt.timedelta(milliseconds=500)
        assert config.extraction_timeout == dt.timedelta(seconds=90)

    def test_blank_values_fall_back_to_defaults(self) -> None:
        """Blank variables behave as unset."""
        env = {"CONTEXTKEEPER_BATCH_SIZE": "  "}
        with mock.patch.dict(os.environ, env, clear=True):
            config = ProcessorConfig.from_env()

        assert config.batch_size == 100

    @pytest.mark.parametrize(
        ("env_var", "value", "match"),
        [
            ("CONTEXTKEEPER_BATCH_SIZE", "ten", "must be an integer"),
            ("CONTEXTKEEPER_BATCH_SIZE", "0", "at least 1"),
            ("CONTEXTKEEPER_MAX_RETRIES", "-2", "at least 0"),
            ("CONTEXTKEEPER_RETRY_DELAY_SECONDS", "-1", "must not be negative"),
            ("CONTEXTKEEPER_EXTRACTION_TIMEOUT_SECONDS", "soon", "must be a number"),
        ],
        ids=["not-int", "zero-batch", "negative-retries", "negative-delay", "nan"],
    )
    def test_rejects_malformed_values(
        self, env_var: str, value: str, match: str
    ) -> None:
        """Errors name the offending variable."""
        with (
            mock.patch.dict(os.environ, {env_var: value}, clear=True),
            pytest.raises(ValueError, match=match) as exc_info,
        ):
            ProcessorConfig.from_env()
        assert env_var in str(exc_info.value)

    def test_zero_timeout_is_rejected(self) -> None:
        """A zero extraction timeout is caught by validation."""
        env = {"CONTEXTKEEPER_EXTRACTION_TIMEOUT_SECONDS": "0"}
        with (
            mock.patch.dict(os.environ, env, clear=True),
            pytest.raises(ValueError, match="extraction_timeout"),
        ):
            ProcessorConfig.from_env()


class TestOrchestratorConfig:
    """Validation and loading of orchestrator knobs."""

    def test_defaults(self) -> None:
        """Defaults cover a day of history with a five-minute overlap."""
        config = OrchestratorConfig()

        assert config.fetch_limit == 1000
        assert config.initial_lookback == dt.timedelta(hours=24)
        assert config.overlap == dt.timedelta(minutes=5)
        assert config.processed_id_window == 10_000

    def test_reads_hours_and_seconds(self) -> None:
        """Lookback is read in hours and the other durations in seconds."""
        env = {
            "CONTEXTKEEPER_INITIAL_LOOKBACK_HOURS": "48",
            "CONTEXTKEEPER_OVERLAP_SECONDS": "120",
            "CONTEXTKEEPER_SYNC_INTERVAL_SECONDS": "900",
            "CONTEXTKEEPER_FETCH_LIMIT": "500",
            "CONTEXTKEEPER_PROCESSED_ID_WINDOW": "2000",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = OrchestratorConfig.from_env()

        assert config.initial_lookback == dt.timedelta(hours=48)
        assert config.overlap == dt.timedelta(minutes=2)
        assert config.sync_interval == dt.timedelta(minutes=15)
        assert config.fetch_limit == 500
        assert config.processed_id_window == 2000

    def test_window_must_cover_fetch_limit(self) -> None:
        """A window smaller than one fetch would forget fresh IDs."""
        with pytest.raises(ValueError, match="processed_id_window"):
            OrchestratorConfig(fetch_limit=500, processed_id_window=100)

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"fetch_limit": 0}, "fetch_limit"),
            ({"connector_timeout": dt.timedelta(0)}, "connector_timeout"),
            ({"sync_interval": dt.timedelta(0)}, "sync_interval"),
        ],
    )
    def test_rejects_non_positive_values(self, overrides: dict, match: str) -> None:
        """Limits and intervals must be positive."""
        with pytest.raises(ValueError, match=match):
            OrchestratorConfig(**overrides)


class TestOpenAIExtractorConfigFromEnv:
    """Loading OpenAI settings from ``CONTEXTKEEPER_OPENAI_*`` variables."""

    def test_requires_api_key(self) -> None:
        """A missing key names the variable to set."""
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            pytest.raises(OpenAIConfigError, match="CONTEXTKEEPER_OPENAI_API_KEY"),
        ):
            OpenAIExtractorConfig.from_env()

    @pytest.mark.parametrize("api_key", ["", "   ", "\t\n"])
    def test_rejects_blank_api_key(self, api_key: str) -> None:
        """Whitespace is not a key."""
        env = {"CONTEXTKEEPER_OPENAI_API_KEY": api_key}
        with (
            mock.patch.dict(os.environ, env, clear=True),
            pytest.raises(OpenAIConfigError, match="non-empty"),
        ):
            OpenAIExtractorConfig.from_env()

    def test_uses_defaults(self) -> None:
        """Only the key is required."""
        env = {"CONTEXTKEEPER_OPENAI_API_KEY": " test-key "}
        with mock.patch.dict(os.environ, env, clear=True):
            config = OpenAIExtractorConfig.from_env()

        assert config.api_key == "test-key", "Expected stripped API key"
        assert config.endpoint == "https://api.openai.com/v1/chat/completions"
        assert config.model == "gpt-4o-mini"
        assert config.temperature == 0.0, "Extraction defaults to deterministic"
        assert config.max_tokens == 2048
        assert config.timeout_s == 30.0

    @pytest.mark.parametrize(
        ("env_var", "value", "parameter"),
        [
            ("CONTEXTKEEPER_OPENAI_TEMPERATURE", "hot", "temperature"),
            ("CONTEXTKEEPER_OPENAI_TEMPERATURE", "2.5", "temperature"),
            ("CONTEXTKEEPER_OPENAI_MAX_TOKENS", "0", "max_tokens"),
            ("CONTEXTKEEPER_OPENAI_MAX_TOKENS", "1.5", "max_tokens"),
            ("CONTEXTKEEPER_OPENAI_TIMEOUT_SECONDS", "-3", "timeout_s"),
        ],
    )
    def test_rejects_invalid_numbers(
        self, env_var: str, value: str, parameter: str
    ) -> None:
        """Out-of-range numbers are reported with the parameter name."""
        env = {"CONTEXTKEEPER_OPENAI_API_KEY": "key", env_var: value}
        with (
            mock.patch.dict(os.environ, env, clear=True),
            pytest.raises(ExtractorConfigError, match=parameter),
        ):
            OpenAIExtractorConfig.from_env()
