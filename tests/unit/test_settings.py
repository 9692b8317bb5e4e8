"""
Unit tests for settings and logging configuration.
"""

import logging

import pytest
from pydantic import ValidationError

from workflow_dag.config import (
    CompilerSettings,
    Environment,
    GatePolicy,
    InterpreterSettings,
    Settings,
    SimulatorSettings,
    configure_logging,
    get_settings,
)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings()

        assert settings.environment == Environment.DEV
        assert settings.interpreter.gate_policy == GatePolicy.BLOCK
        assert settings.simulator.gate_pass_rate == 0.7
        assert settings.compiler.runs_on == "ubuntu-latest"

    def test_environment_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "PROD")

        settings = Settings()

        assert settings.is_production
        assert not settings.is_development

    def test_interpreter_env_prefix(self, monkeypatch):
        monkeypatch.setenv("INTERPRETER_GATE_POLICY", "skip")
        monkeypatch.setenv("INTERPRETER_MAX_CONCURRENCY", "4")

        settings = InterpreterSettings()

        assert settings.gate_policy == GatePolicy.SKIP
        assert settings.max_concurrency == 4

    def test_simulator_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SIMULATOR_SEED", "7")
        monkeypatch.setenv("SIMULATOR_TASK_DELAY_MS", "0")

        settings = SimulatorSettings()

        assert settings.seed == 7
        assert settings.task_delay_ms == 0

    def test_compiler_env_prefix(self, monkeypatch):
        monkeypatch.setenv("COMPILER_RUNS_ON", "self-hosted")

        assert CompilerSettings().runs_on == "self-hosted"

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_gate_pass_rate_bounds(self, rate):
        with pytest.raises(ValidationError):
            SimulatorSettings(gate_pass_rate=rate)

    def test_max_concurrency_positive(self):
        with pytest.raises(ValidationError):
            InterpreterSettings(max_concurrency=0)

    def test_mermaid_direction(self):
        assert CompilerSettings(mermaid_direction="lr").mermaid_direction == "LR"

        with pytest.raises(ValidationError, match="Unsupported Mermaid direction"):
            CompilerSettings(mermaid_direction="diagonal")

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    """Tests for logging configuration."""

    def test_debug_forces_debug_level(self, test_settings):
        configure_logging(test_settings)

        assert logging.getLogger("workflow_dag").level == logging.DEBUG

    def test_log_level_from_settings(self):
        configure_logging(Settings(log_level="warning"))

        assert logging.getLogger("workflow_dag").level == logging.WARNING
