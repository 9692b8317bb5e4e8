"""
Environment-aware configuration settings for the workflow DAG engine.

Supports dev, test, and prod environments with appropriate defaults.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""

    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class GatePolicy(str, Enum):
    """What happens downstream of a gate that evaluates to false."""

    BLOCK = "block"  # Successors are never released and stay pending
    SKIP = "skip"    # Successors are released on a dead edge and may be skipped


class InterpreterSettings(BaseSettings):
    """Interpreter configuration settings."""

    model_config = SettingsConfigDict(env_prefix="INTERPRETER_")

    gate_policy: GatePolicy = Field(
        default=GatePolicy.BLOCK,
        description="Handling of nodes downstream of a failed gate",
    )
    max_concurrency: Optional[int] = Field(
        default=None,
        ge=1,
        description="Cap on concurrently running nodes within a batch (None = unbounded)",
    )
    honor_retry: bool = Field(default=True, description="Apply task/default retry policies")
    honor_timeout: bool = Field(default=True, description="Apply the graph default timeout to tasks")


class SimulatorSettings(BaseSettings):
    """
    Simulator configuration settings.

    Delays only exist to make playback watchable; the gate pass rate is a
    demo value, not a contract.
    """

    model_config = SettingsConfigDict(env_prefix="SIMULATOR_")

    task_delay_ms: int = Field(default=500, ge=0, description="Simulated task duration")
    gate_delay_ms: int = Field(default=300, ge=0, description="Simulated gate evaluation time")
    structural_delay_ms: int = Field(default=200, ge=0, description="Simulated fanout/fanin time")
    collect_delay_ms: int = Field(default=800, ge=0, description="Simulated wait on a collect node")
    gate_pass_rate: float = Field(default=0.7, ge=0.0, le=1.0, description="Probability a gate passes")
    seed: Optional[int] = Field(default=None, description="RNG seed for reproducible runs")


class CompilerSettings(BaseSettings):
    """Compiler target settings."""

    model_config = SettingsConfigDict(env_prefix="COMPILER_")

    runs_on: str = Field(default="ubuntu-latest", description="GitHub Actions runner label")
    lambda_resource: str = Field(
        default="arn:aws:states:::lambda:invoke",
        description="Step Functions resource for task states",
    )
    callback_resource: str = Field(
        default="arn:aws:states:::lambda:invoke.waitForTaskToken",
        description="Step Functions resource for collect (wait-for-input) states",
    )
    choice_variable: str = Field(default="$.ref", description="Variable tested by Choice states")
    mermaid_direction: str = Field(default="TD", description="Mermaid graph direction")

    @field_validator("mermaid_direction")
    @classmethod
    def validate_direction(cls, v: str) -> str:
        """Only Mermaid's flowchart directions are accepted."""
        v = v.upper()
        if v not in {"TD", "TB", "BT", "LR", "RL"}:
            raise ValueError(f"Unsupported Mermaid direction: {v}")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Workflow DAG Engine")
    environment: Environment = Field(default=Environment.DEV)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Sub-settings
    interpreter: InterpreterSettings = Field(default_factory=InterpreterSettings)
    simulator: SimulatorSettings = Field(default_factory=SimulatorSettings)
    compiler: CompilerSettings = Field(default_factory=CompilerSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str | Environment) -> Environment:
        """Validate and convert environment string to enum."""
        if isinstance(v, Environment):
            return v
        return Environment(v.lower())

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TEST

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PROD


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
