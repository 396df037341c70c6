"""Evaluation configuration.

Configuration file location priority:
1. Explicit path passed to ConfigLoader
2. FLOWEXPR_CONFIG environment variable
3. Standard location: ~/.flowexpr/config.yml
4. Built-in defaults (if no config file found)

Environment overrides (applied after the file is loaded):
- FLOWEXPR_EXPRESSION_BACKEND: "external" or "embedded"
- FLOWEXPR_MAX_EXPRESSION_LENGTH: expression length kept in error messages
- FLOWEXPR_TEST_TIMEOUT: default bound for test evaluations, in seconds

Example config file:
```yaml
backend: external
max_expression_length: 1000
test_timeout: 5
python_executable: /usr/bin/python3
system_property_paths:
  - ./properties/database.yml
  - ./properties/web.yml
```

The configuration is read once at startup and passed to the components that
need it; nothing reads it ambiently afterwards.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FLOWEXPR_CONFIG"

ENV_OVERRIDES = {
    "FLOWEXPR_EXPRESSION_BACKEND": "backend",
    "FLOWEXPR_MAX_EXPRESSION_LENGTH": "max_expression_length",
    "FLOWEXPR_TEST_TIMEOUT": "test_timeout",
}


class EvaluationConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: Literal["external", "embedded"] = Field(
        default="external",
        description="Expression backend: out-of-process worker (external) or legacy in-process sandbox (embedded)",
    )
    max_expression_length: int = Field(
        default=1000,
        ge=1,
        description="Expression length kept in error messages before truncation",
    )
    test_timeout: float = Field(
        default=5.0,
        gt=0,
        le=600,
        description="Default bound for test evaluations, in seconds",
    )
    python_executable: str | None = Field(
        default=None,
        description="Interpreter for the external worker (default: the running interpreter)",
    )
    system_property_paths: list[str] = Field(
        default_factory=list,
        description="System property files loaded at startup",
    )


class ConfigLoader:
    """Loader for evaluation configuration from a YAML file.

    Usage:
        ```python
        loader = ConfigLoader()
        config = loader.load_config()
        evaluator = create_evaluator(config)
        ```
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        environ: dict[str, str] | None = None,
    ):
        """Initialize config loader.

        Args:
            config_path: Explicit path to config file (optional)
            environ: Environment mapping to read (default: os.environ)
        """
        self._config: EvaluationConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None
        self._environ = environ if environ is not None else dict(os.environ)

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if file doesn't exist
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit config path does not exist: {self._explicit_path}")
            return None

        env_path_str = self._environ.get(CONFIG_ENV_VAR)
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"{CONFIG_ENV_VAR} path does not exist: {env_path}")
            return None

        standard_path = Path.home() / ".flowexpr" / "config.yml"
        if standard_path.exists():
            return standard_path

        return None

    def load_config(self) -> EvaluationConfig:
        """Load, override from environment and validate configuration.

        The result is cached; call once during startup.

        Raises:
            ValueError: If the config file or an override is invalid
        """
        if self._config is not None:
            return self._config

        raw_config: dict[str, Any] = {}
        config_path = self.get_config_path()

        if config_path is None:
            logger.info("No config file found, using defaults")
        else:
            logger.info(f"Loading config from: {config_path}")
            try:
                with open(config_path, encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Failed to load config from {config_path}: {e}") from e
            if loaded is not None and not isinstance(loaded, dict):
                raise ValueError(f"Config file {config_path} must contain a YAML dictionary")
            raw_config.update(loaded or {})

        for env_var, field_name in ENV_OVERRIDES.items():
            value = self._environ.get(env_var)
            if value:
                logger.debug(f"{env_var} overrides '{field_name}'")
                raw_config[field_name] = value.strip()

        try:
            config = EvaluationConfig(**raw_config)
        except ValidationError as e:
            source = config_path or "defaults"
            raise ValueError(f"Invalid configuration ({source}): {e}") from e

        logger.info(
            f"Expression backend '{config.backend}', test timeout {config.test_timeout}s, "
            f"{len(config.system_property_paths)} system property files"
        )
        self._config = config
        return config


__all__ = ["ConfigLoader", "EvaluationConfig"]
