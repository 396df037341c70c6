"""Tests for configuration loading."""

import pytest

from flowexpr_mcp.engine import ConfigLoader, EvaluationConfig


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))

    config = ConfigLoader(environ={}).load_config()

    assert config == EvaluationConfig()
    assert config.backend == "external"
    assert config.max_expression_length == 1000
    assert config.test_timeout == 5.0


def test_explicit_path(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backend: embedded\ntest_timeout: 2.5\nsystem_property_paths: [a.yml]\n")

    config = ConfigLoader(path, environ={}).load_config()

    assert config.backend == "embedded"
    assert config.test_timeout == 2.5
    assert config.system_property_paths == ["a.yml"]


def test_env_var_path(tmp_path):
    path = tmp_path / "env.yml"
    path.write_text("max_expression_length: 50\n")

    loader = ConfigLoader(environ={"FLOWEXPR_CONFIG": str(path)})

    assert loader.get_config_path() == path
    assert loader.load_config().max_expression_length == 50


def test_missing_explicit_path_falls_back_to_defaults(tmp_path):
    config = ConfigLoader(tmp_path / "nope.yml", environ={}).load_config()

    assert config == EvaluationConfig()


def test_env_overrides_win_over_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backend: external\nmax_expression_length: 10\n")
    environ = {
        "FLOWEXPR_EXPRESSION_BACKEND": "embedded",
        "FLOWEXPR_MAX_EXPRESSION_LENGTH": "20",
        "FLOWEXPR_TEST_TIMEOUT": "1.5",
    }

    config = ConfigLoader(path, environ=environ).load_config()

    assert config.backend == "embedded"
    assert config.max_expression_length == 20
    assert config.test_timeout == 1.5


def test_invalid_backend_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="Invalid configuration"):
        ConfigLoader(tmp_path / "none.yml", environ={"FLOWEXPR_EXPRESSION_BACKEND": "jython"}).load_config()


def test_unknown_key_is_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backnd: embedded\n")

    with pytest.raises(ValueError, match="Invalid configuration"):
        ConfigLoader(path, environ={}).load_config()


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="YAML dictionary"):
        ConfigLoader(path, environ={}).load_config()


def test_config_is_cached(tmp_path):
    loader = ConfigLoader(tmp_path / "none.yml", environ={})

    assert loader.load_config() is loader.load_config()


def test_config_is_frozen():
    config = EvaluationConfig()

    with pytest.raises(Exception):
        config.backend = "embedded"
