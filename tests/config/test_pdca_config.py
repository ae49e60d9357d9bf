"""
Kernel configuration loading.

Covers source precedence, the DATABASE_URL override, schema validation
and checksum stability.
"""

from pathlib import Path

import pytest
import yaml

from pdca_config import (
    DEFAULTS_PATH,
    KernelConfig,
    RetryPolicy,
    compute_checksum,
    get_active_config,
)
from pdca_config.loader import load_yaml_file, parse_config


def write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_defaults_select_memory_store(self):
        config = get_active_config(environ={})

        assert isinstance(config, KernelConfig)
        assert config.database.url is None
        assert config.logging.level == "INFO"
        assert config.retry == RetryPolicy()
        assert config.notifications.log_events is True
        assert config.checksum == compute_checksum(load_yaml_file(DEFAULTS_PATH))

    def test_missing_sections_fall_back_to_defaults(self):
        config = parse_config({"logging": {"level": "DEBUG"}})
        assert config.logging.level == "DEBUG"
        assert config.database.create_tables is True
        assert config.retry.max_attempts == 3


class TestSourcePrecedence:
    def test_explicit_path_beats_env_var(self, tmp_path):
        explicit = write_yaml(tmp_path / "explicit.yaml", {"logging": {"level": "ERROR"}})
        via_env = write_yaml(tmp_path / "env.yaml", {"logging": {"level": "DEBUG"}})

        config = get_active_config(explicit, environ={"PDCA_CONFIG": str(via_env)})
        assert config.logging.level == "ERROR"

    def test_env_var_beats_defaults(self, tmp_path):
        via_env = write_yaml(tmp_path / "env.yaml", {"retry": {"max_attempts": 5}})
        config = get_active_config(environ={"PDCA_CONFIG": str(via_env)})
        assert config.retry.max_attempts == 5

    def test_database_url_env_overrides_file(self, tmp_path):
        source = write_yaml(tmp_path / "c.yaml", {"database": {"url": "sqlite:///file.db"}})
        config = get_active_config(source, environ={"DATABASE_URL": "postgresql://db/goals"})
        assert config.database.url == "postgresql://db/goals"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml", environ={})


class TestValidation:
    @pytest.mark.parametrize("data,fragment", [
        ({"tracing": {}}, "Unknown configuration sections: tracing"),
        ({"database": {"hostname": "x"}}, "Unknown keys in 'database': hostname"),
        ({"database": {"pool_size": "five"}}, "database.pool_size must be a number"),
        ({"database": {"echo": "yes"}}, "database.echo must be a boolean"),
        ({"logging": {"level": 10}}, "logging.level must be a string"),
        ({"retry": "fast"}, "Section 'retry' must be a mapping"),
    ])
    def test_rejects_bad_input(self, data, fragment):
        with pytest.raises(ValueError, match=fragment):
            parse_config(data)

    def test_retry_policy_invariants_apply(self):
        with pytest.raises(ValueError, match="max_attempts"):
            parse_config({"retry": {"max_attempts": 0}})

    def test_integers_widen_to_float_fields(self):
        config = parse_config({"database": {"pool_timeout": 5}})
        assert config.database.pool_timeout == 5.0
        assert isinstance(config.database.pool_timeout, float)

    def test_non_mapping_file(self, tmp_path):
        source = tmp_path / "list.yaml"
        source.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_yaml_file(source)


class TestChecksum:
    def test_key_order_does_not_matter(self):
        a = {"logging": {"level": "INFO", "structured": True}, "retry": {"max_attempts": 2}}
        b = {"retry": {"max_attempts": 2}, "logging": {"structured": True, "level": "INFO"}}
        assert compute_checksum(a) == compute_checksum(b)

    def test_value_change_changes_checksum(self):
        assert compute_checksum({"logging": {"level": "INFO"}}) != compute_checksum(
            {"logging": {"level": "DEBUG"}}
        )
