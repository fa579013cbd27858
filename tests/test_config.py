"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest
import yaml

from datlib.config import LibraryConfig, load_config, load_engine_factory
from datlib.errors import ConfigError


def test_defaults():
    config = load_config(env={})
    assert config.library_dir == Path.home() / ".datlib"
    assert config.archive_root == config.library_dir / "dat2"
    assert config.metadata_root == config.library_dir / ".metadata"
    assert config.ready_timeout == 30.0
    assert config.engine_options.as_dict() == {"persist": True, "auto_swarm": True, "sparse": True}


def test_yaml_file_with_library_section():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "datlib.yaml"
        with open(path, "w") as f:
            yaml.dump(
                {
                    "library": {
                        "library_dir": tmpdir,
                        "archive_dir": "archives",
                        "ready_timeout": 5,
                        "engine": "mypkg.engine:create_engine",
                        "engine_options": {"sparse": False},
                    }
                },
                f,
            )

        config = load_config(path, env={})
        assert config.library_dir == Path(tmpdir)
        assert config.archive_root == Path(tmpdir) / "archives"
        assert config.ready_timeout == 5.0
        assert config.engine == "mypkg.engine:create_engine"
        assert config.engine_options.sparse is False
        assert config.engine_options.persist is True


def test_environment_overrides_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "datlib.yaml"
        path.write_text("library_dir: /somewhere\nready_timeout: 10\n")

        config = load_config(
            path,
            env={"DATLIB_DIR": tmpdir, "DATLIB_READY_TIMEOUT": "2.5", "DATLIB_ENGINE": "x:y"},
        )
        assert config.library_dir == Path(tmpdir)
        assert config.ready_timeout == 2.5
        assert config.engine == "x:y"


def test_null_timeout_disables_bound():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "datlib.yaml"
        path.write_text("ready_timeout: null\n")
        assert load_config(path, env={}).ready_timeout is None


def test_env_none_timeout_disables_bound():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "datlib.yaml"
        path.write_text("ready_timeout: 10\n")
        assert load_config(path, env={"DATLIB_READY_TIMEOUT": "None"}).ready_timeout is None
        assert load_config(env={"DATLIB_READY_TIMEOUT": "none"}).ready_timeout is None


def test_invalid_config_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "datlib.yaml"

        path.write_text("colour: blue\n")
        with pytest.raises(ConfigError, match="colour"):
            load_config(path, env={})

        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_config(path, env={})

        path.write_text("ready_timeout: soon\n")
        with pytest.raises(ConfigError):
            load_config(path, env={})

    with pytest.raises(ConfigError):
        LibraryConfig(ready_timeout=0)
    with pytest.raises(ConfigError):
        load_config(Path("/nonexistent/datlib.yaml"), env={})


def test_load_engine_factory():
    assert load_engine_factory("fakes:FakeEngine").__name__ == "FakeEngine"
    with pytest.raises(ConfigError):
        load_engine_factory("no-colon")
    with pytest.raises(ConfigError):
        load_engine_factory("fakes:Missing")
    with pytest.raises(ConfigError):
        load_engine_factory("datlib_no_such_module:thing")
