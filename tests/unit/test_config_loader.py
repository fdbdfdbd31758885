"""Unit tests for configuration loading and precedence."""

from pathlib import Path

import pytest

from mobile_video_converter.config import (
    EnvReader,
    LoggingConfig,
    MVCConfig,
    ServerConfig,
    configure_logging_from_cli,
    get_config,
    get_default_config_path,
    load_config_file,
)
from mobile_video_converter.config.models import ConversionConfig

CONFIG_TOML = """\
[tools]
ffmpeg = "/opt/ffmpeg/bin/ffmpeg"

[conversion]
hw_mode = "none"
cancel_grace_seconds = 2.5
threads = 4

[logging]
level = "debug"
format = "json"

[server]
port = 9100
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestEnvReader:
    """Tests for EnvReader."""

    def test_typed_values(self):
        reader = EnvReader(
            {"A": "9000", "B": "2.5", "C": "yes", "D": "off", "E": "text"}
        )
        assert reader.get_int("A") == 9000
        assert reader.get_float("B") == 2.5
        assert reader.get_bool("C") is True
        assert reader.get_bool("D") is False
        assert reader.get_str("E") == "text"

    def test_invalid_values_use_default(self):
        reader = EnvReader({"A": "lots", "B": "fast"})
        assert reader.get_int("A", 3) == 3
        assert reader.get_float("B", 1.0) == 1.0

    def test_unset(self):
        reader = EnvReader({})
        assert reader.get_str("MISSING") is None
        assert reader.get_bool("MISSING", False) is False

    def test_path_must_exist(self, tmp_path: Path):
        reader = EnvReader({"P": str(tmp_path / "missing")})
        assert reader.get_path("P") is None
        assert reader.get_path("P", must_exist=False) == tmp_path / "missing"

    def test_path_expands_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        reader = EnvReader({"P": "~"})
        assert reader.get_path("P") == tmp_path


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_missing_file(self, tmp_path: Path):
        assert load_config_file(tmp_path / "missing.toml") == {}

    def test_invalid_toml(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text("[conversion\nhw_mode = ")
        assert load_config_file(path) == {}

    def test_default_path_from_env(self, tmp_path: Path):
        env = {"MVC_CONFIG_PATH": str(tmp_path / "custom.toml")}
        assert get_default_config_path(env) == tmp_path / "custom.toml"


class TestGetConfig:
    """Tests for get_config precedence."""

    def test_defaults(self, tmp_path: Path):
        config = get_config(config_path=tmp_path / "missing.toml", env={})
        assert config.conversion.hw_mode == "auto"
        assert config.conversion.threads is None
        assert config.server.port == 8322
        assert config.logging.level == "info"

    def test_file_values(self, config_file: Path):
        config = get_config(config_path=config_file, env={})
        assert config.tools.ffmpeg == Path("/opt/ffmpeg/bin/ffmpeg")
        assert config.conversion.hw_mode == "none"
        assert config.conversion.cancel_grace_seconds == 2.5
        assert config.conversion.threads == 4
        assert config.logging.format == "json"
        assert config.server.port == 9100

    def test_env_beats_file(self, config_file: Path):
        env = {"MVC_HW_MODE": "nvenc", "MVC_SERVER_PORT": "9200", "MVC_THREADS": "2"}
        config = get_config(config_path=config_file, env=env)
        assert config.conversion.hw_mode == "nvenc"
        assert config.server.port == 9200
        assert config.conversion.threads == 2

    def test_cli_beats_env(self, config_file: Path):
        config = get_config(
            config_path=config_file,
            hw_mode="qsv",
            env={"MVC_HW_MODE": "nvenc"},
        )
        assert config.conversion.hw_mode == "qsv"

    def test_profile_path(self, tmp_path: Path):
        profile = tmp_path / "profile.yaml"
        profile.touch()
        config = get_config(
            config_path=tmp_path / "missing.toml", env={"MVC_PROFILE": str(profile)}
        )
        assert config.conversion.profile == profile

    def test_invalid_hw_mode(self, tmp_path: Path):
        with pytest.raises(ValueError, match="hw_mode"):
            get_config(config_path=tmp_path / "missing.toml", hw_mode="cuda", env={})

    def test_invalid_port_from_env(self, tmp_path: Path):
        with pytest.raises(ValueError, match="port"):
            get_config(
                config_path=tmp_path / "missing.toml",
                env={"MVC_SERVER_PORT": "70000"},
            )


class TestModels:
    """Tests for config model validation."""

    def test_conversion_validation(self):
        with pytest.raises(ValueError, match="cancel_grace_seconds"):
            ConversionConfig(cancel_grace_seconds=0)
        with pytest.raises(ValueError, match="threads"):
            ConversionConfig(threads=0)
        with pytest.raises(ValueError, match="progress_resolution"):
            ConversionConfig(progress_resolution=0)

    def test_server_validation(self):
        with pytest.raises(ValueError, match="shutdown_timeout"):
            ServerConfig(shutdown_timeout=0)

    def test_logging_validation(self):
        with pytest.raises(ValueError, match="level"):
            LoggingConfig(level="verbose")
        with pytest.raises(ValueError, match="format"):
            LoggingConfig(format="xml")

    def test_get_tool_path(self):
        config = MVCConfig()
        config.tools.ffprobe = Path("/opt/ffprobe")
        assert config.get_tool_path("FFprobe") == Path("/opt/ffprobe")
        assert config.get_tool_path("ffmpeg") is None


class TestConfigureLoggingFromCli:
    """Tests for applying CLI logging flags over the configuration."""

    @pytest.fixture
    def applied(self, monkeypatch) -> list[LoggingConfig]:
        configs: list[LoggingConfig] = []
        monkeypatch.setattr(
            "mobile_video_converter.logging.configure_logging", configs.append
        )
        return configs

    def test_flags_override_config(self, tmp_path: Path, applied, monkeypatch):
        monkeypatch.setenv("MVC_LOG_LEVEL", "warning")
        result = configure_logging_from_cli(
            level="debug", file=tmp_path / "mvc.log", include_stderr=True
        )
        assert applied == [result]
        assert result.level == "debug"
        assert result.format == "text"
        assert result.file == tmp_path / "mvc.log"
        assert result.include_stderr is True

    def test_unset_flags_keep_config(self, applied, monkeypatch):
        monkeypatch.setenv("MVC_LOG_LEVEL", "warning")
        result = configure_logging_from_cli()
        assert result.level == "warning"
        assert result.file is None

    def test_invalid_flag(self, applied):
        with pytest.raises(ValueError):
            configure_logging_from_cli(format="yaml")
        assert applied == []
