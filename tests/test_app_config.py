"""Tests for layered and typed configuration."""

from app.app_config import AppEnvironConfig, detect_host_ip, get_app_environ_config
from app.shared.config import EnvironConfig, config


class TestEnvironConfig:
    def test_layers_override_in_order(self, tmp_path):
        (tmp_path / "env.example").write_text("API_PORT=3001\nFFMPEG_PATH=ffmpeg\nDEBUG=false\n")
        (tmp_path / "env.local").write_text("FFMPEG_PATH=/opt/ffmpeg/bin/ffmpeg\nDEBUG=true\n")

        cfg = EnvironConfig(root=tmp_path, environ={"DEBUG": "false"})

        assert cfg.get("API_PORT") == "3001"
        assert cfg.get("FFMPEG_PATH") == "/opt/ffmpeg/bin/ffmpeg"
        assert cfg.get("DEBUG") == "false"

    def test_missing_files_leave_environment_only(self, tmp_path):
        cfg = EnvironConfig(root=tmp_path, environ={"MEDIA_ROOT": "/srv/media"})

        assert cfg.get("MEDIA_ROOT") == "/srv/media"
        assert cfg.get("API_PORT") is None

    def test_key_without_value_is_unset(self, tmp_path):
        (tmp_path / "env.example").write_text("HLS_BASE_URL\nAPI_HOST=0.0.0.0\n")

        cfg = EnvironConfig(root=tmp_path, environ={})

        assert cfg.get("HLS_BASE_URL", "fallback") == "fallback"
        assert cfg.get("API_HOST") == "0.0.0.0"

    def test_process_environment_read_by_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STALE_THRESHOLD_SECONDS", "42")

        assert EnvironConfig(root=tmp_path).get("STALE_THRESHOLD_SECONDS") == "42"

    def test_defaults_from_env_example(self):
        assert config.get("API_PORT") == "3001"
        assert config.get("FFMPEG_PATH") is not None

    def test_missing_key(self):
        assert config.get("NOT_A_REAL_KEY", "fallback") == "fallback"


class TestAppEnvironConfig:
    def test_defaults(self):
        cfg = get_app_environ_config()

        assert cfg.API_PORT == 3001
        assert cfg.STALE_THRESHOLD_SECONDS == 15
        assert cfg.CLEANUP_BLOCK_SECONDS == 300
        assert cfg.HLS_BASE_URL.startswith("http://")

    def test_idle_timeout_seconds(self):
        assert AppEnvironConfig(API_IDLE_TIMEOUT_MS=5000).idle_timeout_seconds == 5

    def test_detect_host_ip(self):
        address = detect_host_ip()
        assert address.count(".") == 3
