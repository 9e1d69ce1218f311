# tests/unit/test_config.py
"""Tests for configuration schema defaults and YAML loading."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from genstudio.config.loader import load_config
from genstudio.config.schema import SelfieConfig, StoryConfig, StudioConfig


class TestDefaults:
    def test_selfie_defaults(self):
        cfg = SelfieConfig()
        assert cfg.generate_path == "/ai-studio/selfie/generate"
        assert cfg.upload_field == "selfie"
        assert cfg.generation_timeout == 120.0
        assert cfg.max_size_mb == 10
        assert cfg.fallback_limit == 10
        assert cfg.allowed_types == ["image/jpeg", "image/png", "image/webp", "image/heic"]
        assert cfg.stage_schedule == [3.0, 9.0, 19.0, 35.0]
        assert len(cfg.stage_labels) == len(cfg.stage_schedule) + 2

    def test_story_defaults(self):
        cfg = StoryConfig()
        assert cfg.generation_timeout == 600.0
        assert cfg.tick_interval == 0.5
        assert cfg.base_times == {"short": 120, "medium": 240, "long": 420}
        assert cfg.image_overhead == 60
        assert cfg.progress_cap == 95

    def test_generation_timeouts_exceed_api_timeout(self):
        cfg = StudioConfig()
        assert cfg.selfie.generation_timeout > cfg.api.timeout
        assert cfg.story.generation_timeout > cfg.api.timeout

    def test_unknown_keys_ignored(self):
        cfg = StudioConfig(**{"api": {"base_url": "http://x", "legacy": 1}, "extra": True})
        assert cfg.api.base_url == "http://x"

    def test_progress_cap_must_stay_below_100(self):
        with pytest.raises(ValidationError):
            StoryConfig(progress_cap=100)


class TestLoader:
    def test_creates_defaults_when_missing(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        cfg = load_config(path)

        assert path.exists()
        assert cfg == StudioConfig()
        written = yaml.safe_load(path.read_text())
        assert written["story"]["save_path"] == "/stories"

    def test_loads_existing_file(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "api": {"base_url": "https://fans.example/api", "token": "abc"},
                    "story": {"tick_interval": 1.0},
                }
            )
        )
        cfg = load_config(path)
        assert cfg.api.base_url == "https://fans.example/api"
        assert cfg.api.token == "abc"
        assert cfg.story.tick_interval == 1.0
        assert cfg.selfie.max_size_mb == 10

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == StudioConfig()


class TestEnvironmentOverrides:
    def test_config_path_from_env(self, tmp_path: Path, monkeypatch):
        target = tmp_path / "nested" / "studio.yaml"
        monkeypatch.setenv("GENSTUDIO_CONFIG", str(target))

        cfg = load_config()

        assert target.exists()
        assert cfg == StudioConfig()

    def test_token_from_env_wins(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"api": {"token": "from-file"}}))
        monkeypatch.setenv("GENSTUDIO_TOKEN", "from-env")

        assert load_config(path).api.token == "from-env"

    def test_token_from_env_not_persisted(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.yaml"
        monkeypatch.setenv("GENSTUDIO_TOKEN", "secret")

        cfg = load_config(path)

        assert cfg.api.token == "secret"
        assert yaml.safe_load(path.read_text())["api"]["token"] is None
