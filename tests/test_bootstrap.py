import logging
from pathlib import Path

import pytest

import render_gateway.config as config_module
from render_gateway.bootstrap import BootstrapError, Bootstrapper
from render_gateway.config import AppConfig


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        audio_root=tmp_path / "uploads" / "audio",
        video_root=tmp_path / "uploads" / "video",
        music_root=tmp_path / "music",
    )


def test_bootstrapper_creates_upload_directories(tmp_path: Path) -> None:
    config = _config(tmp_path)

    Bootstrapper(config).initialize()

    assert config.audio_root.is_dir()
    assert config.video_root.is_dir()


def test_bootstrapper_raises_when_audio_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    config = _config(tmp_path)
    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == config.audio_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "audio" in str(excinfo.value).lower()


def test_bootstrapper_warns_about_missing_music_directory(tmp_path: Path, caplog) -> None:
    config = _config(tmp_path)

    with caplog.at_level(logging.WARNING, logger="render_gateway.bootstrap"):
        Bootstrapper(config).initialize()

    assert any("Music directory" in record.getMessage() for record in caplog.records)
