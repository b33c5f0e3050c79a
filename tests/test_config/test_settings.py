"""Tests for settings and service account loading."""

import base64
import json
from pathlib import Path

import pytest

from media_hub.auth.service import DriveServiceFactory, load_service_account_info
from media_hub.common.constants import CHUNK_ALIGNMENT, DEFAULT_CHUNK_SIZE
from media_hub.common.exceptions import ConfigError
from media_hub.config.settings import Settings, get_settings, reset_settings

KEY = {"type": "service_account", "client_email": "uploader@project.iam.gserviceaccount.com"}


def test_defaults(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path / "data")

    assert settings.chunk_size == DEFAULT_CHUNK_SIZE
    assert settings.max_attempts == 3
    assert settings.db_path == tmp_path / "data" / "media_hub.db"
    assert (tmp_path / "data").is_dir()


def test_chunk_size_aligned(tmp_path: Path) -> None:
    assert Settings(data_dir=tmp_path, chunk_size=CHUNK_ALIGNMENT * 3 + 17).chunk_size == (
        CHUNK_ALIGNMENT * 3
    )
    assert Settings(data_dir=tmp_path, chunk_size=1000).chunk_size == CHUNK_ALIGNMENT


def test_env_prefix(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEDIA_HUB_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("MEDIA_HUB_SHARED_DRIVE_ID", "shared-123")
    monkeypatch.setenv("MEDIA_HUB_API_TOKENS", '{"secret": "alice@example.com"}')
    reset_settings()

    settings = get_settings()

    assert settings.shared_drive_id == "shared-123"
    assert settings.api_tokens == {"secret": "alice@example.com"}
    assert get_settings() is settings
    reset_settings()


def test_load_raw_json_key() -> None:
    assert load_service_account_info(json.dumps(KEY)) == KEY


def test_load_base64_key() -> None:
    encoded = base64.b64encode(json.dumps(KEY).encode()).decode()
    assert load_service_account_info(encoded) == KEY


@pytest.mark.parametrize("raw", ["{not json", "%%%not-base64%%%", base64.b64encode(b"plain").decode()])
def test_invalid_key(raw: str) -> None:
    with pytest.raises(ConfigError):
        load_service_account_info(raw)


def test_factory_requires_key(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        DriveServiceFactory.from_settings(Settings(data_dir=tmp_path))


def test_factory_from_settings(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, service_account_key=json.dumps(KEY))

    factory = DriveServiceFactory.from_settings(settings)

    assert factory.key_info == KEY
