from __future__ import annotations

from typing import TYPE_CHECKING

from plantrust.config import get_database_config, get_storage_config

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


def test_database_uri_prefers_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "postgresql+psycopg://db/plantrust")

    assert get_database_config().uri == "postgresql+psycopg://db/plantrust"


def test_database_uri_defaults_to_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("PLANTRUST_DATA_DIR", str(tmp_path / "data"))

    config = get_database_config()

    assert get_storage_config().data_dir == (tmp_path / "data").resolve()
    assert config.uri.startswith("sqlite+pysqlite:///")
    assert config.uri.endswith("plantrust.db")
    assert (tmp_path / "data").is_dir()
