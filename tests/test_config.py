"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from p2pxfer.config import Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ['HOST', 'PORT', 'DATA_DIR', 'STRICT_PATHS', 'CHUNK_SIZE',
                 'MAX_CONCURRENT', 'MAX_UPLOAD_SIZE', 'CONNECT_TIMEOUT',
                 'TRANSFER_TIMEOUT', 'LOG_LEVEL']:
        monkeypatch.delenv(f'P2PXFER_{name}', raising=False)


def test_defaults():
    config = Config()
    assert config.port == 8469
    assert config.chunk_size == 65536
    assert config.max_concurrent_transfers == 1
    assert config.transfer_timeout is None
    assert config.connect_timeout is None
    assert config.max_upload_size is None
    assert config.strict_paths is True
    assert config.data_dir == Path('.')


def test_rejects_bad_values():
    with pytest.raises(ValueError):
        Config(chunk_size=0)
    with pytest.raises(ValueError):
        Config(max_concurrent_transfers=0)


def test_from_file(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({
        'port': 9000,
        'data_dir': 'incoming',
        'transfer_timeout': 15.0,
        'max_upload_size': 1024,
    }))

    config = Config.from_file(path)
    assert config.port == 9000
    assert config.data_dir == Path('incoming')
    assert config.transfer_timeout == 15.0
    assert config.max_upload_size == 1024
    assert config.chunk_size == 65536


def test_from_missing_file(tmp_path):
    assert Config.from_file(tmp_path / 'nope.json') == Config()


def test_save_and_reload(tmp_path):
    path = tmp_path / 'saved.json'
    original = Config(port=7000, strict_paths=False, transfer_timeout=2.5)
    original.save(path)
    assert Config.from_file(path) == original


def test_from_env(monkeypatch):
    monkeypatch.setenv('P2PXFER_PORT', '9100')
    monkeypatch.setenv('P2PXFER_DATA_DIR', '/srv/files')
    monkeypatch.setenv('P2PXFER_STRICT_PATHS', 'false')
    monkeypatch.setenv('P2PXFER_TRANSFER_TIMEOUT', '3')
    monkeypatch.setenv('P2PXFER_MAX_CONCURRENT', '4')

    config = Config.from_env()
    assert config.port == 9100
    assert config.data_dir == Path('/srv/files')
    assert config.strict_paths is False
    assert config.transfer_timeout == 3.0
    assert config.max_concurrent_transfers == 4
    assert config.connect_timeout is None


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'port': 9000, 'chunk_size': 4096}))
    monkeypatch.setenv('P2PXFER_PORT', '9200')

    config = load_config(path)
    assert config.port == 9200
    assert config.chunk_size == 4096


def test_load_config_without_file():
    assert load_config(None) == Config()
