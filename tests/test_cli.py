from __future__ import annotations

import pytest
from typer.testing import CliRunner

import rkeyfs.cli as cli_module
from rkeyfs.cli import app
from rkeyfs.config import RkeyFsConfig, load_config, save_config
from rkeyfs.store import MemoryRecordStore


@pytest.fixture
def store(monkeypatch, tmp_path) -> MemoryRecordStore:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RKEYFS_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("ATP_ACCESS_TOKEN", raising=False)
    save_config(RkeyFsConfig(account_id="did:plc:testaccount", access_token="tok"), tmp_path)

    memory_store = MemoryRecordStore()
    monkeypatch.setattr(cli_module, "_build_store", lambda config: memory_store)
    return memory_store


def test_cli_init_writes_config(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RKEYFS_ACCESS_TOKEN", "env-token")
    runner = CliRunner()

    result = runner.invoke(app, ["init", "@Alice.Example.com", "--service", "pds.example.com"])

    assert result.exit_code == 0
    assert "Initialized rkeyfs" in result.output
    config = load_config(tmp_path)
    assert config.account_id == "alice.example.com"
    assert config.service_url == "https://pds.example.com"
    assert config.access_token == "env-token"


def test_cli_file_lifecycle(store: MemoryRecordStore, tmp_path) -> None:
    runner = CliRunner()
    source = tmp_path / "local.txt"
    source.write_bytes(b"hi")

    assert runner.invoke(app, ["mkdir", "docs"]).exit_code == 0
    put_result = runner.invoke(app, ["put", str(source), "docs/a.txt"])
    assert put_result.exit_code == 0
    assert "Uploaded" in put_result.output

    ls_result = runner.invoke(app, ["ls", "docs"])
    assert ls_result.exit_code == 0
    assert "a.txt" in ls_result.output

    get_result = runner.invoke(app, ["get", "docs/a.txt", "-"])
    assert get_result.exit_code == 0
    assert get_result.output == "hi"

    source.write_bytes(b"updated")
    replace_result = runner.invoke(app, ["put", str(source), "docs/a.txt"])
    assert replace_result.exit_code == 0
    assert "Replaced" in replace_result.output

    target = tmp_path / "out" / "copy.txt"
    assert runner.invoke(app, ["get", "docs/a.txt", str(target)]).exit_code == 0
    assert target.read_bytes() == b"updated"

    assert runner.invoke(app, ["rm", "docs/a.txt"]).exit_code == 0
    stat_result = runner.invoke(app, ["stat", "docs/a.txt"])
    assert stat_result.exit_code == 1
    assert "Not found" in stat_result.output


def test_cli_rm_non_empty_directory_fails(store: MemoryRecordStore, tmp_path) -> None:
    runner = CliRunner()
    source = tmp_path / "local.txt"
    source.write_bytes(b"hi")
    runner.invoke(app, ["mkdir", "docs"])
    runner.invoke(app, ["put", str(source), "docs/a.txt"])

    result = runner.invoke(app, ["rm", "docs"])

    assert result.exit_code == 1
    assert "not supported" in result.output


def test_cli_write_requires_token(store: MemoryRecordStore, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    save_config(RkeyFsConfig(account_id="did:plc:testaccount"), tmp_path)

    result = CliRunner().invoke(app, ["mkdir", "docs"])

    assert result.exit_code == 1
    assert "access token" in result.output


def test_cli_without_config(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(app, ["ls"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_cli_encode_decode() -> None:
    runner = CliRunner()

    encoded = runner.invoke(app, ["encode", "a b/c.txt"])
    decoded = runner.invoke(app, ["decode", "a_0020b:c.txt"])
    rejected = runner.invoke(app, ["encode", "a:b"])

    assert encoded.exit_code == 0
    assert encoded.output.strip() == "a_0020b:c.txt"
    assert decoded.output.strip() == "a b/c.txt"
    assert rejected.exit_code == 1
