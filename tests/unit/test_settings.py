# tests/unit/test_settings.py
import pytest

from notifier.settings import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # sem .env no diretório corrente
    monkeypatch.chdir(tmp_path)
    for name in (
        "DRY_RUN", "LOG_LEVEL", "QUEUE_PROCESSING_ENABLED", "QUEUE_BATCH_SIZE",
        "TENANT_REGISTRY_JSON", "TENANT_CREDENTIALS_JSON", "SQLITE_PATH", "CONFIG_NAME",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings("test")
    assert s["CONFIG_NAME"] == "test"
    assert s["DRY_RUN"] is False
    assert s["LOG_LEVEL"] == "INFO"
    assert s["QUEUE_PROCESSING_ENABLED"] is True
    assert s["QUEUE_BATCH_SIZE"] == 50
    assert s["QUEUE_ITEM_DELAY_MS"] == 100
    assert s["QUEUE_MAX_RETRIES"] == 3
    assert s["GRAPH_VERSION"] == "v22.0"
    assert s["TENANT_REGISTRY"] == {}
    assert s["SQLITE_PATH"] == "data/app.db"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("QUEUE_PROCESSING_ENABLED", "0")
    monkeypatch.setenv("QUEUE_BATCH_SIZE", "10")
    monkeypatch.setenv("TENANT_REGISTRY_JSON", '{"111": "tenant-a"}')

    s = load_settings("test")
    assert s["DRY_RUN"] is True
    assert s["LOG_LEVEL"] == "DEBUG"
    assert s["QUEUE_PROCESSING_ENABLED"] is False
    assert s["QUEUE_BATCH_SIZE"] == 10
    assert s["TENANT_REGISTRY"] == {"111": "tenant-a"}


def test_env_file_is_loaded(monkeypatch, tmp_path):
    # registra o valor para o monkeypatch desfazer o que o dotenv gravar
    monkeypatch.setenv("QUEUE_BATCH_SIZE", "1")
    (tmp_path / ".env.staging").write_text("QUEUE_BATCH_SIZE=7\n")
    assert load_settings("staging")["QUEUE_BATCH_SIZE"] == 7


@pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
def test_invalid_registry_json_is_ignored(monkeypatch, raw):
    monkeypatch.setenv("TENANT_REGISTRY_JSON", raw)
    assert load_settings("test")["TENANT_REGISTRY"] == {}
