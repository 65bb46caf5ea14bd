import pytest
from pydantic import ValidationError

from mnemos.application import config as config_module
from mnemos.application.config import AppConfig, resolve_config
from mnemos.application.factory import build_services, get_document_store
from mnemos.infrastructure.stores import InMemoryDocumentStore, JsonFileDocumentStore


@pytest.fixture
def config_file(mock_home, monkeypatch):
    path = mock_home / ".mnemos.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILES", [path])
    return path


def test_defaults(config_file, mock_home):
    config = resolve_config()
    assert config.store_backend == "json"
    assert config.daily_limit == 20
    assert config.data_dir.resolve() == (mock_home / ".local/share/mnemos").resolve()
    assert config.lessons_file is None


def test_toml_file(config_file):
    config_file.write_text('store_backend = "memory"\ndaily_limit = 5\n', encoding="utf-8")
    config = resolve_config()
    assert config.store_backend == "memory"
    assert config.daily_limit == 5


def test_env_beats_toml(config_file, monkeypatch):
    config_file.write_text("daily_limit = 5\n", encoding="utf-8")
    monkeypatch.setenv("MNEMOS_DAILY_LIMIT", "7")
    assert resolve_config().daily_limit == 7


def test_overrides_beat_env(config_file, monkeypatch):
    monkeypatch.setenv("MNEMOS_STORE_BACKEND", "json")
    config = resolve_config({"store_backend": "memory", "data_dir": None})
    assert config.store_backend == "memory"


def test_paths_are_expanded(config_file, mock_home):
    config = resolve_config({"data_dir": "~/mnemos-data", "lessons_file": "~/lessons.yaml"})
    assert config.data_dir == (mock_home / "mnemos-data").resolve()
    assert config.lessons_file == (mock_home / "lessons.yaml").resolve()


def test_rejects_unknown_backend(config_file):
    with pytest.raises(ValidationError):
        resolve_config({"store_backend": "mongo"})


def test_rejects_threshold_above_one(config_file):
    with pytest.raises(ValidationError):
        resolve_config({"sentence_unlock_threshold": 1.5})


def test_store_selection(config_file, tmp_path):
    assert isinstance(get_document_store(AppConfig(store_backend="memory")), InMemoryDocumentStore)
    store = get_document_store(AppConfig(store_backend="json", data_dir=tmp_path))
    assert isinstance(store, JsonFileDocumentStore)
    assert store.data_dir == tmp_path.resolve()


def test_build_services_uses_default_catalog(config_file):
    services = build_services(AppConfig(store_backend="memory"))
    assert len(services.catalog) == 7
    assert services.sessions.catalog is services.catalog
