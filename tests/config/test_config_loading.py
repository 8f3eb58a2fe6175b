from pathlib import Path

import pytest

from collie.config.consoles import ConsoleCatalog, ConsolesError, load_consoles
from collie.config.loader import DEFAULT_CONFIG, ConfigError, get_config_value, load_config
from collie.config.validator import ValidationError, validate_config


@pytest.mark.unit
def test_load_config_merges_over_defaults(make_config):
    path = make_config({"server": {"port": 8080}, "backends": {"thegamesdb": {"min_interval": 2.5}}})

    config = load_config(path)

    assert config["server"]["port"] == 8080
    assert config["server"]["bind"] == "127.0.0.1"
    assert config["backends"]["thegamesdb"]["min_interval"] == 2.5
    assert config["backends"]["thegamesdb"]["max_concurrent"] == 2
    assert config["scraping"]["max_workers"] == 4


@pytest.mark.unit
def test_load_config_without_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


@pytest.mark.unit
def test_load_config_explicit_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.unit
def test_load_config_invalid_yaml_raises(tmp_path):
    path = tmp_path / "collie.yaml"
    path.write_text("server: [unclosed")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


@pytest.mark.unit
def test_get_config_value_dot_lookup():
    assert get_config_value(DEFAULT_CONFIG, "server.port") == 2435
    assert get_config_value(DEFAULT_CONFIG, "backends.gamefaqs.min_interval") == 0.5
    assert get_config_value(DEFAULT_CONFIG, "server.missing", "x") == "x"
    assert get_config_value(DEFAULT_CONFIG, "server.port.deeper") is None


@pytest.mark.unit
def test_validate_config_accepts_defaults():
    validate_config(DEFAULT_CONFIG)


@pytest.mark.unit
def test_validate_config_collects_all_errors(make_config):
    config = load_config(make_config({
        "server": {"port": 70000},
        "logging": {"level": "CHATTY"},
        "scraping": {"max_workers": 0},
        "backends": {"screenscraper": {"max_concurrent": 0}, "nope": {}},
    }))

    with pytest.raises(ValidationError) as exc_info:
        validate_config(config)

    message = str(exc_info.value)
    assert message.startswith("Configuration validation failed:")
    assert "server.port" in message
    assert "logging.level" in message
    assert "scraping.max_workers" in message
    assert "backends.screenscraper.max_concurrent" in message
    assert "backends.nope" in message


@pytest.mark.unit
def test_bundled_consoles_load():
    catalog = load_consoles()

    assert len(catalog) > 20
    gba = catalog.find_console("gba")
    assert gba is not None
    assert gba.screenscraper_id == 12
    assert gba.gamefaqs_archive_id == "gba"
    assert catalog.find_console("Atari7800").gamefaqs_archive_id == "7800"
    assert catalog.find_console("NOT-A-CONSOLE") is None


@pytest.mark.unit
def test_load_consoles_rejects_bad_file(tmp_path):
    path = tmp_path / "consoles.yaml"
    path.write_text("- just a list\n")
    with pytest.raises(ConsolesError):
        load_consoles(path)


@pytest.mark.unit
def test_catalog_patterns(consoles: ConsoleCatalog):
    assert consoles.find_console("FC").name == "Nintendo Entertainment System"
    assert set(consoles.all_patterns()) == {"GBA", "FC", "NES"}
