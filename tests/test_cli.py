import logging

import pytest

import collie.cli as cli
from collie.config.loader import ConfigError


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def fake_server(monkeypatch):
    called = {}

    async def fake_run_server(config, roms_path, consoles):
        called["config"] = config
        called["roms_path"] = roms_path
        called["consoles"] = consoles
        return 0

    monkeypatch.setattr(cli, "run_server", fake_run_server)
    monkeypatch.setattr(cli, "_setup_logging", lambda config: None)
    return called


@pytest.mark.unit
def test_parser_defaults():
    args = cli.create_parser().parse_args([])
    assert args.config is None
    assert args.bind is None
    assert args.port is None
    assert args.no_launch is False
    assert args.no_cache is False
    assert args.log_level is None


@pytest.mark.unit
def test_parser_flags():
    args = cli.create_parser().parse_args(
        ["--bind", "0.0.0.0", "--port", "8080", "--no-launch", "--no-cache", "--log-level", "debug"]
    )
    assert args.bind == "0.0.0.0"
    assert args.port == 8080
    assert args.no_launch is True
    assert args.no_cache is True
    assert args.log_level == "DEBUG"


@pytest.mark.unit
def test_parser_rejects_unknown_log_level():
    with pytest.raises(SystemExit):
        cli.create_parser().parse_args(["--log-level", "chatty"])


@pytest.mark.unit
def test_main_handles_config_error(monkeypatch):
    def broken(path=None):
        raise ConfigError("bad config")

    monkeypatch.setattr(cli, "load_config", broken)
    assert cli.main([]) == 1


@pytest.mark.unit
def test_main_rejects_invalid_port(monkeypatch, tmp_path, fake_server):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["--port", "70000"]) == 1
    assert "config" not in fake_server


@pytest.mark.unit
def test_main_applies_overrides(monkeypatch, tmp_path, fake_server):
    monkeypatch.chdir(tmp_path)

    code = cli.main(["--bind", "0.0.0.0", "--port", "9000", "--no-launch", "--log-level", "warning"])

    assert code == 0
    config = fake_server["config"]
    assert config["server"] == {"bind": "0.0.0.0", "port": 9000, "launch_browser": False}
    assert config["logging"]["level"] == "WARNING"
    assert fake_server["roms_path"] == tmp_path
    assert len(fake_server["consoles"]) > 0


@pytest.mark.unit
def test_main_reads_config_file(monkeypatch, tmp_path, make_config, fake_server):
    monkeypatch.chdir(tmp_path)
    path = make_config({"server": {"port": 8123}})

    assert cli.main(["--config", str(path)]) == 0
    assert fake_server["config"]["server"]["port"] == 8123
    assert fake_server["config"]["scraping"]["max_workers"] == 4


@pytest.mark.unit
def test_no_cache_clears_data_folder(monkeypatch, tmp_path, fake_server):
    monkeypatch.chdir(tmp_path)
    data_dir = tmp_path / ".collie"
    data_dir.mkdir()
    (data_dir / "games.json").write_text("{}")

    assert cli.main(["--no-cache", "--no-launch"]) == 0
    assert not data_dir.exists()


@pytest.mark.unit
def test_clear_cache_without_data_folder(tmp_path):
    assert cli.clear_cache(tmp_path) is False


@pytest.mark.unit
def test_setup_logging_levels(tmp_path, restore_logging):
    log_file = tmp_path / "logs" / "collie.log"

    cli._setup_logging({"logging": {"level": "DEBUG", "file": str(log_file)}})
    logging.getLogger("collie.test").debug("hello file")

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello file" in log_file.read_text()
