from pathlib import Path

import pytest

from collie.config.scrape_config import ScrapeConfig, ScrapeConfigError
from collie.config.validator import validate_scrape_config


def payload(tmp_path, **overrides):
    data = {
        "romsPath": str(tmp_path),
        "boxArtWidth": 250,
        "skipCache": False,
        "metadataBackends": {
            "screenscraper": {"username": "", "password": "", "boxArtType": "box-2D"},
            "thegamesdb": None,
        },
        "guideBackends": {"gamefaqs": True},
    }
    data.update(overrides)
    return data


@pytest.mark.unit
def test_from_dict_parses_ui_payload(tmp_path):
    config = ScrapeConfig.from_dict(payload(tmp_path))

    assert config.roms_path == Path(tmp_path)
    assert config.box_art_width == 250
    assert config.skip_cache is False
    assert [b.key for b in config.metadata_backends] == ["screenscraper"]
    assert [b.key for b in config.guide_backends] == ["gamefaqs"]

    screenscraper = config.backend("screenscraper")
    # Blank form fields count as absent
    assert screenscraper.credentials == {}
    assert screenscraper.options == {"boxArtType": "box-2D"}
    assert config.backend("thegamesdb") is None


@pytest.mark.unit
def test_metadata_backend_order_is_fixed(tmp_path):
    config = ScrapeConfig.from_dict(payload(
        tmp_path,
        metadataBackends={"thegamesdb": {"apiKey": "k"}, "screenscraper": {}},
    ))
    assert [b.key for b in config.metadata_backends] == ["screenscraper", "thegamesdb"]
    assert config.backend("thegamesdb").credentials == {"apiKey": "k"}


@pytest.mark.unit
@pytest.mark.parametrize("width", [0, -5, None])
def test_non_positive_width_means_original_size(tmp_path, width):
    assert ScrapeConfig.from_dict(payload(tmp_path, boxArtWidth=width)).box_art_width is None


@pytest.mark.unit
def test_guide_backend_disabled_by_false_or_null(tmp_path):
    assert not ScrapeConfig.from_dict(payload(tmp_path, guideBackends={"gamefaqs": False})).guide_backends
    assert not ScrapeConfig.from_dict(payload(tmp_path, guideBackends={"gamefaqs": None})).guide_backends


@pytest.mark.unit
def test_missing_roms_path_falls_back_to_default(tmp_path):
    data = payload(tmp_path)
    del data["romsPath"]
    assert ScrapeConfig.from_dict(data, default_roms_path=tmp_path).roms_path == tmp_path

    with pytest.raises(ScrapeConfigError):
        ScrapeConfig.from_dict(data)


@pytest.mark.unit
@pytest.mark.parametrize(
    "bad",
    [[], {"romsPath": "x", "boxArtWidth": "wide"}, {"romsPath": "x", "metadataBackends": "screenscraper"}],
)
def test_malformed_payloads_raise(bad):
    with pytest.raises(ScrapeConfigError):
        ScrapeConfig.from_dict(bad)


@pytest.mark.unit
def test_validate_scrape_config_accepts_valid(tmp_path):
    assert validate_scrape_config(ScrapeConfig.from_dict(payload(tmp_path))) == []


@pytest.mark.unit
def test_validate_scrape_config_reports_every_problem(tmp_path):
    config = ScrapeConfig.from_dict(payload(
        tmp_path,
        romsPath=str(tmp_path / "missing"),
        metadataBackends={"screenscraper": {"username": "only-user"}, "thegamesdb": {}},
    ))

    errors = validate_scrape_config(config)

    assert any("does not exist" in e for e in errors)
    assert "TheGamesDB requires an API key" in errors
    assert "ScreenScraper needs both username and password, or neither" in errors


@pytest.mark.unit
def test_validate_scrape_config_requires_a_backend(tmp_path):
    config = ScrapeConfig.from_dict(payload(tmp_path, metadataBackends={}, guideBackends={}))
    assert validate_scrape_config(config) == ["No scraping backends enabled"]


@pytest.mark.unit
def test_validate_scrape_config_rejects_file_as_roms_path(tmp_path):
    file_path = tmp_path / "file.txt"
    file_path.write_text("x")
    config = ScrapeConfig.from_dict(payload(tmp_path, romsPath=str(file_path)))
    assert any("not a directory" in e for e in validate_scrape_config(config))
