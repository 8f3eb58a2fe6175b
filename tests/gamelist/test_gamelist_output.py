import pytest
from lxml import etree

from collie.gamelist import GameEntry, GamelistWriter
from collie.workflow.game_record import GameRecord, MetadataRecord, ScrapeStatus


def parse(path):
    root = etree.parse(str(path)).getroot()
    return {game.findtext("path"): game for game in root.findall("game")}


@pytest.mark.unit
def test_entry_from_record_with_artifacts(tmp_path):
    console_dir = tmp_path / "GBA"
    (console_dir / "Imgs").mkdir(parents=True)
    (console_dir / "Imgs" / "Alpha.png").write_bytes(b"png")
    guide_dir = console_dir / "Guides" / "Alpha"
    guide_dir.mkdir(parents=True)
    (guide_dir / "b.txt").write_text("b")
    (guide_dir / "a.txt").write_text("a")
    record = GameRecord(
        rom_name="Alpha.gba",
        metadata=MetadataRecord(
            status=ScrapeStatus.SUCCESS, name="Alpha &amp; Omega", rating="0.8", release_date="2001"
        ),
    )

    entry = GameEntry.from_record(record, console_dir)

    assert entry.path == "./Alpha.gba"
    assert entry.name == "Alpha & Omega"
    assert entry.image == "./Imgs/Alpha.png"
    assert entry.guides == ["./Guides/Alpha/a.txt", "./Guides/Alpha/b.txt"]
    assert entry.releasedate == "2001"


@pytest.mark.unit
def test_entry_skips_records_without_metadata(tmp_path):
    record = GameRecord(rom_name="Alpha.gba", metadata=MetadataRecord(status=ScrapeStatus.FAILED))
    assert GameEntry.from_record(record, tmp_path) is None


@pytest.mark.unit
def test_entry_for_skipped_record_uses_stem_when_unnamed(tmp_path):
    record = GameRecord(rom_name="Alpha.gba", metadata=MetadataRecord(status=ScrapeStatus.SKIPPED))
    entry = GameEntry.from_record(record, tmp_path)
    assert entry.name == "Alpha"
    assert entry.image is None


@pytest.mark.unit
def test_write_new_gamelist(tmp_path):
    output = tmp_path / "gamelist.xml"
    entries = [
        GameEntry(path="./Alpha.gba", name="Alpha & Omega", rating="0.8", genre="RPG"),
        GameEntry(path="./Beta.gba", name="Beta", guides=["./Guides/Beta/FAQ.txt"]),
    ]

    count = GamelistWriter().write_gamelist(entries, output)

    assert count == 2
    raw = output.read_text(encoding="utf-8")
    assert raw.startswith("<?xml")
    assert "Alpha &amp; Omega" in raw
    games = parse(output)
    assert games["./Alpha.gba"].findtext("genre") == "RPG"
    assert games["./Beta.gba"].findtext("guide") == "./Guides/Beta/FAQ.txt"
    assert games["./Beta.gba"].find("rating") is None


@pytest.mark.unit
def test_merge_preserves_foreign_entries_and_elements(tmp_path):
    output = tmp_path / "gamelist.xml"
    output.write_text(
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<gameList>"
        "<game><path>./Alpha.gba</path><name>Old</name><favorite>true</favorite></game>"
        "<game><path>./Manual.gba</path><name>Hand made</name></game>"
        "</gameList>"
    )

    count = GamelistWriter().write_gamelist([GameEntry(path="./Alpha.gba", name="New")], output)

    assert count == 2
    games = parse(output)
    assert games["./Alpha.gba"].findtext("name") == "New"
    assert games["./Alpha.gba"].findtext("favorite") == "true"
    assert len(games["./Alpha.gba"].findall("name")) == 1
    assert games["./Manual.gba"].findtext("name") == "Hand made"


@pytest.mark.unit
def test_unreadable_gamelist_is_replaced(tmp_path):
    output = tmp_path / "gamelist.xml"
    output.write_text("<gameList><game>")

    assert GamelistWriter().write_gamelist([GameEntry(path="./A.gba", name="A")], output) == 1
    assert set(parse(output)) == {"./A.gba"}
