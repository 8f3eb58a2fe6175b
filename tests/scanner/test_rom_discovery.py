import zlib

import pytest

from collie.scanner.hash_calculator import calculate_crc32
from collie.scanner.rom_scanner import ScannerError, scan_console_folder, scan_roms_path


@pytest.mark.unit
def test_scan_finds_roms_in_matching_folders(make_roms, consoles):
    roms_path = make_roms({
        "GBA": ["Beta.gba", "Alpha.gba"],
        "fc": ["Zelda.nes"],
        "Music": ["song.mp3"],
    })

    roms = scan_roms_path(roms_path, consoles)

    assert [(r.console_dir.name, r.name) for r in roms] == [
        ("GBA", "Alpha.gba"),
        ("GBA", "Beta.gba"),
        ("fc", "Zelda.nes"),
    ]
    alpha = roms[0]
    assert alpha.stem == "Alpha"
    assert alpha.console.name == "Game Boy Advance"
    assert alpha.path.is_absolute()
    assert alpha.file_size == len(b"ROM DATA Alpha.gba")
    assert alpha.key == "GBA/Alpha.gba"


@pytest.mark.unit
def test_scan_skips_artifacts_and_non_rom_files(make_roms, consoles):
    roms_path = make_roms({"GBA": ["Alpha.gba", "gamelist.xml", "Alpha.miyoocmd", ".hidden.gba"]})
    (roms_path / "GBA" / "Imgs").mkdir()
    (roms_path / "GBA" / "Imgs" / "Alpha.png").write_bytes(b"png")
    (roms_path / "GBA" / "Guides").mkdir()
    (roms_path / ".collie").mkdir()

    roms = scan_roms_path(roms_path, consoles, extra_skipped_names=("Guides",))

    assert [r.name for r in roms] == ["Alpha.gba"]


@pytest.mark.unit
def test_scan_console_folder_directly(make_roms, gba_console):
    roms_path = make_roms({"GBA": ["One.gba", "Two.gba", "notes.nfo"]})

    roms = scan_console_folder(roms_path / "GBA", gba_console)

    assert [r.name for r in roms] == ["One.gba", "Two.gba"]


@pytest.mark.unit
def test_scan_missing_path_raises(tmp_path, consoles):
    with pytest.raises(ScannerError):
        scan_roms_path(tmp_path / "missing", consoles)


@pytest.mark.unit
def test_calculate_crc32(tmp_path):
    path = tmp_path / "rom.bin"
    data = b"collie" * 1000
    path.write_bytes(data)

    assert calculate_crc32(path) == f"{zlib.crc32(data) & 0xFFFFFFFF:08X}"
    assert calculate_crc32(path, size_limit=10) is None
    assert calculate_crc32(path, size_limit=0) is not None


@pytest.mark.unit
def test_symlinked_rom_stays_in_its_console_folder(tmp_path, make_roms, consoles):
    roms_path = make_roms({"GBA": []})
    elsewhere = tmp_path / "Downloads"
    elsewhere.mkdir()
    (elsewhere / "Alpha.gba").write_bytes(b"ROM DATA")
    (roms_path / "GBA" / "Alpha.gba").symlink_to(elsewhere / "Alpha.gba")

    [rom] = scan_roms_path(roms_path, consoles)

    assert rom.path == (roms_path / "GBA" / "Alpha.gba").absolute()
    assert rom.console_dir == (roms_path / "GBA").absolute()
    assert rom.key == "GBA/Alpha.gba"
