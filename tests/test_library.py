import pytest

from grooveplayer.library import parse_library_path


def test_full_library_path():
    assert parse_library_path("1918@EZX_UK_POP/136-S055@BRIDGE/variation_01.mid") == {
        "library_code": "1918",
        "library_name": "EZX UK POP",
        "bpm": 136,
        "groove_number": "055",
        "section": "BRIDGE",
        "variation": 1,
    }


def test_absolute_path_under_library_root():
    meta = parse_library_path("/Library/Application Support/EZDrummer/Midi/2001@EZX_JAZZ/92-S003@VERSE_A/Variation_12.MID")
    assert meta["library_code"] == "2001"
    assert meta["library_name"] == "EZX JAZZ"
    assert meta["bpm"] == 92
    assert meta["section"] == "VERSE A"
    assert meta["variation"] == 12


def test_windows_separators():
    meta = parse_library_path(r"C:\Midi\1918@EZX_UK_POP\136-S055@BRIDGE\variation_01.mid")
    assert meta["library_code"] == "1918"
    assert meta["groove_number"] == "055"


@pytest.mark.parametrize("path, expected", [
    ("", {}),
    ("groove.mid", {}),
    ("grooves/fill_02.mid", {}),
    ("grooves/variation_03.mid", {"variation": 3}),
    ("1918@EZX_UK_POP/fills/fill.mid", {"library_code": "1918", "library_name": "EZX UK POP"}),
])
def test_unmatched_fields_are_left_out(path, expected):
    assert parse_library_path(path) == expected
