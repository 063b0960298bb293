import json
import warnings

import pytest

from grooveplayer.analyze import analyze_file, analyze_midi, drum_histogram, scan_library
from grooveplayer.decode import decode_midi
from grooveplayer.drummap import make_drum_map
from grooveplayer.errors import UnmappedVoiceWarning
from grooveplayer.timeline import DecodedMidi, MidiHeader
from conftest import make_midi, single_track, two_bar_groove


def test_kick_histogram():
    midi = decode_midi(make_midi([{"notes": [(0, 36, 100, 120)]}]))
    assert drum_histogram(midi) == {"Kick": 1}


def test_two_bar_report():
    report = analyze_midi(decode_midi(two_bar_groove()))
    assert report.duration_bars == pytest.approx(2.0)
    assert report.duration == pytest.approx(4.0)
    assert report.ppq == 480
    assert report.tempo == pytest.approx(120.0)
    assert report.time_signature == (4, 4)
    assert report.total_notes == 8
    assert report.drum_notes == {"Kick": 4, "Snare": 4}


def test_bars_ignore_time_signature():
    # one 3/4 bar is still counted as 0.75 of a 4/4 bar
    notes = [(i * 480, 42, 90, 480) for i in range(3)]
    report = analyze_midi(decode_midi(make_midi([{"notes": notes}], timesig=(3, 4))))
    assert report.time_signature == (3, 4)
    assert report.duration_bars == pytest.approx(0.75)


@pytest.mark.parametrize("midi", [
    DecodedMidi(header=MidiHeader(), tracks=[]),
    decode_midi(make_midi([{"name": "Empty"}])),
])
def test_no_notes(midi):
    report = analyze_midi(midi)
    assert report.drum_notes == {}
    assert report.duration_bars == 0
    assert report.total_notes == 0


def test_missing_tempo_and_time_signature():
    data = make_midi([{"notes": [(0, 36, 100, 120)]}], tempos=[], timesig=None)
    report = analyze_midi(decode_midi(data))
    assert report.tempo is None
    assert report.time_signature is None
    # 120 BPM is assumed for timing
    assert report.duration == pytest.approx(0.125)


def test_track_details():
    data = make_midi([
        {"name": "Kit", "program": 0, "notes": [(0, 36, 100, 120), (240, 51, 80, 120)], "ccs": [(0, 4, 64)]},
        {"channel": 0, "program": 33, "notes": [(0, 40, 100, 120)]},
        {"name": "Empty"},
    ])
    details = analyze_midi(decode_midi(data)).track_details
    assert [d.index for d in details] == [0, 1, 2, 3]
    assert [d.name for d in details] == ["Unnamed", "Kit", "Unnamed", "Empty"]

    kit = details[1]
    assert kit.channel == 9
    assert kit.instrument == "Drum Kit"
    assert kit.note_count == 2
    assert (kit.note_range.min, kit.note_range.max) == (36, 51)
    assert (kit.note_range.min_name, kit.note_range.max_name) == ("C2", "D#3")
    assert kit.control_changes == [4]

    bass = details[2]
    assert bass.channel == 0
    assert bass.instrument == "Electric Bass (finger)"

    empty = details[3]
    assert empty.note_count == 0
    assert empty.note_range is None
    assert empty.instrument == "N/A"
    assert empty.control_changes == []


def test_unmapped_pitch_warns_once_per_pitch():
    midi = decode_midi(make_midi([{"notes": [(0, 37, 100, 60), (240, 37, 100, 60), (480, 36, 100, 60)]}]))
    with pytest.warns(UnmappedVoiceWarning, match="MIDI 37") as record:
        counts = drum_histogram(midi)
    assert counts == {"MIDI 37": 2, "Kick": 1}
    assert len([w for w in record if issubclass(w.category, UnmappedVoiceWarning)]) == 1


def test_custom_drum_map():
    midi = decode_midi(make_midi([{"notes": [(0, 37, 100, 60), (240, 36, 100, 60)]}]))
    drum_map = make_drum_map({"37": "Side Stick", 36: "Bass Drum"})
    with warnings.catch_warnings():
        warnings.simplefilter("error", UnmappedVoiceWarning)
        report = analyze_midi(midi, drum_map)
    assert report.drum_notes == {"Side Stick": 1, "Bass Drum": 1}


def test_report_is_json_serializable():
    d = analyze_midi(decode_midi(two_bar_groove())).to_dict()
    d = json.loads(json.dumps(d))
    assert d["time_signature"] == [4, 4]
    assert d["track_details"][1]["note_range"]["min_name"] == "C2"
    assert "file_path" not in d


def test_analyze_file_adds_path_fields(tmp_path):
    folder = tmp_path / "1918@EZX_UK_POP" / "136-S055@BRIDGE"
    folder.mkdir(parents=True)
    path = folder / "variation_01.mid"
    path.write_bytes(two_bar_groove())

    d = analyze_file(path).to_dict()
    assert d["file_path"] == str(path)
    assert d["file_name"] == "variation_01.mid"
    assert d["library_name"] == "EZX UK POP"
    assert d["section"] == "BRIDGE"
    assert d["bpm"] == 136
    assert d["variation"] == 1
    assert d["tempo"] == pytest.approx(120.0)


def test_scan_library_keeps_going_after_bad_file(tmp_path):
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "01.mid").write_bytes(two_bar_groove())
    (tmp_path / "a" / "02.mid").write_bytes(b"not a midi file")
    (tmp_path / "a" / "notes.txt").write_text("ignored")
    (tmp_path / "b.MID").write_bytes(two_bar_groove())

    results = scan_library(str(tmp_path))
    assert [r["file_path"].rsplit("/", 1)[-1] for r in results] == ["01.mid", "02.mid", "b.MID"]
    assert "error" in results[1]
    assert "MThd" in results[1]["error"]
    assert results[0]["total_notes"] == 8
    assert results[2]["drum_notes"] == {"Kick": 4, "Snare": 4}


def test_scan_library_limits(tmp_path):
    deep = tmp_path / "x" / "y"
    deep.mkdir(parents=True)
    for name in ("1.mid", "2.mid", "3.mid"):
        (tmp_path / name).write_bytes(two_bar_groove())
    (deep / "deep.mid").write_bytes(two_bar_groove())

    assert len(scan_library(str(tmp_path), max_files=2)) == 2
    assert len(scan_library(str(tmp_path))) == 4
    assert len(scan_library(str(tmp_path), max_depth=1)) == 3


def test_scan_library_survives_bad_meta_events(tmp_path):
    body = b"\x00\xff\x51\x03\x00\x00\x00\x00\xff\x2f\x00"
    (tmp_path / "a.mid").write_bytes(single_track(body))
    body = b"\x00\xff\x59\x02\x00\x02\x00\xff\x2f\x00"
    (tmp_path / "b.mid").write_bytes(single_track(body))
    (tmp_path / "c.mid").write_bytes(two_bar_groove())

    results = scan_library(str(tmp_path))
    assert ["error" in r for r in results] == [True, True, False]
    assert "tempo" in results[0]["error"]
    assert results[2]["total_notes"] == 8
