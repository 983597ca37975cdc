#!/usr/bin/env python3
"""ABOUTME: Tests for MIDI file playback through the router (play, pause, stop, rewind).
ABOUTME: Builds tiny MIDI files with mido in a temp directory."""

import sys
import time
from pathlib import Path

import mido
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from midi.event_router import EventRouter
from midi.player import ALL_NOTES_OFF, MidiFilePlayer
from music.visualization_engine import VisualizationEngine


class RecordingSink:
    def __init__(self):
        self.sent = []
        self.arrivals = []

    def send(self, message, timestamp=0.0):
        self.sent.append(message)
        self.arrivals.append(time.perf_counter())

    def close(self):
        pass


def write_midi(path, note_length_ticks):
    mid = mido.MidiFile(ticks_per_beat=480)
    track = mido.MidiTrack()
    mid.tracks.append(track)
    track.append(mido.MetaMessage('set_tempo', tempo=500000, time=0))
    track.append(mido.Message('program_change', channel=1, program=73, time=0))
    track.append(mido.Message('note_on', channel=1, note=72, velocity=100, time=0))
    track.append(mido.Message('note_off', channel=1, note=72, velocity=0, time=note_length_ticks))
    mid.save(str(path))
    return path


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def router(sink):
    r = EventRouter(VisualizationEngine())
    r.set_target(sink)
    return r


def test_plays_file_to_end(tmp_path, router, sink):
    player = MidiFilePlayer(router)
    # 24 ticks at 120 bpm = 25 ms
    player.load(write_midi(tmp_path / "short.mid", 24))
    assert player.duration == pytest.approx(0.025)
    player.play()
    assert player.wait(timeout=5.0)
    types = [m.type for m in sink.sent]
    assert types == ['program_change', 'note_on', 'note_off']
    assert router.engine.instrument_name(1) == "Flute"


def test_stop_rewinds_and_silences(tmp_path, router, sink):
    player = MidiFilePlayer(router)
    # 9600 ticks at 120 bpm = 10 s, so the note is still held when we stop
    player.load(write_midi(tmp_path / "long.mid", 9600))
    player.play()
    deadline = time.time() + 5.0
    while not router.engine.channel(1).active_notes() and time.time() < deadline:
        time.sleep(0.01)
    assert router.engine.channel(1).active_notes() == [72]

    player.stop()
    assert not player.is_playing()
    controls = [m for m in sink.sent if m.type == 'control_change']
    assert sorted(m.channel for m in controls) == list(range(16))
    assert all(m.control == ALL_NOTES_OFF for m in controls)
    assert router.engine.channel(1).active_notes() == []


def test_pause_toggles(tmp_path, router):
    player = MidiFilePlayer(router)
    player.load(write_midi(tmp_path / "long.mid", 9600))
    player.play()
    player.pause()
    assert player.is_paused()
    player.pause()
    assert not player.is_paused()
    player.stop()


def test_play_without_file_does_nothing(router):
    player = MidiFilePlayer(router)
    player.play()
    assert not player.is_playing()


def test_pause_holds_remaining_delta(tmp_path, router, sink):
    player = MidiFilePlayer(router)
    # 960 ticks at 120 bpm = 1 s between note-on and note-off
    player.load(write_midi(tmp_path / "second.mid", 960))
    player.play()
    time.sleep(0.2)
    player.pause()
    time.sleep(1.2)
    assert [m.type for m in sink.sent] == ['program_change', 'note_on']
    assert player.playback_time() == pytest.approx(0.2, abs=0.1)

    resumed = time.perf_counter()
    player.pause()
    assert player.wait(timeout=5.0)
    assert sink.sent[-1].type == 'note_off'
    assert sink.arrivals[-1] - resumed == pytest.approx(0.8, abs=0.15)


def test_play_after_end_restarts_from_top(tmp_path, router, sink):
    player = MidiFilePlayer(router)
    player.load(write_midi(tmp_path / "short.mid", 24))
    player.play()
    assert player.wait(timeout=5.0)
    player.play()
    assert player.wait(timeout=5.0)
    assert [m.type for m in sink.sent].count('note_on') == 2
