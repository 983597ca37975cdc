"""Composition root for the per-channel visualization state."""
from threading import Lock
from typing import Callable, List, Optional, Tuple

import numpy as np

from midi.messages import coerce_message, is_channel_voice
from music.channel_synth import ChannelSynth
from music.level_analyzer import BandMeter, rms_and_peak

NUM_CHANNELS = 16


class VisualizationEngine:
    """Owns the 16 channel synths, their band meters and the mute/solo table.

    Each channel has its own lock inside its ChannelSynth, so a busy channel
    never holds up the others. The mute/solo table has a separate lock.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.channels: List[ChannelSynth] = [ChannelSynth(clock=clock) for _ in range(NUM_CHANNELS)]
        self.meters: List[BandMeter] = [BandMeter() for _ in range(NUM_CHANNELS)]
        self._mix_lock = Lock()
        self._muted = [False] * NUM_CHANNELS
        self._solo = [False] * NUM_CHANNELS

    @staticmethod
    def _check_channel(channel: int) -> int:
        if not 0 <= channel < NUM_CHANNELS:
            raise ValueError(f"MIDI channel must be in 0..{NUM_CHANNELS - 1}, got {channel}")
        return int(channel)

    def channel(self, channel: int) -> ChannelSynth:
        return self.channels[self._check_channel(channel)]

    # ── MIDI input ───────────────────────────────────────────────

    def handle(self, message, timestamp: float = 0.0):
        """Update channel state from a MIDI message.

        Accepts mido messages or raw bytes. Messages without a channel
        (system, meta) are ignored.

        Raises:
            ValueError: On malformed bytes or an out-of-range channel.
        """
        message = coerce_message(message)
        if not is_channel_voice(message):
            return
        self.channel(message.channel).apply_event(message)

    def all_notes_off(self):
        for synth in self.channels:
            synth.all_notes_off()

    # ── Renderer access ──────────────────────────────────────────

    def snapshot(self, channel: int, length: int) -> np.ndarray:
        """Most recent `length` samples of a channel, oldest first."""
        return self.channel(channel).advance_and_read(length)

    def levels(self, channel: int, length: int) -> Tuple[float, float]:
        """(rms, peak) of a fresh snapshot."""
        return rms_and_peak(self.snapshot(channel, length))

    def spectrum(self, channel: int, length: int) -> Tuple[np.ndarray, np.ndarray]:
        """Smoothed (levels, peaks) band display for a channel."""
        samples = self.snapshot(channel, length)
        return self.meters[channel].update(samples)

    def instrument_name(self, channel: int) -> str:
        return self.channel(channel).instrument_name

    def program(self, channel: int) -> int:
        return self.channel(channel).program

    # ── Mute / solo ──────────────────────────────────────────────

    def set_mute(self, channel: int, muted: bool):
        channel = self._check_channel(channel)
        with self._mix_lock:
            self._muted[channel] = bool(muted)

    def set_solo(self, channel: int, solo: bool):
        channel = self._check_channel(channel)
        with self._mix_lock:
            self._solo[channel] = bool(solo)

    def is_muted(self, channel: int) -> bool:
        channel = self._check_channel(channel)
        with self._mix_lock:
            return self._muted[channel]

    def is_solo(self, channel: int) -> bool:
        channel = self._check_channel(channel)
        with self._mix_lock:
            return self._solo[channel]

    def any_solo(self) -> bool:
        with self._mix_lock:
            return any(self._solo)

    def is_audible(self, channel: int) -> bool:
        """Whether a channel's messages may reach the output device.

        Mute always wins; otherwise any active solo silences every
        channel that is not itself soloed.
        """
        channel = self._check_channel(channel)
        with self._mix_lock:
            return not self._muted[channel] and (not any(self._solo) or self._solo[channel])
