"""Per-channel additive synthesizer feeding the visualization buffers.

The waveform produced here is never heard. It only has to look like the
performance: one sine per held note, a short linear attack and a slow
geometric decay, summed and hard-clipped into a rolling buffer that the
renderers read from.
"""
import math
import time
from threading import Lock
from typing import Callable, Dict, List, Optional

import numpy as np

from music.instruments import clamp_program, instrument_name

SAMPLE_RATE = 8000.0
BUFFER_CAPACITY = 2048
MAX_SAMPLES_PER_ADVANCE = 512

ATTACK_SECONDS = 0.01
DECAY_FACTOR = 0.9995
FINISHED_LEVEL = 0.0005
MAX_AMPLITUDE = 0.3

TWO_PI = 2.0 * math.pi


def midi_to_frequency(note: int) -> float:
    """Equal-temperament frequency referenced to A4 = 440 Hz (note 69)."""
    return 440.0 * (2.0 ** ((note - 69) / 12.0))


def _check_data_byte(name: str, value: int) -> int:
    if not 0 <= value <= 127:
        raise ValueError(f"{name} must be in 0..127, got {value}")
    return int(value)


class NoteVoice:
    """One sounding note: a sine oscillator with an attack/decay envelope."""

    def __init__(self, note: int, velocity: int, sample_rate: float = SAMPLE_RATE):
        self.note = note
        self.frequency = midi_to_frequency(note)
        self.amplitude = velocity / 127.0 * MAX_AMPLITUDE
        self.phase = 0.0
        self.envelope = 1.0
        self.age = 0
        self.attack_samples = sample_rate * ATTACK_SECONDS
        self._phase_inc = TWO_PI * self.frequency / sample_rate

    def render(self, num_samples: int) -> np.ndarray:
        """Render the next samples of this voice.

        Rendering stops early on the sample where the envelope falls below
        FINISHED_LEVEL; that sample is still included, so a short return
        value means the voice is finished.
        """
        ages = self.age + np.arange(1, num_samples + 1)
        env = np.empty(num_samples, dtype=np.float64)

        in_attack = ages <= self.attack_samples
        n_attack = int(np.count_nonzero(in_attack))
        env[:n_attack] = ages[:n_attack] / self.attack_samples
        if n_attack < num_samples:
            start = env[n_attack - 1] if n_attack > 0 else self.envelope
            steps = np.arange(1, num_samples - n_attack + 1)
            env[n_attack:] = start * DECAY_FACTOR ** steps

        finished = np.flatnonzero(env < FINISHED_LEVEL)
        if finished.size:
            num_samples = int(finished[0]) + 1
            env = env[:num_samples]

        phases = self.phase + self._phase_inc * np.arange(1, num_samples + 1)
        out = np.sin(phases) * self.amplitude * env

        self.phase = float(phases[-1] % TWO_PI)
        self.envelope = float(env[-1])
        self.age += num_samples
        return out

    def is_finished(self) -> bool:
        return self.envelope < FINISHED_LEVEL


class ChannelSynth:
    """Visualization synth for a single MIDI channel.

    Every public method takes the channel's lock, so MIDI delivery and
    renderer refreshes can call in from different threads.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None,
                 sample_rate: float = SAMPLE_RATE,
                 capacity: int = BUFFER_CAPACITY):
        self.sample_rate = sample_rate
        self.capacity = capacity
        self._clock = clock or time.perf_counter
        self._lock = Lock()
        self._voices: Dict[int, NoteVoice] = {}
        self._program = 0
        self._instrument_name = instrument_name(0)
        self._buffer = np.zeros(capacity, dtype=np.float32)
        self._write_pos = 0
        self._last_advance = self._clock()

    # ── MIDI events ──────────────────────────────────────────────

    def apply_event(self, message):
        """Apply a mido channel message; unsupported types are ignored."""
        if message.type == 'note_on':
            if message.velocity > 0:
                self.note_on(message.note, message.velocity)
            else:
                self.note_off(message.note)
        elif message.type == 'note_off':
            self.note_off(message.note)
        elif message.type == 'program_change':
            self.set_program(message.program)

    def note_on(self, note: int, velocity: int):
        """Start (or retrigger) a note. Velocity 0 is treated as note-off."""
        note = _check_data_byte("note", note)
        velocity = _check_data_byte("velocity", velocity)
        if velocity == 0:
            self.note_off(note)
            return
        voice = NoteVoice(note, velocity, self.sample_rate)
        with self._lock:
            self._voices[note] = voice

    def note_off(self, note: int):
        """Stop a note. Releasing a note that is not sounding does nothing."""
        note = _check_data_byte("note", note)
        with self._lock:
            self._voices.pop(note, None)

    def all_notes_off(self):
        with self._lock:
            self._voices.clear()

    # ── Program / instrument ─────────────────────────────────────

    def set_program(self, program: int):
        """Select a GM program, clamped to 0..127."""
        with self._lock:
            self._select_program(program)

    def program_up(self):
        with self._lock:
            self._select_program(self._program + 1)

    def program_down(self):
        with self._lock:
            self._select_program(self._program - 1)

    def _select_program(self, program: int):
        self._program = clamp_program(program)
        self._instrument_name = instrument_name(self._program)

    @property
    def program(self) -> int:
        with self._lock:
            return self._program

    @property
    def instrument_name(self) -> str:
        with self._lock:
            return self._instrument_name

    def active_notes(self) -> List[int]:
        with self._lock:
            return sorted(self._voices)

    def envelopes(self) -> Dict[int, float]:
        """Current envelope level of every sounding note."""
        with self._lock:
            return {note: v.envelope for note, v in self._voices.items()}

    # ── Synthesis ────────────────────────────────────────────────

    def advance_and_read(self, length: int) -> np.ndarray:
        """Synthesize up to now and return the most recent samples, oldest first.

        Args:
            length: Number of samples wanted; capped at the buffer capacity.

        Returns:
            float32 array of min(length, capacity) samples in [-1, 1].
        """
        with self._lock:
            self._advance()
            return self._read(length)

    def _advance(self):
        now = self._clock()
        dt = now - self._last_advance
        if dt <= 0:
            return
        self._last_advance = now
        # Cap catch-up so a long pause doesn't stall the caller
        num_samples = max(1, min(MAX_SAMPLES_PER_ADVANCE,
                                 int(math.floor(dt * self.sample_rate + 0.5))))
        self._write(self._render(num_samples))

    def _render(self, num_samples: int) -> np.ndarray:
        mixed = np.zeros(num_samples, dtype=np.float64)
        # Iterate over a copy so finished voices can be dropped in place
        for note, voice in list(self._voices.items()):
            samples = voice.render(num_samples)
            mixed[:len(samples)] += samples
            if voice.is_finished():
                del self._voices[note]
        return np.clip(mixed, -1.0, 1.0).astype(np.float32)

    def _write(self, samples: np.ndarray):
        n = len(samples)
        if n >= self.capacity:
            self._buffer[:] = samples[-self.capacity:]
            self._write_pos = 0
            return
        end = self._write_pos + n
        if end <= self.capacity:
            self._buffer[self._write_pos:end] = samples
        else:
            split = self.capacity - self._write_pos
            self._buffer[self._write_pos:] = samples[:split]
            self._buffer[:n - split] = samples[split:]
        self._write_pos = end % self.capacity

    def _read(self, length: int) -> np.ndarray:
        length = max(0, min(int(length), self.capacity))
        start = (self._write_pos - length) % self.capacity
        idx = (start + np.arange(length)) % self.capacity
        return self._buffer[idx]
