"""MIDI file playback feeding the event router in real time."""
import threading
import time
from typing import List, Optional, TYPE_CHECKING

import mido

if TYPE_CHECKING:
    from midi.event_router import EventRouter

ALL_NOTES_OFF = 123


class MidiFilePlayer:
    """Plays a MIDI file through an EventRouter on a background thread.

    File parsing and tempo handling are left to mido; this class only
    paces the messages and provides play / pause / stop.

    Messages are scheduled against a playback clock that stands still
    while paused, so a pause keeps the song position and the remaining
    delta time of the pending message.
    """

    def __init__(self, router: 'EventRouter'):
        self.router = router
        self.midi_file: Optional[mido.MidiFile] = None
        self._messages: List = []
        self._position = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()
        self._finished_event = threading.Event()
        self._clock_lock = threading.Lock()
        self._started_at = 0.0
        self._paused_at: Optional[float] = None
        self._paused_total = 0.0

    def load(self, path: str):
        """Load a MIDI file, stopping any current playback."""
        self.stop()
        self.midi_file = mido.MidiFile(path)
        # Iterating a MidiFile yields messages with delta times in seconds
        self._messages = list(self.midi_file)
        self._position = 0

    @property
    def duration(self) -> float:
        return self.midi_file.length if self.midi_file else 0.0

    def play(self):
        """Start or resume playback from the current position."""
        if not self._messages:
            return
        if self.is_playing() and not self._finished_event.is_set():
            self._resume()
            return
        if self._thread is not None:
            # Finished thread; it exits right after signalling the end
            self._thread.join()
        if self._position >= len(self._messages):
            self._position = 0
        with self._clock_lock:
            self._started_at = time.perf_counter()
            self._paused_at = None
            self._paused_total = 0.0
            self._resume_event.set()
        self._stop_event.clear()
        self._finished_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def pause(self):
        """Toggle pause."""
        with self._clock_lock:
            if self._resume_event.is_set():
                self._paused_at = time.perf_counter()
                self._resume_event.clear()
                return
        self._resume()

    def _resume(self):
        with self._clock_lock:
            if self._paused_at is not None:
                self._paused_total += time.perf_counter() - self._paused_at
                self._paused_at = None
            self._resume_event.set()

    def is_paused(self) -> bool:
        return not self._resume_event.is_set()

    def is_playing(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until playback reaches the end of the file."""
        return self._finished_event.wait(timeout)

    def stop(self):
        """Stop playback, rewind, and silence every channel."""
        was_active = self.is_playing()
        self._stop_event.set()
        self._resume()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._position = 0
        if was_active:
            self._silence()

    def playback_time(self) -> float:
        """Seconds of the song played so far, not counting pauses."""
        with self._clock_lock:
            now = self._paused_at if self._paused_at is not None else time.perf_counter()
            return now - self._started_at - self._paused_total

    def _silence(self):
        for channel in range(16):
            self.router.dispatch(
                mido.Message('control_change', channel=channel, control=ALL_NOTES_OFF, value=0),
                time.perf_counter())
        self.router.engine.all_notes_off()

    def _wait_until(self, deadline: float) -> bool:
        """Sleep until the playback clock reaches deadline; False if stopped."""
        while True:
            self._resume_event.wait()
            if self._stop_event.is_set():
                return False
            remaining = deadline - self.playback_time()
            if remaining <= 0:
                return True
            # A pause during this wait freezes the clock; the loop re-checks it
            if self._stop_event.wait(remaining):
                return False

    def _run(self):
        deadline = 0.0
        while self._position < len(self._messages):
            msg = self._messages[self._position]
            deadline += msg.time
            if not self._wait_until(deadline):
                return
            if not msg.is_meta:
                self.router.dispatch(msg, time.perf_counter())
            self._position += 1
        self._finished_event.set()
