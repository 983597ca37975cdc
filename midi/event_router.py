"""Fans incoming MIDI out to the visualization engine and an output sink."""
from threading import Lock
from typing import Callable, Optional, TYPE_CHECKING

from midi.messages import coerce_message, is_channel_voice

if TYPE_CHECKING:
    from music.visualization_engine import VisualizationEngine


class EventRouter:
    """Tee between the MIDI source, the visualizer and the output device.

    Every message updates the visualization. Channel-voice messages only
    reach the sink when their channel is audible under the mute/solo table;
    everything else is always forwarded. A failing sink never interrupts
    visualization.
    """

    def __init__(self, engine: 'VisualizationEngine',
                 on_sink_error: Optional[Callable[[Exception], None]] = None):
        self.engine = engine
        self.on_sink_error = on_sink_error
        self._target = None
        self._target_lock = Lock()
        self._closed = False

    @property
    def target(self):
        with self._target_lock:
            return self._target

    @property
    def closed(self) -> bool:
        return self._closed

    def set_target(self, sink):
        """Swap in a new output sink (or None). Closing the old one is the caller's job."""
        with self._target_lock:
            self._target = sink

    def dispatch(self, message, timestamp: float = 0.0):
        """Route one message.

        Raises:
            ValueError: If the message or its channel is malformed.
        """
        if self._closed:
            return
        message = coerce_message(message)
        self.engine.handle(message, timestamp)

        sink = self.target
        if sink is None:
            return
        if is_channel_voice(message) and not self.engine.is_audible(message.channel):
            return
        try:
            sink.send(message, timestamp)
        except Exception as e:
            self._report(e)

    def close(self):
        """Stop routing for good and release the sink. Safe to call twice."""
        self._closed = True
        with self._target_lock:
            sink, self._target = self._target, None
        if sink is not None:
            try:
                sink.close()
            except Exception as e:
                self._report(e)

    def _report(self, error: Exception):
        if self.on_sink_error:
            self.on_sink_error(error)
