"""MIDI output device detection and management."""
import mido
import os
import sys
from threading import Lock
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from config_manager import ConfigManager
    from midi.event_router import EventRouter


class OutputUnavailableError(RuntimeError):
    """No MIDI output port could be opened; routing continues without a sink."""


class PortSink:
    """Output sink wrapping a mido output port."""

    def __init__(self, port):
        self.port = port
        self.name = getattr(port, 'name', None)
        self._closed = False

    def send(self, message, timestamp: float = 0.0):
        """Send a message to the port.

        mido ports transmit immediately, so the timestamp is not used.
        Meta messages have no wire form and are skipped.
        """
        if message.is_meta:
            return
        self.port.send(message)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.port.close()


class MIDIOutputManager:
    """Manages MIDI output enumeration and the router's current sink."""

    def __init__(self, router: 'EventRouter', config_manager: 'ConfigManager' = None):
        self.router = router
        self.config_manager = config_manager
        self.selected_device: Optional[str] = None
        self.last_error: Optional[str] = None
        self._sink: Optional[PortSink] = None
        self._lock = Lock()

    def get_output_devices(self) -> List[str]:
        """Get list of available MIDI output devices.

        Returns:
            List of MIDI output device names.
        """
        try:
            # Suppress ALSA error messages to stderr
            stderr_backup = sys.stderr
            with open(os.devnull, 'w') as devnull:
                sys.stderr = devnull
                try:
                    devices = mido.get_output_names()
                finally:
                    sys.stderr = stderr_backup

            self.last_error = None
            return devices
        except Exception as e:
            # Store user-friendly error message
            error_msg = str(e).lower()
            if "no such file" in error_msg and "snd/seq" in error_msg:
                self.last_error = "ALSA sequencer not available. Run: sudo modprobe snd-seq"
            else:
                self.last_error = f"Error: {e}"
            return []

    def has_devices(self) -> bool:
        return len(self.get_output_devices()) > 0

    def get_configured_device(self) -> Optional[str]:
        """Output device named in the config, if any."""
        if self.config_manager:
            return self.config_manager.get_output_device()
        return None

    def set_output_device(self, device_name: Optional[str]) -> Optional[PortSink]:
        """Route output to a device, or detach output with None.

        The new sink is installed before the old one is closed, so the
        router never sends to a closed port.

        Args:
            device_name: Name of the MIDI output port to open.

        Returns:
            The new sink, or None when output was detached.

        Raises:
            OutputUnavailableError: If the port could not be opened. The
                router is left without a sink; visualization keeps working.
        """
        with self._lock:
            new_sink = None
            error = None
            if device_name is not None:
                try:
                    new_sink = PortSink(mido.open_output(device_name))
                except Exception as e:
                    error = e

            self.router.set_target(new_sink)
            self._close_sink(self._sink)
            self._sink = new_sink
            self.selected_device = device_name if new_sink else None

            if error is not None:
                self.last_error = f"Error opening MIDI output '{device_name}': {error}"
                raise OutputUnavailableError(self.last_error) from error
            self.last_error = None
            return new_sink

    def get_selected_device(self) -> Optional[str]:
        return self.selected_device

    def close(self):
        """Detach and close the current output device."""
        with self._lock:
            self.router.set_target(None)
            self._close_sink(self._sink)
            self._sink = None
            self.selected_device = None

    def _close_sink(self, sink: Optional[PortSink]):
        if sink is None:
            return
        try:
            sink.close()
        except Exception as e:
            print(f"Error closing MIDI output: {e}")
