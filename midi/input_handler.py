"""Real-time MIDI input feeding the event router."""
import mido
import time
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from midi.event_router import EventRouter


class MIDIInputHandler:
    """Reads a MIDI input port and dispatches every message to the router."""

    def __init__(self, router: 'EventRouter'):
        self.router = router
        self.port: Optional[mido.ports.BaseInput] = None
        self.last_error: Optional[str] = None

    @staticmethod
    def get_input_devices() -> List[str]:
        try:
            return mido.get_input_names()
        except Exception as e:
            print(f"Error listing MIDI inputs: {e}")
            return []

    def open_device(self, device_name: str) -> bool:
        """Open a MIDI input device.

        Args:
            device_name: Name of the MIDI device to open.

        Returns:
            True if device opened successfully, False otherwise.
        """
        try:
            self.close_device()
            self.port = mido.open_input(device_name)
            self.last_error = None
            return True
        except Exception as e:
            self.last_error = f"Error opening MIDI device: {e}"
            print(self.last_error)
            return False

    def close_device(self):
        """Close the current MIDI input device."""
        if self.port:
            try:
                self.port.close()
            except Exception as e:
                print(f"Error closing MIDI device: {e}")
            finally:
                self.port = None

    def poll_messages(self) -> int:
        """Dispatch pending MIDI messages (non-blocking).

        Should be called regularly to process incoming MIDI data.

        Returns:
            Number of messages dispatched.
        """
        if not self.port:
            return 0

        count = 0
        try:
            for msg in self.port.iter_pending():
                self.router.dispatch(msg, time.perf_counter())
                count += 1
        except Exception as e:
            self.last_error = f"Error polling MIDI messages: {e}"
            print(self.last_error)
        return count

    def is_device_open(self) -> bool:
        return self.port is not None
