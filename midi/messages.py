"""Helpers for classifying and normalizing incoming MIDI messages."""
import mido

CHANNEL_VOICE_FIRST = 0x80
CHANNEL_VOICE_LAST = 0xE0


def coerce_message(obj):
    """Return a mido message for a mido message or a raw byte sequence.

    Raises:
        ValueError: If the bytes do not form a valid MIDI message.
    """
    if isinstance(obj, (mido.Message, mido.MetaMessage)):
        return obj
    if isinstance(obj, (bytes, bytearray, list, tuple)):
        return mido.Message.from_bytes(list(obj))
    raise ValueError(f"Unsupported MIDI message: {obj!r}")


def status_nibble(message) -> int:
    """Command nibble of the status byte (0x80..0xF0)."""
    if message.is_meta:
        return 0xF0
    return message.bytes()[0] & 0xF0


def is_channel_voice(message) -> bool:
    """True for note on/off, pressure, control/program change and pitch bend."""
    return CHANNEL_VOICE_FIRST <= status_nibble(message) <= CHANNEL_VOICE_LAST
