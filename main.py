#!/usr/bin/env python3
"""VisualMIDI - headless entry point.

Plays a MIDI file (or listens to a MIDI input) through the event router
and prints a text level meter per active channel on every refresh.
"""
import argparse
import sys
import time
from typing import List

from config_manager import ConfigManager
from midi.device_manager import MIDIOutputManager, OutputUnavailableError
from midi.event_router import EventRouter
from midi.input_handler import MIDIInputHandler
from midi.player import MidiFilePlayer
from music.level_analyzer import meter_segments, rms_and_peak
from music.visualization_engine import NUM_CHANNELS, VisualizationEngine


def format_meter(engine: VisualizationEngine, channel: int, rms: float, peak: float) -> str:
    """One LED-style meter line: RMS fills the bar, '|' marks the peak."""
    segments = 24
    lit = meter_segments(rms, segments)
    peak_pos = min(segments - 1, meter_segments(peak, segments))
    cells = ["#" if i < lit else "." for i in range(segments)]
    cells[peak_pos] = "|"
    flags = ("M" if engine.is_muted(channel) else " ") + ("S" if engine.is_solo(channel) else " ")
    name = engine.instrument_name(channel)
    return f"Ch {channel + 1:02d} {flags} {name[:24]:<24} [{''.join(cells)}] rms {rms:.3f} peak {peak:.3f}"


def render_frame(engine: VisualizationEngine, length: int) -> List[str]:
    lines = []
    for channel in range(NUM_CHANNELS):
        rms, peak = rms_and_peak(engine.snapshot(channel, length))
        if peak > 0.0 or engine.channel(channel).active_notes():
            lines.append(format_meter(engine, channel, rms, peak))
    return lines


def parse_channels(values) -> List[int]:
    channels = []
    for value in values or []:
        if not 1 <= value <= NUM_CHANNELS:
            raise argparse.ArgumentTypeError(f"channel must be 1..{NUM_CHANNELS}, got {value}")
        channels.append(value - 1)
    return channels


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Visualize MIDI channels as live level meters")
    p.add_argument("midi_file", nargs="?", help="MIDI file to play")
    p.add_argument("--input", dest="input_device", default=None, help="Listen to a MIDI input port instead of a file")
    p.add_argument("--output", dest="output_device", default=None, help="MIDI output port to forward audio to")
    p.add_argument("--config", dest="config", default=None, help="JSON config file (defaults applied if omitted)")
    p.add_argument("--list-devices", action="store_true", help="List MIDI input and output ports and exit")
    p.add_argument("--mute", type=int, action="append", metavar="CH", help="Mute channel CH (1-16), repeatable")
    p.add_argument("--solo", type=int, action="append", metavar="CH", help="Solo channel CH (1-16), repeatable")
    p.add_argument("--refresh-ms", type=int, default=None, help="Meter refresh interval in milliseconds")
    return p


def main(argv=None) -> int:
    """Main entry point."""
    p = build_parser()
    args = p.parse_args(argv)

    config = ConfigManager(args.config)
    engine = VisualizationEngine()
    router = EventRouter(engine, on_sink_error=lambda e: print(f"Error sending to MIDI output: {e}", file=sys.stderr))
    outputs = MIDIOutputManager(router, config)
    inputs = MIDIInputHandler(router)

    if args.list_devices:
        print("Outputs:")
        for name in outputs.get_output_devices():
            print(f"  {name}")
        if outputs.last_error:
            print(f"  ({outputs.last_error})")
        print("Inputs:")
        for name in inputs.get_input_devices():
            print(f"  {name}")
        return 0

    if not args.midi_file and not args.input_device:
        p.error("a MIDI file or --input is required")

    try:
        for channel in parse_channels(args.mute):
            engine.set_mute(channel, True)
        for channel in parse_channels(args.solo):
            engine.set_solo(channel, True)
    except argparse.ArgumentTypeError as e:
        p.error(str(e))

    device = args.output_device or outputs.get_configured_device()
    if device:
        try:
            outputs.set_output_device(device)
            print(f"Output: {device}")
        except OutputUnavailableError as e:
            print(f"{e} - continuing without audio output", file=sys.stderr)

    player = MidiFilePlayer(router)
    if args.input_device:
        if not inputs.open_device(args.input_device):
            return 1
    else:
        try:
            player.load(args.midi_file)
        except Exception as e:
            print(f"Error loading MIDI file: {e}", file=sys.stderr)
            return 2
        player.play()

    refresh = (args.refresh_ms or config.get_refresh_ms()) / 1000.0
    length = config.get_snapshot_length()
    try:
        while inputs.is_device_open() or player.is_playing():
            inputs.poll_messages()
            lines = render_frame(engine, length)
            print("\n".join(lines) if lines else "(silence)")
            print("-" * 80)
            time.sleep(refresh)
    except KeyboardInterrupt:
        pass
    finally:
        player.stop()
        inputs.close_device()
        outputs.close()
        router.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
