#!/usr/bin/env python3
"""ABOUTME: Tests for RMS/peak metering and the smoothed 20-band pseudo-spectrum.
ABOUTME: Checks window sizing, attack/decay smoothing, peak-hold and idle decay."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from music.level_analyzer import (
    NUM_BANDS, BandMeter, band_energies, band_window, meter_segments,
    raw_band_energies, rms_and_peak,
)


def test_rms_and_peak_of_empty_input():
    assert rms_and_peak([]) == (0.0, 0.0)


def test_rms_and_peak_values():
    rms, peak = rms_and_peak([1.0, 0.0, -1.0, 0.0])
    assert peak == 1.0
    assert rms == pytest.approx(np.sqrt(0.5))
    assert rms_and_peak(np.full(64, -0.25, dtype=np.float32)) == pytest.approx((0.25, 0.25))


def test_band_window_shrinks_exponentially():
    assert band_window(2048, 0) == 512
    assert band_window(2048, NUM_BANDS - 1) == 256
    windows = [band_window(2048, b) for b in range(NUM_BANDS)]
    assert windows == sorted(windows, reverse=True)
    assert band_window(8, 0) == 4


def test_raw_energy_of_constant_signal_is_boosted():
    raw = raw_band_energies(np.full(512, 0.5))
    np.testing.assert_allclose(raw, 0.75)


def test_raw_energy_is_clamped_to_one():
    raw = raw_band_energies(np.ones(512))
    np.testing.assert_allclose(raw, 1.0)


def test_input_shorter_than_window_has_no_energy():
    raw = raw_band_energies([0.9, -0.9, 0.9])
    np.testing.assert_array_equal(raw, np.zeros(NUM_BANDS))


def test_raw_energy_picks_loudest_window():
    samples = np.zeros(512)
    samples[-8:] = 1.0
    raw = raw_band_energies(samples)
    # Short high bands see the burst at full strength; long low bands average it away
    assert raw[-1] > raw[0]


def test_attack_is_fast_and_peaks_follow():
    levels, peaks = band_energies(np.full(512, 0.5), np.zeros(NUM_BANDS), np.zeros(NUM_BANDS))
    np.testing.assert_allclose(levels, 0.4 * 0.75)
    np.testing.assert_allclose(peaks, levels)


def test_decay_is_slow_when_signal_drops():
    prev_levels = np.full(NUM_BANDS, 0.5)
    prev_peaks = np.full(NUM_BANDS, 0.9)
    levels, peaks = band_energies(np.zeros(512), prev_levels, prev_peaks)
    np.testing.assert_allclose(levels, 0.5 + 0.4 * (0.5 * 0.92 - 0.5))
    np.testing.assert_allclose(peaks, 0.9 * 0.96)


def test_empty_input_decays_levels_and_peaks():
    levels, peaks = band_energies([], np.full(NUM_BANDS, 0.5), np.full(NUM_BANDS, 0.8))
    np.testing.assert_allclose(levels, 0.45)
    np.testing.assert_allclose(peaks, 0.8 * 0.96)


@pytest.mark.parametrize("silence", [[], np.zeros(512)])
def test_silence_settles_monotonically_to_zero(silence):
    levels = np.linspace(0.1, 1.0, NUM_BANDS)
    peaks = np.ones(NUM_BANDS)
    for _ in range(300):
        new_levels, new_peaks = band_energies(silence, levels, peaks)
        assert np.all(new_levels <= levels)
        assert np.all(new_peaks <= peaks)
        assert np.all(new_levels >= 0.0)
        assert np.all(new_peaks >= 0.0)
        levels, peaks = new_levels, new_peaks
    assert np.all(levels < 0.01)
    assert np.all(peaks < 0.01)


def test_inputs_are_not_modified():
    prev_levels = np.full(NUM_BANDS, 0.2)
    prev_peaks = np.full(NUM_BANDS, 0.3)
    band_energies(np.full(256, 0.9), prev_levels, prev_peaks)
    np.testing.assert_array_equal(prev_levels, 0.2)
    np.testing.assert_array_equal(prev_peaks, 0.3)


def test_meter_segments():
    assert meter_segments(0.0) == 0
    assert meter_segments(0.5) == 12
    assert meter_segments(2.0) == 24
    assert meter_segments(-1.0) == 0
    assert meter_segments(0.5, segments=10) == 5


def test_band_meter_carries_state_between_updates():
    meter = BandMeter()
    first_levels, _ = meter.update(np.full(512, 0.5))
    second_levels, second_peaks = meter.update(np.full(512, 0.5))
    assert np.all(second_levels > first_levels)
    np.testing.assert_allclose(second_peaks, second_levels)
    meter.reset()
    levels, peaks = meter.update([])
    np.testing.assert_array_equal(levels, np.zeros(NUM_BANDS))
    np.testing.assert_array_equal(peaks, np.zeros(NUM_BANDS))
