"""Loudness and pseudo-spectrum metrics over a waveform snapshot.

Nothing here is a real frequency transform. Band energies come from a bank
of rectified moving averages whose window shrinks exponentially from the
lowest band to the highest, which is close enough for a bar display.
"""
from threading import Lock
from typing import Sequence, Tuple

import numpy as np

NUM_BANDS = 20
MIN_WINDOW = 4
ENERGY_BOOST = 1.5

ATTACK_RATE = 0.4
DECAY_RATE = 0.08
PEAK_FALLOFF = 0.96
IDLE_FALLOFF = 0.9

METER_SEGMENTS = 24


def rms_and_peak(samples: Sequence[float]) -> Tuple[float, float]:
    """Return (rms, peak) of the samples, or (0.0, 0.0) when empty."""
    x = np.asarray(samples, dtype=np.float64)
    if x.size == 0:
        return 0.0, 0.0
    peak = float(np.max(np.abs(x)))
    rms = float(np.sqrt(np.mean(x * x)))
    return rms, peak


def band_window(num_samples: int, band: int, num_bands: int = NUM_BANDS) -> int:
    """Averaging window for a band, from ~25% of the input down, floored at 4."""
    t = band / (num_bands - 1)
    return max(MIN_WINDOW, int(num_samples * (0.25 * 0.5 ** t)))


def raw_band_energies(samples: Sequence[float], num_bands: int = NUM_BANDS) -> np.ndarray:
    """Unsmoothed energy per band, each in [0, 1]."""
    rectified = np.abs(np.asarray(samples, dtype=np.float64))
    n = rectified.size
    cumsum = np.concatenate(([0.0], np.cumsum(rectified)))
    energies = np.zeros(num_bands, dtype=np.float64)
    for band in range(num_bands):
        win = band_window(n, band, num_bands)
        if win > n:
            continue
        step = max(1, win // 4)
        starts = np.arange(0, n - win + 1, step)
        averages = (cumsum[starts + win] - cumsum[starts]) / win
        energies[band] = min(1.0, float(averages.max()) * ENERGY_BOOST)
    return energies


def band_energies(samples: Sequence[float], previous_levels: Sequence[float],
                  previous_peaks: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Smoothed band levels and peak-hold values for one refresh.

    Args:
        samples: Waveform snapshot, oldest first.
        previous_levels: Levels returned by the previous call for this channel.
        previous_peaks: Peaks returned by the previous call for this channel.

    Returns:
        (levels, peaks) as new float64 arrays; the inputs are not modified.
    """
    levels = np.array(previous_levels, dtype=np.float64)
    peaks = np.array(previous_peaks, dtype=np.float64)

    if len(samples) == 0:
        # No data: let the display settle instead of freezing
        return levels * IDLE_FALLOFF, peaks * PEAK_FALLOFF

    raw = raw_band_energies(samples, len(levels))
    target = np.maximum(raw, levels * (1.0 - DECAY_RATE))
    levels = levels + ATTACK_RATE * (target - levels)
    peaks = np.maximum(peaks * PEAK_FALLOFF, levels)
    return levels, peaks


def meter_segments(value: float, segments: int = METER_SEGMENTS) -> int:
    """Number of lit segments for a 0..1 value on an LED-style meter."""
    return int(np.floor(min(1.0, max(0.0, value)) * segments + 0.5))


class BandMeter:
    """Smoothing state for one channel's band display."""

    def __init__(self, num_bands: int = NUM_BANDS):
        self.num_bands = num_bands
        self._lock = Lock()
        self._levels = np.zeros(num_bands, dtype=np.float64)
        self._peaks = np.zeros(num_bands, dtype=np.float64)

    def update(self, samples: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        """Fold a new snapshot into the meter and return copies of (levels, peaks)."""
        with self._lock:
            self._levels, self._peaks = band_energies(samples, self._levels, self._peaks)
            return self._levels.copy(), self._peaks.copy()

    def reset(self):
        with self._lock:
            self._levels[:] = 0.0
            self._peaks[:] = 0.0
