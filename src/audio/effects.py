"""Filter and dynamics cores shared by the synthesis nodes.

The designs follow the Audio EQ Cookbook formulas used by browser audio
engines so voice recipes written against those engines keep their tone.
Each core is stateful and processes mono ``float32`` blocks, letting the
owning node refresh coefficients between blocks without clicks.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Tuple

import numpy as np


FILTER_TYPES = ("lowpass", "highpass", "bandpass")


def _clamp_frequency(freq: float, sample_rate: int) -> float:
    nyquist = sample_rate / 2.0
    return float(max(10.0, min(freq, nyquist - 10.0)))


def _db_to_linear(value_db: float) -> float:
    return math.pow(10.0, value_db / 20.0)


def _linear_to_db(value: float) -> float:
    return 20.0 * math.log10(max(value, 1e-12))


Coefficients = Tuple[Tuple[float, float, float], Tuple[float, float, float]]


def design_biquad(kind: str, sample_rate: int, freq: float, q: float) -> Coefficients:
    """Return ``(b, a)`` coefficients for a cookbook biquad of *kind*.

    Low- and high-pass resonance is expressed in decibels; band-pass uses
    the linear quality factor.
    """

    if kind not in FILTER_TYPES:
        raise ValueError(f"Unsupported filter type {kind!r}")
    freq = _clamp_frequency(freq, sample_rate)
    w0 = 2.0 * math.pi * freq / sample_rate
    cos_w0 = math.cos(w0)
    sin_w0 = math.sin(w0)
    if kind == "bandpass":
        alpha = sin_w0 / (2.0 * max(q, 1e-4))
        b = (alpha, 0.0, -alpha)
    else:
        alpha = sin_w0 / (2.0 * math.pow(10.0, q / 20.0))
        if kind == "lowpass":
            b = ((1.0 - cos_w0) / 2.0, 1.0 - cos_w0, (1.0 - cos_w0) / 2.0)
        else:
            b = ((1.0 + cos_w0) / 2.0, -(1.0 + cos_w0), (1.0 + cos_w0) / 2.0)
    a = (1.0 + alpha, -2.0 * cos_w0, 1.0 - alpha)
    return b, a


class Biquad:
    """Stateful Direct Form II transposed biquad for mono blocks."""

    def __init__(self) -> None:
        self._b0 = 1.0
        self._b1 = 0.0
        self._b2 = 0.0
        self._a1 = 0.0
        self._a2 = 0.0
        self._z1 = 0.0
        self._z2 = 0.0

    def set_coefficients(self, coefficients: Coefficients) -> None:
        (b0, b1, b2), (a0, a1, a2) = coefficients
        if not math.isclose(a0, 1.0):
            b0 /= a0
            b1 /= a0
            b2 /= a0
            a1 /= a0
            a2 /= a0
        self._b0 = float(b0)
        self._b1 = float(b1)
        self._b2 = float(b2)
        self._a1 = float(a1)
        self._a2 = float(a2)

    def process(self, buffer: np.ndarray) -> np.ndarray:
        if buffer.size == 0:
            return buffer
        output = np.empty_like(buffer, dtype=np.float32)
        b0, b1, b2, a1, a2 = self._b0, self._b1, self._b2, self._a1, self._a2
        z1 = self._z1
        z2 = self._z2
        for idx in range(buffer.shape[0]):
            x = float(buffer[idx])
            y = b0 * x + z1
            z1 = b1 * x - a1 * y + z2
            z2 = b2 * x - a2 * y
            output[idx] = y
        self._z1 = z1
        self._z2 = z2
        return output


@dataclass
class CompressorSettings:
    """Snapshot of compressor controls for one processing block."""

    threshold_db: float = -24.0
    knee_db: float = 30.0
    ratio: float = 12.0
    attack_seconds: float = 0.003
    release_seconds: float = 0.25


class SoftKneeCompressor:
    """Feed-forward peak compressor with automatic makeup gain.

    Makeup gain follows the browser convention of boosting by the inverse
    of the gain a full-scale signal would receive, raised to 0.6.
    """

    def __init__(self, sample_rate: int) -> None:
        self.sample_rate = sample_rate
        self._envelope_linear = 0.0
        self._gain_db = 0.0
        self.last_reduction_db = 0.0

    def _time_to_coeff(self, seconds: float) -> float:
        if seconds <= 0.0:
            return 0.0
        return math.exp(-1.0 / (seconds * self.sample_rate))

    def process(self, buffer: np.ndarray, settings: CompressorSettings) -> np.ndarray:
        attack_coeff = self._time_to_coeff(settings.attack_seconds)
        release_coeff = self._time_to_coeff(settings.release_seconds)
        makeup_db = -0.6 * self.compute_gain_db(0.0, settings)
        output = np.array(buffer, copy=True, dtype=np.float32)
        for frame in range(output.shape[0]):
            detector = abs(float(output[frame]))
            coeff = attack_coeff if detector > self._envelope_linear else release_coeff
            self._envelope_linear = self._envelope_linear + (detector - self._envelope_linear) * (1.0 - coeff)

            target_db = self.compute_gain_db(_linear_to_db(self._envelope_linear), settings)
            self._gain_db = self._gain_db + (target_db - self._gain_db) * (1.0 - coeff)
            output[frame] *= _db_to_linear(self._gain_db + makeup_db)
        self.last_reduction_db = self._gain_db
        return output

    @staticmethod
    def compute_gain_db(level_db: float, settings: CompressorSettings) -> float:
        """Return the static gain change (<= 0 dB) applied at *level_db*."""

        threshold = settings.threshold_db
        ratio = max(settings.ratio, 1.0)
        knee = max(settings.knee_db, 0.0)
        if level_db < threshold - knee / 2.0:
            return 0.0
        if knee > 0.0 and level_db <= threshold + knee / 2.0:
            delta = level_db - (threshold - knee / 2.0)
            return (1.0 / ratio - 1.0) * (delta ** 2) / (2.0 * knee)
        compressed = threshold + (level_db - threshold) / ratio
        return compressed - level_db


__all__ = [
    "Biquad",
    "CompressorSettings",
    "FILTER_TYPES",
    "SoftKneeCompressor",
    "design_biquad",
]
