"""
CHIP-8 Beeper
=============
The sound timer only says "tone on" or "tone off".  ``Beeper`` turns that
into a looping 440 Hz square wave on ``pygame.mixer``; ``SilentBeeper``
keeps the same bookkeeping without touching audio hardware.
"""

from __future__ import annotations

import numpy as np

SAMPLE_RATE = 44100
TONE_HZ = 440.0
VOLUME = 0.25


def square_wave(frequency: float = TONE_HZ, sample_rate: int = SAMPLE_RATE,
                volume: float = VOLUME, periods: int = 1) -> np.ndarray:
    """One or more whole periods of a signed 16-bit square wave.

    High for the first half of each period, low for the second.
    """
    n = max(2, int(round(sample_rate / frequency)) * periods)
    phase = (np.arange(n) * (frequency / sample_rate)) % 1.0
    amp = int(volume * 32767)
    return np.where(phase < 0.5, amp, -amp).astype(np.int16)


class SilentBeeper:
    """Tracks tone on/off without producing sound."""

    def __init__(self):
        self.playing = False
        self.transitions = 0

    def open(self):
        pass

    def close(self):
        self.stop()

    def play(self):
        if not self.playing:
            self.playing = True
            self.transitions += 1

    def stop(self):
        if self.playing:
            self.playing = False
            self.transitions += 1

    def gate(self, sound_timer: int):
        """Tone on while the sound timer is non-zero."""
        if sound_timer:
            self.play()
        else:
            self.stop()


class Beeper(SilentBeeper):
    """Square-wave tone through pygame.mixer."""

    def __init__(self, frequency: float = TONE_HZ, volume: float = VOLUME):
        super().__init__()
        self.frequency = frequency
        self.volume = volume
        self._sound = None
        self._channel = None

    def open(self):
        """Initialise the mixer.  Raises ImportError/pygame.error on failure."""
        import pygame

        pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1)
        freq, _size, channels = pygame.mixer.get_init()
        wave = square_wave(self.frequency, freq, self.volume, periods=100)
        if channels > 1:
            wave = np.repeat(wave[:, None], channels, axis=1)
        self._sound = pygame.sndarray.make_sound(np.ascontiguousarray(wave))

    def close(self):
        super().close()
        if self._sound is not None:
            import pygame
            pygame.mixer.quit()
            self._sound = None

    def play(self):
        if not self.playing and self._sound is not None:
            self._channel = self._sound.play(loops=-1)
        super().play()

    def stop(self):
        if self.playing and self._sound is not None:
            self._sound.stop()
            self._channel = None
        super().stop()
