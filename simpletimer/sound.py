from __future__ import annotations

from array import array
import logging
import math
import os
import sys


SAMPLE_RATE = 44100
# (frequency Hz, duration s) segments of the end-of-timer alert.
ALERT_TONES = ((800.0, 0.1), (600.0, 0.1), (800.0, 0.1))
ALERT_GAIN_START = 0.3
ALERT_GAIN_END = 0.01


def synthesize_alert(sample_rate: int = SAMPLE_RATE, channels: int = 1) -> bytes:
    """Signed 16-bit PCM for the alert: a sine stepping 800/600/800 Hz under an exponential fade."""
    total = sum(int(round(duration * sample_rate)) for _, duration in ALERT_TONES)
    samples = array("h")
    phase = 0.0
    n = 0
    for freq, duration in ALERT_TONES:
        step = 2 * math.pi * freq / sample_rate
        for _ in range(int(round(duration * sample_rate))):
            gain = ALERT_GAIN_START * (ALERT_GAIN_END / ALERT_GAIN_START) ** (n / max(total - 1, 1))
            value = int(32767 * gain * math.sin(phase))
            for _channel in range(channels):
                samples.append(value)
            phase += step
            n += 1
    if sys.byteorder != "little":
        samples.byteswap()
    return samples.tobytes()


class SoundPlayer:
    def __init__(self) -> None:
        self.log = logging.getLogger("simpletimer.sound")
        self._pygame = None
        self._sound = None
        self.error: str | None = None

    def _ensure_sound(self):
        if self._sound is not None:
            return self._sound
        os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
        import pygame  # type: ignore

        if not pygame.mixer.get_init():
            pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1, buffer=512)
        frequency, _size, channels = pygame.mixer.get_init()
        self._pygame = pygame
        self._sound = pygame.mixer.Sound(buffer=synthesize_alert(frequency, channels))
        self.log.info("alert_sound_ready frequency=%s channels=%s", frequency, channels)
        return self._sound

    def play_alert(self) -> bool:
        try:
            self._ensure_sound().play()
        except Exception as exc:
            self.error = str(exc)
            self.log.warning("alert_sound_failed error=%s", exc)
            return False
        return True

    def close(self) -> None:
        if self._pygame is None:
            return
        try:
            self._pygame.mixer.quit()
        except Exception:
            self.log.exception("alert_sound_close_failed")
        self._pygame = None
        self._sound = None
