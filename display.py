"""
CHIP-8 Framebuffer Display
==========================
Presents the engine's 256-byte framebuffer in a pygame window and feeds
keyboard events back into the ``Keypad``.

The framebuffer is 64x32 pixels, 8 per byte, rows of 8 bytes.  Bit 7 of
byte 0 is pixel (0, 0).

Usage (programmatic):
    from display import FramebufferDisplay
    disp = FramebufferDisplay(scale=10)
    disp.open()
    actions = disp.poll_events(keypad)
    disp.render(chip.fb)
    disp.present()
    disp.close()

``HeadlessDisplay`` has the same interface, keeps every rendered frame
and replays scripted key events; tests and ``--headless`` runs use it.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Iterable

import numpy as np

from chip8 import FB_SIZE, SCREEN_HEIGHT, SCREEN_WIDTH
from keypad import CONTROL_KEYS, CTRL_QUIT

if TYPE_CHECKING:
    from keypad import Keypad

BG_COLOR = (0x22, 0x22, 0x22)
FG_COLOR = (0x00, 0xCC, 0x11)
DEFAULT_SCALE = 10


def framebuffer_to_pixels(fb: bytes | bytearray) -> np.ndarray:
    """Unpack the framebuffer into a (32, 64) array of 0/1, row-major."""
    packed = np.frombuffer(bytes(fb), dtype=np.uint8, count=FB_SIZE)
    return np.unpackbits(packed).reshape(SCREEN_HEIGHT, SCREEN_WIDTH)


def render_ascii(fb: bytes | bytearray, on: str = "#", off: str = ".") -> str:
    """Text rendering of the framebuffer, one line per pixel row."""
    pixels = framebuffer_to_pixels(fb)
    return "\n".join("".join(on if p else off for p in row) for row in pixels)


class FramebufferDisplay:
    """pygame window for the CHIP-8 framebuffer.

    Runs on the caller's thread; the frame loop in ``system.py`` drives
    ``poll_events`` / ``render`` / ``present`` once per frame.
    """

    def __init__(self, scale: int = DEFAULT_SCALE, title: str = "CHIP-8"):
        self.scale = max(1, scale)
        self.title = title
        self._pygame = None
        self._screen = None
        self._surface = None
        self.frames_rendered = 0

    # -- public API -------------------------------------------------------

    def open(self):
        """Create the window.  Raises ImportError if pygame is missing."""
        import pygame

        self._pygame = pygame
        pygame.display.init()
        pygame.display.set_caption(self.title)
        self._screen = pygame.display.set_mode(
            (SCREEN_WIDTH * self.scale, SCREEN_HEIGHT * self.scale))
        self._surface = pygame.Surface((SCREEN_WIDTH, SCREEN_HEIGHT))
        self._screen.fill(BG_COLOR)

    def close(self):
        if self._pygame is not None:
            self._pygame.display.quit()
            self._pygame = None
            self._screen = None

    @property
    def running(self) -> bool:
        return self._screen is not None

    def render(self, fb: bytes | bytearray):
        """Paint the framebuffer onto the window's back buffer."""
        pygame = self._pygame
        pixels = framebuffer_to_pixels(fb)
        rgb = np.empty((SCREEN_WIDTH, SCREEN_HEIGHT, 3), dtype=np.uint8)
        # surfarray is indexed [x, y]
        lit = pixels.T.astype(bool)
        rgb[...] = BG_COLOR
        rgb[lit] = FG_COLOR
        pygame.surfarray.blit_array(self._surface, rgb)
        scaled = pygame.transform.scale(
            self._surface,
            (SCREEN_WIDTH * self.scale, SCREEN_HEIGHT * self.scale))
        self._screen.blit(scaled, (0, 0))
        self.frames_rendered += 1

    def present(self):
        self._pygame.display.flip()

    def poll_events(self, keypad: "Keypad") -> set[str]:
        """Advance the keypad one frame and apply this frame's key events.

        Returns the host control actions seen (quit, step toggle, ...).
        """
        pygame = self._pygame
        keypad.advance()
        actions: set[str] = set()
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                actions.add(CTRL_QUIT)
            elif event.type == pygame.KEYDOWN:
                name = pygame.key.name(event.key)
                if name in CONTROL_KEYS:
                    actions.add(CONTROL_KEYS[name])
                else:
                    keypad.press_name(name)
            elif event.type == pygame.KEYUP:
                keypad.release_name(pygame.key.name(event.key))
        return actions


class HeadlessDisplay:
    """No-window display for testing -- records framebuffer snapshots.

    ``script`` is an iterable of per-frame event lists.  Each event is a
    ``("down", name)`` / ``("up", name)`` pair using the same key names as
    ``keypad.KEY_MAP`` and ``keypad.CONTROL_KEYS``.
    """

    def __init__(self, script: Iterable[list[tuple[str, str]]] = (),
                 keep: int = 0):
        self._script = deque(script)
        self.snapshots: deque[bytes] = deque(maxlen=keep or None)
        self.frames_rendered = 0
        self.presented = 0

    def open(self):
        pass

    def close(self):
        pass

    @property
    def running(self) -> bool:
        return False

    def feed(self, events: list[tuple[str, str]]):
        """Queue one more frame of scripted events."""
        self._script.append(list(events))

    def render(self, fb: bytes | bytearray):
        self.snapshots.append(bytes(fb))
        self.frames_rendered += 1

    def present(self):
        self.presented += 1

    def poll_events(self, keypad: "Keypad") -> set[str]:
        keypad.advance()
        actions: set[str] = set()
        if not self._script:
            return actions
        for kind, name in self._script.popleft():
            if kind == "down":
                if name in CONTROL_KEYS:
                    actions.add(CONTROL_KEYS[name])
                else:
                    keypad.press_name(name)
            elif kind == "up":
                keypad.release_name(name)
        return actions

    @property
    def last_frame(self) -> bytes | None:
        return self.snapshots[-1] if self.snapshots else None
