"""
CHIP-8 Hex Keypad
=================
Holds the state of the 16 logical keys between frames.  The engine only
reads it; the display's event pump writes it.

Each key moves through three states:

    UP       -- not held
    PRESSED  -- went down since the previous frame (edge, seen once)
    DOWN     -- held across frames

``advance()`` runs once per frame before new events are applied.  It ORs
bit 0 into every state, which turns PRESSED (0b10) into DOWN (0b11) and
leaves UP (0b01) alone.
"""

from __future__ import annotations

import enum
from typing import Optional

NUM_KEYS = 16


class KeyState(enum.IntEnum):
    UP      = 0b01
    PRESSED = 0b10
    DOWN    = 0b11


# Physical key name (as reported by pygame.key.name) → logical key
#
#   1 2 3 C        1 2 3 4
#   4 5 6 D   ←    Q W E R
#   7 8 9 E        A S D F
#   A 0 B F        Z X C V
KEY_MAP = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF,
}

# Host control keys (not visible to CHIP-8 programs)
CTRL_QUIT        = "quit"
CTRL_TOGGLE_STEP = "toggle_step"
CTRL_STEP        = "step"
CTRL_PRINT_STATE = "print_state"

CONTROL_KEYS = {
    'escape': CTRL_QUIT,
    'p': CTRL_TOGGLE_STEP,
    'n': CTRL_STEP,
    'l': CTRL_PRINT_STATE,
}


class Keypad:
    """Sixteen-key input state, advanced once per frame."""

    def __init__(self):
        self.states: list[KeyState] = [KeyState.UP] * NUM_KEYS

    def reset(self):
        self.states = [KeyState.UP] * NUM_KEYS

    def advance(self):
        """Age edge-triggered presses into held keys."""
        self.states = [KeyState(s | 1) for s in self.states]

    def press(self, key: int):
        self.states[key & 0xF] = KeyState.PRESSED

    def release(self, key: int):
        self.states[key & 0xF] = KeyState.UP

    def press_name(self, name: str) -> bool:
        """Press the logical key bound to a physical key name, if any."""
        key = KEY_MAP.get(name.lower())
        if key is None:
            return False
        self.press(key)
        return True

    def release_name(self, name: str) -> bool:
        key = KEY_MAP.get(name.lower())
        if key is None:
            return False
        self.release(key)
        return True

    def get_key_state(self, key: int) -> KeyState:
        return self.states[key]

    def any_key_pressed(self) -> Optional[int]:
        """Lowest logical key in the PRESSED state, or None."""
        for key, state in enumerate(self.states):
            if state == KeyState.PRESSED:
                return key
        return None

    def __repr__(self) -> str:
        held = [f"{k:X}" for k, s in enumerate(self.states) if s != KeyState.UP]
        return f"Keypad(held=[{' '.join(held)}])"
