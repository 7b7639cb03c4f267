"""
CHIP-8 System Emulator
======================
Wires together:
  - the CHIP-8 engine (chip8.py)
  - the hex keypad (keypad.py)
  - a framebuffer display, pygame or headless (display.py)
  - a beeper gated by the sound timer (sound.py)
  - a random byte source for RND

and drives them with a fixed 60 Hz frame loop.  Each frame polls input,
runs one engine tick, redraws if the framebuffer changed, gates the tone
and presents.  A step mode (toggled from the keyboard) pauses ticking
until the step key is pressed.
"""

from __future__ import annotations

import random
import sys
import time
from functools import partial
from typing import Optional, TextIO

from chip8 import Chip8, ExecutionStatus
from decoder import Instruction, Op, format_instruction
from display import HeadlessDisplay
from keypad import (Keypad, CTRL_QUIT, CTRL_TOGGLE_STEP, CTRL_STEP,
                    CTRL_PRINT_STATE)
from sound import SilentBeeper

FRAME_TIME = 1.0 / 60      # seconds per frame / per tick
MAX_ROM_READ = 0xFFFF      # bytes read from a ROM file at most


class Chip8System:
    """A CHIP-8 machine plus its host-side collaborators."""

    def __init__(self, rom: bytes | bytearray = b"", display=None,
                 beeper=None, keypad: Optional[Keypad] = None,
                 strict: bool = False, seed: Optional[int] = None,
                 trace: bool = False, step_mode: bool = False,
                 out: Optional[TextIO] = None):
        self.keypad = keypad if keypad is not None else Keypad()
        self.display = display if display is not None else HeadlessDisplay()
        self.beeper = beeper if beeper is not None else SilentBeeper()
        self.out = out if out is not None else sys.stdout

        self.seed = seed
        self._random = random.Random(seed)
        self.rng = partial(self._random.randint, 0, 255)

        self.strict = strict
        self.cpu = Chip8(rom, strict=strict, rng=self.rng)
        self.rom = bytes(rom)

        self.step_mode = step_mode
        self.quit_requested = False
        self.frame_count = 0
        self.trace = trace

    # -----------------------------------------------------------------
    #  Loading
    # -----------------------------------------------------------------

    def load_rom(self, rom: bytes | bytearray) -> int:
        """Replace the machine with a fresh one running *rom*."""
        cpu = Chip8(rom, strict=self.strict, rng=self.rng)
        cpu.on_trace = self.cpu.on_trace
        self.cpu = cpu
        self.rom = bytes(rom)
        self.keypad.reset()
        return len(self.rom)

    def load_rom_file(self, path: str) -> int:
        """Load a ROM file.  At most 0xFFFF bytes are read."""
        with open(path, "rb") as f:
            data = f.read(MAX_ROM_READ)
        return self.load_rom(data)

    def reset(self):
        """Restart the current ROM from a clean machine."""
        self.load_rom(self.rom)

    # -----------------------------------------------------------------
    #  Tracing
    # -----------------------------------------------------------------

    @property
    def trace(self) -> bool:
        return self.cpu.on_trace is not None

    @trace.setter
    def trace(self, enabled: bool):
        self.cpu.on_trace = self._trace_line if enabled else None

    def _trace_line(self, pc: int, opcode: int, instr: Instruction):
        print(f"0x{pc:03X}: 0x{opcode:04X} => {format_instruction(instr)}",
              file=self.out)

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def tick(self) -> ExecutionStatus:
        """One engine tick plus the redraw and tone decisions it implies."""
        status = self.cpu.tick(self.keypad, self.rng)
        last = self.cpu.last_instruction
        if (status is ExecutionStatus.FRAMEBUFFER_CHANGED
                or (last is not None and last.op is Op.CLS)):
            self.display.render(self.cpu.fb)
        self.beeper.gate(self.cpu.sound_timer)
        return status

    def frame(self) -> bool:
        """Poll input, maybe tick, present.  Returns False once quit."""
        actions = self.display.poll_events(self.keypad)
        if CTRL_QUIT in actions:
            self.quit_requested = True
            return False

        run_tick = not self.step_mode
        if CTRL_TOGGLE_STEP in actions:
            # The toggle frame itself does not tick
            self.step_mode = not self.step_mode
            run_tick = False
        if CTRL_STEP in actions:
            run_tick = True
        if CTRL_PRINT_STATE in actions:
            print(self.cpu.dump_state(), file=self.out)

        if run_tick:
            self.tick()
        elif self.beeper.playing:
            self.beeper.stop()

        self.display.present()
        self.frame_count += 1
        return True

    def run(self, max_frames: Optional[int] = None,
            realtime: bool = True) -> int:
        """Run frames until quit or *max_frames*.  Returns frames run.

        With ``realtime`` each frame is followed by a fixed sleep, the
        same cadence as a 60 Hz display.  Engine errors propagate.
        """
        ran = 0
        try:
            while max_frames is None or ran < max_frames:
                if not self.frame():
                    break
                ran += 1
                if realtime:
                    time.sleep(FRAME_TIME)
        finally:
            self.beeper.stop()
        return ran

    def run_until(self, pc: int, max_ticks: int = 100_000) -> int:
        """Tick (no display pacing) until PC == *pc*.  Returns ticks run."""
        for i in range(max_ticks):
            if self.cpu.pc == pc:
                return i
            self.tick()
        return max_ticks

    # -----------------------------------------------------------------
    #  Convenience
    # -----------------------------------------------------------------

    @property
    def program_size(self) -> int:
        return self.cpu.program_size

    def dump_state(self) -> str:
        """Full engine + collaborator state dump."""
        lines = ["=== Registers ===", self.cpu.dump_regs(), ""]
        lines.append("=== Host ===")
        lines.append(f"  Frames: {self.frame_count}  Ticks: {self.cpu.tick_count}  "
                     f"Step mode: {'on' if self.step_mode else 'off'}")
        lines.append(f"  {self.keypad!r}")
        lines.append(f"  Tone: {'on' if self.beeper.playing else 'off'}  "
                     f"Seed: {self.seed if self.seed is not None else 'random'}")
        return "\n".join(lines)
