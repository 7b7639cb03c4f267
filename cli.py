#!/usr/bin/env python3
"""
CHIP-8 Emulator CLI / Monitor
=============================
Command-line front end for the CHIP-8 system emulator.

Provides:
  - Windowed play (pygame display, keyboard, beeper)
  - Headless runs for a fixed number of frames
  - Disassembly of a ROM
  - An interactive monitor: step / run / breakpoints, register and
    memory inspection, key injection, text-mode screen

Usage:
  python cli.py ROM [--step] [--scale N] [--strict] [--seed N] [--trace]
                    [--headless] [--frames N] [--disasm] [--monitor] [--dump]

Keys while running:
  1234 / QWER / ASDF / ZXCV   hex keypad
  Escape quit   P toggle step mode   N step once   L print state
"""

from __future__ import annotations
import argparse
import cmd
import shlex
import sys
from typing import Optional

from chip8 import Chip8Error, MEM_SIZE, PROGRAM_START
from decoder import disassemble, format_instruction
from display import render_ascii, DEFAULT_SCALE
from system import Chip8System


def print_disassembly(system: Chip8System, out=None):
    """Disassemble the loaded program, one instruction per two bytes."""
    out = out if out is not None else sys.stdout
    count = (system.program_size + 1) // 2
    for addr, opcode, text in disassemble(system.cpu.mem, PROGRAM_START,
                                          count, system.strict):
        print(f"  {addr:#05x}: {opcode:04x}  {text}", file=out)


# ---------------------------------------------------------------------------
#  Monitor
# ---------------------------------------------------------------------------

class Chip8Monitor(cmd.Cmd):
    """Interactive monitor for a CHIP-8 system."""

    intro = (
        "\n"
        "CHIP-8 Monitor\n"
        "Type 'help' for commands.  'quit' to exit.\n"
    )
    prompt = "CHIP8> "

    def __init__(self, system: Chip8System, stdout=None):
        super().__init__(stdout=stdout)
        self.sys = system
        self.breakpoints: set[int] = set()

    def _print(self, *args):
        print(*args, file=self.stdout)

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (hex with optional 0x prefix, pc, i, or Vx)."""
        s = s.strip().lower()
        if s == "pc":
            return self.sys.cpu.pc
        if s == "i":
            return self.sys.cpu.i_reg
        if len(s) == 2 and s[0] == "v":
            return self.sys.cpu.regs[int(s[1], 16)]
        return int(s, 16) if not s.startswith("0x") else int(s, 0)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _parse_key(self, s: str) -> int:
        """A logical key, 0-F."""
        key = int(s.strip(), 16)
        if not 0 <= key <= 0xF:
            raise ValueError(f"key out of range: {s}")
        return key

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except Chip8Error as e:
            self._print(f"Error: {e}")
        except ValueError as e:
            self._print(f"Bad argument: {e}")
        return False

    # ================================================================
    #  Commands
    # ================================================================

    # -- Execution --

    def do_step(self, arg):
        """Step N ticks: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            pc = self.sys.cpu.pc
            self.sys.tick()
            last = self.sys.cpu.last_instruction
            self._print(f"  {pc:#05x}: {last.opcode:04x}  "
                        f"{format_instruction(last)}")

    def do_run(self, arg):
        """Run until breakpoint: run [max_ticks]"""
        max_ticks = self._parse_int(arg) if arg.strip() else 100_000
        total = 0
        while total < max_ticks:
            self.sys.tick()
            total += 1
            if self.sys.cpu.pc in self.breakpoints:
                self._print(f"Breakpoint hit at {self.sys.cpu.pc:#05x}")
                break
        else:
            self._print(f"Stopped after {total} ticks.")

    def do_reset(self, arg):
        """Restart the loaded ROM."""
        self.sys.reset()
        self._print("System reset.")

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>"""
        if not arg.strip():
            if self.breakpoints:
                self._print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    self._print(f"  {a:#05x}")
            else:
                self._print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.add(addr)
        self._print(f"Breakpoint set at {addr:#05x}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            self._print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.discard(addr)
        self._print(f"Breakpoint at {addr:#05x} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers and timers."""
        self._print(self.sys.cpu.dump_regs())
        self._print(f"  Ticks: {self.sys.cpu.tick_count}")

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: dump <address> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        end = min(addr + count, MEM_SIZE)

        for row_start in range(addr, end, 16):
            row = [self.sys.cpu.mem_read8(a)
                   for a in range(row_start, min(row_start + 16, end))]
            hex_str = ' '.join(f"{b:02x}" for b in row)
            self._print(f"  {row_start:#05x}: {hex_str}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current PC, 16 instructions."""
        parts = shlex.split(arg)
        addr = self._parse_addr(parts[0]) if parts else self.sys.cpu.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16

        for a, opcode, text in disassemble(self.sys.cpu.mem, addr, count,
                                           self.sys.strict):
            marker = ">>>" if a == self.sys.cpu.pc else "   "
            self._print(f"  {marker} {a:#05x}: {opcode:04x}  {text}")

    def do_screen(self, arg):
        """Print the framebuffer as text."""
        self._print(render_ascii(self.sys.cpu.fb))

    def do_status(self, arg):
        """Show full system status (engine + host)."""
        self._print(self.sys.dump_state())

    def do_state(self, arg):
        """Show the engine state dump (registers, stack, memory at I)."""
        self._print(self.sys.cpu.dump_state())

    # -- Input --

    def do_press(self, arg):
        """Press a key: press <0-F>"""
        key = self._parse_key(arg)
        self.sys.keypad.press(key)
        self._print(f"  Key {key:X} pressed")

    def do_release(self, arg):
        """Release a key: release <0-F>"""
        key = self._parse_key(arg)
        self.sys.keypad.release(key)
        self._print(f"  Key {key:X} released")

    def do_advance(self, arg):
        """Age pressed keys into held keys (one frame boundary)."""
        self.sys.keypad.advance()
        self._print(f"  {self.sys.keypad!r}")

    # -- Misc --

    def do_trace(self, arg):
        """Toggle per-instruction trace: trace [on|off]"""
        a = arg.strip().lower()
        self.sys.trace = (not self.sys.trace) if not a else a in ("on", "1")
        self._print(f"  Trace {'on' if self.sys.trace else 'off'}")

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        self._print(f"Unknown command: {line.split()[0]!r}. "
                    "Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def _open_host(system: Chip8System, scale: int) -> bool:
    """Swap in the pygame display and beeper.  Returns False if unavailable."""
    try:
        import pygame
        from display import FramebufferDisplay
        from sound import Beeper
    except ImportError as e:
        print(f"[display] pygame not available: {e}", file=sys.stderr)
        print("[display] Install with: pip install pygame", file=sys.stderr)
        return False

    display = FramebufferDisplay(scale=scale)
    try:
        display.open()
    except pygame.error as e:
        print(f"[display] cannot open window: {e}", file=sys.stderr)
        return False
    system.display = display
    print(f"[display] Window opened (scale={scale}x)")

    beeper = Beeper()
    try:
        beeper.open()
        system.beeper = beeper
    except pygame.error as e:
        print(f"[sound] mixer unavailable, running silent: {e}",
              file=sys.stderr)
    return True


def _close_host(system: Chip8System):
    system.beeper.close()
    system.display.close()


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        description="CHIP-8 Emulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8\n"
               "  python cli.py pong.ch8 --scale 15 --seed 1\n"
               "  python cli.py pong.ch8 --step --trace\n"
               "  python cli.py pong.ch8 --disasm\n"
               "  python cli.py pong.ch8 --monitor\n"
               "  python cli.py pong.ch8 --headless --frames 600 --dump\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="ROM file (a leading C8P marker is stripped)")
    parser.add_argument("--step", action="store_true",
                        help="Start paused in step mode (N steps, P resumes)")
    parser.add_argument("--scale", type=int, default=DEFAULT_SCALE, metavar="N",
                        help=f"Pixel scale factor for the window "
                             f"(default: {DEFAULT_SCALE})")
    parser.add_argument("--strict", action="store_true",
                        help="Treat 0nnn (SYS) as an invalid instruction")
    parser.add_argument("--seed", type=int, default=None, metavar="N",
                        help="Seed for RND (default: unseeded)")
    parser.add_argument("--trace", action="store_true",
                        help="Print every executed instruction")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window or sound")
    parser.add_argument("--frames", type=int, default=None, metavar="N",
                        help="Stop after N frames (headless runs unpaced)")
    parser.add_argument("--disasm", action="store_true",
                        help="Disassemble the ROM and exit")
    parser.add_argument("--monitor", action="store_true",
                        help="Enter the interactive monitor instead of running")
    parser.add_argument("--dump", action="store_true",
                        help="Print the machine state on exit")
    args = parser.parse_args(argv)

    if args.rom is None and not args.monitor:
        parser.error("a ROM file is required (or use --monitor)")

    try:
        system = Chip8System(strict=args.strict, seed=args.seed,
                             trace=args.trace, step_mode=args.step)
        if args.rom is not None:
            size = system.load_rom_file(args.rom)
            if not args.disasm:
                print(f"Loaded {size} bytes from '{args.rom}' at "
                      f"{PROGRAM_START:#x}")
    except (Chip8Error, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # ---- Disassemble-only mode -----------------------------------------
    if args.disasm:
        print_disassembly(system)
        return

    # ---- Monitor mode --------------------------------------------------
    if args.monitor:
        cli = Chip8Monitor(system)
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return

    # ---- Run mode ------------------------------------------------------
    windowed = not args.headless
    if windowed and not _open_host(system, args.scale):
        print("Error: cannot open the display (use --headless to run "
              "without a window)", file=sys.stderr)
        sys.exit(1)
    # Unbounded runs keep the 60 Hz cadence
    realtime = windowed or args.frames is None
    try:
        system.run(max_frames=args.frames, realtime=realtime)
    except Chip8Error as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.dump:
            print(system.cpu.dump_state(), file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.")
    finally:
        if windowed:
            _close_host(system)

    if args.dump:
        print(system.cpu.dump_state())


if __name__ == "__main__":
    main()
