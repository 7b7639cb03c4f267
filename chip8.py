"""
CHIP-8 Virtual Machine
======================
Fetch/decode/execute engine for the CHIP-8 interpreter: 4095 bytes of
memory, sixteen 8-bit registers, a 16-bit index register, a 15-entry call
stack, a 64x32 monochrome framebuffer and two 60 Hz countdown timers.

One ``tick()`` is the unit of work: decrement the timers, fetch the opcode
at PC, decode it and apply it.  The host loop calls ``tick()`` once per
frame.  There is no blocking anywhere; ``LD Vx, K`` waits for a key by
rolling PC back so the same instruction runs again next tick.

The engine owns all machine state.  Key state and random bytes come from
collaborators passed into ``tick()``/``execute()``:

    keys.get_key_state(key) -> KeyState
    keys.any_key_pressed()  -> int | None
    rng()                   -> int in 0..255

Malformed programs never corrupt the interpreter.  Out-of-range memory,
stack overflow/underflow and non-hex key values raise a ``Chip8Error``
subclass; 8-bit and 16-bit arithmetic wraps as the instruction set defines.
"""

from __future__ import annotations

import enum
import random
from functools import partial
from typing import Callable, Optional

from decoder import Instruction, Op, decode, format_instruction
from keypad import KeyState

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE      = 0xFFF      # 4095 addressable bytes
PROGRAM_START = 0x200
NUM_REGS      = 16
VF            = 0xF        # carry / borrow / collision flag register
STACK_SIZE    = 0xF
FB_SIZE       = 256        # 64x32 pixels, 8 per byte
SCREEN_WIDTH  = 64
SCREEN_HEIGHT = 32
ROM_MAGIC     = b"C8P"

FONT_BASE        = 0x000
FONT_SPRITE_SIZE = 5

FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# Instruction groups, one executor each
FLOW_OPS = frozenset({Op.SYS, Op.RET, Op.JP, Op.CALL, Op.JP_V0})
SKIP_OPS = frozenset({Op.SE_BYTE, Op.SNE_BYTE, Op.SE_REG, Op.SNE_REG,
                      Op.SKP, Op.SKNP})
ALU_OPS  = frozenset({Op.LD_BYTE, Op.ADD_BYTE, Op.LD_REG, Op.OR, Op.AND,
                      Op.XOR, Op.ADD_REG, Op.SUB, Op.SHR, Op.SUBN, Op.SHL})


class ExecutionStatus(enum.Enum):
    OK = "ok"
    FRAMEBUFFER_CHANGED = "framebuffer_changed"


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for fatal emulator conditions.  None of them is recoverable."""
    pass


class RomLoadError(Chip8Error):
    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(f"ROM is {size} bytes, only {capacity} fit "
                         f"above {PROGRAM_START:#05x}")


class InvalidInstructionError(Chip8Error):
    def __init__(self, pc: int, opcode: int):
        self.pc = pc
        self.opcode = opcode
        super().__init__(f"Invalid instruction {opcode:#06x} @ {pc:#05x}")


class MemoryAccessError(Chip8Error):
    def __init__(self, address: int, pc: int):
        self.address = address
        self.pc = pc
        super().__init__(f"Address {address:#06x} out of range @ {pc:#05x}")


class StackOverflowError(Chip8Error):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Stack overflow ({STACK_SIZE} entries) @ {pc:#05x}")


class StackUnderflowError(Chip8Error):
    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Return with empty stack @ {pc:#05x}")


class InvalidKeyError(Chip8Error):
    def __init__(self, value: int, pc: int):
        self.value = value
        self.pc = pc
        super().__init__(f"Register value {value:#04x} is not a key (0-F) "
                         f"@ {pc:#05x}")


# ---------------------------------------------------------------------------
#  CPU
# ---------------------------------------------------------------------------

def default_rng() -> Callable[[], int]:
    """Unseeded uniform byte source."""
    return partial(random.Random().randint, 0, 255)


class Chip8:
    """CHIP-8 interpreter state plus the instruction semantics."""

    def __init__(self, rom: bytes | bytearray = b"", strict: bool = False,
                 rng: Optional[Callable[[], int]] = None):
        self.strict = strict
        self.rng: Callable[[], int] = rng if rng is not None else default_rng()

        self.mem = bytearray(MEM_SIZE)
        self.mem[FONT_BASE:FONT_BASE + len(FONT)] = FONT

        self.regs: list[int] = [0] * NUM_REGS
        self.i_reg: int = 0
        self.stack: list[int] = [0] * STACK_SIZE
        self.sp: int = 0            # number of entries in use
        self.pc: int = PROGRAM_START

        self.fb = bytearray(FB_SIZE)
        self.delay_timer: int = 0
        self.sound_timer: int = 0

        self.tick_count: int = 0
        self.program_size: int = 0
        self.last_instruction: Optional[Instruction] = None
        self._instr_pc: int = PROGRAM_START

        # Called with (pc, opcode, instruction) before each execution
        self.on_trace: Optional[Callable[[int, int, Instruction], None]] = None

        self.load_rom(rom)

    # -- Loading --

    def load_rom(self, rom: bytes | bytearray) -> int:
        """Copy a program to 0x200 and point PC at it.

        A leading ``C8P`` marker is stripped.  Returns the program size.
        """
        data = bytes(rom)
        if data[:len(ROM_MAGIC)] == ROM_MAGIC:
            data = data[len(ROM_MAGIC):]
        capacity = MEM_SIZE - PROGRAM_START
        if len(data) > capacity:
            raise RomLoadError(len(data), capacity)
        self.mem[PROGRAM_START:PROGRAM_START + len(data)] = data
        self.pc = PROGRAM_START
        self.program_size = len(data)
        return len(data)

    # -- Memory access --

    def _check_addr(self, addr: int, size: int = 1):
        if addr < 0 or addr + size > MEM_SIZE:
            bad = addr if addr < 0 or addr >= MEM_SIZE else MEM_SIZE
            raise MemoryAccessError(bad, self._instr_pc)

    def mem_read8(self, addr: int) -> int:
        self._check_addr(addr)
        return self.mem[addr]

    def mem_write8(self, addr: int, val: int):
        self._check_addr(addr)
        self.mem[addr] = val & 0xFF

    # -- Stack helpers --

    def push(self, addr: int):
        if self.sp >= STACK_SIZE:
            raise StackOverflowError(self._instr_pc)
        self.stack[self.sp] = addr
        self.sp += 1

    def pop(self) -> int:
        if self.sp == 0:
            raise StackUnderflowError(self._instr_pc)
        self.sp -= 1
        return self.stack[self.sp]

    # -- Fetch --

    def fetch(self) -> int:
        """Read the big-endian opcode at PC without advancing."""
        self._instr_pc = self.pc
        self._check_addr(self.pc, 2)
        return (self.mem[self.pc] << 8) | self.mem[self.pc + 1]

    # =====================================================================
    #  TICK -- timers + one instruction
    # =====================================================================

    def tick(self, keys, rng: Optional[Callable[[], int]] = None) -> ExecutionStatus:
        """Run one frame's worth of machine time.

        Both timers count down by one (never below zero), then exactly one
        instruction executes.  A tick that raises leaves PC, both timers and
        the rest of the machine as they were, so PC points at the fault.
        """
        opcode = self.fetch()
        instr = decode(opcode, self.strict)
        if self.on_trace:
            self.on_trace(self.pc, opcode, instr)
        if instr.op is Op.INVALID:
            raise InvalidInstructionError(self.pc, opcode)

        timers = (self.delay_timer, self.sound_timer)
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1
        try:
            status = self.execute(instr, keys, rng)
        except Chip8Error:
            self.delay_timer, self.sound_timer = timers
            raise
        self.last_instruction = instr
        self.tick_count += 1
        return status

    def execute(self, instr: Instruction, keys,
                rng: Optional[Callable[[], int]] = None) -> ExecutionStatus:
        """Apply one decoded instruction.

        PC is advanced by 2 before the instruction's own effect, so jumps
        overwrite it and skips add a further 2.  On a ``Chip8Error`` PC is
        put back on the faulting instruction.
        """
        self._instr_pc = self.pc
        op = instr.op
        if op is Op.INVALID:
            raise InvalidInstructionError(self.pc, instr.opcode)

        self.pc = (self.pc + 2) & 0xFFFF
        try:
            return self._apply(instr, keys, rng)
        except Chip8Error:
            self.pc = self._instr_pc
            raise

    def _apply(self, instr: Instruction, keys,
               rng: Optional[Callable[[], int]]) -> ExecutionStatus:
        op = instr.op
        if op in ALU_OPS:
            self._exec_alu(instr)
        elif op in SKIP_OPS:
            self._exec_skip(instr, keys)
        elif op in FLOW_OPS:
            self._exec_flow(instr)
        elif op is Op.DRW:
            return self._exec_drw(instr)
        elif op is Op.CLS:
            # Redraw after CLS is the presentation layer's call
            self.fb[:] = bytes(FB_SIZE)
        elif op is Op.RND:
            source = rng if rng is not None else self.rng
            self.regs[instr.x] = source() & 0xFF & instr.kk
        else:
            self._exec_misc(instr, keys)
        return ExecutionStatus.OK

    # =====================================================================
    #  Group executors
    # =====================================================================

    def _exec_flow(self, instr: Instruction):
        op = instr.op
        if op is Op.SYS:
            return
        if op is Op.JP:
            self.pc = instr.nnn
        elif op is Op.JP_V0:
            self.pc = (instr.nnn + self.regs[0]) & 0xFFFF
        elif op is Op.CALL:
            self.push(self.pc)
            self.pc = instr.nnn
        elif op is Op.RET:
            self.pc = self.pop()

    def _key(self, value: int) -> int:
        """Register value → logical key index."""
        if not 0 <= value <= 0xF:
            raise InvalidKeyError(value, self._instr_pc)
        return value

    def _exec_skip(self, instr: Instruction, keys):
        op = instr.op
        vx = self.regs[instr.x]
        vy = self.regs[instr.y]

        if op is Op.SE_BYTE:
            skip = vx == instr.kk
        elif op is Op.SNE_BYTE:
            skip = vx != instr.kk
        elif op is Op.SE_REG:
            skip = vx == vy
        elif op is Op.SNE_REG:
            skip = vx != vy
        elif op is Op.SKP:
            skip = keys.get_key_state(self._key(vx)) != KeyState.UP
        else:  # SKNP
            skip = keys.get_key_state(self._key(vx)) == KeyState.UP

        if skip:
            self.pc = (self.pc + 2) & 0xFFFF

    def _exec_alu(self, instr: Instruction):
        # VF is written before Vx, so with x == F the result wins
        op = instr.op
        x = instr.x
        vx = self.regs[x]
        vy = self.regs[instr.y]
        r = self.regs

        if op is Op.LD_BYTE:
            r[x] = instr.kk
        elif op is Op.ADD_BYTE:
            r[VF] = 1 if vx + instr.kk > 0xFF else 0
            r[x] = (vx + instr.kk) & 0xFF
        elif op is Op.LD_REG:
            r[x] = vy
        elif op is Op.OR:
            r[x] = vx | vy
        elif op is Op.AND:
            r[x] = vx & vy
        elif op is Op.XOR:
            r[x] = vx ^ vy
        elif op is Op.ADD_REG:
            r[VF] = 1 if vx + vy > 0xFF else 0
            r[x] = (vx + vy) & 0xFF
        elif op is Op.SUB:
            # Strictly greater, not >=
            r[VF] = 1 if vx > vy else 0
            r[x] = (vx - vy) & 0xFF
        elif op is Op.SUBN:
            r[VF] = 1 if vy > vx else 0
            r[x] = (vy - vx) & 0xFF
        elif op is Op.SHR:
            r[VF] = vx & 1
            r[x] = vx >> 1
        elif op is Op.SHL:
            r[VF] = (vx >> 7) & 1
            r[x] = (vx << 1) & 0xFF

    def _exec_drw(self, instr: Instruction) -> ExecutionStatus:
        """XOR an n-row sprite from memory[I] into the framebuffer.

        Each row lands in the byte holding (Vx, Vy+row) and spills into the
        next byte by ``Vx % 8`` bits.  Addressing wraps over the 256-byte
        buffer as a whole, so a sprite past the right edge continues on the
        next row and byte 255 spills into byte 0.
        """
        screen_x = self.regs[instr.x]
        base_y = self.regs[instr.y]
        shift = 8 - screen_x % 8
        if instr.n:
            self._check_addr(self.i_reg, instr.n)

        collision = 0
        for row in range(instr.n):
            bits = self.mem[self.i_reg + row] << shift
            hi = (bits >> 8) & 0xFF
            lo = bits & 0xFF
            screen_y = (base_y + row) & 0xFF
            idx = (screen_x // 8 + screen_y * 8) % FB_SIZE
            nxt = (idx + 1) % FB_SIZE
            if (self.fb[idx] & hi) or (self.fb[nxt] & lo):
                collision = 1
            self.fb[idx] ^= hi
            self.fb[nxt] ^= lo

        self.regs[VF] = collision
        return ExecutionStatus.FRAMEBUFFER_CHANGED

    def _exec_misc(self, instr: Instruction, keys):
        op = instr.op
        x = instr.x
        vx = self.regs[x]

        if op is Op.LD_I:
            self.i_reg = instr.nnn
        elif op is Op.LD_VX_DT:
            self.regs[x] = self.delay_timer
        elif op is Op.LD_VX_K:
            key = keys.any_key_pressed()
            if key is None:
                # Stall: run this instruction again next tick
                self.pc = (self.pc - 2) & 0xFFFF
            else:
                self.regs[x] = self._key(key)
        elif op is Op.LD_DT_VX:
            self.delay_timer = vx
        elif op is Op.LD_ST_VX:
            self.sound_timer = vx
        elif op is Op.ADD_I:
            self.i_reg = (self.i_reg + vx) & 0xFFFF
        elif op is Op.LD_F:
            self.i_reg = FONT_BASE + vx * FONT_SPRITE_SIZE
        elif op is Op.LD_B:
            self._check_addr(self.i_reg, 3)
            self.mem[self.i_reg] = vx // 100
            self.mem[self.i_reg + 1] = (vx // 10) % 10
            self.mem[self.i_reg + 2] = vx % 10
        elif op is Op.STORE:
            self._check_addr(self.i_reg, x + 1)
            self.mem[self.i_reg:self.i_reg + x + 1] = bytes(self.regs[:x + 1])
        elif op is Op.LOAD:
            self._check_addr(self.i_reg, x + 1)
            self.regs[:x + 1] = list(self.mem[self.i_reg:self.i_reg + x + 1])

    # -- Debug / introspection --

    def memory_view(self, rows: int = 32, cols: int = 16) -> list[str]:
        """Hex rows of memory starting at I, clipped at the end of memory."""
        lines = []
        for r in range(rows):
            addr = self.i_reg + r * cols
            if addr >= MEM_SIZE:
                break
            chunk = self.mem[addr:min(addr + cols, MEM_SIZE)]
            lines.append(f"{addr:3X}: " + " ".join(f"{b:2X}" for b in chunk))
        return lines

    def snapshot(self) -> dict:
        """Copy of the debugger-visible state.  Does not touch the machine."""
        return {
            "registers": list(self.regs),
            "index": self.i_reg,
            "stack": list(self.stack),
            "sp": self.sp,
            "pc": self.pc,
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "memory": self.memory_view(),
        }

    def dump_regs(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{i:X}={self.regs[i]:#04x}" for i in range(row, row + 4)))
        lines.append(f"  I={self.i_reg:#06x}  PC={self.pc:#06x}  SP={self.sp}  "
                     f"DT={self.delay_timer}  ST={self.sound_timer}")
        if self.last_instruction is not None:
            lines.append(f"  last: {format_instruction(self.last_instruction)}")
        return "\n".join(lines)

    def dump_state(self) -> str:
        """Registers, I, stack and the memory around I."""
        lines = [
            "=================",
            f"Registers: {self.regs}",
            f"Memory register: {self.i_reg}",
            f"Stack: {self.stack[:self.sp]}",
            f"Delay timer: {self.delay_timer}",
            "=================",
            "Memory at memory register:",
        ]
        lines.extend(self.memory_view())
        return "\n".join(lines)
