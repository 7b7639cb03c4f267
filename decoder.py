"""
CHIP-8 Opcode Decoder
=====================
Maps a raw 16-bit opcode onto a typed ``Instruction``.  Decoding is a pure
function: no machine state is read and nothing is raised.  Bit patterns that
do not name an instruction come back as ``Op.INVALID`` and the caller decides
what to do with them.

Opcode nibbles are numbered high to low as n3 n2 n1 n0.  n3 selects the
family; the remaining fields are extracted per family:

    x   = n2          (register)
    y   = n1          (register)
    n   = n0          (4-bit immediate, sprite height)
    kk  = low byte    (8-bit immediate)
    nnn = low 12 bits (address)
"""

from __future__ import annotations

import enum
from typing import Iterator, NamedTuple


class Op(enum.Enum):
    INVALID   = "INVALID"
    SYS       = "SYS"        # 0nnn
    CLS       = "CLS"        # 00E0
    RET       = "RET"        # 00EE
    JP        = "JP"         # 1nnn
    CALL      = "CALL"       # 2nnn
    SE_BYTE   = "SE_BYTE"    # 3xkk
    SNE_BYTE  = "SNE_BYTE"   # 4xkk
    SE_REG    = "SE_REG"     # 5xy0
    LD_BYTE   = "LD_BYTE"    # 6xkk
    ADD_BYTE  = "ADD_BYTE"   # 7xkk
    LD_REG    = "LD_REG"     # 8xy0
    OR        = "OR"         # 8xy1
    AND       = "AND"        # 8xy2
    XOR       = "XOR"        # 8xy3
    ADD_REG   = "ADD_REG"    # 8xy4
    SUB       = "SUB"        # 8xy5
    SHR       = "SHR"        # 8xy6
    SUBN      = "SUBN"       # 8xy7
    SHL       = "SHL"        # 8xyE
    SNE_REG   = "SNE_REG"    # 9xy0
    LD_I      = "LD_I"       # Annn
    JP_V0     = "JP_V0"      # Bnnn
    RND       = "RND"        # Cxkk
    DRW       = "DRW"        # Dxyn
    SKP       = "SKP"        # Ex9E
    SKNP      = "SKNP"       # ExA1
    LD_VX_DT  = "LD_VX_DT"   # Fx07
    LD_VX_K   = "LD_VX_K"    # Fx0A
    LD_DT_VX  = "LD_DT_VX"   # Fx15
    LD_ST_VX  = "LD_ST_VX"   # Fx18
    ADD_I     = "ADD_I"      # Fx1E
    LD_F      = "LD_F"       # Fx29
    LD_B      = "LD_B"       # Fx33
    STORE     = "STORE"      # Fx55
    LOAD      = "LOAD"       # Fx65


class Instruction(NamedTuple):
    """A decoded opcode.  Fields an instruction does not use stay 0."""
    op: Op
    x: int = 0
    y: int = 0
    n: int = 0
    kk: int = 0
    nnn: int = 0
    opcode: int = 0


# Family 8 sub-op (n0) → Op
ALU_OPS = {
    0x0: Op.LD_REG, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR,
    0x4: Op.ADD_REG, 0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN,
    0xE: Op.SHL,
}

# Family E sub-op (low byte) → Op
KEY_OPS = {0x9E: Op.SKP, 0xA1: Op.SKNP}

# Family F sub-op (low byte) → Op
MISC_OPS = {
    0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX, 0x1E: Op.ADD_I, 0x29: Op.LD_F,
    0x33: Op.LD_B, 0x55: Op.STORE, 0x65: Op.LOAD,
}

# Families carrying an address in nnn
ADDR_OPS = {0x1: Op.JP, 0x2: Op.CALL, 0xA: Op.LD_I, 0xB: Op.JP_V0}

# Families carrying a register in n2 and an immediate byte
BYTE_OPS = {
    0x3: Op.SE_BYTE, 0x4: Op.SNE_BYTE, 0x6: Op.LD_BYTE,
    0x7: Op.ADD_BYTE, 0xC: Op.RND,
}


def decode(opcode: int, strict: bool = False) -> Instruction:
    """Decode a 16-bit opcode.

    With ``strict`` set, family-0 words other than CLS/RET decode as
    ``Op.INVALID`` instead of the legacy ``SYS`` no-op.
    """
    opcode &= 0xFFFF
    f = (opcode >> 12) & 0xF
    x = (opcode >> 8) & 0xF
    y = (opcode >> 4) & 0xF
    n = opcode & 0xF
    kk = opcode & 0xFF
    nnn = opcode & 0xFFF

    if f == 0x0:
        if nnn == 0x0E0:
            return Instruction(Op.CLS, opcode=opcode)
        if nnn == 0x0EE:
            return Instruction(Op.RET, opcode=opcode)
        if strict:
            return Instruction(Op.INVALID, opcode=opcode)
        return Instruction(Op.SYS, nnn=nnn, opcode=opcode)

    if f in ADDR_OPS:
        return Instruction(ADDR_OPS[f], nnn=nnn, opcode=opcode)

    if f in BYTE_OPS:
        return Instruction(BYTE_OPS[f], x=x, kk=kk, opcode=opcode)

    if f == 0x5:
        return Instruction(Op.SE_REG, x=x, y=y, opcode=opcode)
    if f == 0x9:
        return Instruction(Op.SNE_REG, x=x, y=y, opcode=opcode)

    if f == 0x8:
        op = ALU_OPS.get(n)
        if op is None:
            return Instruction(Op.INVALID, opcode=opcode)
        return Instruction(op, x=x, y=y, opcode=opcode)

    if f == 0xD:
        return Instruction(Op.DRW, x=x, y=y, n=n, opcode=opcode)

    if f == 0xE:
        op = KEY_OPS.get(kk)
    else:  # 0xF
        op = MISC_OPS.get(kk)
    if op is None:
        return Instruction(Op.INVALID, opcode=opcode)
    return Instruction(op, x=x, opcode=opcode)


# ---------------------------------------------------------------------------
#  Disassembly
# ---------------------------------------------------------------------------

def format_instruction(instr: Instruction) -> str:
    """Render an instruction in the usual CHIP-8 assembler mnemonics."""
    op, x, y = instr.op, instr.x, instr.y
    vx, vy = f"V{x:X}", f"V{y:X}"

    if op is Op.INVALID:  return f"DW {instr.opcode:#06x}"
    if op is Op.SYS:      return f"SYS {instr.nnn:#05x}"
    if op is Op.CLS:      return "CLS"
    if op is Op.RET:      return "RET"
    if op is Op.JP:       return f"JP {instr.nnn:#05x}"
    if op is Op.CALL:     return f"CALL {instr.nnn:#05x}"
    if op is Op.SE_BYTE:  return f"SE {vx}, {instr.kk:#04x}"
    if op is Op.SNE_BYTE: return f"SNE {vx}, {instr.kk:#04x}"
    if op is Op.SE_REG:   return f"SE {vx}, {vy}"
    if op is Op.LD_BYTE:  return f"LD {vx}, {instr.kk:#04x}"
    if op is Op.ADD_BYTE: return f"ADD {vx}, {instr.kk:#04x}"
    if op is Op.LD_REG:   return f"LD {vx}, {vy}"
    if op is Op.OR:       return f"OR {vx}, {vy}"
    if op is Op.AND:      return f"AND {vx}, {vy}"
    if op is Op.XOR:      return f"XOR {vx}, {vy}"
    if op is Op.ADD_REG:  return f"ADD {vx}, {vy}"
    if op is Op.SUB:      return f"SUB {vx}, {vy}"
    if op is Op.SHR:      return f"SHR {vx}"
    if op is Op.SUBN:     return f"SUBN {vx}, {vy}"
    if op is Op.SHL:      return f"SHL {vx}"
    if op is Op.SNE_REG:  return f"SNE {vx}, {vy}"
    if op is Op.LD_I:     return f"LD I, {instr.nnn:#05x}"
    if op is Op.JP_V0:    return f"JP V0, {instr.nnn:#05x}"
    if op is Op.RND:      return f"RND {vx}, {instr.kk:#04x}"
    if op is Op.DRW:      return f"DRW {vx}, {vy}, {instr.n}"
    if op is Op.SKP:      return f"SKP {vx}"
    if op is Op.SKNP:     return f"SKNP {vx}"
    if op is Op.LD_VX_DT: return f"LD {vx}, DT"
    if op is Op.LD_VX_K:  return f"LD {vx}, K"
    if op is Op.LD_DT_VX: return f"LD DT, {vx}"
    if op is Op.LD_ST_VX: return f"LD ST, {vx}"
    if op is Op.ADD_I:    return f"ADD I, {vx}"
    if op is Op.LD_F:     return f"LD F, {vx}"
    if op is Op.LD_B:     return f"LD B, {vx}"
    if op is Op.STORE:    return f"LD [I], {vx}"
    if op is Op.LOAD:     return f"LD {vx}, [I]"
    return op.value


def disassemble(mem: bytes | bytearray, start: int, count: int,
                strict: bool = False) -> Iterator[tuple[int, int, str]]:
    """Yield ``(address, opcode, text)`` for up to *count* words at *start*.

    Stops early when the next word would run past the end of *mem*.
    """
    addr = start
    for _ in range(count):
        if addr < 0 or addr + 1 >= len(mem):
            return
        opcode = (mem[addr] << 8) | mem[addr + 1]
        yield addr, opcode, format_instruction(decode(opcode, strict))
        addr += 2
