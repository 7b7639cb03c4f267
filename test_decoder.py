#!/usr/bin/env python3
"""
Tests for the CHIP-8 opcode decoder and disassembler.
"""
import unittest

from decoder import Instruction, Op, decode, disassemble, format_instruction


class TestDecodeTotality(unittest.TestCase):
    def test_every_opcode_decodes(self):
        for opcode in range(0x10000):
            instr = decode(opcode)
            self.assertIsInstance(instr, Instruction)
            self.assertIsInstance(instr.op, Op)
            self.assertEqual(instr.opcode, opcode)

    def test_decode_is_pure(self):
        for opcode in range(0, 0x10000, 7):
            self.assertEqual(decode(opcode), decode(opcode))
            self.assertEqual(decode(opcode, strict=True),
                             decode(opcode, strict=True))

    def test_every_variant_reachable(self):
        seen = {decode(op).op for op in range(0x10000)}
        self.assertEqual(seen, set(Op))
        # 34 instructions plus INVALID
        self.assertEqual(len(Op), 35)

    def test_opcode_masked_to_16_bits(self):
        self.assertEqual(decode(0x11234).op, Op.JP)
        self.assertEqual(decode(0x11234).nnn, 0x234)


class TestDecodeFamilies(unittest.TestCase):
    def test_family_0(self):
        self.assertEqual(decode(0x00E0).op, Op.CLS)
        self.assertEqual(decode(0x00EE).op, Op.RET)
        sys_call = decode(0x0123)
        self.assertEqual(sys_call.op, Op.SYS)
        self.assertEqual(sys_call.nnn, 0x123)

    def test_family_0_strict(self):
        self.assertEqual(decode(0x0123, strict=True).op, Op.INVALID)
        self.assertEqual(decode(0x0000, strict=True).op, Op.INVALID)
        self.assertEqual(decode(0x00E0, strict=True).op, Op.CLS)
        self.assertEqual(decode(0x00EE, strict=True).op, Op.RET)

    def test_strict_only_affects_family_0(self):
        for opcode in range(0x1000, 0x10000, 3):
            self.assertEqual(decode(opcode), decode(opcode, strict=True))

    def test_address_families(self):
        for f, op in ((0x1, Op.JP), (0x2, Op.CALL), (0xA, Op.LD_I),
                      (0xB, Op.JP_V0)):
            instr = decode((f << 12) | 0xABC)
            self.assertEqual(instr.op, op)
            self.assertEqual(instr.nnn, 0xABC)

    def test_byte_families(self):
        for f, op in ((0x3, Op.SE_BYTE), (0x4, Op.SNE_BYTE),
                      (0x6, Op.LD_BYTE), (0x7, Op.ADD_BYTE), (0xC, Op.RND)):
            instr = decode((f << 12) | 0x5A7)
            self.assertEqual(instr.op, op)
            self.assertEqual(instr.x, 0x5)
            self.assertEqual(instr.kk, 0xA7)

    def test_register_pair_families(self):
        se = decode(0x5AB0)
        self.assertEqual((se.op, se.x, se.y), (Op.SE_REG, 0xA, 0xB))
        sne = decode(0x9AB0)
        self.assertEqual((sne.op, sne.x, sne.y), (Op.SNE_REG, 0xA, 0xB))

    def test_alu_family(self):
        expected = {
            0x0: Op.LD_REG, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR,
            0x4: Op.ADD_REG, 0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN,
            0xE: Op.SHL,
        }
        for sub in range(16):
            instr = decode(0x8120 | sub)
            if sub in expected:
                self.assertEqual(instr.op, expected[sub])
                self.assertEqual((instr.x, instr.y), (1, 2))
            else:
                self.assertEqual(instr.op, Op.INVALID, hex(sub))

    def test_draw(self):
        instr = decode(0xD12F)
        self.assertEqual((instr.op, instr.x, instr.y, instr.n),
                         (Op.DRW, 1, 2, 0xF))

    def test_key_family(self):
        self.assertEqual(decode(0xE39E).op, Op.SKP)
        self.assertEqual(decode(0xE3A1).op, Op.SKNP)
        self.assertEqual(decode(0xE39E).x, 3)
        self.assertEqual(decode(0xE300).op, Op.INVALID)
        self.assertEqual(decode(0xE3A2).op, Op.INVALID)

    def test_misc_family(self):
        expected = {
            0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX,
            0x18: Op.LD_ST_VX, 0x1E: Op.ADD_I, 0x29: Op.LD_F,
            0x33: Op.LD_B, 0x55: Op.STORE, 0x65: Op.LOAD,
        }
        for low in range(0x100):
            instr = decode(0xF700 | low)
            if low in expected:
                self.assertEqual(instr.op, expected[low])
                self.assertEqual(instr.x, 7)
            else:
                self.assertEqual(instr.op, Op.INVALID, hex(low))


class TestFormat(unittest.TestCase):
    def check(self, opcode, text, strict=False):
        self.assertEqual(format_instruction(decode(opcode, strict)), text)

    def test_mnemonics(self):
        self.check(0x00E0, "CLS")
        self.check(0x00EE, "RET")
        self.check(0x0123, "SYS 0x123")
        self.check(0x1200, "JP 0x200")
        self.check(0x2ABC, "CALL 0xabc")
        self.check(0x6A05, "LD VA, 0x05")
        self.check(0x7A10, "ADD VA, 0x10")
        self.check(0x8126, "SHR V1")
        self.check(0x812E, "SHL V1")
        self.check(0x8124, "ADD V1, V2")
        self.check(0xA300, "LD I, 0x300")
        self.check(0xB300, "JP V0, 0x300")
        self.check(0xC0FF, "RND V0, 0xff")
        self.check(0xD015, "DRW V0, V1, 5")
        self.check(0xE19E, "SKP V1")
        self.check(0xF30A, "LD V3, K")
        self.check(0xF355, "LD [I], V3")
        self.check(0xF365, "LD V3, [I]")
        self.check(0xF233, "LD B, V2")
        self.check(0xF229, "LD F, V2")

    def test_invalid_as_data_word(self):
        self.check(0x8008, "DW 0x8008")
        self.check(0x0123, "DW 0x0123", strict=True)


class TestDisassemble(unittest.TestCase):
    def test_listing(self):
        mem = bytearray(0x210)
        mem[0x200:0x206] = bytes([0x6A, 0x05, 0x7A, 0x10, 0x12, 0x00])
        lines = list(disassemble(mem, 0x200, 3))
        self.assertEqual(lines, [
            (0x200, 0x6A05, "LD VA, 0x05"),
            (0x202, 0x7A10, "ADD VA, 0x10"),
            (0x204, 0x1200, "JP 0x200"),
        ])

    def test_stops_at_end_of_memory(self):
        mem = bytes(5)
        lines = list(disassemble(mem, 0, 10))
        self.assertEqual([a for a, _, _ in lines], [0, 2])


if __name__ == "__main__":
    unittest.main()
