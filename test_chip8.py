"""
CHIP-8 Interpreter Test Suite
==============================
Covers every opcode family, the flag register rules, sprite drawing and
collision, timers, key-wait, stack faults and unknown-opcode reporting.

Programs are built with the assembler and loaded at 0x200.
"""

import random
import unittest

from chip8 import (
    Chip8, HaltError, IllegalOpcodeError, StackOverflowError,
    StackUnderflowError, FONTSET, FONT_BASE, PROGRAM_START, SCREEN_W,
    SCREEN_H, decode, mnemonic,
)
from asm import assemble


def load_asm(source: str, **kwargs) -> Chip8:
    """Assemble *source*, load it at 0x200 and return a fresh machine."""
    cpu = Chip8(**kwargs)
    cpu.load_bytes(PROGRAM_START, assemble(source))
    return cpu


def run_asm(source: str, steps: int, **kwargs) -> Chip8:
    """Assemble, load, execute exactly *steps* instructions."""
    cpu = load_asm(source, **kwargs)
    for _ in range(steps):
        cpu.step()
    return cpu


def lit_cells(cpu: Chip8) -> set[tuple[int, int]]:
    return {(i % SCREEN_W, i // SCREEN_W)
            for i, on in enumerate(cpu.video) if on}


# =========================================================================
#  Machine state
# =========================================================================

class TestMachineState(unittest.TestCase):
    def test_power_on(self):
        cpu = Chip8()
        self.assertEqual(cpu.pc, 0x200)
        self.assertEqual(cpu.regs, [0] * 16)
        self.assertEqual(cpu.sp, 0)
        self.assertEqual(cpu.index, 0)
        self.assertEqual((cpu.delay_timer, cpu.sound_timer), (0, 0))
        self.assertFalse(any(cpu.keys))
        self.assertFalse(any(cpu.video))
        self.assertEqual(len(cpu.mem), 4096)
        self.assertEqual(bytes(cpu.mem[FONT_BASE:FONT_BASE + 80]), FONTSET)
        self.assertFalse(any(cpu.mem[FONT_BASE + 80:]))

    def test_reset_matches_fresh_machine(self):
        cpu = run_asm("""
            mvi v3, 200
            mvi i, $300
            mov dt, v3
            mov st, v3
            call sub
        sub:
            drw v0, v0, 5
        """, 6)
        cpu.set_key(7, True)
        cpu.mem_write8(0x800, 0xAA)
        cpu.reset()

        fresh = Chip8()
        self.assertEqual(cpu.mem, fresh.mem)
        self.assertEqual(cpu.regs, fresh.regs)
        self.assertEqual(cpu.stack, fresh.stack)
        self.assertEqual(cpu.video, fresh.video)
        self.assertEqual(cpu.keys, fresh.keys)
        self.assertEqual(
            (cpu.pc, cpu.sp, cpu.index, cpu.delay_timer, cpu.sound_timer),
            (fresh.pc, fresh.sp, fresh.index, fresh.delay_timer, fresh.sound_timer))
        self.assertFalse(cpu.halted)

    def test_reset_discards_program(self):
        cpu = load_asm("mvi v0, 1")
        cpu.reset()
        self.assertEqual(cpu.mem[PROGRAM_START], 0)

    def test_set_key_range(self):
        cpu = Chip8()
        cpu.set_key(0xF, True)
        self.assertTrue(cpu.keys[0xF])
        with self.assertRaises(ValueError):
            cpu.set_key(16, True)

    def test_framebuffer_is_read_only_snapshot(self):
        cpu = Chip8()
        fb = cpu.framebuffer
        self.assertIsInstance(fb, tuple)
        self.assertEqual(len(fb), SCREEN_W * SCREEN_H)

    def test_step_counts_cycles(self):
        cpu = run_asm("mvi v0, 1\nmvi v1, 2", 2)
        self.assertEqual(cpu.cycle_count, 2)


# =========================================================================
#  Decode
# =========================================================================

class TestDecode(unittest.TestCase):
    def test_fields(self):
        ins = decode(0xD1, 0x2F)
        self.assertEqual(ins.opcode, 0xD12F)
        self.assertEqual(ins.family, 0xD)
        self.assertEqual((ins.x, ins.y, ins.n), (1, 2, 0xF))
        self.assertEqual(ins.kk, 0x2F)
        self.assertEqual(ins.nnn, 0x12F)

    def test_defined_patterns(self):
        self.assertEqual(mnemonic(decode(0x00, 0xE0)), "CLS")
        self.assertEqual(mnemonic(decode(0x00, 0xEE)), "RET")
        self.assertEqual(mnemonic(decode(0x01, 0x23)), "SYS")
        self.assertEqual(mnemonic(decode(0x8A, 0xBE)), "SHL")
        self.assertEqual(mnemonic(decode(0xF3, 0x65)), "LDR")

    def test_undefined_patterns(self):
        for hi, lo in [(0x51, 0x21), (0x91, 0x2F), (0x81, 0x28),
                       (0xE1, 0x00), (0xF1, 0x99)]:
            self.assertIsNone(mnemonic(decode(hi, lo)), f"{hi:02X}{lo:02X}")

    def test_every_family_has_35_defined_forms(self):
        names = set()
        for hi in range(256):
            for lo in range(256):
                name = mnemonic(decode(hi, lo))
                if name is not None:
                    names.add(name)
        self.assertEqual(len(names), 35)


# =========================================================================
#  Control transfer
# =========================================================================

class TestControlFlow(unittest.TestCase):
    def test_jump(self):
        cpu = run_asm("jmp $345", 1)
        self.assertEqual(cpu.pc, 0x345)

    def test_jump_indexed(self):
        cpu = run_asm("mvi v0, $10\njmp $300(v0)", 2)
        self.assertEqual(cpu.pc, 0x310)

    def test_call_return_round_trip(self):
        cpu = load_asm("""
            call sub        ; 0x200
            mvi v1, 1       ; 0x202
        sub:
            ret             ; 0x204
        """)
        cpu.step()
        self.assertEqual(cpu.pc, 0x204)
        self.assertEqual(cpu.sp, 1)
        self.assertEqual(cpu.stack[0], 0x202)
        cpu.step()
        self.assertEqual(cpu.pc, 0x202)
        self.assertEqual(cpu.sp, 0)

    def test_sys_is_ignored(self):
        cpu = run_asm("sys $123", 1)
        self.assertEqual(cpu.pc, 0x202)
        self.assertEqual(cpu.sp, 0)

    def test_stack_overflow_faults_and_halts(self):
        halted = []
        cpu = load_asm("loop:\ncall loop")
        cpu.on_halt = lambda: halted.append(True)
        for _ in range(16):
            cpu.step()
        self.assertEqual(cpu.sp, 16)
        with self.assertRaises(StackOverflowError):
            cpu.step()
        self.assertTrue(cpu.halted)
        self.assertEqual(halted, [True])
        self.assertEqual(cpu.sp, 16)
        with self.assertRaises(HaltError):
            cpu.step()

    def test_stack_underflow_faults_and_halts(self):
        cpu = load_asm("ret")
        with self.assertRaises(StackUnderflowError):
            cpu.step()
        self.assertTrue(cpu.halted)
        self.assertEqual(cpu.sp, 0)


# =========================================================================
#  Conditional skips
# =========================================================================

class TestSkips(unittest.TestCase):
    def _pc_after(self, source: str, steps: int) -> int:
        return run_asm(source, steps).pc

    def test_skip_eq_immediate(self):
        self.assertEqual(self._pc_after("mvi v1, 7\ns.eq v1, 7", 2), 0x206)
        self.assertEqual(self._pc_after("mvi v1, 7\ns.eq v1, 8", 2), 0x204)

    def test_skip_neq_immediate(self):
        self.assertEqual(self._pc_after("mvi v1, 7\ns.neq v1, 8", 2), 0x206)
        self.assertEqual(self._pc_after("mvi v1, 7\ns.neq v1, 7", 2), 0x204)

    def test_skip_eq_register(self):
        self.assertEqual(self._pc_after("mvi v1, 7\nmvi v2, 7\ns.eq v1, v2", 3), 0x208)
        self.assertEqual(self._pc_after("mvi v1, 7\nmvi v2, 6\ns.eq v1, v2", 3), 0x206)

    def test_skip_neq_register(self):
        self.assertEqual(self._pc_after("mvi v1, 7\nmvi v2, 6\ns.neq v1, v2", 3), 0x208)
        self.assertEqual(self._pc_after("mvi v1, 7\nmvi v2, 7\ns.neq v1, v2", 3), 0x206)

    def test_skip_key_pressed(self):
        cpu = load_asm("mvi v4, $A\nskp v4\nsknp v4")
        cpu.step()
        cpu.step()
        self.assertEqual(cpu.pc, 0x204)      # not pressed: no skip
        cpu.step()
        self.assertEqual(cpu.pc, 0x208)      # not pressed: skip

        cpu = load_asm("mvi v4, $A\nskp v4")
        cpu.set_key(0xA, True)
        cpu.step()
        cpu.step()
        self.assertEqual(cpu.pc, 0x206)

    def test_skip_step_is_plus_four(self):
        cpu = load_asm("s.eq v0, 0")
        before = cpu.pc
        cpu.step()
        self.assertEqual(cpu.pc - before, 4)


# =========================================================================
#  Register loads and ALU
# =========================================================================

class TestALU(unittest.TestCase):
    def test_load_and_add_immediate(self):
        cpu = run_asm("mvi v2, 250\nadi v2, 10", 2)
        self.assertEqual(cpu.regs[2], 4)       # wraps
        self.assertEqual(cpu.regs[0xF], 0)     # no flag side effect

    def test_add_immediate_leaves_flag(self):
        cpu = run_asm("mvi vf, 1\nadi v2, 255\nadi v2, 255", 3)
        self.assertEqual(cpu.regs[0xF], 1)
        self.assertEqual(cpu.regs[2], 254)

    def test_mov_or_and_xor(self):
        cpu = run_asm("""
            mvi v1, $F0
            mvi v2, $3C
            mov v3, v1
            or v3, v2
            mov v4, v1
            and v4, v2
            mov v5, v1
            xor v5, v2
        """, 8)
        self.assertEqual(cpu.regs[3], 0xFC)
        self.assertEqual(cpu.regs[4], 0x30)
        self.assertEqual(cpu.regs[5], 0xCC)

    def test_add_with_carry(self):
        cpu = run_asm("mvi v1, 200\nmvi v2, 100\nadd v1, v2", 3)
        self.assertEqual(cpu.regs[1], 44)
        self.assertEqual(cpu.regs[0xF], 1)

    def test_add_without_carry(self):
        cpu = run_asm("mvi vf, 1\nmvi v1, 10\nmvi v2, 20\nadd v1, v2", 4)
        self.assertEqual(cpu.regs[1], 30)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_sub_no_borrow(self):
        cpu = run_asm("mvi v1, 30\nmvi v2, 10\nsub v1, v2", 3)
        self.assertEqual(cpu.regs[1], 20)
        self.assertEqual(cpu.regs[0xF], 1)

    def test_sub_equal_operands_clear_flag(self):
        cpu = run_asm("mvi vf, 1\nmvi v1, 9\nmvi v2, 9\nsub v1, v2", 4)
        self.assertEqual(cpu.regs[1], 0)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_subn_equal_operands_clear_flag(self):
        cpu = run_asm("mvi vf, 1\nmvi v3, 9\nmvi v4, 9\nsubn v3, v4", 4)
        self.assertEqual(cpu.regs[3], 0)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_sub_borrow_wraps(self):
        cpu = run_asm("mvi vf, 1\nmvi v1, 10\nmvi v2, 30\nsub v1, v2", 4)
        self.assertEqual(cpu.regs[1], 236)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_subn(self):
        cpu = run_asm("mvi v1, 10\nmvi v2, 30\nsubn v1, v2", 3)
        self.assertEqual(cpu.regs[1], 20)
        self.assertEqual(cpu.regs[0xF], 1)
        cpu = run_asm("mvi v1, 30\nmvi v2, 10\nsubn v1, v2", 3)
        self.assertEqual(cpu.regs[1], 236)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_shr(self):
        cpu = run_asm("mvi v1, $05\nshr v1", 2)
        self.assertEqual(cpu.regs[1], 0x02)
        self.assertEqual(cpu.regs[0xF], 1)
        cpu = run_asm("mvi vf, 1\nmvi v1, $04\nshr v1", 3)
        self.assertEqual(cpu.regs[1], 0x02)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_shl(self):
        cpu = run_asm("mvi v1, $81\nshl v1", 2)
        self.assertEqual(cpu.regs[1], 0x02)
        self.assertEqual(cpu.regs[0xF], 1)
        cpu = run_asm("mvi vf, 1\nmvi v1, $41\nshl v1", 3)
        self.assertEqual(cpu.regs[1], 0x82)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_flag_written_last_when_vf_is_destination(self):
        cpu = run_asm("mvi vf, 200\nmvi v1, 100\nadd vf, v1", 3)
        self.assertEqual(cpu.regs[0xF], 1)
        cpu = run_asm("mvi vf, $02\nshr vf", 2)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_random_masked(self):
        rng = random.Random(1234)
        cpu = run_asm("rnd v3, $0F\nrnd v4, 0", 2, rng=rng)
        self.assertLessEqual(cpu.regs[3], 0x0F)
        self.assertEqual(cpu.regs[4], 0)

    def test_random_covers_byte_range(self):
        cpu = Chip8(rng=random.Random(7))
        seen = set()
        for _ in range(5000):
            cpu.pc = PROGRAM_START
            cpu.load_bytes(PROGRAM_START, assemble("rnd v0, $FF"))
            cpu.step()
            seen.add(cpu.regs[0])
        self.assertEqual(seen, set(range(256)))


# =========================================================================
#  Index register, BCD, block transfer
# =========================================================================

class TestIndexOps(unittest.TestCase):
    def test_set_and_add_index(self):
        cpu = run_asm("mvi i, $300\nmvi v1, $20\nadd i, v1", 3)
        self.assertEqual(cpu.index, 0x320)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_add_index_overflow_flag_off_by_default(self):
        cpu = run_asm("mvi vf, 5\nmvi i, $FFF\nmvi v1, 2\nadd i, v1", 4)
        self.assertEqual(cpu.index, 0x1001)
        self.assertEqual(cpu.regs[0xF], 5)

    def test_add_index_overflow_flag_option(self):
        cpu = run_asm("mvi i, $FFF\nmvi v1, 2\nadd i, v1", 3,
                      index_overflow_flag=True)
        self.assertEqual(cpu.regs[0xF], 1)
        cpu = run_asm("mvi vf, 1\nmvi i, $100\nmvi v1, 2\nadd i, v1", 4,
                      index_overflow_flag=True)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_glyph_address(self):
        cpu = run_asm("mvi v2, $B\nsprite v2", 2)
        self.assertEqual(cpu.index, FONT_BASE + 0xB * 5)
        self.assertEqual(cpu.mem[cpu.index], 0xE0)

    def test_bcd(self):
        cpu = run_asm("mvi v1, 205\nmvi i, $400\nbcd v1", 3)
        self.assertEqual(list(cpu.mem[0x400:0x403]), [2, 0, 5])
        cpu = run_asm("mvi v1, 7\nmvi i, $400\nbcd v1", 3)
        self.assertEqual(list(cpu.mem[0x400:0x403]), [0, 0, 7])

    def test_store_and_load_registers(self):
        cpu = run_asm("""
            mvi v0, 1
            mvi v1, 2
            mvi v2, 3
            mvi v3, 4
            mvi i, $500
            str v0-v2
        """, 6)
        self.assertEqual(list(cpu.mem[0x500:0x504]), [1, 2, 3, 0])
        self.assertEqual(cpu.index, 0x500)

        cpu.load_bytes(0x600, bytes([9, 8, 7, 6]))
        cpu.load_bytes(cpu.pc, assemble("mvi i, $600\nldr v0-v1"))
        cpu.step()
        cpu.step()
        self.assertEqual(cpu.regs[:4], [9, 8, 3, 4])
        self.assertEqual(cpu.index, 0x600)

    def test_memory_access_wraps_at_4k(self):
        cpu = run_asm("mvi v1, 255\nmvi i, $FFF\nbcd v1", 3)
        self.assertEqual(cpu.mem[0xFFF], 2)
        self.assertEqual(cpu.mem[0x000], 5)
        self.assertEqual(cpu.mem[0x001], 5)


# =========================================================================
#  Timers and key-wait
# =========================================================================

class TestTimers(unittest.TestCase):
    def test_transfer(self):
        cpu = run_asm("mvi v1, 3\nmov dt, v1\nmov st, v1\nmov v2, dt", 4)
        self.assertEqual(cpu.delay_timer, 3)
        self.assertEqual(cpu.sound_timer, 3)
        self.assertEqual(cpu.regs[2], 3)
        self.assertTrue(cpu.sound_active)

    def test_decay_saturates(self):
        cpu = Chip8()
        cpu.delay_timer = 2
        cpu.sound_timer = 1
        cpu.tick_timers()
        self.assertEqual((cpu.delay_timer, cpu.sound_timer), (1, 0))
        cpu.tick_timers()
        cpu.tick_timers()
        self.assertEqual((cpu.delay_timer, cpu.sound_timer), (0, 0))
        self.assertFalse(cpu.sound_active)

    def test_steps_do_not_decay_timers(self):
        cpu = load_asm("mvi v1, 5\nmov dt, v1\nloop:\njmp loop")
        for _ in range(100):
            cpu.step()
        self.assertEqual(cpu.delay_timer, 5)


class TestKeyWait(unittest.TestCase):
    def test_waits_without_progress(self):
        cpu = load_asm("waitk v5\nmvi v6, 1")
        for _ in range(10):
            cpu.step()
            self.assertEqual(cpu.pc, 0x200)
        self.assertEqual(cpu.regs[5], 0)
        self.assertEqual(cpu.regs[6], 0)

    def test_resumes_on_press(self):
        cpu = load_asm("waitk v5\nmvi v6, 1")
        cpu.step()
        cpu.set_key(0xC, True)
        cpu.step()
        self.assertEqual(cpu.pc, 0x202)
        self.assertEqual(cpu.regs[5], 0xC)
        cpu.step()
        self.assertEqual(cpu.regs[6], 1)

    def test_lowest_key_wins(self):
        cpu = load_asm("waitk v0")
        cpu.set_key(9, True)
        cpu.set_key(3, True)
        cpu.step()
        self.assertEqual(cpu.regs[0], 3)


# =========================================================================
#  Drawing
# =========================================================================

class TestDraw(unittest.TestCase):
    def test_glyph_zero(self):
        cpu = run_asm("mvi v0, 0\nsprite v0\ndrw v1, v2, 5", 3)
        self.assertEqual(cpu.regs[0xF], 0)
        rows = ["".join("#" if cpu.pixel(x, y) else "." for x in range(4))
                for y in range(5)]
        self.assertEqual(rows, ["####", "#..#", "#..#", "#..#", "####"])

    def test_zero_bits_do_not_touch_framebuffer(self):
        cpu = load_asm("""
            mvi i, sprite
            drw v0, v0, 1
            jmp end
        sprite:
            .db $A5
        end:
        """)
        cpu.step()
        cpu.step()
        self.assertEqual(lit_cells(cpu), {(0, 0), (2, 0), (5, 0), (7, 0)})

    def test_draw_twice_erases_and_collides(self):
        src = """
            mvi v1, 10
            mvi v2, 5
            mvi i, $000
            drw v1, v2, 5
            drw v1, v2, 5
        """
        cpu = run_asm(src, 4)
        self.assertTrue(lit_cells(cpu))
        self.assertEqual(cpu.regs[0xF], 0)
        cpu.step()
        self.assertEqual(lit_cells(cpu), set())
        self.assertEqual(cpu.regs[0xF], 1)

    def test_partial_overlap_collides(self):
        cpu = load_asm("""
            mvi i, bar
            drw v0, v0, 1
            mvi v1, 7
            drw v1, v0, 1
            jmp end
        bar:
            .db $FF
        end:
        """)
        for _ in range(4):
            cpu.step()
        self.assertEqual(cpu.regs[0xF], 1)
        self.assertFalse(cpu.pixel(7, 0))
        self.assertTrue(cpu.pixel(14, 0))

    def test_horizontal_wrap(self):
        cpu = load_asm("""
            mvi v1, 60
            mvi i, bar
            drw v1, v0, 1
            jmp end
        bar:
            .db $FF
        end:
        """)
        for _ in range(3):
            cpu.step()
        cols = {x for x, y in lit_cells(cpu)}
        self.assertEqual(cols, {60, 61, 62, 63, 0, 1, 2, 3})

    def test_vertical_wrap(self):
        cpu = run_asm("mvi v2, 30\nmvi i, $000\ndrw v0, v2, 5", 3)
        rows = {y for x, y in lit_cells(cpu)}
        self.assertEqual(rows, {30, 31, 0, 1, 2})

    def test_origin_wraps(self):
        cpu = run_asm("mvi v1, 70\nmvi v2, 33\nmvi i, $000\ndrw v1, v2, 1", 4)
        self.assertEqual(lit_cells(cpu), {(6, 1), (7, 1), (8, 1), (9, 1)})

    def test_clear_then_draw(self):
        cpu = run_asm("mvi i, $000\ndrw v0, v0, 5", 2)
        single = lit_cells(cpu)
        cpu = run_asm("mvi i, $000\ndrw v0, v0, 5\ncls\ndrw v0, v0, 5", 4)
        self.assertEqual(lit_cells(cpu), single)
        self.assertEqual(cpu.regs[0xF], 0)

    def test_zero_height_draws_nothing(self):
        cpu = run_asm("mvi vf, 1\nmvi i, $000\ndrw v0, v0, 0", 3)
        self.assertEqual(lit_cells(cpu), set())
        self.assertEqual(cpu.regs[0xF], 0)


# =========================================================================
#  Unknown opcodes
# =========================================================================

class TestUnknownOpcodes(unittest.TestCase):
    def test_reported_and_skipped(self):
        seen = []
        cpu = load_asm(".dw $5121\nmvi v1, 1")
        cpu.on_unknown = lambda op, addr: seen.append((op, addr))
        cpu.step()
        cpu.step()
        self.assertEqual(seen, [(0x5121, 0x200)])
        self.assertEqual(cpu.regs[1], 1)
        self.assertFalse(cpu.halted)

    def test_interpreter_and_mnemonic_agree_on_every_word(self):
        reported = set()
        cpu = Chip8(rng=random.Random(0))
        cpu.on_unknown = lambda op, addr: reported.add(op)
        for word in range(0x10000):
            cpu.pc = PROGRAM_START
            cpu.sp = 1               # RET and CALL both have room
            cpu.load_bytes(PROGRAM_START, bytes([word >> 8, word & 0xFF]))
            cpu.step()
        undefined = {w for w in range(0x10000)
                     if mnemonic(decode(w >> 8, w & 0xFF)) is None}
        self.assertEqual(reported, undefined)
        self.assertFalse(cpu.halted)

    def test_default_report_goes_to_stderr(self):
        import contextlib
        import io
        cpu = load_asm(".dw $E1FF")
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            cpu.step()
        self.assertIn("0xe1ff", err.getvalue())
        self.assertEqual(cpu.pc, 0x202)

    def test_unknown_alu_and_misc_selectors(self):
        seen = []
        cpu = load_asm(".dw $812F\n.dw $F2FF\n.dw $912A")
        cpu.on_unknown = lambda op, addr: seen.append(op)
        for _ in range(3):
            cpu.step()
        self.assertEqual(seen, [0x812F, 0xF2FF, 0x912A])

    def test_strict_mode_halts(self):
        cpu = load_asm(".dw $F2FF", strict=True)
        with self.assertRaises(IllegalOpcodeError) as ctx:
            cpu.step()
        self.assertEqual(ctx.exception.opcode, 0xF2FF)
        self.assertEqual(ctx.exception.addr, 0x200)
        self.assertTrue(cpu.halted)


# =========================================================================
#  Whole programs
# =========================================================================

class TestPrograms(unittest.TestCase):
    def test_countdown_loop(self):
        cpu = load_asm("""
            mvi v0, 10
            mvi v1, 0
        loop:
            adi v1, 3
            adi v0, $FF     ; v0 -= 1
            s.eq v0, 0
            jmp loop
        done:
            jmp done
        """)
        cpu.run(max_steps=200)
        self.assertEqual(cpu.regs[0], 0)
        self.assertEqual(cpu.regs[1], 30)

    def test_draw_score_digits(self):
        cpu = load_asm("""
            mvi v0, 137
            mvi i, $300
            bcd v0
            ldr v0-v2
            mvi v4, 0       ; x
            sprite v0
            drw v4, v5, 5
            adi v4, 5
            sprite v1
            drw v4, v5, 5
            adi v4, 5
            sprite v2
            drw v4, v5, 5
        """)
        cpu.run(max_steps=13)
        self.assertEqual(cpu.regs[:3], [1, 3, 7])
        self.assertEqual(cpu.regs[0xF], 0)
        # '1' glyph top row is 0x20: only column 2 of the first digit
        self.assertEqual([cpu.pixel(x, 0) for x in range(4)],
                         [False, False, True, False])


if __name__ == "__main__":
    unittest.main()
