"""
CHIP-8 Bytecode Interpreter
============================
A cycle-step interpreter for the CHIP-8 virtual machine: 4 KiB of memory,
sixteen 8-bit registers, a 16-level call stack, two 60 Hz countdown timers,
a 64x32 monochrome framebuffer and a 16-key hex keypad.

Every instruction is two bytes, big-endian.  The fetch/decode/execute loop
reads the word at PC, advances PC by 2, then switches on the leading nibble
(the opcode family).  Families 0x0, 0x8, 0xE and 0xF use a secondary selector
from the low nibble or low byte.

The host drives two entry points at independent rates:

    cpu.step()          many times per display frame
    cpu.tick_timers()   exactly once per display frame (60 Hz)
"""

from __future__ import annotations
import random
import sys
from typing import Callable, NamedTuple, Optional

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE      = 0x1000
ADDR_MASK     = MEM_SIZE - 1
PROGRAM_START = 0x200
MAX_ROM_SIZE  = MEM_SIZE - PROGRAM_START

NUM_REGS    = 16
FLAG_REG    = 0xF        # VF: carry / borrow / collision
STACK_DEPTH = 16
NUM_KEYS    = 16

SCREEN_W = 64
SCREEN_H = 32

FONT_BASE  = 0x000       # glyphs live in the reserved interpreter area
GLYPH_SIZE = 5

FONTSET = bytes([
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

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u8(v: int) -> int:
    """Mask to unsigned 8 bits."""
    return v & 0xFF

def u16(v: int) -> int:
    """Mask to unsigned 16 bits."""
    return v & 0xFFFF

# ---------------------------------------------------------------------------
#  Decode
# ---------------------------------------------------------------------------

class Instruction(NamedTuple):
    """Operand fields of one two-byte instruction."""
    opcode: int   # full 16-bit word
    family: int   # leading nibble
    x: int        # second nibble (register index)
    y: int        # third nibble (register index)
    n: int        # fourth nibble (4-bit immediate)
    kk: int       # low byte (8-bit immediate)
    nnn: int      # low 12 bits (address)


def decode(hi: int, lo: int) -> Instruction:
    """Split the big-endian word ``hi:lo`` into its operand fields."""
    word = ((hi & 0xFF) << 8) | (lo & 0xFF)
    return Instruction(
        opcode=word,
        family=(word >> 12) & 0xF,
        x=(word >> 8) & 0xF,
        y=(word >> 4) & 0xF,
        n=word & 0xF,
        kk=word & 0xFF,
        nnn=word & 0xFFF,
    )


# Secondary selectors for the families that have them
ALU_OPS = {
    0x0: "MOV_VX_VY", 0x1: "OR",  0x2: "AND", 0x3: "XOR",
    0x4: "ADD_VX_VY", 0x5: "SUB", 0x6: "SHR", 0x7: "SUBN",
    0xE: "SHL",
}

KEY_OPS = {0x9E: "SKP", 0xA1: "SKNP"}

MISC_OPS = {
    0x07: "MOV_VX_DT", 0x0A: "WAITK", 0x15: "MOV_DT_VX", 0x18: "MOV_ST_VX",
    0x1E: "ADD_I_VX",  0x29: "SPRITE", 0x33: "BCD",
    0x55: "STR", 0x65: "LDR",
}


def mnemonic(ins: Instruction) -> Optional[str]:
    """Return the mnemonic key for *ins*, or None if the pattern is undefined.

    Shared by the interpreter and the disassembler so both agree on which
    bit patterns are part of the instruction set.
    """
    f = ins.family
    if f == 0x0:
        if ins.opcode == 0x00E0:
            return "CLS"
        if ins.opcode == 0x00EE:
            return "RET"
        return "SYS"
    if f == 0x1: return "JMP"
    if f == 0x2: return "CALL"
    if f == 0x3: return "SE_VX_KK"
    if f == 0x4: return "SNE_VX_KK"
    if f == 0x5: return "SE_VX_VY" if ins.n == 0 else None
    if f == 0x6: return "MVI_VX"
    if f == 0x7: return "ADI"
    if f == 0x8: return ALU_OPS.get(ins.n)
    if f == 0x9: return "SNE_VX_VY" if ins.n == 0 else None
    if f == 0xA: return "MVI_I"
    if f == 0xB: return "JMP_V0"
    if f == 0xC: return "RND"
    if f == 0xD: return "DRW"
    if f == 0xE: return KEY_OPS.get(ins.kk)
    return MISC_OPS.get(ins.kk)

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for interpreter-generated faults."""
    pass

class HaltError(Chip8Error):
    pass

class StackOverflowError(Chip8Error):
    pass

class StackUnderflowError(Chip8Error):
    pass

class IllegalOpcodeError(Chip8Error):
    def __init__(self, opcode: int, addr: int):
        self.opcode = opcode
        self.addr = addr
        super().__init__(f"Unknown opcode {opcode:#06x} @ {addr:#05x}")

# ---------------------------------------------------------------------------
#  Machine
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 machine state plus its fetch/decode/execute step."""

    def __init__(self, strict: bool = False, index_overflow_flag: bool = False,
                 rng: Optional[random.Random] = None):
        # Interpreter options
        self.strict = strict
        self.index_overflow_flag = index_overflow_flag
        self.rng = rng if rng is not None else random.Random()

        # Callbacks
        self.on_halt: Optional[Callable[[], None]] = None
        self.on_unknown: Optional[Callable[[int, int], None]] = None

        self._reset_state()

    # -- Reset --

    def _reset_state(self):
        self.regs: list[int] = [0] * NUM_REGS
        self.mem = bytearray(MEM_SIZE)
        self.mem[FONT_BASE:FONT_BASE + len(FONTSET)] = FONTSET
        self.index: int = 0
        self.pc: int = PROGRAM_START
        self.stack: list[int] = [0] * STACK_DEPTH
        self.sp: int = 0
        self.delay_timer: int = 0
        self.sound_timer: int = 0
        self.keys: list[bool] = [False] * NUM_KEYS
        self.video: list[bool] = [False] * (SCREEN_W * SCREEN_H)

        self.halted: bool = False
        self.cycle_count: int = 0

    def reset(self):
        """Return to the power-on state.  The program image is discarded."""
        self._reset_state()

    # -- Memory access --

    def mem_read8(self, addr: int) -> int:
        return self.mem[addr & ADDR_MASK]

    def mem_write8(self, addr: int, val: int):
        self.mem[addr & ADDR_MASK] = val & 0xFF

    def load_bytes(self, addr: int, data: bytes | bytearray):
        """Write raw bytes into memory at the given address."""
        for i, b in enumerate(data):
            self.mem[(addr + i) & ADDR_MASK] = b

    # -- Host contracts --

    def set_key(self, key: int, pressed: bool):
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Key index out of range: {key}")
        self.keys[key] = bool(pressed)

    def pixel(self, x: int, y: int) -> bool:
        return self.video[(y % SCREEN_H) * SCREEN_W + (x % SCREEN_W)]

    @property
    def framebuffer(self) -> tuple[bool, ...]:
        """Read-only row-major snapshot of the 64x32 screen."""
        return tuple(self.video)

    @property
    def sound_active(self) -> bool:
        return self.sound_timer > 0

    # -- Timers --

    def tick_timers(self):
        """One 60 Hz frame tick: decay both timers, saturating at zero."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    # -- Fetch --

    def fetch(self) -> Instruction:
        """Fetch the word at PC and advance PC past it."""
        hi = self.mem_read8(self.pc)
        lo = self.mem_read8(self.pc + 1)
        self.pc = u16(self.pc + 2)
        return decode(hi, lo)

    def _skip_if(self, cond: bool):
        if cond:
            self.pc = u16(self.pc + 2)

    # =====================================================================
    #  STEP: the core decode/execute loop
    # =====================================================================

    def step(self) -> int:
        """Execute one instruction.  Returns number of cycles consumed."""
        if self.halted:
            raise HaltError("CPU is halted")

        addr = self.pc
        ins = self.fetch()
        f = ins.family

        # Undefined patterns are reported here and never reach an executor
        if mnemonic(ins) is None:
            self._unknown(ins, addr)
        elif f == 0x0: self._exec_sys(ins, addr)
        elif f == 0x1: self.pc = ins.nnn
        elif f == 0x2: self._exec_call(ins)
        elif f == 0x3: self._skip_if(self.regs[ins.x] == ins.kk)
        elif f == 0x4: self._skip_if(self.regs[ins.x] != ins.kk)
        elif f == 0x5: self._skip_if(self.regs[ins.x] == self.regs[ins.y])
        elif f == 0x6: self.regs[ins.x] = ins.kk
        elif f == 0x7: self.regs[ins.x] = u8(self.regs[ins.x] + ins.kk)
        elif f == 0x8: self._exec_alu(ins)
        elif f == 0x9: self._skip_if(self.regs[ins.x] != self.regs[ins.y])
        elif f == 0xA: self.index = ins.nnn
        elif f == 0xB: self.pc = u16(ins.nnn + self.regs[0])
        elif f == 0xC: self.regs[ins.x] = self.rng.randrange(256) & ins.kk
        elif f == 0xD: self._exec_draw(ins)
        elif f == 0xE: self._exec_key(ins)
        elif f == 0xF: self._exec_misc(ins)

        self.cycle_count += 1
        return 1

    # =====================================================================
    #  Family executors
    # =====================================================================

    # -- 0x0: CLS / RET / SYS --
    def _exec_sys(self, ins: Instruction, addr: int):
        if ins.opcode == 0x00E0:    # CLS
            self.video = [False] * (SCREEN_W * SCREEN_H)
        elif ins.opcode == 0x00EE:  # RET
            if self.sp == 0:
                self._fault(StackUnderflowError(
                    f"RET with empty stack @ {addr:#05x}"))
            self.sp -= 1
            self.pc = self.stack[self.sp]
        # SYS nnn: machine-code call on the original hardware, ignored here

    # -- 0x2: CALL nnn --
    def _exec_call(self, ins: Instruction):
        if self.sp >= STACK_DEPTH:
            self._fault(StackOverflowError(
                f"CALL {ins.nnn:#05x} with {STACK_DEPTH} frames pending"))
        self.stack[self.sp] = self.pc
        self.sp += 1
        self.pc = ins.nnn

    # -- 0x8: register ALU --
    def _exec_alu(self, ins: Instruction):
        x, y = ins.x, ins.y
        vx, vy = self.regs[x], self.regs[y]
        op = ins.n

        if op == 0x0:    # MOV Vx, Vy
            self.regs[x] = vy
        elif op == 0x1:  # OR
            self.regs[x] = vx | vy
        elif op == 0x2:  # AND
            self.regs[x] = vx & vy
        elif op == 0x3:  # XOR
            self.regs[x] = vx ^ vy
        elif op == 0x4:  # ADD, VF = carry
            total = vx + vy
            self.regs[x] = u8(total)
            self.regs[FLAG_REG] = 1 if total > 0xFF else 0
        elif op == 0x5:  # SUB, VF = 1 if Vx > Vy
            self.regs[x] = u8(vx - vy)
            self.regs[FLAG_REG] = 1 if vx > vy else 0
        elif op == 0x6:  # SHR, VF = bit shifted out
            self.regs[x] = vx >> 1
            self.regs[FLAG_REG] = vx & 0x1
        elif op == 0x7:  # SUBN, VF = 1 if Vy > Vx
            self.regs[x] = u8(vy - vx)
            self.regs[FLAG_REG] = 1 if vy > vx else 0
        elif op == 0xE:  # SHL, VF = bit shifted out
            self.regs[x] = u8(vx << 1)
            self.regs[FLAG_REG] = (vx >> 7) & 0x1

    # -- 0xD: DRW Vx, Vy, n --
    def _exec_draw(self, ins: Instruction):
        ox = self.regs[ins.x]
        oy = self.regs[ins.y]
        video = self.video
        self.regs[FLAG_REG] = 0
        collision = 0
        for row in range(ins.n):
            sprite = self.mem_read8(self.index + row)
            if sprite == 0:
                continue
            base = ((oy + row) % SCREEN_H) * SCREEN_W
            for col in range(8):
                if sprite & (0x80 >> col) == 0:
                    continue
                cell = base + (ox + col) % SCREEN_W
                if video[cell]:
                    collision = 1
                video[cell] = not video[cell]
        self.regs[FLAG_REG] = collision

    # -- 0xE: key sense --
    def _exec_key(self, ins: Instruction):
        if ins.kk == 0x9E:    # SKP Vx
            self._skip_if(self.keys[self.regs[ins.x] & 0xF])
        else:                 # SKNP Vx
            self._skip_if(not self.keys[self.regs[ins.x] & 0xF])

    # -- 0xF: timers, index, BCD, block transfer --
    def _exec_misc(self, ins: Instruction):
        x = ins.x
        sel = ins.kk

        if sel == 0x07:    # MOV Vx, DT
            self.regs[x] = self.delay_timer
        elif sel == 0x0A:  # WAITK Vx
            for k in range(NUM_KEYS):
                if self.keys[k]:
                    self.regs[x] = k
                    break
            else:
                # Nothing pressed: fetch this instruction again next cycle
                self.pc = u16(self.pc - 2)
        elif sel == 0x15:  # MOV DT, Vx
            self.delay_timer = self.regs[x]
        elif sel == 0x18:  # MOV ST, Vx
            self.sound_timer = self.regs[x]
        elif sel == 0x1E:  # ADD I, Vx
            total = self.index + self.regs[x]
            self.index = u16(total)
            if self.index_overflow_flag:
                self.regs[FLAG_REG] = 1 if total > ADDR_MASK else 0
        elif sel == 0x29:  # SPRITE Vx
            self.index = FONT_BASE + (self.regs[x] & 0xF) * GLYPH_SIZE
        elif sel == 0x33:  # BCD Vx
            v = self.regs[x]
            self.mem_write8(self.index, v // 100)
            self.mem_write8(self.index + 1, (v // 10) % 10)
            self.mem_write8(self.index + 2, v % 10)
        elif sel == 0x55:  # STR V0-Vx
            for i in range(x + 1):
                self.mem_write8(self.index + i, self.regs[i])
        elif sel == 0x65:  # LDR V0-Vx
            for i in range(x + 1):
                self.regs[i] = self.mem_read8(self.index + i)

    # -- Fault reporting --

    def _halt(self):
        self.halted = True
        if self.on_halt:
            self.on_halt()

    def _fault(self, err: Chip8Error):
        """Halt the machine and raise *err*."""
        self._halt()
        raise err

    def _unknown(self, ins: Instruction, addr: int):
        """Report an undefined opcode.  Non-strict mode treats it as a NOP."""
        if self.strict:
            self._fault(IllegalOpcodeError(ins.opcode, addr))
        if self.on_unknown:
            self.on_unknown(ins.opcode, addr)
        else:
            print(f"[chip8] unknown opcode {ins.opcode:#06x} @ {addr:#05x}",
                  file=sys.stderr)

    # -- Run loop --

    def run(self, max_steps: int = 1_000_000) -> int:
        """Run until halted or max_steps.  Returns total cycles.

        Timers are not ticked here; frame pacing belongs to the host.
        """
        total = 0
        for _ in range(max_steps):
            if self.halted:
                break
            total += self.step()
        return total

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{i:X}={self.regs[i]:#04x}" for i in range(row, row + 4)))
        lines.append(f"  I={self.index:#06x}  PC={self.pc:#06x}  SP={self.sp}")
        lines.append(f"  DT={self.delay_timer}  ST={self.sound_timer}")
        if self.sp:
            frames = " ".join(f"{a:#05x}" for a in self.stack[:self.sp])
            lines.append(f"  STACK = {frames}")
        pressed = [f"{k:X}" for k in range(NUM_KEYS) if self.keys[k]]
        lines.append(f"  KEYS = {' '.join(pressed) or '-'}")
        return "\n".join(lines)
