"""
CHIP-8 Assembler
=================
Translates assembly text into raw CHIP-8 bytecode.  The accepted syntax is
the one the disassembler in cli.py prints, so a listing re-assembles to the
same bytes.

Supports:
  - Labels (a line of their own, terminated with ':')
  - All 35 base instructions
  - Immediate literals (decimal, hex with 0x or $ prefix, binary with 0b)
  - Comments (';' to end of line)
  - .org, .db, .dw directives

Usage:
  from asm import assemble
  bytecode = assemble(source_text)          # base address 0x200
"""

from __future__ import annotations

from chip8 import PROGRAM_START

# ---------------------------------------------------------------------------
#  Opcode templates
# ---------------------------------------------------------------------------

# Register-register ALU ops (family 0x8, low nibble selects)
ALU_SUB = {
    "or": 0x1, "and": 0x2, "xor": 0x3, "sub": 0x5, "subn": 0x7,
}

# Single-register ops (Vx in the second nibble)
ONE_REG = {
    "skp":    0xE09E, "sknp":   0xE0A1,
    "waitk":  0xF00A, "sprite": 0xF029, "bcd": 0xF033,
}

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def _is_reg(tok: str) -> bool:
    tok = tok.strip().lower()
    return len(tok) == 2 and tok[0] == "v" and tok[1] in "0123456789abcdef"


def _parse_reg(lineno: int, tok: str) -> int:
    """Parse 'V0'-'VF' (either case).  Returns register index."""
    if not _is_reg(tok):
        raise AsmError(lineno, f"Invalid register: {tok.strip()!r}")
    return int(tok.strip()[1], 16)


def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, 0x/$ hex, 0b binary)."""
    tok = tok.strip()
    if tok.startswith("$"):
        return int(tok[1:], 16)
    return int(tok, 0)


def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]


def _split_mnemonic(text: str) -> tuple[str, str]:
    """Split 'MNEM operands' into (mnem, operands_str)."""
    parts = text.split(None, 1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


def _strip_comment(raw: str) -> str:
    return raw.split(";", 1)[0].strip()

# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

def assemble(source: str, base_addr: int = PROGRAM_START,
             listing: bool = False) -> bytearray:
    """
    Two-pass assembler.
    Pass 1: collect labels, compute sizes.
    Pass 2: emit bytecode with resolved addresses.
    If listing=True, print an address/hex/source listing to stdout.
    """
    cleaned: list[tuple[int, str]] = []
    for i, raw in enumerate(source.split("\n"), 1):
        stripped = _strip_comment(raw)
        if stripped:
            cleaned.append((i, stripped))

    # ---- Pass 1: label collection and size computation ----
    labels: dict[str, int] = {}
    sizes: list[tuple[int, str, int]] = []  # (line_no, text, size_bytes)
    pc = base_addr

    for lineno, text in cleaned:
        if text.endswith(":"):
            lbl = text[:-1].strip()
            if lbl in labels:
                raise AsmError(lineno, f"Duplicate label: {lbl}")
            labels[lbl] = pc
            continue

        lower = text.lower()
        if lower.startswith(".org"):
            try:
                target = _parse_imm(text[4:])
            except ValueError:
                raise AsmError(lineno, f"Bad .org address: {text[4:].strip()!r}") from None
            if target < pc:
                raise AsmError(lineno, f".org {target:#x} is behind {pc:#x}")
            sizes.append((lineno, text, target - pc))
            pc = target
            continue
        if lower.startswith(".db"):
            n = len(_split_ops(text[3:]))
            sizes.append((lineno, text, n))
            pc += n
            continue
        if lower.startswith(".dw"):
            n = len(_split_ops(text[3:])) * 2
            sizes.append((lineno, text, n))
            pc += n
            continue

        sizes.append((lineno, text, 2))
        pc += 2

    # ---- Pass 2: emit bytes ----
    code = bytearray()
    pc = base_addr
    listing_lines = []  # (addr, hex_bytes, source_text)

    for lineno, text, sz in sizes:
        start_pc = pc
        lower = text.lower()

        if lower.startswith(".org"):
            code.extend(bytes(sz))
            pc += sz
            if listing:
                listing_lines.append((start_pc, "", text))
            continue

        if lower.startswith(".db") or lower.startswith(".dw"):
            emitted = bytearray()
            wide = lower.startswith(".dw")
            for tok in _split_ops(text[3:]):
                v = _resolve(lineno, tok, labels)
                if wide:
                    emitted.append((v >> 8) & 0xFF)
                emitted.append(v & 0xFF)
        else:
            word = _emit_instruction(lineno, text, labels)
            emitted = bytearray([(word >> 8) & 0xFF, word & 0xFF])

        if listing:
            hexstr = " ".join(f"{b:02X}" for b in emitted[:8])
            if len(emitted) > 8:
                hexstr += " ..."
            listing_lines.append((start_pc, hexstr, text))
        code.extend(emitted)
        pc += sz

    if listing:
        addr_labels: dict[int, list[str]] = {}
        for lbl, addr in labels.items():
            addr_labels.setdefault(addr, []).append(lbl)
        for addr, hexstr, src in listing_lines:
            for lbl in addr_labels.pop(addr, []):
                print(f"                  {lbl}:")
            print(f"  {addr:04X}  {hexstr:<24s}  {src}")
        for addr in sorted(addr_labels):
            for lbl in addr_labels[addr]:
                print(f"                  {lbl}:")

    return code


# ---------------------------------------------------------------------------
#  Instruction emission (pass 2)
# ---------------------------------------------------------------------------

def _resolve(lineno: int, tok: str, labels: dict[str, int]) -> int:
    """Resolve a token that is either an immediate or a label reference."""
    tok = tok.strip()
    if tok in labels:
        return labels[tok]
    try:
        return _parse_imm(tok)
    except ValueError:
        raise AsmError(lineno, f"Undefined label or bad number: {tok!r}") from None


def _addr(lineno: int, tok: str, labels: dict[str, int]) -> int:
    v = _resolve(lineno, tok, labels)
    if not 0 <= v <= 0xFFF:
        raise AsmError(lineno, f"Address out of range: {v:#x}")
    return v


def _byte(lineno: int, tok: str, labels: dict[str, int]) -> int:
    v = _resolve(lineno, tok, labels)
    if not -0x80 <= v <= 0xFF:
        raise AsmError(lineno, f"Byte immediate out of range: {v}")
    return v & 0xFF


def _reg_range(lineno: int, tok: str) -> int:
    """'V0-Vx' or plain 'Vx': returns x."""
    tok = tok.strip()
    if "-" in tok:
        lo, hi = tok.split("-", 1)
        if _parse_reg(lineno, lo) != 0:
            raise AsmError(lineno, f"Register range must start at V0: {tok!r}")
        return _parse_reg(lineno, hi)
    return _parse_reg(lineno, tok)


def _expect(lineno: int, mnem: str, ops: list[str], count: int):
    if len(ops) != count:
        raise AsmError(lineno, f"{mnem.upper()} takes {count} operand(s), "
                               f"got {len(ops)}")


def _emit_instruction(lineno: int, text: str, labels: dict[str, int]) -> int:
    """Return the 16-bit word for one instruction."""
    mnem, rest = _split_mnemonic(text)
    m = mnem.lower()
    ops = _split_ops(rest)
    low = [o.lower() for o in ops]

    # ---- Family 0x0 ----
    if m == "cls":
        _expect(lineno, m, ops, 0)
        return 0x00E0
    if m == "ret":
        _expect(lineno, m, ops, 0)
        return 0x00EE
    if m == "sys":
        _expect(lineno, m, ops, 1)
        return _addr(lineno, ops[0], labels)

    # ---- Jumps / calls ----
    if m == "jmp":
        _expect(lineno, m, ops, 1)
        if low[0].endswith("(v0)"):
            return 0xB000 | _addr(lineno, ops[0][:-4], labels)
        return 0x1000 | _addr(lineno, ops[0], labels)
    if m == "call":
        _expect(lineno, m, ops, 1)
        return 0x2000 | _addr(lineno, ops[0], labels)

    # ---- Conditional skips ----
    if m in ("s.eq", "s.neq", "se", "sne"):
        _expect(lineno, m, ops, 2)
        x = _parse_reg(lineno, ops[0])
        eq = m in ("s.eq", "se")
        if _is_reg(ops[1]):
            y = _parse_reg(lineno, ops[1])
            return (0x5000 if eq else 0x9000) | (x << 8) | (y << 4)
        kk = _byte(lineno, ops[1], labels)
        return (0x3000 if eq else 0x4000) | (x << 8) | kk
    if m in ONE_REG:
        _expect(lineno, m, ops, 1)
        return ONE_REG[m] | (_parse_reg(lineno, ops[0]) << 8)

    # ---- Loads ----
    if m == "mvi":
        _expect(lineno, m, ops, 2)
        if low[0] == "i":
            return 0xA000 | _addr(lineno, ops[1], labels)
        x = _parse_reg(lineno, ops[0])
        return 0x6000 | (x << 8) | _byte(lineno, ops[1], labels)
    if m == "mov":
        _expect(lineno, m, ops, 2)
        if low[0] == "dt":
            return 0xF015 | (_parse_reg(lineno, ops[1]) << 8)
        if low[0] == "st":
            return 0xF018 | (_parse_reg(lineno, ops[1]) << 8)
        x = _parse_reg(lineno, ops[0])
        if low[1] == "dt":
            return 0xF007 | (x << 8)
        return 0x8000 | (x << 8) | (_parse_reg(lineno, ops[1]) << 4)

    # ---- Arithmetic ----
    if m == "adi":
        _expect(lineno, m, ops, 2)
        x = _parse_reg(lineno, ops[0])
        return 0x7000 | (x << 8) | _byte(lineno, ops[1], labels)
    if m == "add":
        _expect(lineno, m, ops, 2)
        if low[0] == "i":
            return 0xF01E | (_parse_reg(lineno, ops[1]) << 8)
        x = _parse_reg(lineno, ops[0])
        if _is_reg(ops[1]):
            return 0x8004 | (x << 8) | (_parse_reg(lineno, ops[1]) << 4)
        return 0x7000 | (x << 8) | _byte(lineno, ops[1], labels)
    if m in ALU_SUB:
        _expect(lineno, m, ops, 2)
        x = _parse_reg(lineno, ops[0])
        y = _parse_reg(lineno, ops[1])
        return 0x8000 | (x << 8) | (y << 4) | ALU_SUB[m]
    if m in ("shr", "shl"):
        if len(ops) not in (1, 2):
            raise AsmError(lineno, f"{m.upper()} takes 1 or 2 operands")
        x = _parse_reg(lineno, ops[0])
        y = _parse_reg(lineno, ops[1]) if len(ops) == 2 else 0
        return 0x8000 | (x << 8) | (y << 4) | (0x6 if m == "shr" else 0xE)
    if m == "rnd":
        _expect(lineno, m, ops, 2)
        x = _parse_reg(lineno, ops[0])
        return 0xC000 | (x << 8) | _byte(lineno, ops[1], labels)

    # ---- Graphics ----
    if m == "drw":
        _expect(lineno, m, ops, 3)
        x = _parse_reg(lineno, ops[0])
        y = _parse_reg(lineno, ops[1])
        n = _resolve(lineno, ops[2], labels)
        if not 0 <= n <= 0xF:
            raise AsmError(lineno, f"Sprite height out of range: {n}")
        return 0xD000 | (x << 8) | (y << 4) | n

    # ---- Block transfer ----
    if m in ("str", "ldr"):
        _expect(lineno, m, ops, 1)
        x = _reg_range(lineno, ops[0])
        return (0xF055 if m == "str" else 0xF065) | (x << 8)

    raise AsmError(lineno, f"Unknown mnemonic: {mnem!r}")
