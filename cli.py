#!/usr/bin/env python3
"""
CHIP-8 Monitor / CLI
=====================
Command-line front end for the CHIP-8 interpreter.

Provides:
  - ROM loading and a pygame window (--display)
  - Headless runs that print the final screen (--frames N)
  - Static disassembly listings (--disasm)
  - Assembly of .asm sources into ROM images (--assemble)
  - An interactive debug monitor: step / run / breakpoints, register and
    memory inspection, keypad control

Usage:
  python cli.py ROM [--display] [--scale N] [--ipf N] [--fps N] [--strict]
                    [--index-overflow] [--frames N] [--disasm] [--monitor]
  python cli.py --assemble SRC OUT [--listing]
"""

from __future__ import annotations
import argparse
import cmd
import shlex
import sys
from typing import Iterator

from chip8 import (
    Chip8Error, HaltError, Instruction, PROGRAM_START, decode, mnemonic,
)
from asm import assemble, AsmError
from system import Chip8System, RomLoadError, STEPS_PER_FRAME, FRAME_RATE

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def format_instruction(ins: Instruction) -> str:
    """Render one decoded instruction as assembler text."""
    x, y, kk, nnn = ins.x, ins.y, ins.kk, ins.nnn
    name = mnemonic(ins)

    if name is None:
        return f".dw ${ins.opcode:04X}"
    if name == "CLS":       return "CLS"
    if name == "RET":       return "RET"
    if name == "SYS":       return f"SYS ${nnn:03X}"
    if name == "JMP":       return f"JMP ${nnn:03X}"
    if name == "CALL":      return f"CALL ${nnn:03X}"
    if name == "SE_VX_KK":  return f"S.EQ V{x:X}, ${kk:02X}"
    if name == "SNE_VX_KK": return f"S.NEQ V{x:X}, ${kk:02X}"
    if name == "SE_VX_VY":  return f"S.EQ V{x:X}, V{y:X}"
    if name == "SNE_VX_VY": return f"S.NEQ V{x:X}, V{y:X}"
    if name == "MVI_VX":    return f"MVI V{x:X}, ${kk:02X}"
    if name == "ADI":       return f"ADI V{x:X}, ${kk:02X}"
    if name == "MOV_VX_VY": return f"MOV V{x:X}, V{y:X}"
    if name == "ADD_VX_VY": return f"ADD V{x:X}, V{y:X}"
    if name in ("OR", "AND", "XOR", "SUB", "SUBN"):
        return f"{name} V{x:X}, V{y:X}"
    if name in ("SHR", "SHL"):
        return f"{name} V{x:X}" + (f", V{y:X}" if y else "")
    if name == "MVI_I":     return f"MVI I, ${nnn:03X}"
    if name == "JMP_V0":    return f"JMP ${nnn:03X}(V0)"
    if name == "RND":       return f"RND V{x:X}, ${kk:02X}"
    if name == "DRW":       return f"DRW V{x:X}, V{y:X}, {ins.n}"
    if name in ("SKP", "SKNP", "WAITK", "SPRITE", "BCD"):
        return f"{name} V{x:X}"
    if name == "MOV_VX_DT": return f"MOV V{x:X}, DT"
    if name == "MOV_DT_VX": return f"MOV DT, V{x:X}"
    if name == "MOV_ST_VX": return f"MOV ST, V{x:X}"
    if name == "ADD_I_VX":  return f"ADD I, V{x:X}"
    if name in ("STR", "LDR"):
        return f"{name} V0-V{x:X}"
    raise AssertionError(f"no format for {name}")


def disasm_one(buf: bytes | bytearray, offset: int) -> tuple[str, int]:
    """Disassemble the instruction at *offset*.  Returns (text, next_offset).

    A lone trailing byte is rendered as data.
    """
    if offset + 1 >= len(buf):
        return f".db ${buf[offset]:02X}", offset + 1
    ins = decode(buf[offset], buf[offset + 1])
    return format_instruction(ins), offset + 2


def disassemble(buf: bytes | bytearray,
                base: int = PROGRAM_START) -> Iterator[tuple[int, str, str]]:
    """Yield (address, raw_hex, text) for every instruction in *buf*."""
    offset = 0
    while offset < len(buf):
        text, nxt = disasm_one(buf, offset)
        raw = "".join(f"{b:02X}" for b in buf[offset:nxt])
        yield base + offset, raw, text
        offset = nxt

# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class Chip8CLI(cmd.Cmd):
    intro = (
        "\n"
        "CHIP-8 Monitor.  Type 'help' for commands, 'quit' to exit.\n"
    )
    prompt = "C8> "

    def __init__(self, system: Chip8System):
        super().__init__()
        self.sys = system
        self.breakpoints: set[int] = set()

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address: number, 'pc', 'i', or a register name."""
        s = s.strip().lower()
        cpu = self.sys.cpu
        if s == "pc":
            return cpu.pc
        if s == "i":
            return cpu.index
        if len(s) == 2 and s[0] == "v":
            return cpu.regs[int(s[1], 16)]
        if s.startswith("$"):
            return int(s[1:], 16)
        return int(s, 0)

    def _parse_int(self, s: str) -> int:
        s = s.strip()
        if s.startswith("$"):
            return int(s[1:], 16)
        return int(s, 0)

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except ValueError as e:
            print(f"Error: {e}")
            return False

    def _trace(self, addr: int):
        cpu = self.sys.cpu
        raw = bytes([cpu.mem_read8(addr), cpu.mem_read8(addr + 1)])
        text, _ = disasm_one(raw, 0)
        print(f"  {addr:#06x}: {raw.hex().upper()}  {text}")

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load a ROM image at 0x200: load <file>"""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: load <file>")
            return
        try:
            n = self.sys.load_rom(parts[0])
        except RomLoadError as e:
            print(f"Error: {e}")
            return
        print(f"Loaded {n} bytes from '{parts[0]}' at {PROGRAM_START:#x}")

    def do_asm(self, arg):
        """Assemble source and load it: asm <file.asm> [address]
        Or inline:  asm -e "mvi v1, 42; add v1, v1" [address]"""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: asm <file.asm> [addr]  OR  asm -e \"code\" [addr]")
            return

        if parts[0] == "-e":
            source = parts[1].replace(";", "\n") if len(parts) > 1 else ""
            addr = self._parse_addr(parts[2]) if len(parts) > 2 else PROGRAM_START
        else:
            path = parts[0]
            addr = self._parse_addr(parts[1]) if len(parts) > 1 else PROGRAM_START
            try:
                with open(path, "r") as f:
                    source = f.read()
            except OSError as e:
                print(f"Error reading '{path}': {e}")
                return

        try:
            code = assemble(source, addr)
        except AsmError as e:
            print(f"Assembly error: {e}")
            return
        self.sys.cpu.load_bytes(addr, code)
        print(f"Assembled {len(code)} bytes at {addr:#x}")

    def do_reset(self, arg):
        """Power-cycle the machine (the program must be reloaded)."""
        self.sys.reset()
        print("Machine reset.")

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            addr = self.sys.cpu.pc
            try:
                self.sys.step()
            except HaltError:
                print("CPU is halted.")
                break
            except Chip8Error as e:
                print(f"Fault: {e}")
                break
            self._trace(addr)

    def do_run(self, arg):
        """Run whole frames until halt/breakpoint: run [frames]"""
        frames = self._parse_int(arg) if arg.strip() else 600
        cpu = self.sys.cpu
        for _ in range(frames):
            if cpu.halted:
                print("CPU is halted.")
                return
            try:
                if self.breakpoints:
                    for _ in range(self.sys.steps_per_frame):
                        if cpu.pc in self.breakpoints:
                            print(f"Breakpoint hit at {cpu.pc:#06x}")
                            return
                        cpu.step()
                    cpu.tick_timers()
                    self.sys.frame_count += 1
                else:
                    self.sys.run_frame()
            except Chip8Error as e:
                print(f"Fault: {e}")
                return
        print(f"Ran {frames} frames.  PC={cpu.pc:#06x}")

    def do_tick(self, arg):
        """Decay the timers N frame ticks: tick [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            self.sys.cpu.tick_timers()
        print(f"  DT={self.sys.cpu.delay_timer}  ST={self.sys.cpu.sound_timer}")

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>"""
        if not arg.strip():
            if self.breakpoints:
                print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    print(f"  {a:#06x}")
            else:
                print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.add(addr)
        print(f"Breakpoint set at {addr:#06x}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.discard(addr)
        print(f"Breakpoint at {addr:#06x} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers, timers, stack and keypad."""
        print(self.sys.cpu.dump_regs())
        print(f"  Cycles: {self.sys.cpu.cycle_count}")

    def do_status(self, arg):
        """Show full machine status."""
        print(self.sys.dump_state())

    def do_setreg(self, arg):
        """Set register: setreg <V0-VF|i|pc|dt|st> <value>"""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setreg <reg> <value>")
            return
        reg_s = parts[0].lower()
        val = self._parse_int(parts[1])
        cpu = self.sys.cpu
        if reg_s == "pc":
            cpu.pc = val & 0xFFFF
        elif reg_s == "i":
            cpu.index = val & 0xFFFF
        elif reg_s == "dt":
            cpu.delay_timer = val & 0xFF
        elif reg_s == "st":
            cpu.sound_timer = val & 0xFF
        elif len(reg_s) == 2 and reg_s[0] == "v" and reg_s[1] in "0123456789abcdef":
            cpu.regs[int(reg_s[1], 16)] = val & 0xFF
        else:
            print("Unknown register.")
            return
        print(f"  {reg_s.upper()} = {val:#x}")

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: dump <address> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64

        for row_start in range(addr, addr + count, 16):
            hex_bytes = []
            for i in range(16):
                if row_start + i < addr + count:
                    hex_bytes.append(f"{self.sys.cpu.mem_read8(row_start + i):02x}")
                else:
                    hex_bytes.append("  ")
            hex_str = ' '.join(hex_bytes[:8]) + '  ' + ' '.join(hex_bytes[8:])
            print(f"  {row_start & 0xFFF:#06x}: {hex_str}")

    def do_setmem(self, arg):
        """Set memory bytes: setmem <address> <byte> [byte] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setmem <addr> <byte...>")
            return
        addr = self._parse_addr(parts[0])
        for i, tok in enumerate(parts[1:]):
            self.sys.cpu.mem_write8(addr + i, self._parse_int(tok))
        print(f"  Wrote {len(parts) - 1} bytes at {addr:#x}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current PC, 16 instructions."""
        parts = shlex.split(arg)
        cpu = self.sys.cpu
        addr = self._parse_addr(parts[0]) if parts else cpu.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16

        for _ in range(count):
            raw = bytes([cpu.mem_read8(addr), cpu.mem_read8(addr + 1)])
            text, _ = disasm_one(raw, 0)
            marker = ">>>" if addr == cpu.pc else "   "
            print(f"  {marker} {addr:#06x}: {raw.hex().upper()}  {text}")
            addr += 2

    def do_screen(self, arg):
        """Print the framebuffer as text."""
        print(self.sys.screen_text())

    # -- Keypad --

    def do_key(self, arg):
        """Press or release a keypad key: key <0-F> [down|up]
        Defaults to down."""
        parts = shlex.split(arg)
        if not parts:
            pressed = [f"{k:X}" for k in range(16) if self.sys.cpu.keys[k]]
            print(f"  Pressed: {' '.join(pressed) or '-'}")
            return
        try:
            k = int(parts[0], 16)
            down = len(parts) < 2 or parts[1].lower() in ("down", "1", "press")
            self.sys.cpu.set_key(k, down)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"  Key {k:X} {'down' if down else 'up'}")

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        print()
        return self.do_quit(arg)

    def default(self, line):
        print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8 --display\n"
               "  python cli.py pong.ch8 --display --scale 12 --ipf 15\n"
               "  python cli.py pong.ch8 --frames 120\n"
               "  python cli.py pong.ch8 --disasm\n"
               "  python cli.py pong.ch8 --monitor\n"
               "  python cli.py --assemble demo.asm demo.ch8 --listing\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="Program image to load at 0x200")
    parser.add_argument("--display", action="store_true",
                        help="Open a pygame window and run the program")
    parser.add_argument("--scale", type=int, default=10, metavar="N",
                        help="Pixel scale factor for the window (default: 10)")
    parser.add_argument("--ipf", type=int, default=STEPS_PER_FRAME, metavar="N",
                        help=f"Instructions per frame (default: {STEPS_PER_FRAME})")
    parser.add_argument("--fps", type=int, default=FRAME_RATE, metavar="HZ",
                        help=f"Frame and timer rate (default: {FRAME_RATE})")
    parser.add_argument("--strict", action="store_true",
                        help="Halt on unknown opcodes instead of skipping them")
    parser.add_argument("--index-overflow", action="store_true",
                        help="ADD I, Vx sets VF when I passes 0xFFF")
    parser.add_argument("--no-sound", action="store_true",
                        help="Disable the sound-timer tone")
    parser.add_argument("--frames", type=int, default=None, metavar="N",
                        help="Run N frames headless, then print the screen")
    parser.add_argument("--disasm", action="store_true",
                        help="Print a disassembly listing of ROM and exit")
    parser.add_argument("--monitor", action="store_true",
                        help="Enter the interactive debug monitor")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC to the ROM image OUT and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        try:
            with open(src_path, "r") as f:
                source = f.read()
            code = assemble(source, PROGRAM_START, listing=args.listing)
        except (OSError, AsmError) as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(code)
        print(f"Assembled {src_path} -> {out_path} ({len(code)} bytes)")
        return 0

    if args.rom is None and (args.disasm or not args.monitor):
        parser.error("a ROM image is required (or use --monitor / --assemble)")

    # ---- Disassemble-only mode ----------------------------------------
    if args.disasm:
        try:
            with open(args.rom, "rb") as f:
                data = f.read()
        except OSError as e:
            print(f"ERROR: cannot read '{args.rom}': {e.strerror}", file=sys.stderr)
            return 1
        for addr, raw, text in disassemble(data):
            print(f"  {addr:04X}  {raw:<4s}  {text}")
        return 0

    try:
        sys_emu = Chip8System(steps_per_frame=args.ipf, frame_rate=args.fps,
                              strict=args.strict,
                              index_overflow_flag=args.index_overflow)
    except ValueError as e:
        parser.error(str(e))

    if args.rom is not None:
        try:
            n = sys_emu.load_rom(args.rom)
        except RomLoadError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print(f"Loaded {n} bytes from '{args.rom}' at {PROGRAM_START:#x}")

    # ---- Headless run ---------------------------------------------------
    if args.frames is not None:
        from display import HeadlessDisplay
        headless = HeadlessDisplay(sys_emu)
        try:
            shown = headless.run(args.frames)
        except Chip8Error as e:
            print(f"ERROR: {e}", file=sys.stderr)
            print(headless.text())
            return 1
        print(f"[display] headless run: {shown} frames")
        print(headless.text())
        return 0

    # ---- Window ---------------------------------------------------------
    if args.display:
        try:
            from display import Chip8Display
            disp = Chip8Display(sys_emu, scale=args.scale, sound=not args.no_sound)
            disp.run()
        except ImportError as e:
            print(f"[display] pygame not available: {e}", file=sys.stderr)
            print("[display] Install with: pip install pygame", file=sys.stderr)
            return 1
        except Chip8Error as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        return 0

    cli = Chip8CLI(sys_emu)
    try:
        cli.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted. Goodbye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
