"""
CHIP-8 System
==============
Wires together:
  - the Chip8 interpreter (chip8.py)
  - program-image loading at 0x200
  - the frame loop: N instruction steps, then one 60 Hz timer tick

Wall-clock pacing is left to the caller (display.py runs one frame per
pygame clock tick; the CLI's headless mode runs frames back to back).
"""

from __future__ import annotations
import os
import random
from typing import Optional

from chip8 import (
    Chip8, Chip8Error, MAX_ROM_SIZE, PROGRAM_START, SCREEN_W,
    SCREEN_H,
)

# ---------------------------------------------------------------------------
#  Timing defaults
# ---------------------------------------------------------------------------

STEPS_PER_FRAME = 10      # ~600 instructions per second at 60 Hz
FRAME_RATE      = 60      # timer tick / display refresh rate (Hz)


class RomLoadError(Chip8Error):
    """The program image could not be read or does not fit in memory."""
    pass


class Chip8System:
    """A CHIP-8 machine plus its program loader and frame loop."""

    def __init__(self, steps_per_frame: int = STEPS_PER_FRAME,
                 frame_rate: int = FRAME_RATE, strict: bool = False,
                 index_overflow_flag: bool = False,
                 rng: Optional[random.Random] = None):
        if steps_per_frame < 1:
            raise ValueError("steps_per_frame must be at least 1")
        if frame_rate < 1:
            raise ValueError("frame_rate must be at least 1")
        self.cpu = Chip8(strict=strict,
                         index_overflow_flag=index_overflow_flag, rng=rng)
        self.steps_per_frame = steps_per_frame
        self.frame_rate = frame_rate
        self.frame_count: int = 0
        self.rom_path: Optional[str] = None
        self.rom_size: int = 0

    # -----------------------------------------------------------------
    #  Loading
    # -----------------------------------------------------------------

    def load_rom(self, image: str | os.PathLike | bytes | bytearray) -> int:
        """Copy a program image to 0x200.  Returns the number of bytes loaded.

        *image* is either a filesystem path or the raw bytes themselves.
        """
        if isinstance(image, (bytes, bytearray)):
            data = bytes(image)
            path = None
        else:
            path = os.fspath(image)
            try:
                with open(path, "rb") as f:
                    data = f.read()
            except OSError as e:
                raise RomLoadError(f"cannot read '{path}': {e.strerror}") from e

        if len(data) > MAX_ROM_SIZE:
            raise RomLoadError(
                f"program image is {len(data)} bytes; at most {MAX_ROM_SIZE} "
                f"fit above {PROGRAM_START:#x}")

        self.cpu.load_bytes(PROGRAM_START, data)
        self.rom_path = path
        self.rom_size = len(data)
        return len(data)

    def reset(self):
        """Power-cycle the machine.  The program must be loaded again."""
        self.cpu.reset()
        self.frame_count = 0
        self.rom_path = None
        self.rom_size = 0

    # -----------------------------------------------------------------
    #  Input
    # -----------------------------------------------------------------

    def press(self, key: int):
        self.cpu.set_key(key, True)

    def release(self, key: int):
        self.cpu.set_key(key, False)

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def step(self) -> int:
        """Execute one instruction."""
        return self.cpu.step()

    def run_frame(self) -> int:
        """One display frame: up to steps_per_frame steps, then a timer tick.

        Returns the number of instructions executed.  Stops stepping early if
        the machine halts; the timers still tick for the frame.
        """
        steps = 0
        for _ in range(self.steps_per_frame):
            if self.cpu.halted:
                break
            self.cpu.step()
            steps += 1
        self.cpu.tick_timers()
        self.frame_count += 1
        return steps

    def run(self, frames: int) -> int:
        """Run *frames* frames back to back.  Returns instructions executed."""
        total = 0
        for _ in range(frames):
            if self.cpu.halted:
                break
            total += self.run_frame()
        return total

    @property
    def halted(self) -> bool:
        return self.cpu.halted

    # -----------------------------------------------------------------
    #  Convenience
    # -----------------------------------------------------------------

    def screen_text(self, on: str = "#", off: str = ".") -> str:
        """The framebuffer as text, one line per row."""
        video = self.cpu.video
        return "\n".join(
            "".join(on if video[y * SCREEN_W + x] else off
                    for x in range(SCREEN_W))
            for y in range(SCREEN_H))

    def dump_state(self) -> str:
        """Full machine state dump."""
        cpu = self.cpu
        lines = ["=== Registers ===", cpu.dump_regs()]
        lines.append(f"  Cycles: {cpu.cycle_count}  Frames: {self.frame_count}")
        lines.append(f"  Halted: {cpu.halted}")
        lines.append("")
        lines.append("=== Program ===")
        lines.append(f"  Image: {self.rom_path or 'N/A'}  size={self.rom_size} "
                     f"bytes @ {PROGRAM_START:#x}")
        lines.append(f"  Timing: {self.steps_per_frame} steps/frame "
                     f"@ {self.frame_rate} Hz")
        return "\n".join(lines)

