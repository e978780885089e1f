"""
CHIP-8 Display
===============
pygame front end for the interpreter: renders the 64x32 framebuffer at an
integer scale, maps the host keyboard onto the 16-key hex pad, and sounds a
square-wave tone while the sound timer is nonzero.

Each pass of the loop is one display frame: pump events into the keypad,
run ``system.run_frame()`` (N instruction steps plus one timer tick), blit,
then ``clock.tick(frame_rate)``.

Keyboard layout (host -> keypad):

    1 2 3 4        1 2 3 C
    Q W E R   ->   4 5 6 D
    A S D F        7 8 9 E
    Z X C V        A 0 B F

Usage (programmatic):
    from display import Chip8Display
    disp = Chip8Display(system, scale=10)
    disp.run()          # returns when the window is closed or Esc is pressed

Usage (CLI):
    python cli.py game.ch8 --display --scale 12
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import numpy as np

from chip8 import SCREEN_W, SCREEN_H

if TYPE_CHECKING:
    from system import Chip8System

# Host key name (as reported by pygame.key.name) -> keypad index
KEYMAP = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}

FG_COLOR = (255, 255, 255)
BG_COLOR = (0, 0, 0)

TONE_HZ     = 440
SAMPLE_RATE = 22050
TONE_VOLUME = 0.25


def framebuffer_rgb(video, on=FG_COLOR, off=BG_COLOR) -> np.ndarray:
    """Convert the row-major bool framebuffer into a (W, H, 3) uint8 array.

    The column-major shape is what pygame.surfarray expects.
    """
    lit = np.asarray(video, dtype=bool).reshape(SCREEN_H, SCREEN_W)
    rgb = np.where(lit[:, :, None],
                   np.array(on, dtype=np.uint8),
                   np.array(off, dtype=np.uint8))
    return np.ascontiguousarray(rgb.transpose(1, 0, 2))


def square_wave(freq: int = TONE_HZ, rate: int = SAMPLE_RATE,
                volume: float = TONE_VOLUME) -> np.ndarray:
    """One second of a 16-bit mono square wave, loopable without clicks."""
    period = max(2, rate // freq)
    samples = rate - rate % period
    t = np.arange(samples)
    amp = int(32767 * volume)
    return np.where((t % period) < period // 2, amp, -amp).astype(np.int16)


class Chip8Display:
    """pygame window driving a Chip8System one frame per clock tick."""

    def __init__(self, system: "Chip8System", scale: int = 10,
                 title: str = "CHIP-8", keymap: Optional[dict] = None,
                 sound: bool = True):
        self.sys = system
        self.scale = max(1, scale)
        self.title = title
        self.keymap = dict(KEYMAP if keymap is None else keymap)
        self.sound = sound
        self._running = False
        self._tone = None
        self._tone_playing = False

    # -- public API -------------------------------------------------------

    def run(self, max_frames: Optional[int] = None) -> int:
        """Run the window loop until closed, Esc, halt, or max_frames.

        Returns the number of frames shown.
        """
        import pygame

        pygame.init()
        pygame.display.set_caption(self.title)
        screen = pygame.display.set_mode(
            (SCREEN_W * self.scale, SCREEN_H * self.scale))
        fb_surface = pygame.Surface((SCREEN_W, SCREEN_H))
        clock = pygame.time.Clock()
        if self.sound:
            self._tone = self._init_tone(pygame)

        frames = 0
        self._running = True
        try:
            while self._running:
                for event in pygame.event.get():
                    self.handle_event(pygame, event)
                if not self._running:
                    break

                self.sys.run_frame()
                self._update_tone()

                pygame.surfarray.blit_array(
                    fb_surface, framebuffer_rgb(self.sys.cpu.video))
                pygame.transform.scale(fb_surface, screen.get_size(), screen)
                pygame.display.flip()

                frames += 1
                if self.sys.halted:
                    print("[display] machine halted", flush=True)
                    break
                if max_frames is not None and frames >= max_frames:
                    break
                clock.tick(self.sys.frame_rate)
        finally:
            self._running = False
            if self._tone is not None:
                self._tone.stop()
            pygame.quit()
        return frames

    def stop(self):
        """Ask the loop to exit after the current frame."""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- input ------------------------------------------------------------

    def handle_event(self, pygame, event):
        """Apply one pygame event to the keypad (or close the window)."""
        if event.type == pygame.QUIT:
            self._running = False
        elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
            if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                self._running = False
                return
            k = self.keymap.get(pygame.key.name(event.key))
            if k is not None:
                self.sys.cpu.set_key(k, event.type == pygame.KEYDOWN)

    # -- sound ------------------------------------------------------------

    def _init_tone(self, pygame):
        try:
            pygame.mixer.init(frequency=SAMPLE_RATE, size=-16, channels=1)
            return pygame.mixer.Sound(buffer=square_wave().tobytes())
        except pygame.error as e:
            print(f"[display] sound disabled: {e}")
            return None

    def _update_tone(self):
        if self._tone is None:
            return
        if self.sys.cpu.sound_active and not self._tone_playing:
            self._tone.play(loops=-1)
            self._tone_playing = True
        elif not self.sys.cpu.sound_active and self._tone_playing:
            self._tone.stop()
            self._tone_playing = False


class HeadlessDisplay:
    """Display stand-in for tests and --frames runs: records snapshots."""

    def __init__(self, system: "Chip8System"):
        self.sys = system
        self.snapshots: list[bytes] = []

    def snapshot(self) -> bytes:
        """Capture the framebuffer packed 8 pixels per byte, MSB first."""
        data = np.packbits(np.asarray(self.sys.cpu.video, dtype=bool)).tobytes()
        self.snapshots.append(data)
        return data

    def text(self, on: str = "#", off: str = ".") -> str:
        return self.sys.screen_text(on, off)

    def run(self, frames: int) -> int:
        """Run *frames* frames, snapshotting after each.  Returns frames run."""
        done = 0
        for _ in range(frames):
            if self.sys.halted:
                break
            self.sys.run_frame()
            self.snapshot()
            done += 1
        return done
