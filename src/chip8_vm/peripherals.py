"""Peripheral interfaces the emulator drives.

A front end supplies any object implementing these protocols; the
interpreter itself never touches them.
"""

from typing import Iterable, Protocol, Sequence


class Tone(Protocol):
    def start_tone(self) -> None: ...

    def stop_tone(self) -> None: ...

    def is_tone_on(self) -> bool: ...


class Screen(Protocol):
    def draw_buffer(self, pixels: Sequence[int], width: int, height: int) -> None:
        """Present a row-major framebuffer of 0/1 cells."""
        ...


class HexKeyboard(Protocol):
    def get_pressed_keys(self) -> Iterable[int]:
        """Hex key indices (0x0-0xF) currently held down."""
        ...


class DummyPeripherals:
    """Headless stand-in for all three peripherals."""

    def __init__(self):
        self.tone_on = False
        self.frames_drawn = 0
        self.pressed = set()

    def start_tone(self) -> None:
        self.tone_on = True

    def stop_tone(self) -> None:
        self.tone_on = False

    def is_tone_on(self) -> bool:
        return self.tone_on

    def draw_buffer(self, pixels: Sequence[int], width: int, height: int) -> None:
        self.frames_drawn += 1

    def get_pressed_keys(self) -> Iterable[int]:
        return sorted(self.pressed)
