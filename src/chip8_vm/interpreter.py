"""Interpreter: the CHIP-8 fetch-decode-execute engine.

The interpreter owns one MachineState and is driven synchronously by a
single caller:

    set_key(...)         inject current keypad state
    tick()               fetch, decode and execute one instruction
    decrement_timers()   at the driver's timer cadence (nominally 60Hz)
    display()            read the framebuffer after a tick

The only suspension point is FX0A (wait for key). While it is pending,
tick() does nothing until a key is reported pressed.

Every error raised from tick() leaves the machine exactly as it was before
the fetch; recovery policy belongs to the driver.
"""

import logging
import random
from typing import List, Optional, Union

from .config import Quirks
from .decode import Decoder, Instruction
from .errors import RomTooLarge, UnknownOpcode
from .registry import OpcodeRegistry, first_pressed_key
from .rom import Rom
from .state import (
    ADDRESS_MASK,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    KEY_COUNT,
    MAX_PROGRAM_SIZE,
    PROGRAM_START_ADDRESS,
    MachineState,
    create_initial_state,
)

logger = logging.getLogger(__name__)


class Interpreter:
    """A single CHIP-8 machine.

    Attributes:
        quirks: Behaviour switches for ambiguous opcodes
        decoder: Instruction decoder
        registry: Opcode primitives
        state: The owned machine state
    """

    def __init__(self, quirks: Optional[Quirks] = None, rng: Optional[random.Random] = None):
        """Initialize a fresh machine.

        Args:
            quirks: Behaviour switches (VIP conventions if omitted)
            rng: Random source for CXNN; any object with getrandbits(k)
        """
        self.quirks = quirks or Quirks()
        self.decoder = Decoder()
        self.registry = OpcodeRegistry(self.quirks, rng)
        self.state: MachineState = create_initial_state()

    def reset(self) -> None:
        """Restore the freshly constructed state, discarding any loaded ROM."""
        self.state = create_initial_state()
        logger.debug("Interpreter reset")

    def load(self, rom: Union[Rom, bytes, bytearray]) -> None:
        """Copy program bytes into memory at 0x200.

        Only memory is written; registers, timers and PC are left alone.

        Args:
            rom: A Rom or any sequence of byte values

        Raises:
            RomTooLarge: If the program does not fit; memory is unchanged
        """
        data = rom.data if isinstance(rom, Rom) else bytes(rom)
        if len(data) > MAX_PROGRAM_SIZE:
            raise RomTooLarge(len(data), MAX_PROGRAM_SIZE)
        end = PROGRAM_START_ADDRESS + len(data)
        self.state.memory[PROGRAM_START_ADDRESS:end] = data
        logger.debug("Loaded %d bytes at 0x%03X", len(data), PROGRAM_START_ADDRESS)

    def fetch(self) -> int:
        """Read the instruction word at PC without executing it."""
        return self.state.read_word(self.state.pc)

    def tick(self) -> Optional[Instruction]:
        """Execute one instruction.

        Returns:
            The executed instruction, or None if the tick was spent waiting
            for a key

        Raises:
            UnknownOpcode: If the word at PC matches no opcode
            StackOverflow: On a call with the stack full
            StackUnderflow: On a return with the stack empty
        """
        state = self.state

        if state.awaiting_key is not None:
            self._poll_key_wait()
            return None

        pc = state.pc
        instruction = self.decoder.decode(state.read_word(pc))
        if not instruction.valid:
            raise UnknownOpcode(instruction.word, pc)

        state.pc = (pc + 2) & ADDRESS_MASK
        try:
            self.registry.execute(state, instruction)
        except Exception:
            state.pc = pc
            raise

        if state.awaiting_key is not None:
            logger.debug("Waiting for key press into V%X at 0x%03X", state.awaiting_key, pc)
        return instruction

    def _poll_key_wait(self) -> None:
        state = self.state
        key = first_pressed_key(state)
        if key is None:
            return
        state.v[state.awaiting_key] = key
        logger.debug("Key %X pressed, stored in V%X", key, state.awaiting_key)
        state.awaiting_key = None
        state.pc = (state.pc + 2) & ADDRESS_MASK

    # =========================================================================
    # Timers
    # =========================================================================

    def decrement_timers(self) -> None:
        """Count both timers down by one, stopping at zero."""
        if self.state.delay_timer > 0:
            self.state.delay_timer -= 1
        if self.state.sound_timer > 0:
            self.state.sound_timer -= 1

    def sound_active(self) -> bool:
        """True while the sound timer is nonzero."""
        return self.state.sound_timer > 0

    # =========================================================================
    # Display and Input
    # =========================================================================

    def display(self) -> memoryview:
        """Read-only view of the 64x32 framebuffer, row-major, 0 or 1 per cell."""
        return memoryview(self.state.display).toreadonly()

    def pixel(self, x: int, y: int) -> int:
        """Value of the pixel at column x, row y (wrapping)."""
        return self.state.display[(y % DISPLAY_HEIGHT) * DISPLAY_WIDTH + (x % DISPLAY_WIDTH)]

    def display_rows(self) -> List[bytes]:
        """Framebuffer as DISPLAY_HEIGHT rows of DISPLAY_WIDTH cells."""
        display = self.state.display
        return [
            bytes(display[row * DISPLAY_WIDTH:(row + 1) * DISPLAY_WIDTH])
            for row in range(DISPLAY_HEIGHT)
        ]

    def consume_draw_flag(self) -> bool:
        """Return whether the display changed since the last call, and clear the flag."""
        changed = self.state.draw_flag
        self.state.draw_flag = False
        return changed

    def set_key(self, index: int, pressed: bool) -> None:
        """Set the state of one hex key.

        Args:
            index: Key 0x0-0xF
            pressed: Whether the key is down

        Raises:
            ValueError: If index is not a hex key
        """
        if not 0 <= index < KEY_COUNT:
            raise ValueError(f"Invalid key index: {index}")
        self.state.keys[index] = 1 if pressed else 0

    def release_all_keys(self) -> None:
        self.state.keys[:] = bytes(KEY_COUNT)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def awaiting_key(self) -> Optional[int]:
        """Register FX0A is waiting to fill, or None."""
        return self.state.awaiting_key

    @property
    def pc(self) -> int:
        return self.state.pc

    @property
    def i(self) -> int:
        return self.state.i

    @property
    def v(self) -> bytearray:
        return self.state.v

    @property
    def memory(self) -> bytearray:
        return self.state.memory

    def snapshot(self) -> dict:
        """Detached copy of registers, stack, timers and key-wait status."""
        return self.state.snapshot()
