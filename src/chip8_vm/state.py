"""MachineState: the complete state of one CHIP-8 machine.

State Components:
    - Memory: 4096 bytes, font at 0x050, programs from 0x200
    - V: 16 general-purpose 8-bit registers (VF doubles as flag register)
    - I: Index register (12-bit address)
    - PC: Program counter
    - Stack: Subroutine return addresses, at most 16 deep
    - Timers: Delay and sound, 8-bit, counting down toward zero
    - Display: 64x32 monochrome framebuffer, row-major, one byte per pixel
    - Keypad: 16 key states
    - awaiting_key: Register FX0A is waiting to fill, or None

The state is a single mutable record owned by one Interpreter. Opcode
primitives mutate it in place; snapshot() produces detached copies for
tracing.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


MEMORY_SIZE = 0x1000
ADDRESS_MASK = MEMORY_SIZE - 1
PROGRAM_START_ADDRESS = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START_ADDRESS

FONT_START_ADDRESS = 0x050
FONT_GLYPH_SIZE = 5

REGISTER_COUNT = 16
FLAG_REGISTER = 0xF
STACK_DEPTH = 16
KEY_COUNT = 16

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
DISPLAY_SIZE = DISPLAY_WIDTH * DISPLAY_HEIGHT

# 4x5 hex glyphs 0-F
FONT = bytes([
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


@dataclass
class MachineState:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4096 bytes of RAM
        v: Registers V0-VF
        i: Index register
        pc: Program counter
        stack: Return addresses, innermost call last
        delay_timer: Delay timer value (0-255)
        sound_timer: Sound timer value (0-255)
        display: 64x32 framebuffer, 0 or 1 per cell
        keys: Pressed state per hex key, 0 or 1
        awaiting_key: Register index FX0A stores into while waiting, else None
        draw_flag: Set when the framebuffer changed since last consumed
    """
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    v: bytearray = field(default_factory=lambda: bytearray(REGISTER_COUNT))
    i: int = 0
    pc: int = PROGRAM_START_ADDRESS
    stack: List[int] = field(default_factory=list)
    delay_timer: int = 0
    sound_timer: int = 0
    display: bytearray = field(default_factory=lambda: bytearray(DISPLAY_SIZE))
    keys: bytearray = field(default_factory=lambda: bytearray(KEY_COUNT))
    awaiting_key: Optional[int] = None
    draw_flag: bool = False

    def snapshot(self) -> dict:
        """Create a detached snapshot of the current state for tracing.

        Returns:
            Dictionary with copies of registers, I, PC, stack, timers and
            key-wait status
        """
        return {
            "v": list(self.v),
            "i": self.i,
            "pc": self.pc,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "awaiting_key": self.awaiting_key,
            # memory and display excluded for efficiency
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory, registers, display and keypad have their fixed sizes
            - PC and I are 12-bit addresses
            - Stack holds at most STACK_DEPTH addresses
            - Timers are 8-bit
            - awaiting_key, if set, names a register

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False
        if len(self.v) != REGISTER_COUNT:
            return False
        if len(self.display) != DISPLAY_SIZE or len(self.keys) != KEY_COUNT:
            return False

        if not 0 <= self.pc <= ADDRESS_MASK:
            return False
        if not 0 <= self.i <= ADDRESS_MASK:
            return False

        if len(self.stack) > STACK_DEPTH:
            return False
        if any(not 0 <= addr <= ADDRESS_MASK for addr in self.stack):
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        if self.awaiting_key is not None and not 0 <= self.awaiting_key < REGISTER_COUNT:
            return False

        return True

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word, wrapping at the end of memory."""
        return (self.memory[address & ADDRESS_MASK] << 8) | self.memory[(address + 1) & ADDRESS_MASK]

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0-VF."""
        return {f"V{index:X}": value for index, value in enumerate(self.v)}

    def __str__(self) -> str:
        regs = " ".join(f"V{index:X}={value:02X}" for index, value in enumerate(self.v))
        waiting = f" WAIT->V{self.awaiting_key:X}" if self.awaiting_key is not None else ""
        return (
            f"PC={self.pc:03X} I={self.i:03X} SP={len(self.stack)} "
            f"DT={self.delay_timer} ST={self.sound_timer} {regs}{waiting}"
        )


def create_initial_state() -> MachineState:
    """Create a fresh machine with the font loaded and PC at 0x200.

    Returns:
        New MachineState
    """
    state = MachineState()
    state.memory[FONT_START_ADDRESS:FONT_START_ADDRESS + len(FONT)] = FONT
    return state
