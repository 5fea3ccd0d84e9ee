"""chip8-vm: a CHIP-8 interpreter for the COSMAC VIP instruction set.

Architecture:
    MEMORY -> FETCH -> DECODE -> Instruction -> REGISTRY -> EXECUTE -> STATE
               |         |          |             |
          [PC, PC+1] [mask table] [Op enum]  [frozen primitives]

Modules:
    state: MachineState record and machine constants
    decode: Table-driven decoder producing Instruction values
    registry: Opcode primitives, one per operation key
    interpreter: Interpreter engine (tick, timers, display, keypad)
    config: Quirks for behaviour that differs between interpreters
    rom: Rom value type
    peripherals: Screen/Tone/HexKeyboard protocols
    emulator: Headless driver loop with execution trace
    errors: Exception hierarchy
"""

__version__ = "0.1.0"

from .config import Quirks
from .decode import Decoder, Instruction, Op
from .emulator import Emulator, TraceEntry
from .errors import (
    Chip8Error,
    EmptyRom,
    RomTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
)
from .interpreter import Interpreter
from .registry import OpcodeRegistry
from .rom import Rom, program
from .state import MachineState

__all__ = [
    "Chip8Error",
    "Decoder",
    "Emulator",
    "EmptyRom",
    "Instruction",
    "Interpreter",
    "MachineState",
    "Op",
    "OpcodeRegistry",
    "Quirks",
    "Rom",
    "RomTooLarge",
    "StackOverflow",
    "StackUnderflow",
    "TraceEntry",
    "UnknownOpcode",
    "program",
]
