"""Exceptions raised by the CHIP-8 interpreter.

Every error derives from Chip8Error so a driver can catch the whole family
and decide its own recovery policy (halt, reset, ignore-and-continue).
"""


class Chip8Error(Exception):
    """Base class for all interpreter errors."""


class EmptyRom(Chip8Error):
    """A ROM was built from zero bytes."""

    def __init__(self):
        super().__init__("CHIP-8 program is empty")


class RomTooLarge(Chip8Error):
    """ROM does not fit between the program start address and end of memory.

    Attributes:
        size: Length of the rejected ROM in bytes
        limit: Maximum number of bytes that fit
    """

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"CHIP-8 program with size {size} bytes is too large "
            f"(limit {limit} bytes)"
        )


class StackOverflow(Chip8Error):
    """Subroutine call with the stack already full."""

    def __init__(self, pc: int, depth: int):
        self.pc = pc
        self.depth = depth
        super().__init__(
            f"Stack overflow at 0x{pc:03X}: subroutine nesting limited to {depth} levels"
        )


class StackUnderflow(Chip8Error):
    """Subroutine return with an empty stack."""

    def __init__(self, pc: int):
        self.pc = pc
        super().__init__(f"Return at 0x{pc:03X} has nowhere to go: stack is empty")


class UnknownOpcode(Chip8Error):
    """Instruction word matches no known opcode pattern.

    Attributes:
        instruction: Raw 16-bit instruction word
        pc: Address the word was fetched from
    """

    def __init__(self, instruction: int, pc: int):
        self.instruction = instruction
        self.pc = pc
        super().__init__(f"Unknown opcode 0x{instruction:04X} at 0x{pc:03X}")
