"""Roms hold CHIP-8 program data."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from .errors import EmptyRom, RomTooLarge
from .state import MAX_PROGRAM_SIZE

# The first 512 bytes of memory are reserved for the interpreter
MAX_ROM_SIZE = MAX_PROGRAM_SIZE


@dataclass(frozen=True)
class Rom:
    """A program to be executed on the CHIP-8.

    Attributes:
        name: Display name, usually the file stem
        data: Program bytes, loaded at 0x200
    """
    name: str
    data: bytes

    @classmethod
    def from_bytes(cls, name: str, data: Iterable[int]) -> "Rom":
        """Create a Rom from copied bytes.

        Raises:
            EmptyRom: If data is empty
            RomTooLarge: If data exceeds MAX_ROM_SIZE
        """
        data = bytes(data)
        if not data:
            raise EmptyRom()
        if len(data) > MAX_ROM_SIZE:
            raise RomTooLarge(len(data), MAX_ROM_SIZE)
        return cls(name, data)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Rom":
        """Read a ROM file; the name is the file stem."""
        path = Path(path)
        return cls.from_bytes(path.stem, path.read_bytes())

    @classmethod
    def from_hex(cls, text: str, name: str = "inline") -> "Rom":
        """Build a ROM from 16-bit hex words.

        Words may be separated by whitespace, commas or semicolons and may
        carry a 0x prefix, e.g. "00E0 1200" or "0x6005; 0x700A".

        Raises:
            ValueError: If a token is not a 1-4 digit hex number
            EmptyRom: If no words are given
        """
        words = []
        for token in re.split(r"[\s,;]+", text.strip()):
            if not token:
                continue
            if not re.fullmatch(r"(0[xX])?[0-9A-Fa-f]{1,4}", token):
                raise ValueError(f"Invalid instruction word: {token!r}")
            words.append(int(token, 16))
        return cls.from_bytes(name, program(*words))

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Rom({self.name}: {list(self.data[:10])})"


def program(*words: int) -> bytes:
    """Convert 16-bit instruction words to big-endian program bytes."""
    return b"".join((word & 0xFFFF).to_bytes(2, "big") for word in words)
