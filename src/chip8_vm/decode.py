"""Decoder: turn 16-bit CHIP-8 words into enumerated instructions.

Architecture:
    word -> Decoder -> Instruction(key, fields) -> OpcodeRegistry -> execute

Each opcode is described once, by a (mask, pattern) pair over the raw word.
The decoder tries the table in order and extracts the standard sub-fields
(X, Y, N, NN, NNN) for whichever pattern matches. Words that match nothing
decode to Op.INVALID so the caller can report them with their address.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple


class Op(Enum):
    """Operation keys, one per CHIP-8 opcode pattern."""
    CLS = "OP_CLS"                  # 00E0
    RET = "OP_RET"                  # 00EE
    JP = "OP_JP"                    # 1NNN
    CALL = "OP_CALL"                # 2NNN
    SE_IMM = "OP_SE_IMM"            # 3XNN
    SNE_IMM = "OP_SNE_IMM"          # 4XNN
    SE_REG = "OP_SE_REG"            # 5XY0
    LD_IMM = "OP_LD_IMM"            # 6XNN
    ADD_IMM = "OP_ADD_IMM"          # 7XNN
    LD_REG = "OP_LD_REG"            # 8XY0
    OR = "OP_OR"                    # 8XY1
    AND = "OP_AND"                  # 8XY2
    XOR = "OP_XOR"                  # 8XY3
    ADD_REG = "OP_ADD_REG"          # 8XY4
    SUB = "OP_SUB"                  # 8XY5
    SHR = "OP_SHR"                  # 8XY6
    SUBN = "OP_SUBN"                # 8XY7
    SHL = "OP_SHL"                  # 8XYE
    SNE_REG = "OP_SNE_REG"          # 9XY0
    LD_I = "OP_LD_I"                # ANNN
    JP_OFFSET = "OP_JP_OFFSET"      # BNNN
    RND = "OP_RND"                  # CXNN
    DRW = "OP_DRW"                  # DXYN
    SKP = "OP_SKP"                  # EX9E
    SKNP = "OP_SKNP"                # EXA1
    LD_VX_DT = "OP_LD_VX_DT"        # FX07
    LD_VX_K = "OP_LD_VX_K"          # FX0A
    LD_DT = "OP_LD_DT"              # FX15
    LD_ST = "OP_LD_ST"              # FX18
    ADD_I = "OP_ADD_I"              # FX1E
    LD_F = "OP_LD_F"                # FX29
    LD_B = "OP_LD_B"                # FX33
    STORE = "OP_STORE"              # FX55
    LOAD = "OP_LOAD"                # FX65
    INVALID = "OP_INVALID"


# (mask, pattern, key, mnemonic template)
OPCODE_TABLE: List[Tuple[int, int, Op, str]] = [
    (0xFFFF, 0x00E0, Op.CLS, "CLS"),
    (0xFFFF, 0x00EE, Op.RET, "RET"),
    (0xF000, 0x1000, Op.JP, "JP 0x{nnn:03X}"),
    (0xF000, 0x2000, Op.CALL, "CALL 0x{nnn:03X}"),
    (0xF000, 0x3000, Op.SE_IMM, "SE V{x:X}, 0x{nn:02X}"),
    (0xF000, 0x4000, Op.SNE_IMM, "SNE V{x:X}, 0x{nn:02X}"),
    (0xF00F, 0x5000, Op.SE_REG, "SE V{x:X}, V{y:X}"),
    (0xF000, 0x6000, Op.LD_IMM, "LD V{x:X}, 0x{nn:02X}"),
    (0xF000, 0x7000, Op.ADD_IMM, "ADD V{x:X}, 0x{nn:02X}"),
    (0xF00F, 0x8000, Op.LD_REG, "LD V{x:X}, V{y:X}"),
    (0xF00F, 0x8001, Op.OR, "OR V{x:X}, V{y:X}"),
    (0xF00F, 0x8002, Op.AND, "AND V{x:X}, V{y:X}"),
    (0xF00F, 0x8003, Op.XOR, "XOR V{x:X}, V{y:X}"),
    (0xF00F, 0x8004, Op.ADD_REG, "ADD V{x:X}, V{y:X}"),
    (0xF00F, 0x8005, Op.SUB, "SUB V{x:X}, V{y:X}"),
    (0xF00F, 0x8006, Op.SHR, "SHR V{x:X}, V{y:X}"),
    (0xF00F, 0x8007, Op.SUBN, "SUBN V{x:X}, V{y:X}"),
    (0xF00F, 0x800E, Op.SHL, "SHL V{x:X}, V{y:X}"),
    (0xF00F, 0x9000, Op.SNE_REG, "SNE V{x:X}, V{y:X}"),
    (0xF000, 0xA000, Op.LD_I, "LD I, 0x{nnn:03X}"),
    (0xF000, 0xB000, Op.JP_OFFSET, "JP V0, 0x{nnn:03X}"),
    (0xF000, 0xC000, Op.RND, "RND V{x:X}, 0x{nn:02X}"),
    (0xF000, 0xD000, Op.DRW, "DRW V{x:X}, V{y:X}, {n}"),
    (0xF0FF, 0xE09E, Op.SKP, "SKP V{x:X}"),
    (0xF0FF, 0xE0A1, Op.SKNP, "SKNP V{x:X}"),
    (0xF0FF, 0xF007, Op.LD_VX_DT, "LD V{x:X}, DT"),
    (0xF0FF, 0xF00A, Op.LD_VX_K, "LD V{x:X}, K"),
    (0xF0FF, 0xF015, Op.LD_DT, "LD DT, V{x:X}"),
    (0xF0FF, 0xF018, Op.LD_ST, "LD ST, V{x:X}"),
    (0xF0FF, 0xF01E, Op.ADD_I, "ADD I, V{x:X}"),
    (0xF0FF, 0xF029, Op.LD_F, "LD F, V{x:X}"),
    (0xF0FF, 0xF033, Op.LD_B, "LD B, V{x:X}"),
    (0xF0FF, 0xF055, Op.STORE, "LD [I], V{x:X}"),
    (0xF0FF, 0xF065, Op.LOAD, "LD V{x:X}, [I]"),
]


@dataclass(frozen=True)
class Instruction:
    """A decoded CHIP-8 instruction.

    Attributes:
        key: Operation key
        word: Raw 16-bit instruction word
        x: Second nibble (register index)
        y: Third nibble (register index)
        n: Lowest nibble (4-bit literal)
        nn: Lowest byte (8-bit literal)
        nnn: Lowest 12 bits (address)
        valid: Whether the word matched a known pattern
        error: Reason the decode failed, if it did
    """
    key: Op
    word: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int
    valid: bool = True
    error: Optional[str] = None

    def mnemonic(self) -> str:
        """Render the instruction in conventional assembly notation."""
        if not self.valid:
            return f"DW 0x{self.word:04X}"
        template = _MNEMONICS[self.key]
        return template.format(x=self.x, y=self.y, n=self.n, nn=self.nn, nnn=self.nnn)

    def __str__(self) -> str:
        return f"{self.word:04X}  {self.mnemonic()}"


_MNEMONICS: Dict[Op, str] = {key: template for _, _, key, template in OPCODE_TABLE}


class Decoder:
    """Table-driven instruction decoder.

    Attributes:
        table: Ordered (mask, pattern, key, mnemonic) entries tried per word
    """

    VALID_KEYS: Set[Op] = {key for _, _, key, _ in OPCODE_TABLE}

    def __init__(self, table: Optional[List[Tuple[int, int, Op, str]]] = None):
        self.table = table if table is not None else OPCODE_TABLE
        self._cache: Dict[int, Instruction] = {}

    def decode(self, word: int) -> Instruction:
        """Decode a 16-bit instruction word.

        Args:
            word: Raw instruction word (big-endian pair already combined)

        Returns:
            Instruction with its operation key and sub-fields; key is
            Op.INVALID and valid is False if no pattern matched
        """
        word &= 0xFFFF
        cached = self._cache.get(word)
        if cached is not None:
            return cached

        fields = {
            "x": (word >> 8) & 0xF,
            "y": (word >> 4) & 0xF,
            "n": word & 0xF,
            "nn": word & 0xFF,
            "nnn": word & 0xFFF,
        }

        for mask, pattern, key, _ in self.table:
            if word & mask == pattern:
                instruction = Instruction(key, word, **fields)
                break
        else:
            instruction = Instruction(
                Op.INVALID,
                word,
                valid=False,
                error=f"Unknown opcode 0x{word:04X}",
                **fields
            )

        self._cache[word] = instruction
        return instruction


def disassemble(data: bytes, origin: int = 0x200) -> List[str]:
    """Disassemble a byte sequence into one line per 16-bit word.

    Args:
        data: Program bytes; a trailing odd byte is shown as a data byte
        origin: Address of the first byte

    Returns:
        Lines of the form "0x200: 00E0  CLS"
    """
    decoder = Decoder()
    lines = []
    for offset in range(0, len(data) - 1, 2):
        word = (data[offset] << 8) | data[offset + 1]
        lines.append(f"0x{origin + offset:03X}: {decoder.decode(word)}")
    if len(data) % 2:
        lines.append(f"0x{origin + len(data) - 1:03X}: {data[-1]:02X}    DB 0x{data[-1]:02X}")
    return lines
