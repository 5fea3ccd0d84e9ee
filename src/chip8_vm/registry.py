"""OpcodeRegistry: verified CHIP-8 opcode primitives.

This module implements the registry pattern for opcode execution: every
operation key emitted by the decoder maps to exactly one primitive that
transforms the machine state in place.

Each primitive has the signature (MachineState, Instruction) -> None and is
called after the program counter has already been advanced past the
instruction, so jumps and calls simply overwrite it and skips add two more.

Primitives check their error conditions before touching any state, so a
primitive that raises leaves the machine unchanged.

The registry is frozen after initialization, and freezing fails unless every
decodable operation key has a primitive.
"""

import random
from typing import Callable, Dict, Optional

from .config import Quirks
from .decode import Instruction, Op
from .errors import StackOverflow, StackUnderflow
from .state import (
    ADDRESS_MASK,
    DISPLAY_HEIGHT,
    DISPLAY_SIZE,
    DISPLAY_WIDTH,
    FLAG_REGISTER,
    FONT_GLYPH_SIZE,
    FONT_START_ADDRESS,
    STACK_DEPTH,
    MachineState,
)

Primitive = Callable[[MachineState, Instruction], None]


class OpcodeRegistry:
    """Frozen registry of opcode primitives.

    Attributes:
        quirks: Behaviour switches consulted by the ambiguous opcodes
        rng: Random source for CXNN; anything with getrandbits(k)
        _primitives: Operation key to handler
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self, quirks: Optional[Quirks] = None, rng=None):
        self.quirks = quirks or Quirks()
        self.rng = rng if rng is not None else random.Random()
        self._primitives: Dict[Op, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all opcode primitives."""
        # Flow control
        self.register(Op.CLS, self._op_cls)
        self.register(Op.RET, self._op_ret)
        self.register(Op.JP, self._op_jp)
        self.register(Op.CALL, self._op_call)
        self.register(Op.JP_OFFSET, self._op_jp_offset)

        # Conditional skips
        self.register(Op.SE_IMM, self._op_se_imm)
        self.register(Op.SNE_IMM, self._op_sne_imm)
        self.register(Op.SE_REG, self._op_se_reg)
        self.register(Op.SNE_REG, self._op_sne_reg)
        self.register(Op.SKP, self._op_skp)
        self.register(Op.SKNP, self._op_sknp)

        # Register loads and arithmetic
        self.register(Op.LD_IMM, self._op_ld_imm)
        self.register(Op.ADD_IMM, self._op_add_imm)
        self.register(Op.LD_REG, self._op_ld_reg)
        self.register(Op.OR, self._op_or)
        self.register(Op.AND, self._op_and)
        self.register(Op.XOR, self._op_xor)
        self.register(Op.ADD_REG, self._op_add_reg)
        self.register(Op.SUB, self._op_sub)
        self.register(Op.SHR, self._op_shr)
        self.register(Op.SUBN, self._op_subn)
        self.register(Op.SHL, self._op_shl)
        self.register(Op.RND, self._op_rnd)

        # Index register and memory
        self.register(Op.LD_I, self._op_ld_i)
        self.register(Op.ADD_I, self._op_add_i)
        self.register(Op.LD_F, self._op_ld_f)
        self.register(Op.LD_B, self._op_ld_b)
        self.register(Op.STORE, self._op_store)
        self.register(Op.LOAD, self._op_load)

        # Display
        self.register(Op.DRW, self._op_drw)

        # Timers and input
        self.register(Op.LD_VX_DT, self._op_ld_vx_dt)
        self.register(Op.LD_DT, self._op_ld_dt)
        self.register(Op.LD_ST, self._op_ld_st)
        self.register(Op.LD_VX_K, self._op_ld_vx_k)

    def register(self, key: Op, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key
            handler: Function taking (state, instruction) and mutating state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key.value}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications.

        Raises:
            RuntimeError: If any decodable operation key has no primitive
        """
        missing = {key for key in Op if key is not Op.INVALID} - set(self._primitives)
        if missing:
            names = ", ".join(sorted(key.value for key in missing))
            raise RuntimeError(f"Registry incomplete, missing primitives: {names}")
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all registered operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> None:
        """Execute a registered primitive.

        Args:
            state: Machine state, PC already advanced past the instruction
            instruction: Decoded instruction

        Raises:
            KeyError: If the instruction's key has no primitive
        """
        if instruction.key not in self._primitives:
            raise KeyError(f"Unknown operation key: {instruction.key.value}")
        self._primitives[instruction.key](state, instruction)

    # =========================================================================
    # Flow Control Primitives
    # =========================================================================

    def _op_cls(self, state: MachineState, ins: Instruction) -> None:
        """00E0 - Clear the display."""
        state.display[:] = bytes(DISPLAY_SIZE)
        state.draw_flag = True

    def _op_ret(self, state: MachineState, ins: Instruction) -> None:
        """00EE - Return from subroutine.

        Raises:
            StackUnderflow: If there is no return address
        """
        if not state.stack:
            raise StackUnderflow(_instruction_address(state))
        state.pc = state.stack.pop()

    def _op_jp(self, state: MachineState, ins: Instruction) -> None:
        """1NNN - Jump to NNN."""
        state.pc = ins.nnn

    def _op_call(self, state: MachineState, ins: Instruction) -> None:
        """2NNN - Call subroutine at NNN.

        The return address pushed is the already-advanced PC, i.e. the
        instruction following the call.

        Raises:
            StackOverflow: If the stack already holds STACK_DEPTH addresses
        """
        if len(state.stack) >= STACK_DEPTH:
            raise StackOverflow(_instruction_address(state), STACK_DEPTH)
        state.stack.append(state.pc)
        state.pc = ins.nnn

    def _op_jp_offset(self, state: MachineState, ins: Instruction) -> None:
        """BNNN - Jump to NNN + V0 (or XNN + VX with the jump_uses_vx quirk)."""
        offset = state.v[ins.x] if self.quirks.jump_uses_vx else state.v[0]
        state.pc = (ins.nnn + offset) & ADDRESS_MASK

    # =========================================================================
    # Conditional Skip Primitives
    # =========================================================================

    def _op_se_imm(self, state: MachineState, ins: Instruction) -> None:
        """3XNN - Skip next instruction if VX == NN."""
        if state.v[ins.x] == ins.nn:
            _skip(state)

    def _op_sne_imm(self, state: MachineState, ins: Instruction) -> None:
        """4XNN - Skip next instruction if VX != NN."""
        if state.v[ins.x] != ins.nn:
            _skip(state)

    def _op_se_reg(self, state: MachineState, ins: Instruction) -> None:
        """5XY0 - Skip next instruction if VX == VY."""
        if state.v[ins.x] == state.v[ins.y]:
            _skip(state)

    def _op_sne_reg(self, state: MachineState, ins: Instruction) -> None:
        """9XY0 - Skip next instruction if VX != VY."""
        if state.v[ins.x] != state.v[ins.y]:
            _skip(state)

    def _op_skp(self, state: MachineState, ins: Instruction) -> None:
        """EX9E - Skip next instruction if key VX is pressed."""
        if state.keys[state.v[ins.x] & 0xF]:
            _skip(state)

    def _op_sknp(self, state: MachineState, ins: Instruction) -> None:
        """EXA1 - Skip next instruction if key VX is not pressed."""
        if not state.keys[state.v[ins.x] & 0xF]:
            _skip(state)

    # =========================================================================
    # Register Primitives
    # =========================================================================

    def _op_ld_imm(self, state: MachineState, ins: Instruction) -> None:
        """6XNN - VX := NN."""
        state.v[ins.x] = ins.nn

    def _op_add_imm(self, state: MachineState, ins: Instruction) -> None:
        """7XNN - VX := VX + NN, wrapping. VF is not touched."""
        state.v[ins.x] = (state.v[ins.x] + ins.nn) & 0xFF

    def _op_ld_reg(self, state: MachineState, ins: Instruction) -> None:
        """8XY0 - VX := VY."""
        state.v[ins.x] = state.v[ins.y]

    def _op_or(self, state: MachineState, ins: Instruction) -> None:
        """8XY1 - VX := VX OR VY."""
        state.v[ins.x] |= state.v[ins.y]
        self._logic_flag(state)

    def _op_and(self, state: MachineState, ins: Instruction) -> None:
        """8XY2 - VX := VX AND VY."""
        state.v[ins.x] &= state.v[ins.y]
        self._logic_flag(state)

    def _op_xor(self, state: MachineState, ins: Instruction) -> None:
        """8XY3 - VX := VX XOR VY."""
        state.v[ins.x] ^= state.v[ins.y]
        self._logic_flag(state)

    def _op_add_reg(self, state: MachineState, ins: Instruction) -> None:
        """8XY4 - VX := VX + VY, VF := carry out.

        The flag is written after the result, so with X == F the register
        ends up holding the carry.
        """
        total = state.v[ins.x] + state.v[ins.y]
        state.v[ins.x] = total & 0xFF
        state.v[FLAG_REGISTER] = 1 if total > 0xFF else 0

    def _op_sub(self, state: MachineState, ins: Instruction) -> None:
        """8XY5 - VX := VX - VY, VF := NOT borrow."""
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.v[ins.x] = (vx - vy) & 0xFF
        state.v[FLAG_REGISTER] = 1 if vx >= vy else 0

    def _op_subn(self, state: MachineState, ins: Instruction) -> None:
        """8XY7 - VX := VY - VX, VF := NOT borrow."""
        vx, vy = state.v[ins.x], state.v[ins.y]
        state.v[ins.x] = (vy - vx) & 0xFF
        state.v[FLAG_REGISTER] = 1 if vy >= vx else 0

    def _op_shr(self, state: MachineState, ins: Instruction) -> None:
        """8XY6 - VX := source >> 1, VF := bit shifted out.

        The source is VY on the VIP, VX with shift_uses_vy disabled.
        """
        source = state.v[ins.y] if self.quirks.shift_uses_vy else state.v[ins.x]
        state.v[ins.x] = source >> 1
        state.v[FLAG_REGISTER] = source & 0x01

    def _op_shl(self, state: MachineState, ins: Instruction) -> None:
        """8XYE - VX := source << 1, VF := bit shifted out."""
        source = state.v[ins.y] if self.quirks.shift_uses_vy else state.v[ins.x]
        state.v[ins.x] = (source << 1) & 0xFF
        state.v[FLAG_REGISTER] = source >> 7

    def _op_rnd(self, state: MachineState, ins: Instruction) -> None:
        """CXNN - VX := random byte AND NN."""
        state.v[ins.x] = self.rng.getrandbits(8) & ins.nn

    # =========================================================================
    # Index Register and Memory Primitives
    # =========================================================================

    def _op_ld_i(self, state: MachineState, ins: Instruction) -> None:
        """ANNN - I := NNN."""
        state.i = ins.nnn

    def _op_add_i(self, state: MachineState, ins: Instruction) -> None:
        """FX1E - I := I + VX, wrapping at 4096. VF is not touched."""
        state.i = (state.i + state.v[ins.x]) & ADDRESS_MASK

    def _op_ld_f(self, state: MachineState, ins: Instruction) -> None:
        """FX29 - I := address of the font glyph for the low nibble of VX."""
        state.i = FONT_START_ADDRESS + (state.v[ins.x] & 0xF) * FONT_GLYPH_SIZE

    def _op_ld_b(self, state: MachineState, ins: Instruction) -> None:
        """FX33 - Store BCD of VX at I, I+1, I+2."""
        value = state.v[ins.x]
        for offset, digit in enumerate((value // 100, (value // 10) % 10, value % 10)):
            state.memory[(state.i + offset) & ADDRESS_MASK] = digit

    def _op_store(self, state: MachineState, ins: Instruction) -> None:
        """FX55 - Store V0..VX in memory starting at I."""
        for index in range(ins.x + 1):
            state.memory[(state.i + index) & ADDRESS_MASK] = state.v[index]
        if self.quirks.load_store_increments_i:
            state.i = (state.i + ins.x + 1) & ADDRESS_MASK

    def _op_load(self, state: MachineState, ins: Instruction) -> None:
        """FX65 - Load V0..VX from memory starting at I."""
        for index in range(ins.x + 1):
            state.v[index] = state.memory[(state.i + index) & ADDRESS_MASK]
        if self.quirks.load_store_increments_i:
            state.i = (state.i + ins.x + 1) & ADDRESS_MASK

    # =========================================================================
    # Display Primitive
    # =========================================================================

    def _op_drw(self, state: MachineState, ins: Instruction) -> None:
        """DXYN - XOR an N-row sprite from memory at I onto the display.

        The origin is (VX mod 64, VY mod 32). Pixels past the right or bottom
        edge wrap around to the opposite side. VF is set to 1 if any lit
        pixel was turned off, else 0.
        """
        origin_x = state.v[ins.x] % DISPLAY_WIDTH
        origin_y = state.v[ins.y] % DISPLAY_HEIGHT
        collision = 0

        for row in range(ins.n):
            sprite_byte = state.memory[(state.i + row) & ADDRESS_MASK]
            if not sprite_byte:
                continue
            row_offset = ((origin_y + row) % DISPLAY_HEIGHT) * DISPLAY_WIDTH
            for col in range(8):
                if sprite_byte & (0x80 >> col):
                    index = row_offset + (origin_x + col) % DISPLAY_WIDTH
                    if state.display[index]:
                        collision = 1
                    state.display[index] ^= 1

        state.v[FLAG_REGISTER] = collision
        state.draw_flag = True

    # =========================================================================
    # Timer and Input Primitives
    # =========================================================================

    def _op_ld_vx_dt(self, state: MachineState, ins: Instruction) -> None:
        """FX07 - VX := delay timer."""
        state.v[ins.x] = state.delay_timer

    def _op_ld_dt(self, state: MachineState, ins: Instruction) -> None:
        """FX15 - delay timer := VX."""
        state.delay_timer = state.v[ins.x]

    def _op_ld_st(self, state: MachineState, ins: Instruction) -> None:
        """FX18 - sound timer := VX."""
        state.sound_timer = state.v[ins.x]

    def _op_ld_vx_k(self, state: MachineState, ins: Instruction) -> None:
        """FX0A - Wait for a key press and store its index in VX.

        If a key is already down it is taken immediately. Otherwise the
        machine enters the key-wait state and PC is pointed back at this
        instruction until the interpreter sees a key.
        """
        key = first_pressed_key(state)
        if key is not None:
            state.v[ins.x] = key
            return
        state.awaiting_key = ins.x
        state.pc = _instruction_address(state)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _logic_flag(self, state: MachineState) -> None:
        if self.quirks.logic_resets_vf:
            state.v[FLAG_REGISTER] = 0


def first_pressed_key(state: MachineState) -> Optional[int]:
    """Lowest-numbered key currently pressed, or None."""
    for index, pressed in enumerate(state.keys):
        if pressed:
            return index
    return None


def _skip(state: MachineState) -> None:
    state.pc = (state.pc + 2) & ADDRESS_MASK


def _instruction_address(state: MachineState) -> int:
    # PC has already been advanced past the executing instruction
    return (state.pc - 2) & ADDRESS_MASK
