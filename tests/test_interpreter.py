"""Tests for the Interpreter engine and opcode semantics."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import (
    Interpreter,
    Quirks,
    Rom,
    RomTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownOpcode,
    program,
)
from chip8_vm.state import FONT_START_ADDRESS, MAX_PROGRAM_SIZE


class FixedRng:
    """Random source that always returns the same byte."""

    def __init__(self, value):
        self.value = value

    def getrandbits(self, k):
        return self.value


def machine(*words, quirks=None, rng=None) -> Interpreter:
    chip8 = Interpreter(quirks=quirks, rng=rng)
    chip8.load(program(*words))
    return chip8


def run(chip8: Interpreter, ticks: int) -> Interpreter:
    for _ in range(ticks):
        chip8.tick()
    return chip8


class TestInitialization:
    """Test a freshly constructed machine."""

    def test_fresh_machine(self):
        chip8 = Interpreter()
        assert chip8.pc == 0x200
        assert chip8.i == 0
        assert list(chip8.v) == [0] * 16
        assert chip8.state.stack == []
        assert chip8.awaiting_key is None
        assert not chip8.sound_active()
        assert not any(chip8.display())
        assert chip8.state.validate()

    def test_reset_restores_fresh_state(self):
        chip8 = run(machine(0x6A42, 0xA123), 2)
        chip8.set_key(3, True)
        chip8.reset()
        assert chip8.pc == 0x200
        assert chip8.v[0xA] == 0
        assert chip8.i == 0
        assert chip8.memory[0x200] == 0
        assert chip8.state.keys[3] == 0
        assert chip8.memory[FONT_START_ADDRESS] == 0xF0


class TestLoad:
    """Test ROM loading."""

    def test_load_at_program_start(self):
        chip8 = Interpreter()
        chip8.load(bytes([0xAB, 0xCD]))
        assert chip8.memory[0x200] == 0xAB
        assert chip8.memory[0x201] == 0xCD

    def test_load_rom_object(self):
        chip8 = Interpreter()
        chip8.load(Rom.from_hex("00E0"))
        assert chip8.fetch() == 0x00E0

    def test_load_maximum_size(self):
        chip8 = Interpreter()
        chip8.load(bytes([0x11]) * MAX_PROGRAM_SIZE)
        assert chip8.memory[0xFFF] == 0x11

    def test_load_too_large_leaves_memory_unchanged(self):
        chip8 = Interpreter()
        chip8.load(bytes([0x12, 0x00]))
        before = bytes(chip8.memory)
        with pytest.raises(RomTooLarge) as excinfo:
            chip8.load(bytes(4096 - 0x200 + 1))
        assert excinfo.value.size == 3585
        assert bytes(chip8.memory) == before

    def test_reload_keeps_registers(self):
        chip8 = run(machine(0x6307), 1)
        chip8.load(program(0x1200))
        assert chip8.v[3] == 7
        assert chip8.pc == 0x202


class TestFlowControl:
    """Test jumps, calls and returns."""

    def test_pc_advances_by_two(self):
        chip8 = run(machine(0x6000), 1)
        assert chip8.pc == 0x202

    def test_tick_returns_instruction(self):
        chip8 = machine(0x6105)
        assert chip8.tick().mnemonic() == "LD V1, 0x05"

    def test_jump(self):
        chip8 = run(machine(0x1ABC), 1)
        assert chip8.pc == 0xABC

    def test_call_and_return(self):
        """2NNN then 00EE returns to the instruction after the call."""
        chip8 = Interpreter()
        chip8.load(program(0x2206, 0x6001, 0x1204, 0x00EE))
        chip8.tick()
        assert chip8.pc == 0x206
        assert chip8.state.stack == [0x202]
        chip8.tick()
        assert chip8.pc == 0x202
        assert chip8.state.stack == []

    def test_return_with_empty_stack(self):
        chip8 = machine(0x00EE)
        with pytest.raises(StackUnderflow):
            chip8.tick()
        assert chip8.pc == 0x200

    def test_stack_overflow_on_seventeenth_call(self):
        """Sixteen nested calls succeed; the seventeenth fails without side effects."""
        words = [0x2200 + 2 * (n + 1) for n in range(17)]
        chip8 = machine(*words)
        run(chip8, 16)
        assert len(chip8.state.stack) == 16
        pc_before = chip8.pc
        snapshot = chip8.snapshot()

        with pytest.raises(StackOverflow) as excinfo:
            chip8.tick()

        assert excinfo.value.pc == pc_before
        assert chip8.pc == pc_before
        assert chip8.snapshot() == snapshot

    def test_jump_with_offset_uses_v0(self):
        chip8 = run(machine(0x6004, 0x6510, 0xB300), 3)
        assert chip8.pc == 0x304

    def test_jump_with_offset_quirk_uses_vx(self):
        chip8 = run(machine(0x6004, 0x6310, 0xB300, quirks=Quirks(jump_uses_vx=True)), 3)
        assert chip8.pc == 0x310

    def test_jump_with_offset_wraps(self):
        chip8 = run(machine(0x60FF, 0xBFFF), 2)
        assert chip8.pc == (0xFFF + 0xFF) & 0xFFF

    def test_unknown_opcode_reports_word_and_pc(self):
        chip8 = machine(0x6001, 0xFFFF)
        chip8.tick()
        with pytest.raises(UnknownOpcode) as excinfo:
            chip8.tick()
        assert excinfo.value.instruction == 0xFFFF
        assert excinfo.value.pc == 0x202
        assert "0xFFFF" in str(excinfo.value)
        assert chip8.pc == 0x202
        assert chip8.v[0] == 1


class TestSkips:
    """Test conditional skip instructions."""

    @pytest.mark.parametrize("words, expected_pc", [
        ((0x6042, 0x3042), 0x206),
        ((0x6042, 0x3043), 0x204),
        ((0x6042, 0x4042), 0x204),
        ((0x6042, 0x4043), 0x206),
        ((0x6042, 0x6142, 0x5010), 0x208),
        ((0x6042, 0x6143, 0x5010), 0x206),
        ((0x6042, 0x6142, 0x9010), 0x206),
        ((0x6042, 0x6143, 0x9010), 0x208),
    ])
    def test_skip(self, words, expected_pc):
        chip8 = run(machine(*words), len(words))
        assert chip8.pc == expected_pc

    def test_skip_if_key_pressed(self):
        chip8 = machine(0x6A07, 0xEA9E)
        chip8.set_key(7, True)
        run(chip8, 2)
        assert chip8.pc == 0x206

    def test_skip_if_key_not_pressed(self):
        chip8 = run(machine(0x6A07, 0xEAA1), 2)
        assert chip8.pc == 0x206

    def test_key_skip_uses_low_nibble(self):
        chip8 = machine(0x6AF3, 0xEA9E)
        chip8.set_key(3, True)
        run(chip8, 2)
        assert chip8.pc == 0x206


class TestRegisterOps:
    """Test register loads and arithmetic."""

    def test_load_immediate(self):
        chip8 = run(machine(0x6A42), 1)
        assert chip8.v[0xA] == 0x42

    def test_add_immediate_wraps_without_flag(self):
        chip8 = run(machine(0x60FF, 0x6F07, 0x7002), 3)
        assert chip8.v[0] == 0x01
        assert chip8.v[0xF] == 0x07

    def test_copy(self):
        chip8 = run(machine(0x6133, 0x8010), 2)
        assert chip8.v[0] == 0x33

    @pytest.mark.parametrize("op, expected", [
        (0x8011, 0b1110),
        (0x8012, 0b1000),
        (0x8013, 0b0110),
    ])
    def test_logic(self, op, expected):
        chip8 = run(machine(0x600C, 0x610A, 0x6F05, op), 4)
        assert chip8.v[0] == expected
        assert chip8.v[0xF] == 5

    def test_logic_resets_vf_quirk(self):
        chip8 = run(machine(0x600C, 0x610A, 0x6F05, 0x8011, quirks=Quirks(logic_resets_vf=True)), 4)
        assert chip8.v[0] == 0b1110
        assert chip8.v[0xF] == 0

    @pytest.mark.parametrize("vx, vy", [(0, 0), (1, 254), (1, 255), (200, 100), (255, 255), (128, 127)])
    def test_add_with_carry(self, vx, vy):
        chip8 = run(machine(0x6000 | vx, 0x6100 | vy, 0x8014), 3)
        assert chip8.v[0] == (vx + vy) % 256
        assert chip8.v[0xF] == (1 if vx + vy > 255 else 0)

    @pytest.mark.parametrize("vx, vy", [(5, 3), (3, 5), (7, 7), (0, 255), (255, 0)])
    def test_subtract(self, vx, vy):
        chip8 = run(machine(0x6000 | vx, 0x6100 | vy, 0x8015), 3)
        assert chip8.v[0] == (vx - vy) % 256
        assert chip8.v[0xF] == (1 if vx >= vy else 0)

    @pytest.mark.parametrize("vx, vy", [(5, 3), (3, 5), (7, 7)])
    def test_reverse_subtract(self, vx, vy):
        chip8 = run(machine(0x6000 | vx, 0x6100 | vy, 0x8017), 3)
        assert chip8.v[0] == (vy - vx) % 256
        assert chip8.v[0xF] == (1 if vy >= vx else 0)

    def test_flag_written_after_result_when_x_is_f(self):
        """With VX == VF the flag overwrites the arithmetic result."""
        chip8 = run(machine(0x6FFF, 0x6101, 0x8F14), 3)
        assert chip8.v[0xF] == 1
        chip8 = run(machine(0x6F01, 0x6102, 0x8F15), 3)
        assert chip8.v[0xF] == 0

    def test_shift_right_uses_vy(self):
        chip8 = run(machine(0x60FF, 0x6105, 0x8016), 3)
        assert chip8.v[0] == 0x02
        assert chip8.v[0xF] == 1

    def test_shift_left_uses_vy(self):
        chip8 = run(machine(0x6000, 0x6181, 0x801E), 3)
        assert chip8.v[0] == 0x02
        assert chip8.v[0xF] == 1

    def test_shift_in_place_quirk(self):
        quirks = Quirks(shift_uses_vy=False)
        chip8 = run(machine(0x6006, 0x61FF, 0x8016, quirks=quirks), 3)
        assert chip8.v[0] == 0x03
        assert chip8.v[0xF] == 0
        chip8 = run(machine(0x6040, 0x61FF, 0x801E, quirks=quirks), 3)
        assert chip8.v[0] == 0x80
        assert chip8.v[0xF] == 0

    def test_random_masked(self):
        chip8 = run(machine(0xC30F, rng=FixedRng(0xAB)), 1)
        assert chip8.v[3] == 0x0B


class TestIndexAndMemory:
    """Test index register and memory opcodes."""

    def test_set_index(self):
        chip8 = run(machine(0xA123), 1)
        assert chip8.i == 0x123

    def test_add_index_wraps(self):
        chip8 = run(machine(0xAFFF, 0x6002, 0x6F09, 0xF01E), 4)
        assert chip8.i == 0x001
        assert chip8.v[0xF] == 9

    @pytest.mark.parametrize("digit", range(16))
    def test_font_address(self, digit):
        chip8 = run(machine(0x6000 | (0xF0 | digit), 0xF029), 2)
        assert chip8.i == FONT_START_ADDRESS + 5 * digit

    @pytest.mark.parametrize("value, digits", [(255, [2, 5, 5]), (0, [0, 0, 0]), (7, [0, 0, 7]), (120, [1, 2, 0])])
    def test_bcd(self, value, digits):
        chip8 = run(machine(0x6000 | value, 0xA300, 0xF033), 3)
        assert list(chip8.memory[0x300:0x303]) == digits
        assert chip8.i == 0x300

    def test_store_and_load_registers(self):
        chip8 = run(machine(0x6011, 0x6122, 0x6233, 0x6344, 0xA300, 0xF255), 6)
        assert list(chip8.memory[0x300:0x304]) == [0x11, 0x22, 0x33, 0x00]
        assert chip8.i == 0x300

        chip8 = machine(0xA300, 0xF265)
        chip8.memory[0x300:0x303] = bytes([7, 8, 9])
        run(chip8, 2)
        assert list(chip8.v[:4]) == [7, 8, 9, 0]
        assert chip8.i == 0x300

    def test_load_store_increment_quirk(self):
        chip8 = run(machine(0xA300, 0xF255, quirks=Quirks(load_store_increments_i=True)), 2)
        assert chip8.i == 0x303


class TestDisplay:
    """Test clear and draw."""

    def test_clear(self):
        chip8 = Interpreter()
        chip8.state.display[:] = bytes([1]) * 2048
        chip8.load(program(0x00E0))
        chip8.tick()
        assert not any(chip8.display())

    def test_draw_font_glyph(self):
        chip8 = run(machine(0x6000, 0xF029, 0xD005), 3)
        rows = chip8.display_rows()
        assert rows[0][:4] == bytes([1, 1, 1, 1])
        assert rows[1][:4] == bytes([1, 0, 0, 1])
        assert rows[4][:4] == bytes([1, 1, 1, 1])
        assert chip8.v[0xF] == 0

    def test_draw_collision_and_restore(self):
        """Drawing the same sprite twice erases it and reports a collision."""
        chip8 = machine(0x6A0A, 0x6B05, 0xA050, 0xDAB5, 0xDAB5)
        run(chip8, 4)
        assert any(chip8.display())
        assert chip8.v[0xF] == 0
        chip8.tick()
        assert not any(chip8.display())
        assert chip8.v[0xF] == 1

    def test_draw_wraps_at_edges(self):
        """A sprite at (62, 30) wraps horizontally and vertically."""
        chip8 = machine(0x603E, 0x611E, 0xA300, 0xD013)
        chip8.memory[0x300:0x303] = bytes([0xFF, 0xFF, 0xFF])
        run(chip8, 4)
        assert chip8.pixel(62, 30) == 1
        assert chip8.pixel(63, 30) == 1
        assert chip8.pixel(0, 30) == 1
        assert chip8.pixel(5, 30) == 1
        assert chip8.pixel(6, 30) == 0
        assert chip8.pixel(0, 0) == 1
        assert chip8.pixel(0, 1) == 0

    def test_draw_origin_is_modulo(self):
        chip8 = machine(0x6045, 0x6122, 0xA300, 0xD011)
        chip8.memory[0x300] = 0x80
        run(chip8, 4)
        assert chip8.pixel(5, 2) == 1
        assert sum(chip8.display()) == 1

    def test_draw_sets_draw_flag(self):
        chip8 = run(machine(0xD001), 1)
        assert chip8.consume_draw_flag() is True
        assert chip8.consume_draw_flag() is False

    def test_display_is_read_only(self):
        chip8 = Interpreter()
        with pytest.raises(TypeError):
            chip8.display()[0] = 1


class TestTimers:
    """Test timer opcodes and countdown."""

    def test_set_and_read_delay(self):
        chip8 = machine(0x6003, 0xF015, 0xF107)
        run(chip8, 2)
        chip8.decrement_timers()
        chip8.tick()
        assert chip8.v[1] == 2

    def test_sound_timer(self):
        chip8 = run(machine(0x6002, 0xF018), 2)
        assert chip8.sound_active()
        chip8.decrement_timers()
        assert chip8.sound_active()
        chip8.decrement_timers()
        assert not chip8.sound_active()

    def test_timers_stop_at_zero(self):
        chip8 = Interpreter()
        chip8.decrement_timers()
        assert chip8.state.delay_timer == 0
        assert chip8.state.sound_timer == 0

    def test_tick_does_not_touch_timers(self):
        chip8 = run(machine(0x6005, 0xF015, 0x6000, 0x6000), 4)
        assert chip8.state.delay_timer == 5


class TestKeyWait:
    """Test FX0A suspension."""

    def test_wait_holds_pc(self):
        chip8 = machine(0xF30A, 0x1202)
        chip8.tick()
        assert chip8.awaiting_key == 3
        for _ in range(5):
            assert chip8.tick() is None
            assert chip8.pc == 0x200

    def test_key_press_resumes(self):
        chip8 = machine(0xF30A, 0x1202)
        run(chip8, 3)
        chip8.set_key(0xB, True)
        chip8.tick()
        assert chip8.pc == 0x202
        assert chip8.v[3] == 0xB
        assert chip8.awaiting_key is None

    def test_key_already_down(self):
        chip8 = machine(0xF30A)
        chip8.set_key(4, True)
        chip8.tick()
        assert chip8.v[3] == 4
        assert chip8.pc == 0x202
        assert chip8.awaiting_key is None

    def test_lowest_key_wins(self):
        chip8 = machine(0xF00A)
        chip8.tick()
        chip8.set_key(9, True)
        chip8.set_key(2, True)
        chip8.tick()
        assert chip8.v[0] == 2

    def test_timers_run_while_waiting(self):
        chip8 = run(machine(0x6002, 0xF015, 0xF00A), 3)
        chip8.decrement_timers()
        assert chip8.state.delay_timer == 1


class TestKeypad:
    """Test keypad accessors."""

    def test_set_and_release(self):
        chip8 = Interpreter()
        chip8.set_key(0xF, True)
        assert chip8.state.keys[0xF] == 1
        chip8.set_key(0xF, False)
        assert chip8.state.keys[0xF] == 0

    @pytest.mark.parametrize("index", [-1, 16])
    def test_invalid_key(self, index):
        with pytest.raises(ValueError):
            Interpreter().set_key(index, True)

    def test_release_all(self):
        chip8 = Interpreter()
        chip8.set_key(1, True)
        chip8.set_key(2, True)
        chip8.release_all_keys()
        assert not any(chip8.state.keys)
