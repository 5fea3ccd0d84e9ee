"""Emulator: driver loop around the CHIP-8 interpreter.

The emulator plays the part of the external driver:

    KEYBOARD -> set_key -> TICK x instructions_per_frame -> TIMERS -> SCREEN/TONE

Each tick is recorded as a trace entry with before/after snapshots so a run
can be audited after the fact. Interpreter errors halt the emulator; they
are recorded in the trace and exposed through `error` rather than raised.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Union

from .config import Quirks
from .errors import Chip8Error
from .interpreter import Interpreter
from .peripherals import HexKeyboard, Screen, Tone
from .rom import Rom
from .state import DISPLAY_HEIGHT, DISPLAY_WIDTH

logger = logging.getLogger(__name__)


@dataclass
class TraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Tick number (0-indexed)
        address: PC before the tick
        word: Instruction word at that address
        mnemonic: Disassembly of the word, or "<WAIT KEY>" for an idle tick
        pre_state: Snapshot before the tick
        post_state: Snapshot after the tick
        error: Error message if the tick failed
    """
    cycle: int
    address: int
    word: int
    mnemonic: str
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Emulator:
    """Headless CHIP-8 driver.

    Attributes:
        interpreter: The machine being driven
        instructions_per_frame: Ticks executed between timer decrements
        max_cycles: Maximum ticks before a forced halt (safety limit)
        trace: Most recent trace entries
        halted: Whether execution stopped on an error or the cycle limit
        error: The interpreter error that halted execution, if any
    """

    DEFAULT_INSTRUCTIONS_PER_FRAME = 11
    DEFAULT_MAX_CYCLES = 1_000_000
    DEFAULT_TRACE_LIMIT = 1000

    def __init__(
        self,
        rom: Optional[Union[Rom, bytes]] = None,
        quirks: Optional[Quirks] = None,
        rng=None,
        instructions_per_frame: int = DEFAULT_INSTRUCTIONS_PER_FRAME,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        trace_limit: int = DEFAULT_TRACE_LIMIT,
        screen: Optional[Screen] = None,
        tone: Optional[Tone] = None,
        keyboard: Optional[HexKeyboard] = None,
    ):
        if instructions_per_frame < 1:
            raise ValueError("instructions_per_frame must be at least 1")
        self.interpreter = Interpreter(quirks=quirks, rng=rng)
        self.instructions_per_frame = instructions_per_frame
        self.max_cycles = max_cycles
        self.trace: Deque[TraceEntry] = deque(maxlen=trace_limit)
        self.screen = screen
        self.tone = tone
        self.keyboard = keyboard
        self.rom: Optional[Rom] = None
        self.halted = False
        self.error: Optional[Chip8Error] = None
        self.cycle_count = 0
        self.frame_count = 0
        if rom is not None:
            self.load_rom(rom)

    def load_rom(self, rom: Union[Rom, bytes]) -> None:
        """Reset the machine and load a program.

        Args:
            rom: A Rom, or raw bytes (wrapped as an unnamed Rom)
        """
        if not isinstance(rom, Rom):
            rom = Rom.from_bytes("unnamed", rom)
        self.interpreter.reset()
        self.interpreter.load(rom)
        self.rom = rom
        self.trace.clear()
        self.halted = False
        self.error = None
        self.cycle_count = 0
        self.frame_count = 0
        logger.info("Loaded ROM %r (%d bytes)", rom.name, len(rom))

    def step(self) -> TraceEntry:
        """Execute a single tick.

        Returns:
            TraceEntry for the tick

        Raises:
            RuntimeError: If the emulator is halted or max cycles is reached
        """
        if self.halted:
            raise RuntimeError("Emulator is halted")

        if self.cycle_count >= self.max_cycles:
            self.halted = True
            raise RuntimeError(f"Max cycles ({self.max_cycles}) exceeded")

        interpreter = self.interpreter
        address = interpreter.pc
        word = interpreter.fetch()
        pre_state = interpreter.snapshot()
        waiting = interpreter.awaiting_key is not None

        error = None
        try:
            interpreter.tick()
        except Chip8Error as e:
            error = str(e)
            self.error = e
            self.halted = True
            logger.error("Halted after %d cycles: %s", self.cycle_count, e)

        if waiting:
            mnemonic = "<WAIT KEY>"
        else:
            mnemonic = interpreter.decoder.decode(word).mnemonic()

        entry = TraceEntry(
            cycle=self.cycle_count,
            address=address,
            word=word,
            mnemonic=mnemonic,
            pre_state=pre_state,
            post_state=interpreter.snapshot(),
            error=error,
        )
        self.trace.append(entry)
        self.cycle_count += 1
        return entry

    def run_frame(self) -> None:
        """Run one 60Hz frame: poll input, tick, count timers down, present output."""
        interpreter = self.interpreter

        if self.keyboard is not None:
            interpreter.release_all_keys()
            for key in self.keyboard.get_pressed_keys():
                interpreter.set_key(key, True)

        for _ in range(self.instructions_per_frame):
            if self.halted:
                break
            self.step()

        interpreter.decrement_timers()
        self.frame_count += 1

        if self.screen is not None and interpreter.consume_draw_flag():
            self.screen.draw_buffer(interpreter.display(), DISPLAY_WIDTH, DISPLAY_HEIGHT)

        if self.tone is not None:
            should_sound = interpreter.sound_active()
            if should_sound and not self.tone.is_tone_on():
                self.tone.start_tone()
            elif not should_sound and self.tone.is_tone_on():
                self.tone.stop_tone()

    def run(self, frames: Optional[int] = None) -> List[TraceEntry]:
        """Run frames until halted, or until `frames` frames have run.

        Args:
            frames: Number of frames to run (None runs until halted)

        Returns:
            The retained execution trace

        Raises:
            RuntimeError: If no ROM is loaded or max cycles is exceeded
        """
        if self.rom is None:
            raise RuntimeError("No ROM loaded")

        done = 0
        while not self.halted and (frames is None or done < frames):
            self.run_frame()
            done += 1

        logger.debug("Ran %d frames, %d cycles total", done, self.cycle_count)
        return list(self.trace)

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Framebuffer as text, one line per row."""
        return "\n".join(
            "".join(on if cell else off for cell in row)
            for row in self.interpreter.display_rows()
        )

    def dump_registers(self) -> Dict[str, int]:
        return self.interpreter.state.dump_registers()

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with run statistics and final machine state
        """
        state = self.interpreter.state
        return {
            "rom": self.rom.name if self.rom else None,
            "cycles": self.cycle_count,
            "frames": self.frame_count,
            "halted": self.halted,
            "registers": self.dump_registers(),
            "i": state.i,
            "pc": state.pc,
            "stack_depth": len(state.stack),
            "awaiting_key": state.awaiting_key,
            "error": str(self.error) if self.error else None,
        }

    def print_trace(self) -> None:
        """Print the retained trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"[{entry.cycle:>7}] 0x{entry.address:03X}  {entry.word:04X}  "
                  f"{entry.mnemonic:<20} {status}")

            pre_v = entry.pre_state["v"]
            post_v = entry.post_state["v"]
            changes = [
                f"V{index:X}: {before:02X} -> {after:02X}"
                for index, (before, after) in enumerate(zip(pre_v, post_v))
                if before != after
            ]
            if entry.pre_state["i"] != entry.post_state["i"]:
                changes.append(f"I: {entry.pre_state['i']:03X} -> {entry.post_state['i']:03X}")
            if changes:
                print(f"          Changes: {', '.join(changes)}")

        print("=" * 70)
        print(f"FINAL STATE: {self.interpreter.state}")
