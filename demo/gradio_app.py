"""chip8-vm Interactive Demo.

A Gradio web interface for running CHIP-8 programs and viewing the display.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write programs as hex words or upload a .ch8 ROM
    - Hold hex keys for the whole run
    - See the final framebuffer, machine state and execution trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
import numpy as np

from chip8_vm import Chip8Error, Emulator, Quirks, Rom
from chip8_vm.peripherals import DummyPeripherals


PIXEL_SCALE = 8
ON_COLOR = (100, 255, 100)
OFF_COLOR = (20, 50, 80)


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Hex digits 0-7": """6000 6101 6201      ; digit, x, y
F029 D125           ; I = glyph(V0), draw
7105 7001           ; x += 5, digit++
3008 1206           ; loop until digit == 8
1212                ; spin""",

    "BCD of 234": """63EA A300 F333      ; V3 = 234, store BCD at 0x300
F265                ; V0..V2 = 2, 3, 4
6A02 6B02           ; x, y
F029 DAB5 7A05      ; hundreds
F129 DAB5 7A05      ; tens
F229 DAB5           ; ones
121C                ; spin""",

    "Wait for key": """00E0
F00A                ; V0 = next key pressed
F029 6A1C 6B0D DAB5 ; draw it in the middle
1202                ; wait again""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def strip_comments(source: str) -> str:
    return "\n".join(line.split(";", 1)[0] for line in source.splitlines())


def render_display(emulator: Emulator) -> np.ndarray:
    """Framebuffer as an upscaled RGB image."""
    cells = np.array(emulator.interpreter.display_rows(), dtype=np.uint8)
    image = np.where(cells[..., None] == 1, ON_COLOR, OFF_COLOR).astype(np.uint8)
    return image.repeat(PIXEL_SCALE, axis=0).repeat(PIXEL_SCALE, axis=1)


def parse_keys(keys: str) -> set:
    """Parse held keys such as "5 8 A" into key indices."""
    held = set()
    for token in keys.replace(",", " ").split():
        index = int(token, 16)
        if not 0 <= index <= 0xF:
            raise ValueError(f"Invalid key: {token}")
        held.add(index)
    return held


def run_program(program: str, rom_file, frames: int, keys: str, quirk_names: list) -> tuple:
    """Execute a program and return results.

    Args:
        program: Hex instruction words (ignored when a ROM file is given)
        rom_file: Uploaded ROM path or None
        frames: Number of 60Hz frames to run
        keys: Hex keys held for the whole run
        quirk_names: Quirks toggled from their VIP defaults

    Returns:
        Tuple of (display_image, summary_text, trace_text)
    """
    try:
        if rom_file:
            rom = Rom.from_path(rom_file)
        else:
            if not program.strip():
                return None, "Error: No program provided", ""
            rom = Rom.from_hex(strip_comments(program), name="custom")

        quirks = Quirks()
        for name in quirk_names or []:
            quirks = quirks.toggled(name)

        pad = DummyPeripherals()
        pad.pressed = parse_keys(keys or "")

        emulator = Emulator(rom=rom, quirks=quirks, keyboard=pad, screen=pad, tone=pad)
        try:
            emulator.run(int(frames))
            runtime_error = None
        except RuntimeError as e:
            runtime_error = str(e)

    except (Chip8Error, ValueError, OSError) as e:
        return None, f"Error: {e}", ""

    summary = emulator.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"ROM: {summary['rom']} ({len(rom)} bytes)",
        f"Frames: {summary['frames']}",
        f"Cycles: {summary['cycles']}",
        f"PC: 0x{summary['pc']:03X}   I: 0x{summary['i']:03X}",
        f"Stack depth: {summary['stack_depth']}",
        f"Screen updates: {pad.frames_drawn}",
    ]
    if summary["awaiting_key"] is not None:
        summary_lines.append(f"Waiting for key into V{summary['awaiting_key']:X}")
    if summary["error"]:
        summary_lines.append(f"\nHalted: {summary['error']}")
    if runtime_error:
        summary_lines.append(f"\nRuntime: {runtime_error}")
    summary_lines.append("")
    for name, value in summary["registers"].items():
        summary_lines.append(f"  {name}: 0x{value:02X} ({value})")

    trace = list(emulator.trace)
    trace_lines = ["EXECUTION TRACE (most recent)", "=" * 60]
    for entry in trace[-100:]:
        status = f"  !! {entry.error}" if entry.error else ""
        trace_lines.append(
            f"[{entry.cycle:>6}] 0x{entry.address:03X}  {entry.word:04X}  {entry.mnemonic}{status}"
        )

    return render_display(emulator), "\n".join(summary_lines), "\n".join(trace_lines)


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-vm Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8-vm: CHIP-8 Interpreter

        Runs a CHIP-8 program headlessly for a number of 60Hz frames and shows
        the resulting 64x32 display.

        **Pipeline**: `fetch -> decode -> Instruction -> registry -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex digits 0-7",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Hex digits 0-7"],
                    label="Hex Words (';' starts a comment)",
                    lines=12,
                )

                rom_upload = gr.File(label="...or upload a .ch8 ROM", type="filepath")

                gr.Markdown("### Settings")

                with gr.Row():
                    frames = gr.Slider(
                        minimum=1,
                        maximum=3600,
                        value=60,
                        step=1,
                        label="Frames"
                    )
                    keys_input = gr.Textbox(
                        value="",
                        label="Held Keys",
                        placeholder="e.g. 5 A"
                    )

                quirks_input = gr.CheckboxGroup(
                    choices=list(Quirks.names()),
                    label="Toggle Quirks",
                    info="Flip a behaviour switch from its COSMAC VIP default"
                )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                display_output = gr.Image(label="Display", interactive=False)
                with gr.Row():
                    summary_output = gr.Textbox(label="Summary", lines=14, interactive=False)
                    trace_output = gr.Textbox(label="Execution Trace", lines=14, interactive=False)

        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Word | Mnemonic | Effect |
            |------|----------|--------|
            | `00E0` | `CLS` | Clear display |
            | `1NNN` | `JP NNN` | Jump |
            | `2NNN` | `CALL NNN` | Call subroutine |
            | `6XNN` | `LD VX, NN` | Load immediate |
            | `7XNN` | `ADD VX, NN` | Add immediate (no carry) |
            | `8XY4` | `ADD VX, VY` | Add, VF = carry |
            | `ANNN` | `LD I, NNN` | Set index |
            | `DXYN` | `DRW VX, VY, N` | Draw sprite, VF = collision |
            | `FX0A` | `LD VX, K` | Wait for key |
            | `FX29` | `LD F, VX` | Point I at font glyph |
            | `FX33` | `LD B, VX` | Store BCD |
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_upload, frames, keys_input, quirks_input],
            outputs=[display_output, summary_output, trace_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
