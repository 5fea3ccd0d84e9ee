"""Quirks: behaviour switches where CHIP-8 interpreters disagree.

The defaults follow the original COSMAC VIP interpreter for the two
documented ambiguities (shift source and jump-with-offset register), and
leave VF and I untouched by the logic and load/store opcodes.
"""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class Quirks:
    """Interpreter behaviour switches.

    Attributes:
        shift_uses_vy: 8XY6/8XYE shift VY into VX (VIP) instead of shifting VX in place
        jump_uses_vx: BXNN jumps to XNN + VX instead of NNN + V0 (VIP)
        logic_resets_vf: 8XY1/8XY2/8XY3 clear VF after the operation
        load_store_increments_i: FX55/FX65 leave I pointing past the last register
    """
    shift_uses_vy: bool = True
    jump_uses_vx: bool = False
    logic_resets_vf: bool = False
    load_store_increments_i: bool = False

    @classmethod
    def names(cls) -> tuple:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "Quirks":
        """Build quirks from a plain mapping.

        Args:
            values: Quirk name to truthy value; missing names keep their default

        Returns:
            New Quirks instance

        Raises:
            ValueError: If a name is not a known quirk
        """
        unknown = set(values) - set(cls.names())
        if unknown:
            raise ValueError(f"Unknown quirk(s): {', '.join(sorted(unknown))}")
        return cls(**{name: bool(value) for name, value in values.items()})

    def toggled(self, name: str) -> "Quirks":
        """Return a copy with one quirk flipped."""
        current = self.to_dict()
        if name not in current:
            raise ValueError(f"Unknown quirk: {name}")
        current[name] = not current[name]
        return Quirks(**current)

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


VIP_QUIRKS = Quirks()
