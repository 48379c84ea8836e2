"""Instruction classifier: payload prefix to staking action.

The staking program's instruction payloads arrive as opaque base58
strings. Known instructions are recognised by their leading bytes; the
table carries both the long observed form and a 6-character short form
of each key. Lookup is two-phase: exact match on the full payload, then
exact match on its first 6 characters.
"""

from __future__ import annotations

from jupstake.config import JUPITER_STAKING_PROGRAM
from jupstake.core.schema import ActionKind, Instruction

PREFIX_LENGTH = 6

INSTRUCTION_PATTERNS: dict[str, ActionKind] = {
    "akdNKvmXxTg": ActionKind.WITHDRAW_PARTIAL_UNSTAKING,
    "Xd2GMpFXgQ1": ActionKind.WITHDRAW,
    "hXMy9aWmoGcFwgKCTXYVV": ActionKind.INCREASE_LOCKED_AMOUNT,
    "35nv67PJjDCyd": ActionKind.TOGGLE_MAX_LOCK,
    "akdNKv": ActionKind.WITHDRAW_PARTIAL_UNSTAKING,
    "Xd2GMp": ActionKind.WITHDRAW,
    "hXMy9a": ActionKind.INCREASE_LOCKED_AMOUNT,
    "35nv67": ActionKind.TOGGLE_MAX_LOCK,
}


def lookup_payload(data: str) -> ActionKind:
    """Map a raw payload to an action, UNKNOWN when unrecognised."""
    kind = INSTRUCTION_PATTERNS.get(data)
    if kind is None:
        kind = INSTRUCTION_PATTERNS.get(data[:PREFIX_LENGTH])
    return kind or ActionKind.UNKNOWN


def classify(
    instruction: Instruction,
    program_id: str = JUPITER_STAKING_PROGRAM,
) -> ActionKind | None:
    """Classify one instruction.

    Returns None when the instruction belongs to another program; an
    unrecognised payload from the staking program is ActionKind.UNKNOWN.
    """
    if instruction.program_id != program_id:
        return None
    return lookup_payload(instruction.data or "")
