# Content checks on free-text revision instructions, applied before any
# provider call.

import re
from dataclasses import dataclass

MIN_INSTRUCTION_LENGTH = 3
MAX_INSTRUCTION_LENGTH = 500

_HARMFUL_PATTERNS = (
    re.compile(r"\b(violent|kill|harm|hate|racist|sexist|homophobic|transphobic)\b", re.IGNORECASE),
    re.compile(r"\b(terrorist|isis|al-qaeda)\b", re.IGNORECASE),
    re.compile(r"\b(drug|overdose|suicide)\b", re.IGNORECASE),
)

_COPYRIGHT_PATTERNS = (
    re.compile(r"copy\s+the\s+lyrics", re.IGNORECASE),
    re.compile(r"use\s+the\s+same\s+words", re.IGNORECASE),
    re.compile(r"exactly\s+like", re.IGNORECASE),
    re.compile(r"sound\s+like\s+\w+\s+song", re.IGNORECASE),
)


@dataclass(frozen=True)
class InstructionCheck:
    valid: bool
    reason: str | None = None


def validate_revision_instruction(instruction: str) -> InstructionCheck:
    """Reject harmful, copyright-seeking, too short or too long instructions.

    Checks run in that order, so a short harmful instruction reports the
    content problem. Only the short check trims whitespace.
    """
    if any(p.search(instruction) for p in _HARMFUL_PATTERNS):
        return InstructionCheck(False, "Revision instruction contains inappropriate content")
    if any(p.search(instruction) for p in _COPYRIGHT_PATTERNS):
        return InstructionCheck(False, "Revision instruction may request copyrighted material")
    if len(instruction.strip()) < MIN_INSTRUCTION_LENGTH:
        return InstructionCheck(False, "Revision instruction is too short")
    if len(instruction) > MAX_INSTRUCTION_LENGTH:
        return InstructionCheck(False, "Revision instruction is too long")
    return InstructionCheck(True)
