"""
Discord permission bit flags and helpers
"""
from typing import Iterable

VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
READ_MESSAGE_HISTORY = 1 << 16
MANAGE_CHANNELS = 1 << 4
ADMINISTRATOR = 1 << 3

MEMBER_ACCESS = VIEW_CHANNEL | SEND_MESSAGES | READ_MESSAGE_HISTORY
BOT_ACCESS = MEMBER_ACCESS | MANAGE_CHANNELS


def combine(flags: Iterable[int]) -> int:
    """OR a sequence of permission flags together"""
    value = 0
    for flag in flags:
        value |= flag
    return value


def has_permission(bitfield: int, flag: int) -> bool:
    """Check a permission bitfield, treating ADMINISTRATOR as all permissions"""
    if bitfield & ADMINISTRATOR:
        return True
    return (bitfield & flag) == flag
