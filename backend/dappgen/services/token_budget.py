"""
Token budget gate.

Every LLM request belongs to a request class with a fixed token budget. A
request is admitted only if the whole class budget still fits under
TOTAL_MAX; there is no partial admission.

Per-user usage lives in a 24-hour window that is rolled lazily whenever a
record is read or updated (there is no background timer).
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum

from dappgen.models.schemas import TokenStatus, UserData

TOTAL_MAX = 17_500

RESET_WINDOW_MS = 24 * 60 * 60 * 1000


class RequestClass(str, Enum):
    INITIAL = "INITIAL"
    RETRY = "RETRY"
    OPTIMIZATION = "OPTIMIZATION"


@dataclass(frozen=True)
class Budget:
    user_input: int
    system_prompt: int
    ai_output: int
    total: int


BUDGETS: dict[RequestClass, Budget] = {
    RequestClass.INITIAL: Budget(user_input=250, system_prompt=500, ai_output=6000, total=7000),
    RequestClass.RETRY: Budget(user_input=250, system_prompt=500, ai_output=2000, total=3000),
    RequestClass.OPTIMIZATION: Budget(user_input=100, system_prompt=300, ai_output=2000, total=2500),
}


def now_ms() -> int:
    return int(time.time() * 1000)


def can_make_request(current_total: int, request_class: RequestClass) -> bool:
    """True iff the full budget of *request_class* fits in what is left."""
    remaining = TOTAL_MAX - current_total
    return remaining >= BUDGETS[request_class].total


def estimate_request_tokens(input_text: str, request_class: RequestClass) -> int:
    """Rough token estimate: ~4 characters per input token plus fixed overheads."""
    budget = BUDGETS[request_class]
    input_tokens = math.ceil(len(input_text) / 4)
    return input_tokens + budget.system_prompt + budget.ai_output


def window_expired(last_reset: int, now: int) -> bool:
    return now - last_reset >= RESET_WINDOW_MS


def roll_window(user: UserData, now: int, incoming: int = 0) -> bool:
    """Apply *incoming* usage to *user* in place, resetting an expired window.

    On rollover usage restarts at *incoming* (zero for a plain read) and
    lastTokenReset moves to *now*. Returns True when the window was reset.
    """
    if window_expired(user.last_token_reset, now):
        user.token_usage = incoming
        user.last_token_reset = max(user.last_token_reset, now)
        return True
    user.token_usage += incoming
    return False


def token_status(user: UserData | None, now: int, required: int) -> TokenStatus:
    """Quota view for *user*. The caller is expected to have rolled the window."""
    if user is None:
        return TokenStatus(can_use=True, remaining_tokens=TOTAL_MAX, next_reset_time=now)

    remaining = TOTAL_MAX - user.token_usage
    return TokenStatus(
        can_use=remaining >= required,
        remaining_tokens=remaining,
        next_reset_time=user.last_token_reset + RESET_WINDOW_MS,
    )


def time_until_reset(last_reset: int, now: int) -> str:
    time_left = last_reset + RESET_WINDOW_MS - now
    if time_left <= 0:
        return "Ready to reset"

    hours = time_left // (60 * 60 * 1000)
    minutes = (time_left % (60 * 60 * 1000)) // (60 * 1000)
    return f"{hours}h {minutes}m"
