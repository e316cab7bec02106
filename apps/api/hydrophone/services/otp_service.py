"""Time-based one-time passwords (RFC 6238) for patient PIN reset.

Provides:
- A TOTP generator parameterized by secret, time step, start time and digits
- The PIN-reset parameters (30 minute step, 9 digits, epoch start)
- Display formatting of 9-digit codes as XXX-XXX-XXX
"""

import base64
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import pyotp


# =============================================================================
# Configuration
# =============================================================================

PIN_RESET_TIME_STEP = 1800  # 30 minutes
PIN_RESET_DIGITS = 9
PIN_RESET_START_TIME = 0  # epoch

_GROUPS = re.compile(r"^(...)(...)(...)$")


# =============================================================================
# Generator
# =============================================================================


@dataclass(frozen=True)
class TOTP:
    timestamp: int
    otp: str


@dataclass(frozen=True)
class TOTPGenerator:
    """
    HMAC-SHA1 TOTP over ``counter = (unix - start_time) // time_step``.

    Codes are truncated per RFC 4226 and zero-padded to ``digits``.
    """

    secret: str
    time_step: int
    digits: int
    start_time: int = 0

    def _totp(self) -> pyotp.TOTP:
        encoded = base64.b32encode(self.secret.encode("utf-8")).decode("ascii")
        return pyotp.TOTP(encoded, digits=self.digits, interval=self.time_step)

    def at(self, timestamp: int) -> TOTP:
        shifted = datetime.fromtimestamp(int(timestamp) - self.start_time, tz=timezone.utc)
        return TOTP(timestamp=int(timestamp), otp=self._totp().at(shifted))

    def now(self) -> TOTP:
        return self.at(int(time.time()))


def pin_reset_generator(user_id: str, imei: str) -> TOTPGenerator:
    """Generator for a patient's PIN reset: secret is userId + IMEI + userId."""
    return TOTPGenerator(
        secret=f"{user_id}{imei}{user_id}",
        time_step=PIN_RESET_TIME_STEP,
        digits=PIN_RESET_DIGITS,
        start_time=PIN_RESET_START_TIME,
    )


def format_otp(otp: str) -> str:
    """Group a 9-digit code as XXX-XXX-XXX (other lengths are returned as is)."""
    return _GROUPS.sub(r"\1-\2-\3", otp)
