"""
Call context data model for a single call-setup event.

Represents what the host runtime knows about the call when it asks for a
decision. The account resolver and caller-id selector update it in place.
"""

import re
from dataclasses import dataclass
from typing import Optional
from datetime import datetime

_DIGITS = re.compile(r"[0-9]+")

# Largest id a signed 64-bit integer column holds
ACCOUNT_ID_MAX = 2 ** 63 - 1


def is_digits(value: Optional[str]) -> bool:
    """Return True when value is a non-empty string of ASCII digits."""
    return bool(value) and _DIGITS.fullmatch(value) is not None


def is_account_id(value: Optional[str]) -> bool:
    """Return True when value can be looked up as an account id."""
    return is_digits(value) and int(value) <= ACCOUNT_ID_MAX


@dataclass
class CallContext:
    """
    One call-setup event handed over by the host runtime.
    """
    # Call identification
    call_id: str  # Asterisk uniqueid
    channel_name: str = ""

    # Caller information
    caller_number: str = ""
    caller_name: str = ""

    # Call target and billing identity
    dialed_number: str = ""
    account_id: str = ""

    # Timestamps
    received_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate call context."""
        if not self.call_id:
            raise ValueError("Call ID cannot be empty")

        if self.received_at is None:
            self.received_at = datetime.now()

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "call_id": self.call_id,
            "channel_name": self.channel_name,
            "caller_number": self.caller_number,
            "caller_name": self.caller_name,
            "dialed_number": self.dialed_number,
            "account_id": self.account_id,
            "received_at": self.received_at.isoformat() if self.received_at else None,
        }
