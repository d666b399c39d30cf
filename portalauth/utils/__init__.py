"""
Utility functions - clock helpers and form validation.
"""

from portalauth.utils.clock import Clock, ManualClock, from_millis, to_millis, utc_now
from portalauth.utils.validators import validate_fields, validate_string_safe

__all__ = [
    "Clock",
    "ManualClock",
    "from_millis",
    "to_millis",
    "utc_now",
    "validate_fields",
    "validate_string_safe",
]
