"""Destination phone number normalization."""

import re
from typing import Union

from session_gateway.core.errors import InvalidPhoneNumberError

# Suffix marking an individual chat id on the network
CHAT_ID_SUFFIX = "@c.us"

NON_DIGIT_PATTERN = re.compile(r"\D")


def format_phone_number(
    number: Union[str, int],
    country_code: str = "91",
    national_length: int = 10,
) -> str:
    """
    Convert a caller-supplied number into a chat id.

    Non-digits are stripped. Bare national numbers get the default country
    code; numbers already carrying it, and anything else long enough, pass
    through unchanged.

    Args:
        number: Phone number in any common notation
        country_code: Default country code for national numbers
        national_length: Digits in a national number (also the minimum length)

    Returns:
        Chat id such as ``919876543210@c.us``

    Raises:
        InvalidPhoneNumberError: Fewer than national_length digits remain
    """
    digits = NON_DIGIT_PATTERN.sub("", str(number))

    if len(digits) < national_length:
        raise InvalidPhoneNumberError(str(number))

    if len(digits) == national_length:
        return f"{country_code}{digits}{CHAT_ID_SUFFIX}"

    # Already international (with or without the default country code)
    return f"{digits}{CHAT_ID_SUFFIX}"
