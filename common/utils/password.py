"""
Password policy validation.

Configurable length and character-class checks. Hashing lives with the
service that stores credentials; this module only decides whether a
candidate password is acceptable.

Example:
    from common.utils import validate_password

    is_valid, errors = validate_password("pw123456", min_length=8, max_length=100)
"""

import re
from typing import List, Tuple, Optional


def validate_password(
    password: str,
    min_length: int = 8,
    max_length: int = 128,
    require_uppercase: bool = False,
    require_lowercase: bool = False,
    require_digit: bool = False,
    require_special: bool = False,
    special_chars: str = r"!@#$%^&*(),.?\":{}|<>",
    disallowed_patterns: Optional[List[str]] = None,
) -> Tuple[bool, List[str]]:
    """
    Validate password against a policy.

    Args:
        password: The password to validate
        min_length: Minimum password length
        max_length: Maximum password length
        require_uppercase: Require at least one uppercase letter
        require_lowercase: Require at least one lowercase letter
        require_digit: Require at least one digit
        require_special: Require at least one special character
        special_chars: String of allowed special characters
        disallowed_patterns: List of regex patterns that are not allowed

    Returns:
        Tuple of (is_valid: bool, errors: List[str])

    Examples:
        >>> validate_password("short")
        (False, ['Password must be at least 8 characters'])
        >>> validate_password("pw123456")
        (True, [])
    """
    if not isinstance(password, str):
        return False, ["Password must be a string"]

    errors: List[str] = []

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters")

    if len(password) > max_length:
        errors.append(f"Password must be no more than {max_length} characters")

    if require_uppercase and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")

    if require_lowercase and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")

    if require_digit and not re.search(r"\d", password):
        errors.append("Password must contain at least one digit")

    if require_special:
        escaped_chars = re.escape(special_chars)
        if not re.search(f"[{escaped_chars}]", password):
            errors.append("Password must contain at least one special character")

    if disallowed_patterns:
        for pattern in disallowed_patterns:
            if re.search(pattern, password, re.IGNORECASE):
                errors.append("Password contains disallowed pattern")
                break

    return len(errors) == 0, errors
