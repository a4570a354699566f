"""Device identifier sanitization for the hub identity namespace."""
import string

# Characters the hub accepts in a device id.
ALLOWED_CHARACTERS = frozenset(string.ascii_letters + string.digits + "-.+%_#*?!(),:=@$'")
REPLACEMENT = "_"


def sanitize_device_id(raw_id: str) -> str:
    """Replace every character outside ALLOWED_CHARACTERS with REPLACEMENT.

    REPLACEMENT is itself allowed, so applying this twice gives the same
    result as applying it once.
    """
    return "".join(ch if ch in ALLOWED_CHARACTERS else REPLACEMENT for ch in raw_id)
