
from .naming import sanitize_device_id, ALLOWED_CHARACTERS, REPLACEMENT
from .async_helpers import run_with_timeout

__all__ = [
    'sanitize_device_id',
    'ALLOWED_CHARACTERS',
    'REPLACEMENT',
    'run_with_timeout',
]
