import pytest

from twinbridge.utils.naming import ALLOWED_CHARACTERS, REPLACEMENT, sanitize_device_id


@pytest.mark.parametrize("raw, expected", [
    ("virtual-things-2", "virtual-things-2"),
    ("zb-0017880103a8f1d2", "zb-0017880103a8f1d2"),
    ("living room/lamp", "living_room_lamp"),
    ("temp~sensor[1]", "temp_sensor_1_"),
    ("café", "caf_"),
    ("a.b+c%d#e*f?g!h(i)j,k:l=m@n$o'p", "a.b+c%d#e*f?g!h(i)j,k:l=m@n$o'p"),
])
def test_sanitize_replaces_disallowed_characters(raw, expected):
    assert sanitize_device_id(raw) == expected


@pytest.mark.parametrize("raw", ["", "plain", "white space", "ü/ñ\\x", "<>{}[]|^`\"", "\t\n"])
def test_sanitize_is_idempotent_and_stays_in_allowed_set(raw):
    once = sanitize_device_id(raw)
    assert sanitize_device_id(once) == once
    assert len(once) == len(raw)
    assert all(ch in ALLOWED_CHARACTERS for ch in once)


def test_replacement_is_itself_allowed():
    assert REPLACEMENT in ALLOWED_CHARACTERS
