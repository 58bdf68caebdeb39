from fpedia.crypto import encrypt, decrypt

KEY = "0123456789abcdef0123456789abcdef"


def test_roundtrip_uses_iv_envelope():
    stored = encrypt("user@mail.test", KEY)
    iv_hex, sep, ct_hex = stored.partition(":")
    assert sep == ":"
    assert len(iv_hex) == 32
    assert ct_hex and len(ct_hex) % 32 == 0
    assert decrypt(stored, KEY) == "user@mail.test"


def test_fresh_iv_per_value():
    assert encrypt("same", KEY) != encrypt("same", KEY)


def test_without_key_values_pass_through():
    assert encrypt("plain", "") == "plain"
    assert encrypt("plain", "too-short") == "plain"
    assert decrypt("plain", "") == "plain"


def test_legacy_plain_values_stay_readable():
    assert decrypt("hunter2", KEY) == "hunter2"
    # contains ':' but is not an envelope
    assert decrypt("pass:word", KEY) == "pass:word"
