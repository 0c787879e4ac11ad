#! /usr/bin/python3
import string
import coincurve
from bitcoin.core.contrib.ripemd160 import ripemd160 as _ripemd160
from coincurve.context import Context
from enum import IntEnum
from .errors import EncodingError

# Commitment numbers (and shachain indices) are 48 bits.
MAX_COMMITMENT_INDEX = (1 << 48) - 1


class Side(IntEnum):
    local = 0
    remote = 1


def check_hex(val: str, digits: int) -> str:
    if not all(c in string.hexdigits for c in val):
        raise EncodingError("{} is not valid hex".format(val))
    if len(val) != digits:
        raise EncodingError("{} not {} characters long".format(val, digits))
    return val


def privkey_expand(secret: str, ctx: Context) -> coincurve.PrivateKey:
    # Privkey can be truncated, since we use tiny values a lot.
    return coincurve.PrivateKey(bytes.fromhex(secret).rjust(32, bytes(1)), context=ctx)


def pubkey_expand(pubkey: str, ctx: Context) -> coincurve.PublicKey:
    try:
        return coincurve.PublicKey(bytes.fromhex(check_hex(pubkey, 66)), context=ctx)
    except ValueError as e:
        raise EncodingError("{} is not a valid pubkey: {}".format(pubkey, e))


def ripemd160(b: bytes) -> bytes:
    # hashlib only has ripemd160 if OpenSSL still ships it.
    return _ripemd160(b)


def revhex(h: str) -> str:
    """Txids are displayed in reverse byte order"""
    return bytes(reversed(bytes.fromhex(h))).hex()


def test_expand() -> None:
    ctx = Context()
    assert privkey_expand('01', ctx).secret == bytes(31) + b'\x01'
    pubkey = privkey_expand('01', ctx).public_key.format().hex()
    assert pubkey == '0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798'
    assert pubkey_expand(pubkey, ctx).format().hex() == pubkey

    for bad in ('05' + '11' * 32, '0279be', 'zz' * 33):
        try:
            pubkey_expand(bad, ctx)
            assert False, "{} should be rejected".format(bad)
        except EncodingError:
            pass


def test_hashes() -> None:
    assert ripemd160(b'').hex() == '9c1185a5c5e9fc54612808977ee8f548b2258d31'
    assert revhex('0102') == '0201'
