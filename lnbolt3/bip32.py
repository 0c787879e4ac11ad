"""BIP32 private key derivation on top of coincurve.

Only the private derivation we need for channel keys: master key from
seed, hardened and normal child derivation, and path strings like
m/1017'/0'/1'/0/7.
"""
import hashlib
import hmac
import struct
import coincurve
from coincurve.context import Context
from typing import List
from .errors import KeyDerivationError

HARDENED = 0x80000000


def _hmac_sha512(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


class ExtendedKey(object):
    """A BIP32 extended private key: secret plus chain code"""

    def __init__(self, privkey: coincurve.PrivateKey, chaincode: bytes):
        if len(chaincode) != 32:
            raise KeyDerivationError("chaincode must be 32 bytes, not {}".format(len(chaincode)))
        self.privkey = privkey
        self.chaincode = chaincode

    @classmethod
    def from_seed(cls, seed: bytes, ctx: Context) -> 'ExtendedKey':
        # BIP32: I = HMAC-SHA512(Key = "Bitcoin seed", Data = S)
        I = _hmac_sha512(b"Bitcoin seed", seed)
        try:
            privkey = coincurve.PrivateKey(I[:32], context=ctx)
        except ValueError:
            # BIP32: In case IL is 0 or >= n, the master key is invalid.
            raise KeyDerivationError("seed {} gives an invalid master key".format(seed.hex()))
        return cls(privkey, I[32:])

    def derive_child(self, index: int) -> 'ExtendedKey':
        if not 0 <= index <= 0xFFFFFFFF:
            raise KeyDerivationError("child index {} out of range".format(index))
        if index >= HARDENED:
            data = b"\x00" + self.privkey.secret + struct.pack(">I", index)
        else:
            data = self.privkey.public_key.format() + struct.pack(">I", index)
        I = _hmac_sha512(self.chaincode, data)
        try:
            # BIP32: ki = parse256(IL) + kpar (mod n), invalid if IL >= n or ki = 0.
            child = self.privkey.add(I[:32], update=False)
        except ValueError:
            raise KeyDerivationError("child {} is invalid, use the next index".format(index))
        return ExtendedKey(child, I[32:])

    def derive_path(self, path: List[int]) -> 'ExtendedKey':
        key = self
        for index in path:
            key = key.derive_child(index)
        return key


def parse_path(path: str) -> List[int]:
    """Parse a path like m/1017'/0'/3'/0/1 into child indices"""
    parts = path.strip().split("/")
    if parts[0] == "m":
        parts = parts[1:]
    indices = []
    for part in parts:
        hardened = part.endswith(("'", "h", "H"))
        try:
            idx = int(part.rstrip("'hH"))
        except ValueError:
            raise KeyDerivationError("bad path component {} in {}".format(part, path))
        if not 0 <= idx < HARDENED:
            raise KeyDerivationError("path component {} out of range".format(part))
        if hardened:
            idx += HARDENED
        indices.append(idx)
    return indices


def test_bip32_vector1() -> None:
    # BIP32 Test vector 1, Seed (hex): 000102030405060708090a0b0c0d0e0f
    ctx = Context()
    master = ExtendedKey.from_seed(bytes.fromhex('000102030405060708090a0b0c0d0e0f'), ctx)
    assert master.privkey.secret.hex() == 'e8f32e723decf4051aefac8e2c93c9c5b214313817cdb01a1494b917c8436b35'
    assert master.chaincode.hex() == '873dff81c02f525623fd1fe5167eac3a55a049de3d314bb42ee227ffed37d508'

    # Chain m/0H
    child = master.derive_path(parse_path("m/0'"))
    assert child.privkey.secret.hex() == 'edb2e14f9ee77d26dd93b4ecede8d16ed408ce149b6cd80b0715a2d911a0afea'
    assert child.chaincode.hex() == '47fdacbd0f1097043b78c63c20c34ef4ed9a111d980047ad16282c7ae6236141'

    # Chain m/0H/1 (a normal child)
    child = master.derive_path(parse_path("m/0'/1"))
    assert child.privkey.secret.hex() == '3c6cb8d0f6a264c91ea8b5030fadaa8e538b020f0a387421a12de9319dc93368'


def test_bip32_bad_path() -> None:
    for path in ("m/foo", "m/2147483648", "m/-1'"):
        try:
            parse_path(path)
            assert False, "{} should not parse".format(path)
        except KeyDerivationError:
            pass
