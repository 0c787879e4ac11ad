#! /usr/bin/python3
# A tweak which cancels the key out must fail, never wrap around.
from typing import Callable, Dict
import hashlib
import coincurve
import pytest
from lnbolt3 import TweakError, tweak

# Order of the secp256k1 group.
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

BASE_SECRET = 0x1234


class FixedDigest(object):
    def __init__(self, digest: bytes):
        self._digest = digest

    def digest(self) -> bytes:
        return self._digest


def fixed_sha256(tweaks: Dict[bytes, int]) -> Callable[[bytes], FixedDigest]:
    """sha256 replacement returning chosen scalars for chosen inputs"""
    def _sha256(data: bytes) -> FixedDigest:
        if bytes(data) in tweaks:
            return FixedDigest(tweaks[bytes(data)].to_bytes(32, 'big'))
        return FixedDigest(hashlib.sha256(data).digest())
    return _sha256


def secret(n: int) -> coincurve.PrivateKey:
    return coincurve.PrivateKey(n.to_bytes(32, 'big'))


def test_basepoint_tweak_to_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    base = secret(BASE_SECRET)
    point = secret(0x5678).public_key
    # base + (N - base) == 0 mod N
    tweaks = {point.format() + base.public_key.format(): N - BASE_SECRET}
    monkeypatch.setattr(tweak, 'sha256', fixed_sha256(tweaks))

    with pytest.raises(TweakError):
        tweak.derive_privkey(base, point)
    with pytest.raises(TweakError):
        tweak.derive_pubkey(base.public_key, point)


def test_revocation_tweak_to_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    revocation_base = secret(BASE_SECRET)
    per_commitment_secret = secret(1)
    rb = revocation_base.public_key.format()
    pcp = per_commitment_secret.public_key.format()
    # BASE_SECRET * 1 + 1 * (N - BASE_SECRET) == 0 mod N
    tweaks = {rb + pcp: 1, pcp + rb: N - BASE_SECRET}
    monkeypatch.setattr(tweak, 'sha256', fixed_sha256(tweaks))

    with pytest.raises(TweakError):
        tweak.revocation_privkey(revocation_base, per_commitment_secret)
    with pytest.raises(TweakError):
        tweak.revocation_pubkey(revocation_base.public_key, per_commitment_secret.public_key)


def test_ordinary_tweaks_still_work(monkeypatch: pytest.MonkeyPatch) -> None:
    base = secret(BASE_SECRET)
    point = secret(0x5678).public_key
    monkeypatch.setattr(tweak, 'sha256', fixed_sha256({}))
    assert tweak.derive_privkey(base, point).public_key.format() == tweak.derive_pubkey(base.public_key, point).format()
