#! /usr/bin/python3
# BOLT #3 Appendix C ("Commitment and HTLC Transaction Test Vectors") setup.
import pytest
import coincurve
from coincurve.context import Context
from lnbolt3 import (ChannelConfig, Commitment, CommitmentKeySet, Direction, Funding, Side,
                     HTLC, KeySet, revhex)
from typing import Callable, List


@pytest.fixture()
def ctx() -> Context:
    return Context()


@pytest.fixture()
def local_keyset(ctx: Context) -> KeySet:
    # We use '99' where the results shouldn't matter.
    return KeySet.from_hex(ctx,
                           # BOLT #3:
                           #     local_funding_privkey: 30ff4956bbdd3222d44cc5e8a1261dab1e07957bdac5ae88fe3261ef321f374901
                           '30ff4956bbdd3222d44cc5e8a1261dab1e07957bdac5ae88fe3261ef321f3749',
                           '99',
                           # BOLT #3:
                           # INTERNAL: local_payment_basepoint_secret: 111111111111111111111111111111111111111111111111111111111111111101
                           '1111111111111111111111111111111111111111111111111111111111111111',
                           # BOLT #3:
                           # INTERNAL: local_delayed_payment_basepoint_secret: 333333333333333333333333333333333333333333333333333333333333333301
                           '3333333333333333333333333333333333333333333333333333333333333333',
                           '1111111111111111111111111111111111111111111111111111111111111111',
                           '99' * 32)


@pytest.fixture()
def remote_keyset(ctx: Context) -> KeySet:
    return KeySet.from_hex(ctx,
                           # BOLT #3:
                           # INTERNAL: remote_funding_privkey: 1552dfba4f6cf29a62a0af13c8d6981d36d0ef8d61ba10fb0fe90da7634d7e1301
                           '1552dfba4f6cf29a62a0af13c8d6981d36d0ef8d61ba10fb0fe90da7634d7e13',
                           # BOLT #3:
                           # INTERNAL: remote_revocation_basepoint_secret: 222222222222222222222222222222222222222222222222222222222222222201
                           '2222222222222222222222222222222222222222222222222222222222222222',
                           # BOLT #3:
                           # INTERNAL: remote_payment_basepoint_secret: 444444444444444444444444444444444444444444444444444444444444444401
                           '4444444444444444444444444444444444444444444444444444444444444444',
                           '99',
                           '4444444444444444444444444444444444444444444444444444444444444444',
                           '99' * 32)


@pytest.fixture()
def per_commitment_point(ctx: Context) -> coincurve.PublicKey:
    # BOLT #3:
    # x_local_per_commitment_secret: 1f1e1d1c1b1a191817161514131211100f0e0d0c0b0a0908070605040302010001
    return coincurve.PrivateKey(bytes.fromhex('1f1e1d1c1b1a191817161514131211100f0e0d0c0b0a09080706050403020100'),
                                context=ctx).public_key


@pytest.fixture()
def funding(local_keyset: KeySet, remote_keyset: KeySet) -> Funding:
    # BOLT #3:
    # funding_txid: 8984484a580b825b9972d7adb15050b3ab624ccd731946b3eeddb92f4e7ef6be
    # funding_output_index: 0
    # funding_amount_satoshi: 10000000
    return Funding(revhex('8984484a580b825b9972d7adb15050b3ab624ccd731946b3eeddb92f4e7ef6be'),
                   0,
                   10000000,
                   local_keyset.funding_privkey.public_key,
                   remote_keyset.funding_privkey.public_key)


@pytest.fixture()
def five_htlcs() -> List[HTLC]:
    # BOLT #3:
    #     htlc 0 direction: remote->local
    #     htlc 0 amount_msat: 1000000
    #     htlc 0 expiry: 500
    #     htlc 0 payment_preimage: 0000000000000000000000000000000000000000000000000000000000000000
    #     htlc 1 direction: remote->local
    #     htlc 1 amount_msat: 2000000
    #     htlc 1 expiry: 501
    #     htlc 1 payment_preimage: 0101010101010101010101010101010101010101010101010101010101010101
    #     htlc 2 direction: local->remote
    #     htlc 2 amount_msat: 2000000
    #     htlc 2 expiry: 502
    #     htlc 2 payment_preimage: 0202020202020202020202020202020202020202020202020202020202020202
    #     htlc 3 direction: local->remote
    #     htlc 3 amount_msat: 3000000
    #     htlc 3 expiry: 503
    #     htlc 3 payment_preimage: 0303030303030303030303030303030303030303030303030303030303030303
    #     htlc 4 direction: remote->local
    #     htlc 4 amount_msat: 4000000
    #     htlc 4 expiry: 504
    #     htlc 4 payment_preimage: 0404040404040404040404040404040404040404040404040404040404040404
    return [HTLC.from_preimage(Direction.received, 1000000, bytes([0] * 32), 500),
            HTLC.from_preimage(Direction.received, 2000000, bytes([1] * 32), 501),
            HTLC.from_preimage(Direction.offered, 2000000, bytes([2] * 32), 502),
            HTLC.from_preimage(Direction.offered, 3000000, bytes([3] * 32), 503),
            HTLC.from_preimage(Direction.received, 4000000, bytes([4] * 32), 504)]


@pytest.fixture()
def make_commitment(funding: Funding,
                    local_keyset: KeySet,
                    remote_keyset: KeySet,
                    per_commitment_point: coincurve.PublicKey) -> Callable[..., Commitment]:
    """Build the Appendix C commitment (by default local is the opener) at any feerate"""
    def _make(feerate_per_kw: int,
              to_local_msat: int = 7000000000,
              to_remote_msat: int = 3000000000,
              htlcs: List[HTLC] = [],
              option_static_remotekey: bool = True,
              dust_limit_satoshis: int = 546,
              opener: Side = Side.local) -> Commitment:
        # BOLT #3:
        # local_delay: 144
        # local_dust_limit_satoshi: 546
        config = ChannelConfig(to_self_delay=144,
                               dust_limit_satoshis=dust_limit_satoshis,
                               feerate_per_kw=feerate_per_kw,
                               opener=opener,
                               option_static_remotekey=option_static_remotekey)
        keys = CommitmentKeySet.derive(per_commitment_point,
                                       local_keyset.to_public_keys(),
                                       remote_keyset.to_public_keys(),
                                       option_static_remotekey)
        # BOLT #3:
        # commitment_number: 42
        return Commitment(funding, keys, config, 42,
                          to_local_msat, to_remote_msat,
                          local_keyset.payment_base_secret.public_key,
                          remote_keyset.payment_base_secret.public_key,
                          htlcs)
    return _make
