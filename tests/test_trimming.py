#! /usr/bin/python3
from typing import Callable
from lnbolt3 import (Commitment, Direction, HTLC, MAX_COMMITMENT_INDEX, decode_obscured_commit_num,
                     encode_obscured_commit_num, htlc_trim_threshold, sort_outputs)


def test_htlc_trim_boundary(make_commitment: Callable[..., Commitment]) -> None:
    for direction in Direction:
        threshold = htlc_trim_threshold(direction == Direction.offered, 546, 1000)
        exact = HTLC(direction, threshold * 1000, bytes(32), 600)
        under = HTLC(direction, threshold * 1000 - 1000, bytes(32), 600)
        c = make_commitment(1000, 6990000000, 3000000000, [exact, under])
        assert c.untrimmed_htlcs() == [exact]

        # Trimming compares millisatoshi, so even one msat short is dust.
        just_under = HTLC(direction, threshold * 1000 - 1, bytes(32), 600)
        assert make_commitment(1000, 6990000000, 3000000000, [just_under]).untrimmed_htlcs() == []


def test_trimmed_htlcs_do_not_count_for_fee(make_commitment: Callable[..., Commitment]) -> None:
    dust = HTLC(Direction.offered, 1000, bytes(32), 600)
    c = make_commitment(15000, 6999999000, 3000000000, [dust])
    assert c.untrimmed_htlcs() == []
    assert c.fee() == 10860
    assert [o.htlc for o in c.outputs()] == [None, None]


def test_balance_dust_boundary(make_commitment: Callable[..., Commitment]) -> None:
    c = make_commitment(0, 546000, 3000000000)
    assert sorted(o.value for o in c.outputs()) == [546, 3000000]

    # Rounded down to 545 satoshi, which is dust.
    c = make_commitment(0, 545999, 3000000000)
    assert [o.value for o in c.outputs()] == [3000000]


def test_identical_htlcs_ordered_by_expiry(make_commitment: Callable[..., Commitment]) -> None:
    # Offered HTLC scripts don't contain the expiry, so these only differ there.
    htlcs = [HTLC(Direction.offered, 5000000, bytes(32), expiry) for expiry in (510, 505, 507)]
    c = make_commitment(0, 6985000000, 3000000000, htlcs)
    outputs = c.outputs()
    assert [o.cltv_expiry for o in outputs if o.htlc is not None] == [505, 507, 510]
    assert outputs[0].script_pubkey == outputs[1].script_pubkey
    assert sort_outputs(outputs) == outputs


def test_obscured_round_trip() -> None:
    for n in (0, 42, 0xFFFFFF, 0x1000000, 0x123456789abc, MAX_COMMITMENT_INDEX):
        locktime, sequence = encode_obscured_commit_num(n)
        assert locktime >> 24 == 0x20
        assert sequence >> 24 == 0x80
        assert decode_obscured_commit_num(locktime, sequence) == n
