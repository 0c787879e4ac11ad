#! /usr/bin/python3
# Fee and dust calculations for commitment and HTLC transactions.
from .errors import AmountError

COMMITMENT_BASE_WEIGHT = 724
COMMITMENT_HTLC_WEIGHT = 172
HTLC_TIMEOUT_WEIGHT = 663
HTLC_SUCCESS_WEIGHT = 703


def _check_feerate(feerate_per_kw: int) -> None:
    if feerate_per_kw < 0:
        raise AmountError("feerate_per_kw {} is negative".format(feerate_per_kw))


def commitment_weight(num_untrimmed_htlcs: int) -> int:
    # BOLT #3:
    #  1. Start with `weight` = 724.
    #  2. For each committed HTLC, if that output is not trimmed as specified in
    #  [Trimmed Outputs](#trimmed-outputs), add 172 to `weight`.
    return COMMITMENT_BASE_WEIGHT + COMMITMENT_HTLC_WEIGHT * num_untrimmed_htlcs


def commitment_fee(feerate_per_kw: int, num_untrimmed_htlcs: int) -> int:
    # BOLT #3:
    #  3. Multiply `feerate_per_kw` by `weight`, divide by 1000 (rounding down).
    _check_feerate(feerate_per_kw)
    return feerate_per_kw * commitment_weight(num_untrimmed_htlcs) // 1000


def htlc_timeout_fee(feerate_per_kw: int) -> int:
    # BOLT #3:
    # The fee for an HTLC-timeout transaction:
    #   - MUST BE calculated to match:
    #     1. Multiply `feerate_per_kw` by 663 and divide by 1000 (rounding down).
    _check_feerate(feerate_per_kw)
    return feerate_per_kw * HTLC_TIMEOUT_WEIGHT // 1000


def htlc_success_fee(feerate_per_kw: int) -> int:
    # BOLT #3:
    # The fee for an HTLC-success transaction:
    #   - MUST BE calculated to match:
    #     1. Multiply `feerate_per_kw` by 703 and divide by 1000 (rounding down).
    _check_feerate(feerate_per_kw)
    return feerate_per_kw * HTLC_SUCCESS_WEIGHT // 1000


def htlc_trim_threshold(offered: bool, dust_limit_satoshis: int, feerate_per_kw: int) -> int:
    """Smallest HTLC amount (in satoshi) which gets an output.

    Offered HTLCs are claimed by an HTLC-timeout transaction, received
    ones by an HTLC-success transaction, so they differ.
    """
    if offered:
        return dust_limit_satoshis + htlc_timeout_fee(feerate_per_kw)
    return dust_limit_satoshis + htlc_success_fee(feerate_per_kw)


def test_fees() -> None:
    # BOLT #3:
    # name: simple commitment tx with no HTLCs
    # local_feerate_per_kw: 15000
    # # base commitment transaction fee = 10860
    assert commitment_fee(15000, 0) == 10860

    # BOLT #3:
    # name: commitment tx with seven outputs untrimmed (maximum feerate)
    # local_feerate_per_kw: 647
    # # base commitment transaction fee = 1024
    assert commitment_fee(647, 5) == 1024

    assert commitment_fee(0, 5) == 0
    assert htlc_timeout_fee(1000) == 663
    assert htlc_success_fee(1000) == 703
    # Rounds down.
    assert htlc_timeout_fee(1001) == 663
    assert htlc_trim_threshold(True, 546, 1000) == 546 + 663
    assert htlc_trim_threshold(False, 546, 1000) == 546 + 703

    try:
        commitment_fee(-1, 0)
        assert False, "negative feerate should be rejected"
    except AmountError:
        pass
