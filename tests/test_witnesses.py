#! /usr/bin/python3
# Spending each commitment output along every path it allows.
from typing import Callable, List
import coincurve
import pytest
from bitcoin.core import COutPoint, CMutableTransaction, CTxIn, CTxOut
from bitcoin.core.script import CScript, OP_0
from lnbolt3 import (Commitment, EncodingError, HTLC, KeySet, OutputDescriptor, SignatureError,
                     finalize_with_witness, sign_input, verify_input)
from lnbolt3.signature import (htlc_revocation_witness, offered_htlc_preimage_witness,
                               received_htlc_timeout_witness, to_local_delayed_witness,
                               to_local_revocation_witness)

PER_COMMITMENT_SECRET = bytes.fromhex('1f1e1d1c1b1a191817161514131211100f0e0d0c0b0a09080706050403020100')


def sweep_tx(commitment: Commitment, outnum: int, output: OutputDescriptor) -> CMutableTransaction:
    txin = CTxIn(COutPoint(commitment.unsigned_tx().GetTxid(), outnum))
    return CMutableTransaction([txin], [CTxOut(output.value - 200, CScript([OP_0, bytes(20)]))], nVersion=2)


@pytest.fixture()
def commitment(make_commitment: Callable[..., Commitment], five_htlcs: List[HTLC]) -> Commitment:
    return make_commitment(0, 6988000000, 3000000000, five_htlcs)


def test_to_local_paths(commitment: Commitment, local_keyset: KeySet, remote_keyset: KeySet) -> None:
    outnum, output = [(i, o) for i, o in enumerate(commitment.outputs()) if o.value == 6988000][0]
    tx = sweep_tx(commitment, outnum, output)

    # After to_self_delay, we sweep our own funds.
    delayed_key = local_keyset.delayed_payment_privkey(commitment.keys.per_commitment_point)
    sig = sign_input(tx, 0, output.witness_script, output.value, delayed_key)
    assert verify_input(tx, 0, output.witness_script, output.value, sig, commitment.keys.local_delayed_payment_key)
    stack = to_local_delayed_witness(sig, output.witness_script)
    assert stack == [sig, b'', bytes(output.witness_script)]
    signed = finalize_with_witness(tx, [stack])
    assert signed.wit.vtxinwit[0].scriptWitness.stack[-1] == bytes(output.witness_script)

    # Once we've revealed the secret, the peer can take it immediately.
    per_commitment_secret = coincurve.PrivateKey(PER_COMMITMENT_SECRET, context=local_keyset.context)
    revocation_key = remote_keyset.revocation_privkey(per_commitment_secret)
    sig = sign_input(tx, 0, output.witness_script, output.value, revocation_key)
    assert verify_input(tx, 0, output.witness_script, output.value, sig, commitment.keys.revocation_key)
    assert to_local_revocation_witness(sig, output.witness_script) == [sig, b'\x01', bytes(output.witness_script)]


def test_htlc_paths(commitment: Commitment, local_keyset: KeySet, remote_keyset: KeySet) -> None:
    per_commitment_secret = coincurve.PrivateKey(PER_COMMITMENT_SECRET, context=local_keyset.context)
    revocation_key = remote_keyset.revocation_privkey(per_commitment_secret)
    remote_htlc_key = remote_keyset.htlc_privkey(commitment.keys.per_commitment_point)

    for outnum, output in enumerate(commitment.outputs()):
        if output.htlc is None:
            continue
        tx = sweep_tx(commitment, outnum, output)

        sig = sign_input(tx, 0, output.witness_script, output.value, revocation_key)
        assert verify_input(tx, 0, output.witness_script, output.value, sig, commitment.keys.revocation_key)
        assert htlc_revocation_witness(sig, commitment.keys.revocation_key, output.witness_script)[1] == commitment.keys.revocation_key.format()

        sig = sign_input(tx, 0, output.witness_script, output.value, remote_htlc_key)
        assert verify_input(tx, 0, output.witness_script, output.value, sig, commitment.keys.remote_htlc_key)
        if output.htlc.offered:
            stack = offered_htlc_preimage_witness(sig, output.htlc.payment_preimage, output.witness_script)
            assert stack[1] == output.htlc.payment_preimage
        else:
            # Timing out needs the locktime set to the expiry.
            tx.nLockTime = output.htlc.cltv_expiry
            sig = sign_input(tx, 0, output.witness_script, output.value, remote_htlc_key)
            stack = received_htlc_timeout_witness(sig, output.witness_script)
            assert stack[1] == b''
        assert len(finalize_with_witness(tx, [stack]).wit.vtxinwit) == 1


def test_bad_signatures(commitment: Commitment, local_keyset: KeySet) -> None:
    output = commitment.outputs()[0]
    tx = sweep_tx(commitment, 0, output)
    key = local_keyset.htlc_privkey(commitment.keys.per_commitment_point)
    sig = sign_input(tx, 0, output.witness_script, output.value, key)

    # Wrong amount commits to a different sighash.
    assert not verify_input(tx, 0, output.witness_script, output.value + 1, sig, commitment.keys.local_htlc_key)

    with pytest.raises(SignatureError):
        verify_input(tx, 0, output.witness_script, output.value, sig[:-1], commitment.keys.local_htlc_key)
    with pytest.raises(SignatureError):
        verify_input(tx, 0, output.witness_script, output.value, b'\x30\x01' + sig[2:], commitment.keys.local_htlc_key)

    with pytest.raises(EncodingError):
        finalize_with_witness(tx, [])
