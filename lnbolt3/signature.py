#! /usr/bin/python3
import logging
import coincurve
import bitcoin.core.script as script
from bitcoin.core import CMutableTransaction, CTransaction, CTxWitness, CTxInWitness, CScriptWitness
from typing import Any, List, Sequence, Union
from .errors import EncodingError, SignatureError

logger = logging.getLogger(__name__)

# Everything we sign in a non-anchor channel commits to all inputs and outputs.
SIGHASH_ALL_BYTE = bytes([script.SIGHASH_ALL])


def compact_to_der(b: bytes) -> bytes:
    """Turn a 64-byte r||s signature into DER"""
    if len(b) != 64:
        raise SignatureError("compact signature must be 64 bytes, not {}".format(len(b)))
    r = b[0:32]
    s = b[32:64]
    # Trim zero bytes
    r = r.lstrip(bytes(1)) or bytes(1)
    s = s.lstrip(bytes(1)) or bytes(1)
    # Prepend 0 again if would be negative
    if r[0] & 0x80:
        r = bytes(1) + r
    if s[0] & 0x80:
        s = bytes(1) + s

    # 2 == integer, next == length
    ret = bytes([0x02, len(r)]) + r + bytes([0x02, len(s)]) + s
    # 30 == compound, next = length
    return bytes([0x30, len(ret)]) + ret


def der_to_compact(b: bytes) -> bytes:
    """Turn a DER signature (no sighash byte) into 64-byte r||s"""
    if len(b) < 8 or b[0] != 0x30 or b[1] != len(b) - 2 or b[2] != 0x02:
        raise SignatureError("{} is not a DER signature?".format(b.hex()))
    rlen = b[3]
    if rlen == 0 or 4 + rlen + 2 > len(b) or b[4 + rlen] != 0x02:
        raise SignatureError("{} is not a DER signature?".format(b.hex()))
    slen = b[4 + rlen + 1]
    if slen == 0 or 4 + rlen + 2 + slen != len(b):
        raise SignatureError("{} is not a DER signature?".format(b.hex()))
    r = b[4:4 + rlen]
    s = b[4 + rlen + 2:]
    if len(r.lstrip(bytes(1))) > 32 or len(s.lstrip(bytes(1))) > 32:
        raise SignatureError("{} has oversized r or s".format(b.hex()))
    return r.lstrip(bytes(1)).rjust(32, bytes(1)) + s.lstrip(bytes(1)).rjust(32, bytes(1))


class Sig(object):
    """A signature in the 64-byte compact form peers exchange.

    Transactions carry DER plus a sighash byte instead: see
    to_witness_bytes() and from_witness_bytes().
    """
    def __init__(self, sigval: Union[bytes, str]):
        if isinstance(sigval, str):
            sigval = bytes.fromhex(sigval)
            # Allow DER too, it's what the test vectors print.
            if len(sigval) != 64:
                sigval = der_to_compact(sigval)
        if len(sigval) != 64:
            raise SignatureError("Sig() expects 64 bytes, not {}".format(len(sigval)))
        self.sigval = sigval

    @classmethod
    def sign(cls, privkey: coincurve.PrivateKey, hashval: bytes) -> 'Sig':
        return cls(der_to_compact(privkey.sign(hashval, hasher=None)))

    @classmethod
    def from_witness_bytes(cls, b: bytes) -> 'Sig':
        if len(b) == 0 or b[-1] != script.SIGHASH_ALL:
            raise SignatureError("{} does not end in SIGHASH_ALL".format(b.hex()))
        return cls(der_to_compact(b[:-1]))

    def to_der(self) -> bytes:
        return compact_to_der(self.sigval)

    def to_witness_bytes(self) -> bytes:
        return self.to_der() + SIGHASH_ALL_BYTE

    def verify(self, hashval: bytes, pubkey: coincurve.PublicKey) -> bool:
        try:
            return coincurve.verify_signature(self.to_der(), hashval, pubkey.format(),
                                              hasher=None, context=pubkey.context)
        except ValueError as e:
            raise SignatureError("cannot check {}: {}".format(self.sigval.hex(), e))

    def __eq__(self, other: Any) -> bool:
        # For convenience, we allow comparison with hex strings
        if isinstance(other, str):
            other = Sig(other)
        if not isinstance(other, Sig):
            return NotImplemented
        return self.sigval == other.sigval

    def __repr__(self) -> str:
        return "Sig({})".format(self.sigval.hex())


def sighash(tx: CMutableTransaction, index: int, witness_script: bytes, amount: int) -> bytes:
    """BIP143 signature hash for spending a segwit v0 output worth @amount satoshi"""
    return script.SignatureHash(script.CScript(witness_script), tx, inIdx=index,
                                hashtype=script.SIGHASH_ALL,
                                amount=amount,
                                sigversion=script.SIGVERSION_WITNESS_V0)


def sign_input(tx: CMutableTransaction,
               index: int,
               witness_script: bytes,
               amount: int,
               privkey: coincurve.PrivateKey) -> bytes:
    """Sign input @index, returning DER with the SIGHASH_ALL byte appended"""
    hashval = sighash(tx, index, witness_script, amount)
    sig = privkey.sign(hashval, hasher=None) + SIGHASH_ALL_BYTE
    logger.debug("Signed input {} (amount {}) of {}: {}".format(index, amount, tx.GetTxid()[::-1].hex(), sig.hex()))
    return sig


def verify_input(tx: CMutableTransaction,
                 index: int,
                 witness_script: bytes,
                 amount: int,
                 sig: bytes,
                 pubkey: coincurve.PublicKey) -> bool:
    """Check a DER+sighash signature from sign_input().

    Malformed signatures raise SignatureError; well-formed ones which don't
    match return False, and it's up to the caller to decide what a bad
    signature from the peer means.
    """
    parsed = Sig.from_witness_bytes(sig)
    return parsed.verify(sighash(tx, index, witness_script, amount), pubkey)


# Witness stacks for each way of spending our outputs.  The witness script
# (where there is one) is always the last element.

def commitment_witness(first_sig: bytes, second_sig: bytes, funding_script: bytes) -> List[bytes]:
    # BOLT #3:
    # * `txin[0]` witness: `0 <signature_for_pubkey1> <signature_for_pubkey2>`
    #
    # The empty element is eaten by OP_CHECKMULTISIG's extra pop.  Callers
    # must pass the signatures in funding pubkey order.
    return [bytes(), first_sig, second_sig, bytes(funding_script)]


def htlc_success_witness(remote_sig: bytes, local_sig: bytes, payment_preimage: bytes, htlc_script: bytes) -> List[bytes]:
    # BOLT #3:
    # * `txin[0]` witness stack: `0 <remotehtlcsig> <localhtlcsig>  <payment_preimage>` for HTLC-success
    if len(payment_preimage) != 32:
        raise EncodingError("payment_preimage must be 32 bytes, not {}".format(len(payment_preimage)))
    return [bytes(), remote_sig, local_sig, payment_preimage, bytes(htlc_script)]


def htlc_timeout_witness(remote_sig: bytes, local_sig: bytes, htlc_script: bytes) -> List[bytes]:
    # BOLT #3:
    # * `txin[0]` witness stack: `0 <remotehtlcsig> <localhtlcsig>  <>` for HTLC-timeout
    return [bytes(), remote_sig, local_sig, bytes(), bytes(htlc_script)]


def to_local_delayed_witness(local_delayed_sig: bytes, to_local_script: bytes) -> List[bytes]:
    # BOLT #3:
    # It is spent by a successful penalty transaction, or otherwise after
    # `to_self_delay` blocks with:
    #
    #     <local_delayedsig> <>
    return [local_delayed_sig, bytes(), bytes(to_local_script)]


def to_local_revocation_witness(revocation_sig: bytes, to_local_script: bytes) -> List[bytes]:
    # BOLT #3:
    # If a revoked commitment transaction is published, the other party can
    # spend this output immediately with the following witness:
    #
    #     <revocation_sig> 1
    return [revocation_sig, bytes([1]), bytes(to_local_script)]


def htlc_revocation_witness(revocation_sig: bytes, revocation_pubkey: coincurve.PublicKey, htlc_script: bytes) -> List[bytes]:
    # BOLT #3:
    # If a revoked commitment transaction is published, the remote node can
    # spend this output immediately with the following witness:
    #
    #     <revocation_sig> <revocationpubkey>
    return [revocation_sig, revocation_pubkey.format(), bytes(htlc_script)]


def offered_htlc_preimage_witness(remote_htlc_sig: bytes, payment_preimage: bytes, htlc_script: bytes) -> List[bytes]:
    # BOLT #3:
    # The remote node can redeem the HTLC with the witness:
    #
    #     <remotehtlcsig> <payment_preimage>
    if len(payment_preimage) != 32:
        raise EncodingError("payment_preimage must be 32 bytes, not {}".format(len(payment_preimage)))
    return [remote_htlc_sig, payment_preimage, bytes(htlc_script)]


def received_htlc_timeout_witness(remote_htlc_sig: bytes, htlc_script: bytes) -> List[bytes]:
    # BOLT #3:
    # To timeout the HTLC, the remote node spends it with the witness:
    #
    #     <remotehtlcsig> <>
    return [remote_htlc_sig, bytes(), bytes(htlc_script)]


def p2wpkh_witness(sig: bytes, pubkey: coincurve.PublicKey) -> List[bytes]:
    return [sig, pubkey.format()]


def finalize_with_witness(tx: CMutableTransaction, witness_stacks: Sequence[List[bytes]]) -> CTransaction:
    """Attach one witness stack per input, returning an immutable transaction"""
    if len(witness_stacks) != len(tx.vin):
        raise EncodingError("{} witness stacks for {} inputs".format(len(witness_stacks), len(tx.vin)))
    signed = CMutableTransaction.from_tx(tx)
    signed.wit = CTxWitness([CTxInWitness(CScriptWitness(stack)) for stack in witness_stacks])
    logger.debug("Finalized tx {}".format(signed.serialize().hex()))
    return CTransaction.from_tx(signed)


def test_der() -> None:
    der = bytes.fromhex('3045022100f51d2e566a70ba740fc5d8c0f07b9b93d2ed741c3c0860c613173de7d39e7968022041376d520e9c0e1ad52248ddf4b22e12be8763007df977253ef45a4ca3bdb7c0')
    sig = Sig(der.hex())
    assert sig.sigval.hex() == 'f51d2e566a70ba740fc5d8c0f07b9b93d2ed741c3c0860c613173de7d39e796841376d520e9c0e1ad52248ddf4b22e12be8763007df977253ef45a4ca3bdb7c0'
    assert sig.to_der() == der
    assert Sig.from_witness_bytes(der + SIGHASH_ALL_BYTE) == sig

    for bad in ('3045', '3145022100f51d2e566a70ba740fc5d8c0f07b9b93d2ed741c3c0860c613173de7d39e7968022041376d520e9c0e1ad52248ddf4b22e12be8763007df977253ef45a4ca3bdb7c0'):
        try:
            Sig(bad)
            assert False, "{} is not DER".format(bad)
        except SignatureError:
            pass

    try:
        Sig.from_witness_bytes(der + bytes([script.SIGHASH_SINGLE]))
        assert False, "only SIGHASH_ALL is accepted"
    except SignatureError:
        pass


def test_sign_verify() -> None:
    privkey = coincurve.PrivateKey(bytes([1] * 32))
    other = coincurve.PrivateKey(bytes([2] * 32))
    hashval = bytes(range(32))
    sig = Sig.sign(privkey, hashval)
    assert sig.verify(hashval, privkey.public_key)
    assert not sig.verify(hashval, other.public_key)
    assert not sig.verify(bytes(32), privkey.public_key)
