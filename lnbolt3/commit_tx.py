#! /usr/bin/python3
import logging
import struct
from enum import IntEnum
from hashlib import sha256
from typing import Iterable, List, Optional, Sequence, Tuple
import coincurve
from bitcoin.core import CMutableTransaction, CTransaction, CTxIn, CTxOut
from bitcoin.core.script import CScript
from .config import ChannelConfig
from .errors import AmountError, CommitmentIndexError, EncodingError
from .fees import commitment_fee, htlc_trim_threshold
from .funding import Funding
from .keyset import CommitmentKeySet
from .scripts import (p2wsh, to_local_script, to_remote_script,
                      offered_htlc_script, received_htlc_script)
from .signature import commitment_witness, finalize_with_witness, sign_input, verify_input
from .utils import MAX_COMMITMENT_INDEX, Side

logger = logging.getLogger(__name__)


class Direction(IntEnum):
    """Which way an HTLC goes, seen from the commitment's holder"""
    offered = 0
    received = 1


class HTLC(object):
    def __init__(self,
                 direction: Direction,
                 amount_msat: int,
                 payment_hash: bytes,
                 cltv_expiry: int,
                 payment_preimage: Optional[bytes] = None):
        """An HTLC @direction (offered or received) by the commitment's holder"""
        if amount_msat < 0:
            raise AmountError("htlc amount {} is negative".format(amount_msat))
        if len(payment_hash) != 32:
            raise EncodingError("payment_hash must be 32 bytes, not {}".format(len(payment_hash)))
        if not 0 <= cltv_expiry <= 0xFFFFFFFF:
            raise EncodingError("cltv_expiry {} is not a u32".format(cltv_expiry))
        if payment_preimage is not None and sha256(payment_preimage).digest() != payment_hash:
            raise EncodingError("preimage {} does not match payment_hash {}"
                                .format(payment_preimage.hex(), payment_hash.hex()))
        self.direction = Direction(direction)
        self.amount_msat = amount_msat
        self.payment_hash = payment_hash
        self.cltv_expiry = cltv_expiry
        self.payment_preimage = payment_preimage

    @classmethod
    def from_preimage(cls,
                      direction: Direction,
                      amount_msat: int,
                      payment_preimage: bytes,
                      cltv_expiry: int) -> 'HTLC':
        return cls(direction, amount_msat, sha256(payment_preimage).digest(), cltv_expiry, payment_preimage)

    @property
    def offered(self) -> bool:
        return self.direction == Direction.offered

    def __str__(self) -> str:
        return "htlc({},{},{},{})".format(self.direction.name, self.amount_msat,
                                          self.payment_hash.hex(), self.cltv_expiry)


class OutputDescriptor(object):
    """One commitment transaction output, plus what we need to spend it later"""
    def __init__(self,
                 value: int,
                 script_pubkey: CScript,
                 cltv_expiry: Optional[int] = None,
                 witness_script: Optional[CScript] = None,
                 htlc: Optional[HTLC] = None):
        if value < 0:
            raise AmountError("output value {} is negative".format(value))
        self.value = value
        self.script_pubkey = script_pubkey
        self.cltv_expiry = cltv_expiry
        self.witness_script = witness_script
        self.htlc = htlc

    def sort_key(self) -> Tuple[int, bytes, int]:
        # Outputs without an expiry sort before any HTLC with an identical
        # value and script.
        if self.cltv_expiry is None:
            expiry = -1
        else:
            expiry = self.cltv_expiry
        return (self.value, bytes(self.script_pubkey), expiry)

    def to_txout(self) -> CTxOut:
        return CTxOut(self.value, self.script_pubkey)

    def __repr__(self) -> str:
        return "OutputDescriptor({}, {}, {})".format(self.value, self.script_pubkey.hex(), self.cltv_expiry)


def sort_outputs(outputs: Iterable[OutputDescriptor]) -> List[OutputDescriptor]:
    # BOLT #3:
    # ## Transaction Input and Output Ordering
    #
    # Lexicographic ordering: see
    # [BIP69](https://github.com/bitcoin/bips/blob/master/bip-0069.mediawiki).
    # In the case of identical HTLC outputs, the outputs are ordered in
    # increasing `cltv_expiry` order.
    return sorted(outputs, key=lambda output: output.sort_key())


def obscured_commit_num(opener_payment_basepoint: coincurve.PublicKey,
                        accepter_payment_basepoint: coincurve.PublicKey,
                        commitnum: int) -> int:
    # BOLT #3:
    # The 48-bit commitment number is obscured by `XOR` with the lower 48 bits of:
    #
    #    SHA256(payment_basepoint from open_channel || payment_basepoint from accept_channel)
    if not 0 <= commitnum <= MAX_COMMITMENT_INDEX:
        raise CommitmentIndexError("48 bits is all you get! ({})".format(commitnum))
    shabytes = sha256(opener_payment_basepoint.format()
                      + accepter_payment_basepoint.format()).digest()[-6:]
    obscurer = struct.unpack('>Q', bytes(2) + shabytes)[0]
    return commitnum ^ obscurer


def encode_obscured_commit_num(obscured: int) -> Tuple[int, int]:
    """Returns (locktime, sequence) for the commitment transaction"""
    # BOLT #3:
    # * locktime: upper 8 bits are 0x20, lower 24 bits are the lower 24 bits of the obscured commitment number
    # ...
    #    * `txin[0]` sequence: upper 8 bits are 0x80, lower 24 bits are upper 24 bits of the obscured commitment number
    if not 0 <= obscured <= MAX_COMMITMENT_INDEX:
        raise CommitmentIndexError("obscured commitment number {} is not 48 bits".format(obscured))
    return 0x20000000 | (obscured & 0xFFFFFF), 0x80000000 | (obscured >> 24)


def decode_obscured_commit_num(locktime: int, sequence: int) -> int:
    if locktime >> 24 != 0x20:
        raise EncodingError("locktime {:#010x} lacks the 0x20 marker".format(locktime))
    if sequence >> 24 != 0x80:
        raise EncodingError("sequence {:#010x} lacks the 0x80 marker".format(sequence))
    return ((sequence & 0xFFFFFF) << 24) | (locktime & 0xFFFFFF)


def commitment_number_from_tx(tx: CTransaction,
                              opener_payment_basepoint: coincurve.PublicKey,
                              accepter_payment_basepoint: coincurve.PublicKey) -> int:
    """Recover the commitment number of a commitment transaction seen on-chain"""
    if len(tx.vin) != 1:
        raise EncodingError("commitment transactions have one input, not {}".format(len(tx.vin)))
    obscured = decode_obscured_commit_num(tx.nLockTime, tx.vin[0].nSequence)
    # XOR is its own inverse.
    return obscured_commit_num(opener_payment_basepoint, accepter_payment_basepoint, obscured)


class Commitment(object):
    """One side's commitment transaction.

    Everything is from the point of view of the holder (the side which
    can broadcast it): "local" is the holder, @keys must be the holder's
    CommitmentKeySet for @commitnum and @config the holder's parameters.
    Balances are in millisatoshi and exclude the HTLCs.
    """
    def __init__(self,
                 funding: Funding,
                 keys: CommitmentKeySet,
                 config: ChannelConfig,
                 commitnum: int,
                 to_local_msat: int,
                 to_remote_msat: int,
                 opener_payment_basepoint: coincurve.PublicKey,
                 accepter_payment_basepoint: coincurve.PublicKey,
                 htlcs: Sequence[HTLC] = ()):
        if not 0 <= commitnum <= MAX_COMMITMENT_INDEX:
            raise CommitmentIndexError("48 bits is all you get! ({})".format(commitnum))
        if to_local_msat < 0 or to_remote_msat < 0:
            raise AmountError("negative balance: to_local {} to_remote {}".format(to_local_msat, to_remote_msat))
        total_msat = to_local_msat + to_remote_msat + sum(h.amount_msat for h in htlcs)
        if total_msat > funding.amount * 1000:
            raise AmountError("balances total {}msat but funding is only {}sat".format(total_msat, funding.amount))
        self.funding = funding
        self.keys = keys
        self.config = config
        self.commitnum = commitnum
        self.amounts = [to_local_msat, to_remote_msat]
        self.opener_payment_basepoint = opener_payment_basepoint
        self.accepter_payment_basepoint = accepter_payment_basepoint
        self.htlcs = list(htlcs)

    def to_local_script(self) -> CScript:
        return to_local_script(self.keys.revocation_key,
                               self.keys.local_delayed_payment_key,
                               self.config.to_self_delay)

    def htlc_script(self, htlc: HTLC) -> CScript:
        if htlc.offered:
            return offered_htlc_script(self.keys.revocation_key,
                                       self.keys.local_htlc_key,
                                       self.keys.remote_htlc_key,
                                       htlc.payment_hash)
        return received_htlc_script(self.keys.revocation_key,
                                    self.keys.local_htlc_key,
                                    self.keys.remote_htlc_key,
                                    htlc.payment_hash,
                                    htlc.cltv_expiry)

    def untrimmed_htlcs(self) -> List[HTLC]:
        htlcs = []
        for htlc in self.htlcs:
            # BOLT #3:
            #   - for every offered HTLC:
            #     - if the HTLC amount minus the HTLC-timeout fee would be less than
            #     `dust_limit_satoshis` set by the transaction owner:
            #       - MUST NOT contain that output.
            # ...
            #   - for every received HTLC:
            #     - if the HTLC amount minus the HTLC-success fee would be less
            #      than `dust_limit_satoshis` set by the transaction owner:
            #       - MUST NOT contain that output.
            threshold = htlc_trim_threshold(htlc.offered,
                                            self.config.dust_limit_satoshis,
                                            self.config.feerate_per_kw)
            if htlc.amount_msat < threshold * 1000:
                logger.debug("Trimming {} (threshold {}sat)".format(htlc, threshold))
                continue
            htlcs.append(htlc)
        return htlcs

    def fee(self) -> int:
        return commitment_fee(self.config.feerate_per_kw, len(self.untrimmed_htlcs()))

    def _balance_outputs(self, fee: int) -> List[OutputDescriptor]:
        # BOLT #3:
        #  4. Subtract this base fee from the funder (either `to_local` or
        #  `to_remote`).
        sats = [self.amounts[Side.local] // 1000, self.amounts[Side.remote] // 1000]
        if sats[self.config.opener] < fee:
            raise AmountError("opener cannot afford fee {} with {}sat".format(fee, sats[self.config.opener]))
        sats[self.config.opener] -= fee

        outputs = []
        # BOLT #3:
        #  6. If the `to_local` amount is greater or equal to
        #     `dust_limit_satoshis`, add a [`to_local`
        #     output](#to_local-output).
        if sats[Side.local] >= self.config.dust_limit_satoshis:
            wscript = self.to_local_script()
            outputs.append(OutputDescriptor(sats[Side.local], p2wsh(wscript), witness_script=wscript))
        else:
            logger.debug("Trimming to_local of {}sat".format(sats[Side.local]))

        # BOLT #3:
        #  7. If the `to_remote` amount is greater or equal to
        #     `dust_limit_satoshis`, add a [`to_remote`
        #     output](#to_remote-output).
        if sats[Side.remote] >= self.config.dust_limit_satoshis:
            outputs.append(OutputDescriptor(sats[Side.remote], to_remote_script(self.keys.remote_payment_key)))
        else:
            logger.debug("Trimming to_remote of {}sat".format(sats[Side.remote]))
        return outputs

    def outputs(self) -> List[OutputDescriptor]:
        """All outputs, in transaction order"""
        draft = []
        for htlc in self.untrimmed_htlcs():
            wscript = self.htlc_script(htlc)
            logger.debug("{} witness script {}".format(htlc, wscript.hex()))
            # BOLT #3: The amounts for each output MUST be rounded down to whole
            # satoshis.
            draft.append(OutputDescriptor(htlc.amount_msat // 1000, p2wsh(wscript),
                                          cltv_expiry=htlc.cltv_expiry,
                                          witness_script=wscript,
                                          htlc=htlc))

        fee = commitment_fee(self.config.feerate_per_kw, len(draft))
        logger.debug("Commitment {} fee {} for {} htlcs".format(self.commitnum, fee, len(draft)))
        draft += self._balance_outputs(fee)

        total = sum(o.value for o in draft)
        if total + fee > self.funding.amount:
            raise AmountError("outputs {} plus fee {} exceed funding {}".format(total, fee, self.funding.amount))
        return sort_outputs(draft)

    def obscured_commit_num(self) -> int:
        return obscured_commit_num(self.opener_payment_basepoint,
                                   self.accepter_payment_basepoint,
                                   self.commitnum)

    def unsigned_tx(self) -> CMutableTransaction:
        locktime, sequence = encode_obscured_commit_num(self.obscured_commit_num())

        # BOLT #3:
        # ## Commitment Transaction
        # ...
        # * txin count: 1
        #    * `txin[0]` outpoint: `txid` and `output_index` from `funding_created` message
        #    * `txin[0]` sequence: upper 8 bits are 0x80, lower 24 bits are upper 24 bits of the obscured commitment number
        #    * `txin[0]` script bytes: 0
        txin = CTxIn(self.funding.outpoint(), nSequence=sequence)

        # BOLT #3:
        # * version: 2
        tx = CMutableTransaction(vin=[txin],
                                 vout=[o.to_txout() for o in self.outputs()],
                                 nVersion=2,
                                 nLockTime=locktime)
        logger.debug("Unsigned commitment {}: {}".format(self.commitnum, tx.serialize().hex()))
        return tx

    def sign(self, funding_privkey: coincurve.PrivateKey) -> bytes:
        """Our (or, in tests, their) signature for the funding input"""
        return sign_input(self.unsigned_tx(), 0, self.funding.redeemscript(),
                          self.funding.amount, funding_privkey)

    def check_sig(self, sig: bytes, funding_pubkey: coincurve.PublicKey) -> bool:
        return verify_input(self.unsigned_tx(), 0, self.funding.redeemscript(),
                            self.funding.amount, sig, funding_pubkey)

    def signed_tx(self, first_sig: bytes, second_sig: bytes) -> CTransaction:
        """Attach both funding signatures, already in funding pubkey order.

        Funding.bitcoin_key_sort() puts a (local, remote) pair in that order.
        """
        return finalize_with_witness(self.unsigned_tx(),
                                     [commitment_witness(first_sig, second_sig,
                                                         self.funding.redeemscript())])


def test_commitment_number() -> None:
    # BOLT #3:
    # INTERNAL: local_payment_basepoint_secret: 111111111111111111111111111111111111111111111111111111111111111101
    # ...
    # INTERNAL: remote_payment_basepoint_secret: 444444444444444444444444444444444444444444444444444444444444444401
    opener_pubkey = coincurve.PublicKey.from_secret(bytes.fromhex('1111111111111111111111111111111111111111111111111111111111111111'))
    accepter_pubkey = coincurve.PublicKey.from_secret(bytes.fromhex('4444444444444444444444444444444444444444444444444444444444444444'))

    # BOLT #3: Here are the points used to derive the obscuring factor
    # for the commitment number:
    # local_payment_basepoint: 034f355bdcb7cc0af728ef3cceb9615d90684bb5b2ca5f859ab0f0b704075871aa
    # remote_payment_basepoint: 032c0b7cf95324a07d05398b240174dc0c2be444d96b159aa6c7f7b1e668680991
    # # obscured commitment number = 0x2bb038521914 ^ 42
    assert opener_pubkey.format().hex() == '034f355bdcb7cc0af728ef3cceb9615d90684bb5b2ca5f859ab0f0b704075871aa'
    assert accepter_pubkey.format().hex() == '032c0b7cf95324a07d05398b240174dc0c2be444d96b159aa6c7f7b1e668680991'

    assert obscured_commit_num(opener_pubkey, accepter_pubkey, 42) == 0x2bb038521914 ^ 42
    # Swapping opener and accepter gives a different obscurer.
    assert obscured_commit_num(accepter_pubkey, opener_pubkey, 42) != 0x2bb038521914 ^ 42

    try:
        obscured_commit_num(opener_pubkey, accepter_pubkey, MAX_COMMITMENT_INDEX + 1)
        assert False, "commitment number must fit in 48 bits"
    except CommitmentIndexError:
        pass


def test_obscured_encoding() -> None:
    # The simple commitment vector has sequence 0x802bb038 and locktime 0x2052193e.
    obscured = 0x2bb038521914 ^ 42
    assert encode_obscured_commit_num(obscured) == (0x2052193e, 0x802bb038)
    assert decode_obscured_commit_num(0x2052193e, 0x802bb038) == obscured

    for n in (0, 1, 0xFFFFFF, 0x1000000, MAX_COMMITMENT_INDEX):
        assert decode_obscured_commit_num(*encode_obscured_commit_num(n)) == n

    for locktime, sequence in ((0x0052193e, 0x802bb038), (0x2052193e, 0xff2bb038)):
        try:
            decode_obscured_commit_num(locktime, sequence)
            assert False, "missing markers should be rejected"
        except EncodingError:
            pass


def test_sort_outputs() -> None:
    script_a = CScript(bytes.fromhex('0014' + '11' * 20))
    script_b = CScript(bytes.fromhex('0014' + '22' * 20))
    outputs = [OutputDescriptor(1000, script_b),
               OutputDescriptor(1000, script_a, cltv_expiry=503),
               OutputDescriptor(1000, script_a, cltv_expiry=502),
               OutputDescriptor(999, script_b),
               OutputDescriptor(1000, script_a)]
    ordered = sort_outputs(outputs)
    assert [(o.value, o.script_pubkey, o.cltv_expiry) for o in ordered] == [(999, script_b, None),
                                                                            (1000, script_a, None),
                                                                            (1000, script_a, 502),
                                                                            (1000, script_a, 503),
                                                                            (1000, script_b, None)]
    assert sort_outputs(ordered) == ordered


def test_htlc() -> None:
    htlc = HTLC.from_preimage(Direction.received, 1000000, bytes(32), 500)
    assert htlc.payment_hash.hex() == '66687aadf862bd776c8fc18b8e9f8e20089714856ee233b3902a591d0d5f2925'
    assert not htlc.offered

    for args in ((Direction.offered, -1, bytes(32), 500),
                 (Direction.offered, 1, bytes(31), 500),
                 (Direction.offered, 1, bytes(32), -1)):
        try:
            HTLC(*args)
            assert False, "{} should be rejected".format(args)
        except (AmountError, EncodingError):
            pass

    try:
        HTLC(Direction.offered, 1, bytes(32), 500, bytes(32))
        assert False, "preimage must match the hash"
    except EncodingError:
        pass
