#! /usr/bin/python3
# Second-stage (HTLC-success and HTLC-timeout) transactions.
import logging
from hashlib import sha256
from typing import List, Optional, Tuple
import coincurve
from bitcoin.core import COutPoint, CMutableTransaction, CTransaction, CTxIn, CTxOut
from .commit_tx import Commitment, Direction, HTLC, OutputDescriptor
from .config import ChannelConfig
from .errors import AmountError, EncodingError
from .fees import htlc_success_fee, htlc_timeout_fee
from .keyset import CommitmentKeySet
from .scripts import p2wsh, to_local_script
from .signature import Sig, finalize_with_witness, htlc_success_witness, htlc_timeout_witness, sighash

logger = logging.getLogger(__name__)


def _htlc_tx(commit_txid: bytes,
             output_index: int,
             amount_msat: int,
             fee: int,
             locktime: int,
             keys: CommitmentKeySet,
             config: ChannelConfig) -> CMutableTransaction:
    # BOLT #3:
    # ## HTLC-Timeout and HTLC-Success Transactions
    # ...
    # * txin count: 1
    # * `txin[0]` outpoint: `txid` of the commitment transaction and
    #    `output_index` of the matching HTLC output for the HTLC transaction
    # * `txin[0]` sequence: `0`
    # * `txin[0]` script bytes: `0`
    txin = CTxIn(COutPoint(commit_txid, output_index), nSequence=0)

    # BOLT #3:
    # * txout count: 1
    # * `txout[0]` amount: the HTLC amount minus fees (see [Fee
    #    Calculation](#fee-calculation))
    # * `txout[0]` script: version-0 P2WSH with witness script as shown below
    #
    # The witness script for the output is the same as `to_local`.
    sats = amount_msat // 1000 - fee
    if sats < 0:
        raise AmountError("htlc of {}msat cannot pay fee {}".format(amount_msat, fee))
    wscript = to_local_script(keys.revocation_key,
                              keys.local_delayed_payment_key,
                              config.to_self_delay)
    txout = CTxOut(sats, p2wsh(wscript))

    # BOLT #3:
    # * version: 2
    # * locktime: `0` for HTLC-success, `cltv_expiry` for HTLC-timeout
    return CMutableTransaction(vin=[txin],
                               vout=[txout],
                               nVersion=2,
                               nLockTime=locktime)


def htlc_timeout_tx(commit_txid: bytes,
                    output_index: int,
                    htlc: HTLC,
                    keys: CommitmentKeySet,
                    config: ChannelConfig) -> CMutableTransaction:
    """Spend an offered HTLC output of the commitment with txid @commit_txid (internal byte order)"""
    if htlc.direction != Direction.offered:
        raise EncodingError("{} is not offered: use HTLC-success".format(htlc))
    return _htlc_tx(commit_txid, output_index, htlc.amount_msat,
                    htlc_timeout_fee(config.feerate_per_kw), htlc.cltv_expiry,
                    keys, config)


def htlc_success_tx(commit_txid: bytes,
                    output_index: int,
                    htlc: HTLC,
                    keys: CommitmentKeySet,
                    config: ChannelConfig) -> CMutableTransaction:
    """Spend a received HTLC output of the commitment with txid @commit_txid (internal byte order)"""
    if htlc.direction != Direction.received:
        raise EncodingError("{} is not received: use HTLC-timeout".format(htlc))
    return _htlc_tx(commit_txid, output_index, htlc.amount_msat,
                    htlc_success_fee(config.feerate_per_kw), 0,
                    keys, config)


def htlc_txs(commitment: Commitment) -> List[Tuple[OutputDescriptor, CMutableTransaction]]:
    """Every second-stage transaction, in commitment output order.

    Each comes with the output it spends, whose witness_script and value
    are what signatures commit to.
    """
    commit_txid = commitment.unsigned_tx().GetTxid()

    ret = []
    for outnum, output in enumerate(commitment.outputs()):
        # to_local or to_remote output?
        if output.htlc is None:
            continue
        if output.htlc.offered:
            tx = htlc_timeout_tx(commit_txid, outnum, output.htlc, commitment.keys, commitment.config)
        else:
            tx = htlc_success_tx(commit_txid, outnum, output.htlc, commitment.keys, commitment.config)
        logger.debug("htlc_tx for output {}: {}".format(outnum, tx.serialize().hex()))
        ret.append((output, tx))
    return ret


def finalize_htlc_timeout(tx: CMutableTransaction,
                          output: OutputDescriptor,
                          remote_sig: bytes,
                          local_sig: bytes) -> CTransaction:
    """Attach both HTLC signatures to the HTLC-timeout @tx spending @output"""
    if output.htlc is None or output.witness_script is None:
        raise EncodingError("{} is not an HTLC output".format(output))
    if not output.htlc.offered:
        raise EncodingError("{} is not offered: use finalize_htlc_success".format(output.htlc))
    return finalize_with_witness(tx, [htlc_timeout_witness(remote_sig, local_sig, output.witness_script)])


def finalize_htlc_success(tx: CMutableTransaction,
                          output: OutputDescriptor,
                          remote_sig: bytes,
                          local_sig: bytes,
                          payment_preimage: Optional[bytes] = None) -> CTransaction:
    """Attach both HTLC signatures and the preimage to the HTLC-success @tx.

    @payment_preimage defaults to the one the HTLC was created with.
    """
    if output.htlc is None or output.witness_script is None:
        raise EncodingError("{} is not an HTLC output".format(output))
    if output.htlc.offered:
        raise EncodingError("{} is not received: use finalize_htlc_timeout".format(output.htlc))
    if payment_preimage is None:
        payment_preimage = output.htlc.payment_preimage
    if payment_preimage is None or sha256(payment_preimage).digest() != output.htlc.payment_hash:
        raise EncodingError("no matching preimage for {}".format(output.htlc))
    return finalize_with_witness(tx, [htlc_success_witness(remote_sig, local_sig,
                                                           payment_preimage,
                                                           output.witness_script)])


def htlc_sigs(commitment: Commitment, htlc_privkey: coincurve.PrivateKey) -> List[Sig]:
    """Signatures for all of @commitment's HTLC transactions.

    This is what goes into `commitment_signed`, signed by the peer's
    htlc key (the holder's remote_htlc_key).
    """
    # BOLT #2:
    # - MUST include one `htlc_signature` for every HTLC transaction
    #   corresponding to the ordering of the commitment transaction (see
    #   [BOLT
    #   #3](03-transactions.md#transaction-input-and-output-ordering)).
    sigs = []
    for output, tx in htlc_txs(commitment):
        assert output.witness_script is not None
        sigs.append(Sig.sign(htlc_privkey, sighash(tx, 0, output.witness_script, output.value)))
    return sigs
