# Support for funding txs.
import logging
from typing import Any, Tuple
import coincurve
import bitcoin.core.script as script
from bitcoin.core import COutPoint, CScript, CTxIn, CTxOut, CMutableTransaction, CTransaction, Hash160
from bitcoin.wallet import P2WPKHBitcoinAddress
from .errors import AmountError
from .scripts import funding_script, p2wsh
from .signature import sign_input, finalize_with_witness, p2wpkh_witness
from .utils import Side, check_hex

logger = logging.getLogger(__name__)


class Funding(object):
    """The 2-of-2 output every commitment transaction spends.

    @funding_txid is hex in internal byte order (as GetTxid() returns it),
    not the reversed order block explorers display.
    """
    def __init__(self,
                 funding_txid: str,
                 funding_output_index: int,
                 funding_amount: int,
                 local_funding_pubkey: coincurve.PublicKey,
                 remote_funding_pubkey: coincurve.PublicKey):
        if funding_amount <= 0:
            raise AmountError("funding amount {} must be positive".format(funding_amount))
        self.txid = check_hex(funding_txid, 64) if funding_txid else funding_txid
        self.output_index = funding_output_index
        self.amount = funding_amount
        self.funding_pubkeys = [local_funding_pubkey, remote_funding_pubkey]

    def funding_pubkey(self, side: Side) -> coincurve.PublicKey:
        return self.funding_pubkeys[side]

    def bitcoin_key_sort(self, local: Any, remote: Any) -> Tuple[Any, Any]:
        """Sorts these two items into lexicographical bitcoin key order"""
        # BOLT #3:
        # ## Funding Transaction Output
        #
        # * The funding output script is a P2WSH to: `2 <pubkey1> <pubkey2> 2
        #  OP_CHECKMULTISIG`
        # * Where `pubkey1` is the lexicographically lesser of the two
        #   `funding_pubkey` in compressed format, and where `pubkey2` is the
        #   lexicographically greater of the two.
        if self.funding_pubkey(Side.local).format() < self.funding_pubkey(Side.remote).format():
            return local, remote
        else:
            return remote, local

    def redeemscript(self) -> CScript:
        return funding_script(self.funding_pubkeys[Side.local],
                              self.funding_pubkeys[Side.remote])

    def script_pubkey(self) -> CScript:
        return p2wsh(self.redeemscript())

    def outpoint(self) -> COutPoint:
        return COutPoint(bytes.fromhex(self.txid), self.output_index)

    @staticmethod
    def from_utxo(txid_in: str,
                  tx_index_in: int,
                  sats: int,
                  privkey: coincurve.PrivateKey,
                  fee: int,
                  local_funding_pubkey: coincurve.PublicKey,
                  remote_funding_pubkey: coincurve.PublicKey) -> Tuple['Funding', CTransaction]:
        """Make a funding transaction by spending this P2WPKH utxo using privkey: return Funding, tx.

        @txid_in is in internal byte order, like Funding.txid."""
        if not 0 <= fee < sats:
            raise AmountError("fee {} does not leave anything of {} to fund".format(fee, sats))

        # Create dummy one to start: we will fill in txid at the end.
        funding = Funding('', 0, sats - fee,
                          local_funding_pubkey,
                          remote_funding_pubkey)

        inkey_pub = privkey.public_key

        txin = CTxIn(COutPoint(bytes.fromhex(check_hex(txid_in, 64)), tx_index_in),
                     nSequence=0xFFFFFFFF)
        txout = CTxOut(sats - fee, funding.script_pubkey())
        tx = CMutableTransaction([txin], [txout], nLockTime=0, nVersion=2)

        # now fill in funding txid.
        funding.txid = tx.GetTxid().hex()

        # while we're here, sign the transaction.
        address = P2WPKHBitcoinAddress.from_scriptPubKey(CScript([script.OP_0, Hash160(inkey_pub.format())]))
        sig = sign_input(tx, 0, address.to_redeemScript(), sats, privkey)
        logger.debug("Funding {}:{} amount {}".format(funding.txid, funding.output_index, funding.amount))
        return funding, finalize_with_witness(tx, [p2wpkh_witness(sig, inkey_pub)])


def test_funding() -> None:
    local = coincurve.PrivateKey(bytes.fromhex('30ff4956bbdd3222d44cc5e8a1261dab1e07957bdac5ae88fe3261ef321f3749'))
    remote = coincurve.PrivateKey(bytes.fromhex('1552dfba4f6cf29a62a0af13c8d6981d36d0ef8d61ba10fb0fe90da7634d7e13'))

    # BOLT #3:
    # funding_txid: 8984484a580b825b9972d7adb15050b3ab624ccd731946b3eeddb92f4e7ef6be
    # funding_output_index: 0
    # funding_amount_satoshi: 10000000
    funding = Funding(bytes(reversed(bytes.fromhex('8984484a580b825b9972d7adb15050b3ab624ccd731946b3eeddb92f4e7ef6be'))).hex(),
                      0, 10000000,
                      local.public_key, remote.public_key)
    # BOLT #3:
    # # funding witness script = 5221023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb21030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c152ae
    assert funding.redeemscript().hex() == '5221023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb21030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c152ae'
    assert funding.outpoint().n == 0
    assert funding.bitcoin_key_sort('local', 'remote') == ('local', 'remote')


def test_funding_from_utxo() -> None:
    inkey = coincurve.PrivateKey(bytes([7] * 32))
    local = coincurve.PrivateKey(bytes([1] * 32))
    remote = coincurve.PrivateKey(bytes([2] * 32))
    funding, tx = Funding.from_utxo('11' * 32, 1, 100000, inkey, 1000,
                                    local.public_key, remote.public_key)
    assert funding.amount == 99000
    assert funding.txid == tx.GetTxid().hex()
    assert tx.nVersion == 2
    assert tx.nLockTime == 0
    assert tx.vin[0].nSequence == 0xFFFFFFFF
    assert tx.vout[0].scriptPubKey == funding.script_pubkey()
    assert tx.wit.vtxinwit[0].scriptWitness.stack[1] == inkey.public_key.format()

    try:
        Funding.from_utxo('11' * 32, 1, 1000, inkey, 1000, local.public_key, remote.public_key)
        assert False, "fee eating the whole utxo should be rejected"
    except AmountError:
        pass
