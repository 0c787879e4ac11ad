"""lnbolt3: BOLT #3 key derivation and transaction construction.

This package derives every key a lightning channel needs from a single
node seed, and builds the exact funding, commitment and HTLC
transactions (and their witnesses) which BOLT #3 specifies, byte for
byte.  It does no I/O: the channel-state layer feeds it balances, HTLCs
and the counterparty's basepoints, and broadcasts what comes out.

All EC operations take an explicit coincurve Context, so there is no
global state; create one and pass it to KeysManager (or KeySet.from_hex).

"""
from .errors import Bolt3Error, KeyDerivationError, CommitmentIndexError, TweakError, AmountError, EncodingError, SignatureError
from .utils import Side, MAX_COMMITMENT_INDEX, check_hex, privkey_expand, pubkey_expand, ripemd160, revhex
from .config import ChannelConfig
from .bip32 import ExtendedKey, parse_path
from .shachain import per_commit_secret, per_commit_point, ShachainStore
from .tweak import derive_pubkey, derive_privkey, revocation_pubkey, revocation_privkey
from .keyset import KeyFamily, KeySet, KeysManager, ChannelPublicKeys, CommitmentKeySet
from .scripts import funding_script, to_local_script, to_remote_script, offered_htlc_script, received_htlc_script, p2wsh, match_script
from .fees import commitment_fee, htlc_timeout_fee, htlc_success_fee, htlc_trim_threshold
from .signature import (Sig, sign_input, verify_input, finalize_with_witness, commitment_witness,
                        htlc_success_witness, htlc_timeout_witness, to_local_delayed_witness,
                        to_local_revocation_witness, htlc_revocation_witness,
                        offered_htlc_preimage_witness, received_htlc_timeout_witness, p2wpkh_witness)
from .funding import Funding
from .commit_tx import Direction, HTLC, OutputDescriptor, Commitment, sort_outputs, obscured_commit_num, encode_obscured_commit_num, decode_obscured_commit_num, commitment_number_from_tx
from .htlc_tx import htlc_success_tx, htlc_timeout_tx, htlc_txs, htlc_sigs, finalize_htlc_success, finalize_htlc_timeout

__all__ = [
    "Bolt3Error",
    "KeyDerivationError",
    "CommitmentIndexError",
    "TweakError",
    "AmountError",
    "EncodingError",
    "SignatureError",
    "Side",
    "MAX_COMMITMENT_INDEX",
    "check_hex",
    "privkey_expand",
    "pubkey_expand",
    "ripemd160",
    "revhex",
    "ChannelConfig",
    "ExtendedKey",
    "parse_path",
    "per_commit_secret",
    "per_commit_point",
    "ShachainStore",
    "derive_pubkey",
    "derive_privkey",
    "revocation_pubkey",
    "revocation_privkey",
    "KeyFamily",
    "KeySet",
    "KeysManager",
    "ChannelPublicKeys",
    "CommitmentKeySet",
    "funding_script",
    "to_local_script",
    "to_remote_script",
    "offered_htlc_script",
    "received_htlc_script",
    "p2wsh",
    "match_script",
    "commitment_fee",
    "htlc_timeout_fee",
    "htlc_success_fee",
    "htlc_trim_threshold",
    "Sig",
    "sign_input",
    "verify_input",
    "finalize_with_witness",
    "commitment_witness",
    "htlc_success_witness",
    "htlc_timeout_witness",
    "to_local_delayed_witness",
    "to_local_revocation_witness",
    "htlc_revocation_witness",
    "offered_htlc_preimage_witness",
    "received_htlc_timeout_witness",
    "p2wpkh_witness",
    "Funding",
    "Direction",
    "HTLC",
    "OutputDescriptor",
    "Commitment",
    "sort_outputs",
    "obscured_commit_num",
    "encode_obscured_commit_num",
    "decode_obscured_commit_num",
    "commitment_number_from_tx",
    "htlc_success_tx",
    "htlc_timeout_tx",
    "htlc_txs",
    "htlc_sigs",
    "finalize_htlc_success",
    "finalize_htlc_timeout",
]
