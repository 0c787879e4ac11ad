"""Witness scripts for the funding, commitment and HTLC outputs.

Each script is written down once, as a template: a tuple of opcodes,
small integers and placeholder names.  Building a script fills the
placeholders in; match_script() walks an existing script against the
same template and hands back what was in the placeholders, so there is
exactly one description of every script's byte layout.
"""
from hashlib import sha256
from typing import Dict, Optional, Tuple, Union
import coincurve
import bitcoin.core.script as script
from bitcoin.core import Hash160
from bitcoin.core.script import CScript, CScriptOp
from .errors import EncodingError
from .utils import ripemd160

TemplateItem = Union[CScriptOp, int, str]
Template = Tuple[TemplateItem, ...]

# BOLT #3:
# ## Funding Transaction Output
#
# * The funding output script is a P2WSH to: `2 <pubkey1> <pubkey2> 2
#  OP_CHECKMULTISIG`
FUNDING_TEMPLATE: Template = (2, 'pubkey1', 'pubkey2', 2, script.OP_CHECKMULTISIG)

# BOLT #3:
# #### `to_local` Output
# ...
#     OP_IF
#         # Penalty transaction
#         <revocationpubkey>
#     OP_ELSE
#         `to_self_delay`
#         OP_CHECKSEQUENCEVERIFY
#         OP_DROP
#         <local_delayedpubkey>
#     OP_ENDIF
#     OP_CHECKSIG
TO_LOCAL_TEMPLATE: Template = (script.OP_IF,
                               'revocationpubkey',
                               script.OP_ELSE,
                               'to_self_delay',
                               script.OP_CHECKSEQUENCEVERIFY,
                               script.OP_DROP,
                               'local_delayedpubkey',
                               script.OP_ENDIF,
                               script.OP_CHECKSIG)

# BOLT #3:
# Otherwise, this output is a simple P2WPKH to `remotepubkey`.
TO_REMOTE_TEMPLATE: Template = (script.OP_0, 'pubkeyhash')

# BOLT #3:
# #### Offered HTLC Outputs
# ...
# # To remote node with revocation key
# OP_DUP OP_HASH160 <RIPEMD160(SHA256(revocationpubkey))> OP_EQUAL
# OP_IF
#     OP_CHECKSIG
# OP_ELSE
#     <remote_htlcpubkey> OP_SWAP OP_SIZE 32 OP_EQUAL
#     OP_NOTIF
#         # To local node via HTLC-timeout transaction (timelocked).
#         OP_DROP 2 OP_SWAP <local_htlcpubkey> 2 OP_CHECKMULTISIG
#     OP_ELSE
#         # To remote node with preimage.
#         OP_HASH160 <RIPEMD160(payment_hash)> OP_EQUALVERIFY
#         OP_CHECKSIG
#     OP_ENDIF
# OP_ENDIF
OFFERED_HTLC_TEMPLATE: Template = (script.OP_DUP,
                                   script.OP_HASH160,
                                   'revocationpubkeyhash',
                                   script.OP_EQUAL,
                                   script.OP_IF,
                                   script.OP_CHECKSIG,
                                   script.OP_ELSE,
                                   'remote_htlcpubkey',
                                   script.OP_SWAP,
                                   script.OP_SIZE,
                                   32,
                                   script.OP_EQUAL,
                                   script.OP_NOTIF,
                                   script.OP_DROP,
                                   2,
                                   script.OP_SWAP,
                                   'local_htlcpubkey',
                                   2,
                                   script.OP_CHECKMULTISIG,
                                   script.OP_ELSE,
                                   script.OP_HASH160,
                                   'payment_hash160',
                                   script.OP_EQUALVERIFY,
                                   script.OP_CHECKSIG,
                                   script.OP_ENDIF,
                                   script.OP_ENDIF)

# BOLT #3:
# #### Received HTLC Outputs
# ...
# # To remote node with revocation key
# OP_DUP OP_HASH160 <RIPEMD160(SHA256(revocationpubkey))> OP_EQUAL
# OP_IF
#     OP_CHECKSIG
# OP_ELSE
#     <remote_htlcpubkey> OP_SWAP OP_SIZE 32 OP_EQUAL
#     OP_IF
#         # To local node via HTLC-success transaction.
#         OP_HASH160 <RIPEMD160(payment_hash)> OP_EQUALVERIFY
#         2 OP_SWAP <local_htlcpubkey> 2 OP_CHECKMULTISIG
#     OP_ELSE
#         # To remote node after timeout.
#         OP_DROP <cltv_expiry> OP_CHECKLOCKTIMEVERIFY OP_DROP
#         OP_CHECKSIG
#     OP_ENDIF
# OP_ENDIF
RECEIVED_HTLC_TEMPLATE: Template = (script.OP_DUP,
                                    script.OP_HASH160,
                                    'revocationpubkeyhash',
                                    script.OP_EQUAL,
                                    script.OP_IF,
                                    script.OP_CHECKSIG,
                                    script.OP_ELSE,
                                    'remote_htlcpubkey',
                                    script.OP_SWAP,
                                    script.OP_SIZE,
                                    32,
                                    script.OP_EQUAL,
                                    script.OP_IF,
                                    script.OP_HASH160,
                                    'payment_hash160',
                                    script.OP_EQUALVERIFY,
                                    2,
                                    script.OP_SWAP,
                                    'local_htlcpubkey',
                                    2,
                                    script.OP_CHECKMULTISIG,
                                    script.OP_ELSE,
                                    script.OP_DROP,
                                    'cltv_expiry',
                                    script.OP_CHECKLOCKTIMEVERIFY,
                                    script.OP_DROP,
                                    script.OP_CHECKSIG,
                                    script.OP_ENDIF,
                                    script.OP_ENDIF)


def _fill(template: Template, **values: Union[bytes, int]) -> CScript:
    items = []
    for item in template:
        if isinstance(item, str):
            items.append(values[item])
        else:
            items.append(item)
    return CScript(items)


def _element(item: Union[CScriptOp, int, bytes]) -> Union[CScriptOp, int, bytes]:
    """How a single template item comes back out of CScript iteration"""
    return next(iter(CScript([item])))


def match_script(template: Template, cscript: bytes) -> Optional[Dict[str, Union[bytes, int]]]:
    """If @cscript is an instance of @template, return the placeholder values.

    Pubkeys and hashes come back as bytes, numbers (delays, expiries) as int.
    """
    try:
        elements = list(CScript(cscript))
    except script.CScriptInvalidError:
        return None
    if len(elements) != len(template):
        return None

    values: Dict[str, Union[bytes, int]] = {}
    for item, elem in zip(template, elements):
        if not isinstance(item, str):
            if elem != _element(item):
                return None
        elif isinstance(elem, bytes):
            if item in ('to_self_delay', 'cltv_expiry'):
                values[item] = _decode_num(elem)
            else:
                values[item] = elem
        elif not isinstance(elem, CScriptOp):
            # OP_1..OP_16 iterate as plain ints.
            values[item] = elem
        else:
            return None
    # Re-encoding must be byte-identical (catches non-minimal pushes).
    if bytes(_fill(template, **values)) != bytes(cscript):
        return None
    return values


def _decode_num(b: bytes) -> int:
    if len(b) == 0:
        return 0
    val = int.from_bytes(b, 'little')
    if b[-1] & 0x80:
        return -(val & ~(0x80 << (8 * (len(b) - 1))))
    return val


def p2wsh(witness_script: bytes) -> CScript:
    """The version-0 P2WSH scriptPubKey paying to @witness_script"""
    return CScript([script.OP_0, sha256(witness_script).digest()])


def funding_script(pubkey_a: coincurve.PublicKey, pubkey_b: coincurve.PublicKey) -> CScript:
    # BOLT #3:
    # * Where `pubkey1` is the lexicographically lesser of the two
    #   `funding_pubkey` in compressed format, and where `pubkey2` is the
    #   lexicographically greater of the two.
    pubkey1, pubkey2 = sorted([pubkey_a.format(), pubkey_b.format()])
    return _fill(FUNDING_TEMPLATE, pubkey1=pubkey1, pubkey2=pubkey2)


def to_local_script(revocation_pubkey: coincurve.PublicKey,
                    local_delayed_pubkey: coincurve.PublicKey,
                    to_self_delay: int) -> CScript:
    return _fill(TO_LOCAL_TEMPLATE,
                 revocationpubkey=revocation_pubkey.format(),
                 to_self_delay=to_self_delay,
                 local_delayedpubkey=local_delayed_pubkey.format())


def to_remote_script(remote_pubkey: coincurve.PublicKey) -> CScript:
    """The to_remote scriptPubKey (not a witness script: it's P2WPKH)"""
    return _fill(TO_REMOTE_TEMPLATE, pubkeyhash=Hash160(remote_pubkey.format()))


def _check_payment_hash(payment_hash: bytes) -> None:
    if len(payment_hash) != 32:
        raise EncodingError("payment_hash must be 32 bytes, not {}".format(len(payment_hash)))


def offered_htlc_script(revocation_pubkey: coincurve.PublicKey,
                        local_htlc_pubkey: coincurve.PublicKey,
                        remote_htlc_pubkey: coincurve.PublicKey,
                        payment_hash: bytes) -> CScript:
    _check_payment_hash(payment_hash)
    return _fill(OFFERED_HTLC_TEMPLATE,
                 revocationpubkeyhash=Hash160(revocation_pubkey.format()),
                 remote_htlcpubkey=remote_htlc_pubkey.format(),
                 local_htlcpubkey=local_htlc_pubkey.format(),
                 payment_hash160=ripemd160(payment_hash))


def received_htlc_script(revocation_pubkey: coincurve.PublicKey,
                         local_htlc_pubkey: coincurve.PublicKey,
                         remote_htlc_pubkey: coincurve.PublicKey,
                         payment_hash: bytes,
                         cltv_expiry: int) -> CScript:
    _check_payment_hash(payment_hash)
    return _fill(RECEIVED_HTLC_TEMPLATE,
                 revocationpubkeyhash=Hash160(revocation_pubkey.format()),
                 remote_htlcpubkey=remote_htlc_pubkey.format(),
                 payment_hash160=ripemd160(payment_hash),
                 local_htlcpubkey=local_htlc_pubkey.format(),
                 cltv_expiry=cltv_expiry)


def _pubkey(hexstr: str) -> coincurve.PublicKey:
    return coincurve.PublicKey(bytes.fromhex(hexstr))


def test_funding_script() -> None:
    # BOLT #3:
    # local_funding_pubkey: 023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb
    # remote_funding_pubkey: 030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c1
    # # funding witness script = 5221023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb21030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c152ae
    local = _pubkey('023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb')
    remote = _pubkey('030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c1')
    expected = '5221023da092f6980e58d2c037173180e9a465476026ee50f96695963e8efe436f54eb21030e9f7b623d2ccc7c9bd44d66d5ce21ce504c0acf6385a132cec6d3c39fa711c152ae'
    assert funding_script(local, remote).hex() == expected
    # Argument order doesn't matter.
    assert funding_script(remote, local).hex() == expected


def test_to_local_script() -> None:
    # BOLT #3:
    # # to_local amount 6989140 wscript 63210212a140cd0c6539d07cd08dfe09984dec3251ea808b892efeac3ede9402bf2b1967029000b2752103fd5960528dc152014952efdb702a88f71e3c1653b2314431701ec77e57fde83c68ac
    revocation = _pubkey('0212a140cd0c6539d07cd08dfe09984dec3251ea808b892efeac3ede9402bf2b19')
    delayed = _pubkey('03fd5960528dc152014952efdb702a88f71e3c1653b2314431701ec77e57fde83c')
    wscript = to_local_script(revocation, delayed, 144)
    assert wscript.hex() == '63210212a140cd0c6539d07cd08dfe09984dec3251ea808b892efeac3ede9402bf2b1967029000b2752103fd5960528dc152014952efdb702a88f71e3c1653b2314431701ec77e57fde83c68ac'

    assert match_script(TO_LOCAL_TEMPLATE, wscript) == {'revocationpubkey': revocation.format(),
                                                        'to_self_delay': 144,
                                                        'local_delayedpubkey': delayed.format()}
    # Small delays are encoded as OP_N.
    assert match_script(TO_LOCAL_TEMPLATE, to_local_script(revocation, delayed, 6))['to_self_delay'] == 6
    assert match_script(TO_LOCAL_TEMPLATE, funding_script(revocation, delayed)) is None


def test_htlc_scripts() -> None:
    revocation = _pubkey('0212a140cd0c6539d07cd08dfe09984dec3251ea808b892efeac3ede9402bf2b19')
    local_htlc = _pubkey('030d417a46946384f88d5f3337267c5e579765875dc4daca813e21734b140639e7')
    remote_htlc = _pubkey('0394854aa6eab5b2a8122cc726e9dded053a2184d88256816826d6231c068d4a5b')

    # BOLT #3:
    #     htlc 0 direction: remote->local
    #     htlc 0 amount_msat: 1000000
    #     htlc 0 expiry: 500
    #     htlc 0 payment_preimage: 0000000000000000000000000000000000000000000000000000000000000000
    # ...
    # # HTLC-success #0 wscript
    received = received_htlc_script(revocation, local_htlc, remote_htlc,
                                    sha256(bytes(32)).digest(), 500)
    assert received.hex() == '76a91414011f7254d96b819c76986c277d115efce6f7b58763ac67210394854aa6eab5b2a8122cc726e9dded053a2184d88256816826d6231c068d4a5b7c8201208763a914b8bcb07f6344b42ab04250c86a6e8b75d3fdbbc688527c21030d417a46946384f88d5f3337267c5e579765875dc4daca813e21734b140639e752ae677502f401b175ac6868'

    # BOLT #3:
    #     htlc 2 direction: local->remote
    #     htlc 2 amount_msat: 2000000
    #     htlc 2 expiry: 502
    #     htlc 2 payment_preimage: 0202020202020202020202020202020202020202020202020202020202020202
    offered = offered_htlc_script(revocation, local_htlc, remote_htlc,
                                  sha256(b'\x02' * 32).digest())
    assert offered.hex() == '76a91414011f7254d96b819c76986c277d115efce6f7b58763ac67210394854aa6eab5b2a8122cc726e9dded053a2184d88256816826d6231c068d4a5b7c820120876475527c21030d417a46946384f88d5f3337267c5e579765875dc4daca813e21734b140639e752ae67a914b43e1b38138a41b37f7cd9a1d274bc63e3a9b5d188ac6868'

    assert match_script(RECEIVED_HTLC_TEMPLATE, received)['cltv_expiry'] == 500
    assert match_script(OFFERED_HTLC_TEMPLATE, offered)['payment_hash160'] == ripemd160(sha256(b'\x02' * 32).digest())
    assert match_script(OFFERED_HTLC_TEMPLATE, received) is None
    assert match_script(RECEIVED_HTLC_TEMPLATE, offered) is None

    try:
        offered_htlc_script(revocation, local_htlc, remote_htlc, bytes(20))
        assert False, "short payment hash should be rejected"
    except EncodingError:
        pass


def test_to_remote_script() -> None:
    # BOLT #3 (static_remotekey):
    # # to_remote amount 3000000 P2WPKH(032c0b7cf95324a07d05398b240174dc0c2be444d96b159aa6c7f7b1e668680991)
    remote = _pubkey('032c0b7cf95324a07d05398b240174dc0c2be444d96b159aa6c7f7b1e668680991')
    assert to_remote_script(remote).hex() == '0014cc1b07838e387deacd0e5232e1e8b49f4c29e484'
