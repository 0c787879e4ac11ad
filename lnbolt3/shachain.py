#! /usr/bin/python3
import hashlib
import coincurve
from coincurve.context import Context
from typing import List, Optional, Tuple
from .errors import CommitmentIndexError, EncodingError, KeyDerivationError
from .utils import MAX_COMMITMENT_INDEX


def _check_index(index: int) -> None:
    if not 0 <= index <= MAX_COMMITMENT_INDEX:
        raise CommitmentIndexError("48 bits is all you get! ({})".format(index))


def _derive(base: bytes, bits: int, index: int) -> bytes:
    # BOLT #3:
    # generate_from_seed(seed, I):
    #     P = seed
    #     for B in 47 down to 0:
    #         if B set in I:
    #             flip(B) in P
    #             P = SHA256(P)
    #     return P
    #
    # Where "flip(B)" alternates the (B mod 8)'th bit of the (B div 8)'th
    # byte of the value.
    P = bytearray(base)
    for B in range(bits - 1, -1, -1):
        if ((1 << B) & index) != 0:
            P[B // 8] ^= 1 << (B % 8)
            P = bytearray(hashlib.sha256(P).digest())
    return bytes(P)


def per_commit_secret(seed: bytes, index: int) -> bytes:
    """The per-commitment secret for shachain index @index.

    Note that indices count *down*: the first commitment uses
    281474976710655.
    """
    if len(seed) != 32:
        raise KeyDerivationError("commitment seed must be 32 bytes, not {}".format(len(seed)))
    _check_index(index)
    return _derive(seed, 48, index)


def per_commit_point(seed: bytes, index: int, ctx: Context) -> coincurve.PublicKey:
    return coincurve.PublicKey.from_secret(per_commit_secret(seed, index), context=ctx)


class ShachainStore(object):
    """Compact storage of the secrets our peer reveals.

    Each revealed secret either lets us derive some of the earlier ones,
    or is itself stored in the first free bucket; at most 49 secrets are
    ever kept.
    """
    def __init__(self) -> None:
        self.known: List[Optional[Tuple[int, bytes]]] = [None] * 49

    @staticmethod
    def where_to_put_secret(index: int) -> int:
        # BOLT #3:
        # where_to_put_secret(I):
        #     for B in 0 to 47:
        #         if testbit(I) in B == 1:
        #             return B
        #     # I = 0, this is the seed.
        #     return 48
        for B in range(48):
            if index & (1 << B):
                return B
        return 48

    def insert_secret(self, secret: bytes, index: int) -> None:
        _check_index(index)
        pos = self.where_to_put_secret(index)

        # BOLT #3:
        # insert_secret(secret, I):
        #     B = where_to_put_secret(secret, I)
        #
        #     # This tracks the index of the secret in each bucket across the traversal.
        #     for b in 0 to B:
        #         if derive_secret(secret, B, known[b].index) != known[b].secret:
        #             error The secret for I is incorrect
        #             return
        for b in range(pos):
            entry = self.known[b]
            if entry is None:
                continue
            known_index, known_secret = entry
            if _derive(secret, pos, known_index) != known_secret:
                raise EncodingError("The secret for index {} is incorrect".format(index))

        self.known[pos] = (index, secret)

    def derive_secret(self, index: int) -> bytes:
        _check_index(index)
        # BOLT #3:
        # derive_old_secret(I):
        #     for b in 0 to len(secrets):
        #         # Mask off the non-zero prefix of the index.
        #         MASK = ~((1 << b) - 1)
        #         if (I & MASK) == secrets[b].index:
        #             return derive(known, i, I)
        #     error The index is not derivable
        for b, entry in enumerate(self.known):
            if entry is None:
                continue
            mask = ~((1 << b) - 1)
            if (index & mask) == entry[0]:
                return _derive(entry[1], b, index)
        raise CommitmentIndexError("index {} is not derivable".format(index))


def test_shachain() -> None:
    # BOLT #3:
    # name: generate_from_seed 0 final node
    # seed: 0x0000000000000000000000000000000000000000000000000000000000000000
    # I: 281474976710655
    # output: 0x02a40c85b6f28da08dfdbe0926c53fab2de6d28c10301f8f7c4073d5e42e3148
    assert per_commit_secret(bytes(32), 281474976710655).hex() == '02a40c85b6f28da08dfdbe0926c53fab2de6d28c10301f8f7c4073d5e42e3148'

    # BOLT #3:
    # name: generate_from_seed FF final node
    # seed: 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF
    # I: 281474976710655
    # output: 0x7cc854b54e3e0dcdb010d7a3fee464a9687be6e8db3be6854c475621e007a5dc
    assert per_commit_secret(b'\xff' * 32, 281474976710655).hex() == '7cc854b54e3e0dcdb010d7a3fee464a9687be6e8db3be6854c475621e007a5dc'

    # BOLT #3:
    # name: generate_from_seed FF alternate bits 1
    # I: 0xaaaaaaaaaaa
    # output: 0x56f4008fb007ca9acf0e15b054d5c9fd12ee06cea347914ddbaed70d1c13a528
    assert per_commit_secret(b'\xff' * 32, 0xaaaaaaaaaaa).hex() == '56f4008fb007ca9acf0e15b054d5c9fd12ee06cea347914ddbaed70d1c13a528'

    # BOLT #3:
    # name: generate_from_seed FF alternate bits 2
    # I: 0x555555555555
    # output: 0x9015daaeb06dba4ccc05b91b2f73bd54405f2be9f217fbacd3c5ac2e62327d31
    assert per_commit_secret(b'\xff' * 32, 0x555555555555).hex() == '9015daaeb06dba4ccc05b91b2f73bd54405f2be9f217fbacd3c5ac2e62327d31'

    # BOLT #3:
    # name: generate_from_seed 01 last nontrivial node
    # seed: 0x0101010101010101010101010101010101010101010101010101010101010101
    # I: 1
    # output: 0x915c75942a26bb3a433a8ce2cb0427c29ec6c1775cfc78328b57f6ba7bfeaa9c
    assert per_commit_secret(b'\x01' * 32, 1).hex() == '915c75942a26bb3a433a8ce2cb0427c29ec6c1775cfc78328b57f6ba7bfeaa9c'


def test_shachain_range() -> None:
    for bad in (-1, 1 << 48):
        try:
            per_commit_secret(bytes(32), bad)
            assert False, "index {} should be rejected".format(bad)
        except CommitmentIndexError:
            pass

    try:
        per_commit_secret(bytes(31), 0)
        assert False, "short seed should be rejected"
    except KeyDerivationError:
        pass
