#! /usr/bin/python3
import coincurve
from coincurve.context import Context
from enum import IntEnum
from .bip32 import ExtendedKey, HARDENED
from .errors import CommitmentIndexError, KeyDerivationError
from .shachain import per_commit_secret
from .tweak import derive_pubkey, derive_privkey, revocation_pubkey, revocation_privkey
from .utils import MAX_COMMITMENT_INDEX, privkey_expand, check_hex


class KeyFamily(IntEnum):
    """Which channel key a derivation path is for"""
    multisig = 0
    revocation_base = 1
    htlc_base = 2
    payment_base = 3
    delay_base = 4
    commitment_seed = 5


# Keys live under m/1017'/0'/<family>'/0/<channel_index>
KEY_PURPOSE = 1017
KEY_COIN_TYPE = 0


class ChannelPublicKeys(object):
    """The basepoints we send to the peer in open_channel/accept_channel"""
    def __init__(self,
                 funding_pubkey: coincurve.PublicKey,
                 revocation_basepoint: coincurve.PublicKey,
                 payment_basepoint: coincurve.PublicKey,
                 delayed_payment_basepoint: coincurve.PublicKey,
                 htlc_basepoint: coincurve.PublicKey):
        self.funding_pubkey = funding_pubkey
        self.revocation_basepoint = revocation_basepoint
        self.payment_basepoint = payment_basepoint
        self.delayed_payment_basepoint = delayed_payment_basepoint
        self.htlc_basepoint = htlc_basepoint

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChannelPublicKeys):
            return NotImplemented
        return all(getattr(self, k).format() == getattr(other, k).format()
                   for k in vars(self))


class CommitmentKeySet(object):
    """All the keys which appear in one commitment transaction.

    These are from the point of view of the commitment's holder: "local"
    is whoever would broadcast it.
    """
    def __init__(self,
                 per_commitment_point: coincurve.PublicKey,
                 revocation_key: coincurve.PublicKey,
                 local_htlc_key: coincurve.PublicKey,
                 remote_htlc_key: coincurve.PublicKey,
                 local_delayed_payment_key: coincurve.PublicKey,
                 remote_payment_key: coincurve.PublicKey):
        self.per_commitment_point = per_commitment_point
        self.revocation_key = revocation_key
        self.local_htlc_key = local_htlc_key
        self.remote_htlc_key = remote_htlc_key
        self.local_delayed_payment_key = local_delayed_payment_key
        self.remote_payment_key = remote_payment_key

    @classmethod
    def derive(cls,
               per_commitment_point: coincurve.PublicKey,
               local: ChannelPublicKeys,
               remote: ChannelPublicKeys,
               option_static_remotekey: bool = True) -> 'CommitmentKeySet':
        # BOLT #3:
        # The `revocationpubkey` is a blinded key: when the local node wishes
        # to create a new commitment for the remote node, it uses its own
        # `revocation_basepoint` and the remote node's `per_commitment_point`
        # to derive a new `revocationpubkey` for the commitment.

        # BOLT #3:
        # If `option_static_remotekey` is negotiated the `remotepubkey` is
        # simply the remote node's `payment_basepoint`, otherwise it is
        # calculated as above using the remote node's `payment_basepoint`.
        if option_static_remotekey:
            remote_payment_key = remote.payment_basepoint
        else:
            remote_payment_key = derive_pubkey(remote.payment_basepoint, per_commitment_point)

        return cls(per_commitment_point,
                   revocation_pubkey(remote.revocation_basepoint, per_commitment_point),
                   derive_pubkey(local.htlc_basepoint, per_commitment_point),
                   derive_pubkey(remote.htlc_basepoint, per_commitment_point),
                   derive_pubkey(local.delayed_payment_basepoint, per_commitment_point),
                   remote_payment_key)


class KeySet(object):
    """The secrets for one channel: five base secrets and the shachain seed"""
    def __init__(self,
                 funding_privkey: coincurve.PrivateKey,
                 revocation_base_secret: coincurve.PrivateKey,
                 payment_base_secret: coincurve.PrivateKey,
                 delayed_payment_base_secret: coincurve.PrivateKey,
                 htlc_base_secret: coincurve.PrivateKey,
                 shachain_seed: bytes):
        if len(shachain_seed) != 32:
            raise KeyDerivationError("shachain seed must be 32 bytes, not {}".format(len(shachain_seed)))
        self.funding_privkey = funding_privkey
        self.revocation_base_secret = revocation_base_secret
        self.payment_base_secret = payment_base_secret
        self.delayed_payment_base_secret = delayed_payment_base_secret
        self.htlc_base_secret = htlc_base_secret
        self.shachain_seed = shachain_seed

    @classmethod
    def from_hex(cls,
                 ctx: Context,
                 funding_privkey: str,
                 revocation_base_secret: str,
                 payment_base_secret: str,
                 delayed_payment_base_secret: str,
                 htlc_base_secret: str,
                 shachain_seed: str) -> 'KeySet':
        return cls(privkey_expand(funding_privkey, ctx),
                   privkey_expand(revocation_base_secret, ctx),
                   privkey_expand(payment_base_secret, ctx),
                   privkey_expand(delayed_payment_base_secret, ctx),
                   privkey_expand(htlc_base_secret, ctx),
                   bytes.fromhex(check_hex(shachain_seed, 64)))

    @property
    def context(self) -> Context:
        return self.funding_privkey.context

    def to_public_keys(self) -> ChannelPublicKeys:
        return ChannelPublicKeys(self.funding_privkey.public_key,
                                 self.revocation_base_secret.public_key,
                                 self.payment_base_secret.public_key,
                                 self.delayed_payment_base_secret.public_key,
                                 self.htlc_base_secret.public_key)

    def raw_per_commit_secret(self, n: int) -> coincurve.PrivateKey:
        # BOLT #3:
        # The first secret used:
        #  - MUST be index 281474976710655,
        #    - and from there, the index is decremented.
        if not 0 <= n <= MAX_COMMITMENT_INDEX:
            raise CommitmentIndexError("48 bits is all you get! ({})".format(n))
        return coincurve.PrivateKey(per_commit_secret(self.shachain_seed, MAX_COMMITMENT_INDEX - n),
                                    context=self.context)

    def per_commit_secret(self, n: int) -> str:
        return self.raw_per_commit_secret(n).secret.hex()

    def raw_per_commit_point(self, n: int) -> coincurve.PublicKey:
        return self.raw_per_commit_secret(n).public_key

    def per_commit_point(self, n: int) -> str:
        return self.raw_per_commit_point(n).format().hex()

    def commitment_keys(self,
                        n: int,
                        counterparty: ChannelPublicKeys,
                        option_static_remotekey: bool = True) -> CommitmentKeySet:
        """Keys for our own commitment transaction number @n"""
        return CommitmentKeySet.derive(self.raw_per_commit_point(n),
                                       self.to_public_keys(),
                                       counterparty,
                                       option_static_remotekey)

    def htlc_privkey(self, per_commitment_point: coincurve.PublicKey) -> coincurve.PrivateKey:
        return derive_privkey(self.htlc_base_secret, per_commitment_point)

    def delayed_payment_privkey(self, per_commitment_point: coincurve.PublicKey) -> coincurve.PrivateKey:
        return derive_privkey(self.delayed_payment_base_secret, per_commitment_point)

    def payment_privkey(self,
                        per_commitment_point: coincurve.PublicKey,
                        option_static_remotekey: bool = True) -> coincurve.PrivateKey:
        """Key to spend to_remote outputs of the peer's commitments"""
        if option_static_remotekey:
            return self.payment_base_secret
        return derive_privkey(self.payment_base_secret, per_commitment_point)

    def revocation_privkey(self, per_commitment_secret: coincurve.PrivateKey) -> coincurve.PrivateKey:
        """Once the peer revealed @per_commitment_secret, we can spend its revoked outputs"""
        return revocation_privkey(self.revocation_base_secret, per_commitment_secret)


class KeysManager(object):
    """Derives every channel's keys from a single node seed"""
    def __init__(self, seed: bytes, ctx: Context):
        if len(seed) != 32:
            raise KeyDerivationError("seed must be 32 bytes, not {}".format(len(seed)))
        self.ctx = ctx
        self.master_key = ExtendedKey.from_seed(seed, ctx)

    def derive_key(self, family: KeyFamily, channel_index: int) -> coincurve.PrivateKey:
        if not 0 <= channel_index < HARDENED:
            raise KeyDerivationError("channel index {} out of range".format(channel_index))
        if not 0 <= family < HARDENED:
            raise KeyDerivationError("key family {} out of range".format(family))
        path = [KEY_PURPOSE + HARDENED,
                KEY_COIN_TYPE + HARDENED,
                int(family) + HARDENED,
                0,
                channel_index]
        return self.master_key.derive_path(path).privkey

    def derive_channel_keys(self, channel_index: int) -> KeySet:
        return KeySet(self.derive_key(KeyFamily.multisig, channel_index),
                      self.derive_key(KeyFamily.revocation_base, channel_index),
                      self.derive_key(KeyFamily.payment_base, channel_index),
                      self.derive_key(KeyFamily.delay_base, channel_index),
                      self.derive_key(KeyFamily.htlc_base, channel_index),
                      self.derive_key(KeyFamily.commitment_seed, channel_index).secret)


def test_keys_manager() -> None:
    ctx = Context()
    km = KeysManager(bytes(range(32)), ctx)
    keys = km.derive_channel_keys(0)

    # Deterministic, and each family and channel gets a different key.
    assert km.derive_channel_keys(0).to_public_keys() == keys.to_public_keys()
    assert KeysManager(bytes(range(32)), Context()).derive_channel_keys(0).to_public_keys() == keys.to_public_keys()
    secrets = set(km.derive_key(f, i).secret for f in KeyFamily for i in (0, 1))
    assert len(secrets) == len(KeyFamily) * 2
    assert keys.shachain_seed == km.derive_key(KeyFamily.commitment_seed, 0).secret

    for bad in (-1, HARDENED):
        try:
            km.derive_channel_keys(bad)
            assert False, "channel index {} should be rejected".format(bad)
        except KeyDerivationError:
            pass

    try:
        KeysManager(bytes(31), ctx)
        assert False, "short seed should be rejected"
    except KeyDerivationError:
        pass


def test_per_commit_secret_order() -> None:
    ctx = Context()
    keys = KeySet.from_hex(ctx, '01', '02', '03', '04', '05', '00' * 32)
    # Commitment 0 uses the top shachain index.
    assert keys.per_commit_secret(0) == '02a40c85b6f28da08dfdbe0926c53fab2de6d28c10301f8f7c4073d5e42e3148'
    assert keys.raw_per_commit_point(0).format() == coincurve.PublicKey.from_secret(bytes.fromhex(keys.per_commit_secret(0))).format()


def test_revocation_symmetry() -> None:
    ctx = Context()
    local = KeySet.from_hex(ctx, '11', '12', '13', '14', '15', '01' * 32)
    remote = KeySet.from_hex(ctx, '21', '22', '23', '24', '25', '02' * 32)

    for n in (0, 1, 42):
        keys = local.commitment_keys(n, remote.to_public_keys())
        # Once we reveal our secret, the peer can sign for the revocation key.
        revkey = remote.revocation_privkey(local.raw_per_commit_secret(n))
        assert revkey.public_key.format() == keys.revocation_key.format()
        assert local.htlc_privkey(keys.per_commitment_point).public_key.format() == keys.local_htlc_key.format()
        assert remote.htlc_privkey(keys.per_commitment_point).public_key.format() == keys.remote_htlc_key.format()
        assert local.delayed_payment_privkey(keys.per_commitment_point).public_key.format() == keys.local_delayed_payment_key.format()
        assert remote.payment_privkey(keys.per_commitment_point).public_key.format() == keys.remote_payment_key.format()

    # Different commitments, different keys.
    assert local.commitment_keys(1, remote.to_public_keys()).revocation_key.format() != \
        local.commitment_keys(2, remote.to_public_keys()).revocation_key.format()
