#! /usr/bin/python3
from hashlib import sha256
import coincurve
from .errors import TweakError


def derive_pubkey(basepoint: coincurve.PublicKey,
                  per_commitment_point: coincurve.PublicKey) -> coincurve.PublicKey:
    """Derive localpubkey, local_htlcpubkey, remote_htlcpubkey, local_delayedpubkey etc."""
    # BOLT #3:
    # ### `localpubkey`, `local_htlcpubkey`, `remote_htlcpubkey`,
    #  `local_delayedpubkey`, and `remote_delayedpubkey` Derivation
    #
    # These pubkeys are simply generated by addition from their base points:
    #
    #    pubkey = basepoint + SHA256(per_commitment_point || basepoint) * G
    tweak = sha256(per_commitment_point.format() + basepoint.format()).digest()
    try:
        return basepoint.add(tweak, update=False)
    except ValueError as e:
        raise TweakError("cannot tweak basepoint {}: {}".format(basepoint.format().hex(), e))


def derive_privkey(basepoint_secret: coincurve.PrivateKey,
                   per_commitment_point: coincurve.PublicKey) -> coincurve.PrivateKey:
    # BOLT #3:
    # The corresponding private keys can be similarly derived, if the
    # basepoint secrets are known (i.e. the private keys corresponding to
    # `localpubkey`, `local_htlcpubkey`, and `local_delayedpubkey` only):
    #
    #    privkey = basepoint_secret + SHA256(per_commitment_point || basepoint)
    basepoint = basepoint_secret.public_key
    tweak = sha256(per_commitment_point.format() + basepoint.format()).digest()
    try:
        return basepoint_secret.add(tweak, update=False)
    except ValueError as e:
        raise TweakError("cannot tweak secret for {}: {}".format(basepoint.format().hex(), e))


def revocation_pubkey(revocation_basepoint: coincurve.PublicKey,
                      per_commitment_point: coincurve.PublicKey) -> coincurve.PublicKey:
    # BOLT #3:
    # The `revocationpubkey` is a blinded key: when the local node wishes
    # to create a new commitment for the remote node, it uses its own
    # `revocation_basepoint` and the remote node's `per_commitment_point`
    # to derive a new `revocationpubkey` for the commitment.
    # ...
    #    revocationpubkey = revocation_basepoint * SHA256(revocation_basepoint || per_commitment_point)
    #      + per_commitment_point * SHA256(per_commitment_point || revocation_basepoint)
    revocation_tweak = sha256(revocation_basepoint.format()
                              + per_commitment_point.format()).digest()
    per_commit_tweak = sha256(per_commitment_point.format()
                              + revocation_basepoint.format()).digest()
    try:
        val = revocation_basepoint.multiply(revocation_tweak, update=False)
        val2 = per_commitment_point.multiply(per_commit_tweak, update=False)
        return coincurve.PublicKey.combine_keys([val, val2], context=revocation_basepoint.context)
    except ValueError as e:
        raise TweakError("cannot derive revocation key for {}: {}"
                         .format(revocation_basepoint.format().hex(), e))


def revocation_privkey(revocation_basepoint_secret: coincurve.PrivateKey,
                       per_commitment_secret: coincurve.PrivateKey) -> coincurve.PrivateKey:
    # BOLT #3:
    # The corresponding private key can be derived once the
    # `per_commitment_secret` is known:
    #
    #    revocationprivkey = revocation_basepoint_secret * SHA256(revocation_basepoint || per_commitment_point)
    #      + per_commitment_secret * SHA256(per_commitment_point || revocation_basepoint)
    revocation_basepoint = revocation_basepoint_secret.public_key
    per_commitment_point = per_commitment_secret.public_key

    revocation_tweak = sha256(revocation_basepoint.format()
                              + per_commitment_point.format()).digest()
    per_commit_tweak = sha256(per_commitment_point.format()
                              + revocation_basepoint.format()).digest()
    try:
        val = revocation_basepoint_secret.multiply(revocation_tweak, update=False)
        val2 = per_commitment_secret.multiply(per_commit_tweak, update=False)
        return val.add(val2.secret, update=False)
    except ValueError as e:
        raise TweakError("cannot derive revocation secret for {}: {}"
                         .format(revocation_basepoint.format().hex(), e))


def test_key_derivation() -> None:
    # BOLT #3:
    # # Appendix E: Key Derivation Test Vectors
    #
    # This is for the test vectors in this appendix:
    #
    #     base_secret: 0x000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f
    #     per_commitment_secret: 0x1f1e1d1c1b1a191817161514131211100f0e0d0c0b0a09080706050403020100
    #     base_point: 0x036d6caac248af96f6afa7f904f550253a0f3ef3f5aa2fe6838a95b216691468e2
    #     per_commitment_point: 0x025f7117a78150fe2ef97db7cfc83bd57b2e2c0d0dd25eaf467a4a1c2a45ce1486
    base_secret = coincurve.PrivateKey(bytes.fromhex('000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f'))
    per_commitment_secret = coincurve.PrivateKey(bytes.fromhex('1f1e1d1c1b1a191817161514131211100f0e0d0c0b0a09080706050403020100'))
    base_point = base_secret.public_key
    per_commitment_point = per_commitment_secret.public_key
    assert base_point.format().hex() == '036d6caac248af96f6afa7f904f550253a0f3ef3f5aa2fe6838a95b216691468e2'
    assert per_commitment_point.format().hex() == '025f7117a78150fe2ef97db7cfc83bd57b2e2c0d0dd25eaf467a4a1c2a45ce1486'

    # BOLT #3:
    # name: derivation of key from basepoint and per_commitment_point
    # # SHA256(per_commitment_point || basepoint)
    # # => SHA256(0x025f7117a78150fe2ef97db7cfc83bd57b2e2c0d0dd25eaf467a4a1c2a45ce1486 || 0x036d6caac248af96f6afa7f904f550253a0f3ef3f5aa2fe6838a95b216691468e2)
    # # = 0xcbcdd70fcfad15ea8e5d7a5e1f79f33afcb4dc5b6ee5f63ee18a0b68ec6ae24f
    # # + basepoint (0x036d6caac248af96f6afa7f904f550253a0f3ef3f5aa2fe6838a95b216691468e2)
    # # = 0x0235f2dbfaa89b57ec7b055afe29849ef7ddfeb1cefdb9ebdc43f5494984db29e5
    # localpubkey: 0x0235f2dbfaa89b57ec7b055afe29849ef7ddfeb1cefdb9ebdc43f5494984db29e5
    assert derive_pubkey(base_point, per_commitment_point).format().hex() == '0235f2dbfaa89b57ec7b055afe29849ef7ddfeb1cefdb9ebdc43f5494984db29e5'

    # BOLT #3:
    # name: derivation of secret key from basepoint secret and per_commitment_secret
    # localprivkey: 0xcbced912d3b21bf196a766651e436aff192362621ce317704ea2f75d87e7be0f
    privkey = derive_privkey(base_secret, per_commitment_point)
    assert privkey.secret.hex() == 'cbced912d3b21bf196a766651e436aff192362621ce317704ea2f75d87e7be0f'
    assert privkey.public_key.format() == derive_pubkey(base_point, per_commitment_point).format()

    # BOLT #3:
    # name: derivation of revocation pubkey from basepoint and per_commitment_point
    # revocationpubkey: 0x02916e326636d19c33f13e8c0c3a03dd157f332f3e99c317c141dd865eb01f8ff0
    assert revocation_pubkey(base_point, per_commitment_point).format().hex() == '02916e326636d19c33f13e8c0c3a03dd157f332f3e99c317c141dd865eb01f8ff0'

    # BOLT #3:
    # name: derivation of revocation secret from basepoint_secret and per_commitment_secret
    # revocationprivkey: 0xd09ffff62ddb2297ab000cc85bcb4283fdeb6aa052affbc9dddcf33b61078110
    revkey = revocation_privkey(base_secret, per_commitment_secret)
    assert revkey.secret.hex() == 'd09ffff62ddb2297ab000cc85bcb4283fdeb6aa052affbc9dddcf33b61078110'
    assert revkey.public_key.format() == revocation_pubkey(base_point, per_commitment_point).format()
