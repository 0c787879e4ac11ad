class Bolt3Error(Exception):
    """Base of all errors raised while deriving keys or building transactions"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class KeyDerivationError(Bolt3Error):
    """Bad seed, or a BIP32 index/child key outside the valid domain"""


class CommitmentIndexError(Bolt3Error, ValueError):
    """Commitment numbers only have 48 bits"""


class TweakError(Bolt3Error):
    """A hash-derived tweak produced an invalid key.

    This cannot be fixed by retrying: the same inputs always produce the
    same tweak.
    """


class AmountError(Bolt3Error, ValueError):
    """Satoshi arithmetic went negative or exceeded the funding amount"""


class EncodingError(Bolt3Error, ValueError):
    """A field does not have the expected binary layout"""


class SignatureError(Bolt3Error):
    """Signature bytes are malformed (as opposed to merely not verifying)"""
