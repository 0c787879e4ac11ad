#! /usr/bin/python3
import pytest
from lnbolt3 import CommitmentIndexError, EncodingError, MAX_COMMITMENT_INDEX, ShachainStore, per_commit_secret


SEED = b'\xff' * 32


def test_store_and_derive() -> None:
    store = ShachainStore()
    # The peer reveals secrets counting down from the top index.
    for n in range(20):
        index = MAX_COMMITMENT_INDEX - n
        store.insert_secret(per_commit_secret(SEED, index), index)

    for n in range(20):
        index = MAX_COMMITMENT_INDEX - n
        assert store.derive_secret(index) == per_commit_secret(SEED, index)

    # Never more than one entry per bucket.
    assert len([e for e in store.known if e is not None]) <= 49

    # We can't know secrets which haven't been revealed yet.
    with pytest.raises(CommitmentIndexError):
        store.derive_secret(MAX_COMMITMENT_INDEX - 20)


def test_where_to_put_secret() -> None:
    assert ShachainStore.where_to_put_secret(MAX_COMMITMENT_INDEX) == 0
    assert ShachainStore.where_to_put_secret(MAX_COMMITMENT_INDEX - 1) == 1
    assert ShachainStore.where_to_put_secret(MAX_COMMITMENT_INDEX - 3) == 2
    assert ShachainStore.where_to_put_secret(0) == 48


def test_incorrect_secret() -> None:
    # BOLT #3:
    # name: insert_secret #1 incorrect
    # ...
    # error: "The secret for I is incorrect"
    store = ShachainStore()
    store.insert_secret(per_commit_secret(bytes(32), MAX_COMMITMENT_INDEX), MAX_COMMITMENT_INDEX)
    with pytest.raises(EncodingError):
        store.insert_secret(per_commit_secret(SEED, MAX_COMMITMENT_INDEX - 1), MAX_COMMITMENT_INDEX - 1)


def test_bad_index() -> None:
    store = ShachainStore()
    with pytest.raises(CommitmentIndexError):
        store.insert_secret(bytes(32), MAX_COMMITMENT_INDEX + 1)
    with pytest.raises(CommitmentIndexError):
        store.derive_secret(-1)
