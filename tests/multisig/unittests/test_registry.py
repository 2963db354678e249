import pytest

from multisig.exceptions import Duplicate, InvalidFormat, NotFound
from multisig.registry import KeyRegistry, match_key
from multisig.stores import KeyStore
from tests.multisig.objects.obj_keys import XPRV_A, XPUB_A, XPUB_B, XPUB_C, ZPUB_VERSION, child_pubkey, reencode


def registry(scope='0', gap_limit=100):
    return KeyRegistry(scope, KeyStore(), gap_limit=gap_limit)


@pytest.mark.django_db
def test_register_and_list_newest_first():
    keys = registry()
    first = keys.register('  Alice ', f' {XPUB_A} ')
    second = keys.register('Bob', XPUB_B)
    assert first.label == 'Alice'
    assert first.xpub == XPUB_A
    assert [key.id for key in keys.list()] == [second.id, first.id]


@pytest.mark.django_db
def test_register_rejects_duplicates_and_bad_material():
    keys = registry()
    keys.register('Alice', XPUB_A)
    with pytest.raises(Duplicate):
        keys.register('Alice again', XPUB_A)
    with pytest.raises(Duplicate):
        keys.register('Alice as zpub', reencode(XPUB_A, ZPUB_VERSION))
    with pytest.raises(InvalidFormat):
        keys.register('Mallory', XPRV_A)
    with pytest.raises(InvalidFormat):
        keys.register('', XPUB_B)


@pytest.mark.django_db
def test_scopes_are_isolated():
    registry('alpha').register('Alice', XPUB_A)
    registry('beta').register('Alice', XPUB_A)
    assert len(registry('alpha').list()) == 1
    assert len(registry('gamma').list()) == 0


@pytest.mark.django_db
def test_relabel_and_remove():
    keys = registry()
    key = keys.register('Alice', XPUB_A)
    assert keys.relabel(key.id, 'Alice (cold)').label == 'Alice (cold)'
    with pytest.raises(NotFound):
        keys.relabel(key.id + 100, 'nobody')
    assert keys.remove(key.id) is True
    assert keys.remove(key.id) is False
    with pytest.raises(NotFound):
        registry('other').relabel(key.id, 'x')


@pytest.mark.django_db
def test_derive_public_key():
    keys = registry()
    key = keys.register('Alice', XPUB_A)
    assert keys.derive_public_key(key.id, [0, 3]) == child_pubkey(XPUB_A, 0, 3)


@pytest.mark.django_db
def test_match_key_finds_receive_and_change_paths():
    keys = registry(gap_limit=10)
    key_b = keys.register('Bob', XPUB_B)
    keys.register('Alice', XPUB_A)

    match = keys.match_key(child_pubkey(XPUB_B, 1, 4))
    assert match.key_id == key_b.id
    assert match.label == 'Bob'
    assert match.path == '1/4'

    assert keys.match_key(child_pubkey(XPUB_C, 0, 0)) is None
    # beyond the gap limit
    assert keys.match_key(child_pubkey(XPUB_A, 0, 10)) is None


def test_match_key_accepts_uncompressed_candidates():
    from coincurve import PublicKey

    pubkey = child_pubkey(XPUB_A, 0, 2)
    uncompressed = PublicKey(pubkey).format(compressed=False)

    class Key(object):
        id = 1
        label = 'Alice'
        xpub = XPUB_A

    match = match_key(uncompressed, [Key()], gap_limit=5)
    assert match.path == '0/2'
    assert match_key(b'\x05' + b'\x00' * 32, [Key()], gap_limit=5) is None
