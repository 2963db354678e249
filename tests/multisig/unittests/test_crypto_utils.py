import pytest
from bip_utils import Bip32Secp256k1

from multisig.crypto_utils import (
    compress_pubkey,
    derive_pubkey_from_xpub,
    get_fingerprint,
    normalize_extended_key,
    parse_path,
)
from multisig.exceptions import DerivationError, InvalidFormat, InvalidKey
from tests.multisig.objects.obj_keys import (
    TPUB_VERSION,
    XPRV_A,
    XPUB_A,
    XPUB_A_0H,
    XPUB_A_0H_1,
    XPUB_A_FINGERPRINT,
    ZPUB_VERSION,
    reencode,
)

# secp256k1 generator point
G_COMPRESSED = bytes.fromhex('0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798')
G_UNCOMPRESSED = bytes.fromhex(
    '0479be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798'
    '483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8'
)


def test_child_derivation_matches_bip32_vector():
    expected = Bip32Secp256k1.FromExtendedKey(XPUB_A_0H_1).PublicKey().RawCompressed().ToBytes()
    assert derive_pubkey_from_xpub(XPUB_A_0H, (1,)) == expected


def test_two_level_derivation():
    node = Bip32Secp256k1.FromExtendedKey(XPUB_A).ChildKey(1).ChildKey(42)
    assert derive_pubkey_from_xpub(XPUB_A, (1, 42)) == node.PublicKey().RawCompressed().ToBytes()


def test_slip132_keys_are_normalized():
    zpub = reencode(XPUB_A, ZPUB_VERSION)
    assert zpub.startswith('zpub')
    assert normalize_extended_key(zpub) == XPUB_A
    assert derive_pubkey_from_xpub(zpub, (0, 0)) == derive_pubkey_from_xpub(XPUB_A, (0, 0))


def test_private_keys_are_rejected():
    with pytest.raises(InvalidFormat) as exc:
        normalize_extended_key(XPRV_A)
    assert 'Private extended keys are not accepted' in exc.value.message


def test_wrong_network_is_rejected():
    tpub = reencode(XPUB_A, TPUB_VERSION)
    with pytest.raises(InvalidFormat):
        normalize_extended_key(tpub, 'mainnet')
    assert normalize_extended_key(tpub, 'testnet') == tpub


def test_malformed_keys_are_rejected():
    for key in ('', 'xpub123', XPUB_A[:-1] + ('1' if XPUB_A[-1] != '1' else '2')):
        with pytest.raises(InvalidFormat):
            normalize_extended_key(key)
    with pytest.raises(InvalidKey):
        derive_pubkey_from_xpub('xpub123', (0, 0))


def test_hardened_derivation_is_refused():
    with pytest.raises(DerivationError):
        derive_pubkey_from_xpub(XPUB_A, (0x80000000,))
    with pytest.raises(DerivationError):
        parse_path("0/1'")
    assert parse_path('m/0/5') == (0, 5)


def test_fingerprint_and_compression():
    assert get_fingerprint(XPUB_A) == XPUB_A_FINGERPRINT
    assert compress_pubkey(G_UNCOMPRESSED) == G_COMPRESSED
    assert compress_pubkey(G_COMPRESSED) == G_COMPRESSED
    with pytest.raises(InvalidKey):
        compress_pubkey(b'\x04' + b'\x00' * 64)
