import hashlib

import pytest
from bip_utils import SegwitBech32Decoder

from multisig.derivation import (
    address_from_witness_script,
    derive_address,
    derive_addresses,
    derive_descriptor,
    descriptor_checksum,
    verify_checksum,
)
from multisig.exceptions import DerivationError, InvalidKey, InvalidM, KeyCountMismatch
from tests.multisig.objects.obj_keys import (
    XPUB_A,
    XPUB_A_FINGERPRINT,
    XPUB_B,
    XPUB_B_FINGERPRINT,
    XPUB_C,
    ZPUB_VERSION,
    child_pubkey,
    reencode,
)

# BIP173 P2WSH vector: sha256 of <0279be...f81798> OP_CHECKSIG
BIP173_WITNESS_SCRIPT = bytes.fromhex('210279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798ac')

# Testnet 2-of-2 wsh(sortedmulti) spent in Electrum's wallet test suite, keys at /0/0
COSIGNER_TPUB_1 = 'tpubD9MoDeHnEQnU5EMgt9mc4yKU6SURbfq2ooMToY5GH95B8Li1CEsuo9dBKXM2sdjuDGq4KCXLuigss3y22fZULzVrfVuZDxEN55Sp6CcU9DK'
COSIGNER_TPUB_2 = 'tpubDFF7YPCSGHZy55HkQj6HJkXCR8DWbKKXpTYBH38fSHf6VuoEzNmZQZdAoKEVy36S8zXkbGeV4XQU6vaRXGsQfgptFYPR4HSpAenqkY7J7Lg'
COSIGNER_PUBKEY_1 = '022c4338968f87a09b0fefd0aaac36f1b983bab237565d521944c60fdc48275049'
COSIGNER_PUBKEY_2 = '03cf9a6ac058d36a6dc325b19715a2223c6416e1cef13bc047a99bded8c99463ca'
COSIGNER_WITNESS_SCRIPT = '5221' + COSIGNER_PUBKEY_1 + '21' + COSIGNER_PUBKEY_2 + '52ae'
COSIGNER_SCRIPT_PUBKEY = '00207f50b9d6eb4d899c710d8c48903de33d966ff52445d5a57b5210d02a5dd7e3bf'


def test_p2wsh_address_vectors():
    assert address_from_witness_script(BIP173_WITNESS_SCRIPT) == \
        'bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3'
    assert address_from_witness_script(BIP173_WITNESS_SCRIPT, network='testnet') == \
        'tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7'


def test_two_of_two_address_at_index_zero():
    derived = derive_address([COSIGNER_TPUB_1, COSIGNER_TPUB_2], 2, 0, n=2, network='testnet')
    assert derived.pubkeys == [bytes.fromhex(COSIGNER_PUBKEY_1), bytes.fromhex(COSIGNER_PUBKEY_2)]
    assert derived.witness_script.hex() == COSIGNER_WITNESS_SCRIPT
    assert derived.script_pubkey.hex() == COSIGNER_SCRIPT_PUBKEY
    assert derived.address.startswith('tb1q')
    assert SegwitBech32Decoder.Decode('tb', derived.address) == (0, bytes.fromhex(COSIGNER_SCRIPT_PUBKEY[4:]))


def test_two_of_two_address_from_registered_masters():
    derived = derive_address([XPUB_A, XPUB_B], 2, 0, n=2)
    pubkeys = sorted([child_pubkey(XPUB_A, 0, 0), child_pubkey(XPUB_B, 0, 0)])
    assert derived.pubkeys == pubkeys
    assert derived.witness_script.hex() == '5221' + pubkeys[0].hex() + '21' + pubkeys[1].hex() + '52ae'
    assert derived.script_pubkey.hex() == '0020' + hashlib.sha256(derived.witness_script).hexdigest()
    assert derived.address.startswith('bc1q')
    assert len(derived.address) == 62


def test_key_order_does_not_change_address():
    first = derive_address([XPUB_A, XPUB_B, XPUB_C], 2, 7)
    second = derive_address([XPUB_C, XPUB_A, XPUB_B], 2, 7)
    third = derive_address([XPUB_B, XPUB_C, XPUB_A], 2, 7)
    assert first.address == second.address == third.address
    assert first.witness_script == second.witness_script == third.witness_script
    assert derive_address([XPUB_A, XPUB_B, XPUB_C], 2, 7).address == first.address


def test_different_index_gives_different_address():
    assert derive_address([XPUB_A, XPUB_B], 1, 0).address != derive_address([XPUB_A, XPUB_B], 1, 1).address


def test_derive_addresses_range():
    addresses = derive_addresses([XPUB_A, XPUB_B], 2, start=3, count=3)
    assert [address.index for address in addresses] == [3, 4, 5]
    assert addresses[0].address == derive_address([XPUB_A, XPUB_B], 2, 3).address
    assert derive_addresses([XPUB_A, XPUB_B], 2, count=0) == []


def test_configuration_errors():
    with pytest.raises(KeyCountMismatch) as exc:
        derive_address([XPUB_A, XPUB_B], 2, 0, n=3)
    assert exc.value.message == 'Please select exactly 3 xpubs'
    with pytest.raises(KeyCountMismatch):
        derive_address([XPUB_A], 1, 0)
    with pytest.raises(KeyCountMismatch):
        derive_address([XPUB_A, XPUB_A], 1, 0)
    with pytest.raises(InvalidM):
        derive_address([XPUB_A, XPUB_B], 0, 0)
    with pytest.raises(InvalidM):
        derive_address([XPUB_A, XPUB_B], 3, 0)


def test_derivation_errors():
    with pytest.raises(InvalidKey):
        derive_address([XPUB_A, 'xpub-not-really'], 1, 0)
    with pytest.raises(DerivationError):
        derive_address([XPUB_A, XPUB_B], 1, 2 ** 31)
    with pytest.raises(DerivationError):
        derive_address([XPUB_A, XPUB_B], 1, -1)


def test_descriptor_checksum_vector():
    assert descriptor_checksum('raw(deadbeef)') == '89f8spxm'
    assert verify_checksum('raw(deadbeef)#89f8spxm')
    assert not verify_checksum('raw(deadbeef)#89f8spxn')
    assert not verify_checksum('raw(deadbeef)')


def test_descriptor_format():
    descriptor = derive_descriptor([XPUB_A, XPUB_B], 2)
    body, checksum = descriptor.split('#')
    assert body == (
        f'wsh(sortedmulti(2,[{XPUB_A_FINGERPRINT}/84h/0h/0h]{XPUB_A}/0/*,'
        f'[{XPUB_B_FINGERPRINT}/84h/0h/0h]{XPUB_B}/0/*))'
    )
    assert len(checksum) == 8
    assert verify_checksum(descriptor)
    assert derive_address([XPUB_A, XPUB_B], 2, 0).descriptor == descriptor


def test_descriptor_writes_slip132_keys_as_xpub():
    zpub = reencode(XPUB_A, ZPUB_VERSION)
    descriptor = derive_descriptor([zpub, XPUB_B], 2)
    assert 'zpub' not in descriptor
    assert descriptor == derive_descriptor([XPUB_A, XPUB_B], 2)
    assert derive_address([zpub, XPUB_B], 2, 0).address == derive_address([XPUB_A, XPUB_B], 2, 0).address
