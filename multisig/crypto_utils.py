import logging
from collections import namedtuple
from functools import lru_cache

from bip_utils import Bip32KeyError, Bip32KeyNetVersions, Bip32Secp256k1, DoubleSha256, Hash160, Sha256
from bip_utils.base58 import Base58ChecksumError, Base58Decoder, Base58Encoder
from coincurve import PublicKey

from multisig.exceptions import DerivationError, InvalidFormat, InvalidKey

LOGGER = logging.getLogger(__name__)

HARDENED_OFFSET = 0x80000000
EXTENDED_KEY_LENGTH = 78

Network = namedtuple('Network', [
    'name',
    'hrp',
    'coin_type',
    'xpub_version',
    'xprv_version',
    'public_versions',
    'private_versions',
])

# SLIP-132 version bytes. Every public variant is normalized to the plain
# xpub/tpub version before derivation; script semantics come from the wallet.
NETWORKS = {
    'mainnet': Network(
        name='mainnet',
        hrp='bc',
        coin_type=0,
        xpub_version=bytes.fromhex('0488b21e'),
        xprv_version=bytes.fromhex('0488ade4'),
        public_versions={
            bytes.fromhex('0488b21e'): 'xpub',
            bytes.fromhex('049d7cb2'): 'ypub',
            bytes.fromhex('04b24746'): 'zpub',
            bytes.fromhex('0295b43f'): 'Ypub',
            bytes.fromhex('02aa7ed3'): 'Zpub',
        },
        private_versions={
            bytes.fromhex('0488ade4'): 'xprv',
            bytes.fromhex('049d7878'): 'yprv',
            bytes.fromhex('04b2430c'): 'zprv',
            bytes.fromhex('0295b005'): 'Yprv',
            bytes.fromhex('02aa7a99'): 'Zprv',
        },
    ),
    'testnet': Network(
        name='testnet',
        hrp='tb',
        coin_type=1,
        xpub_version=bytes.fromhex('043587cf'),
        xprv_version=bytes.fromhex('04358394'),
        public_versions={
            bytes.fromhex('043587cf'): 'tpub',
            bytes.fromhex('044a5262'): 'upub',
            bytes.fromhex('045f1cf6'): 'vpub',
            bytes.fromhex('024289ef'): 'Upub',
            bytes.fromhex('02575483'): 'Vpub',
        },
        private_versions={
            bytes.fromhex('04358394'): 'tprv',
            bytes.fromhex('044a4e28'): 'uprv',
            bytes.fromhex('045f18bc'): 'vprv',
            bytes.fromhex('024285b5'): 'Uprv',
            bytes.fromhex('02575048'): 'Vprv',
        },
    ),
}


def get_network(name='mainnet'):
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(f'Unknown bitcoin network "{name}"')


def sha256(data: bytes) -> bytes:
    return Sha256.QuickDigest(data)


def double_sha256(data: bytes) -> bytes:
    return DoubleSha256.QuickDigest(data)


def hash160(data: bytes) -> bytes:
    return Hash160.QuickDigest(data)


def compress_pubkey(pubkey: bytes) -> bytes:
    """Returns the 33-byte compressed form of a 33 or 65-byte secp256k1 point."""
    if len(pubkey) == 33:
        return pubkey
    try:
        return PublicKey(pubkey).format(compressed=True)
    except ValueError:
        raise InvalidKey(f'Invalid public key {pubkey.hex()}')


def _is_private_key_string(key_material: str) -> bool:
    return key_material[1:4] == 'prv'


def normalize_extended_key(key_material: str, network: str = 'mainnet') -> str:
    """
    Validates that `key_material` is a public extended key for `network` and
    returns it re-encoded with the plain xpub/tpub version bytes.

    Raises InvalidFormat for anything else, with a dedicated message for
    private extended keys.
    """
    net = get_network(network)
    key_material = (key_material or '').strip()
    if not key_material:
        raise InvalidFormat('Extended public key is required')

    try:
        payload = Base58Decoder.CheckDecode(key_material)
    except (ValueError, Base58ChecksumError):
        if _is_private_key_string(key_material):
            raise InvalidFormat('Private extended keys are not accepted, share the xpub instead')
        raise InvalidFormat('Invalid xpub format')

    if len(payload) != EXTENDED_KEY_LENGTH:
        raise InvalidFormat('Invalid xpub format')

    version = payload[:4]
    if version in net.private_versions or any(version in other.private_versions for other in NETWORKS.values()):
        raise InvalidFormat('Private extended keys are not accepted, share the xpub instead')
    if version not in net.public_versions:
        raise InvalidFormat(f'Extended key is not a {net.name} xpub')
    if payload[45] not in (2, 3):
        raise InvalidFormat('Invalid xpub format')

    normalized = Base58Encoder.CheckEncode(net.xpub_version + payload[4:])
    try:
        _load_node(normalized, network)
    except InvalidKey:
        raise InvalidFormat('Invalid xpub format')
    return normalized


@lru_cache(maxsize=256)
def _load_node(normalized_key: str, network: str):
    net = get_network(network)
    try:
        return Bip32Secp256k1.FromExtendedKey(
            normalized_key,
            Bip32KeyNetVersions(net.xpub_version, net.xprv_version)
        )
    except (Bip32KeyError, ValueError) as exc:
        raise InvalidKey(f'Invalid extended public key: {exc}')


@lru_cache(maxsize=1024)
def _child_node(normalized_key: str, network: str, path: tuple):
    node = _load_node(normalized_key, network)
    for index in path:
        if not isinstance(index, int) or index < 0:
            raise DerivationError(f'Invalid derivation index {index}')
        if index >= HARDENED_OFFSET:
            raise DerivationError('Hardened derivation is not possible from an xpub')
        try:
            node = node.ChildKey(index)
        except Bip32KeyError as exc:
            raise DerivationError(str(exc))
    return node


@lru_cache(maxsize=16384)
def derive_pubkey_from_xpub(xpub: str, path: tuple = (), network: str = 'mainnet') -> bytes:
    """Derives the compressed public key at the non-hardened `path` below `xpub`."""
    try:
        normalized = normalize_extended_key(xpub, network)
    except InvalidFormat as exc:
        raise InvalidKey(exc.message)
    node = _child_node(normalized, network, tuple(path))
    return node.PublicKey().RawCompressed().ToBytes()


def get_fingerprint(xpub: str, network: str = 'mainnet') -> str:
    """Fingerprint of the key itself: first 4 bytes of hash160(pubkey), hex."""
    return hash160(derive_pubkey_from_xpub(xpub, (), network))[:4].hex()


def parse_path(path: str) -> tuple:
    """Parses a relative path like '0/5' (optionally prefixed with 'm/')."""
    parts = [part for part in path.strip().split('/') if part and part != 'm']
    indices = []
    for part in parts:
        if part[-1] in ("'", 'h', 'H'):
            raise DerivationError('Hardened derivation is not possible from an xpub')
        try:
            indices.append(int(part))
        except ValueError:
            raise DerivationError(f'Invalid derivation path "{path}"')
    return tuple(indices)
