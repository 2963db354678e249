import logging
from collections import namedtuple

from bip_utils import SegwitBech32Encoder

from multisig.crypto_utils import derive_pubkey_from_xpub, get_fingerprint, get_network, normalize_extended_key, sha256
from multisig.exceptions import DerivationError, InvalidFormat, InvalidKey, InvalidM, KeyCountMismatch
from multisig.script import MAX_MULTISIG_KEYS, OP_0, build_multisig

LOGGER = logging.getLogger(__name__)

RECEIVE_BRANCH = 0
CHANGE_BRANCH = 1
MIN_MULTISIG_KEYS = 2

# Origin annotation written into descriptors. This is wallet policy and is not
# read from the registered keys, which carry no origin information.
DESCRIPTOR_PURPOSE = 84
DESCRIPTOR_ACCOUNT = 0

DerivedAddress = namedtuple('DerivedAddress', [
    'index',
    'witness_script',
    'script_pubkey',
    'address',
    'descriptor',
    'pubkeys',
])

INPUT_CHARSET = "0123456789()[],'/*abcdefgh@:$%{}IJKLMNOPQRSTUVWXYZ&+-.;<=>?!^_|~ijklmnopqrstuvwxyzABCDEFGH`#\"\\ "
CHECKSUM_CHARSET = 'qpzry9x8gf2tvdw0s3jn54khce6mua7l'
GENERATOR = [0xf5dee51989, 0xa9fdca3312, 0x1bab10e32d, 0x3706b1677a, 0x644d626ffd]


def _descsum_polymod(symbols):
    chk = 1
    for value in symbols:
        top = chk >> 35
        chk = (chk & 0x7ffffffff) << 5 ^ value
        for i in range(5):
            chk ^= GENERATOR[i] if ((top >> i) & 1) else 0
    return chk


def _descsum_expand(descriptor):
    groups = []
    symbols = []
    for char in descriptor:
        if char not in INPUT_CHARSET:
            return None
        value = INPUT_CHARSET.find(char)
        symbols.append(value & 31)
        groups.append(value >> 5)
        if len(groups) == 3:
            symbols.append(groups[0] * 9 + groups[1] * 3 + groups[2])
            groups = []
    if len(groups) == 1:
        symbols.append(groups[0])
    elif len(groups) == 2:
        symbols.append(groups[0] * 3 + groups[1])
    return symbols


def descriptor_checksum(descriptor: str) -> str:
    symbols = _descsum_expand(descriptor)
    if symbols is None:
        raise ValueError('Descriptor contains characters outside the descriptor charset')
    checksum = _descsum_polymod(symbols + [0] * 8) ^ 1
    return ''.join(CHECKSUM_CHARSET[(checksum >> (5 * (7 - i))) & 31] for i in range(8))


def add_checksum(descriptor: str) -> str:
    return f'{descriptor}#{descriptor_checksum(descriptor)}'


def verify_checksum(descriptor: str) -> bool:
    if len(descriptor) < 9 or descriptor[-9] != '#':
        return False
    body, checksum = descriptor[:-9], descriptor[-8:]
    if not all(char in CHECKSUM_CHARSET for char in checksum):
        return False
    symbols = _descsum_expand(body)
    if symbols is None:
        return False
    return _descsum_polymod(symbols + [CHECKSUM_CHARSET.find(char) for char in checksum]) == 1


def _key_material(key):
    return getattr(key, 'xpub', key)


def validate_configuration(keys, m, n=None):
    """Rejects bad M-of-N selections before any derivation work is done."""
    count = len(keys)
    if n is not None and count != n:
        raise KeyCountMismatch(f'Please select exactly {n} xpubs')
    if count < MIN_MULTISIG_KEYS:
        raise KeyCountMismatch(f'Select at least {MIN_MULTISIG_KEYS} xpubs')
    if count > MAX_MULTISIG_KEYS:
        raise KeyCountMismatch(f'Select at most {MAX_MULTISIG_KEYS} xpubs')
    materials = [_key_material(key) for key in keys]
    if len(set(materials)) != count:
        raise KeyCountMismatch('Each xpub can only be selected once')
    if not isinstance(m, int) or m < 1:
        raise InvalidM('M must be at least 1')
    if m > count:
        raise InvalidM('M cannot be greater than N')


def p2wsh_script_pubkey(witness_script: bytes) -> bytes:
    return bytes([OP_0, 32]) + sha256(witness_script)


def address_from_witness_script(witness_script: bytes, network='mainnet') -> str:
    return SegwitBech32Encoder.Encode(get_network(network).hrp, 0, sha256(witness_script))


def address_from_script_pubkey(script_pubkey: bytes, network='mainnet'):
    """Bech32 address for native segwit outputs, None for anything else."""
    if len(script_pubkey) in (22, 34) and script_pubkey[0] == OP_0 and script_pubkey[1] == len(script_pubkey) - 2:
        return SegwitBech32Encoder.Encode(get_network(network).hrp, 0, script_pubkey[2:])
    return None


def sorted_pubkeys(keys, index, branch=RECEIVE_BRANCH, network='mainnet'):
    """Child keys at branch/index sorted as raw bytes (BIP67)."""
    if not isinstance(index, int) or index < 0:
        raise DerivationError(f'Invalid address index {index}')
    pubkeys = [derive_pubkey_from_xpub(_key_material(key), (branch, index), network) for key in keys]
    return sorted(pubkeys)


def derive_descriptor(keys, m, network='mainnet') -> str:
    validate_configuration(keys, m)
    coin_type = get_network(network).coin_type
    parts = []
    for key in keys:
        key_material = _key_material(key)
        fingerprint = get_fingerprint(key_material, network)
        # key expressions only take xpub/tpub, never SLIP-132 variants
        try:
            xpub = normalize_extended_key(key_material, network)
        except InvalidFormat as exc:
            raise InvalidKey(exc.message)
        parts.append(
            f'[{fingerprint}/{DESCRIPTOR_PURPOSE}h/{coin_type}h/{DESCRIPTOR_ACCOUNT}h]{xpub}/{RECEIVE_BRANCH}/*'
        )
    return add_checksum(f'wsh(sortedmulti({m},{",".join(parts)}))')


def derive_address(keys, m, index, n=None, network='mainnet') -> DerivedAddress:
    validate_configuration(keys, m, n)
    pubkeys = sorted_pubkeys(keys, index, network=network)
    witness_script = build_multisig(m, pubkeys)
    return DerivedAddress(
        index=index,
        witness_script=witness_script,
        script_pubkey=p2wsh_script_pubkey(witness_script),
        address=address_from_witness_script(witness_script, network),
        descriptor=derive_descriptor(keys, m, network),
        pubkeys=pubkeys,
    )


def derive_addresses(keys, m, start=0, count=1, network='mainnet'):
    validate_configuration(keys, m)
    if count < 1:
        return []
    descriptor = derive_descriptor(keys, m, network)
    addresses = []
    for index in range(start, start + count):
        pubkeys = sorted_pubkeys(keys, index, network=network)
        witness_script = build_multisig(m, pubkeys)
        addresses.append(DerivedAddress(
            index=index,
            witness_script=witness_script,
            script_pubkey=p2wsh_script_pubkey(witness_script),
            address=address_from_witness_script(witness_script, network),
            descriptor=descriptor,
            pubkeys=pubkeys,
        ))
    return addresses
