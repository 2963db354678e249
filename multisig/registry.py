import logging
from collections import namedtuple

from multisig.crypto_utils import compress_pubkey, derive_pubkey_from_xpub, normalize_extended_key
from multisig.derivation import CHANGE_BRANCH, RECEIVE_BRANCH
from multisig.exceptions import Duplicate, InvalidFormat, InvalidKey

LOGGER = logging.getLogger(__name__)

DEFAULT_GAP_LIMIT = 100

KeyMatch = namedtuple('KeyMatch', ['key_id', 'label', 'xpub', 'path'])


def match_key(candidate: bytes, keys, network='mainnet', gap_limit=DEFAULT_GAP_LIMIT):
    """
    Finds which registered key derives `candidate` at branch 0 or 1 and a leaf
    index below `gap_limit`. Returns a KeyMatch or None for an unknown signer.

    The search is bounded at len(keys) * 2 * gap_limit derivations; child keys
    are cached in crypto_utils so repeated inspections stay cheap.
    """
    try:
        target = compress_pubkey(bytes(candidate))
    except InvalidKey:
        return None

    for key in keys:
        for branch in (RECEIVE_BRANCH, CHANGE_BRANCH):
            for index in range(gap_limit):
                try:
                    derived = derive_pubkey_from_xpub(key.xpub, (branch, index), network)
                except InvalidKey:
                    LOGGER.warning('Skipping unusable xpub %s while matching keys', key.id)
                    break
                if derived == target:
                    return KeyMatch(key_id=key.id, label=key.label, xpub=key.xpub, path=f'{branch}/{index}')
    return None


class KeyRegistry(object):
    """Labeled extended public keys of one scope."""

    def __init__(self, scope, key_store, network='mainnet', gap_limit=DEFAULT_GAP_LIMIT):
        self.scope = scope
        self.key_store = key_store
        self.network = network
        self.gap_limit = gap_limit

    def list(self):
        return self.key_store.list(self.scope)

    def get(self, key_id):
        return self.key_store.get(key_id, scope=self.scope)

    def register(self, label, key_material):
        label = (label or '').strip()
        key_material = (key_material or '').strip()
        if not label or not key_material:
            raise InvalidFormat('Label and xpub are required')

        normalized = normalize_extended_key(key_material, self.network)
        for existing in self.list():
            try:
                existing_normalized = normalize_extended_key(existing.xpub, self.network)
            except InvalidFormat:
                continue
            if existing_normalized == normalized:
                raise Duplicate()

        key = self.key_store.insert(self.scope, label, key_material)
        LOGGER.info('Registered xpub %s (%s) in scope %s', key.id, label, self.scope)
        return key

    def relabel(self, key_id, new_label):
        new_label = (new_label or '').strip()
        if not new_label:
            raise InvalidFormat('Label is required')
        return self.key_store.update_label(key_id, new_label, scope=self.scope)

    def remove(self, key_id):
        removed = self.key_store.delete(key_id, scope=self.scope)
        if removed:
            LOGGER.info('Removed xpub %s from scope %s', key_id, self.scope)
        return removed

    def derive_public_key(self, key_id, path):
        """Compressed public key at the non-hardened `path` below a registered key."""
        key = self.get(key_id)
        return derive_pubkey_from_xpub(key.xpub, tuple(path), self.network)

    def match_key(self, candidate):
        return match_key(candidate, self.list(), network=self.network, gap_limit=self.gap_limit)
