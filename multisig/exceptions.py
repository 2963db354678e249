class MultisigError(Exception):
    """Base class for every failure the multisig core reports to callers."""

    code = 'error'
    default_message = 'Multisig operation failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidFormat(MultisigError):
    code = 'invalid_format'
    default_message = 'Invalid format'


class Duplicate(MultisigError):
    code = 'duplicate'
    default_message = 'This xpub already exists in this session'


class NotFound(MultisigError):
    code = 'not_found'
    default_message = 'Not found'


class KeyCountMismatch(MultisigError):
    code = 'key_count_mismatch'
    default_message = 'Wrong number of keys selected'


class InvalidM(MultisigError):
    code = 'invalid_m'
    default_message = 'M must be between 1 and N'


class InvalidKey(MultisigError):
    code = 'invalid_key'
    default_message = 'Invalid extended public key'


class DerivationError(MultisigError):
    code = 'derivation_error'
    default_message = 'Key derivation failed'


class ParseError(MultisigError):
    code = 'parse_error'
    default_message = 'Invalid PSBT format. Use base64 or hex encoding.'


class NotEquivalent(MultisigError):
    code = 'not_equivalent'
    default_message = 'PSBTs spend different inputs and cannot be merged'


class StaleRecord(MultisigError):
    code = 'stale_record'
    default_message = 'PSBT was modified concurrently, retry the update'


class FinalizationError(MultisigError):
    code = 'finalization_error'
    default_message = 'PSBT cannot be finalized'


class RejectedByNetwork(MultisigError):
    code = 'rejected_by_network'
    default_message = 'Transaction rejected by network'

    ALREADY_BROADCAST = 'already_broadcast'
    DOUBLE_SPEND = 'double_spend'
    FEE_POLICY = 'fee_policy'
    OTHER = 'other'

    ALREADY_BROADCAST_MARKERS = (
        'already in block chain',
        'txn-already-known',
        'txn-already-in-mempool',
        'transaction already exists',
        'already have transaction',
    )
    DOUBLE_SPEND_MARKERS = (
        'txn-mempool-conflict',
        'missingorspent',
        'missing inputs',
        'double spend',
        'conflict',
    )
    FEE_POLICY_MARKERS = (
        'min relay fee not met',
        'mempool min fee not met',
        'insufficient fee',
        'dust',
        'absurdly-high-fee',
        'max-fee-exceeded',
    )

    def __init__(self, endpoint, reason):
        self.endpoint = endpoint
        self.reason = (reason or '').strip()
        self.kind = self.classify(self.reason)
        super().__init__(f'{endpoint}: {self.reason or "rejected"}')

    @classmethod
    def classify(cls, reason):
        text = (reason or '').lower()
        if any(marker in text for marker in cls.ALREADY_BROADCAST_MARKERS):
            return cls.ALREADY_BROADCAST
        if any(marker in text for marker in cls.DOUBLE_SPEND_MARKERS):
            return cls.DOUBLE_SPEND
        if any(marker in text for marker in cls.FEE_POLICY_MARKERS):
            return cls.FEE_POLICY
        return cls.OTHER


class BroadcastFailed(MultisigError):
    code = 'broadcast_failed'
    default_message = 'Broadcast failed on every endpoint'

    def __init__(self, results, message=None):
        self.results = results
        super().__init__(message)
