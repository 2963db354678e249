import logging
import threading

from django.conf import settings

from multisig import confirmations
from multisig.broadcast import Broadcaster
from multisig.confirmations import ConfirmationTracker
from multisig.explorers import DEFAULT_TIMEOUT, build_clients
from multisig.registry import DEFAULT_GAP_LIMIT, KeyRegistry
from multisig.stores import DescriptorStore, KeyStore, PsbtStore

LOGGER = logging.getLogger(__name__)


class MultisigContext(object):
    """
    Everything the multisig operations share within one process: the stores,
    the explorer-backed broadcaster and the confirmation tracker with its
    scheduler. Components receive it explicitly instead of reaching for
    module globals.
    """

    def __init__(
        self,
        key_store=None,
        psbt_store=None,
        descriptor_store=None,
        broadcaster=None,
        network='mainnet',
        gap_limit=DEFAULT_GAP_LIMIT,
        auto_broadcast=False,
        finality_depth=confirmations.FINALITY_DEPTH,
        unconfirmed_interval=confirmations.POLL_INTERVAL_UNCONFIRMED,
        confirmed_interval=confirmations.POLL_INTERVAL_CONFIRMED,
        propagation_delay=confirmations.PROPAGATION_DELAY,
    ):
        self.key_store = key_store or KeyStore()
        self.psbt_store = psbt_store or PsbtStore()
        self.descriptor_store = descriptor_store or DescriptorStore()
        self.broadcaster = broadcaster or Broadcaster([], [])
        self.network = network
        self.gap_limit = gap_limit
        self.auto_broadcast = auto_broadcast
        self.tracker = ConfirmationTracker(
            self.psbt_store,
            self.broadcaster,
            finality_depth=finality_depth,
            unconfirmed_interval=unconfirmed_interval,
            confirmed_interval=confirmed_interval,
            propagation_delay=propagation_delay,
        )

    @property
    def scheduler(self):
        return self.tracker.scheduler

    def registry(self, scope):
        return KeyRegistry(scope, self.key_store, network=self.network, gap_limit=self.gap_limit)

    @classmethod
    def from_settings(cls):
        timeout = getattr(settings, 'MULTISIG_EXPLORER_TIMEOUT', DEFAULT_TIMEOUT)
        broadcaster = Broadcaster(
            build_clients(getattr(settings, 'MULTISIG_BROADCAST_ENDPOINTS', []), timeout=timeout),
            build_clients(getattr(settings, 'MULTISIG_LOOKUP_ENDPOINTS', []), timeout=timeout),
        )
        return cls(
            broadcaster=broadcaster,
            network=getattr(settings, 'BITCOIN_NETWORK', 'mainnet'),
            gap_limit=getattr(settings, 'MULTISIG_KEY_MATCH_GAP_LIMIT', DEFAULT_GAP_LIMIT),
            auto_broadcast=getattr(settings, 'MULTISIG_AUTO_BROADCAST', False),
            finality_depth=getattr(settings, 'MULTISIG_FINALITY_DEPTH', confirmations.FINALITY_DEPTH),
            unconfirmed_interval=getattr(
                settings, 'MULTISIG_POLL_INTERVAL_UNCONFIRMED', confirmations.POLL_INTERVAL_UNCONFIRMED
            ),
            confirmed_interval=getattr(
                settings, 'MULTISIG_POLL_INTERVAL_CONFIRMED', confirmations.POLL_INTERVAL_CONFIRMED
            ),
            propagation_delay=getattr(settings, 'MULTISIG_PROPAGATION_DELAY', confirmations.PROPAGATION_DELAY),
        )

    def teardown(self):
        self.scheduler.shutdown()


_default_context = None
_default_context_lock = threading.Lock()


def get_context():
    """The process-wide context, built from Django settings on first use."""
    global _default_context
    with _default_context_lock:
        if _default_context is None:
            _default_context = MultisigContext.from_settings()
            LOGGER.info('Multisig context ready on %s', _default_context.network)
        return _default_context


def set_context(context):
    """Installs `context` as the process-wide one, e.g. a test double."""
    global _default_context
    with _default_context_lock:
        previous, _default_context = _default_context, context
    return previous


def teardown():
    global _default_context
    with _default_context_lock:
        context, _default_context = _default_context, None
    if context is not None:
        context.teardown()
