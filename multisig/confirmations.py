import heapq
import itertools
import logging
import threading
import time

from multisig import psbt as psbt_codec
from multisig.exceptions import NotFound, ParseError
from multisig.models import PsbtRecord

LOGGER = logging.getLogger(__name__)

FINALITY_DEPTH = 6
POLL_INTERVAL_UNCONFIRMED = 10
POLL_INTERVAL_CONFIRMED = 60
PROPAGATION_DELAY = 15


def next_state(confirmations, finality_depth=FINALITY_DEPTH):
    if confirmations <= 0:
        return PsbtRecord.Status.BROADCAST
    if confirmations < finality_depth:
        return PsbtRecord.Status.CONFIRMING
    return PsbtRecord.Status.FINAL


def confirmation_depth(tip_height, block_height):
    if tip_height is None or block_height is None:
        return 0
    return max(tip_height - block_height + 1, 0)


class ConfirmationScheduler(object):
    """
    Single loop driving one cancellable task per record id.

    `callback(record_id)` is invoked when a task is due. It returns the delay
    in seconds until the next run, or None to stop. Scheduling a record that
    already has a task replaces that task.
    """

    def __init__(self, callback, clock=time.monotonic):
        self.callback = callback
        self.clock = clock
        self._heap = []
        self._tasks = {}
        self._counter = itertools.count()
        self._condition = threading.Condition()
        self._thread = None
        self._stopped = False

    def schedule(self, record_id, delay=0):
        with self._condition:
            token = next(self._counter)
            self._tasks[record_id] = token
            heapq.heappush(self._heap, (self.clock() + delay, token, record_id))
            self._condition.notify()
        LOGGER.debug('Scheduled poll for PSBT %s in %ss', record_id, delay)

    def cancel(self, record_id):
        with self._condition:
            cancelled = self._tasks.pop(record_id, None) is not None
        if cancelled:
            LOGGER.info('Cancelled poller for PSBT %s', record_id)
        return cancelled

    def active(self):
        with self._condition:
            return set(self._tasks)

    def _pop_due(self, now):
        with self._condition:
            due = []
            while self._heap and self._heap[0][0] <= now:
                _, token, record_id = heapq.heappop(self._heap)
                if self._tasks.get(record_id) == token:
                    due.append((token, record_id))
            return due

    def run_pending(self, now=None):
        """Runs every task due at `now` and returns how many ran."""
        if now is None:
            now = self.clock()

        ran = 0
        for token, record_id in self._pop_due(now):
            try:
                delay = self.callback(record_id)
            except Exception:
                LOGGER.exception('Poller for PSBT %s failed, dropping it', record_id)
                delay = None
            ran += 1

            with self._condition:
                if self._tasks.get(record_id) != token:
                    # cancelled or rescheduled while running
                    continue
                if delay is None:
                    del self._tasks[record_id]
                    continue
                next_token = next(self._counter)
                self._tasks[record_id] = next_token
                heapq.heappush(self._heap, (now + delay, next_token, record_id))
        return ran

    def _seconds_until_due(self):
        with self._condition:
            while self._heap and self._tasks.get(self._heap[0][2]) != self._heap[0][1]:
                heapq.heappop(self._heap)
            if not self._heap:
                return None
            return max(self._heap[0][0] - self.clock(), 0)

    def _loop(self):
        while True:
            self.run_pending()
            with self._condition:
                if self._stopped:
                    return
                self._condition.wait(self._seconds_until_due())

    def start(self):
        if self._thread is not None:
            return
        self._stopped = False
        self._thread = threading.Thread(target=self._loop, name='confirmation-scheduler', daemon=True)
        self._thread.start()
        LOGGER.info('Confirmation scheduler started')

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def shutdown(self, timeout=None):
        with self._condition:
            self._stopped = True
            cancelled = len(self._tasks)
            self._tasks.clear()
            self._heap = []
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        LOGGER.info('Confirmation scheduler stopped, %s poller(s) cancelled', cancelled)


class ConfirmationTracker(object):
    """
    Follows broadcast PSBT records until they are buried `finality_depth`
    blocks deep. Stored depth only ever grows; a lower reading is treated as
    a transient answer from a lagging endpoint.
    """

    def __init__(
        self,
        psbt_store,
        broadcaster,
        scheduler=None,
        finality_depth=FINALITY_DEPTH,
        unconfirmed_interval=POLL_INTERVAL_UNCONFIRMED,
        confirmed_interval=POLL_INTERVAL_CONFIRMED,
        propagation_delay=PROPAGATION_DELAY,
    ):
        self.psbt_store = psbt_store
        self.broadcaster = broadcaster
        self.finality_depth = finality_depth
        self.unconfirmed_interval = unconfirmed_interval
        self.confirmed_interval = confirmed_interval
        self.propagation_delay = propagation_delay
        self.scheduler = scheduler or ConfirmationScheduler(self.poll)
        self._verification_targets = {}
        self._lock = threading.Lock()

    def track(self, record_id, broadcast_targets=None, delay=None):
        """
        Starts polling a freshly broadcast record. The first poll runs after the
        propagation delay and also counts independent sightings of the txid.
        """
        if delay is None:
            delay = self.propagation_delay
        with self._lock:
            self._verification_targets[record_id] = broadcast_targets
        self.scheduler.schedule(record_id, delay)

    def untrack(self, record_id):
        with self._lock:
            self._verification_targets.pop(record_id, None)
        return self.scheduler.cancel(record_id)

    def _poll_interval(self, confirmations):
        if confirmations > 0:
            return self.confirmed_interval
        return self.unconfirmed_interval

    def _apply_depth(self, record, depth, block_height):
        depth = max(depth, record.confirmations)
        state = next_state(depth, self.finality_depth)
        if depth == record.confirmations and state == record.status:
            return record
        updated = self.psbt_store.update_broadcast_status(
            record.id, record.txid, state, depth, block_height=block_height
        )
        LOGGER.info(
            'PSBT %s (%s): %s -> %s at %s confirmation(s)',
            record.id, record.txid, record.status, updated.status, updated.confirmations
        )
        return updated

    def poll(self, record_id):
        """
        One status check for `record_id`. Returns the delay until the next
        check, or None once the record is final or gone.
        """
        try:
            record = self.psbt_store.get(record_id)
        except NotFound:
            LOGGER.info('PSBT %s no longer exists, stopping poller', record_id)
            return None
        if not record.txid or record.status == PsbtRecord.Status.FINAL:
            return None

        with self._lock:
            verify = record_id in self._verification_targets
            targets = self._verification_targets.pop(record_id, None)
        if verify:
            self.broadcaster.verify_independently(record.txid, targets)

        status = self.broadcaster.chain_status(record.txid)
        if status is None:
            LOGGER.warning('Status of %s unknown, no lookup endpoint answered', record.txid)
            return self._poll_interval(record.confirmations)

        depth = 0
        if status.confirmed:
            depth = confirmation_depth(status.tip_height, status.block_height)
        LOGGER.info(
            'Polled %s via %s: confirmed=%s depth=%s (stored %s)',
            record.txid, status.endpoint, status.confirmed, depth, record.confirmations
        )

        record = self._apply_depth(record, depth, status.block_height)
        if record.status == PsbtRecord.Status.FINAL:
            LOGGER.info('PSBT %s reached finality, stopping poller', record_id)
            return None
        return self._poll_interval(record.confirmations)

    def check_out_of_band(self, schedule=True):
        """
        Looks up ready records that have no txid yet, in case another
        participant broadcast them elsewhere. Found records are fast-forwarded
        to their current depth. Returns the ids that were fast-forwarded.
        """
        forwarded = []
        for record in self.psbt_store.ready_without_txid():
            try:
                txid = psbt_codec.decode(record.psbt_data).txid
            except ParseError:
                LOGGER.warning('PSBT %s has an unreadable blob, skipping out-of-band check', record.id)
                continue
            if not self.broadcaster.seen(txid):
                continue

            status = self.broadcaster.chain_status(txid)
            depth = 0
            block_height = None
            if status is not None and status.confirmed:
                depth = confirmation_depth(status.tip_height, status.block_height)
                block_height = status.block_height
            state = next_state(depth, self.finality_depth)
            self.psbt_store.update_broadcast_status(record.id, txid, state, depth, block_height=block_height)
            LOGGER.info('PSBT %s was broadcast out of band as %s, now %s', record.id, txid, state)
            forwarded.append(record.id)

            if schedule and state != PsbtRecord.Status.FINAL:
                self.scheduler.schedule(record.id, self._poll_interval(depth))
        return forwarded

    def resume(self):
        """Picks up every record left mid-confirmation by a previous process."""
        records = self.psbt_store.awaiting_confirmation()
        for record in records:
            self.scheduler.schedule(record.id, 0)
        LOGGER.info('Resumed %s poller(s)', len(records))
        self.check_out_of_band()
        return [record.id for record in records]

    def sync(self):
        """
        Reconciles running pollers with the database: records broadcast by
        another process are picked up, pollers of deleted or final records
        are cancelled.
        """
        awaiting = {record.id for record in self.psbt_store.awaiting_confirmation()}
        active = self.scheduler.active()
        for record_id in awaiting - active:
            self.track(record_id)
        for record_id in active - awaiting:
            self.untrack(record_id)
        return awaiting
