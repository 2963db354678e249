"""
Operations behind the REST endpoints, celery tasks and management commands.

Each function takes a MultisigContext and a scope, validates its input before
touching storage, and goes through the stores for every write.
"""
import logging
from collections import namedtuple

from django.db import transaction

from multisig import psbt as psbt_codec
from multisig.derivation import derive_address, derive_addresses, derive_descriptor
from multisig.exceptions import (
    FinalizationError,
    InvalidFormat,
    InvalidM,
    NotEquivalent,
    ParseError,
    StaleRecord,
)
from multisig.finalizer import finalize
from multisig.inspector import authoritative_script, count_signatures, inspect
from multisig.merge import merge, outpoint_set
from multisig.models import PsbtRecord
from multisig.script import MAX_MULTISIG_KEYS

LOGGER = logging.getLogger(__name__)

CREATED = 'created'
MERGED = 'merged'
UNCHANGED = 'unchanged'

MERGE_ATTEMPTS = 3

UploadResult = namedtuple('UploadResult', ['record', 'outcome', 'added_signatures'])
BroadcastResult = namedtuple('BroadcastResult', ['record', 'outcome'])


def _signing_status(record_status, signatures_count, m_required):
    if record_status not in (PsbtRecord.Status.PENDING, PsbtRecord.Status.READY):
        return record_status
    if signatures_count >= m_required:
        return PsbtRecord.Status.READY
    return PsbtRecord.Status.PENDING


def _resolve_m_n(psbt, m=None, n=None):
    """M-of-N from the PSBT's own script; the caller's values only fill in when it has none."""
    _, multisig = authoritative_script(psbt)
    if multisig is not None:
        return multisig.m, multisig.n
    if m is None or n is None:
        raise InvalidFormat('PSBT carries no multisig script, m and n are required')
    m, n = int(m), int(n)
    if n < 1 or n > MAX_MULTISIG_KEYS:
        raise InvalidFormat(f'N must be between 1 and {MAX_MULTISIG_KEYS}')
    if m < 1:
        raise InvalidM('M must be at least 1')
    if m > n:
        raise InvalidM('M cannot be greater than N')
    return m, n


def _queue_auto_broadcast(context, record, previous_status):
    if not context.auto_broadcast:
        return
    if record.status != PsbtRecord.Status.READY or previous_status == PsbtRecord.Status.READY:
        return
    from multisig.tasks import broadcast_psbt_record
    LOGGER.info('PSBT %s is ready, queueing broadcast', record.id)
    transaction.on_commit(lambda: broadcast_psbt_record.delay(record.id))


def _merge_into(context, record_id, incoming):
    """
    Merges `incoming` into a stored record. The row is locked while it is
    read and written, and the write is conditional on the version read, so
    concurrent merges retry instead of dropping each other's signatures.
    """
    store = context.psbt_store
    for attempt in range(1, MERGE_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                record = store.get_for_update(record_id)
                result = merge(record.psbt_data, incoming)
                if not result.added_signatures:
                    LOGGER.info('PSBT %s resubmitted without new signatures', record.id)
                    return UploadResult(record, UNCHANGED, 0)

                previous_status = record.status
                status = _signing_status(record.status, result.signatures_count, record.m_required)
                record = store.update(
                    record.id,
                    result.psbt.to_base64(),
                    result.signatures_count,
                    status,
                    expected_version=record.version,
                )
                LOGGER.info(
                    'Merged %s signature(s) into PSBT %s, now %s/%s (%s)',
                    result.added_signatures, record.id, record.signatures_count, record.m_required, record.status
                )
                _queue_auto_broadcast(context, record, previous_status)
                return UploadResult(record, MERGED, result.added_signatures)
        except StaleRecord:
            LOGGER.info('PSBT %s changed during merge, attempt %s of %s', record_id, attempt, MERGE_ATTEMPTS)
    raise StaleRecord()


def _find_equivalent(context, scope, psbt):
    outpoints = outpoint_set(psbt)
    for record in context.psbt_store.list(scope):
        try:
            stored = psbt_codec.decode(record.psbt_data)
        except ParseError:
            LOGGER.warning('PSBT %s has an unreadable blob, skipping', record.id)
            continue
        if outpoint_set(stored) == outpoints:
            return record
    return None


def upload_psbt(context, scope, name, blob, m=None, n=None, notes=None):
    """
    Stores a PSBT, merging it into an existing record of the same transaction
    when the scope has one. The signature count is always recomputed from the
    blob.
    """
    psbt = psbt_codec.decode(blob)
    m, n = _resolve_m_n(psbt, m, n)
    name = (name or '').strip()
    if not name:
        raise InvalidFormat('Name is required')

    existing = _find_equivalent(context, scope, psbt)
    if existing is not None:
        try:
            return _merge_into(context, existing.id, psbt)
        except NotEquivalent:
            LOGGER.info('PSBT %s no longer matches the upload, storing it separately', existing.id)

    signatures_count = count_signatures(psbt)
    record = context.psbt_store.insert(
        scope=scope,
        name=name,
        blob=psbt.to_base64(),
        m_required=m,
        n_total=n,
        signatures_count=signatures_count,
        status=_signing_status(PsbtRecord.Status.PENDING, signatures_count, m),
        notes=notes,
    )
    LOGGER.info('Created PSBT %s "%s" in scope %s with %s/%s signature(s)', record.id, name, scope, signatures_count, m)
    _queue_auto_broadcast(context, record, PsbtRecord.Status.PENDING)
    return UploadResult(record, CREATED, signatures_count)


def update_psbt(context, scope, record_id, blob):
    """Adds the signatures in `blob` to one specific record."""
    record = context.psbt_store.get(record_id, scope=scope)
    psbt = psbt_codec.decode(blob)
    if outpoint_set(psbt) != outpoint_set(psbt_codec.decode(record.psbt_data)):
        raise NotEquivalent()
    return _merge_into(context, record.id, psbt)


def update_notes(context, scope, record_id, notes):
    return context.psbt_store.update_notes(record_id, notes, scope=scope)


def delete_psbt(context, scope, record_id):
    deleted = context.psbt_store.delete(record_id, scope=scope)
    if deleted:
        context.tracker.untrack(record_id)
        LOGGER.info('Deleted PSBT %s from scope %s', record_id, scope)
    return deleted


def inspect_record(context, scope, record_id):
    record = context.psbt_store.get(record_id, scope=scope)
    return record, inspect(record.psbt_data, registry=context.registry(scope))


def broadcast_record(context, record_id, scope=None):
    """
    Finalizes a ready record, submits it to every broadcast endpoint and,
    when this process runs the scheduler, starts confirmation polling after
    the propagation delay.
    """
    record = context.psbt_store.get(record_id, scope=scope)
    if record.txid:
        raise InvalidFormat(f'PSBT was already broadcast as {record.txid}')

    signatures_count = count_signatures(psbt_codec.decode(record.psbt_data))
    if signatures_count < record.m_required:
        raise FinalizationError(
            f'PSBT has {signatures_count} of {record.m_required} required signatures'
        )

    finalized = finalize(record.psbt_data)
    outcome = context.broadcaster.broadcast(finalized.raw_hex, finalized.txid)
    record = context.psbt_store.update_broadcast_status(
        record.id, finalized.txid, PsbtRecord.Status.BROADCAST, 0
    )
    LOGGER.info(
        'Broadcast PSBT %s as %s%s',
        record.id, finalized.txid, ' (already known to the network)' if outcome.already_broadcast else ''
    )
    # without a running scheduler the tracking process picks the record up on its next sync()
    if context.scheduler.running:
        context.tracker.track(record.id, context.broadcaster.broadcast_endpoints)
    return BroadcastResult(record, outcome)


def _selected_keys(context, scope, key_ids):
    registry = context.registry(scope)
    return [registry.get(key_id) for key_id in key_ids]


def derive_for_keys(context, scope, key_ids, m, n, index=0, count=1):
    """Receive addresses for the registered keys `key_ids` as an M-of-N wallet."""
    keys = _selected_keys(context, scope, key_ids)
    first = derive_address(keys, m, index, n=n, network=context.network)
    if count <= 1:
        return [first]
    return derive_addresses(keys, m, start=index, count=count, network=context.network)


def create_descriptor(context, scope, name, key_ids, m, n=None):
    name = (name or '').strip()
    if not name:
        raise InvalidFormat('Name is required')
    keys = _selected_keys(context, scope, key_ids)
    first = derive_address(keys, m, 0, n=n, network=context.network)
    descriptor = context.descriptor_store.insert(
        scope=scope,
        name=name,
        descriptor=derive_descriptor(keys, m, context.network),
        m_required=m,
        n_total=len(keys),
        first_address=first.address,
    )
    LOGGER.info('Saved %s-of-%s descriptor %s in scope %s', m, len(keys), descriptor.id, scope)
    return descriptor
