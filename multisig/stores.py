"""
ORM-backed stores for keys, PSBT records and descriptors.

The core modules only talk to these classes, never to the models directly,
so every write path goes through the same duplicate, version and
monotonicity checks.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from multisig.exceptions import Duplicate, NotFound, StaleRecord
from multisig.models import Descriptor, ExtendedKey, PsbtRecord

LOGGER = logging.getLogger(__name__)


class KeyStore(object):

    def list(self, scope):
        return list(ExtendedKey.objects.filter(scope=scope))

    def get(self, key_id, scope=None):
        queryset = ExtendedKey.objects.all()
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        try:
            return queryset.get(id=key_id)
        except (ExtendedKey.DoesNotExist, ValueError):
            raise NotFound('XPub not found')

    def insert(self, scope, label, key):
        try:
            with transaction.atomic():
                return ExtendedKey.objects.create(scope=scope, label=label, xpub=key)
        except IntegrityError:
            raise Duplicate()

    def update_label(self, key_id, label, scope=None):
        key = self.get(key_id, scope=scope)
        key.label = label
        key.save(update_fields=['label'])
        return key

    def delete(self, key_id, scope=None):
        queryset = ExtendedKey.objects.filter(id=key_id)
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        deleted, _ = queryset.delete()
        return deleted > 0


class PsbtStore(object):

    def list(self, scope):
        return list(PsbtRecord.objects.filter(scope=scope))

    def get(self, record_id, scope=None):
        queryset = PsbtRecord.objects.all()
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        try:
            return queryset.get(id=record_id)
        except (PsbtRecord.DoesNotExist, ValueError):
            raise NotFound('PSBT not found')

    def get_for_update(self, record_id):
        """Row-locks the record; must be called inside transaction.atomic()."""
        try:
            return PsbtRecord.objects.select_for_update().get(id=record_id)
        except PsbtRecord.DoesNotExist:
            raise NotFound('PSBT not found')

    def insert(self, scope, name, blob, m_required, n_total, signatures_count, status, notes=None):
        return PsbtRecord.objects.create(
            scope=scope,
            name=name,
            psbt_data=blob,
            m_required=m_required,
            n_total=n_total,
            signatures_count=signatures_count,
            status=status,
            notes=notes or None,
        )

    def update(self, record_id, blob, signatures_count, status, expected_version):
        """
        Writes a new blob only if nobody else wrote the record since it was read
        at `expected_version`; raises StaleRecord otherwise.
        """
        updated = PsbtRecord.objects.filter(id=record_id, version=expected_version).update(
            psbt_data=blob,
            signatures_count=signatures_count,
            status=status,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            if not PsbtRecord.objects.filter(id=record_id).exists():
                raise NotFound('PSBT not found')
            raise StaleRecord()
        return self.get(record_id)

    def update_notes(self, record_id, notes, scope=None):
        record = self.get(record_id, scope=scope)
        record.notes = notes or None
        record.save(update_fields=['notes', 'updated_at'])
        return record

    def update_broadcast_status(self, record_id, txid, status, confirmations, block_height=None):
        """
        Stores broadcast progress. A write carrying fewer confirmations than
        already stored is ignored, so depth never goes backwards.
        """
        values = {
            'txid': txid,
            'status': status,
            'confirmations': confirmations,
            'version': F('version') + 1,
            'updated_at': timezone.now(),
        }
        if block_height is not None:
            values['block_height'] = block_height
        updated = PsbtRecord.objects.filter(
            id=record_id,
            confirmations__lte=confirmations,
        ).update(**values)
        record = self.get(record_id)
        if not updated:
            LOGGER.info(
                'Ignored confirmation regression for PSBT %s: stored %s, observed %s',
                record_id, record.confirmations, confirmations
            )
        return record

    def awaiting_confirmation(self):
        return list(PsbtRecord.objects.filter(
            status__in=[PsbtRecord.Status.BROADCAST, PsbtRecord.Status.CONFIRMING],
            txid__isnull=False,
        ))

    def ready_without_txid(self):
        return list(PsbtRecord.objects.filter(status=PsbtRecord.Status.READY, txid__isnull=True))

    def exists(self, record_id):
        return PsbtRecord.objects.filter(id=record_id).exists()

    def delete(self, record_id, scope=None):
        queryset = PsbtRecord.objects.filter(id=record_id)
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        deleted, _ = queryset.delete()
        return deleted > 0


class DescriptorStore(object):

    def list(self, scope):
        return list(Descriptor.objects.filter(scope=scope))

    def get(self, descriptor_id, scope=None):
        queryset = Descriptor.objects.all()
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        try:
            return queryset.get(id=descriptor_id)
        except (Descriptor.DoesNotExist, ValueError):
            raise NotFound('Descriptor not found')

    def insert(self, scope, name, descriptor, m_required, n_total, first_address=None):
        return Descriptor.objects.create(
            scope=scope,
            name=name,
            descriptor=descriptor,
            m_required=m_required,
            n_total=n_total,
            first_address=first_address or None,
        )

    def delete(self, descriptor_id, scope=None):
        queryset = Descriptor.objects.filter(id=descriptor_id)
        if scope is not None:
            queryset = queryset.filter(scope=scope)
        deleted, _ = queryset.delete()
        return deleted > 0
