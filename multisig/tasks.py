import logging

from celery import shared_task

from multisig import services
from multisig.context import get_context
from multisig.exceptions import BroadcastFailed, MultisigError

LOGGER = logging.getLogger(__name__)


@shared_task(queue='broadcast', max_retries=0)
def broadcast_psbt_record(record_id):
    context = get_context()
    try:
        result = services.broadcast_record(context, record_id)
    except BroadcastFailed as exc:
        LOGGER.error(
            'Broadcast of PSBT %s failed: %s',
            record_id, '; '.join(f'{r.endpoint}: {r.error}' for r in exc.results) or exc.message
        )
        return {'success': False, 'error': exc.message}
    except MultisigError as exc:
        LOGGER.warning('PSBT %s not broadcast: %s', record_id, exc.message)
        return {'success': False, 'error': exc.message}
    return {'success': True, 'txid': result.record.txid}


@shared_task(queue='monitor')
def check_out_of_band_broadcasts():
    forwarded = get_context().tracker.check_out_of_band(schedule=False)
    if forwarded:
        LOGGER.info('Out-of-band broadcasts found for PSBTs %s', forwarded)
    return forwarded
