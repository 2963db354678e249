import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from multisig.context import get_context, teardown

LOGGER = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL = 30


class Command(BaseCommand):
    help = "Poll broadcast PSBT records until they reach the finality depth"

    def add_arguments(self, parser):
        parser.add_argument(
            '--sync-interval',
            type=int,
            default=getattr(settings, 'MULTISIG_SYNC_INTERVAL', DEFAULT_SYNC_INTERVAL),
            help='Seconds between reconciliations with the database',
        )

    def handle(self, *args, **options):
        context = get_context()
        tracker = context.tracker
        tracker.resume()
        context.scheduler.start()
        LOGGER.info('Tracking confirmations on %s', context.network)

        try:
            while True:
                time.sleep(options['sync_interval'])
                tracker.sync()
        except KeyboardInterrupt:
            LOGGER.info('Interrupted, stopping confirmation tracker')
        finally:
            teardown()
