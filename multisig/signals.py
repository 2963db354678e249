import logging

from django.db.models.signals import post_delete
from django.dispatch import receiver

from .context import get_context
from .models import PsbtRecord

LOGGER = logging.getLogger(__name__)


@receiver(post_delete, sender=PsbtRecord)
def cancel_confirmation_poller(sender, instance, **kwargs):
    get_context().tracker.untrack(instance.id)
