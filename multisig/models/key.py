import logging
from django.db import models

LOGGER = logging.getLogger(__name__)

class ExtendedKey(models.Model):
    label = models.CharField(max_length=255)
    xpub = models.CharField(max_length=512, db_index=True, help_text="The extended public key exactly as it was registered")
    scope = models.CharField(max_length=100, default='0', db_index=True, help_text="Opaque partition token isolating unrelated groups of users")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['scope', 'xpub'], name='unique_scope_xpub')
        ]

    def __str__(self):
        return f"{self.label}: {self.xpub}"
