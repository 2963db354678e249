from django.db import models


class PsbtRecord(models.Model):

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"              # Collecting signatures
        READY = "ready", "Ready"                    # Signature threshold met
        BROADCAST = "broadcast", "Broadcast"        # Submitted, unconfirmed
        CONFIRMING = "confirming", "Confirming"     # 1..5 confirmations
        FINAL = "final", "Final"                    # Finality depth reached

    name = models.CharField(max_length=255)
    psbt_data = models.TextField(help_text="The PSBT, base64 encoded. Updated as signatures are merged in.")
    m_required = models.PositiveIntegerField()
    n_total = models.PositiveIntegerField()
    signatures_count = models.PositiveIntegerField(default=0, help_text="Maximum partial signature count over the PSBT inputs. Always recomputed from psbt_data.")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    notes = models.TextField(null=True, blank=True)
    txid = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    confirmations = models.PositiveIntegerField(default=0)
    block_height = models.PositiveIntegerField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0, help_text="Optimistic concurrency counter, incremented on every write")
    scope = models.CharField(max_length=100, default='0', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.name} ({self.signatures_count}/{self.m_required})"
