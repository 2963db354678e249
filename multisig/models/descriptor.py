from django.db import models


class Descriptor(models.Model):
    name = models.CharField(max_length=255)
    descriptor = models.TextField(help_text="Output script descriptor, including its checksum")
    m_required = models.PositiveIntegerField()
    n_total = models.PositiveIntegerField()
    first_address = models.CharField(max_length=100, null=True, blank=True)
    scope = models.CharField(max_length=100, default='0', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.name
