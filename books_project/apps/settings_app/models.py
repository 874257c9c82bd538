"""
Settings models - company profile and the audit trail.
"""
from django.db import models

from apps.core.validators import is_valid_trn
from apps.core.exceptions import ValidationError


class CompanySettings(models.Model):
    """
    Company-wide settings and information.
    The engine always works inside one already-scoped company.
    """
    company_name = models.CharField(max_length=200)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    tax_id = models.CharField(max_length=50, blank=True, verbose_name='Tax ID / TRN')
    fiscal_year_start = models.IntegerField(default=1, help_text='Month (1-12)')
    currency = models.CharField(max_length=10, default='AED')
    timezone = models.CharField(max_length=50, default='Asia/Dubai')

    class Meta:
        verbose_name = 'Company Settings'
        verbose_name_plural = 'Company Settings'

    def __str__(self):
        return self.company_name

    def clean(self):
        if self.tax_id and not is_valid_trn(self.tax_id):
            raise ValidationError({'tax_id': f"TRN '{self.tax_id}' must be exactly 15 digits."})
        if self.currency != 'AED':
            raise ValidationError({'currency': 'Only AED is supported.'})

    @property
    def trn(self):
        return (self.tax_id or '').strip()

    @classmethod
    def get_settings(cls):
        """Get or create company settings."""
        settings, _ = cls.objects.get_or_create(pk=1, defaults={'company_name': 'My Company'})
        return settings


class AuditLog(models.Model):
    """
    System audit log for tracking all changes.
    UAE VAT & Corporate Tax compliant audit trail.
    """
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('post', 'Post'),
        ('reverse', 'Reverse'),
        ('approve', 'Approve'),
        ('payment', 'Payment'),
        ('cancel', 'Cancel'),
        ('file', 'File'),
        ('process', 'Process'),
        ('export', 'Export'),
        ('rebuild', 'Rebuild'),
    ]

    user = models.CharField(max_length=150, default='system')
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    model = models.CharField(max_length=100)
    record_id = models.CharField(max_length=50, blank=True)
    changes = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.user} - {self.action} - {self.model}"
