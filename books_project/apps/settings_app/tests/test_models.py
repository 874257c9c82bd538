"""
Company settings and audit trail tests.

Run: python manage.py test apps.settings_app.tests.test_models
"""
from django.test import TestCase

from apps.core.audit import get_entity_audit_history, log_audit, log_finance_audit
from apps.core.exceptions import ValidationError
from apps.settings_app.models import AuditLog, CompanySettings


class CompanySettingsTests(TestCase):

    def test_get_settings_creates_singleton(self):
        settings = CompanySettings.get_settings()
        self.assertEqual(settings.pk, 1)
        self.assertEqual(settings.currency, 'AED')
        self.assertEqual(CompanySettings.get_settings().pk, 1)
        self.assertEqual(CompanySettings.objects.count(), 1)

    def test_trn_validation(self):
        CompanySettings(company_name='Gulf Tech LLC', tax_id='100123456700003').clean()
        with self.assertRaises(ValidationError):
            CompanySettings(company_name='Gulf Tech LLC', tax_id='TRN-1').clean()
        with self.assertRaises(ValidationError):
            CompanySettings(company_name='Gulf Tech LLC', currency='USD').clean()


class AuditLogTests(TestCase):

    def test_system_actor_by_default(self):
        log = log_audit(None, 'update', 'CompanySettings', 1, {'company_name': 'Gulf Tech LLC'})
        self.assertEqual(log.user, 'system')
        self.assertEqual(log.record_id, '1')

    def test_unserializable_changes_are_stringified(self):
        log = log_audit('admin', 'update', 'CompanySettings', 1, {'value': object()})
        self.assertIn('message', log.changes)

    def test_finance_history(self):
        log_finance_audit('admin', 'post', 'JournalEntry', 7, reference_number='JE-2025-0001', amount_after=100)
        log_finance_audit('admin', 'reverse', 'JournalEntry', 7, reason='Raised in error')
        log_finance_audit('admin', 'post', 'JournalEntry', 8)

        history = get_entity_audit_history('JournalEntry', 7)
        self.assertEqual([log.action for log in history], ['reverse', 'post'])
        self.assertEqual(AuditLog.objects.get(action='reverse').changes['reason'], 'Raised in error')
