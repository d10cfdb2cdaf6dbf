"""
Tests for the admin console's user editing.
"""

from decimal import Decimal

from django.contrib.admin.sites import AdminSite
from django.test import RequestFactory, TestCase

from core.admin import UserAdmin
from core.models import EscrowEntry, User
from factories import make_user


class UserAdminSaveTests(TestCase):

    def setUp(self):
        self.user = make_user('wallet@test.com', full_name='Old Name')
        self.model_admin = UserAdmin(User, AdminSite())
        self.request = RequestFactory().post('/admin/core/user/')

    def test_edit_keeps_balance_posted_after_form_load(self):
        stale = User.objects.get(pk=self.user.pk)
        EscrowEntry.objects.top_up(self.user, Decimal('500.00'), idempotency_key='admin-race')

        stale.full_name = 'New Name'
        self.model_admin.save_model(self.request, stale, None, True)

        self.user.refresh_from_db()
        self.assertEqual(self.user.full_name, 'New Name')
        self.assertEqual(self.user.escrow_balance, Decimal('500.00'))
        self.assertEqual(EscrowEntry.objects.balance_for(self.user.pk), Decimal('500.00'))

    def test_edit_keeps_review_aggregates(self):
        User.objects.filter(pk=self.user.pk).update(rating=Decimal('4.50'), reviews_count=2)
        stale = User.objects.get(pk=self.user.pk)
        stale.rating = Decimal('1.00')
        stale.reviews_count = 0
        stale.is_verified = True

        self.model_admin.save_model(self.request, stale, None, True)

        self.user.refresh_from_db()
        self.assertTrue(self.user.is_verified)
        self.assertEqual(self.user.rating, Decimal('4.50'))
        self.assertEqual(self.user.reviews_count, 2)

    def test_add_saves_every_field(self):
        user = User(username='newuser', email='new@test.com', full_name='New User')
        user.set_password('pass12345')

        self.model_admin.save_model(self.request, user, None, False)

        self.assertTrue(User.objects.filter(email='new@test.com').exists())
