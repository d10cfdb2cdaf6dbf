from decimal import Decimal
from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase

from core.models import EscrowEntry, Item, Review, User
from factories import advance_rental, make_rental, make_user


class RecalculateRatingsCommandTests(TestCase):
    def setUp(self):
        self.owner = make_user('owner@test.com')
        self.renter1 = make_user('renter1@test.com')
        self.renter2 = make_user('renter2@test.com')
        for renter in (self.renter1, self.renter2):
            EscrowEntry.objects.top_up(renter, Decimal('2000.00'), idempotency_key='setup')

        self.item = Item.objects.create(
            owner=self.owner,
            title='Mountain Bike',
            description='Trek Marlin 5, size M.',
            category='sports',
            price_per_day=Decimal('300.00'),
            deposit_amount=Decimal('500.00'),
        )

        # Two completed rentals reviewed 5 and 3 stars
        for renter, rating in ((self.renter1, 5), (self.renter2, 3)):
            rental = advance_rental(make_rental(self.item, renter), 'completed')
            Review.objects.create(
                rental=rental, reviewer=renter, reviewee=self.owner, rating=rating, comment='Ok'
            )

        # Corrupt the cached aggregates
        User.objects.filter(pk=self.owner.pk).update(rating=Decimal('1.00'), reviews_count=10)
        User.objects.filter(pk=self.renter1.pk).update(rating=Decimal('4.50'), reviews_count=2)

    def test_recalculate_ratings(self):
        out = StringIO()
        call_command('recalculate_ratings', stdout=out)

        self.owner.refresh_from_db()
        self.renter1.refresh_from_db()
        self.assertEqual(self.owner.rating, Decimal('4.00'))
        self.assertEqual(self.owner.reviews_count, 2)
        self.assertEqual(self.renter1.rating, Decimal('0.00'))
        self.assertEqual(self.renter1.reviews_count, 0)
        self.assertIn('Recalculation completed successfully. 2 user(s) updated.', out.getvalue())

    def test_dry_run(self):
        out = StringIO()
        call_command('recalculate_ratings', '--dry-run', stdout=out)

        self.owner.refresh_from_db()
        self.assertEqual(self.owner.rating, Decimal('1.00'))
        self.assertEqual(self.owner.reviews_count, 10)
        self.assertIn('[DRY-RUN]', out.getvalue())
        self.assertIn('Dry run completed. 2 user(s) would change.', out.getvalue())

    def test_small_batch_size(self):
        call_command('recalculate_ratings', '--batch-size=1', stdout=StringIO())

        self.owner.refresh_from_db()
        self.assertEqual(self.owner.rating, Decimal('4.00'))

    def test_invalid_batch_size(self):
        with self.assertRaises(CommandError):
            call_command('recalculate_ratings', '--batch-size=0', stdout=StringIO())


class ReconcileEscrowCommandTests(TestCase):
    def setUp(self):
        self.user = make_user('wallet@test.com')
        self.other = make_user('other@test.com')
        EscrowEntry.objects.top_up(self.user, Decimal('1500.00'), idempotency_key='one')
        EscrowEntry.objects.top_up(self.other, Decimal('200.00'), idempotency_key='one')

    def test_balances_match(self):
        out = StringIO()
        call_command('reconcile_escrow', stdout=out)

        self.assertIn('All balances match the ledger.', out.getvalue())

    def test_reports_drift_without_fixing(self):
        User.objects.filter(pk=self.user.pk).update(escrow_balance=Decimal('9999.00'))

        out = StringIO()
        call_command('reconcile_escrow', stdout=out)

        self.user.refresh_from_db()
        self.assertEqual(self.user.escrow_balance, Decimal('9999.00'))
        self.assertIn('cached 9999.00, ledger 1500.00', out.getvalue())
        self.assertIn('1 balance(s) drifted. Run with --fix to correct them.', out.getvalue())

    def test_fix_restores_ledger_balance(self):
        User.objects.filter(pk=self.user.pk).update(escrow_balance=Decimal('9999.00'))

        out = StringIO()
        call_command('reconcile_escrow', '--fix', stdout=out)

        self.user.refresh_from_db()
        self.assertEqual(self.user.escrow_balance, Decimal('1500.00'))
        self.assertIn('Fixed 1 balance(s).', out.getvalue())

    def test_single_user(self):
        User.objects.filter(pk=self.other.pk).update(escrow_balance=Decimal('0.00'))

        out = StringIO()
        call_command('reconcile_escrow', f'--user={self.user.pk}', stdout=out)

        self.assertIn('Checked 1 user(s). All balances match the ledger.', out.getvalue())

    def test_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command('reconcile_escrow', '--user=99999', stdout=StringIO())
