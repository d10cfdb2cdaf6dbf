# Reconcile Escrow Management Command
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from core.models import EscrowEntry, User


class Command(BaseCommand):
    help = 'Compares cached escrow balances with the ledger and optionally corrects drift.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Overwrite drifted cached balances with the ledger total.',
        )
        parser.add_argument(
            '--user',
            type=int,
            dest='user_id',
            help='Only reconcile the user with this ID.',
        )

    def handle(self, *args, **options):
        fix = options['fix']
        user_id = options.get('user_id')

        users = User.objects.all().order_by('pk')
        if user_id is not None:
            users = users.filter(pk=user_id)
            if not users.exists():
                raise CommandError(f'User with ID {user_id} does not exist.')

        checked = 0
        drifted = 0
        for user_pk in users.values_list('pk', flat=True):
            checked += 1
            with transaction.atomic():
                user = User.objects.select_for_update().get(pk=user_pk)
                ledger_balance = EscrowEntry.objects.balance_for(user.pk)
                if ledger_balance == user.escrow_balance:
                    continue

                drifted += 1
                self.stdout.write(
                    self.style.WARNING(
                        f'  User {user.id} ({user.email}): cached {user.escrow_balance}, ledger {ledger_balance}'
                    )
                )
                if fix:
                    User.objects.filter(pk=user.pk).update(escrow_balance=ledger_balance)

        if drifted == 0:
            self.stdout.write(self.style.SUCCESS(f'Checked {checked} user(s). All balances match the ledger.'))
        elif fix:
            self.stdout.write(self.style.SUCCESS(f'Checked {checked} user(s). Fixed {drifted} balance(s).'))
        else:
            self.stdout.write(
                self.style.WARNING(
                    f'Checked {checked} user(s). {drifted} balance(s) drifted. Run with --fix to correct them.'
                )
            )
