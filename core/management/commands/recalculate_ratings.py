# Recalculate Ratings Management Command
from decimal import Decimal
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Avg, Count
from core.models import User, Review


class Command(BaseCommand):
    help = 'Recalculates user ratings and review counts from received reviews.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        changed = self.recalculate_users(dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS(f'Dry run completed. {changed} user(s) would change.'))
        else:
            self.stdout.write(self.style.SUCCESS(f'Recalculation completed successfully. {changed} user(s) updated.'))

    def recalculate_users(self, dry_run, batch_size):
        self.stdout.write('Recalculating user ratings...')
        users = User.objects.all().order_by('pk').iterator(chunk_size=batch_size)
        updates = []
        count = 0
        changed = 0

        for user in users:
            stats = Review.objects.filter(reviewee=user).aggregate(
                avg=Avg('rating'),
                total=Count('id')
            )
            raw_avg = stats['avg']
            if raw_avg is None:
                new_rating = Decimal('0.00')
            else:
                new_rating = Decimal(str(raw_avg)).quantize(Decimal('0.01'))
            new_total = stats['total'] or 0

            if abs(user.rating - new_rating) > Decimal('0.001') or user.reviews_count != new_total:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id} ({user.email}): Rating {user.rating} -> {new_rating}, '
                        f'Count {user.reviews_count} -> {new_total}'
                    )
                user.rating = new_rating
                user.reviews_count = new_total
                updates.append(user)
                changed += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['rating', 'reviews_count'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['rating', 'reviews_count'])

        self.stdout.write(f'Processed {count} users total.')
        return changed
