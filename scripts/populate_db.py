import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hiramko_marketplace.settings')
django.setup()

from django.utils import timezone

from core.models import (
    User, Item, Rental, EscrowEntry, Conversation, Message, Review
)

fake = Faker()

LOCATIONS = [
    'Quezon City', 'Makati', 'Pasig', 'Taguig', 'Manila',
    'Mandaluyong', 'Cebu City', 'Davao City', 'Baguio', 'Iloilo City',
]

ITEM_TITLES = {
    'cameras': ['Sony A7 III Body', 'Canon EOS R6', 'GoPro Hero 11', 'Fujifilm X-T4'],
    'gadgets': ['iPad Pro 11"', 'Nintendo Switch OLED', 'DJI Mini 3 Drone', 'Projector 1080p'],
    'tools': ['Cordless Drill Set', 'Pressure Washer', 'Tile Cutter', 'Ladder 12ft'],
    'camping_gear': ['4-Person Tent', 'Camping Stove', 'Sleeping Bag Set', 'Cooler Box 50L'],
    'party_supplies': ['Karaoke System', 'Party Tent 10x10', 'LED Light Set', 'Chafing Dish Set'],
    'musical_instruments': ['Acoustic Guitar', 'Digital Piano', 'Cajon Drum', 'Ukulele'],
    'costumes': ['Filipiniana Gown', 'Barong Tagalog', 'Cosplay Armor', 'Toga Set'],
    'sports': ['Mountain Bike', 'Surfboard 7ft', 'Badminton Set', 'Kayak'],
}


def phone_number():
    return f"09{random.randint(100000000, 999999999)}"


def create_users(num_users=20, num_riders=4):
    print(f"Creating {num_users} users and {num_riders} riders...")

    users = []
    riders = []

    for index in range(num_users + num_riders):
        email = fake.unique.email()
        user = User.objects.create_user(
            username=email.split('@')[0][:30] + str(index),
            email=email,
            password='password123',
            full_name=fake.name(),
            phone_number=phone_number(),
            location=random.choice(LOCATIONS),
            is_verified=random.random() < 0.6,
            is_shop=random.random() < 0.15,
            is_rider=index >= num_users,
        )
        if user.is_verified:
            User.objects.filter(pk=user.pk).update(kyc_status='approved')
        (riders if user.is_rider else users).append(user)

    print(f"Created {len(users)} users and {len(riders)} riders.")
    return users, riders


def top_up_wallets(users):
    print("Topping up escrow wallets...")
    count = 0
    for user in users:
        amount = Decimal(random.choice([500, 1000, 2500, 5000]))
        EscrowEntry.objects.top_up(user, amount, idempotency_key=f'seed-{user.pk}')
        count += 1
    print(f"Topped up {count} wallets.")


def create_items(users):
    print("Creating items...")
    items = []

    for user in users:
        # Each user lists 0-3 items
        for _ in range(random.randint(0, 3)):
            category = random.choice(list(ITEM_TITLES))
            item = Item.objects.create(
                owner=user,
                title=random.choice(ITEM_TITLES[category]),
                description=fake.paragraph(nb_sentences=4),
                category=category,
                condition=random.choice(['like_new', 'good', 'fair', 'heavily_used']),
                price_per_day=Decimal(random.randint(15, 250) * 10),
                deposit_amount=Decimal(random.choice([0, 200, 500, 1000])),
                location=user.location,
                logistics_type=random.choice(['light', 'medium_heavy', 'owner_delivery', 'pickup_only']),
                allow_survey=random.random() < 0.3,
            )
            items.append(item)

    print(f"Created {len(items)} items.")
    return items


def create_rentals(users, items):
    """
    Create rentals and drive some of them through the lifecycle so the
    ledger and cached balances stay consistent.
    """
    print("Creating rentals...")
    rentals = []
    today = timezone.localdate()

    for item in items:
        # 60% of items get a rental
        if random.random() >= 0.6:
            continue

        renter = random.choice([u for u in users if u.pk != item.owner_id])
        start = today + timedelta(days=random.randint(0, 10))
        end = start + timedelta(days=random.randint(1, 5))
        rental = Rental.objects.create(
            item=item,
            renter=renter,
            owner=item.owner,
            start_date=start,
            end_date=end,
            delivery_method='pickup',
            **Rental.quote(item, start, end)
        )
        rentals.append(rental)

        outcome = random.choice(['pending', 'approved', 'in_possession', 'completed', 'declined'])
        if outcome == 'pending':
            continue
        if outcome == 'declined':
            rental.decline()
            continue

        renter.refresh_from_db()
        if renter.escrow_balance < rental.deposit_amount:
            continue

        rental.payment_status = 'review'
        rental.save()
        rental.confirm_payment(actor=item.owner)
        if outcome == 'approved':
            continue

        rental.handover()
        if outcome == 'in_possession':
            continue

        rental.initiate_return()
        rental.confirm_return(random.randint(4, 5), actor=item.owner)

    print(f"Created {len(rentals)} rentals.")
    return rentals


def create_reviews(rentals):
    print("Creating reviews...")
    reviews = []

    for rental in rentals:
        if rental.status != 'completed':
            continue
        # 70% chance of the renter leaving a review
        if random.random() < 0.7:
            review = Review.objects.create(
                rental=rental,
                reviewer=rental.renter,
                reviewee=rental.owner,
                rating=random.randint(3, 5),
                comment=fake.sentence(nb_words=12),
            )
            reviews.append(review)

    print(f"Created {len(reviews)} reviews.")
    return reviews


def create_conversations(rentals):
    print("Creating conversations...")
    count = 0

    for rental in rentals[:10]:
        conversation, _ = Conversation.between(rental.renter, rental.owner, item=rental.item)
        Message.objects.create(
            conversation=conversation,
            sender=rental.renter,
            content=f"Hi! Is the {rental.item.title} still available on {rental.start_date}?",
        )
        Message.objects.create(
            conversation=conversation,
            sender=rental.owner,
            content=fake.sentence(nb_words=10),
        )
        count += 1

    print(f"Created {count} conversations.")


def main():
    print("Starting database population...")

    users, riders = create_users(num_users=20, num_riders=4)
    top_up_wallets(users)
    items = create_items(users)
    rentals = create_rentals(users, items)
    create_reviews(rentals)
    create_conversations(rentals)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
