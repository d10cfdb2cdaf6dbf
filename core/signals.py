"""
Django signals for derived marketplace data.

Review receivers keep each user's rating and reviews_count in step with the
reviews they have received. The message receiver notifies the other
participants of a conversation about a new chat message.
"""

import logging
from decimal import Decimal
from django.db import transaction
from django.db.models import Avg, Count
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .models import Message, Notification, Review, User

logger = logging.getLogger(__name__)


def recalculate_user_rating(user_id):
    """
    Recompute rating and reviews_count for a user from their received reviews.

    Locks the user row so concurrent reviews cannot overwrite each other's
    aggregate. Sets the rating to 0.00 when no reviews remain.
    """
    with transaction.atomic():
        user = User.objects.select_for_update().get(pk=user_id)
        stats = Review.objects.filter(reviewee_id=user_id).aggregate(
            avg=Avg('rating'),
            total=Count('id')
        )
        avg_rating = stats['avg']
        rating = Decimal(str(avg_rating)).quantize(Decimal('0.01')) if avg_rating else Decimal('0.00')
        User.objects.filter(pk=user.pk).update(rating=rating, reviews_count=stats['total'] or 0)
    return rating, stats['total'] or 0


@receiver(post_save, sender=Review)
def update_rating_on_review_save(sender, instance, created, **kwargs):
    """
    Recalculate the reviewee's rating when a review is created or updated.

    Runs inside the caller's transaction; a failure re-raises so the review
    write is rolled back with it.
    """
    try:
        rating, total = recalculate_user_rating(instance.reviewee_id)
        action = "created" if created else "updated"
        logger.info(
            f"Updated rating for review {instance.id} ({action}): "
            f"reviewee_id={instance.reviewee_id}, rating={rating}, reviews={total}"
        )
    except Exception as e:
        logger.error(
            f"Error updating rating for review {instance.id}: {e}",
            exc_info=True
        )
        raise


@receiver(post_delete, sender=Review)
def update_rating_on_review_delete(sender, instance, **kwargs):
    try:
        rating, total = recalculate_user_rating(instance.reviewee_id)
        logger.info(
            f"Updated rating after deleting review {instance.id}: "
            f"reviewee_id={instance.reviewee_id}, rating={rating}, reviews={total}"
        )
    except Exception as e:
        logger.error(
            f"Error updating rating after deleting review {instance.id}: {e}",
            exc_info=True
        )
        raise


@receiver(post_save, sender=Message)
def notify_participants_on_message(sender, instance, created, **kwargs):
    """Create a 'message' notification for every participant except the sender."""
    if not created:
        return

    sender_name = instance.sender.display_name
    preview = instance.content if len(instance.content) <= 80 else f'{instance.content[:77]}...'
    recipients = instance.conversation.participants.exclude(pk=instance.sender_id)
    for recipient in recipients:
        Notification.notify(
            recipient,
            'message',
            f'New message from {sender_name}',
            preview,
            link=f'/messages/{instance.conversation_id}',
        )
