"""
Data models for the HiramKo rental marketplace.
"""

import logging
import uuid
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import validate_gcash_number, validate_image_upload, validate_phone_number

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def user_avatar_upload_path(instance, filename):
    """
    Generate upload path for user avatars.

    Path format: avatars/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'avatars/{user_id}/{filename}'


def kyc_document_upload_path(instance, filename):
    user_id = instance.id if instance.id else 'temp'
    return f'kyc-documents/{user_id}/{filename}'


class User(AbstractUser):
    """
    Marketplace account extending Django's AbstractUser.

    Every account can both list items and rent them. Shops and riders are
    flags on the same account rather than separate user types.

    Additional fields:
    - email: Required, unique email address (login identifier)
    - full_name, phone_number, location, avatar: Public profile
    - rating, reviews_count: Aggregated from received reviews
    - is_verified, kyc_*: Identity verification state
    - is_shop, is_rider: Account capabilities
    - escrow_balance: Cached sum of the user's escrow ledger entries
    - gcash_number, gcash_name: Payout wallet details
    """

    KYC_STATUS_CHOICES = [
        ('none', 'Not Submitted'),
        ('pending', 'Pending Review'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    full_name = models.CharField(
        _('full name'),
        max_length=150,
        blank=True,
        default='',
        help_text=_('Name shown on listings and in chat.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in local or international format.')
    )

    location = models.CharField(
        _('location'),
        max_length=200,
        blank=True,
        default='',
        help_text=_('City or area where the user is based.')
    )

    avatar = models.ImageField(
        _('avatar'),
        upload_to=user_avatar_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_upload],
        help_text=_('Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).')
    )

    rating = models.DecimalField(
        _('rating'),
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[
            MinValueValidator(Decimal('0.00'), message=_('Rating cannot be negative.')),
            MaxValueValidator(Decimal('5.00'), message=_('Rating cannot exceed 5.00.'))
        ],
        help_text=_('Average rating received from rental counter-parties.')
    )

    reviews_count = models.PositiveIntegerField(
        _('reviews count'),
        default=0,
        help_text=_('Number of reviews received.')
    )

    is_verified = models.BooleanField(
        _('verified status'),
        default=False,
        help_text=_('Set once an administrator approves the identity document.')
    )

    kyc_status = models.CharField(
        _('identity verification status'),
        max_length=10,
        choices=KYC_STATUS_CHOICES,
        default='none',
    )

    kyc_document = models.ImageField(
        _('identity document'),
        upload_to=kyc_document_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_upload],
        help_text=_('Government ID submitted for verification.')
    )

    kyc_submitted_at = models.DateTimeField(
        _('identity document submitted at'),
        null=True,
        blank=True,
    )

    is_shop = models.BooleanField(
        _('shop account'),
        default=False,
        help_text=_('Business account listing items as a shop.')
    )

    is_rider = models.BooleanField(
        _('rider account'),
        default=False,
        help_text=_('Account can accept delivery jobs.')
    )

    escrow_balance = models.DecimalField(
        _('escrow balance'),
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text=_('Cached balance of the escrow ledger. Never edit directly.')
    )

    gcash_number = models.CharField(
        _('GCash number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_gcash_number],
    )

    gcash_name = models.CharField(
        _('GCash account name'),
        max_length=150,
        blank=True,
        default='',
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='user_email_idx'),
            models.Index(fields=['is_verified'], name='user_verified_idx'),
            models.Index(fields=['kyc_status'], name='user_kyc_status_idx'),
            models.Index(fields=['is_rider'], name='user_rider_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(escrow_balance__gte=0),
                name='user_escrow_balance_non_negative',
            ),
        ]

    def __str__(self):
        return self.email or self.username

    @property
    def display_name(self):
        return self.full_name or self.email

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Email is provided and lowercase for case-insensitive uniqueness
        - Escrow balance is not negative

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

        if self.escrow_balance is not None and self.escrow_balance < 0:
            raise ValidationError({
                'escrow_balance': _('Escrow balance cannot be negative.')
            })

    def save(self, *args, **kwargs):
        """
        Normalize email and validate before saving.

        New users skip full_clean so duplicate emails surface as the
        database IntegrityError the registration view handles. A new user
        with an avatar is saved once without it to obtain an ID for the
        upload path.
        """
        if self.email:
            self.email = self.email.lower()

        if self.pk is not None:
            self.full_clean()

        if self.avatar and not self.pk:
            avatar_temp = self.avatar
            self.avatar = None
            super().save(*args, **kwargs)
            self.avatar = avatar_temp
            super().save(update_fields=['avatar'])
        else:
            super().save(*args, **kwargs)

    def submit_kyc(self, document):
        """Attach an identity document and queue it for admin review."""
        if self.is_verified:
            raise ValidationError(_('This account is already verified.'))
        self.kyc_document = document
        self.kyc_status = 'pending'
        self.kyc_submitted_at = timezone.now()
        self.save(update_fields=['kyc_document', 'kyc_status', 'kyc_submitted_at', 'updated_at'])

    def review_kyc(self, approve):
        """Apply an administrator's verification decision."""
        if approve:
            self.is_verified = True
            self.kyc_status = 'approved'
        else:
            self.is_verified = False
            self.kyc_status = 'rejected'
        self.save(update_fields=['is_verified', 'kyc_status', 'updated_at'])


def lock_users(*user_ids):
    """
    Lock user rows for the current transaction in ascending primary-key order.

    Every code path that touches more than one balance goes through here so
    concurrent settlements always acquire locks in the same order.
    """
    ids = sorted({user_id for user_id in user_ids if user_id is not None})
    return {user.pk: user for user in User.objects.select_for_update().filter(pk__in=ids).order_by('pk')}


# ============================================================================
# Listings
# ============================================================================

class Item(models.Model):
    """
    Rentable item listed by a user.

    Fields:
    - owner: User listing the item
    - title, description, category, condition, location: Listing details
    - price_per_day: Daily rental rate (must be > 0)
    - deposit_amount: Security deposit held in escrow during a rental
    - logistics_type: How the item can be moved to the renter
    - allow_survey: Renter may inspect the item before renting
    - is_available: Owner toggle for accepting rentals
    - is_blocked: Set by administrators to take a listing down
    """

    CATEGORY_CHOICES = [
        ('cameras', 'Cameras'),
        ('vehicles', 'Vehicles'),
        ('dormitels', 'Dormitels'),
        ('properties', 'Properties'),
        ('clothing', 'Clothing'),
        ('gadgets', 'Gadgets'),
        ('tools', 'Tools'),
        ('sports', 'Sports'),
        ('books', 'Books'),
        ('musical_instruments', 'Musical Instruments'),
        ('camping_gear', 'Camping Gear'),
        ('party_supplies', 'Party Supplies'),
        ('appliances', 'Appliances'),
        ('costumes', 'Costumes'),
        ('others', 'Others'),
    ]

    CONDITION_CHOICES = [
        ('like_new', 'Like New'),
        ('good', 'Good'),
        ('fair', 'Fair'),
        ('heavily_used', 'Heavily Used'),
    ]

    LOGISTICS_CHOICES = [
        ('light', 'Light (Motorcycle)'),
        ('medium_heavy', 'Medium/Heavy (Car/Van/Truck)'),
        ('owner_delivery', 'Owner Delivery'),
        ('pickup_only', 'Pickup Only'),
    ]

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='items',
        help_text=_('User listing this item')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        help_text=_('Title of the listing')
    )

    description = models.TextField(
        _('description'),
        help_text=_('Detailed description of the item')
    )

    category = models.CharField(
        _('category'),
        max_length=30,
        choices=CATEGORY_CHOICES,
        default='others',
    )

    condition = models.CharField(
        _('condition'),
        max_length=20,
        choices=CONDITION_CHOICES,
        default='good',
    )

    price_per_day = models.DecimalField(
        _('price per day'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Daily rental rate in PHP (must be greater than 0)')
    )

    deposit_amount = models.DecimalField(
        _('deposit amount'),
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text=_('Security deposit held in escrow for the rental period')
    )

    location = models.CharField(
        _('location'),
        max_length=200,
        blank=True,
        default='',
    )

    logistics_type = models.CharField(
        _('logistics type'),
        max_length=20,
        choices=LOGISTICS_CHOICES,
        default='pickup_only',
    )

    allow_survey = models.BooleanField(
        _('allow survey'),
        default=False,
        help_text=_('Renters may inspect the item before renting')
    )

    is_available = models.BooleanField(
        _('is available'),
        default=True,
    )

    is_blocked = models.BooleanField(
        _('is blocked'),
        default=False,
        help_text=_('Hidden from search by an administrator')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('item')
        verbose_name_plural = _('items')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner'], name='item_owner_idx'),
            models.Index(fields=['category'], name='item_category_idx'),
            models.Index(fields=['price_per_day'], name='item_price_idx'),
            models.Index(fields=['is_available', 'is_blocked'], name='item_listed_idx'),
            models.Index(fields=['created_at'], name='item_created_idx'),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Title and description are not blank
        - Daily price is greater than 0
        - Deposit is not negative
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({
                'title': _('Title cannot be empty.')
            })

        if not self.description or not self.description.strip():
            raise ValidationError({
                'description': _('Description cannot be empty.')
            })

        if self.price_per_day is not None and self.price_per_day <= 0:
            raise ValidationError({
                'price_per_day': _('Price per day must be greater than 0.')
            })

        if self.deposit_amount is not None and self.deposit_amount < 0:
            raise ValidationError({
                'deposit_amount': _('Deposit amount cannot be negative.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_rentable(self):
        return self.is_available and not self.is_blocked

    def block(self):
        """Take the listing down. Existing rentals are not affected."""
        self.is_blocked = True
        self.is_available = False
        self.save()


def item_image_upload_path(instance, filename):
    """
    Generate upload path for item photos.

    Path format: item-images/{item_id}/{filename}
    """
    item_id = instance.item_id or 'temp'
    return f'item-images/{item_id}/{filename}'


class ItemImage(models.Model):
    """Photo attached to an item listing, ordered for display."""

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='images',
    )

    image = models.ImageField(
        _('image'),
        upload_to=item_image_upload_path,
        validators=[validate_image_upload],
        help_text=_('Image file (max 5MB, formats: jpg, png, webp)')
    )

    order = models.PositiveIntegerField(_('order'), default=0)

    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('item image')
        verbose_name_plural = _('item images')
        ordering = ['order', 'uploaded_at']
        indexes = [
            models.Index(fields=['item', 'order'], name='item_image_order_idx'),
        ]

    def __str__(self):
        return f"Image for {self.item.title}"

    def clean(self):
        super().clean()

        if not self.image:
            raise ValidationError({
                'image': _('Image is required.')
            })

        # item_id instead of item to avoid RelatedObjectDoesNotExist
        if not self.item_id:
            raise ValidationError({
                'item': _('Item is required.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


# ============================================================================
# Escrow ledger
# ============================================================================

class EscrowLedgerManager(models.Manager):
    """Posting API for the append-only escrow ledger."""

    def post(self, user_id, amount, entry_type, idempotency_key, rental=None, memo='', created_by=None):
        """
        Append a ledger entry and move the user's cached balance with it.

        Locks the user row, rejects any posting that would take the balance
        below zero, and treats a repeated idempotency key as a replay.

        Returns:
            tuple: (EscrowEntry, created: bool)

        Raises:
            ValidationError: If the amount is zero or the balance would go negative
        """
        amount = Decimal(amount).quantize(CENTS)
        if amount == 0:
            raise ValidationError(_('Ledger entries must move a non-zero amount.'))

        with transaction.atomic():
            user = User.objects.select_for_update().get(pk=user_id)

            existing = self.filter(user_id=user_id, idempotency_key=idempotency_key).first()
            if existing is not None:
                return existing, False

            new_balance = user.escrow_balance + amount
            if new_balance < 0:
                raise ValidationError(
                    _('Insufficient escrow balance. Available: %(balance)s, required: %(required)s.') % {
                        'balance': user.escrow_balance,
                        'required': -amount,
                    },
                    code='insufficient_balance'
                )

            entry = self.create(
                user_id=user_id,
                rental=rental,
                entry_type=entry_type,
                amount=amount,
                balance_after=new_balance,
                idempotency_key=idempotency_key,
                memo=memo,
                created_by=created_by,
            )
            User.objects.filter(pk=user_id).update(escrow_balance=new_balance)

        logger.info(
            f"Escrow entry posted. Entry ID: {entry.id}, User ID: {user_id}, "
            f"Type: {entry_type}, Amount: {amount}, Balance: {new_balance}, "
            f"Rental ID: {rental.id if rental else None}"
        )
        return entry, True

    def top_up(self, user, amount, idempotency_key=None, created_by=None):
        """
        Credit a user's escrow balance.

        Amount must be between ESCROW_MIN_TOP_UP and ESCROW_MAX_TOP_UP. A
        replayed key returns the original entry; reusing a key with a
        different amount is rejected.
        """
        amount = Decimal(amount).quantize(CENTS)
        if amount < settings.ESCROW_MIN_TOP_UP:
            raise ValidationError(
                _('Minimum top-up amount is ₱%(minimum)s.') % {'minimum': settings.ESCROW_MIN_TOP_UP},
                code='below_minimum'
            )
        if amount > settings.ESCROW_MAX_TOP_UP:
            raise ValidationError(
                _('Maximum top-up amount is ₱%(maximum)s.') % {'maximum': settings.ESCROW_MAX_TOP_UP},
                code='above_maximum'
            )

        key = f'topup:{idempotency_key}' if idempotency_key else f'topup:{uuid.uuid4().hex}'
        entry, created = self.post(
            user_id=user.pk,
            amount=amount,
            entry_type='top_up',
            idempotency_key=key,
            memo='Escrow top-up',
            created_by=created_by or user,
        )
        if not created and entry.amount != amount:
            raise ValidationError(
                _('This idempotency key was already used for a different amount.'),
                code='idempotency_conflict'
            )
        return entry, created

    def balance_for(self, user_id):
        total = self.filter(user_id=user_id).aggregate(total=models.Sum('amount'))['total']
        return (total or Decimal('0.00')).quantize(CENTS)


class EscrowEntry(models.Model):
    """
    Append-only escrow ledger entry.

    The signed amounts of a user's entries always add up to the user's
    escrow_balance, and balance_after records the running balance.
    """

    ENTRY_TYPE_CHOICES = [
        ('top_up', 'Top-up'),
        ('deposit_hold', 'Deposit Hold'),
        ('deposit_return', 'Deposit Return'),
        ('deposit_forfeit', 'Deposit Forfeit'),
        ('payout', 'Payout'),
        ('refund', 'Refund'),
    ]

    user = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='escrow_entries',
    )

    rental = models.ForeignKey(
        'Rental',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='escrow_entries',
    )

    entry_type = models.CharField(
        _('entry type'),
        max_length=20,
        choices=ENTRY_TYPE_CHOICES,
    )

    amount = models.DecimalField(
        _('amount'),
        max_digits=12,
        decimal_places=2,
        help_text=_('Signed amount; negative values debit the balance')
    )

    balance_after = models.DecimalField(
        _('balance after'),
        max_digits=12,
        decimal_places=2,
    )

    idempotency_key = models.CharField(
        _('idempotency key'),
        max_length=100,
    )

    memo = models.CharField(_('memo'), max_length=255, blank=True, default='')

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    objects = EscrowLedgerManager()

    class Meta:
        verbose_name = _('escrow entry')
        verbose_name_plural = _('escrow entries')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='escrow_user_created_idx'),
            models.Index(fields=['entry_type'], name='escrow_entry_type_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'idempotency_key'],
                name='unique_escrow_entry_key',
            ),
            models.CheckConstraint(
                condition=models.Q(balance_after__gte=0),
                name='escrow_entry_balance_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.get_entry_type_display()} {self.amount} for {self.user}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Escrow ledger entries cannot be modified.'))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_('Escrow ledger entries cannot be deleted.'))


# ============================================================================
# Rentals
# ============================================================================

def rental_proof_upload_path(instance, filename):
    rental_id = instance.id if instance.id else 'temp'
    return f'delivery-proofs/{rental_id}/{filename}'


def payment_proof_upload_path(instance, filename):
    rental_id = instance.id if instance.id else 'temp'
    return f'payment-proofs/{rental_id}/{filename}'


class Rental(models.Model):
    """
    Rental of an item by a renter, with an escrow-backed lifecycle.

    Status transitions are restricted to TRANSITIONS and escrow transitions
    to ESCROW_TRANSITIONS. Every money movement is posted to the escrow
    ledger in the same transaction as the status change.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rider_pickup', 'Rider Pickup'),
        ('in_possession', 'In Possession'),
        ('return_initiated', 'Return Initiated'),
        ('rider_return', 'Rider Return'),
        ('completed', 'Completed'),
        ('disputed', 'Disputed'),
        ('declined', 'Declined'),
        ('cancelled', 'Cancelled'),
    ]

    TRANSITIONS = {
        'pending': ['approved', 'declined', 'cancelled'],
        'approved': ['rider_pickup', 'in_possession', 'cancelled'],
        'rider_pickup': ['in_possession'],
        'in_possession': ['return_initiated', 'disputed'],
        'return_initiated': ['rider_return', 'completed', 'disputed'],
        'rider_return': ['completed', 'disputed'],
        'disputed': ['completed', 'cancelled'],
        'completed': [],
        'declined': [],
        'cancelled': [],
    }

    TERMINAL_STATUSES = ['completed', 'declined', 'cancelled']
    ACTIVE_STATUSES = [
        'pending', 'approved', 'rider_pickup', 'in_possession',
        'return_initiated', 'rider_return', 'disputed',
    ]
    DISPUTABLE_STATUSES = ['in_possession', 'return_initiated', 'rider_return']

    PAYMENT_STATUS_CHOICES = [
        ('unpaid', 'Unpaid'),
        ('review', 'Under Review'),
        ('paid', 'Paid'),
    ]

    ESCROW_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('held', 'Held'),
        ('released', 'Released'),
        ('disputed', 'Disputed'),
        ('refunded', 'Refunded'),
    ]

    ESCROW_TRANSITIONS = {
        'pending': ['held', 'refunded'],
        'held': ['released', 'disputed', 'refunded'],
        'disputed': ['released', 'refunded'],
        'released': [],
        'refunded': [],
    }

    DELIVERY_METHOD_CHOICES = [
        ('pickup', 'Pickup'),
        ('meetup', 'Meetup'),
        ('delivery', 'Delivery'),
    ]

    RESOLUTION_CHOICES = [
        ('refund', 'Refund Renter'),
        ('release_to_owner', 'Release to Owner'),
    ]

    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='rentals',
    )

    renter = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='rentals_as_renter',
    )

    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='rentals_as_owner',
        help_text=_('Item owner at the time the rental was requested')
    )

    rider = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='delivery_jobs',
    )

    start_date = models.DateField(_('start date'))

    end_date = models.DateField(_('end date'))

    days = models.PositiveIntegerField(_('days'), default=1)

    rental_fee = models.DecimalField(
        _('rental fee'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Daily price multiplied by the number of days')
    )

    platform_fee = models.DecimalField(
        _('platform fee'),
        max_digits=10,
        decimal_places=2,
    )

    total_price = models.DecimalField(
        _('total price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Rental fee plus platform fee')
    )

    deposit_amount = models.DecimalField(
        _('deposit amount'),
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
    )

    delivery_method = models.CharField(
        _('delivery method'),
        max_length=10,
        choices=DELIVERY_METHOD_CHOICES,
        default='pickup',
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
    )

    payment_status = models.CharField(
        _('payment status'),
        max_length=10,
        choices=PAYMENT_STATUS_CHOICES,
        default='unpaid',
    )

    payment_proof = models.ImageField(
        _('payment proof'),
        upload_to=payment_proof_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_upload],
    )

    escrow_status = models.CharField(
        _('escrow status'),
        max_length=10,
        choices=ESCROW_STATUS_CHOICES,
        default='pending',
    )

    pickup_proof = models.ImageField(
        _('pickup proof'),
        upload_to=rental_proof_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_upload],
    )

    return_proof = models.ImageField(
        _('return proof'),
        upload_to=rental_proof_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_upload],
    )

    rider_name = models.CharField(_('rider name'), max_length=150, blank=True, default='')

    rider_phone = models.CharField(_('rider phone'), max_length=20, blank=True, default='')

    dispute_reason = models.TextField(_('dispute reason'), blank=True, default='')

    disputed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputes_filed',
    )

    condition_rating = models.PositiveSmallIntegerField(
        _('condition rating'),
        null=True,
        blank=True,
        validators=[
            MinValueValidator(1, message=_('Condition rating must be at least 1.')),
            MaxValueValidator(5, message=_('Condition rating must be at most 5.'))
        ],
        help_text=_('Owner rating of the returned item, 1 to 5')
    )

    resolution = models.CharField(
        _('resolution'),
        max_length=20,
        choices=RESOLUTION_CHOICES,
        blank=True,
        default='',
    )

    resolved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputes_resolved',
    )

    resolved_at = models.DateTimeField(_('resolved at'), null=True, blank=True)

    idempotency_key = models.CharField(
        _('idempotency key'),
        max_length=100,
        blank=True,
        default='',
        help_text=_('Client token that makes rental creation safe to retry')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('rental')
        verbose_name_plural = _('rentals')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['item', 'status'], name='rental_item_status_idx'),
            models.Index(fields=['renter'], name='rental_renter_idx'),
            models.Index(fields=['owner'], name='rental_owner_idx'),
            models.Index(fields=['status'], name='rental_status_idx'),
            models.Index(fields=['escrow_status'], name='rental_escrow_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['renter', 'idempotency_key'],
                condition=~models.Q(idempotency_key=''),
                name='unique_rental_idempotency_key',
            ),
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F('start_date')),
                name='rental_end_not_before_start',
            ),
        ]

    def __str__(self):
        return f"Rental #{self.pk} of {self.item.title} by {self.renter.email}"

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    @staticmethod
    def rental_days(start_date, end_date):
        """Number of billable days, never less than one."""
        return max((end_date - start_date).days, 1)

    @classmethod
    def quote(cls, item, start_date, end_date):
        """
        Price a rental of item between two dates.

        Returns:
            dict: days, rental_fee, platform_fee, total_price, deposit_amount
        """
        days = cls.rental_days(start_date, end_date)
        rental_fee = (item.price_per_day * days).quantize(CENTS)
        platform_fee = Decimal(settings.RENTAL_PLATFORM_FEE).quantize(CENTS)
        return {
            'days': days,
            'rental_fee': rental_fee,
            'platform_fee': platform_fee,
            'total_price': rental_fee + platform_fee,
            'deposit_amount': item.deposit_amount,
        }

    @classmethod
    def overlapping(cls, item, start_date, end_date):
        """Active rentals of item whose date range intersects the given one."""
        return cls.objects.filter(
            item=item,
            status__in=cls.ACTIVE_STATUSES,
            start_date__lte=end_date,
            end_date__gte=start_date,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self):
        """
        Validate model fields and state transitions.

        Ensures:
        - Renter is not the item owner
        - End date is not before start date
        - New rentals start today or later, on a rentable item, without
          overlapping another active rental of the same item
        - Status and escrow changes follow TRANSITIONS and ESCROW_TRANSITIONS

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if self.renter_id and self.owner_id and self.renter_id == self.owner_id:
            raise ValidationError({
                'renter': _('You cannot rent your own item.')
            })

        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({
                'end_date': _('End date cannot be before start date.')
            })

        if self.pk is None:
            if self.start_date and self.start_date < timezone.localdate():
                raise ValidationError({
                    'start_date': _('Start date cannot be in the past.')
                })

            if self.item_id and not self.item.is_rentable():
                raise ValidationError({
                    'item': _('This item is not available for rent.')
                })

            if self.item_id and self.start_date and self.end_date:
                if Rental.overlapping(self.item, self.start_date, self.end_date).exists():
                    raise ValidationError({
                        'start_date': _('This item is already rented for the selected dates.')
                    })
            return

        try:
            old_instance = Rental.objects.get(pk=self.pk)
        except Rental.DoesNotExist:
            return

        if old_instance.status != self.status:
            if self.status not in self.TRANSITIONS.get(old_instance.status, []):
                raise ValidationError({
                    'status': _(
                        f'Invalid status transition from {old_instance.status} to {self.status}.'
                    )
                })

        if old_instance.escrow_status != self.escrow_status:
            if self.escrow_status not in self.ESCROW_TRANSITIONS.get(old_instance.escrow_status, []):
                raise ValidationError({
                    'escrow_status': _(
                        f'Invalid escrow status transition from {old_instance.escrow_status} '
                        f'to {self.escrow_status}.'
                    )
                })

        if self.status == 'approved' and self.payment_status != 'paid':
            raise ValidationError({
                'payment_status': _('A rental cannot be approved before payment is confirmed.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status):
        """
        Check whether the rental may move to new_status.

        Returns:
            tuple: (is_valid: bool, error_message: str or None)
        """
        if self.status == new_status:
            return True, None
        if self.status in self.TERMINAL_STATUSES:
            return False, f'Cannot modify a {self.get_status_display().lower()} rental.'
        if new_status not in self.TRANSITIONS.get(self.status, []):
            return False, f'Invalid status transition from {self.status} to {new_status}.'
        return True, None

    def _require_transition(self, new_status):
        is_valid, error_message = self.can_transition_to(new_status)
        if not is_valid or self.status == new_status:
            raise ValidationError(
                error_message or f'Rental is already {self.get_status_display().lower()}.'
            )

    def ledger_key(self, entry_type):
        return f'rental:{self.pk}:{entry_type}'

    def is_participant(self, user):
        return user.pk in (self.renter_id, self.owner_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit_payment_proof(self, proof):
        """Attach the renter's payment receipt and queue it for the owner."""
        if self.status != 'pending':
            raise ValidationError(_('Payment proof can only be submitted for pending rentals.'))
        if self.payment_status == 'paid':
            raise ValidationError(_('This rental has already been paid.'))
        self.payment_proof = proof
        self.payment_status = 'review'
        self.save()

    def confirm_payment(self, actor=None):
        """
        Confirm the renter's payment, approve the rental and hold the deposit.

        Returns:
            bool: False when the payment had already been confirmed
        """
        if self.status == 'approved' and self.payment_status == 'paid':
            return False
        if self.status != 'pending':
            raise ValidationError(
                f'Cannot confirm payment for a {self.get_status_display().lower()} rental.'
            )
        if self.payment_status != 'review':
            raise ValidationError(_('No payment proof has been submitted for this rental.'))

        with transaction.atomic():
            if self.deposit_amount > 0:
                EscrowEntry.objects.post(
                    user_id=self.renter_id,
                    amount=-self.deposit_amount,
                    entry_type='deposit_hold',
                    idempotency_key=self.ledger_key('deposit_hold'),
                    rental=self,
                    memo=f'Security deposit held for rental #{self.pk}',
                    created_by=actor,
                )
            self.payment_status = 'paid'
            self.status = 'approved'
            self.escrow_status = 'held'
            self.save()
        return True

    def decline(self):
        """Owner rejects a pending request. Nothing was held, so nothing moves."""
        self._require_transition('declined')
        self.status = 'declined'
        self.escrow_status = 'refunded'
        self.save()

    def cancel(self, actor=None):
        """Renter withdraws before handover; paid amounts are credited back."""
        self._require_transition('cancelled')
        if self.status not in ('pending', 'approved'):
            raise ValidationError(_('Only pending or approved rentals can be cancelled.'))

        with transaction.atomic():
            if self.escrow_status == 'held':
                lock_users(self.renter_id)
                self._refund_renter(actor, 'Rental cancelled')
            self.status = 'cancelled'
            self.escrow_status = 'refunded'
            self.save()

    def handover(self, proof=None):
        """Owner hands the item over in person (pickup or meetup)."""
        if self.delivery_method == 'delivery':
            raise ValidationError(_('Delivery rentals are handed over by a rider.'))
        self._require_transition('in_possession')
        if self.status != 'approved':
            raise ValidationError(_('Only approved rentals can be handed over.'))
        if proof:
            self.pickup_proof = proof
        self.status = 'in_possession'
        self.save()

    def accept_delivery(self, rider):
        """Assign a rider to an approved delivery rental."""
        if not rider.is_rider:
            raise ValidationError(_('Only rider accounts can accept delivery jobs.'))
        if self.is_participant(rider):
            raise ValidationError(_('You cannot deliver your own rental.'))
        if self.delivery_method != 'delivery':
            raise ValidationError(_('This rental does not use delivery.'))
        if self.status != 'approved' or self.rider_id is not None:
            raise ValidationError(_('This delivery job is no longer available.'))

        self.rider = rider
        self.rider_name = rider.display_name
        self.rider_phone = rider.phone_number
        self.status = 'rider_pickup'
        self.save()

    def update_delivery(self, rider, proof):
        """
        Record a rider's proof photo and advance the delivery leg.

        rider_pickup -> in_possession stores the pickup proof,
        return_initiated -> rider_return stores the return proof.
        """
        if self.rider_id != rider.pk:
            raise ValidationError(_('Only the assigned rider can update this delivery.'))
        if not proof:
            raise ValidationError(_('A proof photo is required.'))

        if self.status == 'rider_pickup':
            self.pickup_proof = proof
            self.status = 'in_possession'
        elif self.status == 'return_initiated':
            self.return_proof = proof
            self.status = 'rider_return'
        else:
            raise ValidationError(
                f'No delivery step is pending for a {self.get_status_display().lower()} rental.'
            )
        self.save()

    def initiate_return(self):
        self._require_transition('return_initiated')
        self.status = 'return_initiated'
        self.save()

    def confirm_return(self, condition_rating, damaged=False, reason='', actor=None, proof=None):
        """
        Owner inspects the returned item.

        An undamaged return completes the rental: the owner is paid the
        rental fee and the renter's deposit is returned. A damaged return
        opens a dispute and leaves the escrow frozen for an administrator.
        """
        if self.status not in ('return_initiated', 'rider_return'):
            raise ValidationError(_('The item has not been returned yet.'))

        self.condition_rating = condition_rating
        if proof:
            self.return_proof = proof

        if damaged:
            self.status = 'disputed'
            self.escrow_status = 'disputed'
            self.disputed_by = actor
            self.dispute_reason = (
                reason.strip() if reason and reason.strip()
                else f'Item returned damaged (condition {condition_rating}/5).'
            )
            self.save()
            return

        with transaction.atomic():
            lock_users(self.owner_id, self.renter_id)
            self._pay_owner(actor)
            self._return_deposit(actor, 'Deposit returned after rental')
            self.status = 'completed'
            self.escrow_status = 'released'
            self.save()

    def file_dispute(self, user, reason):
        """Renter or owner freezes the escrow pending admin review."""
        if not reason or not reason.strip():
            raise ValidationError(_('A reason is required to file a dispute.'))
        if self.status not in self.DISPUTABLE_STATUSES:
            raise ValidationError(
                f'Cannot dispute a {self.get_status_display().lower()} rental.'
            )
        self.status = 'disputed'
        self.escrow_status = 'disputed'
        self.dispute_reason = reason.strip()
        self.disputed_by = user
        self.save()

    def resolve_dispute(self, decision, staff):
        """
        Settle a dispute exactly once.

        refund: renter is credited the total price and the deposit.
        release_to_owner: owner is paid the rental fee and keeps the deposit.
        """
        if decision not in dict(self.RESOLUTION_CHOICES):
            raise ValidationError(_('Decision must be "refund" or "release_to_owner".'))
        if self.resolved_at is not None:
            raise ValidationError(_('This dispute has already been resolved.'))
        if self.status != 'disputed':
            raise ValidationError(_('Only disputed rentals can be resolved.'))

        with transaction.atomic():
            # Re-check against the locked row; this instance may be stale
            current = Rental.objects.select_for_update().only('status', 'resolved_at').get(pk=self.pk)
            if current.resolved_at is not None or current.status != 'disputed':
                raise ValidationError(_('This dispute has already been resolved.'))

            lock_users(self.owner_id, self.renter_id)
            if decision == 'refund':
                self._refund_renter(staff, 'Dispute resolved in renter\'s favour')
                self.status = 'cancelled'
                self.escrow_status = 'refunded'
            else:
                self._pay_owner(staff)
                if self.deposit_amount > 0:
                    EscrowEntry.objects.post(
                        user_id=self.owner_id,
                        amount=self.deposit_amount,
                        entry_type='deposit_forfeit',
                        idempotency_key=self.ledger_key('deposit_forfeit'),
                        rental=self,
                        memo=f'Deposit forfeited to owner for rental #{self.pk}',
                        created_by=staff,
                    )
                self.status = 'completed'
                self.escrow_status = 'released'
            self.resolution = decision
            self.resolved_by = staff
            self.resolved_at = timezone.now()
            self.save()

    def _pay_owner(self, actor):
        if self.rental_fee > 0:
            EscrowEntry.objects.post(
                user_id=self.owner_id,
                amount=self.rental_fee,
                entry_type='payout',
                idempotency_key=self.ledger_key('payout'),
                rental=self,
                memo=f'Payout for rental #{self.pk}',
                created_by=actor,
            )

    def _return_deposit(self, actor, memo):
        if self.deposit_amount > 0:
            EscrowEntry.objects.post(
                user_id=self.renter_id,
                amount=self.deposit_amount,
                entry_type='deposit_return',
                idempotency_key=self.ledger_key('deposit_return'),
                rental=self,
                memo=f'{memo} #{self.pk}',
                created_by=actor,
            )

    def _refund_renter(self, actor, memo):
        if self.payment_status == 'paid' and self.total_price > 0:
            EscrowEntry.objects.post(
                user_id=self.renter_id,
                amount=self.total_price,
                entry_type='refund',
                idempotency_key=self.ledger_key('refund'),
                rental=self,
                memo=f'{memo} #{self.pk}',
                created_by=actor,
            )
        self._return_deposit(actor, memo)


# ============================================================================
# Chat
# ============================================================================

class Conversation(models.Model):
    """Chat thread between users, optionally about a specific item."""

    participants = models.ManyToManyField(
        User,
        related_name='conversations',
    )

    item = models.ForeignKey(
        Item,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='conversations',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('conversation')
        verbose_name_plural = _('conversations')
        ordering = ['-updated_at']

    def __str__(self):
        return f"Conversation #{self.pk}"

    @classmethod
    def between(cls, user, other, item=None):
        """
        Return the conversation between two users about item, creating it if needed.

        Returns:
            tuple: (Conversation, created: bool)
        """
        existing = (
            cls.objects.filter(participants=user)
            .filter(participants=other)
            .filter(item=item)
            .first()
        )
        if existing is not None:
            return existing, False

        with transaction.atomic():
            conversation = cls.objects.create(item=item)
            conversation.participants.add(user, other)
        return conversation, True

    def has_participant(self, user):
        return self.participants.filter(pk=user.pk).exists()

    def last_message(self):
        return self.messages.order_by('-created_at', '-id').first()

    def unread_count_for(self, user):
        return self.messages.filter(is_read=False).exclude(sender=user).count()

    def mark_read_for(self, user):
        return self.messages.filter(is_read=False).exclude(sender=user).update(is_read=True)


class Message(models.Model):
    """Single chat message within a conversation."""

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
    )

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='messages_sent',
    )

    content = models.TextField(_('content'), max_length=2000)

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['conversation', 'created_at'], name='message_conv_created_idx'),
        ]

    def __str__(self):
        return f"Message from {self.sender} in conversation #{self.conversation_id}"

    def clean(self):
        super().clean()

        if not self.content or not self.content.strip():
            raise ValidationError({
                'content': _('Message cannot be empty.')
            })

    def save(self, *args, **kwargs):
        creating = self.pk is None
        self.full_clean()
        super().save(*args, **kwargs)
        if creating:
            Conversation.objects.filter(pk=self.conversation_id).update(updated_at=timezone.now())


# ============================================================================
# Notifications
# ============================================================================

class Notification(models.Model):
    """In-app notification for a single user."""

    TYPE_CHOICES = [
        ('rental_request', 'Rental Request'),
        ('system', 'System'),
        ('message', 'Message'),
        ('success', 'Success'),
        ('warning', 'Warning'),
        ('info', 'Info'),
    ]

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications',
    )

    type = models.CharField(
        _('type'),
        max_length=20,
        choices=TYPE_CHOICES,
        default='info',
    )

    title = models.CharField(_('title'), max_length=200)

    message = models.TextField(_('message'), blank=True, default='')

    link = models.CharField(_('link'), max_length=255, blank=True, default='')

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
        ]

    def __str__(self):
        return f"{self.title} for {self.user}"

    @classmethod
    def notify(cls, user, notification_type, title, message='', link=''):
        return cls.objects.create(user=user, type=notification_type, title=title, message=message, link=link)

    def relative_time(self, now=None):
        """Age of the notification as 'Just now', '5m ago', '3h ago' or '2d ago'."""
        now = now or timezone.now()
        minutes = int((now - self.created_at).total_seconds() // 60)
        hours = minutes // 60
        days = hours // 24

        if minutes < 1:
            return 'Just now'
        if minutes < 60:
            return f'{minutes}m ago'
        if hours < 24:
            return f'{hours}h ago'
        return f'{days}d ago'


# ============================================================================
# Reviews
# ============================================================================

class Review(models.Model):
    """
    Review left by one party of a completed rental for the other party.

    Fields:
    - rental: Completed rental being reviewed
    - reviewer: Renter or owner writing the review
    - reviewee: The counter-party
    - rating: Integer rating from 1 to 5
    - comment: Written feedback
    """

    rental = models.ForeignKey(
        Rental,
        on_delete=models.CASCADE,
        related_name='reviews',
    )

    reviewer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_given',
    )

    reviewee = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='reviews_received',
    )

    rating = models.PositiveSmallIntegerField(
        _('rating'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1.')),
            MaxValueValidator(5, message=_('Rating must be at most 5.'))
        ],
        help_text=_('Rating from 1 to 5 stars')
    )

    comment = models.TextField(_('comment'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('review')
        verbose_name_plural = _('reviews')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['reviewee'], name='review_reviewee_idx'),
            models.Index(fields=['rating'], name='review_rating_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['rental', 'reviewer'],
                name='unique_review_per_rental_reviewer',
            ),
        ]

    def __str__(self):
        return f"Review by {self.reviewer.email} for {self.reviewee.email} - {self.rating}★"

    def _validate_parties(self):
        if self.reviewer_id and self.reviewee_id and self.reviewer_id == self.reviewee_id:
            raise ValidationError({
                'reviewee': _('Reviewer and reviewee cannot be the same user.')
            })

        if not self.rental_id:
            return

        rental = self.rental
        if rental.status != 'completed':
            raise ValidationError({
                'rental': _('Only completed rentals can be reviewed.')
            })

        if self.reviewer_id and self.reviewer_id not in (rental.renter_id, rental.owner_id):
            raise ValidationError({
                'reviewer': _('Reviewer must be the renter or the owner of the rental.')
            })

        if self.reviewer_id and self.reviewee_id:
            expected = rental.owner_id if self.reviewer_id == rental.renter_id else rental.renter_id
            if self.reviewee_id != expected:
                raise ValidationError({
                    'reviewee': _('Reviewee must be the other party of the rental.')
                })

    def clean(self):
        super().clean()
        self._validate_parties()

    def save(self, *args, **kwargs):
        # full_clean is not used so the unique constraint surfaces as IntegrityError
        if not self.pk:
            self._validate_parties()
        super().save(*args, **kwargs)
