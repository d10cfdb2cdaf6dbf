"""
Serializers for authentication, listings, rentals, escrow, chat and reviews.
"""

import re
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import (
    Conversation, EscrowEntry, Item, ItemImage, Message, Notification, Rental, Review
)
from .validators import validate_gcash_number, validate_image_upload, validate_phone_number

User = get_user_model()

MAX_ITEM_IMAGES = 10


def media_url(request, field_file):
    """Absolute URL for a stored file, or None when the field is empty."""
    if not field_file:
        return None
    if request is not None:
        return request.build_absolute_uri(field_file.url)
    return field_file.url


def run_django_validator(validator, value):
    try:
        validator(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(list(e.messages))
    return value


# ============================================================================
# Authentication & profiles
# ============================================================================

class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token pair serializer that takes an email address instead of a username.
    """
    username_field = 'email'


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for account registration.

    Fields:
    - email: Required, unique (case-insensitive)
    - password / confirm_password: Required, must match and pass Django's validators
    - full_name: Required
    - phone_number, location: Optional
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'confirm_password', 'full_name',
                  'phone_number', 'location', 'is_verified', 'created_at']
        read_only_fields = ['id', 'is_verified', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'full_name': {'required': True, 'allow_blank': False},
        }

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with that email already exists.")
        return value

    def validate_full_name(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Full name cannot be empty.")
        return value.strip()

    def validate_phone_number(self, value):
        return run_django_validator(validate_phone_number, value)

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        candidate = User(email=attrs.get('email'), full_name=attrs.get('full_name', ''))
        try:
            validate_password(attrs.get('password'), user=candidate)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'password': list(e.messages)})

        return attrs

    @staticmethod
    def _unique_username(email):
        base = re.sub(r'[^\w.@+-]', '', email.split('@')[0])[:30] or 'user'
        username = base
        suffix = 1
        while User.objects.filter(username=username).exists():
            suffix += 1
            username = f'{base}{suffix}'
        return username

    def create(self, validated_data):
        """
        Create the account with a hashed password.

        Privilege fields are stripped and the username is derived from the
        email because AbstractUser still requires one.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))
        validated_data['is_verified'] = False

        for field in ('is_superuser', 'is_staff', 'is_active', 'groups', 'user_permissions',
                      'escrow_balance', 'rating', 'reviews_count'):
            validated_data.pop(field, None)

        validated_data['username'] = self._unique_username(validated_data['email'])

        with transaction.atomic():
            user = User.objects.create(**validated_data)
        return user


class LoginSerializer(serializers.Serializer):
    """
    Email and password for login.

    Authentication happens in the view so every failure returns the same
    generic error.
    """
    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


class TokenRefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField(
        required=True,
        help_text='Valid refresh token to exchange for new access token'
    )


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Private profile of the authenticated user.

    Includes the escrow balance and payout wallet, which are never exposed
    on public profiles.
    """

    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'full_name',
            'phone_number',
            'location',
            'avatar_url',
            'rating',
            'reviews_count',
            'is_verified',
            'kyc_status',
            'is_shop',
            'is_rider',
            'is_staff',
            'escrow_balance',
            'gcash_number',
            'gcash_name',
            'created_at',
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return media_url(self.context.get('request'), obj.avatar)


class PublicProfileSerializer(serializers.ModelSerializer):
    """Profile fields visible to other users."""

    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'full_name',
            'avatar_url',
            'location',
            'rating',
            'reviews_count',
            'is_verified',
            'is_shop',
            'created_at',
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return media_url(self.context.get('request'), obj.avatar)


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for profile updates (PUT/PATCH).

    Updatable fields: full_name, phone_number, location, avatar,
    gcash_number, gcash_name. Anything else sent by the client is dropped.
    """

    RESTRICTED_FIELDS = [
        'email', 'password', 'is_verified', 'kyc_status', 'is_staff', 'is_superuser',
        'is_active', 'is_rider', 'is_shop', 'username', 'groups', 'user_permissions',
        'escrow_balance', 'rating', 'reviews_count', 'created_at', 'updated_at', 'last_login',
    ]

    class Meta:
        model = User
        fields = ['full_name', 'phone_number', 'location', 'avatar', 'gcash_number', 'gcash_name']
        extra_kwargs = {field: {'required': False} for field in fields}

    def validate_full_name(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Full name cannot be empty.")
        return value.strip()

    def validate_phone_number(self, value):
        return run_django_validator(validate_phone_number, value)

    def validate_gcash_number(self, value):
        return run_django_validator(validate_gcash_number, value)

    def validate_avatar(self, value):
        return run_django_validator(validate_image_upload, value)

    def validate(self, attrs):
        for field in self.RESTRICTED_FIELDS:
            attrs.pop(field, None)
        return attrs

    def update(self, instance, validated_data):
        """Apply changes, replacing the stored avatar file when a new one is uploaded."""
        new_avatar = validated_data.get('avatar')
        if new_avatar and instance.avatar:
            instance.avatar.delete(save=False)

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])
        return instance


class KycSubmissionSerializer(serializers.Serializer):
    document = serializers.ImageField(required=True)

    def validate_document(self, value):
        return run_django_validator(validate_image_upload, value)


class UserVerificationSerializer(serializers.Serializer):
    """Administrator decision on a submitted identity document."""

    decision = serializers.ChoiceField(choices=['approve', 'reject'])


# ============================================================================
# Listings
# ============================================================================

class ItemImageSerializer(serializers.ModelSerializer):
    image = serializers.SerializerMethodField()

    class Meta:
        model = ItemImage
        fields = ['id', 'image', 'order', 'uploaded_at']
        read_only_fields = fields

    def get_image(self, obj):
        return media_url(self.context.get('request'), obj.image)


class ItemOwnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'full_name', 'rating', 'reviews_count', 'is_verified', 'is_shop', 'location']
        read_only_fields = fields


class ItemSerializer(serializers.ModelSerializer):
    """
    Read representation of a listing used by search, detail and "my items".
    """

    owner = ItemOwnerSerializer(read_only=True)
    images = ItemImageSerializer(many=True, read_only=True)
    category_display = serializers.CharField(source='get_category_display', read_only=True)
    condition_display = serializers.CharField(source='get_condition_display', read_only=True)
    logistics_display = serializers.CharField(source='get_logistics_type_display', read_only=True)

    class Meta:
        model = Item
        fields = [
            'id',
            'title',
            'description',
            'category',
            'category_display',
            'condition',
            'condition_display',
            'price_per_day',
            'deposit_amount',
            'location',
            'logistics_type',
            'logistics_display',
            'allow_survey',
            'is_available',
            'is_blocked',
            'owner',
            'images',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class ItemWriteSerializer(serializers.ModelSerializer):
    """
    Create or update a listing.

    Images are optional on create (up to 10) and appended after existing
    photos on update.
    """

    images = serializers.ListField(
        child=serializers.ImageField(),
        write_only=True,
        required=False,
        help_text='Up to 10 image files (JPEG, PNG, WebP, max 5MB each)'
    )

    class Meta:
        model = Item
        fields = [
            'title',
            'description',
            'category',
            'condition',
            'price_per_day',
            'deposit_amount',
            'location',
            'logistics_type',
            'allow_survey',
            'is_available',
            'images',
        ]
        extra_kwargs = {
            'title': {'required': True},
            'description': {'required': True},
            'price_per_day': {'required': True},
        }

    def validate_title(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()

    def validate_description(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Description cannot be empty.")
        return value.strip()

    def validate_price_per_day(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price per day must be greater than 0.")
        return value

    def validate_deposit_amount(self, value):
        if value < 0:
            raise serializers.ValidationError("Deposit amount cannot be negative.")
        return value

    def validate_images(self, value):
        existing = self.instance.images.count() if self.instance else 0
        if existing + len(value) > MAX_ITEM_IMAGES:
            raise serializers.ValidationError(f"A listing can have at most {MAX_ITEM_IMAGES} images.")
        for image in value:
            run_django_validator(validate_image_upload, image)
        return value

    def _save_images(self, item, images):
        start = item.images.count()
        for offset, image in enumerate(images):
            ItemImage.objects.create(item=item, image=image, order=start + offset)

    def create(self, validated_data):
        images = validated_data.pop('images', [])
        with transaction.atomic():
            item = Item.objects.create(**validated_data)
            self._save_images(item, images)
        return item

    def update(self, instance, validated_data):
        images = validated_data.pop('images', [])
        with transaction.atomic():
            for attr, value in validated_data.items():
                setattr(instance, attr, value)
            instance.save()
            self._save_images(instance, images)
        return instance


class ItemSummarySerializer(serializers.ModelSerializer):
    cover_image = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = ['id', 'title', 'price_per_day', 'category', 'logistics_type', 'cover_image']
        read_only_fields = fields

    def get_cover_image(self, obj):
        first = obj.images.first()
        return media_url(self.context.get('request'), first.image) if first else None


# ============================================================================
# Rentals
# ============================================================================

class RentalPartySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'full_name', 'phone_number', 'rating', 'is_verified']
        read_only_fields = fields


class RentalSerializer(serializers.ModelSerializer):
    """Full read representation of a rental for its participants, riders and staff."""

    item = ItemSummarySerializer(read_only=True)
    renter = RentalPartySerializer(read_only=True)
    owner = RentalPartySerializer(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    escrow_status_display = serializers.CharField(source='get_escrow_status_display', read_only=True)
    payment_proof_url = serializers.SerializerMethodField()
    pickup_proof_url = serializers.SerializerMethodField()
    return_proof_url = serializers.SerializerMethodField()

    class Meta:
        model = Rental
        fields = [
            'id',
            'item',
            'renter',
            'owner',
            'rider',
            'rider_name',
            'rider_phone',
            'start_date',
            'end_date',
            'days',
            'rental_fee',
            'platform_fee',
            'total_price',
            'deposit_amount',
            'delivery_method',
            'status',
            'status_display',
            'payment_status',
            'escrow_status',
            'escrow_status_display',
            'payment_proof_url',
            'pickup_proof_url',
            'return_proof_url',
            'dispute_reason',
            'condition_rating',
            'resolution',
            'resolved_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_payment_proof_url(self, obj):
        return media_url(self.context.get('request'), obj.payment_proof)

    def get_pickup_proof_url(self, obj):
        return media_url(self.context.get('request'), obj.pickup_proof)

    def get_return_proof_url(self, obj):
        return media_url(self.context.get('request'), obj.return_proof)


class RentalCreateSerializer(serializers.Serializer):
    """
    Validate a rental request.

    Availability and overlap are re-checked by the view under a row lock on
    the item; this serializer only rejects requests that can never succeed.
    """

    item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.select_related('owner'))
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    delivery_method = serializers.ChoiceField(
        choices=[choice for choice, _ in Rental.DELIVERY_METHOD_CHOICES],
        default='pickup'
    )
    idempotency_key = serializers.CharField(max_length=100, required=False, allow_blank=True)

    def validate_start_date(self, value):
        if value < timezone.localdate():
            raise serializers.ValidationError("Start date cannot be in the past.")
        return value

    def validate(self, attrs):
        request = self.context.get('request')
        item = attrs['item']

        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date.'})

        if request is not None and item.owner_id == request.user.id:
            raise serializers.ValidationError({'item': 'You cannot rent your own item.'})

        if not item.is_rentable():
            raise serializers.ValidationError({'item': 'This item is not available for rent.'})

        if attrs['delivery_method'] == 'delivery' and item.logistics_type == 'pickup_only':
            raise serializers.ValidationError({
                'delivery_method': 'This item is available for pickup only.'
            })

        return attrs


class RentalQuoteSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.all())
    start_date = serializers.DateField()
    end_date = serializers.DateField()

    def validate(self, attrs):
        if attrs['end_date'] < attrs['start_date']:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date.'})
        return attrs


class ProofUploadSerializer(serializers.Serializer):
    proof = serializers.ImageField(required=True)

    def validate_proof(self, value):
        return run_django_validator(validate_image_upload, value)


class OptionalProofSerializer(serializers.Serializer):
    proof = serializers.ImageField(required=False)

    def validate_proof(self, value):
        return run_django_validator(validate_image_upload, value)


class ConfirmReturnSerializer(serializers.Serializer):
    condition_rating = serializers.IntegerField(min_value=1, max_value=5)
    damaged = serializers.BooleanField(default=False)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    proof = serializers.ImageField(required=False)

    def validate_proof(self, value):
        return run_django_validator(validate_image_upload, value)


class DisputeSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)

    def validate_reason(self, value):
        if not value.strip():
            raise serializers.ValidationError("A reason is required to file a dispute.")
        return value.strip()


class DisputeResolutionSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=[choice for choice, _ in Rental.RESOLUTION_CHOICES])


# ============================================================================
# Escrow
# ============================================================================

class EscrowEntrySerializer(serializers.ModelSerializer):
    entry_type_display = serializers.CharField(source='get_entry_type_display', read_only=True)

    class Meta:
        model = EscrowEntry
        fields = ['id', 'entry_type', 'entry_type_display', 'amount', 'balance_after',
                  'rental', 'memo', 'created_at']
        read_only_fields = fields


class TopUpSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, value):
        if value < settings.ESCROW_MIN_TOP_UP:
            raise serializers.ValidationError(
                f"Minimum top-up amount is ₱{settings.ESCROW_MIN_TOP_UP}."
            )
        if value > settings.ESCROW_MAX_TOP_UP:
            raise serializers.ValidationError(
                f"Maximum top-up amount is ₱{settings.ESCROW_MAX_TOP_UP}."
            )
        return Decimal(value)


# ============================================================================
# Chat & notifications
# ============================================================================

class ChatUserSerializer(serializers.ModelSerializer):
    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'full_name', 'avatar_url', 'is_verified', 'is_shop']
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return media_url(self.context.get('request'), obj.avatar)


class MessageSerializer(serializers.ModelSerializer):
    content = serializers.CharField(max_length=2000)

    class Meta:
        model = Message
        fields = ['id', 'conversation', 'sender', 'content', 'is_read', 'created_at']
        read_only_fields = ['id', 'conversation', 'sender', 'is_read', 'created_at']

    def validate_content(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Message cannot be empty.")
        return value.strip()


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation list entry from the requesting user's point of view.

    last_message falls back to "No messages yet" for new conversations.
    """

    participants = ChatUserSerializer(many=True, read_only=True)
    item = ItemSummarySerializer(read_only=True)
    last_message = serializers.SerializerMethodField()
    last_message_at = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = ['id', 'participants', 'item', 'last_message', 'last_message_at',
                  'unread_count', 'updated_at']
        read_only_fields = fields

    def get_last_message(self, obj):
        message = obj.last_message()
        return message.content if message else 'No messages yet'

    def get_last_message_at(self, obj):
        message = obj.last_message()
        return message.created_at if message else None

    def get_unread_count(self, obj):
        request = self.context.get('request')
        if request is None:
            return 0
        return obj.unread_count_for(request.user)


class ConversationCreateSerializer(serializers.Serializer):
    participant_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True))
    item_id = serializers.PrimaryKeyRelatedField(
        queryset=Item.objects.all(), required=False, allow_null=True
    )

    def validate_participant_id(self, value):
        request = self.context.get('request')
        if request is not None and value.pk == request.user.pk:
            raise serializers.ValidationError("You cannot start a conversation with yourself.")
        return value


class NotificationSerializer(serializers.ModelSerializer):
    time = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'link', 'is_read', 'time', 'created_at']
        read_only_fields = fields

    def get_time(self, obj):
        return obj.relative_time()


# ============================================================================
# Reviews
# ============================================================================

class ReviewSerializer(serializers.ModelSerializer):
    reviewer = ChatUserSerializer(read_only=True)

    class Meta:
        model = Review
        fields = ['id', 'rental', 'reviewer', 'reviewee', 'rating', 'comment', 'created_at']
        read_only_fields = fields


class ReviewCreateSerializer(serializers.ModelSerializer):
    """
    Create a review for a completed rental.

    The reviewee is derived from the rental: renters review owners and
    owners review renters.
    """

    rental = serializers.PrimaryKeyRelatedField(queryset=Rental.objects.all())

    class Meta:
        model = Review
        fields = ['id', 'rental', 'rating', 'comment', 'reviewee', 'created_at']
        read_only_fields = ['id', 'reviewee', 'created_at']

    def validate_rating(self, value):
        if value < 1 or value > 5:
            raise serializers.ValidationError("Rating must be between 1 and 5.")
        return value

    def validate(self, attrs):
        user = self.context['request'].user
        rental = attrs['rental']

        if not rental.is_participant(user):
            raise serializers.ValidationError({'rental': 'You can only review rentals you took part in.'})

        if rental.status != 'completed':
            raise serializers.ValidationError({'rental': 'Only completed rentals can be reviewed.'})

        if Review.objects.filter(rental=rental, reviewer=user).exists():
            raise serializers.ValidationError({'rental': 'You have already reviewed this rental.'})

        attrs['reviewer'] = user
        attrs['reviewee_id'] = rental.owner_id if user.pk == rental.renter_id else rental.renter_id
        return attrs


class DescriptionRequestSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    category = serializers.CharField(max_length=50)
    condition = serializers.CharField(max_length=50, default='Good')
    key_features = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
