"""
Django admin configuration for the marketplace models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import (
    Conversation, EscrowEntry, Item, ItemImage, Message, Notification, Rental, Review, User
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Extends Django's UserAdmin with profile, verification and wallet fields.

    The escrow balance is read-only here; it only moves through ledger entries.
    """

    list_display = [
        'email',
        'full_name',
        'is_verified',
        'kyc_status',
        'is_shop',
        'is_rider',
        'escrow_balance',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_verified',
        'kyc_status',
        'is_shop',
        'is_rider',
        'is_staff',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'full_name',
        'phone_number',
        'location',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': ('full_name', 'email', 'phone_number', 'location', 'avatar')
        }),
        (_('Verification'), {
            'fields': ('is_verified', 'kyc_status', 'kyc_document', 'kyc_submitted_at')
        }),
        (_('Marketplace Roles'), {
            'fields': ('is_shop', 'is_rider', 'rating', 'reviews_count')
        }),
        (_('Wallet'), {
            'fields': ('escrow_balance', 'gcash_number', 'gcash_name')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'full_name',
                'password1',
                'password2',
            ),
        }),
    )

    readonly_fields = [
        'escrow_balance', 'rating', 'reviews_count', 'kyc_submitted_at',
        'created_at', 'updated_at', 'last_login', 'date_joined',
    ]

    date_hierarchy = 'created_at'

    list_per_page = 25

    # Maintained by the escrow ledger and the review signals
    derived_fields = ('escrow_balance', 'rating', 'reviews_count')

    def save_model(self, request, obj, form, change):
        """Save edits without writing back derived values loaded with the form."""
        if not change:
            super().save_model(request, obj, form, change)
            return

        update_fields = [
            field.name for field in obj._meta.concrete_fields
            if not field.primary_key and field.name not in self.derived_fields
        ]
        obj.save(update_fields=update_fields)


class ItemImageInline(admin.TabularInline):
    model = ItemImage
    extra = 1
    fields = ['image', 'order', 'uploaded_at']
    readonly_fields = ['uploaded_at']
    ordering = ['order']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):

    list_display = [
        'title',
        'owner',
        'category',
        'price_per_day',
        'deposit_amount',
        'logistics_type',
        'is_available',
        'is_blocked',
        'created_at',
    ]

    list_filter = [
        'category',
        'condition',
        'logistics_type',
        'is_available',
        'is_blocked',
        'created_at',
    ]

    search_fields = [
        'title',
        'description',
        'location',
        'owner__email',
        'owner__full_name',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [ItemImageInline]

    actions = ['block_items']

    fieldsets = (
        (None, {
            'fields': ('owner', 'title', 'description', 'category', 'condition', 'location')
        }),
        (_('Pricing'), {
            'fields': ('price_per_day', 'deposit_amount')
        }),
        (_('Logistics & Visibility'), {
            'fields': ('logistics_type', 'allow_survey', 'is_available', 'is_blocked')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    @admin.action(description=_('Block selected items'))
    def block_items(self, request, queryset):
        for item in queryset:
            item.block()
        self.message_user(request, _('%(count)d item(s) blocked.') % {'count': queryset.count()})


@admin.register(Rental)
class RentalAdmin(admin.ModelAdmin):
    """
    Rentals are inspected here; status and money changes go through the API
    so the ledger stays consistent.
    """

    list_display = [
        'id',
        'item',
        'renter',
        'owner',
        'start_date',
        'end_date',
        'total_price',
        'status',
        'payment_status',
        'escrow_status',
        'created_at',
    ]

    list_filter = [
        'status',
        'payment_status',
        'escrow_status',
        'delivery_method',
        'created_at',
    ]

    search_fields = [
        'item__title',
        'renter__email',
        'owner__email',
        'idempotency_key',
    ]

    readonly_fields = [
        'status', 'payment_status', 'escrow_status', 'days', 'rental_fee', 'platform_fee',
        'total_price', 'deposit_amount', 'resolution', 'resolved_by', 'resolved_at',
        'created_at', 'updated_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('item', 'renter', 'owner', 'start_date', 'end_date', 'delivery_method')
        }),
        (_('Pricing'), {
            'fields': ('days', 'rental_fee', 'platform_fee', 'total_price', 'deposit_amount')
        }),
        (_('Status'), {
            'fields': ('status', 'payment_status', 'escrow_status', 'payment_proof')
        }),
        (_('Delivery'), {
            'fields': ('rider', 'rider_name', 'rider_phone', 'pickup_proof', 'return_proof'),
            'classes': ('collapse',),
        }),
        (_('Dispute'), {
            'fields': ('dispute_reason', 'disputed_by', 'condition_rating',
                       'resolution', 'resolved_by', 'resolved_at'),
            'classes': ('collapse',),
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


@admin.register(EscrowEntry)
class EscrowEntryAdmin(admin.ModelAdmin):
    """Append-only ledger: no adding, editing or deleting from the admin."""

    list_display = ['id', 'user', 'entry_type', 'amount', 'balance_after', 'rental', 'created_at']

    list_filter = ['entry_type', 'created_at']

    search_fields = ['user__email', 'idempotency_key', 'memo']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 50

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ['sender', 'content', 'is_read', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ['id', 'item', 'created_at', 'updated_at']
    search_fields = ['participants__email', 'item__title']
    filter_horizontal = ['participants']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [MessageInline]
    list_per_page = 25


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'conversation', 'sender', 'is_read', 'created_at']
    list_filter = ['is_read', 'created_at']
    search_fields = ['sender__email', 'content']
    readonly_fields = ['created_at']
    list_per_page = 50


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'type', 'title', 'is_read', 'created_at']
    list_filter = ['type', 'is_read', 'created_at']
    search_fields = ['user__email', 'title', 'message']
    readonly_fields = ['created_at']
    list_per_page = 50


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """Admin interface for Review model."""

    list_display = [
        'id',
        'reviewer',
        'reviewee',
        'rental',
        'rating',
        'created_at',
    ]

    list_filter = [
        'rating',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'reviewee__email',
        'comment',
    ]

    readonly_fields = ['created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('reviewer', 'reviewee', 'rental')
        }),
        (_('Review Content'), {
            'fields': ('rating', 'comment')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )
