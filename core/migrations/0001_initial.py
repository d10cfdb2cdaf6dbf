import core.models
import core.validators
import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('full_name', models.CharField(blank=True, default='', help_text='Name shown on listings and in chat.', max_length=150, verbose_name='full name')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. Enter phone number in local or international format.', max_length=20, validators=[core.validators.validate_phone_number], verbose_name='phone number')),
                ('location', models.CharField(blank=True, default='', help_text='City or area where the user is based.', max_length=200, verbose_name='location')),
                ('avatar', models.ImageField(blank=True, help_text='Optional. Upload a profile picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=core.models.user_avatar_upload_path, validators=[core.validators.validate_image_upload], verbose_name='avatar')),
                ('rating', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Average rating received from rental counter-parties.', max_digits=3, validators=[django.core.validators.MinValueValidator(Decimal('0.00'), message='Rating cannot be negative.'), django.core.validators.MaxValueValidator(Decimal('5.00'), message='Rating cannot exceed 5.00.')], verbose_name='rating')),
                ('reviews_count', models.PositiveIntegerField(default=0, help_text='Number of reviews received.', verbose_name='reviews count')),
                ('is_verified', models.BooleanField(default=False, help_text='Set once an administrator approves the identity document.', verbose_name='verified status')),
                ('kyc_status', models.CharField(choices=[('none', 'Not Submitted'), ('pending', 'Pending Review'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='none', max_length=10, verbose_name='identity verification status')),
                ('kyc_document', models.ImageField(blank=True, help_text='Government ID submitted for verification.', null=True, upload_to=core.models.kyc_document_upload_path, validators=[core.validators.validate_image_upload], verbose_name='identity document')),
                ('kyc_submitted_at', models.DateTimeField(blank=True, null=True, verbose_name='identity document submitted at')),
                ('is_shop', models.BooleanField(default=False, help_text='Business account listing items as a shop.', verbose_name='shop account')),
                ('is_rider', models.BooleanField(default=False, help_text='Account can accept delivery jobs.', verbose_name='rider account')),
                ('escrow_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Cached balance of the escrow ledger. Never edit directly.', max_digits=12, verbose_name='escrow balance')),
                ('gcash_number', models.CharField(blank=True, default='', max_length=20, validators=[core.validators.validate_gcash_number], verbose_name='GCash number')),
                ('gcash_name', models.CharField(blank=True, default='', max_length=150, verbose_name='GCash account name')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['email'], name='user_email_idx'),
                    models.Index(fields=['is_verified'], name='user_verified_idx'),
                    models.Index(fields=['kyc_status'], name='user_kyc_status_idx'),
                    models.Index(fields=['is_rider'], name='user_rider_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('escrow_balance__gte', 0)), name='user_escrow_balance_non_negative'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(help_text='Title of the listing', max_length=200, verbose_name='title')),
                ('description', models.TextField(help_text='Detailed description of the item', verbose_name='description')),
                ('category', models.CharField(choices=[('cameras', 'Cameras'), ('vehicles', 'Vehicles'), ('dormitels', 'Dormitels'), ('properties', 'Properties'), ('clothing', 'Clothing'), ('gadgets', 'Gadgets'), ('tools', 'Tools'), ('sports', 'Sports'), ('books', 'Books'), ('musical_instruments', 'Musical Instruments'), ('camping_gear', 'Camping Gear'), ('party_supplies', 'Party Supplies'), ('appliances', 'Appliances'), ('costumes', 'Costumes'), ('others', 'Others')], default='others', max_length=30, verbose_name='category')),
                ('condition', models.CharField(choices=[('like_new', 'Like New'), ('good', 'Good'), ('fair', 'Fair'), ('heavily_used', 'Heavily Used')], default='good', max_length=20, verbose_name='condition')),
                ('price_per_day', models.DecimalField(decimal_places=2, help_text='Daily rental rate in PHP (must be greater than 0)', max_digits=10, verbose_name='price per day')),
                ('deposit_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Security deposit held in escrow for the rental period', max_digits=10, verbose_name='deposit amount')),
                ('location', models.CharField(blank=True, default='', max_length=200, verbose_name='location')),
                ('logistics_type', models.CharField(choices=[('light', 'Light (Motorcycle)'), ('medium_heavy', 'Medium/Heavy (Car/Van/Truck)'), ('owner_delivery', 'Owner Delivery'), ('pickup_only', 'Pickup Only')], default='pickup_only', max_length=20, verbose_name='logistics type')),
                ('allow_survey', models.BooleanField(default=False, help_text='Renters may inspect the item before renting', verbose_name='allow survey')),
                ('is_available', models.BooleanField(default=True, verbose_name='is available')),
                ('is_blocked', models.BooleanField(default=False, help_text='Hidden from search by an administrator', verbose_name='is blocked')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('owner', models.ForeignKey(help_text='User listing this item', on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'item',
                'verbose_name_plural': 'items',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner'], name='item_owner_idx'),
                    models.Index(fields=['category'], name='item_category_idx'),
                    models.Index(fields=['price_per_day'], name='item_price_idx'),
                    models.Index(fields=['is_available', 'is_blocked'], name='item_listed_idx'),
                    models.Index(fields=['created_at'], name='item_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image', models.ImageField(help_text='Image file (max 5MB, formats: jpg, png, webp)', upload_to=core.models.item_image_upload_path, validators=[core.validators.validate_image_upload], verbose_name='image')),
                ('order', models.PositiveIntegerField(default=0, verbose_name='order')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='core.item')),
            ],
            options={
                'verbose_name': 'item image',
                'verbose_name_plural': 'item images',
                'ordering': ['order', 'uploaded_at'],
                'indexes': [
                    models.Index(fields=['item', 'order'], name='item_image_order_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Rental',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateField(verbose_name='start date')),
                ('end_date', models.DateField(verbose_name='end date')),
                ('days', models.PositiveIntegerField(default=1, verbose_name='days')),
                ('rental_fee', models.DecimalField(decimal_places=2, help_text='Daily price multiplied by the number of days', max_digits=10, verbose_name='rental fee')),
                ('platform_fee', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='platform fee')),
                ('total_price', models.DecimalField(decimal_places=2, help_text='Rental fee plus platform fee', max_digits=10, verbose_name='total price')),
                ('deposit_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='deposit amount')),
                ('delivery_method', models.CharField(choices=[('pickup', 'Pickup'), ('meetup', 'Meetup'), ('delivery', 'Delivery')], default='pickup', max_length=10, verbose_name='delivery method')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rider_pickup', 'Rider Pickup'), ('in_possession', 'In Possession'), ('return_initiated', 'Return Initiated'), ('rider_return', 'Rider Return'), ('completed', 'Completed'), ('disputed', 'Disputed'), ('declined', 'Declined'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='status')),
                ('payment_status', models.CharField(choices=[('unpaid', 'Unpaid'), ('review', 'Under Review'), ('paid', 'Paid')], default='unpaid', max_length=10, verbose_name='payment status')),
                ('payment_proof', models.ImageField(blank=True, null=True, upload_to=core.models.payment_proof_upload_path, validators=[core.validators.validate_image_upload], verbose_name='payment proof')),
                ('escrow_status', models.CharField(choices=[('pending', 'Pending'), ('held', 'Held'), ('released', 'Released'), ('disputed', 'Disputed'), ('refunded', 'Refunded')], default='pending', max_length=10, verbose_name='escrow status')),
                ('pickup_proof', models.ImageField(blank=True, null=True, upload_to=core.models.rental_proof_upload_path, validators=[core.validators.validate_image_upload], verbose_name='pickup proof')),
                ('return_proof', models.ImageField(blank=True, null=True, upload_to=core.models.rental_proof_upload_path, validators=[core.validators.validate_image_upload], verbose_name='return proof')),
                ('rider_name', models.CharField(blank=True, default='', max_length=150, verbose_name='rider name')),
                ('rider_phone', models.CharField(blank=True, default='', max_length=20, verbose_name='rider phone')),
                ('dispute_reason', models.TextField(blank=True, default='', verbose_name='dispute reason')),
                ('condition_rating', models.PositiveSmallIntegerField(blank=True, help_text='Owner rating of the returned item, 1 to 5', null=True, validators=[django.core.validators.MinValueValidator(1, message='Condition rating must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Condition rating must be at most 5.')], verbose_name='condition rating')),
                ('resolution', models.CharField(blank=True, choices=[('refund', 'Refund Renter'), ('release_to_owner', 'Release to Owner')], default='', max_length=20, verbose_name='resolution')),
                ('resolved_at', models.DateTimeField(blank=True, null=True, verbose_name='resolved at')),
                ('idempotency_key', models.CharField(blank=True, default='', help_text='Client token that makes rental creation safe to retry', max_length=100, verbose_name='idempotency key')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rentals', to='core.item')),
                ('renter', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rentals_as_renter', to=settings.AUTH_USER_MODEL)),
                ('owner', models.ForeignKey(help_text='Item owner at the time the rental was requested', on_delete=django.db.models.deletion.PROTECT, related_name='rentals_as_owner', to=settings.AUTH_USER_MODEL)),
                ('rider', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='delivery_jobs', to=settings.AUTH_USER_MODEL)),
                ('disputed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='disputes_filed', to=settings.AUTH_USER_MODEL)),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='disputes_resolved', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'rental',
                'verbose_name_plural': 'rentals',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['item', 'status'], name='rental_item_status_idx'),
                    models.Index(fields=['renter'], name='rental_renter_idx'),
                    models.Index(fields=['owner'], name='rental_owner_idx'),
                    models.Index(fields=['status'], name='rental_status_idx'),
                    models.Index(fields=['escrow_status'], name='rental_escrow_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('idempotency_key', ''), _negated=True), fields=('renter', 'idempotency_key'), name='unique_rental_idempotency_key'),
                    models.CheckConstraint(condition=models.Q(('end_date__gte', models.F('start_date'))), name='rental_end_not_before_start'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EscrowEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('entry_type', models.CharField(choices=[('top_up', 'Top-up'), ('deposit_hold', 'Deposit Hold'), ('deposit_return', 'Deposit Return'), ('deposit_forfeit', 'Deposit Forfeit'), ('payout', 'Payout'), ('refund', 'Refund')], max_length=20, verbose_name='entry type')),
                ('amount', models.DecimalField(decimal_places=2, help_text='Signed amount; negative values debit the balance', max_digits=12, verbose_name='amount')),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='balance after')),
                ('idempotency_key', models.CharField(max_length=100, verbose_name='idempotency key')),
                ('memo', models.CharField(blank=True, default='', max_length=255, verbose_name='memo')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='escrow_entries', to=settings.AUTH_USER_MODEL)),
                ('rental', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='escrow_entries', to='core.rental')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'escrow entry',
                'verbose_name_plural': 'escrow entries',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='escrow_user_created_idx'),
                    models.Index(fields=['entry_type'], name='escrow_entry_type_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'idempotency_key'), name='unique_escrow_entry_key'),
                    models.CheckConstraint(condition=models.Q(('balance_after__gte', 0)), name='escrow_entry_balance_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='conversations', to='core.item')),
                ('participants', models.ManyToManyField(related_name='conversations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'conversation',
                'verbose_name_plural': 'conversations',
                'ordering': ['-updated_at'],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content', models.TextField(max_length=2000, verbose_name='content')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='core.conversation')),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages_sent', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['conversation', 'created_at'], name='message_conv_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('rental_request', 'Rental Request'), ('system', 'System'), ('message', 'Message'), ('success', 'Success'), ('warning', 'Warning'), ('info', 'Info')], default='info', max_length=20, verbose_name='type')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('message', models.TextField(blank=True, default='', verbose_name='message')),
                ('link', models.CharField(blank=True, default='', max_length=255, verbose_name='link')),
                ('is_read', models.BooleanField(default=False, verbose_name='is read')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Review',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rating', models.PositiveSmallIntegerField(help_text='Rating from 1 to 5 stars', validators=[django.core.validators.MinValueValidator(1, message='Rating must be at least 1.'), django.core.validators.MaxValueValidator(5, message='Rating must be at most 5.')], verbose_name='rating')),
                ('comment', models.TextField(blank=True, default='', verbose_name='comment')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('rental', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews', to='core.rental')),
                ('reviewer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews_given', to=settings.AUTH_USER_MODEL)),
                ('reviewee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reviews_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'review',
                'verbose_name_plural': 'reviews',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['reviewee'], name='review_reviewee_idx'),
                    models.Index(fields=['rating'], name='review_rating_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('rental', 'reviewer'), name='unique_review_per_rental_reviewer'),
                ],
            },
        ),
    ]
