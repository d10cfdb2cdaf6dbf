"""
API views for the HiramKo rental marketplace.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.contrib.auth import authenticate, get_user_model
from django.core.exceptions import ValidationError
from django.core.paginator import EmptyPage, Paginator
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError, Q
from django.utils.dateparse import parse_date
from rest_framework import generics, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from .models import (
    Conversation, EscrowEntry, Item, Notification, Rental, Review
)
from .permissions import (
    CanActOnRental, IsConversationParticipant, IsItemOwner, IsRider, IsStaffUser
)
from .serializers import (
    ConfirmReturnSerializer,
    ConversationCreateSerializer,
    ConversationSerializer,
    DescriptionRequestSerializer,
    DisputeResolutionSerializer,
    DisputeSerializer,
    EmailTokenObtainPairSerializer,
    EscrowEntrySerializer,
    ItemSerializer,
    ItemWriteSerializer,
    KycSubmissionSerializer,
    LoginSerializer,
    MessageSerializer,
    NotificationSerializer,
    OptionalProofSerializer,
    ProofUploadSerializer,
    PublicProfileSerializer,
    RentalCreateSerializer,
    RentalQuoteSerializer,
    RentalSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    TokenRefreshSerializer,
    TopUpSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
    UserVerificationSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def validation_detail(error):
    """Flatten a Django ValidationError into a single message."""
    return ' '.join(error.messages)


def not_authenticated():
    return Response(
        {'detail': 'Authentication credentials were not provided.'},
        status=status.HTTP_401_UNAUTHORIZED
    )


def method_not_allowed(method):
    return Response(
        {'detail': f'Method "{method}" not allowed.'},
        status=status.HTTP_405_METHOD_NOT_ALLOWED
    )


def paginated_response(request, queryset, serializer_class, extra=None):
    """
    Page a queryset the way every list endpoint does.

    Reads ``page`` and ``page_size`` (default 20, max 100) from the query
    string and keeps all other query parameters in the next/previous links.
    """
    try:
        page_size = int(request.query_params.get('page_size', DEFAULT_PAGE_SIZE))
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE
        elif page_size > MAX_PAGE_SIZE:
            page_size = MAX_PAGE_SIZE
    except ValueError:
        page_size = DEFAULT_PAGE_SIZE

    try:
        page_number = int(request.query_params.get('page', 1))
        if page_number < 1:
            page_number = 1
    except ValueError:
        page_number = 1

    paginator = Paginator(queryset, page_size)
    try:
        page_obj = paginator.page(page_number)
    except EmptyPage:
        return Response(
            {'error': f'Invalid page number. Page {page_number} does not exist.'},
            status=status.HTTP_404_NOT_FOUND
        )

    serializer = serializer_class(page_obj.object_list, many=True, context={'request': request})

    def page_link(number):
        params = request.query_params.copy()
        params['page'] = number
        params['page_size'] = page_size
        return request.build_absolute_uri(f"{request.path}?{params.urlencode()}")

    response_data = dict(extra or {})
    response_data.update({
        'count': paginator.count,
        'next': page_link(page_obj.next_page_number()) if page_obj.has_next() else None,
        'previous': page_link(page_obj.previous_page_number()) if page_obj.has_previous() else None,
        'results': serializer.data,
    })
    return Response(response_data, status=status.HTTP_200_OK)


class ClientIPMixin:

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0]
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip


# ============================================================================
# Authentication
# ============================================================================

class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Token pair endpoint that authenticates with email instead of username.
    """
    serializer_class = EmailTokenObtainPairSerializer


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for account registration.

    POST /api/auth/register/
    Request body: {"email": ..., "password": ..., "confirm_password": ..., "full_name": ...}

    Returns the created account (without password) with 201.
    Concurrent registrations with the same email are caught at the database
    level and reported as a normal validation error.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError as e:
            if 'email' in str(e).lower() or 'unique' in str(e).lower():
                return Response(
                    {'email': ['A user with that email already exists.']},
                    status=status.HTTP_400_BAD_REQUEST
                )
            raise

        logger.info(f"User registered. User ID: {serializer.instance.id}, Email: {serializer.instance.email}")
        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class LoginView(ClientIPMixin, APIView):
    """
    API endpoint for login with JWT token generation.

    Security features:
    - Rate limiting: 5 attempts per minute per IP
    - Generic error message for unknown email, wrong password and inactive accounts
    - Failed attempts are logged with the client IP

    POST /api/auth/login/
    Request body: {"email": "user@example.com", "password": "password123"}

    Success response (200): {"access": ..., "refresh": ..., "user": {...}}
    Error response (401): {"detail": "Invalid credentials"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'
    serializer_class = LoginSerializer

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data['email'].lower().strip()
        password = serializer.validated_data['password']
        client_ip = self.get_client_ip(request)

        user = authenticate(request, email=email, password=password)
        if user is None:
            logger.warning(f"Failed login attempt. Email: {email}, IP: {client_ip}")
            return Response(
                {'detail': 'Invalid credentials'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        refresh = RefreshToken.for_user(user)
        logger.info(f"Successful login. Email: {email}, IP: {client_ip}")

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': {
                'id': user.id,
                'email': user.email,
                'full_name': user.full_name,
                'is_verified': user.is_verified,
                'is_rider': user.is_rider,
                'is_staff': user.is_staff,
            }
        }, status=status.HTTP_200_OK)


class CustomTokenRefreshView(ClientIPMixin, APIView):
    """
    API endpoint for refreshing JWT access tokens.

    - Rate limiting: 10 requests per minute per IP
    - Rejects expired, malformed and blacklisted refresh tokens
    - Rotates the refresh token and blacklists the old one

    POST /api/auth/refresh/
    Request body: {"refresh": "<jwt_refresh_token>"}
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'refresh'
    serializer_class = TokenRefreshSerializer

    def post(self, request, *args, **kwargs):
        from django.conf import settings as django_settings

        serializer = TokenRefreshSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        client_ip = self.get_client_ip(request)

        try:
            refresh_token = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as e:
            logger.warning(f"Failed token refresh attempt. Error: {e}, IP: {client_ip}")
            return Response({'detail': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        response_data = {'access': str(refresh_token.access_token)}

        if django_settings.SIMPLE_JWT.get('ROTATE_REFRESH_TOKENS', False):
            user = User.objects.filter(id=refresh_token.get('user_id'), is_active=True).first()
            if user is None:
                logger.warning(f"Token refresh for missing or inactive user. IP: {client_ip}")
                return Response({'detail': 'User not found.'}, status=status.HTTP_401_UNAUTHORIZED)

            if django_settings.SIMPLE_JWT.get('BLACKLIST_AFTER_ROTATION', False):
                refresh_token.blacklist()
            response_data['refresh'] = str(RefreshToken.for_user(user))

        logger.info(f"Successful token refresh. IP: {client_ip}")
        return Response(response_data, status=status.HTTP_200_OK)


class LogoutView(ClientIPMixin, APIView):
    """
    Blacklist a refresh token so it can no longer be used.

    POST /api/auth/logout/
    Request body: {"refresh": "<jwt_refresh_token>"}
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = TokenRefreshSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            RefreshToken(serializer.validated_data['refresh']).blacklist()
        except TokenError as e:
            logger.warning(f"Logout with invalid token. Error: {e}, IP: {self.get_client_ip(request)}")
            return Response({'detail': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        logger.info(f"User logged out. IP: {self.get_client_ip(request)}")
        return Response({'detail': 'Successfully logged out.'}, status=status.HTTP_200_OK)


# ============================================================================
# Profiles & verification
# ============================================================================

class UserProfileView(APIView):
    """
    Retrieve and update the authenticated user's profile.

    GET /api/auth/profile/
    PUT/PATCH /api/auth/profile/
    Body: full_name, phone_number, location, gcash_number, gcash_name, avatar (file)

    Restricted fields (email, verification, balance, roles) are ignored.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        try:
            user = User.objects.get(id=request.user.id)
        except User.DoesNotExist:
            logger.warning(f"Profile access attempt for non-existent user. User ID: {request.user.id}")
            return Response({'detail': 'User not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = UserProfileSerializer(user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        return self._update_profile(request, partial=False)

    def patch(self, request, *args, **kwargs):
        return self._update_profile(request, partial=True)

    def _update_profile(self, request, partial=False):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        try:
            user = User.objects.get(id=request.user.id)
        except User.DoesNotExist:
            logger.warning(f"Profile update attempt for non-existent user. User ID: {request.user.id}")
            return Response({'detail': 'User not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = UserProfileUpdateSerializer(
            user,
            data=request.data,
            partial=partial,
            context={'request': request}
        )
        if not serializer.is_valid():
            logger.warning(f"Profile update validation failed. User ID: {user.id}, Errors: {serializer.errors}")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        serializer.save()
        logger.info(f"Profile updated. User ID: {user.id}, Partial: {partial}")
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def post(self, request, *args, **kwargs):
        return method_not_allowed('POST')

    def delete(self, request, *args, **kwargs):
        return method_not_allowed('DELETE')


class PublicProfileView(APIView):
    """Public profile of any active user. GET /api/users/<id>/"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        user = User.objects.filter(pk=kwargs.get('pk'), is_active=True).first()
        if user is None:
            return Response({'detail': 'User not found.'}, status=status.HTTP_404_NOT_FOUND)
        return Response(
            PublicProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class KycSubmissionView(ClientIPMixin, APIView):
    """
    Submit an identity document for verification.

    POST /api/auth/kyc/  (multipart, field "document")
    Sets kyc_status to pending until an administrator reviews it.
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = KycSubmissionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        user = User.objects.get(pk=request.user.pk)
        try:
            user.submit_kyc(serializer.validated_data['document'])
        except ValidationError as e:
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)

        logger.info(f"KYC document submitted. User ID: {user.id}, IP: {self.get_client_ip(request)}")
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def get(self, request, *args, **kwargs):
        return method_not_allowed('GET')


class KycQueueView(APIView):
    """Staff-only list of users waiting for identity review. GET /api/admin/kyc/"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        permission = IsStaffUser()
        if not permission.has_permission(request, self):
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        queryset = User.objects.filter(kyc_status='pending').order_by('kyc_submitted_at', 'id')
        return paginated_response(request, queryset, UserProfileSerializer)


class UserVerificationView(ClientIPMixin, APIView):
    """
    Staff-only endpoint to approve or reject a user's identity document.

    POST /api/admin/users/<id>/verify/
    Request body: {"decision": "approve" | "reject"}
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        permission = IsStaffUser()
        if not permission.has_permission(request, self):
            logger.warning(
                f"Non-staff user attempted verification. User: {request.user.email}, "
                f"IP: {self.get_client_ip(request)}"
            )
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        serializer = UserVerificationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        user_id = kwargs.get('pk')
        approve = serializer.validated_data['decision'] == 'approve'

        with transaction.atomic():
            try:
                user = User.objects.select_for_update().get(pk=user_id)
            except User.DoesNotExist:
                return Response(
                    {'detail': f'User with ID {user_id} does not exist.'},
                    status=status.HTTP_404_NOT_FOUND
                )

            user.review_kyc(approve)
            if approve:
                Notification.notify(
                    user, 'success', 'Account verified',
                    'Your identity has been verified. You now have a verified badge.', '/profile'
                )
            else:
                Notification.notify(
                    user, 'warning', 'Verification rejected',
                    'Your identity document was rejected. Please submit a clearer photo.', '/profile'
                )

        logger.info(
            f"User verification reviewed. User ID: {user.id}, Approved: {approve}, "
            f"Admin: {request.user.email}, IP: {self.get_client_ip(request)}"
        )
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Listings & search
# ============================================================================

class ItemListCreateView(ClientIPMixin, APIView):
    """
    Search listings (public) and create a listing (authenticated).

    GET /api/items/
    Query Parameters:
    - q: Case-insensitive match on title, description or location
    - category: Category key
    - min_price / max_price: Daily price range (decimal)
    - logistics_type: Logistics key
    - ordering: recommended (default), price_asc, price_desc, newest
    - page / page_size: Pagination (default 20, max 100)

    Only available and unblocked items are returned. Invalid parameters
    return 400 with an "error" message.

    POST /api/items/  (multipart for images)
    """
    permission_classes = [AllowAny]

    ORDERINGS = {
        'recommended': ['-created_at', '-id'],
        'newest': ['-created_at', '-id'],
        'price_asc': ['price_per_day', '-created_at'],
        'price_desc': ['-price_per_day', '-created_at'],
    }

    def get(self, request, *args, **kwargs):
        queryset = (
            Item.objects.filter(is_available=True, is_blocked=False)
            .select_related('owner')
            .prefetch_related('images')
        )

        query = request.query_params.get('q', '').strip()
        if query:
            queryset = queryset.filter(
                Q(title__icontains=query)
                | Q(description__icontains=query)
                | Q(location__icontains=query)
            )

        category = request.query_params.get('category')
        if category:
            if category not in dict(Item.CATEGORY_CHOICES):
                return Response(
                    {'error': f'Invalid category "{category}".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(category=category)

        logistics_type = request.query_params.get('logistics_type')
        if logistics_type:
            if logistics_type not in dict(Item.LOGISTICS_CHOICES):
                return Response(
                    {'error': f'Invalid logistics type "{logistics_type}".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(logistics_type=logistics_type)

        prices = {}
        for param in ('min_price', 'max_price'):
            raw = request.query_params.get(param)
            if raw is None:
                continue
            try:
                value = Decimal(raw)
            except (ValueError, InvalidOperation):
                return Response(
                    {'error': f'Invalid value for "{param}". Must be a valid number.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            if not value.is_finite() or value < 0:
                return Response(
                    {'error': f'Invalid value for "{param}". Must be a non-negative number.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            prices[param] = value

        if 'min_price' in prices and 'max_price' in prices and prices['min_price'] > prices['max_price']:
            return Response(
                {'error': 'Minimum price cannot be greater than maximum price.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if 'min_price' in prices:
            queryset = queryset.filter(price_per_day__gte=prices['min_price'])
        if 'max_price' in prices:
            queryset = queryset.filter(price_per_day__lte=prices['max_price'])

        ordering = request.query_params.get('ordering') or 'recommended'
        if ordering not in self.ORDERINGS:
            return Response(
                {'error': f'Invalid ordering "{ordering}". Valid options: {", ".join(self.ORDERINGS)}'},
                status=status.HTTP_400_BAD_REQUEST
            )
        queryset = queryset.order_by(*self.ORDERINGS[ordering])

        return paginated_response(request, queryset, ItemSerializer)

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = ItemWriteSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save(owner=request.user)
        logger.info(
            f"Item listed. Item ID: {item.id}, Title: {item.title}, Owner: {request.user.email}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(
            ItemSerializer(item, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class ItemDetailView(ClientIPMixin, APIView):
    """
    GET /api/items/<id>/     public; blocked items are visible only to owner and staff
    PUT/PATCH /api/items/<id>/  owner only
    DELETE /api/items/<id>/  owner only; items with rental history cannot be deleted
    """
    permission_classes = [AllowAny]

    def get_item(self, pk):
        return Item.objects.select_related('owner').prefetch_related('images').filter(pk=pk).first()

    def get(self, request, *args, **kwargs):
        item = self.get_item(kwargs.get('pk'))
        user = request.user
        can_see_blocked = user.is_authenticated and (user.is_staff or (item and item.owner_id == user.id))
        if item is None or (item.is_blocked and not can_see_blocked):
            return Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)
        return Response(ItemSerializer(item, context={'request': request}).data, status=status.HTTP_200_OK)

    def put(self, request, *args, **kwargs):
        return self._update(request, kwargs.get('pk'), partial=False)

    def patch(self, request, *args, **kwargs):
        return self._update(request, kwargs.get('pk'), partial=True)

    def _owned_item_or_error(self, request, pk):
        if not request.user or not request.user.is_authenticated:
            return None, not_authenticated()

        item = self.get_item(pk)
        if item is None:
            return None, Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)

        permission = IsItemOwner()
        if not permission.has_object_permission(request, self, item):
            logger.warning(
                f"Unauthorized item modification attempt. Item ID: {item.id}, "
                f"User: {request.user.email}, IP: {self.get_client_ip(request)}"
            )
            return None, Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)
        return item, None

    def _update(self, request, pk, partial):
        item, error = self._owned_item_or_error(request, pk)
        if error is not None:
            return error

        serializer = ItemWriteSerializer(item, data=request.data, partial=partial, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save()
        logger.info(f"Item updated. Item ID: {item.id}, Owner: {request.user.email}, Partial: {partial}")
        return Response(ItemSerializer(item, context={'request': request}).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        item, error = self._owned_item_or_error(request, kwargs.get('pk'))
        if error is not None:
            return error

        item_id = item.id
        try:
            with transaction.atomic():
                for image in item.images.all():
                    image.image.delete(save=False)
                item.delete()
        except ProtectedError:
            return Response(
                {'detail': 'This item has rental history and cannot be deleted. Mark it unavailable instead.'},
                status=status.HTTP_409_CONFLICT
            )

        logger.info(f"Item deleted. Item ID: {item_id}, Owner: {request.user.email}")
        return Response(status=status.HTTP_204_NO_CONTENT)

    def post(self, request, *args, **kwargs):
        return method_not_allowed('POST')


class MyItemsView(APIView):
    """The current user's listings, including unavailable and blocked ones."""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        queryset = (
            Item.objects.filter(owner=request.user)
            .select_related('owner')
            .prefetch_related('images')
            .order_by('-created_at', '-id')
        )
        return paginated_response(request, queryset, ItemSerializer)


class ItemImageUploadView(ClientIPMixin, APIView):
    """
    Append photos to a listing. POST /api/items/<id>/images/ (multipart "images")
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        item = Item.objects.filter(pk=kwargs.get('pk')).first()
        if item is None:
            return Response({'detail': 'Item not found.'}, status=status.HTTP_404_NOT_FOUND)

        permission = IsItemOwner()
        if not permission.has_object_permission(request, self, item):
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        images = request.FILES.getlist('images')
        if not images:
            return Response({'images': ['At least one image is required.']}, status=status.HTTP_400_BAD_REQUEST)

        serializer = ItemWriteSerializer(
            item, data={'images': images}, partial=True, context={'request': request}
        )
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        item = serializer.save()
        logger.info(
            f"Item images uploaded. Item ID: {item.id}, Count: {len(images)}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(ItemSerializer(item, context={'request': request}).data, status=status.HTTP_201_CREATED)


# ============================================================================
# Rentals
# ============================================================================

class RentalQuoteView(APIView):
    """
    Price a rental without creating it.

    GET /api/rentals/quote/?item=<id>&start_date=YYYY-MM-DD&end_date=YYYY-MM-DD
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        serializer = RentalQuoteSerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        quote = Rental.quote(data['item'], data['start_date'], data['end_date'])
        quote['available'] = not Rental.overlapping(data['item'], data['start_date'], data['end_date']).exists()
        return Response(quote, status=status.HTTP_200_OK)


class RentalListCreateView(ClientIPMixin, APIView):
    """
    List the user's rentals and request new ones.

    GET /api/rentals/?role=renter|owner&status=<status>

    POST /api/rentals/
    Headers: Idempotency-Key: <token>  (optional)
    Request body: {"item": 1, "start_date": ..., "end_date": ..., "delivery_method": "pickup"}

    Responses:
    - 201: Rental created, owner notified
    - 200: Idempotency key already used, existing rental returned
    - 400: Validation error (own item, past date, unavailable item)
    - 409: Item already rented for an overlapping range
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        role = request.query_params.get('role')
        if role == 'renter':
            queryset = Rental.objects.filter(renter=request.user)
        elif role == 'owner':
            queryset = Rental.objects.filter(owner=request.user)
        elif role is None:
            queryset = Rental.objects.filter(Q(renter=request.user) | Q(owner=request.user))
        else:
            return Response(
                {'error': 'Invalid value for "role". Must be "renter" or "owner".'},
                status=status.HTTP_400_BAD_REQUEST
            )

        status_filter = request.query_params.get('status')
        if status_filter:
            if status_filter not in dict(Rental.STATUS_CHOICES):
                return Response(
                    {'error': f'Invalid status "{status_filter}".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(status=status_filter)

        queryset = queryset.select_related('item', 'renter', 'owner').order_by('-created_at', '-id')
        return paginated_response(request, queryset, RentalSerializer)

    def post(self, request, *args, **kwargs):
        """
        Steps:
        1. Verify user is authenticated
        2. Return the existing rental for a replayed idempotency key
        3. Validate request data
        4. Lock the item, check availability and overlaps, create the rental
        5. Notify the owner
        """
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        client_ip = self.get_client_ip(request)
        raw_key = request.headers.get('Idempotency-Key') or request.data.get('idempotency_key') or ''
        idempotency_key = str(raw_key).strip()[:100]

        # Step 2
        if idempotency_key:
            existing = Rental.objects.filter(renter=request.user, idempotency_key=idempotency_key).first()
            if existing is not None:
                if not self.is_same_request(existing, request.data):
                    logger.warning(
                        f"Idempotency key reused for a different rental request. "
                        f"Rental ID: {existing.id}, User: {request.user.email}, IP: {client_ip}"
                    )
                    return Response(
                        {'detail': 'Idempotency key was already used for a different rental request.'},
                        status=status.HTTP_409_CONFLICT
                    )
                logger.info(f"Rental request replayed. Rental ID: {existing.id}, User: {request.user.email}")
                return Response(
                    RentalSerializer(existing, context={'request': request}).data,
                    status=status.HTTP_200_OK
                )

        # Step 3
        serializer = RentalCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        # Step 4
        try:
            with transaction.atomic():
                item = Item.objects.select_for_update().get(pk=data['item'].pk)
                if not item.is_rentable():
                    return Response(
                        {'detail': 'This item is not available for rent.'},
                        status=status.HTTP_400_BAD_REQUEST
                    )

                conflict = Rental.overlapping(item, data['start_date'], data['end_date']).first()
                if conflict is not None:
                    logger.warning(
                        f"Rental conflict detected. Item ID: {item.id}, "
                        f"Requested: {data['start_date']} to {data['end_date']}, "
                        f"Conflicting Rental ID: {conflict.id}, User: {request.user.email}, IP: {client_ip}"
                    )
                    return Response(
                        {'detail': 'This item is already rented for the selected dates.'},
                        status=status.HTTP_409_CONFLICT
                    )

                quote = Rental.quote(item, data['start_date'], data['end_date'])
                rental = Rental.objects.create(
                    item=item,
                    renter=request.user,
                    owner_id=item.owner_id,
                    start_date=data['start_date'],
                    end_date=data['end_date'],
                    delivery_method=data['delivery_method'],
                    idempotency_key=idempotency_key,
                    **quote
                )

                # Step 5
                Notification.notify(
                    item.owner,
                    'rental_request',
                    'New rental request',
                    f'{request.user.display_name} wants to rent "{item.title}" '
                    f'from {rental.start_date} to {rental.end_date}.',
                    f'/rentals/{rental.id}'
                )
        except ValidationError as e:
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        except IntegrityError:
            existing = None
            if idempotency_key:
                existing = Rental.objects.filter(renter=request.user, idempotency_key=idempotency_key).first()
            if existing is None:
                raise
            return Response(RentalSerializer(existing, context={'request': request}).data, status=status.HTTP_200_OK)

        logger.info(
            f"Rental created. Rental ID: {rental.id}, Item ID: {item.id}, "
            f"Renter: {request.user.email}, Owner ID: {item.owner_id}, "
            f"Dates: {rental.start_date} to {rental.end_date}, Total: {rental.total_price}, IP: {client_ip}"
        )
        return Response(RentalSerializer(rental, context={'request': request}).data, status=status.HTTP_201_CREATED)

    @staticmethod
    def is_same_request(rental, data):
        """True when a replayed request names the same item and dates as the stored rental."""
        try:
            start_date = parse_date(str(data.get('start_date')))
            end_date = parse_date(str(data.get('end_date')))
        except ValueError:
            return False
        return (
            str(data.get('item')) == str(rental.item_id)
            and start_date == rental.start_date
            and end_date == rental.end_date
        )


class RentalDetailView(APIView):
    """GET /api/rentals/<id>/ for the renter, the owner, the assigned rider or staff."""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        rental = Rental.objects.select_related('item', 'renter', 'owner').filter(pk=kwargs.get('pk')).first()
        if rental is None:
            return Response({'detail': 'Rental not found.'}, status=status.HTTP_404_NOT_FOUND)

        is_rider = rental.rider_id is not None and rental.rider_id == request.user.id
        if not (rental.is_participant(request.user) or is_rider or request.user.is_staff):
            return Response(
                {'detail': 'You do not have permission to access this rental.'},
                status=status.HTTP_403_FORBIDDEN
            )
        return Response(RentalSerializer(rental, context={'request': request}).data, status=status.HTTP_200_OK)


class RentalActionView(ClientIPMixin, APIView):
    """
    Base view for rental lifecycle actions.

    Subclasses set ``rental_action`` (the role check in CanActOnRental) and
    optionally ``serializer_class``, then implement ``perform_action``.
    The rental row is locked for the whole action; domain errors roll the
    transaction back and are returned as 400.
    """
    permission_classes = [AllowAny]
    rental_action = 'view'
    serializer_class = None

    def perform_action(self, request, rental, data):
        raise NotImplementedError

    def notify(self, request, rental):
        pass

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        data = {}
        if self.serializer_class is not None:
            serializer = self.serializer_class(data=request.data, context={'request': request})
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            data = serializer.validated_data

        rental_id = kwargs.get('pk')
        client_ip = self.get_client_ip(request)

        try:
            with transaction.atomic():
                rental = Rental.objects.select_for_update().get(pk=rental_id)

                permission = CanActOnRental()
                if not permission.has_object_permission(request, self, rental):
                    logger.warning(
                        f"Unauthorized rental action. Action: {self.rental_action}, Rental ID: {rental_id}, "
                        f"User: {request.user.email} (ID: {request.user.id}), IP: {client_ip}"
                    )
                    return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

                old_status = rental.status
                changed = self.perform_action(request, rental, data)
                if changed is not False:
                    self.notify(request, rental)
        except Rental.DoesNotExist:
            return Response(
                {'detail': f'Rental with ID {rental_id} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )
        except ValidationError as e:
            logger.warning(
                f"Rental action rejected. Action: {self.rental_action}, Rental ID: {rental_id}, "
                f"User: {request.user.email}, Error: {validation_detail(e)}, IP: {client_ip}"
            )
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.error(
                f"Error in rental action. Action: {self.rental_action}, Rental ID: {rental_id}, "
                f"User: {request.user.email}, Error: {e}",
                exc_info=True
            )
            raise

        logger.info(
            f"Rental action completed. Action: {self.rental_action}, Rental ID: {rental.id}, "
            f"Old Status: {old_status}, New Status: {rental.status}, Escrow: {rental.escrow_status}, "
            f"User: {request.user.email} (ID: {request.user.id}), IP: {client_ip}"
        )
        return Response(RentalSerializer(rental, context={'request': request}).data, status=status.HTTP_200_OK)

    def get(self, request, *args, **kwargs):
        return method_not_allowed('GET')


class PaymentProofView(RentalActionView):
    rental_action = 'payment-proof'
    serializer_class = ProofUploadSerializer

    def perform_action(self, request, rental, data):
        rental.submit_payment_proof(data['proof'])

    def notify(self, request, rental):
        Notification.notify(
            rental.owner, 'info', 'Payment proof submitted',
            f'{request.user.display_name} uploaded a payment receipt for "{rental.item.title}".',
            f'/rentals/{rental.id}'
        )


class ConfirmPaymentView(RentalActionView):
    """Owner confirms the payment; the renter's deposit is held in escrow."""
    rental_action = 'confirm-payment'

    def perform_action(self, request, rental, data):
        return rental.confirm_payment(actor=request.user)

    def notify(self, request, rental):
        Notification.notify(
            rental.renter, 'success', 'Rental approved',
            f'Your payment for "{rental.item.title}" was confirmed.',
            f'/rentals/{rental.id}'
        )


class DeclineRentalView(RentalActionView):
    rental_action = 'decline'

    def perform_action(self, request, rental, data):
        rental.decline()

    def notify(self, request, rental):
        Notification.notify(
            rental.renter, 'warning', 'Rental declined',
            f'Your request for "{rental.item.title}" was declined by the owner.',
            f'/rentals/{rental.id}'
        )


class CancelRentalView(RentalActionView):
    rental_action = 'cancel'

    def perform_action(self, request, rental, data):
        rental.cancel(actor=request.user)

    def notify(self, request, rental):
        Notification.notify(
            rental.owner, 'info', 'Rental cancelled',
            f'{request.user.display_name} cancelled the rental of "{rental.item.title}".',
            f'/rentals/{rental.id}'
        )


class HandoverView(RentalActionView):
    rental_action = 'handover'
    serializer_class = OptionalProofSerializer

    def perform_action(self, request, rental, data):
        rental.handover(proof=data.get('proof'))

    def notify(self, request, rental):
        Notification.notify(
            rental.renter, 'info', 'Item handed over',
            f'The owner marked "{rental.item.title}" as handed over to you.',
            f'/rentals/{rental.id}'
        )


class InitiateReturnView(RentalActionView):
    rental_action = 'initiate-return'

    def perform_action(self, request, rental, data):
        rental.initiate_return()

    def notify(self, request, rental):
        Notification.notify(
            rental.owner, 'info', 'Return started',
            f'{request.user.display_name} is returning "{rental.item.title}".',
            f'/rentals/{rental.id}'
        )


class ConfirmReturnView(RentalActionView):
    """
    Owner inspects the returned item.

    Request body: {"condition_rating": 1-5, "damaged": false, "reason": "...", "proof": <file>}
    """
    rental_action = 'confirm-return'
    serializer_class = ConfirmReturnSerializer

    def perform_action(self, request, rental, data):
        rental.confirm_return(
            data['condition_rating'],
            damaged=data.get('damaged', False),
            reason=data.get('reason', ''),
            actor=request.user,
            proof=data.get('proof'),
        )

    def notify(self, request, rental):
        if rental.status == 'disputed':
            Notification.notify(
                rental.renter, 'warning', 'Return disputed',
                f'The owner reported damage on "{rental.item.title}". An administrator will review it.',
                f'/rentals/{rental.id}'
            )
        else:
            Notification.notify(
                rental.renter, 'success', 'Rental completed',
                f'The return of "{rental.item.title}" was confirmed and your deposit was released.',
                f'/rentals/{rental.id}'
            )


class DisputeView(RentalActionView):
    rental_action = 'dispute'
    serializer_class = DisputeSerializer

    def perform_action(self, request, rental, data):
        rental.file_dispute(request.user, data['reason'])

    def notify(self, request, rental):
        other = rental.owner if request.user.id == rental.renter_id else rental.renter
        Notification.notify(
            other, 'warning', 'Dispute filed',
            f'{request.user.display_name} filed a dispute on "{rental.item.title}".',
            f'/rentals/{rental.id}'
        )


class CheckoutView(ClientIPMixin, APIView):
    """
    Start an online payment for a pending rental.

    POST /api/rentals/<id>/checkout/
    Success response (200): {"checkout_url": "https://..."}
    - 502: Gateway rejected the request or could not be reached
    - 503: Online checkout is not configured
    """
    permission_classes = [AllowAny]
    rental_action = 'checkout'

    def post(self, request, *args, **kwargs):
        from core.payments import PaymentGatewayError, create_checkout_session

        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        rental = Rental.objects.select_related('item').filter(pk=kwargs.get('pk')).first()
        if rental is None:
            return Response({'detail': 'Rental not found.'}, status=status.HTTP_404_NOT_FOUND)

        permission = CanActOnRental()
        if not permission.has_object_permission(request, self, rental):
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        if rental.status != 'pending' or rental.payment_status == 'paid':
            return Response(
                {'detail': 'Only unpaid pending rentals can be checked out.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            checkout_url = create_checkout_session(rental)
        except PaymentGatewayError as e:
            code = status.HTTP_502_BAD_GATEWAY if e.configured else status.HTTP_503_SERVICE_UNAVAILABLE
            return Response({'detail': str(e)}, status=code)

        logger.info(
            f"Checkout started. Rental ID: {rental.id}, User: {request.user.email}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response({'checkout_url': checkout_url}, status=status.HTTP_200_OK)


# ============================================================================
# Deliveries
# ============================================================================

class DeliveryJobListView(APIView):
    """
    Delivery jobs for riders.

    GET /api/deliveries/
    - available: approved delivery rentals without a rider
    - assigned: the rider's own jobs waiting for a pickup or return leg
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        permission = IsRider()
        if not permission.has_permission(request, self):
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        base = Rental.objects.filter(delivery_method='delivery').select_related('item', 'renter', 'owner')
        available = base.filter(status='approved', rider__isnull=True).exclude(
            Q(renter=request.user) | Q(owner=request.user)
        ).order_by('start_date', 'id')
        assigned = base.filter(
            rider=request.user,
            status__in=['rider_pickup', 'return_initiated'],
        ).order_by('start_date', 'id')

        context = {'request': request}
        return Response({
            'available': RentalSerializer(available, many=True, context=context).data,
            'assigned': RentalSerializer(assigned, many=True, context=context).data,
        }, status=status.HTTP_200_OK)


class DeliveryActionView(ClientIPMixin, APIView):
    """Shared locking and error handling for rider actions."""
    permission_classes = [AllowAny]
    serializer_class = None

    def perform_action(self, request, rental, data):
        raise NotImplementedError

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        permission = IsRider()
        if not permission.has_permission(request, self):
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)

        data = {}
        if self.serializer_class is not None:
            serializer = self.serializer_class(data=request.data)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            data = serializer.validated_data

        rental_id = kwargs.get('pk')
        try:
            with transaction.atomic():
                rental = Rental.objects.select_for_update().get(pk=rental_id)
                old_status = rental.status
                self.perform_action(request, rental, data)
                for user in (rental.renter, rental.owner):
                    Notification.notify(
                        user, 'info', 'Delivery update',
                        f'"{rental.item.title}" is now {rental.get_status_display().lower()}.',
                        f'/rentals/{rental.id}'
                    )
        except Rental.DoesNotExist:
            return Response({'detail': f'Rental with ID {rental_id} does not exist.'}, status=status.HTTP_404_NOT_FOUND)
        except ValidationError as e:
            logger.warning(
                f"Delivery action rejected. Rental ID: {rental_id}, Rider: {request.user.email}, "
                f"Error: {validation_detail(e)}"
            )
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.error(
                f"Error updating delivery for rental {rental_id}. Rider: {request.user.email}, Error: {e}",
                exc_info=True
            )
            raise

        logger.info(
            f"Delivery updated. Rental ID: {rental.id}, Old Status: {old_status}, New Status: {rental.status}, "
            f"Rider: {request.user.email}, IP: {self.get_client_ip(request)}"
        )
        return Response(RentalSerializer(rental, context={'request': request}).data, status=status.HTTP_200_OK)


class DeliveryAcceptView(DeliveryActionView):
    def perform_action(self, request, rental, data):
        rental.accept_delivery(request.user)


class DeliveryStatusView(DeliveryActionView):
    """POST /api/deliveries/<id>/status/ with a proof photo for the current leg."""
    serializer_class = ProofUploadSerializer

    def perform_action(self, request, rental, data):
        rental.update_delivery(request.user, data['proof'])


# ============================================================================
# Escrow
# ============================================================================

class EscrowView(APIView):
    """Current escrow balance and ledger history. GET /api/escrow/"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        balance = User.objects.values_list('escrow_balance', flat=True).get(pk=request.user.pk)
        queryset = EscrowEntry.objects.filter(user=request.user).order_by('-created_at', '-id')
        return paginated_response(request, queryset, EscrowEntrySerializer, extra={'balance': str(balance)})


class EscrowTopUpView(ClientIPMixin, APIView):
    """
    Add funds to the escrow balance.

    POST /api/escrow/top-up/
    Headers: Idempotency-Key: <token>  (optional)
    Request body: {"amount": "500.00"}

    - 201: Funds added
    - 200: Replayed key, original entry returned
    - 409: Key already used for a different amount
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = TopUpSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        idempotency_key = (request.headers.get('Idempotency-Key') or '').strip()[:90] or None
        try:
            with transaction.atomic():
                entry, created = EscrowEntry.objects.top_up(
                    request.user,
                    serializer.validated_data['amount'],
                    idempotency_key=idempotency_key,
                )
                if created:
                    Notification.notify(
                        request.user, 'success', 'Top-up received',
                        f'₱{entry.amount} was added to your escrow balance.', '/wallet'
                    )
        except ValidationError as e:
            code = status.HTTP_409_CONFLICT if getattr(e, 'code', None) == 'idempotency_conflict' else status.HTTP_400_BAD_REQUEST
            return Response({'detail': validation_detail(e)}, status=code)

        logger.info(
            f"Escrow top-up. User: {request.user.email}, Amount: {entry.amount}, Created: {created}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response({
            'entry': EscrowEntrySerializer(entry).data,
            'balance': str(entry.balance_after),
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


# ============================================================================
# Admin console
# ============================================================================

class StaffOnlyMixin:

    def staff_error(self, request):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()
        permission = IsStaffUser()
        if not permission.has_permission(request, self):
            logger.warning(f"Non-staff user attempted admin action. User: {request.user.email}")
            return Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)
        return None


class DisputeListView(StaffOnlyMixin, APIView):
    """Rentals waiting for an administrator's decision. GET /api/admin/disputes/"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        error = self.staff_error(request)
        if error is not None:
            return error

        queryset = (
            Rental.objects.filter(Q(status='disputed') | Q(escrow_status='disputed'))
            .select_related('item', 'renter', 'owner')
            .order_by('updated_at', 'id')
        )
        return paginated_response(request, queryset, RentalSerializer)


class DisputeResolveView(StaffOnlyMixin, ClientIPMixin, APIView):
    """
    Settle a dispute exactly once.

    POST /api/admin/rentals/<id>/resolve/
    Request body: {"decision": "refund" | "release_to_owner"}
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        error = self.staff_error(request)
        if error is not None:
            return error

        serializer = DisputeResolutionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        decision = serializer.validated_data['decision']

        rental_id = kwargs.get('pk')
        try:
            with transaction.atomic():
                rental = Rental.objects.select_for_update().get(pk=rental_id)
                rental.resolve_dispute(decision, request.user)

                outcome = (
                    'refunded to the renter' if decision == 'refund' else 'released to the owner'
                )
                for user in (rental.renter, rental.owner):
                    Notification.notify(
                        user, 'system', 'Dispute resolved',
                        f'The dispute on "{rental.item.title}" was resolved: funds {outcome}.',
                        f'/rentals/{rental.id}'
                    )
        except Rental.DoesNotExist:
            return Response({'detail': f'Rental with ID {rental_id} does not exist.'}, status=status.HTTP_404_NOT_FOUND)
        except ValidationError as e:
            logger.warning(
                f"Dispute resolution rejected. Rental ID: {rental_id}, Admin: {request.user.email}, "
                f"Error: {validation_detail(e)}"
            )
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.error(
                f"Error resolving dispute on rental {rental_id}. Admin: {request.user.email}, Error: {e}",
                exc_info=True
            )
            raise

        logger.info(
            f"Dispute resolved. Rental ID: {rental.id}, Decision: {decision}, Admin: {request.user.email}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(RentalSerializer(rental, context={'request': request}).data, status=status.HTTP_200_OK)


class ItemBlockView(StaffOnlyMixin, ClientIPMixin, APIView):
    """Take a listing down. POST /api/admin/items/<id>/block/"""
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        error = self.staff_error(request)
        if error is not None:
            return error

        item_id = kwargs.get('pk')
        with transaction.atomic():
            item = Item.objects.select_for_update().filter(pk=item_id).first()
            if item is None:
                return Response({'detail': f'Item with ID {item_id} does not exist.'}, status=status.HTTP_404_NOT_FOUND)
            item.block()
            Notification.notify(
                item.owner, 'warning', 'Listing blocked',
                f'"{item.title}" was removed by an administrator.', f'/items/{item.id}'
            )

        logger.info(
            f"Item blocked. Item ID: {item.id}, Admin: {request.user.email}, IP: {self.get_client_ip(request)}"
        )
        return Response(ItemSerializer(item, context={'request': request}).data, status=status.HTTP_200_OK)


# ============================================================================
# Chat
# ============================================================================

class ConversationListCreateView(APIView):
    """
    GET /api/conversations/   conversations of the current user, most recent first
    POST /api/conversations/  {"participant_id": 2, "item_id": 5} start or reuse a conversation
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        queryset = (
            Conversation.objects.filter(participants=request.user)
            .select_related('item')
            .prefetch_related('participants')
            .order_by('-updated_at', '-id')
        )
        return paginated_response(request, queryset, ConversationSerializer)

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = ConversationCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        conversation, created = Conversation.between(
            request.user,
            serializer.validated_data['participant_id'],
            item=serializer.validated_data.get('item_id'),
        )
        if created:
            logger.info(f"Conversation started. Conversation ID: {conversation.id}, User: {request.user.email}")
        return Response(
            ConversationSerializer(conversation, context={'request': request}).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


class ConversationAccessMixin:

    def get_conversation(self, request, pk):
        """Return (conversation, error_response)."""
        conversation = Conversation.objects.filter(pk=pk).first()
        if conversation is None:
            return None, Response({'detail': 'Conversation not found.'}, status=status.HTTP_404_NOT_FOUND)

        permission = IsConversationParticipant()
        if not permission.has_object_permission(request, self, conversation):
            return None, Response({'detail': permission.message}, status=status.HTTP_403_FORBIDDEN)
        return conversation, None


class ConversationMessagesView(ConversationAccessMixin, APIView):
    """
    GET /api/conversations/<id>/messages/   oldest first
    POST /api/conversations/<id>/messages/  {"content": "..."}

    Shop participants answer new messages automatically.
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        conversation, error = self.get_conversation(request, kwargs.get('pk'))
        if error is not None:
            return error

        queryset = conversation.messages.order_by('created_at', 'id')
        return paginated_response(request, queryset, MessageSerializer)

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        conversation, error = self.get_conversation(request, kwargs.get('pk'))
        if error is not None:
            return error

        serializer = MessageSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        from core.assistant import reply_as_shops

        message = serializer.save(conversation=conversation, sender=request.user)
        reply_as_shops(message)
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class ConversationReadView(ConversationAccessMixin, APIView):
    """Mark the other participants' messages as read. POST /api/conversations/<id>/read/"""
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        conversation, error = self.get_conversation(request, kwargs.get('pk'))
        if error is not None:
            return error

        updated = conversation.mark_read_for(request.user)
        return Response({'marked_read': updated}, status=status.HTTP_200_OK)


# ============================================================================
# Notifications
# ============================================================================

class NotificationListView(APIView):
    """GET /api/notifications/?unread=true  newest first, with the total unread count."""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        queryset = Notification.objects.filter(user=request.user)
        unread_count = queryset.filter(is_read=False).count()

        unread = request.query_params.get('unread')
        if unread is not None:
            if unread.lower() == 'true':
                queryset = queryset.filter(is_read=False)
            elif unread.lower() != 'false':
                return Response(
                    {'error': 'Invalid value for "unread". Must be "true" or "false".'},
                    status=status.HTTP_400_BAD_REQUEST
                )

        queryset = queryset.order_by('-created_at', '-id')
        return paginated_response(request, queryset, NotificationSerializer, extra={'unread_count': unread_count})


class NotificationReadView(APIView):
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        notification = Notification.objects.filter(pk=kwargs.get('pk'), user=request.user).first()
        if notification is None:
            return Response({'detail': 'Notification not found.'}, status=status.HTTP_404_NOT_FOUND)

        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=['is_read'])
        return Response(NotificationSerializer(notification).data, status=status.HTTP_200_OK)


class NotificationReadAllView(APIView):
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        updated = Notification.objects.filter(user=request.user, is_read=False).update(is_read=True)
        return Response({'marked_read': updated}, status=status.HTTP_200_OK)


# ============================================================================
# Reviews
# ============================================================================

class ReviewCreateView(ClientIPMixin, generics.CreateAPIView):
    """
    Review the other party of a completed rental.

    POST /api/reviews/
    Request body: {"rental": 1, "rating": 5, "comment": "Great!"}
    """
    serializer_class = ReviewCreateSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            with transaction.atomic():
                review = serializer.save()
        except IntegrityError:
            return Response(
                {'rental': ['You have already reviewed this rental.']},
                status=status.HTTP_400_BAD_REQUEST
            )
        except ValidationError as e:
            return Response({'detail': validation_detail(e)}, status=status.HTTP_400_BAD_REQUEST)

        logger.info(
            f"Review created. Review ID: {review.id}, Rental ID: {review.rental_id}, "
            f"Reviewer: {request.user.email}, Reviewee ID: {review.reviewee_id}, Rating: {review.rating}, "
            f"IP: {self.get_client_ip(request)}"
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class UserReviewsView(APIView):
    """Reviews received by a user, newest first. GET /api/users/<id>/reviews/"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        user = User.objects.filter(pk=kwargs.get('pk')).first()
        if user is None:
            return Response({'detail': 'User not found.'}, status=status.HTTP_404_NOT_FOUND)

        queryset = (
            Review.objects.filter(reviewee=user)
            .select_related('reviewer')
            .order_by('-created_at', '-id')
        )
        return paginated_response(
            request,
            queryset,
            ReviewSerializer,
            extra={'rating': str(user.rating), 'reviews_count': user.reviews_count}
        )


# ============================================================================
# Listing assistant
# ============================================================================

class DescriptionAssistView(APIView):
    """
    Draft a listing description.

    POST /api/assist/description/
    Request body: {"title": ..., "category": ..., "condition": ..., "key_features": ...}
    Falls back to a template when the assistant is unavailable.
    """
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        from core.assistant import generate_item_description

        if not request.user or not request.user.is_authenticated:
            return not_authenticated()

        serializer = DescriptionRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        description, generated = generate_item_description(**serializer.validated_data)
        return Response({'description': description, 'generated': generated}, status=status.HTTP_200_OK)


class SearchSuggestionsView(APIView):
    """GET /api/assist/suggestions/?q=camera"""
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        from core.assistant import get_search_suggestions

        suggestions, generated = get_search_suggestions(request.query_params.get('q', ''))
        return Response({'suggestions': suggestions, 'generated': generated}, status=status.HTTP_200_OK)
