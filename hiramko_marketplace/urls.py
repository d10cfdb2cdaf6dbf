"""
URL configuration for the HiramKo marketplace project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenBlacklistView, TokenVerifyView

from core.views import (
    CancelRentalView,
    CheckoutView,
    ConfirmPaymentView,
    ConfirmReturnView,
    ConversationListCreateView,
    ConversationMessagesView,
    ConversationReadView,
    CustomTokenRefreshView,
    DeclineRentalView,
    DeliveryAcceptView,
    DeliveryJobListView,
    DeliveryStatusView,
    DescriptionAssistView,
    DisputeListView,
    DisputeResolveView,
    DisputeView,
    EmailTokenObtainPairView,
    EscrowTopUpView,
    EscrowView,
    HandoverView,
    InitiateReturnView,
    ItemBlockView,
    ItemDetailView,
    ItemImageUploadView,
    ItemListCreateView,
    KycQueueView,
    KycSubmissionView,
    LoginView,
    LogoutView,
    MyItemsView,
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
    PaymentProofView,
    PublicProfileView,
    RentalDetailView,
    RentalListCreateView,
    RentalQuoteView,
    ReviewCreateView,
    SearchSuggestionsView,
    UserProfileView,
    UserRegistrationView,
    UserReviewsView,
    UserVerificationView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication & profiles
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', LoginView.as_view(), name='user_login'),
    path('api/auth/refresh/', CustomTokenRefreshView.as_view(), name='auth_refresh'),
    path('api/auth/logout/', LogoutView.as_view(), name='user_logout'),
    path('api/auth/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/auth/kyc/', KycSubmissionView.as_view(), name='kyc_submit'),
    path('api/users/<int:pk>/', PublicProfileView.as_view(), name='public_profile'),
    path('api/users/<int:pk>/reviews/', UserReviewsView.as_view(), name='user_reviews'),

    # Listings
    path('api/items/', ItemListCreateView.as_view(), name='item_list'),
    path('api/items/mine/', MyItemsView.as_view(), name='my_items'),
    path('api/items/<int:pk>/', ItemDetailView.as_view(), name='item_detail'),
    path('api/items/<int:pk>/images/', ItemImageUploadView.as_view(), name='item_images'),

    # Rentals
    path('api/rentals/', RentalListCreateView.as_view(), name='rental_list'),
    path('api/rentals/quote/', RentalQuoteView.as_view(), name='rental_quote'),
    path('api/rentals/<int:pk>/', RentalDetailView.as_view(), name='rental_detail'),
    path('api/rentals/<int:pk>/payment-proof/', PaymentProofView.as_view(), name='rental_payment_proof'),
    path('api/rentals/<int:pk>/checkout/', CheckoutView.as_view(), name='rental_checkout'),
    path('api/rentals/<int:pk>/confirm-payment/', ConfirmPaymentView.as_view(), name='rental_confirm_payment'),
    path('api/rentals/<int:pk>/decline/', DeclineRentalView.as_view(), name='rental_decline'),
    path('api/rentals/<int:pk>/cancel/', CancelRentalView.as_view(), name='rental_cancel'),
    path('api/rentals/<int:pk>/handover/', HandoverView.as_view(), name='rental_handover'),
    path('api/rentals/<int:pk>/initiate-return/', InitiateReturnView.as_view(), name='rental_initiate_return'),
    path('api/rentals/<int:pk>/confirm-return/', ConfirmReturnView.as_view(), name='rental_confirm_return'),
    path('api/rentals/<int:pk>/dispute/', DisputeView.as_view(), name='rental_dispute'),

    # Deliveries
    path('api/deliveries/', DeliveryJobListView.as_view(), name='delivery_jobs'),
    path('api/deliveries/<int:pk>/accept/', DeliveryAcceptView.as_view(), name='delivery_accept'),
    path('api/deliveries/<int:pk>/status/', DeliveryStatusView.as_view(), name='delivery_status'),

    # Escrow
    path('api/escrow/', EscrowView.as_view(), name='escrow'),
    path('api/escrow/top-up/', EscrowTopUpView.as_view(), name='escrow_top_up'),

    # Admin console
    path('api/admin/disputes/', DisputeListView.as_view(), name='admin_disputes'),
    path('api/admin/rentals/<int:pk>/resolve/', DisputeResolveView.as_view(), name='admin_resolve_dispute'),
    path('api/admin/items/<int:pk>/block/', ItemBlockView.as_view(), name='admin_block_item'),
    path('api/admin/kyc/', KycQueueView.as_view(), name='admin_kyc_queue'),
    path('api/admin/users/<int:pk>/verify/', UserVerificationView.as_view(), name='admin_verify_user'),

    # Chat
    path('api/conversations/', ConversationListCreateView.as_view(), name='conversation_list'),
    path('api/conversations/<int:pk>/messages/', ConversationMessagesView.as_view(), name='conversation_messages'),
    path('api/conversations/<int:pk>/read/', ConversationReadView.as_view(), name='conversation_read'),

    # Notifications
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/read-all/', NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notifications/<int:pk>/read/', NotificationReadView.as_view(), name='notification_read'),

    # Reviews
    path('api/reviews/', ReviewCreateView.as_view(), name='review_create'),

    # Listing assistant
    path('api/assist/description/', DescriptionAssistView.as_view(), name='assist_description'),
    path('api/assist/suggestions/', SearchSuggestionsView.as_view(), name='assist_suggestions'),

    # JWT
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
    path('api/token/blacklist/', TokenBlacklistView.as_view(), name='token_blacklist'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
