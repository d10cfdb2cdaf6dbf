"""
Field validators shared by marketplace models and serializers.
"""

import re
from django.core.exceptions import ValidationError


MAX_IMAGE_SIZE = 5 * 1024 * 1024
VALID_IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'webp']
VALID_IMAGE_CONTENT_TYPES = ['image/jpeg', 'image/png', 'image/webp']


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts local (09171234567) and international (+63 917 123 4567) formats
    with optional spaces, dashes and parentheses. Requires 10-15 digits.

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Optional field
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10 or len(digits) > 15:
        raise ValidationError(
            'Phone number must contain between 10 and 15 digits.',
            code='invalid_phone_length'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_gcash_number(value):
    """
    Validate a GCash wallet number (Philippine mobile number).

    Valid formats: 09171234567, +639171234567, 639171234567
    """
    if not value:
        return

    cleaned = re.sub(r'[\s\-]', '', value)
    if not re.match(r'^(09|\+?639)\d{9}$', cleaned):
        raise ValidationError(
            'GCash number must be a valid Philippine mobile number (e.g. 09171234567).',
            code='invalid_gcash_number'
        )


def validate_image_upload(image):
    """
    Validate an uploaded image file.

    Used for avatars, item photos, payment receipts, delivery proofs and
    identity documents.

    Checks:
    - File size (max 5MB)
    - File extension (jpg, jpeg, png, webp)
    - MIME type when the upload carries one

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    if image.size > MAX_IMAGE_SIZE:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    file_name = image.name.lower()
    if not any(file_name.endswith(f'.{ext}') for ext in VALID_IMAGE_EXTENSIONS):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(VALID_IMAGE_EXTENSIONS)}',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in VALID_IMAGE_CONTENT_TYPES:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )
