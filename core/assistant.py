"""
Best-effort listing and chat assistance backed by a generative text API.

Every function here returns something useful without the API: when no key
is configured or the call fails, a template result is produced instead and
a warning is logged.
"""

import json
import logging

import requests
from django.conf import settings

from .models import Item, Message

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
CHAT_HISTORY_LIMIT = 10
CHAT_FALLBACK_REPLY = "Thanks for your inquiry! We'll respond as soon as possible."


def _generate(prompt, json_output=False):
    """
    Call the generateContent endpoint and return the response text.

    Returns None when the assistant is not configured or the call fails.
    """
    api_key = settings.GEMINI_API_KEY
    if not api_key:
        return None

    url = f"{settings.GEMINI_API_URL.rstrip('/')}/{settings.GEMINI_MODEL}:generateContent"
    body = {'contents': [{'parts': [{'text': prompt}]}]}
    if json_output:
        body['generationConfig'] = {'responseMimeType': 'application/json'}

    try:
        response = requests.post(
            url,
            params={'key': api_key},
            json=body,
            timeout=settings.GEMINI_TIMEOUT,
        )
        response.raise_for_status()
        payload = response.json()
        return payload['candidates'][0]['content']['parts'][0]['text'].strip()
    except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
        logger.warning(f"Text generation failed, using fallback. Error: {e}")
        return None


def template_description(title, category, condition, key_features=''):
    description = (
        f"Rent this {condition.lower()} {title} from the {category} category. "
        f"Well maintained and ready for your next project or event."
    )
    if key_features:
        description += f" Highlights: {key_features.strip().rstrip('.')}."
    return description + " Message the owner for availability and pickup details."


def generate_item_description(title, category, condition, key_features=''):
    """
    Draft a rental listing description.

    Returns:
        tuple: (description, generated: bool) where generated is False for
        the template fallback
    """
    prompt = (
        "Write an honest, friendly rental listing description under 150 words.\n"
        f"Title: {title}\nCategory: {category}\nCondition: {condition}\n"
        f"Key features: {key_features}"
    )
    text = _generate(prompt)
    if text:
        return text, True
    return template_description(title, category, condition, key_features), False


def fallback_suggestions(query):
    """Category names and listing titles that match the query."""
    query = (query or '').strip().lower()
    if not query:
        return []

    suggestions = [
        label for _, label in Item.CATEGORY_CHOICES
        if query in label.lower() or label.lower() in query
    ]
    titles = (
        Item.objects.filter(is_available=True, is_blocked=False, title__icontains=query)
        .values_list('title', flat=True)
        .distinct()[:MAX_SUGGESTIONS]
    )
    for title in titles:
        if title not in suggestions:
            suggestions.append(title)
    return suggestions[:MAX_SUGGESTIONS]


def get_search_suggestions(query):
    """
    Suggest up to five related search terms for a query.

    Returns:
        tuple: (list of str, generated: bool)
    """
    if not query or not query.strip():
        return [], False

    prompt = (
        f'Suggest {MAX_SUGGESTIONS} search terms for a peer-to-peer rental marketplace '
        f'related to "{query.strip()}". Return only a JSON array of strings.'
    )
    text = _generate(prompt, json_output=True)
    if text:
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.warning("Search suggestions were not valid JSON, using fallback.")
        else:
            if isinstance(parsed, list):
                suggestions = [str(s).strip() for s in parsed if str(s).strip()]
                return suggestions[:MAX_SUGGESTIONS], True

    return fallback_suggestions(query), False


def generate_chat_response(store_name, message, history=()):
    """
    Draft a short customer-service reply on behalf of a shop.

    Args:
        store_name: Name the reply is written as
        message: The customer's latest message
        history: Earlier (sender, text) pairs, oldest first, where sender is
            'store' or 'user'

    Returns:
        tuple: (reply, generated: bool)
    """
    transcript = '\n'.join(f'{sender}: {text}' for sender, text in history)
    prompt = (
        f'You handle customer service for "{store_name}", a rental shop on the HiramKo '
        'peer-to-peer rental marketplace. Reply politely, professionally and briefly '
        '(at most 2 sentences). Riders can deliver items.\n'
        f'Conversation so far:\n{transcript}\n'
        f'Customer message: "{message}"\n'
        f'Reply as {store_name}:'
    )
    text = _generate(prompt)
    if text:
        return text, True
    return CHAT_FALLBACK_REPLY, False


def reply_as_shops(message):
    """
    Answer a new chat message for every shop account in the conversation.

    Shops do not answer other shops. Returns the reply messages created.
    """
    if not settings.SHOP_AUTO_REPLY or message.sender.is_shop:
        return []

    conversation = message.conversation
    shops = conversation.participants.filter(is_shop=True).exclude(pk=message.sender_id)
    earlier = list(
        conversation.messages.exclude(pk=message.pk)
        .order_by('-created_at', '-id')[:CHAT_HISTORY_LIMIT]
    )
    earlier.reverse()

    replies = []
    for shop in shops:
        history = [
            ('store' if previous.sender_id == shop.pk else 'user', previous.content)
            for previous in earlier
        ]
        text, generated = generate_chat_response(shop.display_name, message.content, history)
        reply = Message.objects.create(
            conversation=conversation,
            sender=shop,
            content=text[:Message._meta.get_field('content').max_length],
        )
        logger.info(
            f"Shop auto-reply sent. Conversation ID: {conversation.pk}, Shop ID: {shop.pk}, "
            f"Generated: {generated}"
        )
        replies.append(reply)
    return replies
