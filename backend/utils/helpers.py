# utils/helpers.py
import re

from errors import ValidationError


def normalize(text):
    """
    Normalize free text for comparison.

    Lowercases, drops every character that is neither a word character nor
    whitespace, collapses runs of whitespace and trims.

    Examples:
        "Don't Stop Me Now!" -> "dont stop me now"
        "  AC/DC  " -> "acdc"
    """
    if not text:
        return ''
    text = re.sub(r'[^\w\s]', '', str(text).lower())
    return re.sub(r'\s+', ' ', text).strip()


def parse_bool(value, default=False):
    """Interpret env-style strings ("true", "1", "yes") as booleans"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def json_object(data):
    """
    Request body as a dict; a missing or unparsable body counts as empty.

    Raises:
        ValidationError: the body is JSON but not an object
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def text_field(data, key):
    """String value of a body field, '' when absent or not a string"""
    value = data.get(key)
    return value if isinstance(value, str) else ''
