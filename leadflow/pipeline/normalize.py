"""
Pure normalization helpers shared by the mapper and the adapters.

Nothing here touches the database.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse


# Email certainty ladder, higher wins. Unknown labels rank as 'default'.
CERTAINTY_LEVELS = {
    'ultra_sure': 3,
    'sure': 2,
    'default': 1,
}


def clean_str(value: Any) -> Optional[str]:
    """Strip strings; empty or non-string values become None."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def first_of(data: dict, *keys: str) -> Any:
    """First non-empty value among `keys` (alias lookup for provider fields)."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != '':
            return value
    return None


def extract_domain(url_or_domain: Any) -> Optional[str]:
    """
    Bare host for a URL or domain string.

    'https://www.Acme.com/about' -> 'acme.com'
    'www.acme.com'               -> 'acme.com'
    'acme.com'                   -> 'acme.com'  (bare domains pass through unchanged)
    """
    cleaned = clean_str(url_or_domain)
    if not cleaned:
        return None
    if '://' not in cleaned and not cleaned.lower().startswith('www.'):
        return cleaned
    parsed = urlparse(cleaned if '://' in cleaned else f'https://{cleaned}')
    host = parsed.hostname
    if not host:
        match = re.match(r'(?:https?://)?(?:www\.)?([^/]+)', cleaned, re.IGNORECASE)
        return match.group(1) if match else cleaned
    return re.sub(r'^www\.', '', host.lower())


def normalize_email(email: Any) -> Optional[str]:
    cleaned = clean_str(email)
    return cleaned.lower() if cleaned else None


def parse_linkedin_url(value: Any) -> Optional[str]:
    """
    LinkedIn URLs arrive as plain strings, lists, or JSON-encoded lists
    ("['http://www.linkedin.com/company/3284074']"). Returns the first URL
    without a trailing slash.
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    cleaned = clean_str(value)
    if not cleaned:
        return None
    if cleaned.startswith('['):
        try:
            parsed = json.loads(cleaned.replace("'", '"'))
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            cleaned = clean_str(parsed[0]) if parsed else None
            if not cleaned:
                return None
    return cleaned.rstrip('/')


def parse_functional(value: Any) -> Optional[str]:
    """Functional area as a comma-joined string ("['sales', 'ops']" -> "sales, ops")."""
    if isinstance(value, (list, tuple)):
        parts = [clean_str(v) for v in value]
    else:
        cleaned = clean_str(value)
        if not cleaned:
            return None
        try:
            parsed = json.loads(cleaned.replace("'", '"'))
        except ValueError:
            parsed = cleaned
        parts = [clean_str(v) for v in parsed] if isinstance(parsed, list) else [cleaned]
    parts = [p for p in parts if p]
    return ', '.join(parts) if parts else None


def parse_phone_numbers(*values: Any) -> Optional[List[str]]:
    numbers = []
    for value in values:
        if isinstance(value, (list, tuple)):
            numbers.extend(clean_str(v) for v in value)
        elif value is not None:
            numbers.append(clean_str(value))
    numbers = [n for n in numbers if n]
    return list(dict.fromkeys(numbers)) or None


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """ISO strings, datetimes and epoch milliseconds; anything else is None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def is_better_certainty(new: Optional[str], existing: Optional[str]) -> bool:
    """True when `new` ranks equal to or above `existing`."""
    if not new:
        return False
    if not existing:
        return True
    new_level = CERTAINTY_LEVELS.get(new, CERTAINTY_LEVELS['default'])
    existing_level = CERTAINTY_LEVELS.get(existing, CERTAINTY_LEVELS['default'])
    return new_level >= existing_level


def chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
