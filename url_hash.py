"""
url_hash.py
Helpers for the '#tag&tag' fragment that Astra reads as input options.

Every helper returns its result together with an error slot instead of
raising; callers log the error and keep going with the fallback value.
"""

import re
from urllib.parse import urlsplit

# ASCII characters accepted in the host part. Non-ASCII (IDN) hosts pass through.
_HOST_RX = re.compile(r"^(?:[A-Za-z0-9.\-_~%!$&'()*+,;=:\[\]<>\"]|[^\x00-\x7f])*$")


class InvalidURLError(ValueError):
    """Raised (and returned) when a URL cannot be parsed."""


def parse_url(url):
    """Split url, rejecting hosts and ports that cannot be valid."""
    try:
        parts = urlsplit(url)
        # Accessing the port validates it.
        parts.port
    except ValueError as exc:
        raise InvalidURLError(f'parse "{url}": {exc}') from exc

    if parts.netloc:
        host = parts.netloc.rpartition("@")[2]
        if not _HOST_RX.match(host):
            raise InvalidURLError(f'parse "{url}": invalid character in host name')
    return parts


def get_hash(url):
    """Return (fragment, error)."""
    try:
        return parse_url(url).fragment, None
    except InvalidURLError as exc:
        return "", exc


def add_hash(hash_value, url):
    """
    Merge hash_value tags into the fragment of url.

    Returns:
        (str, bool, InvalidURLError | None): (url, changed, error)
    """
    if not hash_value:
        return url, False, None

    hash_value = hash_value.lstrip("#")
    if not hash_value:
        return url, False, None

    try:
        fragment = parse_url(url).fragment
    except InvalidURLError as exc:
        return url, False, exc

    present = set(fragment.split("&"))
    if all(tag in present for tag in hash_value.split("&")):
        return url, False, None

    if fragment:
        return f"{url}&{hash_value}", True, None
    return f"{url.rstrip('#')}#{hash_value}", True, None


def remove_hash(url):
    """Return (url without fragment, error)."""
    try:
        parse_url(url)
    except InvalidURLError as exc:
        return url, exc
    return url.split("#", 1)[0], None


def links_equal(left, right, with_hash):
    """
    Compare two URLs, optionally ignoring fragments.

    Unparsable URLs fall back to strict comparison.

    Returns:
        (bool, InvalidURLError | None)
    """
    if with_hash or left == right:
        return left == right, None

    left_bare, err = remove_hash(left)
    if err is not None:
        return False, err
    right_bare, err = remove_hash(right)
    if err is not None:
        return False, err
    return left_bare == right_bare, None
