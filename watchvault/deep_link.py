"""
Share links for published lists: ``<deep_link_base>/list/<remote doc id>``.
"""
import logging
import re
from urllib.parse import urlparse

from watchvault.constants import DEFAULT_DEEP_LINK_BASE

logger = logging.getLogger('main')

_DOC_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def share_link(doc_id, base=DEFAULT_DEEP_LINK_BASE):
    return f"{base.rstrip('/')}/list/{doc_id}"


def parse_deep_link(url, base=DEFAULT_DEEP_LINK_BASE):
    """Return the list document ID of a share link, or None if the URL is not one of ours"""
    if not url:
        return None

    parsed = urlparse(url)
    expected = urlparse(base)
    if parsed.scheme not in ("http", "https") or parsed.hostname != expected.hostname:
        logger.warning(f"Unrecognized deep link host: {parsed.hostname}")
        return None

    prefix = expected.path.rstrip("/") + "/list/"
    path = parsed.path.rstrip("/")
    if not path.startswith(prefix):
        logger.warning(f"No matching route for deep link path: {parsed.path}")
        return None

    doc_id = path[len(prefix):]
    if not _DOC_ID_PATTERN.match(doc_id):
        logger.warning(f"Malformed list ID in deep link: {doc_id!r}")
        return None
    return doc_id
