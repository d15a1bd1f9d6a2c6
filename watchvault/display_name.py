"""
Owner display names shown on published lists.

Rules: 2-30 characters after trimming, no line breaks or control characters,
no blocked term as a substring (case-insensitive). Uniqueness is not enforced;
the owner ID is the real identity.
"""
import json
import logging
import os
import unicodedata

from watchvault.exceptions import ValidationException

logger = logging.getLogger('main')

MIN_LENGTH = 2
MAX_LENGTH = 30
DEFAULT_DISPLAY_NAME = "WatchVault User"


class DisplayNameValidator:
    def __init__(self, blocked_terms=None):
        self.blocked_terms = {term.lower() for term in (blocked_terms or []) if term}

    @classmethod
    def from_file(cls, path):
        """Load the blocklist from a JSON array of terms; a missing file disables filtering"""
        if not os.path.exists(path):
            logger.warning(f"Blocklist {path} not found, display name filtering disabled")
            return cls()
        try:
            with open(path, "r") as f:
                return cls(json.load(f))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load blocklist {path}: {e}")
            return cls()

    def validate(self, raw_name):
        """Return the trimmed name, or raise ValidationException"""
        name = (raw_name or "").strip(" \t")
        if not name:
            raise ValidationException("Name cannot be blank.")
        if any(ch in "\r\n\u2028\u2029" for ch in name):
            raise ValidationException("Name cannot contain line breaks.")
        if any(unicodedata.category(ch) == "Cc" for ch in name):
            raise ValidationException("Name cannot contain control characters.")
        if len(name) < MIN_LENGTH:
            raise ValidationException(f"Name must be at least {MIN_LENGTH} characters.")
        if len(name) > MAX_LENGTH:
            raise ValidationException(f"Name must be {MAX_LENGTH} characters or fewer.")

        lowered = name.lower()
        if any(term in lowered for term in self.blocked_terms):
            raise ValidationException("This name contains language that isn't allowed.")
        return name

    @staticmethod
    def display_name(raw_name):
        """Best-effort name for a new account: trimmed, truncated, or the default"""
        name = (raw_name or "").strip()
        if not name:
            return DEFAULT_DISPLAY_NAME
        return name[:MAX_LENGTH]
