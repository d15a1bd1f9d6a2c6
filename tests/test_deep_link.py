"""
Tests for share links and display name validation
"""
import json

import pytest
from unittest.mock import patch

from watchvault.deep_link import parse_deep_link, share_link
from watchvault.display_name import DEFAULT_DISPLAY_NAME, DisplayNameValidator
from watchvault.exceptions import ValidationException

BASE = "https://example.github.io/WatchVault"


class TestDeepLinks:
    def test_share_link(self):
        assert share_link("abc123", BASE + "/") == f"{BASE}/list/abc123"

    def test_parse_round_trip(self):
        assert parse_deep_link(share_link("Xy_9-z", BASE), BASE) == "Xy_9-z"

    def test_trailing_slash(self):
        assert parse_deep_link(f"{BASE}/list/abc/", BASE) == "abc"

    @pytest.mark.parametrize("url", [
        None,
        "",
        "ftp://example.github.io/WatchVault/list/abc",
        "https://evil.example.com/WatchVault/list/abc",
        "https://example.github.io/Other/list/abc",
        "https://example.github.io/WatchVault/list/",
        "https://example.github.io/WatchVault/list/a b",
        "https://example.github.io/WatchVault/list/abc/extra",
    ])
    def test_rejects_foreign_or_malformed_links(self, url):
        assert parse_deep_link(url, BASE) is None

    def test_rejection_is_logged(self, mock_logger):
        with patch("watchvault.deep_link.logger", mock_logger):
            parse_deep_link("https://evil.example.com/list/abc", BASE)
        mock_logger.warning.assert_called_once()


class TestDisplayNameValidator:
    """Tests for owner display name rules"""

    @pytest.fixture
    def validator(self):
        return DisplayNameValidator(blocked_terms=["badword"])

    def test_trims_spaces_and_tabs(self, validator):
        assert validator.validate(" \tAlice\t ") == "Alice"

    @pytest.mark.parametrize("name", [
        "",
        "   ",
        None,
        "A",
        "x" * 31,
        "Al\nice",
        "Al\u2028ice",
        "Al\x07ice",
        "The BadWord Club",
    ])
    def test_rejected(self, validator, name):
        with pytest.raises(ValidationException):
            validator.validate(name)

    def test_length_bounds(self, validator):
        assert validator.validate("Al") == "Al"
        assert validator.validate("x" * 30) == "x" * 30

    def test_from_file(self, tmp_path):
        path = tmp_path / "blocklist.json"
        path.write_text(json.dumps(["spam"]))
        validator = DisplayNameValidator.from_file(str(path))
        with pytest.raises(ValidationException):
            validator.validate("SPAMMER")

    def test_missing_blocklist_disables_filtering(self, tmp_path):
        validator = DisplayNameValidator.from_file(str(tmp_path / "missing.json"))
        assert validator.validate("spammer") == "spammer"

    def test_default_display_name(self):
        assert DisplayNameValidator.display_name("   ") == DEFAULT_DISPLAY_NAME
        assert DisplayNameValidator.display_name("y" * 40) == "y" * 30
