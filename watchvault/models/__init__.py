"""
Models package

One model per file:
- ledger_record.py
- user_list.py
- list_entry.py
- followed_list.py
- followed_list_item.py
"""

from .ledger_record import Direction, LedgerRecord
from .user_list import UserList
from .list_entry import ListEntry
from .followed_list import FollowedList
from .followed_list_item import FollowedListItem

__all__ = [
    "Direction",
    "LedgerRecord",
    "UserList",
    "ListEntry",
    "FollowedList",
    "FollowedListItem",
]
