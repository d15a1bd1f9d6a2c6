"""
WatchVault - personal media tracking core.

Direction ledger with promotion-only transitions, the discovery loop with
bounded pagination and undo, user lists, and one-way publish/follow sync
against a remote document store.
"""
__version__ = "1.0.0"
