"""
Services package

- ledger_store.py: guarded direction writes, ratings, removal and resets
- list_membership.py: user lists and their entries
- session_controller.py: discovery queue, pagination and undo
- publish_sync.py: push of published lists to the remote store
- follow_sync.py: local cache of followed remote lists
- smart_collections.py: derived groupings of the seen library
"""
