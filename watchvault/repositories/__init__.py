"""
Repositories package

Each repository encapsulates database queries for one model:
- ledger_repository.py
- user_list_repository.py
- list_entry_repository.py
- followed_list_repository.py

Repositories stage changes on the session; services own the commit so that a
service operation is a single unit of work.

Usage:
    from watchvault.repositories.ledger_repository import LedgerRepository
    record = LedgerRepository.get_by_unique_key("movie_550")
"""
