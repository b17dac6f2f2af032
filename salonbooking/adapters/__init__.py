"""
Adapters layer - External integrations (Supabase REST and auth APIs).
"""

from .mock_store import InMemoryStore
from .supabase_client import SupabaseClient

__all__ = ["InMemoryStore", "SupabaseClient"]
