"""Shared database utilities."""

from .connection import get_supabase_client, SupabaseConfig
from .datastore import Datastore, Filter, SupabaseDatastore

__all__ = ["get_supabase_client", "SupabaseConfig", "Datastore", "Filter", "SupabaseDatastore"]
