from pulse.supabase_client.frame_store import FrameStore
from pulse.supabase_client.supabase_service import SupabaseService, get_store, reset_store

__all__ = ["FrameStore", "SupabaseService", "get_store", "reset_store"]
