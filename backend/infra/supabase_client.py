from typing import Optional
from supabase import create_client, Client
from backend import config

_service_supabase: Optional[Client] = None

def get_service_supabase() -> Client:
    """
    Client Supabase service-role (bypass RLS), utilisé pour signer les URLs d'upload Storage.
    """
    global _service_supabase
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_URL / SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
    return _service_supabase

def get_storage_bucket(bucket: Optional[str] = None):
    """Bucket Storage (par défaut SUPABASE_STORAGE_BUCKET)."""
    return get_service_supabase().storage.from_(bucket or config.SUPABASE_STORAGE_BUCKET)
