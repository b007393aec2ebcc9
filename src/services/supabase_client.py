"""Supabase client wrapper with async context manager support."""

import os
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.utils.errors import TaskStoreError
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise TaskStoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


async def close_supabase_client() -> None:
    """Drop the Supabase client singleton."""
    global _client
    if _client:
        # Supabase-py has no explicit close
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        """Enter async context."""
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context."""
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


# Tasks table operations
async def get_task(task_id: str) -> Optional[dict]:
    """Get a task document by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").select("*").eq("id", task_id).execute()
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise TaskStoreError(f"Failed to get task: {e}")


async def get_tasks_by_stage(stage: str) -> list[dict]:
    """Get all non-archived tasks currently in a stage."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").select("*").eq("stage", stage).neq("archived", True).execute()
            return result.data if result.data else []
        except Exception as e:
            raise TaskStoreError(f"Failed to get tasks by stage: {e}")


async def get_open_tasks() -> list[dict]:
    """Get all non-archived tasks that are not completed."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").select("*").neq("stage", "Completed").neq("archived", True).execute()
            return result.data if result.data else []
        except Exception as e:
            raise TaskStoreError(f"Failed to get open tasks: {e}")


async def update_task(task_id: str, updates: dict) -> dict:
    """Update fields on a task document."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").update(updates).eq("id", task_id).execute()
            if result.data and len(result.data) > 0:
                return result.data[0]
            raise TaskStoreError(f"Failed to update task: {task_id}")
        except TaskStoreError:
            raise
        except Exception as e:
            raise TaskStoreError(f"Failed to update task: {e}")


async def append_task_log(task_id: str, entry: dict) -> None:
    """Append one entry to a task's log without rewriting earlier entries."""
    async with SupabaseClient() as client:
        try:
            # Use the database function for an atomic append
            try:
                client.rpc("append_task_log", {"task_id": task_id, "entry": entry}).execute()
            except Exception:
                # Fallback to read-then-write
                result = client.table("tasks").select("log").eq("id", task_id).execute()
                if not result.data:
                    raise TaskStoreError(f"Task not found: {task_id}")
                log = result.data[0].get("log") or []
                client.table("tasks").update({"log": [*log, entry]}).eq("id", task_id).execute()
        except TaskStoreError:
            raise
        except Exception as e:
            raise TaskStoreError(f"Failed to append task log: {e}")


async def get_property_directory() -> list[dict]:
    """Get property directory entries (name, unitCode, ical)."""
    async with SupabaseClient() as client:
        try:
            result = client.table("property_directory").select("*").execute()
            return result.data if result.data else []
        except Exception as e:
            raise TaskStoreError(f"Failed to get property directory: {e}")


# Calendar feed cache rows
async def get_ical_cache_row(cache_id: str) -> Optional[dict]:
    """Get a cached calendar feed row by cache ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("ical_cache").select("*").eq("id", cache_id).execute()
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise TaskStoreError(f"Failed to get ical cache row: {e}")


async def upsert_ical_cache_row(row: dict) -> None:
    """Insert or replace a cached calendar feed row."""
    async with SupabaseClient() as client:
        try:
            client.table("ical_cache").upsert(row).execute()
        except Exception as e:
            raise TaskStoreError(f"Failed to write ical cache row: {e}")
