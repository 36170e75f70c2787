#!/usr/bin/env python3
"""
Supabase Integration Module

This module wraps the supabase-py client used as the survey data store. All
persistent state of the pipeline (raw survey responses, the normalized
migration table and the server-side aggregation functions) lives in Supabase;
this module only knows how to reach it.

Key Features:
- Credential management with environment variables and .env files
- Table inserts and RPC calls
- Consistent logging and error propagation

Usage:
    from survey_ops.supabase_integration import SupabaseDatabase

    db = SupabaseDatabase()
    db.insert("survey_responses", rows)
    stats = db.rpc("get_migration_stats")
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger
from supabase import Client, create_client

from .config_loader import Config

# Look for .env file in project root (parent of survey_ops)
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
    logger.debug(f"✅ Loaded environment variables from {env_path}")
else:
    load_dotenv()


class StoreError(RuntimeError):
    """A call to the survey store failed."""


class SupabaseDatabase:
    """
    Standard Supabase database operations using the official supabase-py client.

    Each instance owns its client; create one per pipeline run and pass it to
    the components that need it.
    """

    def __init__(self, config: Optional[Config] = None, client: Optional[Client] = None):
        """Initialize the database client using the service role key.

        Args:
            config: Optional Config instance. If None, creates new instance.
            client: Optional pre-built client (skips credential loading)
        """
        self.config = config or Config()
        self.client: Optional[Client] = client
        if self.client is None:
            self.credentials = self._load_credentials()
            self._create_client()

    def _load_credentials(self) -> Dict[str, Optional[str]]:
        """Load Supabase credentials from environment variables or config."""
        logger.debug("📋 Loading Supabase credentials...")

        service_url = os.getenv("SUPABASE_URL") or os.getenv("SERVICE_URL_SUPABASE")
        service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv(
            "API_KEY_SUPABASE_SERVICE"
        )
        anon_key = os.getenv("SUPABASE_ANON_KEY") or os.getenv("API_KEY_SUPABASE")

        # Fall back to config file
        if not service_url or not service_key:
            supabase_config = self.config.get("supabase", {}) or {}
            service_url = service_url or supabase_config.get("url")
            service_key = service_key or supabase_config.get("service_key")
            anon_key = anon_key or supabase_config.get("anon_key")

        if not service_url or not service_key:
            logger.error("❌ Missing required Supabase credentials:")
            logger.error("   Required: SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY")
            logger.error("   Or add url / service_key to config.yaml under 'supabase'")
            raise ValueError("Missing required Supabase configuration for survey store.")

        logger.debug("   ✅ Loaded Supabase credentials")
        return {"url": service_url, "service_key": service_key, "anon_key": anon_key}

    def _create_client(self) -> None:
        """Create Supabase client."""
        try:
            logger.debug("🔌 Creating Supabase client...")
            self.client = create_client(
                self.credentials["url"],
                self.credentials["service_key"],  # Use service role key for backend operations
            )
            logger.debug("   ✅ Supabase client created")
        except Exception as e:
            logger.error(f"❌ Failed to create Supabase client: {e}")
            raise ValueError(f"Failed to initialize Supabase client: {e}") from e

    def _require_client(self) -> Client:
        if not self.client:
            raise ValueError("Supabase client not initialized")
        return self.client

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert one batch of rows as a single request.

        Args:
            table: Table name
            rows: Row payloads

        Returns:
            The inserted rows as returned by the API
        """
        client = self._require_client()

        try:
            response = client.table(table).insert(rows).execute()

            if hasattr(response, "data") and isinstance(response.data, list):
                return response.data
            logger.warning(f"Insert into {table} executed but response format unexpected or empty.")
            return []
        except Exception as e:
            logger.error(f"Database error inserting into {table}: {str(e)}")
            raise

    def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a Postgres function exposed through PostgREST.

        Args:
            function: Function name
            params: Named arguments

        Returns:
            The function's result payload
        """
        client = self._require_client()

        try:
            response = client.rpc(function, params or {}).execute()
            return response.data
        except Exception as e:
            logger.error(f"Database error calling {function}(): {str(e)}")
            raise
