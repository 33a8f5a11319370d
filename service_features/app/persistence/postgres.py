"""
PostgreSQL persistence layer for feature policies.
"""

from typing import Any, Dict, Mapping, Optional

import asyncpg
from shared.logging import get_logger
from ..errors import PolicyStoreUnavailable
from ..rules.models import PolicyRecord

_POLICY_COLUMNS = (
    "enabled", "min_tier", "rollout_percentage", "allowlist", "denylist", "beta_users"
)


class PostgresPolicyRepository:
    """Reads the ``feature_policies`` table.

    Every policy column is nullable; a row overrides only its non-NULL
    columns.

    ``load_policies`` is all-or-nothing: a connection fault or a single
    malformed row raises ``PolicyStoreUnavailable``.
    """
    
    def __init__(self, dsn: str, create_tables: bool = True):
        self.dsn = dsn
        self.create_tables = create_tables
        self.logger = get_logger("features.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
    
    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=5,
                command_timeout=10
            )
            
            if self.create_tables:
                await self._create_tables()
            
            self.logger.info("PostgreSQL policy store started")
            
        except Exception as e:
            self.logger.error("Failed to start PostgreSQL policy store", error=str(e))
            raise PolicyStoreUnavailable(str(e))
    
    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL policy store stopped")
    
    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS feature_policies (
                    feature_key TEXT PRIMARY KEY,
                    enabled BOOLEAN,
                    min_tier TEXT CHECK (min_tier IN ('anonymous', 'free', 'premium')),
                    rollout_percentage INTEGER
                        CHECK (rollout_percentage >= 0 AND rollout_percentage <= 100),
                    allowlist TEXT[],
                    denylist TEXT[],
                    beta_users TEXT[],
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
    
    async def load_policies(self) -> Dict[str, PolicyRecord]:
        """Load every stored policy record keyed by feature key."""
        if self.pool is None:
            raise PolicyStoreUnavailable("Policy store not started")
        
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT feature_key, enabled, min_tier, rollout_percentage,
                           allowlist, denylist, beta_users
                    FROM feature_policies
                    ORDER BY feature_key
                """)
            
            policies = {row["feature_key"]: self._row_to_record(row) for row in rows}
            
        except Exception as e:
            self.logger.error("Error loading feature policies", error=str(e))
            raise PolicyStoreUnavailable(str(e))
        
        self.logger.debug("Feature policies loaded", count=len(policies))
        return policies
    
    def _row_to_record(self, row: Mapping[str, Any]) -> PolicyRecord:
        """Convert database row to a policy record.

        NULL columns are left unset so the default policy keeps those fields.
        """
        return PolicyRecord(**{
            column: row[column] for column in _POLICY_COLUMNS if row[column] is not None
        })
