"""
In-memory policy repository for local runs and tests.
"""

from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger
from ..errors import PolicyStoreUnavailable
from ..rules.models import PolicyRecord


class InMemoryPolicyRepository:
    """Serves a fixed set of policy records."""

    def __init__(self, records: Optional[Mapping[str, Any]] = None):
        self.logger = get_logger("features.persistence.memory")
        self.records: Dict[str, PolicyRecord] = {}
        self.available = True
        for feature_key, record in (records or {}).items():
            self.put(feature_key, record)

    def put(self, feature_key: str, record: Any) -> PolicyRecord:
        """Store or replace the record for ``feature_key``."""
        if not isinstance(record, PolicyRecord):
            record = PolicyRecord.model_validate(record)
        self.records[feature_key] = record
        self.logger.debug("Policy record stored", feature_key=feature_key)
        return record

    def remove(self, feature_key: str) -> bool:
        return self.records.pop(feature_key, None) is not None

    async def load_policies(self) -> Dict[str, PolicyRecord]:
        if not self.available:
            raise PolicyStoreUnavailable("In-memory policy store marked unavailable")
        return dict(self.records)
