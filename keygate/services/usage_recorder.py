"""
Usage Recorder — append-only audit trail of validation attempts.

Recording is a side effect of validation, not part of its outcome: a failed
write is logged once to the operational log and dropped. It is never
retried and never reaches the caller.
"""

import logging
from typing import Optional

from keygate.services.key_store import KeyStore, UsageEntry

logger = logging.getLogger(__name__)


class UsageRecorder:
    def __init__(self, store: KeyStore):
        self._store = store

    def record(self, entry: UsageEntry) -> Optional[int]:
        """Append *entry*. Returns the new record id, or None when the write failed."""
        try:
            return self._store.append_usage(entry)
        except Exception as exc:
            logger.error(
                "usage_record_failed",
                extra={
                    "usage.key_id": entry.api_key_id,
                    "usage.action": entry.action,
                    "usage.result": entry.metadata.get("result"),
                    "error.kind": type(exc).__name__,
                },
            )
            return None
