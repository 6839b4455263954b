# chatsync/sync.py
import logging
from dataclasses import dataclass
from typing import Any, List

from sqlalchemy.orm import Session

from chatsync.merge_engine import MergeEngine
from chatsync.records import add_interaction
from chatsync.schemas import InteractionRecord, VocabRecord, decode_record

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    interactions: int = 0
    vocab_updates: int = 0
    skipped: int = 0


class SyncCoordinator:
    """Applies one client batch in a single transaction.

    Either every decoded record plus the preferences counter lands, or none of
    it does. Envelopes that do not decode are skipped before the transaction
    starts and never count as failures.
    """

    def __init__(self, db: Session):
        self.db = db
        self.merger = MergeEngine(db)

    def apply(self, user_id: str, batch: List[Any]) -> SyncResult:
        records = [r for r in (decode_record(raw) for raw in batch) if r is not None]
        result = SyncResult(skipped=len(batch) - len(records))

        try:
            with self.db.begin():
                for record in records:
                    if isinstance(record, InteractionRecord):
                        add_interaction(self.db, user_id, record)
                        result.interactions += 1
                    elif isinstance(record, VocabRecord):
                        for word, info in record.entries:
                            self.merger.merge_vocab_delta(user_id, word, info)
                            result.vocab_updates += 1
                self.merger.touch_preferences(user_id, result.interactions)
        except Exception as exc:
            logger.error("Sync for %s rolled back: %s", user_id, exc)
            raise

        logger.info("Synced %s: %d interactions, %d vocab updates, %d skipped",
                    user_id, result.interactions, result.vocab_updates, result.skipped)
        return result
