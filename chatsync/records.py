# chatsync/records.py
"""Append-only log writers and the trained-response store."""
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from chatsync.errors import NotFoundError
from chatsync.models import Interaction, LearningPattern, ScriptAnalyticsEvent, TrainedResponse
from chatsync.schemas import InteractionRecord, LearningPayload, ScriptEventPayload, TrainingPayload

logger = logging.getLogger(__name__)


def add_interaction(db: Session, user_id: str, record: InteractionRecord) -> Interaction:
    row = Interaction(
        user_id=user_id,
        user_prompt=record.user_prompt,
        bot_response=record.bot_response,
        script=record.script,
        intent=record.intent,
        confidence=record.confidence,
        timestamp=record.timestamp,
    )
    db.add(row)
    db.flush()
    return row


def add_learning_pattern(db: Session, payload: LearningPayload) -> LearningPattern:
    row = LearningPattern(
        user_id=payload.user_id,
        patterns=payload.patterns,
        pattern_type=payload.pattern_type or "general",
        success_rate=payload.success_rate or 0.0,
    )
    db.add(row)
    db.commit()
    return row


def add_script_event(db: Session, payload: ScriptEventPayload) -> ScriptAnalyticsEvent:
    row = ScriptAnalyticsEvent(
        user_id=payload.user_id,
        script_type=payload.script_type,
        execution_success=payload.execution_success,
        error_message=payload.error_message or None,
    )
    db.add(row)
    db.commit()
    return row


class TrainingStore:
    """Prompt/response pairs taught by the user. Created and deleted, never edited."""

    def __init__(self, db: Session):
        self.db = db

    def save(self, payload: TrainingPayload) -> TrainedResponse:
        pair = TrainedResponse(
            user_id=payload.user_id,
            pattern=payload.pattern,
            response=payload.response,
            script=payload.script,
        )
        self.db.add(pair)
        self.db.commit()
        self.db.refresh(pair)
        logger.info("Stored trained pair %s for %s", pair.id, payload.user_id)
        return pair

    def list_for_user(self, user_id: str) -> List[TrainedResponse]:
        stmt = (select(TrainedResponse)
                .where(TrainedResponse.user_id == user_id)
                .order_by(TrainedResponse.created_at.asc(), TrainedResponse.id.asc()))
        return list(self.db.scalars(stmt))

    def delete(self, user_id: str, pair_id: int) -> int:
        # scoped by owner: someone else's id is indistinguishable from a missing one
        pair = self.db.scalars(
            select(TrainedResponse)
            .where(TrainedResponse.id == pair_id, TrainedResponse.user_id == user_id)
        ).first()
        if pair is None:
            raise NotFoundError(f"trained pair {pair_id} not found for {user_id}")
        self.db.delete(pair)
        self.db.commit()
        return pair_id
