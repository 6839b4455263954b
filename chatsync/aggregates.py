# chatsync/aggregates.py
"""Read-only projections: rankings, snapshots, grouped and daily counts."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, desc, func, select
from sqlalchemy.orm import Session

from chatsync.config import (ANALYTICS_WINDOW_DAYS, GLOBAL_TOP_SCRIPTS, GLOBAL_TOP_WORDS,
                             SNAPSHOT_TOP_VOCAB, VOCAB_LOAD_LIMIT)
from chatsync.models import (BayesianProb, Interaction, ScriptAnalyticsEvent, TrainedResponse,
                             UserPreferences, VocabEntry)
from chatsync.records import TrainingStore
from chatsync.utils import iso, utc_now

logger = logging.getLogger(__name__)


def ranked_vocab(db: Session, user_id: str, limit: int = VOCAB_LOAD_LIMIT) -> Dict[str, dict]:
    """Vocabulary keyed by word, ordered by freq * weight (dict order is the ranking)."""
    score = VocabEntry.freq * VocabEntry.weight
    rows = db.execute(
        select(VocabEntry.word, VocabEntry.freq, VocabEntry.category, VocabEntry.weight)
        .where(VocabEntry.user_id == user_id)
        .order_by(score.desc())
        .limit(limit)
    ).all()
    return {row.word: {"freq": row.freq, "cat": row.category, "weight": float(row.weight)}
            for row in rows}


def recent_interactions(db: Session, user_id: str, limit: int) -> List[dict]:
    rows = db.scalars(
        select(Interaction)
        .where(Interaction.user_id == user_id)
        .order_by(Interaction.created_at.desc(), Interaction.id.desc())
        .limit(limit)
    )
    return [row.to_dict() for row in rows]


def preferences(db: Session, user_id: str) -> Optional[dict]:
    row = db.get(UserPreferences, user_id)
    return row.to_dict() if row is not None else None


def top_vocab(db: Session, user_id: str, limit: int = SNAPSHOT_TOP_VOCAB) -> List[dict]:
    rows = db.scalars(
        select(VocabEntry)
        .where(VocabEntry.user_id == user_id)
        .order_by(VocabEntry.freq.desc(), VocabEntry.id.asc())
        .limit(limit)
    )
    return [row.to_dict() for row in rows]


def trained_pairs(db: Session, user_id: str) -> List[dict]:
    return [pair.to_dict() for pair in TrainingStore(db).list_for_user(user_id)]


def bayesian_probabilities(db: Session, user_id: str) -> List[dict]:
    rows = db.scalars(
        select(BayesianProb).where(BayesianProb.user_id == user_id).order_by(BayesianProb.id)
    )
    return [row.to_dict() for row in rows]


def user_snapshot(database, user_id: str, limit: int) -> dict:
    """Fetch the four parts of a user's snapshot in parallel.

    Each read runs on its own pooled session. If any of them raises, the
    exception propagates and no partial snapshot is returned.
    """
    def read(fn, *args):
        db = database.session()
        try:
            return fn(db, user_id, *args)
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=4, thread_name_prefix="snapshot") as pool:
        futures = {
            "interactions": pool.submit(read, recent_interactions, limit),
            "preferences": pool.submit(read, preferences),
            "topVocab": pool.submit(read, top_vocab),
            "trainedPairs": pool.submit(read, trained_pairs),
        }
        return {key: future.result() for key, future in futures.items()}


def script_stats(db: Session, user_id: str) -> List[dict]:
    successful = func.sum(case((ScriptAnalyticsEvent.execution_success.is_(True), 1), else_=0))
    rows = db.execute(
        select(
            ScriptAnalyticsEvent.script_type,
            func.count().label("total"),
            successful.label("successful"),
        )
        .where(ScriptAnalyticsEvent.user_id == user_id)
        .group_by(ScriptAnalyticsEvent.script_type)
        .order_by(ScriptAnalyticsEvent.script_type)
    ).all()
    return [{"script_type": r.script_type, "total": int(r.total), "successful": int(r.successful or 0)}
            for r in rows]


def daily_interactions(db: Session, user_id: str, days: int = ANALYTICS_WINDOW_DAYS) -> List[dict]:
    cutoff = utc_now() - timedelta(days=days)
    day = func.date(Interaction.created_at)
    rows = db.execute(
        select(day.label("date"), func.count().label("interactions"))
        .where(Interaction.user_id == user_id, Interaction.created_at > cutoff)
        .group_by(day)
        .order_by(day.desc())
    ).all()
    return [{"date": iso(r.date), "interactions": int(r.interactions)} for r in rows]


def global_stats(db: Session) -> dict:
    """Whole-table counts across every user, for operators."""
    total_users = db.scalar(select(func.count(func.distinct(Interaction.user_id))))
    total_interactions = db.scalar(select(func.count()).select_from(Interaction))
    total_pairs = db.scalar(select(func.count()).select_from(TrainedResponse))

    top_scripts = db.execute(
        select(ScriptAnalyticsEvent.script_type, func.count().label("cnt"))
        .group_by(ScriptAnalyticsEvent.script_type)
        .order_by(desc("cnt"))
        .limit(GLOBAL_TOP_SCRIPTS)
    ).all()
    top_words = db.execute(
        select(VocabEntry.word, func.sum(VocabEntry.freq).label("total_freq"))
        .group_by(VocabEntry.word)
        .order_by(desc("total_freq"))
        .limit(GLOBAL_TOP_WORDS)
    ).all()

    return {
        "totalUsers": int(total_users or 0),
        "totalInteractions": int(total_interactions or 0),
        "topScriptTypes": [{"script_type": r.script_type, "cnt": int(r.cnt)} for r in top_scripts],
        "globalTopVocab": [{"word": r.word, "total_freq": int(r.total_freq)} for r in top_words],
        "totalTrainedPairs": int(total_pairs or 0),
    }
