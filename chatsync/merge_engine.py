# chatsync/merge_engine.py
"""Merge policies for the mutable aggregates.

Each write is a single INSERT ... ON CONFLICT DO UPDATE, so two requests
hitting the same (user_id, word) or (user_id, intent) key cannot lose an
update. Callers own the transaction; nothing here commits.

    vocab via sync        freq = min(old + new, MAX_FREQ)   weight = max(old, new)
    vocab via save        freq = max(old, new)              weight = max(old, new)
    preferences           absent fields keep the stored value
    bayesian              prior and conditionals replaced wholesale
"""
import logging
from typing import Any, Iterable, Optional, Tuple

from sqlalchemy import BigInteger, cast
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import FunctionElement

from chatsync.config import MAX_FREQ, MAX_WORD_LEN
from chatsync.models import BayesianProb, UserPreferences, VocabEntry
from chatsync.schemas import VocabInfo
from chatsync.utils import utc_now

logger = logging.getLogger(__name__)


class greatest(FunctionElement):
    name = "greatest"
    inherit_cache = True


@compiles(greatest)
def _compile_greatest(element, compiler, **kw):
    return "GREATEST(%s)" % compiler.process(element.clauses, **kw)


@compiles(greatest, "sqlite")
def _compile_greatest_sqlite(element, compiler, **kw):
    # sqlite's multi-argument max() is the scalar form
    return "MAX(%s)" % compiler.process(element.clauses, **kw)


class least(FunctionElement):
    name = "least"
    inherit_cache = True


@compiles(least)
def _compile_least(element, compiler, **kw):
    return "LEAST(%s)" % compiler.process(element.clauses, **kw)


@compiles(least, "sqlite")
def _compile_least_sqlite(element, compiler, **kw):
    return "MIN(%s)" % compiler.process(element.clauses, **kw)


class MergeEngine:
    def __init__(self, db: Session):
        self.db = db

    def _insert(self, table):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise NotImplementedError(f"upsert is not supported on {dialect}")

    # --- vocab -----------------------------------------------------------------------
    def _vocab_insert(self, user_id: str, word: str, info: VocabInfo):
        return self._insert(VocabEntry.__table__).values(
            user_id=user_id,
            word=word,
            freq=info.freq,
            category=info.cat,
            weight=info.weight,
            updated_at=utc_now(),
        )

    def merge_vocab_delta(self, user_id: str, word: str, info: VocabInfo) -> None:
        """Sync path: the client reports newly observed occurrences, so counts add up.

        Words longer than the column are truncated rather than rejected.
        """
        table = VocabEntry.__table__
        stmt = self._vocab_insert(user_id, word[:MAX_WORD_LEN], info)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "word"],
            set_={
                # summed as BIGINT, then held at the INTEGER column's ceiling
                "freq": least(cast(table.c.freq, BigInteger) + stmt.excluded.freq, MAX_FREQ),
                "weight": greatest(table.c.weight, stmt.excluded.weight),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def merge_vocab_snapshot(self, user_id: str, word: str, info: VocabInfo) -> None:
        """Save path: the client sends its full current counts, so take the larger value."""
        table = VocabEntry.__table__
        stmt = self._vocab_insert(user_id, word, info)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "word"],
            set_={
                "freq": greatest(table.c.freq, stmt.excluded.freq),
                "weight": greatest(table.c.weight, stmt.excluded.weight),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def save_vocab_snapshot(self, user_id: str, entries: Iterable[Tuple[str, VocabInfo]]) -> int:
        saved = 0
        for word, info in entries:
            if len(word) > MAX_WORD_LEN:
                logger.debug("Skipping overlong vocab word for %s (%d chars)", user_id, len(word))
                continue
            self.merge_vocab_snapshot(user_id, word, info)
            saved += 1
        return saved

    # --- preferences -----------------------------------------------------------------
    def touch_preferences(self, user_id: str, interactions: int) -> None:
        """Add this batch's interaction count and stamp last_active."""
        table = UserPreferences.__table__
        stmt = self._insert(table).values(
            user_id=user_id,
            total_interactions=interactions,
            last_active=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={
                "total_interactions": table.c.total_interactions + stmt.excluded.total_interactions,
                "last_active": stmt.excluded.last_active,
            },
        )
        self.db.execute(stmt)

    def update_preferences(self, user_id: str, personality: Optional[str] = None,
                           settings: Optional[Any] = None) -> None:
        values = {"user_id": user_id, "last_active": utc_now()}
        if personality is not None:
            values["personality"] = personality
        if settings is not None:
            values["settings"] = settings

        stmt = self._insert(UserPreferences.__table__).values(**values)
        # only the fields that were sent are overwritten on conflict
        set_ = {name: getattr(stmt.excluded, name) for name in values if name != "user_id"}
        stmt = stmt.on_conflict_do_update(index_elements=["user_id"], set_=set_)
        self.db.execute(stmt)

    # --- bayesian --------------------------------------------------------------------
    def replace_bayesian(self, user_id: str, intent: str, prior: float,
                         conditionals: Optional[Any] = None) -> None:
        stmt = self._insert(BayesianProb.__table__).values(
            user_id=user_id,
            intent=intent,
            prior_probability=prior,
            conditional_probs=conditionals if conditionals is not None else {},
            updated_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "intent"],
            set_={
                "prior_probability": stmt.excluded.prior_probability,
                "conditional_probs": stmt.excluded.conditional_probs,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)
