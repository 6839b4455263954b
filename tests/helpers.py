from contextlib import contextmanager

from sqlalchemy import func, select

from chatsync.models import UserPreferences, VocabEntry


@contextmanager
def session_scope(database):
    """Session committed on success, rolled back on any error, always closed."""
    db = database.session()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def vocab_row(database, user_id, word):
    with session_scope(database) as db:
        return db.execute(
            select(VocabEntry.freq, VocabEntry.weight, VocabEntry.category)
            .where(VocabEntry.user_id == user_id, VocabEntry.word == word)
        ).one_or_none()


def count_rows(database, model, user_id=None):
    with session_scope(database) as db:
        stmt = select(func.count()).select_from(model)
        if user_id is not None:
            stmt = stmt.where(model.user_id == user_id)
        return db.scalar(stmt)


def prefs_row(database, user_id):
    with session_scope(database) as db:
        return db.execute(
            select(UserPreferences.personality, UserPreferences.settings,
                   UserPreferences.total_interactions, UserPreferences.last_active)
            .where(UserPreferences.user_id == user_id)
        ).one_or_none()


def interaction(prompt="hi", response="hello", **extra):
    data = {"UserPrompt": prompt, "BotResponse": response}
    data.update(extra)
    return {"Type": "interaction", "Data": data, "Timestamp": 1700000000000}


def vocab(**words):
    return {"Type": "vocab", "Data": words}

