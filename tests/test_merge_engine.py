from chatsync.aggregates import bayesian_probabilities
from chatsync.config import MAX_FREQ
from chatsync.merge_engine import MergeEngine
from chatsync.schemas import VocabInfo
from helpers import prefs_row, session_scope, vocab_row


def _delta(database, word, freq, weight, user="alice"):
    with session_scope(database) as db:
        MergeEngine(db).merge_vocab_delta(user, word, VocabInfo(freq=freq, weight=weight))


def _snapshot(database, word, freq, weight, user="alice"):
    with session_scope(database) as db:
        MergeEngine(db).merge_vocab_snapshot(user, word, VocabInfo(freq=freq, weight=weight))


def test_delta_merge_sums_freq_and_keeps_max_weight(database):
    _delta(database, "hello", 3, 1.5)
    _delta(database, "hello", 4, 0.5)
    row = vocab_row(database, "alice", "hello")
    assert row.freq == 7
    assert row.weight == 1.5


def test_delta_merge_first_sight_inserts_incoming_values(database):
    _delta(database, "fresh", 2, 2.5)
    row = vocab_row(database, "alice", "fresh")
    assert (row.freq, row.weight, row.category) == (2, 2.5, "general")


def test_snapshot_merge_takes_max_freq_not_sum(database):
    _snapshot(database, "hello", 5, 1.0)
    _snapshot(database, "hello", 3, 2.0)
    row = vocab_row(database, "alice", "hello")
    assert row.freq == 5
    assert row.weight == 2.0

    _snapshot(database, "hello", 9, 0.1)
    row = vocab_row(database, "alice", "hello")
    assert row.freq == 9
    assert row.weight == 2.0


def test_vocab_keys_are_scoped_per_user(database):
    _delta(database, "shared", 1, 1.0, user="alice")
    _delta(database, "shared", 10, 1.0, user="bob")
    assert vocab_row(database, "alice", "shared").freq == 1
    assert vocab_row(database, "bob", "shared").freq == 10


def test_delta_truncates_overlong_word(database):
    word = "x" * 200
    _delta(database, word, 1, 1.0)
    assert vocab_row(database, "alice", word) is None
    assert vocab_row(database, "alice", "x" * 128).freq == 1


def test_snapshot_save_skips_overlong_word(database):
    entries = [("x" * 129, VocabInfo()), ("ok", VocabInfo(freq=2))]
    with session_scope(database) as db:
        saved = MergeEngine(db).save_vocab_snapshot("alice", entries)
    assert saved == 1
    assert vocab_row(database, "alice", "ok").freq == 2
    assert vocab_row(database, "alice", "x" * 128) is None


def test_touch_preferences_accumulates_interactions(database):
    with session_scope(database) as db:
        MergeEngine(db).touch_preferences("alice", 2)
    first = prefs_row(database, "alice")
    assert first.total_interactions == 2
    assert first.personality == "Friendly"

    with session_scope(database) as db:
        MergeEngine(db).touch_preferences("alice", 3)
    second = prefs_row(database, "alice")
    assert second.total_interactions == 5
    assert second.last_active >= first.last_active


def test_update_preferences_keeps_fields_that_are_not_sent(database):
    with session_scope(database) as db:
        MergeEngine(db).update_preferences("alice", personality="Witty", settings={"theme": "dark"})
    with session_scope(database) as db:
        MergeEngine(db).update_preferences("alice", settings={"theme": "light"})
    with session_scope(database) as db:
        MergeEngine(db).update_preferences("alice")

    row = prefs_row(database, "alice")
    assert row.personality == "Witty"
    assert row.settings == {"theme": "light"}


def test_update_preferences_does_not_reset_interaction_count(database):
    with session_scope(database) as db:
        MergeEngine(db).touch_preferences("alice", 4)
    with session_scope(database) as db:
        MergeEngine(db).update_preferences("alice", personality="Calm")
    assert prefs_row(database, "alice").total_interactions == 4


def test_bayesian_update_replaces_previous_values(database):
    with session_scope(database) as db:
        MergeEngine(db).replace_bayesian("alice", "greet", 0.3, {"hello": 0.9, "hi": 0.8})
    with session_scope(database) as db:
        MergeEngine(db).replace_bayesian("alice", "greet", 0.7, {"hey": 0.5})

    with session_scope(database) as db:
        rows = bayesian_probabilities(db, "alice")
    assert len(rows) == 1
    assert rows[0]["prior_probability"] == 0.7
    assert rows[0]["conditional_probs"] == {"hey": 0.5}


def test_bayesian_update_without_conditionals_stores_empty_object(database):
    with session_scope(database) as db:
        MergeEngine(db).replace_bayesian("alice", "bye", 0.1, {"x": 1})
    with session_scope(database) as db:
        MergeEngine(db).replace_bayesian("alice", "bye", 0.2)

    with session_scope(database) as db:
        row = bayesian_probabilities(db, "alice")[0]
    assert row["conditional_probs"] == {}


def test_delta_merge_holds_freq_at_column_ceiling(database):
    _delta(database, "hot", MAX_FREQ, 1.0)
    _delta(database, "hot", 5, 1.0)
    assert vocab_row(database, "alice", "hot").freq == MAX_FREQ
