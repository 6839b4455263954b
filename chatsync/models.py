# chatsync/models.py
from sqlalchemy import (BigInteger, Boolean, Column, DateTime, Float, Index, Integer, JSON,
                        String, Text, UniqueConstraint)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

from chatsync.config import MAX_PATTERN_LEN, MAX_TAG_LEN, MAX_USER_ID_LEN, MAX_WORD_LEN
from chatsync.utils import iso, utc_now

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Interaction(Base):
    __tablename__ = "interactions"
    __table_args__ = (
        Index("idx_interactions_user", "user_id"),
        Index("idx_interactions_ts", "timestamp"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=False)
    user_prompt = Column(Text, nullable=False)
    bot_response = Column(Text, nullable=False)
    script = Column(Text, nullable=True)
    intent = Column(String(MAX_TAG_LEN), nullable=True)
    confidence = Column(Float, nullable=True)
    timestamp = Column(BigInteger, nullable=True)  # client clock, epoch ms
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_prompt": self.user_prompt,
            "bot_response": self.bot_response,
            "intent": self.intent,
            "confidence": self.confidence,
            "created_at": iso(self.created_at),
        }


class VocabEntry(Base):
    __tablename__ = "vocab"
    __table_args__ = (
        UniqueConstraint("user_id", "word", name="uq_vocab_user_word"),
        Index("idx_vocab_user", "user_id"),
        Index("idx_vocab_word", "word"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=False)
    word = Column(String(MAX_WORD_LEN), nullable=False)
    freq = Column(Integer, default=1, nullable=False)
    category = Column(String(MAX_TAG_LEN), default="general", nullable=False)
    weight = Column(Float, default=1.0, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {"word": self.word, "freq": self.freq, "category": self.category, "weight": self.weight}


class LearningPattern(Base):
    __tablename__ = "learning_patterns"
    __table_args__ = (Index("idx_learning_user", "user_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=False)
    patterns = Column(JSONType, nullable=False)
    pattern_type = Column(String(MAX_TAG_LEN), default="general", nullable=False)
    success_rate = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String(MAX_USER_ID_LEN), primary_key=True)
    personality = Column(String(MAX_TAG_LEN), default="Friendly", nullable=False)
    settings = Column(JSONType, nullable=True)
    total_interactions = Column(Integer, default=0, nullable=False)
    last_active = Column(DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "personality": self.personality,
            "settings": self.settings,
            "total_interactions": self.total_interactions,
            "last_active": iso(self.last_active),
        }


class BayesianProb(Base):
    __tablename__ = "bayesian_probs"
    __table_args__ = (UniqueConstraint("user_id", "intent", name="uq_bayesian_user_intent"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=False)
    intent = Column(String(MAX_TAG_LEN), nullable=False)
    prior_probability = Column(Float, nullable=True)
    conditional_probs = Column(JSONType, nullable=True)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "intent": self.intent,
            "prior_probability": self.prior_probability,
            "conditional_probs": self.conditional_probs,
            "updated_at": iso(self.updated_at),
        }


class ScriptAnalyticsEvent(Base):
    __tablename__ = "script_analytics"
    __table_args__ = (Index("idx_analytics_type", "script_type"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=True)
    script_type = Column(String(MAX_TAG_LEN), nullable=False)
    execution_success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class TrainedResponse(Base):
    __tablename__ = "trained_responses"
    __table_args__ = (Index("idx_trained_user", "user_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(MAX_USER_ID_LEN), nullable=False)
    pattern = Column(String(MAX_PATTERN_LEN), nullable=False)
    response = Column(Text, nullable=False)
    script = Column(Text, default="", nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "pattern": self.pattern,
            "response": self.response,
            "script": self.script,
            "created_at": iso(self.created_at),
        }
