# chatsync/schemas.py
"""Request bodies and the decoded form of sync batch records.

Every endpoint validates its body against one of the models below before
touching the database. The sync batch is the exception to "reject the whole
request": its envelopes are decoded one by one and anything that does not
decode into an ``InteractionRecord`` or ``VocabRecord`` is skipped.
"""
import logging
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chatsync.config import (MAX_FREQ, MAX_PATTERN_LEN, MAX_RESPONSE_LEN, MAX_TAG_LEN,
                             MAX_TIMESTAMP, MAX_USER_ID_LEN)
from chatsync.utils import epoch_ms

logger = logging.getLogger(__name__)


def _user_id():
    return Field(alias="userId", min_length=1, max_length=MAX_USER_ID_LEN)


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- sync batch --------------------------------------------------------------------

class SyncPayload(_Body):
    user_id: str = _user_id()
    data: List[Any]


class SyncEnvelope(BaseModel):
    Type: str
    Data: Any = None
    Timestamp: Optional[int] = Field(None, ge=-MAX_TIMESTAMP - 1, le=MAX_TIMESTAMP)


class VocabInfo(BaseModel):
    freq: int = Field(1, ge=1, le=MAX_FREQ)
    cat: str = Field("general", max_length=MAX_TAG_LEN)
    weight: float = Field(1.0, allow_inf_nan=False)

    # falsy values fall back to defaults, so {"freq": 0} counts as one sighting
    @field_validator("freq", mode="before")
    @classmethod
    def _default_freq(cls, v):
        return v or 1

    @field_validator("cat", mode="before")
    @classmethod
    def _default_cat(cls, v):
        return v or "general"

    @field_validator("weight", mode="before")
    @classmethod
    def _default_weight(cls, v):
        return v or 1.0


class InteractionRecord(_Body):
    kind: Literal["interaction"] = "interaction"
    user_prompt: str = Field("", alias="UserPrompt")
    bot_response: str = Field("", alias="BotResponse")
    script: Optional[str] = Field(None, alias="Script")
    intent: Optional[str] = Field(None, alias="Intent")
    confidence: Optional[float] = Field(None, alias="Confidence", allow_inf_nan=False)
    timestamp: int = Field(0, ge=-MAX_TIMESTAMP - 1, le=MAX_TIMESTAMP)

    @field_validator("user_prompt", "bot_response", mode="before")
    @classmethod
    def _empty_text(cls, v):
        return "" if v is None else v

    @field_validator("script", "intent", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        return v or None

    @field_validator("intent")
    @classmethod
    def _clip_intent(cls, v):
        return v[:MAX_TAG_LEN] if v else v


class VocabRecord(BaseModel):
    kind: Literal["vocab"] = "vocab"
    entries: List[Tuple[str, VocabInfo]]


SyncRecord = Union[InteractionRecord, VocabRecord]


def parse_vocab_map(raw: Dict[str, Any]) -> List[Tuple[str, VocabInfo]]:
    """Parse ``{word: {freq, cat, weight}}`` entry by entry, dropping malformed ones."""
    entries = []
    for word, info in raw.items():
        if not isinstance(word, str) or not word:
            continue
        if info is None:
            info = {}
        try:
            entries.append((word, VocabInfo.model_validate(info)))
        except ValidationError:
            logger.debug("Skipping malformed vocab entry %r", word)
    return entries


def decode_record(raw: Any) -> Optional[SyncRecord]:
    """Turn one raw sync envelope into a typed record, or None if it should be skipped."""
    try:
        envelope = SyncEnvelope.model_validate(raw)
    except ValidationError:
        return None
    if envelope.Data is None:
        return None

    if envelope.Type == "interaction":
        if not isinstance(envelope.Data, dict):
            return None
        try:
            record = InteractionRecord.model_validate(envelope.Data)
        except ValidationError:
            return None
        record.timestamp = envelope.Timestamp or epoch_ms()
        return record

    if envelope.Type == "vocab":
        if not isinstance(envelope.Data, dict):
            return None
        return VocabRecord(entries=parse_vocab_map(envelope.Data))

    return None


# --- vocab -------------------------------------------------------------------------

class VocabSavePayload(_Body):
    user_id: str = _user_id()
    vocab: Dict[str, Any]


# --- learning / bayesian / preferences / analytics ----------------------------------

class LearningPayload(_Body):
    user_id: str = _user_id()
    patterns: Any
    pattern_type: Optional[str] = Field(None, alias="patternType", max_length=MAX_TAG_LEN)
    success_rate: Optional[float] = Field(None, alias="successRate")

    @field_validator("patterns")
    @classmethod
    def _patterns_required(cls, v):
        if v is None or v == "":
            raise ValueError("patterns is required")
        return v


class BayesianPayload(_Body):
    user_id: str = _user_id()
    intent: str = Field(min_length=1, max_length=MAX_TAG_LEN)
    prior_prob: float = Field(alias="priorProb")
    conditional_probs: Optional[Any] = Field(None, alias="conditionalProbs")


class PreferencesPayload(_Body):
    personality: Optional[str] = Field(None, max_length=MAX_TAG_LEN)
    settings: Optional[Any] = None

    @field_validator("personality", mode="before")
    @classmethod
    def _blank_personality(cls, v):
        return v or None


class ScriptEventPayload(_Body):
    user_id: Optional[str] = Field(None, alias="userId", max_length=MAX_USER_ID_LEN)
    script_type: str = Field(alias="scriptType", min_length=1, max_length=MAX_TAG_LEN)
    execution_success: bool = Field(alias="executionSuccess")
    error_message: Optional[str] = Field(None, alias="errorMessage")


# --- trained responses -------------------------------------------------------------

class TrainingPayload(_Body):
    user_id: str = _user_id()
    pattern: str
    response: str
    script: str = ""

    @field_validator("pattern")
    @classmethod
    def _normalize_pattern(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("pattern must not be empty")
        if len(v) > MAX_PATTERN_LEN:
            raise ValueError(f"pattern must be at most {MAX_PATTERN_LEN} characters")
        return v

    @field_validator("response")
    @classmethod
    def _check_response(cls, v):
        if not v.strip():
            raise ValueError("response must not be empty")
        if len(v) > MAX_RESPONSE_LEN:
            raise ValueError(f"response must be at most {MAX_RESPONSE_LEN} characters")
        return v

    @field_validator("script", mode="before")
    @classmethod
    def _default_script(cls, v):
        return v or ""
