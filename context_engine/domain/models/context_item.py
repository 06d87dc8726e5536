from typing import Dict, Any, List, Optional, Callable, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
import math
import uuid

from context_engine.domain.models.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return uuid.uuid4().hex


class ContextType(str, Enum):
    """Kinds of context an item can carry"""
    CODE = "code"
    CONVERSATION = "conversation"
    DOCUMENTATION = "documentation"
    FEATURE = "feature"
    PROJECT = "project"


class ContextItem(BaseModel):
    """One atomic unit of context: a message, a file, a doc fragment"""
    id: str = Field(default_factory=generate_id, min_length=1, description="Unique within its session")
    type: ContextType
    content: str
    relevance: float = Field(ge=0.0, le=1.0, allow_inf_nan=False, description="Stored importance weight")
    source: str = Field(default="", description="Provenance label (file path, speaker role, ...)")
    timestamp: datetime = Field(default_factory=utcnow, description="Creation time")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def age_ms(self, now: datetime) -> float:
        """Milliseconds elapsed between creation and ``now``"""
        return (now - self.timestamp).total_seconds() * 1000.0


class NewContextItem(BaseModel):
    """Input accepted when registering an item; timestamp is stamped by the registry"""
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = Field(None, min_length=1, description="Generated when omitted")
    type: ContextType
    content: str
    relevance: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    source: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContextSession(BaseModel):
    """Caller-facing copy of a session and its items"""
    id: str
    project_id: str
    items: List[ContextItem] = Field(default_factory=list, description="Insertion order")
    created_at: datetime
    updated_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContextSummary(BaseModel):
    """Token-budgeted summary of a session's most relevant items"""
    summary: str
    tokens: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=utcnow)
    source_items: List[str] = Field(default_factory=list, description="Consumed item ids, relevance order")


class RetrievalOptions(BaseModel):
    """Filters and limits for a retrieval query"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    max_items: Optional[int] = Field(None, ge=0)
    include_types: Optional[List[ContextType]] = None
    exclude_types: Optional[List[ContextType]] = None
    min_relevance: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)
    max_age: Optional[float] = Field(None, ge=0, description="Milliseconds since item timestamp")
    where: Optional[Dict[str, Any]] = Field(None, description="Metadata equality filter")


class PruneOptions(BaseModel):
    """Thresholds for explicit pruning; both omitted selects the capacity policy"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    min_age: Optional[float] = Field(None, ge=0, description="Milliseconds")
    max_relevance: Optional[float] = Field(None, ge=0.0, le=1.0, allow_inf_nan=False)

    @property
    def has_thresholds(self) -> bool:
        return self.min_age is not None or self.max_relevance is not None


def validate_relevance(value: Any) -> float:
    """Return ``value`` as a float in [0, 1] or raise ValidationError"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Relevance must be a number, got {type(value).__name__}")
    relevance = float(value)
    if math.isnan(relevance) or not 0.0 <= relevance <= 1.0:
        raise ValidationError(f"Relevance must be within [0, 1], got {value}")
    return relevance


def validate_identifier(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def coerce_model(model_cls: Type[ModelT], data: Any, what: str) -> ModelT:
    """Build ``model_cls`` from a model instance, mapping or None.

    Pydantic failures are reported as ValidationError so callers see a single
    error taxonomy.
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or what}: {error['msg']}"
            for error in e.errors()
        )
        raise ValidationError(f"Invalid {what}: {details}") from e
