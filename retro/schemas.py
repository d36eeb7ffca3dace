"""Wire schemas shared by the WebSocket channel, the HTTP API and the aggregator."""

import enum
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from retro.models import Category


class LikeAction(str, enum.Enum):
    """Outcome of a like toggle."""
    LIKED = "liked"
    UNLIKED = "unliked"


# --- Items ---

class ItemResponse(BaseModel):
    """One feedback note as seen by clients."""
    id: int
    category: Category
    text: str
    like_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LikeChangedResponse(BaseModel):
    """Result of a like toggle, broadcast to every session."""
    item: ItemResponse
    acting_user_id: str
    action: LikeAction


class UserLikesResponse(BaseModel):
    """Item ids a user currently likes."""
    item_ids: List[int]


# --- Aggregation ---

SentimentLabel = Literal["positive", "negative", "mixed", "neutral"]


class Sentiment(BaseModel):
    """Overall mood of the board."""
    overall: SentimentLabel = "neutral"
    positive_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    key_emotions: List[str] = Field(default_factory=list)


class RetroAnalysis(BaseModel):
    """What the external analyst returns for a snapshot of items."""
    summary: str
    image_prompt: Optional[str] = None
    sentiment: Sentiment


class VibeImage(BaseModel):
    """Generated image, base64 encoded as returned by the image model."""
    mime_type: str = "image/png"
    data: str


class AggregateResult(BaseModel):
    """The latest summary / sentiment / image of the whole board."""
    summary_text: str
    sentiment: Sentiment
    vibe_image: Optional[VibeImage] = None
    generated_at: datetime
    item_count: int = 0


class TriggerResponse(BaseModel):
    """Response after a manual aggregation trigger."""
    started: bool
