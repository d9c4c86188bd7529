"""API schemas for playback stream URLs."""

from pydantic import BaseModel


class StreamUrlResponse(BaseModel):
    """A playable URL, served from the stream cache when possible."""

    content_id: str
    url: str
    expires_at: str
    fetched_at: str
