"""Change events published after the resource table changed."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class ChangeEvent(BaseModel):
    """Notification that the table may have changed; subscribers re-read it.

    ``serial`` and ``emitted_at`` only help ordering and debugging. The
    event deliberately carries no keys or values.
    """

    model_config = ConfigDict(frozen=True)

    serial: int = Field(..., ge=1, description="Per-notifier sequence number")
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
