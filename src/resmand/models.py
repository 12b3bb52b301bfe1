"""Wire models exchanged between the daemon and its clients.

Every call is ``POST <object_path>/<Method>`` with a :class:`CallRequest`
body. The reply is either a :class:`CallResult` or an :class:`ErrorReply`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resmand._constants import SIGNAL_RESOURCES_CHANGED


class CallRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: list[Any] = Field(default_factory=list)


class CallResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    result: Any = None


class ErrorBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    message: str
    path: str | None = None


class ErrorReply(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: ErrorBody


class SignalMessage(BaseModel):
    """One change notification pushed over the signal stream."""

    model_config = ConfigDict(extra="ignore")

    signal: str = SIGNAL_RESOURCES_CHANGED
    serial: int
    emitted_at: str | None = None


class ServiceInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    service: str
    object_path: str
    interface: str
