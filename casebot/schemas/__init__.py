# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Pydantic request/response schemas for the slash-command surface."""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class SlashCommand(BaseModel):
    """Raw slash-command form body as posted by the platform."""
    command: str = ""
    text: str = ""
    user_id: str = ""
    user_name: Optional[str] = None
    team_id: str = ""
    team_domain: str = ""
    enterprise_id: Optional[str] = None
    channel_id: str = ""
    channel_name: Optional[str] = None
    response_url: str = ""
    trigger_id: str = ""

    model_config = {"extra": "ignore"}


class CommandContext(BaseModel):
    """Caller identity and origin, populated only after admission and validation."""
    user_id: str
    team_id: str
    channel_id: str
    team_domain: str = ""


# ── One closed request type per verb ──────────────────────────────────────

class _Request(BaseModel):
    context: CommandContext

    model_config = {"frozen": True}


class CreateRequest(_Request):
    verb: Literal["create"] = "create"
    title: str


class StatusRequest(_Request):
    verb: Literal["status"] = "status"


class IncidentRequest(_Request):
    verb: Literal["incident"] = "incident"


class ListRequest(_Request):
    verb: Literal["list"] = "list"


class CloseRequest(_Request):
    verb: Literal["close"] = "close"


class TransferRequest(_Request):
    verb: Literal["transfer"] = "transfer"
    target: str


class ResolveRequest(_Request):
    verb: Literal["resolve"] = "resolve"


class StatsRequest(_Request):
    verb: Literal["stats"] = "stats"


class ExportRequest(_Request):
    verb: Literal["export"] = "export"


class HelpRequest(_Request):
    verb: Literal["help"] = "help"


CommandRequest = Annotated[
    Union[
        CreateRequest, StatusRequest, IncidentRequest, ListRequest, CloseRequest,
        TransferRequest, ResolveRequest, StatsRequest, ExportRequest, HelpRequest,
    ],
    Field(discriminator="verb"),
]


class CommandResponse(BaseModel):
    """Message payload returned to the caller via the response URL."""
    response_type: Literal["ephemeral", "in_channel"] = "ephemeral"
    text: Optional[str] = None
    blocks: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def ephemeral(cls, text: str) -> "CommandResponse":
        return cls(response_type="ephemeral", text=text)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Admission(BaseModel):
    allowed: bool
    retry_after_seconds: Optional[int] = None
    message: Optional[str] = None


class AccessClassification(BaseModel):
    is_external: bool


class RateLimitStatus(BaseModel):
    requests: int
    remaining: int
    blocked_until: Optional[float] = None
