from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field, field_validator

from bizops.assistant.contracts import CallerContext, CamelModel
from bizops.assistant.lifecycle import AssistantService
from bizops.services.auth import current_user
from bizops.services.tenancy import tenant_context

router = APIRouter(prefix="/api/assistant", tags=["assistant"])


def _scrub_surrogates(value: Optional[str]) -> Optional[str]:
    # JSON "\ud800" escapes decode to lone surrogates that cannot be written as UTF-8.
    if value is None:
        return None
    return value.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


class ProposeRequest(CamelModel):
    text: str = Field(min_length=1)

    @field_validator("text")
    @classmethod
    def scrub_text(cls, value: str) -> str:
        return _scrub_surrogates(value)


class ApproveRequest(CamelModel):
    ai_tool_call_id: str = Field(min_length=1)
    comment: Optional[str] = None

    @field_validator("comment")
    @classmethod
    def scrub_comment(cls, value: Optional[str]) -> Optional[str]:
        return _scrub_surrogates(value)


class RejectRequest(CamelModel):
    ai_tool_call_id: str = Field(min_length=1)
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def scrub_reason(cls, value: Optional[str]) -> Optional[str]:
        return _scrub_surrogates(value)


class ExecuteRequest(CamelModel):
    ai_tool_call_id: str = Field(min_length=1)


def get_assistant(request: Request) -> AssistantService:
    return request.app.state.assistant


@router.post("/propose")
async def propose(
    payload: ProposeRequest,
    caller: CallerContext = Depends(tenant_context),
    assistant: AssistantService = Depends(get_assistant),
):
    outcome = await assistant.propose(caller, payload.text)
    body = outcome.model_dump(mode="json", by_alias=True, exclude_none=True)
    body.setdefault("proposed", None)
    return body


@router.post("/approve")
async def approve(
    payload: ApproveRequest,
    caller: CallerContext = Depends(tenant_context),
    assistant: AssistantService = Depends(get_assistant),
):
    outcome = await assistant.approve(caller, payload.ai_tool_call_id, payload.comment)
    return outcome.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/reject")
async def reject(
    payload: RejectRequest,
    caller: CallerContext = Depends(tenant_context),
    assistant: AssistantService = Depends(get_assistant),
):
    outcome = await assistant.reject(caller, payload.ai_tool_call_id, payload.reason)
    return outcome.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/execute")
async def execute(
    payload: ExecuteRequest,
    caller: CallerContext = Depends(tenant_context),
    assistant: AssistantService = Depends(get_assistant),
):
    outcome = await assistant.execute(caller, payload.ai_tool_call_id)
    return outcome.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/tools")
def list_tools(user=Depends(current_user), assistant: AssistantService = Depends(get_assistant)):
    return {"tools": assistant.registry.describe()}
