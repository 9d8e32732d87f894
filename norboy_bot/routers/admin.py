"""Operator endpoints: advisor hand-off, number control, schedule toggles."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from norboy_bot.config import settings
from norboy_bot.dependencies import get_advisor_service, get_number_control, get_schedule_gate, get_store
from norboy_bot.schemas.admin import (
    AdvisorMessageRequest,
    NumberOverrideRequest,
    OperatorAction,
    ScheduleUpdate,
    SimulatedTimeRequest,
    ToggleRequest,
)
from norboy_bot.services.advisor_service import AdvisorService
from norboy_bot.services.alert_service import alert_warning
from norboy_bot.services.clock import InvalidSimulatedTimeError
from norboy_bot.services.conversation_store import ConversationStore
from norboy_bot.services.number_control_service import NumberControlService
from norboy_bot.services.result import Result
from norboy_bot.services.schedule_gate import ScheduleGate, ScheduleValidationError


def _require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(_require_admin_token)])

_ERROR_STATUS = {
    "not_found": 404,
    "invalid_input": 400,
    "transport_error": 502,
    "not_configured": 503,
}


def _unwrap(result: Result) -> dict:
    if not result.ok:
        raise HTTPException(status_code=_ERROR_STATUS.get(result.error_code, 400), detail=result.error)
    return result.value


# === CONVERSATIONS ===


@router.get("/conversations")
async def list_conversations(
    status: Optional[str] = None,
    store: ConversationStore = Depends(get_store),
):
    conversations = store.all()
    if status:
        conversations = [c for c in conversations if c.status.value == status]
    conversations.sort(key=lambda c: c.updated_at, reverse=True)
    return {"count": len(conversations), "conversations": [c.to_dict() for c in conversations]}


@router.get("/conversations/{participant_id}")
async def get_conversation(participant_id: str, store: ConversationStore = Depends(get_store)):
    conversation = store.get(participant_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation {participant_id} not found")
    return conversation.to_dict(include_messages=True)


@router.post("/conversations/{participant_id}/advisor-message")
async def send_advisor_message(
    participant_id: str,
    request: AdvisorMessageRequest,
    service: AdvisorService = Depends(get_advisor_service),
):
    return _unwrap(await service.record_advisor_message(participant_id, request.text, advisor=request.advisor))


@router.post("/conversations/{participant_id}/reactivate")
async def reactivate_bot(
    participant_id: str,
    action: OperatorAction = OperatorAction(),
    service: AdvisorService = Depends(get_advisor_service),
):
    return _unwrap(await service.reactivate_bot(participant_id, by=action.by))


@router.post("/conversations/{participant_id}/transfer")
async def transfer_to_advisor(
    participant_id: str,
    action: OperatorAction = OperatorAction(),
    service: AdvisorService = Depends(get_advisor_service),
):
    return _unwrap(
        await service.transfer_to_advisor(participant_id, reason=action.reason or "operator_transfer", by=action.by)
    )


@router.post("/conversations/{participant_id}/reset")
async def reset_conversation(
    participant_id: str,
    action: OperatorAction = OperatorAction(),
    service: AdvisorService = Depends(get_advisor_service),
):
    return _unwrap(await service.reset_conversation(participant_id, by=action.by))


# === NUMBER CONTROL ===


@router.get("/numbers")
async def list_numbers(only_disabled: bool = False, numbers: NumberControlService = Depends(get_number_control)):
    rows = await asyncio.to_thread(numbers.list_numbers, only_disabled)
    return {"count": len(rows), "numbers": rows}


@router.post("/numbers/disable")
async def disable_number(request: NumberOverrideRequest, service: AdvisorService = Depends(get_advisor_service)):
    result = _unwrap(
        await service.set_number_override(
            request.phone, disabled=True, by=request.by, reason=request.reason, name=request.name
        )
    )
    alert_warning("Automated replies disabled by operator", {"phone": result["phone"], "by": request.by})
    return result


@router.post("/numbers/enable")
async def enable_number(request: NumberOverrideRequest, service: AdvisorService = Depends(get_advisor_service)):
    return _unwrap(await service.set_number_override(request.phone, disabled=False, by=request.by))


@router.delete("/numbers/{phone}")
async def remove_number(phone: str, by: str = "admin", service: AdvisorService = Depends(get_advisor_service)):
    return _unwrap(await service.remove_number_override(phone, by=by))


@router.get("/spam-blocks")
async def list_spam_blocks(only_active: bool = True, numbers: NumberControlService = Depends(get_number_control)):
    rows = await asyncio.to_thread(numbers.list_spam_blocks, only_active)
    return {"count": len(rows), "blocks": rows}


@router.post("/spam-blocks/{phone}/reactivate")
async def reactivate_from_spam(
    phone: str,
    action: OperatorAction = OperatorAction(),
    service: AdvisorService = Depends(get_advisor_service),
):
    return _unwrap(await service.reactivate_from_spam(phone, by=action.by))


# === SCHEDULE ===


@router.get("/schedule")
async def get_schedule(gate: ScheduleGate = Depends(get_schedule_gate)):
    return gate.status()


@router.put("/schedule")
async def update_schedule(request: ScheduleUpdate, gate: ScheduleGate = Depends(get_schedule_gate)):
    changes = request.model_dump(exclude={"day_type"}, exclude_none=True)
    try:
        gate.schedule.update(request.day_type, **changes)
    except ScheduleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return gate.status()


@router.post("/schedule/check")
async def toggle_schedule_check(request: ToggleRequest, gate: ScheduleGate = Depends(get_schedule_gate)):
    gate.set_schedule_check(request.enabled)
    return gate.status()


@router.post("/schedule/holiday-check")
async def toggle_holiday_check(request: ToggleRequest, gate: ScheduleGate = Depends(get_schedule_gate)):
    gate.set_holiday_check(request.enabled)
    return gate.status()


@router.post("/schedule/simulated-time")
async def set_simulated_time(request: SimulatedTimeRequest, gate: ScheduleGate = Depends(get_schedule_gate)):
    try:
        gate.clock.set_simulated(request.time)
    except InvalidSimulatedTimeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return gate.status()


@router.delete("/schedule/simulated-time")
async def clear_simulated_time(gate: ScheduleGate = Depends(get_schedule_gate)):
    gate.clock.clear_simulated()
    return gate.status()
