"""Guided multi-step flows.

A flow type is a ``FlowDefinition``: an ordered list of named steps, each bound
to its handler through an explicit table built when the definition is created.
A running instance is a ``GuidedFlow`` owned by the participant's conversation
(``conversation.active_flow``); the engine never keeps its own registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from norboy_bot.logging_config import get_logger
from norboy_bot.services import messages

logger = get_logger("flow_engine")

CANCEL_COMMANDS = frozenset({"/cancelar", "/cancel", "cancelar", "salir", "exit"})


class FlowStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FlowDefinitionError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GuidedFlow:
    flow_type: str
    steps: List[str]
    current_step_index: int = 0
    data: Dict[str, Any] = field(default_factory=dict)
    status: FlowStatus = FlowStatus.PENDING
    started_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def current_step(self) -> Optional[str]:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    @property
    def is_finished(self) -> bool:
        return self.status in (FlowStatus.COMPLETED, FlowStatus.CANCELLED)

    def go_to(self, step: str) -> None:
        self.current_step_index = self.steps.index(step)
        self.updated_at = _now()

    def to_dict(self) -> dict:
        return {
            "flow_type": self.flow_type,
            "current_step": self.current_step,
            "current_step_index": self.current_step_index,
            "data": dict(self.data),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class EscalationRequest:
    reason: str
    priority: str = "medium"
    message: Optional[str] = None


@dataclass(frozen=True)
class StepResult:
    """What a step handler decided for one input.

    With neither ``next_step`` nor a terminal flag set the flow stays on the
    current step (a re-prompt).
    """

    message: Optional[str] = None
    next_step: Optional[str] = None
    completed: bool = False
    cancelled: bool = False
    collected: Dict[str, Any] = field(default_factory=dict)
    free_form: bool = False
    escalate: Optional[EscalationRequest] = None
    is_error: bool = False

    @classmethod
    def advance(cls, next_step: str, message: str, **collected: Any) -> "StepResult":
        return cls(message=message, next_step=next_step, collected=collected)

    @classmethod
    def reprompt(cls, message: str) -> "StepResult":
        return cls(message=message, is_error=True)

    @classmethod
    def complete(cls, message: Optional[str] = None, **collected: Any) -> "StepResult":
        return cls(message=message, completed=True, collected=collected)

    @classmethod
    def hand_off(cls, **collected: Any) -> "StepResult":
        return cls(free_form=True, collected=collected)


StepHandler = Callable[[GuidedFlow, str], StepResult]


@dataclass(frozen=True)
class FlowStep:
    name: str
    handler: StepHandler


class FlowDefinition:
    def __init__(
        self,
        flow_type: str,
        steps: Iterable[FlowStep],
        start_message: Callable[[GuidedFlow], str],
    ) -> None:
        steps = list(steps)
        if not steps:
            raise FlowDefinitionError(f"Flow '{flow_type}' has no steps")
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise FlowDefinitionError(f"Flow '{flow_type}' has duplicate step names: {names}")
        for step in steps:
            if not callable(step.handler):
                raise FlowDefinitionError(f"Step '{step.name}' of flow '{flow_type}' has no handler")

        self.flow_type = flow_type
        self.step_names = names
        self.handlers: Dict[str, StepHandler] = {step.name: step.handler for step in steps}
        self._start_message = start_message

    def new_instance(self) -> GuidedFlow:
        return GuidedFlow(flow_type=self.flow_type, steps=list(self.step_names))

    def start_message(self, flow: GuidedFlow) -> str:
        return self._start_message(flow)

    def handler_for(self, step: Optional[str]) -> StepHandler:
        if step is None or step not in self.handlers:
            raise FlowDefinitionError(f"Flow '{self.flow_type}' has no step '{step}'")
        return self.handlers[step]


@dataclass
class FlowOutcome:
    flow_type: str
    message: Optional[str] = None
    status: FlowStatus = FlowStatus.ACTIVE
    collected: Dict[str, Any] = field(default_factory=dict)
    free_form: bool = False
    escalate: Optional[EscalationRequest] = None
    reprompt: bool = False
    error: Optional[str] = None

    @property
    def ended(self) -> bool:
        return self.status in (FlowStatus.COMPLETED, FlowStatus.CANCELLED)


class GuidedFlowEngine:
    """Dispatches participant input to the conversation's active flow."""

    def __init__(self, definitions: Iterable[FlowDefinition]):
        self._definitions: Dict[str, FlowDefinition] = {}
        for definition in definitions:
            self._definitions[definition.flow_type] = definition

    def has_flow(self, flow_type: str) -> bool:
        return flow_type in self._definitions

    def start(self, conversation, flow_type: str) -> FlowOutcome:
        definition = self._definitions.get(flow_type)
        if definition is None:
            raise FlowDefinitionError(f"Unknown flow type '{flow_type}'")

        flow = definition.new_instance()
        flow.status = FlowStatus.ACTIVE
        conversation.active_flow = flow
        logger.info(
            f"Flow started: {flow_type}",
            extra={"context": {"participant_id": conversation.participant_id, "step": flow.current_step}},
        )
        return FlowOutcome(flow_type=flow_type, message=definition.start_message(flow))

    def cancel(self, conversation, message: Optional[str] = messages.FLOW_CANCELLED) -> Optional[FlowOutcome]:
        flow = conversation.active_flow
        if flow is None:
            return None
        flow.status = FlowStatus.CANCELLED
        conversation.active_flow = None
        return FlowOutcome(
            flow_type=flow.flow_type,
            message=message,
            status=FlowStatus.CANCELLED,
            collected=dict(flow.data),
        )

    def handle_input(self, conversation, text: str) -> Optional[FlowOutcome]:
        flow: Optional[GuidedFlow] = conversation.active_flow
        if flow is None:
            return None

        if text.strip().lower() in CANCEL_COMMANDS:
            return self.cancel(conversation)

        step = flow.current_step
        try:
            definition = self._definitions[flow.flow_type]
            handler = definition.handler_for(step)
            result = handler(flow, text)
        except Exception as e:
            logger.error(
                f"Flow step failed: {flow.flow_type}/{step}: {e}",
                extra={"context": {"participant_id": conversation.participant_id}},
                exc_info=True,
            )
            flow.status = FlowStatus.CANCELLED
            conversation.active_flow = None
            return FlowOutcome(
                flow_type=flow.flow_type,
                status=FlowStatus.CANCELLED,
                collected=dict(flow.data),
                error=str(e),
            )

        flow.data.update(result.collected)
        flow.updated_at = _now()
        outcome = FlowOutcome(
            flow_type=flow.flow_type,
            message=result.message,
            collected=dict(flow.data),
            free_form=result.free_form,
            escalate=result.escalate,
            reprompt=result.is_error,
        )

        if result.free_form or result.escalate or result.completed:
            flow.status = FlowStatus.COMPLETED
        elif result.cancelled:
            flow.status = FlowStatus.CANCELLED
        elif result.next_step:
            if result.next_step not in definition.handlers:
                logger.error(f"Flow {flow.flow_type} asked for unknown step '{result.next_step}'")
                flow.status = FlowStatus.CANCELLED
                outcome.error = f"unknown step {result.next_step}"
                outcome.message = None
            else:
                flow.go_to(result.next_step)

        outcome.status = flow.status
        if flow.is_finished:
            conversation.active_flow = None
        return outcome
