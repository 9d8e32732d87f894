from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import norboy_bot.models  # noqa: F401
from norboy_bot.database import Base
from norboy_bot.services.clock import Clock
from norboy_bot.services.conversation_store import ConversationStore
from norboy_bot.services.escalation_policy import EscalationPolicy
from norboy_bot.services.flows import norboy_menu
from norboy_bot.services.flows.base import GuidedFlowEngine
from norboy_bot.services.holiday_service import StaticHolidayCalendar
from norboy_bot.services.message_pipeline import MessagePipeline
from norboy_bot.services.message_repository import InMemoryMessageRepository
from norboy_bot.services.schedule_gate import ScheduleGate, WeeklySchedule
from norboy_bot.services.spam_guard import SpamGuard
from tests.fakes import IN_HOURS, RecordingTransport, StubAnswerEngine


@pytest.fixture
def db_session_factory():
    """SQLite in memory, shared across threads."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def clock():
    return Clock("America/Bogota", simulated=IN_HOURS)


@pytest.fixture
def schedule_gate(clock):
    return ScheduleGate(
        clock,
        calendar=StaticHolidayCalendar.from_yaml(),
        schedule=WeeklySchedule(),
        schedule_check_enabled=True,
        holiday_check_enabled=True,
    )


@pytest.fixture
def store():
    return ConversationStore(window_size=50, spam_history_size=10)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def answer_engine():
    return StubAnswerEngine()


@pytest.fixture
def repository():
    return InMemoryMessageRepository()


@pytest.fixture
def number_control():
    control = Mock()
    control.should_bot_respond.return_value = True
    return control


@pytest.fixture
def make_pipeline(store, schedule_gate, transport, answer_engine, repository, number_control):
    def _make(**overrides) -> MessagePipeline:
        control = overrides.pop("number_control", number_control)
        options = dict(
            store=store,
            schedule_gate=schedule_gate,
            spam_guard=SpamGuard(number_control=control, max_repeated=3, similarity_threshold=0.9),
            escalation_policy=EscalationPolicy(),
            flow_engine=GuidedFlowEngine([norboy_menu.build_definition()]),
            answer_engine=answer_engine,
            transport=transport,
            repository=repository,
            number_control=control,
            dedup_size=100,
            menu_flow_enabled=False,
        )
        options.update(overrides)
        return MessagePipeline(**options)

    return _make
