"""Durable log of message records, write-once by record id."""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from norboy_bot.database import SessionLocal
from norboy_bot.logging_config import get_logger
from norboy_bot.models import MessageLog
from norboy_bot.services.conversation import MessageRecord

logger = get_logger("message_repository")


class MessageRepository(ABC):
    @abstractmethod
    def append(self, participant_id: str, record: MessageRecord) -> bool:
        """Store ``record`` once. Returns False when the id is already stored."""

    @abstractmethod
    def list_for(self, participant_id: str, limit: int = 50) -> List[dict]:
        pass


class SqlMessageRepository(MessageRepository):
    def __init__(self, session_factory: Callable = SessionLocal):
        self._session_factory = session_factory

    def append(self, participant_id: str, record: MessageRecord) -> bool:
        db = self._session_factory()
        try:
            if db.get(MessageLog, record.id) is not None:
                logger.debug(f"Duplicate message record skipped: {record.id}")
                return False
            db.add(
                MessageLog(
                    id=record.id,
                    participant_id=participant_id,
                    direction=record.direction.value,
                    sender=record.sender.value,
                    message_type=record.type,
                    content=record.text,
                    message_metadata=dict(record.metadata),
                    created_at=record.timestamp,
                )
            )
            db.commit()
            return True
        except IntegrityError:
            # Concurrent writer stored the same id first.
            db.rollback()
            return False
        finally:
            db.close()

    def list_for(self, participant_id: str, limit: int = 50) -> List[dict]:
        db = self._session_factory()
        try:
            rows = (
                db.query(MessageLog)
                .filter(MessageLog.participant_id == participant_id)
                .order_by(MessageLog.created_at.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": row.id,
                    "direction": row.direction,
                    "sender": row.sender,
                    "type": row.message_type,
                    "text": row.content,
                    "timestamp": row.created_at.isoformat() if row.created_at else None,
                    "metadata": row.message_metadata or {},
                }
                for row in reversed(rows)
            ]
        finally:
            db.close()


class InMemoryMessageRepository(MessageRepository):
    def __init__(self):
        self.records: Dict[str, tuple] = {}

    def append(self, participant_id: str, record: MessageRecord) -> bool:
        if record.id in self.records:
            return False
        self.records[record.id] = (participant_id, record)
        return True

    def list_for(self, participant_id: str, limit: int = 50) -> List[dict]:
        rows = [record.to_dict() for pid, record in self.records.values() if pid == participant_id]
        return rows[-limit:]

    def inbound_count(self, participant_id: Optional[str] = None) -> int:
        return sum(
            1
            for pid, record in self.records.values()
            if record.direction.value == "in" and (participant_id is None or pid == participant_id)
        )
