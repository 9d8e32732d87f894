"""Per-number switch for automated replies, stored in ``controlled_numbers``.

Rows come from two sources: an operator (``manual``) or the spam guard
(``spam``). A number without a row is answered by the bot.
"""

import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

from norboy_bot.database import SessionLocal
from norboy_bot.logging_config import get_logger
from norboy_bot.models import ControlledNumber

logger = get_logger("number_control")

SOURCE_MANUAL = "manual"
SOURCE_SPAM = "spam"

_SUFFIXES = ("@lid", "@s.whatsapp.net", "@c.us", "@g.us")
_COUNTRY_CODE = "57"


def normalize_phone_number(value: Optional[str]) -> str:
    """Reduce any channel id or formatted phone to the bare national number."""
    if not value:
        return ""
    phone = str(value).strip()
    for suffix in _SUFFIXES:
        phone = phone.replace(suffix, "")
    phone = phone.replace("whatsapp:", "").replace("+", "")
    phone = re.sub(r"\D", "", phone)

    if len(phone) > 13:
        phone = phone[-10:]
    if len(phone) >= 12 and phone.startswith(_COUNTRY_CODE):
        phone = phone[len(_COUNTRY_CODE) :]
    return phone


def _row_to_dict(row: ControlledNumber) -> dict:
    return {
        "phone": row.phone,
        "name": row.name,
        "reason": row.reason,
        "ia_active": bool(row.ia_active),
        "source": row.source,
        "registered_by": row.registered_by,
        "updated_by": row.updated_by,
        "blocked_text": row.blocked_text,
        "consecutive_count": row.consecutive_count,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


class NumberControlService:
    def __init__(self, session_factory: Callable = SessionLocal):
        self._session_factory = session_factory

    def _find(self, db, phone: str) -> Optional[ControlledNumber]:
        return db.query(ControlledNumber).filter(ControlledNumber.phone == phone).first()

    def get(self, phone: str) -> Optional[dict]:
        normalized = normalize_phone_number(phone)
        db = self._session_factory()
        try:
            row = self._find(db, normalized)
            return _row_to_dict(row) if row else None
        finally:
            db.close()

    def should_bot_respond(self, phone: str) -> bool:
        normalized = normalize_phone_number(phone)
        if not normalized:
            return True
        db = self._session_factory()
        try:
            row = self._find(db, normalized)
            return True if row is None else bool(row.ia_active)
        finally:
            db.close()

    def _upsert(self, phone: str, **fields) -> dict:
        normalized = normalize_phone_number(phone)
        if not normalized:
            raise ValueError(f"Invalid phone number: {phone!r}")
        now = datetime.now(timezone.utc)
        db = self._session_factory()
        try:
            row = self._find(db, normalized)
            if row is None:
                row = ControlledNumber(phone=normalized, created_at=now)
                db.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = now
            db.commit()
            db.refresh(row)
            return _row_to_dict(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def disable(
        self,
        phone: str,
        reason: Optional[str] = None,
        by: str = "admin",
        name: Optional[str] = None,
    ) -> dict:
        """Operator switches automated replies off for a number."""
        fields = {
            "ia_active": False,
            "source": SOURCE_MANUAL,
            "reason": reason or "manual",
            "registered_by": by,
            "updated_by": by,
        }
        if name:
            fields["name"] = name
        result = self._upsert(phone, **fields)
        logger.info(f"Automated replies disabled for {result['phone']}", extra={"context": {"by": by}})
        return result

    def enable(self, phone: str, by: str = "admin") -> Optional[dict]:
        normalized = normalize_phone_number(phone)
        if self.get(normalized) is None:
            return None
        result = self._upsert(normalized, ia_active=True, updated_by=by)
        logger.info(f"Automated replies enabled for {result['phone']}", extra={"context": {"by": by}})
        return result

    def remove(self, phone: str) -> bool:
        normalized = normalize_phone_number(phone)
        db = self._session_factory()
        try:
            row = self._find(db, normalized)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True
        finally:
            db.close()

    def list_numbers(self, only_disabled: bool = False) -> List[dict]:
        db = self._session_factory()
        try:
            query = db.query(ControlledNumber)
            if only_disabled:
                query = query.filter(ControlledNumber.ia_active.is_(False))
            return [_row_to_dict(row) for row in query.order_by(ControlledNumber.updated_at.desc()).all()]
        finally:
            db.close()

    def block_for_spam(self, phone: str, text: str = "", consecutive_count: int = 0) -> dict:
        """System-initiated switch-off after a spam run."""
        result = self._upsert(
            phone,
            ia_active=False,
            source=SOURCE_SPAM,
            reason="spam_auto_block",
            registered_by="system",
            updated_by="system",
            blocked_text=(text or "")[:500],
            consecutive_count=consecutive_count,
        )
        logger.warning(
            f"Automated replies disabled by spam guard for {result['phone']}",
            extra={"context": {"consecutive_count": consecutive_count}},
        )
        return result

    def reactivate_from_spam(self, phone: str, by: str = "admin") -> Optional[dict]:
        """Lift a spam block. Manual overrides are left alone."""
        existing = self.get(phone)
        if existing is None or existing["source"] != SOURCE_SPAM or existing["ia_active"]:
            return None
        result = self._upsert(phone, ia_active=True, updated_by=by)
        logger.info(f"Spam block lifted for {result['phone']}", extra={"context": {"by": by}})
        return result

    def list_spam_blocks(self, only_active: bool = True) -> List[dict]:
        db = self._session_factory()
        try:
            query = db.query(ControlledNumber).filter(ControlledNumber.source == SOURCE_SPAM)
            if only_active:
                query = query.filter(ControlledNumber.ia_active.is_(False))
            return [_row_to_dict(row) for row in query.order_by(ControlledNumber.updated_at.desc()).all()]
        finally:
            db.close()
