from norboy_bot.services.conversation import MessageRecord, Sender
from norboy_bot.services.message_repository import InMemoryMessageRepository, SqlMessageRepository
from tests.fakes import PARTICIPANT


class TestSqlMessageRepository:
    def test_append_is_idempotent(self, db_session_factory):
        repository = SqlMessageRepository(db_session_factory)
        record = MessageRecord.inbound("Hola", message_id="wamid-1", push_name="Ana")

        assert repository.append(PARTICIPANT, record) is True
        assert repository.append(PARTICIPANT, record) is False

        rows = repository.list_for(PARTICIPANT)
        assert len(rows) == 1
        assert rows[0]["text"] == "Hola"
        assert rows[0]["metadata"] == {"push_name": "Ana"}

    def test_list_is_chronological_and_scoped(self, db_session_factory):
        repository = SqlMessageRepository(db_session_factory)
        repository.append(PARTICIPANT, MessageRecord.inbound("Hola", message_id="a"))
        repository.append(PARTICIPANT, MessageRecord.outbound("Bienvenido", sender=Sender.BOT))
        repository.append("otro@c.us", MessageRecord.inbound("Hola", message_id="b"))

        rows = repository.list_for(PARTICIPANT)

        assert [row["direction"] for row in rows] == ["in", "out"]


class TestInMemoryMessageRepository:
    def test_counts_inbound(self):
        repository = InMemoryMessageRepository()
        repository.append(PARTICIPANT, MessageRecord.inbound("Hola", message_id="a"))
        repository.append(PARTICIPANT, MessageRecord.inbound("Hola", message_id="a"))
        repository.append(PARTICIPANT, MessageRecord.outbound("Bienvenido"))

        assert repository.inbound_count(PARTICIPANT) == 1
