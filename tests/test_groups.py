"""
Tests for group and contact persistence, and the group flow through the dispatcher.
"""
import pytest

from wa_logger.models.contact import Contact
from wa_logger.models.group import Group, GroupParticipant
from wa_logger.models.message import Message
from wa_logger.models.receipt import MessageStatus
from wa_logger.pipeline.contacts import handle_contacts_update, save_contact_info
from wa_logger.pipeline.dispatcher import EventDispatcher
from wa_logger.pipeline.groups import build_group_data, count_participants, save_group_info
from wa_logger.pipeline.metadata_queue import GroupMetadataQueue
from wa_logger.pipeline.store import IngestResult

GROUP = "120363012345678901@g.us"
ALICE = "15550000001@s.whatsapp.net"
BOB = "15550000002@s.whatsapp.net"
CAROL = "15550000003@s.whatsapp.net"


def group_metadata(participants=None, **fields):
    data = {
        "id": GROUP,
        "subject": "Weekend Hikers",
        "owner": ALICE,
        "creation": 1700000000,
        "desc": "Trails and meetups",
        "restrict": True,
        "announce": False,
        "linkedParentGroups": ["120363000000000001@g.us"],
    }
    if participants is not None:
        data["participants"] = participants
    data.update(fields)
    return data


def participant_ids(db, group_id=GROUP):
    rows = db.query(GroupParticipant).filter(GroupParticipant.group_id == group_id)
    return sorted(row.participant_id for row in rows)


class TestBuildGroupData:
    def test_field_mapping(self):
        data = build_group_data(group_metadata(participants=[{"id": ALICE}, {"id": BOB}]))

        assert data["group_id"] == GROUP
        assert data["group_name"] == "Weekend Hikers"
        assert data["description"] == "Trails and meetups"
        assert data["creation"] == "2023-11-14 22:13:20"
        assert data["is_restricted"] is True
        assert data["announce"] is False
        assert data["linked_parent_groups"] == '["120363000000000001@g.us"]'
        assert data["participant_count"] == 2


class TestSaveGroupInfo:
    """Group upsert and participant-set replacement."""

    def test_new_group_with_participants(self, db):
        save_group_info(db, group_metadata(participants=[{"id": ALICE, "admin": "superadmin"}, {"id": BOB}]))

        group = db.get(Group, GROUP)
        assert group.group_name == "Weekend Hikers"
        assert participant_ids(db) == [ALICE, BOB]
        admin = db.get(GroupParticipant, (GROUP, ALICE))
        assert admin.admin_level == "superadmin"
        assert db.get(GroupParticipant, (GROUP, BOB)).admin_level is None

    def test_participant_set_is_replaced(self, db):
        """After a second snapshot the stored set equals exactly that snapshot."""
        save_group_info(db, group_metadata(participants=[{"id": ALICE}, {"id": BOB}]))
        save_group_info(db, group_metadata(participants=[{"id": BOB}, {"id": CAROL}]))

        assert participant_ids(db) == [BOB, CAROL]
        assert count_participants(db, GROUP) == 2

    def test_snapshot_without_participants_keeps_membership(self, db):
        save_group_info(db, group_metadata(participants=[{"id": ALICE}]))
        save_group_info(db, group_metadata(subject="Renamed"))

        assert db.get(Group, GROUP).group_name == "Renamed"
        assert participant_ids(db) == [ALICE]

    def test_repeated_participants_stored_once(self, db):
        save_group_info(db, group_metadata(participants=[{"id": ALICE}, {"id": ALICE, "admin": "admin"}, {"admin": "admin"}]))

        assert participant_ids(db) == [ALICE]

    def test_unknown_participants_get_contact_stubs(self, db):
        save_contact_info(db, {"id": ALICE, "name": "Alice Doe"})
        save_group_info(db, group_metadata(participants=[{"id": ALICE}, {"id": BOB, "notify": "Bobby"}]))

        assert db.get(Contact, ALICE).name == "Alice Doe"
        bob = db.get(Contact, BOB)
        assert bob is not None
        assert bob.name == "Bobby"

    def test_missing_group_id(self, db):
        assert save_group_info(db, {"subject": "No id"}) is None
        assert db.query(Group).count() == 0


class TestContacts:
    """Contact upserts never erase known fields."""

    def test_insert_and_partial_update(self, db):
        save_contact_info(db, {"id": ALICE, "name": "Alice", "notify": "Al", "isBusiness": True, "labels": ["vip", "eu"]})
        save_contact_info(db, {"id": ALICE, "imgUrl": "https://pps.example/alice.jpg"})

        contact = db.get(Contact, ALICE)
        assert contact.name == "Alice"
        assert contact.notify == "Al"
        assert contact.is_business is True
        assert contact.img_url == "https://pps.example/alice.jpg"
        assert contact.labels == '["vip","eu"]'
        assert contact.to_dict()["labels"] == ["vip", "eu"]

    def test_jid_alias(self, db):
        save_contact_info(db, {"jid": BOB, "verifiedName": "Bob's Shop"})
        assert db.get(Contact, BOB).verified_name == "Bob's Shop"

    def test_missing_jid_raises(self, db):
        with pytest.raises(ValueError):
            save_contact_info(db, {"name": "Nobody"})

    def test_batch_isolates_bad_entries(self, db):
        results = handle_contacts_update(db, [{"name": "Nobody"}, {"id": CAROL, "notify": "Caz"}])

        assert results == [IngestResult.DROPPED, IngestResult.CREATED]
        assert db.query(Contact).count() == 1


class TestDispatcherGroupFlow:
    """Group events go through the metadata queue before they are stored."""

    @pytest.fixture
    def dispatcher(self, session_factory, resolver, transport, recorded_sleeps):
        queue = GroupMetadataQueue(transport.fetch_group_metadata, sleep=recorded_sleeps)
        outcomes = []
        dispatcher = EventDispatcher(
            session_factory, resolver, queue, on_result=lambda event, result: outcomes.append((event, result))
        )
        dispatcher.outcomes = outcomes
        return dispatcher

    async def test_groups_update_persists_fetched_metadata(self, dispatcher, transport, db):
        transport.metadata[GROUP] = group_metadata(participants=[{"id": ALICE}, {"id": BOB}])

        processed = await dispatcher.dispatch("groups.update", [{"id": GROUP, "subject": "partial"}])
        await dispatcher.metadata_queue.wait_idle()

        assert processed == 1
        assert db.get(Group, GROUP).group_name == "Weekend Hikers"
        assert participant_ids(db) == [ALICE, BOB]
        assert ("groups.update", IngestResult.QUEUED) in dispatcher.outcomes
        assert ("groups.metadata", IngestResult.CREATED) in dispatcher.outcomes

    async def test_participants_update_refreshes_membership(self, dispatcher, transport, db):
        transport.metadata[GROUP] = group_metadata(participants=[{"id": ALICE}])
        await dispatcher.dispatch("groups.upsert", [{"id": GROUP}])
        await dispatcher.metadata_queue.wait_idle()

        transport.metadata[GROUP] = group_metadata(participants=[{"id": ALICE}, {"id": CAROL}])
        await dispatcher.dispatch("group-participants.update", {"id": GROUP, "action": "add", "participants": [CAROL]})
        await dispatcher.metadata_queue.wait_idle()

        assert participant_ids(db) == [ALICE, CAROL]

    async def test_failed_fetch_leaves_store_untouched(self, dispatcher, db):
        await dispatcher.dispatch("groups.update", [{"id": GROUP}])
        await dispatcher.metadata_queue.wait_idle()

        assert db.query(Group).count() == 0
        assert ("groups.metadata", IngestResult.SKIPPED) in dispatcher.outcomes

    async def test_group_without_id_is_dropped(self, dispatcher):
        assert await dispatcher.dispatch("groups.update", [{"subject": "x"}]) == 1
        assert dispatcher.outcomes == [("groups.update", IngestResult.DROPPED)]
        assert dispatcher.metadata_queue.pending == 0

    async def test_unsupported_event(self, dispatcher):
        assert await dispatcher.dispatch("presence.update", {"id": GROUP}) == 0
        assert dispatcher.outcomes == []


class TestDispatcherMessageFlow:
    """Messages, reactions and receipts through the dispatcher."""

    @pytest.fixture
    def dispatcher(self, session_factory, resolver, transport, recorded_sleeps):
        queue = GroupMetadataQueue(transport.fetch_group_metadata, sleep=recorded_sleeps)
        return EventDispatcher(session_factory, resolver, queue, account_name="Office")

    def _upsert(self, *ids, batch_type="notify"):
        return {
            "type": batch_type,
            "messages": [
                {
                    "key": {"id": message_id, "remoteJid": GROUP, "participant": ALICE},
                    "pushName": "Alice",
                    "messageTimestamp": 1700000000,
                    "message": {"conversation": f"text {message_id}"},
                }
                for message_id in ids
            ],
        }

    async def test_batch_is_stored(self, dispatcher, db):
        assert await dispatcher.dispatch("messages.upsert", self._upsert("M1", "M2", "M3")) == 3
        assert db.query(Message).count() == 3

    async def test_other_batch_types_are_ignored(self, dispatcher, db):
        assert await dispatcher.dispatch("messages.upsert", self._upsert("M1", batch_type="history")) == 0
        assert db.query(Message).count() == 0

    async def test_group_receipt_routed_to_group_read(self, dispatcher, db):
        await dispatcher.dispatch("messages.upsert", self._upsert("M1"))
        receipt = {"key": {"id": "M1", "remoteJid": GROUP}, "receipt": {"userJid": BOB, "readTimestamp": 1700000100}}

        await dispatcher.dispatch("message-receipt.update", [receipt])

        row = db.query(MessageStatus).one()
        assert row.status == "read"
        assert row.to_jid == BOB
