"""
Test: Notification store - creation, listing, status changes, counts.
"""
from datetime import timedelta

import pytest

from answerdesk.database import utcnow
from answerdesk.errors import NotFoundError, ValidationError
from answerdesk.schemas import AICorrectionCompleteMetadata
from answerdesk.services import notification_store


def _make(db, recipient_id, **overrides):
    fields = {
        "type": "SYSTEM_ALERT",
        "title": "Heads up",
        "message": "Something happened",
        "recipient_id": recipient_id,
    }
    fields.update(overrides)
    return notification_store.create(db, **fields)


class TestCreate:
    def test_creates_unread(self, db, ids):
        n = _make(db, ids["teacher_id"], priority="HIGH")
        assert n.status == "UNREAD"
        assert n.priority == "HIGH"
        assert n.is_active is True
        assert n.read_at is None

    def test_unknown_recipient(self, db, ids):
        with pytest.raises(NotFoundError):
            _make(db, "no-such-user")

    def test_trims_title_and_message(self, db, ids):
        n = _make(db, ids["teacher_id"], title="  Title  ", message=" Body ")
        assert n.title == "Title"
        assert n.message == "Body"

    def test_typed_metadata_is_stored(self, db, ids):
        metadata = AICorrectionCompleteMetadata(
            student_name="Asha", percentage=85, confidence=0.92, completed_at=utcnow())
        n = _make(db, ids["teacher_id"], type="AI_CORRECTION_COMPLETE", metadata=metadata)
        assert n.metadata_dict["type"] == "AI_CORRECTION_COMPLETE"
        assert n.metadata_dict["percentage"] == 85

    def test_dict_metadata_is_validated(self, db, ids):
        n = _make(db, ids["teacher_id"], metadata={"type": "SYSTEM_ALERT", "event": "PING"})
        assert n.metadata_dict["event"] == "PING"

    def test_metadata_for_other_type_rejected(self, db, ids):
        with pytest.raises(ValidationError):
            _make(db, ids["teacher_id"], type="MISSING_SHEET",
                  metadata={"type": "SYSTEM_ALERT", "event": "PING"})

    def test_malformed_metadata_rejected(self, db, ids):
        with pytest.raises(ValidationError):
            _make(db, ids["teacher_id"], type="AI_PROCESSING_FAILED",
                  metadata={"type": "AI_PROCESSING_FAILED"})


class TestList:
    def test_newest_first_with_total(self, db, ids):
        now = utcnow()
        for i in range(3):
            n = _make(db, ids["teacher_id"], title="n{}".format(i))
            n.created_at = now - timedelta(minutes=10 - i)
        db.commit()

        items, total = notification_store.list_notifications(db, ids["teacher_id"], page=1, limit=2)
        assert total == 3
        assert [n.title for n in items] == ["n2", "n1"]

        items, _ = notification_store.list_notifications(db, ids["teacher_id"], page=2, limit=2)
        assert [n.title for n in items] == ["n0"]

    def test_only_own_notifications(self, db, ids):
        _make(db, ids["teacher_id"])
        _make(db, ids["admin_id"])
        items, total = notification_store.list_notifications(db, ids["admin_id"])
        assert total == 1
        assert items[0].recipient_id == ids["admin_id"]

    def test_filters(self, db, ids):
        _make(db, ids["teacher_id"], priority="URGENT")
        _make(db, ids["teacher_id"], priority="LOW")
        items, total = notification_store.list_notifications(db, ids["teacher_id"], priority="urgent")
        assert total == 1
        assert items[0].priority == "URGENT"

    def test_unparseable_date_is_ignored(self, db, ids):
        _make(db, ids["teacher_id"])
        _, total = notification_store.list_notifications(db, ids["teacher_id"], date_from="yesterday-ish")
        assert total == 1

    def test_date_range(self, db, ids):
        old = _make(db, ids["teacher_id"], title="old")
        old.created_at = utcnow() - timedelta(days=10)
        db.commit()
        _make(db, ids["teacher_id"], title="new")

        since = (utcnow() - timedelta(days=1)).isoformat() + "Z"
        items, total = notification_store.list_notifications(db, ids["teacher_id"], date_from=since)
        assert total == 1
        assert items[0].title == "new"

    def test_soft_deleted_excluded(self, db, ids):
        n = _make(db, ids["teacher_id"])
        notification_store.soft_delete(db, n.id, ids["teacher_id"])
        _, total = notification_store.list_notifications(db, ids["teacher_id"])
        assert total == 0


class TestStatusChanges:
    def test_mark_read_sets_only_read_at(self, db, ids):
        n = _make(db, ids["teacher_id"])
        n = notification_store.mark_read(db, n.id, ids["teacher_id"])
        assert n.status == "READ"
        assert n.read_at is not None
        assert n.acknowledged_at is None
        assert n.dismissed_at is None

    def test_acknowledge(self, db, ids):
        n = _make(db, ids["teacher_id"])
        n = notification_store.acknowledge(db, n.id, ids["teacher_id"])
        assert n.status == "ACKNOWLEDGED"
        assert n.acknowledged_at is not None

    def test_dismiss(self, db, ids):
        n = _make(db, ids["teacher_id"])
        n = notification_store.dismiss(db, n.id, ids["teacher_id"])
        assert n.status == "DISMISSED"
        assert n.dismissed_at is not None

    def test_other_users_notification_not_found(self, db, ids):
        n = _make(db, ids["teacher_id"])
        with pytest.raises(NotFoundError):
            notification_store.mark_read(db, n.id, ids["admin_id"])

    def test_deleted_notification_not_found(self, db, ids):
        n = _make(db, ids["teacher_id"])
        notification_store.soft_delete(db, n.id, ids["teacher_id"])
        with pytest.raises(NotFoundError):
            notification_store.dismiss(db, n.id, ids["teacher_id"])

    def test_mark_all_read(self, db, ids):
        for _ in range(3):
            _make(db, ids["teacher_id"])
        _make(db, ids["admin_id"])

        assert notification_store.mark_all_read(db, ids["teacher_id"]) == 3
        assert notification_store.mark_all_read(db, ids["teacher_id"]) == 0
        assert notification_store.counts(db, ids["admin_id"])["unread"] == 1


class TestCounts:
    def test_counts(self, db, ids):
        urgent = _make(db, ids["teacher_id"], priority="URGENT")
        _make(db, ids["teacher_id"], priority="URGENT")
        read = _make(db, ids["teacher_id"])
        notification_store.mark_read(db, read.id, ids["teacher_id"])
        notification_store.acknowledge(db, urgent.id, ids["teacher_id"])

        counts = notification_store.counts(db, ids["teacher_id"])
        assert counts == {"unread": 1, "urgent": 1, "total": 3}

    def test_deleted_not_counted(self, db, ids):
        n = _make(db, ids["teacher_id"])
        notification_store.soft_delete(db, n.id, ids["teacher_id"])
        assert notification_store.counts(db, ids["teacher_id"]) == {"unread": 0, "urgent": 0, "total": 0}


class TestParseDate:
    def test_zulu_suffix(self):
        dt = notification_store.parse_date("2026-01-02T03:04:05Z")
        assert dt.tzinfo is None
        assert dt.hour == 3

    def test_offset_is_dropped(self):
        assert notification_store.parse_date("2026-01-02T03:04:05+00:00").day == 2

    def test_garbage(self):
        assert notification_store.parse_date("not a date") is None

    def test_empty(self):
        assert notification_store.parse_date(None) is None
