"""
Test: Flag management - adding, resolving, detection rules, statistics.
"""
import pytest
from pydantic import ValidationError as PydanticValidationError

from answerdesk.config import Settings
from answerdesk.database import build_engine, build_session_factory, create_tables
from answerdesk.errors import ConflictError, NotFoundError, ValidationError
from answerdesk.models.enums import FlagSeverity, FlagType, ScanQuality
from answerdesk.models.missing_paper import MissingPaperTracking
from answerdesk.models.answer_sheet import AnswerSheet
from answerdesk.schemas import FlagCreate, FlagResolution, SheetAnalysis
from answerdesk.seed import seed_demo_data
from answerdesk.services import flag_management


def _flag(type=FlagType.POOR_QUALITY, severity=FlagSeverity.MEDIUM, description="Blurry scan"):
    return FlagCreate(type=type, severity=severity, description=description)


class TestAddFlag:
    def test_appends_with_increasing_index(self, db, sheet):
        first = flag_management.add_flag(db, sheet.id, _flag())
        second = flag_management.add_flag(db, sheet.id, _flag(FlagType.ALIGNMENT_ISSUE))
        assert (first.position, second.position) == (0, 1)
        assert first.resolved is False

    def test_sets_last_flagged_at(self, db, sheet):
        flag_management.add_flag(db, sheet.id, _flag())
        db.refresh(sheet)
        assert sheet.last_flagged_at is not None

    def test_unknown_sheet(self, db, ids):
        with pytest.raises(NotFoundError):
            flag_management.add_flag(db, "missing", _flag())

    def test_empty_description_rejected(self):
        with pytest.raises(PydanticValidationError):
            FlagCreate(type=FlagType.POOR_QUALITY, severity=FlagSeverity.LOW, description="")


class TestResolveFlag:
    def test_resolves(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag())
        result = flag_management.resolve_flag(db, sheet.id, 0, FlagResolution(
            resolved_by=ids["teacher_id"], resolution_notes="Rescanned"))
        assert result.already_resolved is False

        flag = flag_management.get_answer_sheet_flags(db, sheet.id)[0]
        assert flag.resolved is True
        assert flag.resolved_by == ids["teacher_id"]
        assert flag.resolved_at is not None
        assert flag.resolution_notes == "Rescanned"

    def test_second_resolve_is_noop(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag())
        flag_management.resolve_flag(db, sheet.id, 0, FlagResolution(resolved_by=ids["teacher_id"]))
        again = flag_management.resolve_flag(db, sheet.id, 0, FlagResolution(resolved_by=ids["admin_id"]))

        assert again.already_resolved is True
        assert again.resolved_by == ids["teacher_id"]
        stats = flag_management.get_flag_statistics(db, ids["exam_id"])
        assert stats["resolved_flags"] == 1

    @pytest.mark.parametrize("index", [-1, 1, 5])
    def test_invalid_index(self, db, sheet, ids, index):
        flag_management.add_flag(db, sheet.id, _flag())
        with pytest.raises(ValidationError):
            flag_management.resolve_flag(db, sheet.id, index, FlagResolution(resolved_by=ids["teacher_id"]))


class TestResolveAll:
    def test_add_then_resolve_all(self, db, sheet):
        flag_management.add_flag(db, sheet.id, _flag(FlagType.LOW_CONFIDENCE_ROLL_NUMBER, FlagSeverity.HIGH))
        count = flag_management.resolve_all_flags(db, sheet.id, FlagResolution(resolved_by="teacher1"))
        assert count == 1

        flags = flag_management.get_answer_sheet_flags(db, sheet.id)
        assert len(flags) == 1
        assert flags[0].resolved is True
        assert flags[0].resolved_by == "teacher1"

    def test_only_unresolved_are_touched(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag())
        flag_management.add_flag(db, sheet.id, _flag(FlagType.ALIGNMENT_ISSUE))
        flag_management.resolve_flag(db, sheet.id, 0, FlagResolution(resolved_by=ids["admin_id"]))

        assert flag_management.resolve_all_flags(db, sheet.id, FlagResolution(resolved_by=ids["teacher_id"])) == 1
        flags = flag_management.get_answer_sheet_flags(db, sheet.id)
        assert flags[0].resolved_by == ids["admin_id"]
        assert flags[1].resolved_by == ids["teacher_id"]

    def test_nothing_to_resolve(self, db, sheet, ids):
        assert flag_management.resolve_all_flags(db, sheet.id, FlagResolution(resolved_by=ids["teacher_id"])) == 0


class TestBulkResolve:
    def test_continues_past_failures(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag())
        flag_management.add_flag(db, sheet.id, _flag())

        results = flag_management.bulk_resolve_flags(
            db, [sheet.id, "no-such-sheet"], FlagResolution(resolved_by=ids["admin_id"]))

        assert [r.outcome for r in results] == ["ok", "error"]
        assert results[0].resolved_count == 2
        assert results[1].reason == "Answer sheet not found"


class TestDetectFlags:
    @pytest.fixture
    def rules(self):
        return Settings()

    def _types(self, analysis, settings):
        return {(f.type, f.severity) for f in flag_management.detect_flags(analysis, settings)}

    def test_clean_sheet(self, rules):
        analysis = SheetAnalysis(roll_number_detected="10A01", roll_number_confidence=95,
                                 scan_quality=ScanQuality.GOOD, is_aligned=True,
                                 file_size=1000, file_format="application/pdf")
        assert flag_management.detect_flags(analysis, rules) == []

    def test_missing_roll_number(self, rules):
        found = self._types(SheetAnalysis(roll_number_detected=None), rules)
        assert (FlagType.UNMATCHED_ROLL, FlagSeverity.HIGH) in found

    def test_low_confidence_medium(self, rules):
        found = self._types(SheetAnalysis(roll_number_detected="10A01", roll_number_confidence=55), rules)
        assert found == {(FlagType.LOW_CONFIDENCE_ROLL_NUMBER, FlagSeverity.MEDIUM)}

    def test_low_confidence_high(self, rules):
        found = self._types(SheetAnalysis(roll_number_detected="10A01", roll_number_confidence=30), rules)
        assert found == {(FlagType.LOW_CONFIDENCE_ROLL_NUMBER, FlagSeverity.HIGH)}

    def test_confidence_at_threshold_is_fine(self, rules):
        assert self._types(SheetAnalysis(roll_number_detected="10A01", roll_number_confidence=70), rules) == set()

    def test_quality(self, rules):
        poor = self._types(SheetAnalysis(roll_number_detected="x", scan_quality=ScanQuality.POOR), rules)
        unreadable = self._types(SheetAnalysis(roll_number_detected="x", scan_quality=ScanQuality.UNREADABLE), rules)
        assert poor == {(FlagType.POOR_QUALITY, FlagSeverity.HIGH)}
        assert unreadable == {(FlagType.POOR_QUALITY, FlagSeverity.CRITICAL)}

    def test_alignment_size_and_format(self, rules):
        found = self._types(SheetAnalysis(roll_number_detected="x", is_aligned=False,
                                          file_size=11 * 1024 * 1024, file_format="image/tiff"), rules)
        assert found == {
            (FlagType.ALIGNMENT_ISSUE, FlagSeverity.MEDIUM),
            (FlagType.SIZE_TOO_LARGE, FlagSeverity.MEDIUM),
            (FlagType.INVALID_FORMAT, FlagSeverity.HIGH),
        }

    def test_thresholds_come_from_settings(self):
        strict = Settings(roll_confidence_threshold=90)
        found = self._types(SheetAnalysis(roll_number_detected="x", roll_number_confidence=85), strict)
        assert found == {(FlagType.LOW_CONFIDENCE_ROLL_NUMBER, FlagSeverity.MEDIUM)}


class TestAutoDetect:
    def test_stores_analysis_and_flags(self, db, sheet, settings):
        added = flag_management.auto_detect_flags(db, sheet.id, SheetAnalysis(
            roll_number_confidence=50, is_aligned=False), settings)

        assert {f.type for f in added} == {"LOW_CONFIDENCE_ROLL_NUMBER", "ALIGNMENT_ISSUE"}
        db.refresh(sheet)
        assert sheet.roll_number_confidence == 50
        assert sheet.is_aligned is False

    def test_roll_number_issue_opens_pending_record(self, db, sheet, settings, ids):
        flag_management.auto_detect_flags(db, sheet.id, SheetAnalysis(roll_number_confidence=20), settings)
        records = db.query(MissingPaperTracking).all()
        assert len(records) == 1
        assert records[0].status == "PENDING"
        assert records[0].type == "ROLL_NUMBER_ISSUE"
        assert records[0].answer_sheet_id == sheet.id

    def test_pending_record_not_duplicated(self, db, sheet, settings):
        for _ in range(2):
            flag_management.auto_detect_flags(db, sheet.id, SheetAnalysis(roll_number_confidence=20), settings)
        assert db.query(MissingPaperTracking).count() == 1

    def test_unreadable_opens_quality_issue(self, db, sheet, settings):
        flag_management.auto_detect_flags(db, sheet.id, SheetAnalysis(scan_quality=ScanQuality.UNREADABLE), settings)
        assert [r.type for r in db.query(MissingPaperTracking).all()] == ["QUALITY_ISSUE"]

    def test_clean_sheet_adds_nothing(self, db, sheet, settings):
        assert flag_management.auto_detect_flags(db, sheet.id, SheetAnalysis(), settings) == []
        assert db.query(MissingPaperTracking).count() == 0


class TestStatistics:
    def test_empty_exam(self, db, ids):
        stats = flag_management.get_flag_statistics(db, ids["exam_id"])
        assert stats["total_flags"] == 0
        assert stats["resolution_rate"] == 0
        assert stats["average_resolution_time_hours"] == 0

    def test_counts_add_up(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag(severity=FlagSeverity.CRITICAL))
        flag_management.add_flag(db, sheet.id, _flag(FlagType.ALIGNMENT_ISSUE))
        flag_management.add_flag(db, sheet.id, _flag(FlagType.ALIGNMENT_ISSUE))
        flag_management.resolve_flag(db, sheet.id, 1, FlagResolution(resolved_by=ids["teacher_id"]))

        stats = flag_management.get_flag_statistics(db, ids["exam_id"])
        assert stats["total_flags"] == 3
        assert stats["resolved_flags"] + stats["unresolved_flags"] == stats["total_flags"]
        assert stats["resolution_rate"] == pytest.approx(1 / 3)
        assert stats["critical_flags"] == 1
        assert stats["flags_by_type"]["ALIGNMENT_ISSUE"] == 2
        assert stats["flags_by_severity"]["MEDIUM"] == 2

    def test_unknown_exam(self, db, ids):
        with pytest.raises(NotFoundError):
            flag_management.get_flag_statistics(db, "no-such-exam")


class TestFlaggedSheets:
    def test_filters_by_flag_criteria(self, db, sheet, ids):
        flag_management.add_flag(db, sheet.id, _flag(severity=FlagSeverity.HIGH))

        assert len(flag_management.get_flagged_answer_sheets(db, ids["exam_id"])) == 1
        assert len(flag_management.get_flagged_answer_sheets(db, ids["exam_id"], severity="high")) == 1
        assert flag_management.get_flagged_answer_sheets(db, ids["exam_id"], severity="LOW") == []
        assert flag_management.get_flagged_answer_sheets(db, ids["exam_id"], resolved=True) == []


class TestConcurrentResolve:
    """Two sessions resolving the same flag: the first wins, the second conflicts."""

    def test_second_writer_conflicts(self, tmp_path):
        settings = Settings(database_url="sqlite:///{}".format(tmp_path / "race.db"))
        engine = build_engine(settings)
        create_tables(engine)
        factory = build_session_factory(engine)

        setup = factory()
        ids = seed_demo_data(setup)
        sheet = AnswerSheet(exam_id=ids["exam_id"], student_id=ids["student_ids"][0],
                            uploaded_by=ids["teacher_id"])
        setup.add(sheet)
        setup.commit()
        sheet_id = sheet.id
        flag_management.add_flag(setup, sheet_id, _flag())
        setup.close()

        first, second = factory(), factory()
        try:
            # Both callers read the unresolved flag before either writes.
            # Hold the loaded sheets; the identity map only keeps weak references.
            sheet_a = flag_management.get_answer_sheet(first, sheet_id)
            sheet_b = flag_management.get_answer_sheet(second, sheet_id)
            assert sheet_a.flags[0].resolved is False
            assert sheet_b.flags[0].resolved is False

            flag_management.resolve_flag(first, sheet_id, 0, FlagResolution(resolved_by=ids["teacher_id"]))
            assert sheet_b.flags[0].resolved is False
            with pytest.raises(ConflictError):
                flag_management.resolve_flag(second, sheet_id, 0, FlagResolution(resolved_by=ids["admin_id"]))
        finally:
            first.close()
            second.close()

        check = factory()
        flag = flag_management.get_answer_sheet_flags(check, sheet_id)[0]
        assert flag.resolved is True
        assert flag.resolved_by == ids["teacher_id"]
        check.close()
        engine.dispose()
