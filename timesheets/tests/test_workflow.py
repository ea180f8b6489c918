from datetime import date

from django.conf import settings
from django.test import SimpleTestCase

from timesheets.errors import InvalidStateTransition, NotFound, ValidationError, VersionConflict
from timesheets.seed import load_seed_data
from timesheets.services import ApprovalWorkflow, TimesheetService, timesheet_id_for

from .base import NOW, TimesheetTestBase


class SaveDraftTest(TimesheetTestBase):
    """Test saving a week's rows."""

    def test_new_draft_round_trip(self):
        """A new week is stored as a draft and reads back with the same rows."""
        entries = [self.make_entry("p1", "task1", [8, 8, 8, 8, 8, 0, 0])]
        timesheet_id = timesheet_id_for("u4", date(2025, 2, 24))

        saved = TimesheetService.save_draft(
            self.state, timesheet_id, entries, total=40, user_id="u4", week_start=date(2025, 2, 24),
        )

        self.assertEqual(saved.status, "draft")
        self.assertEqual(saved.total_hours, 40)
        self.assertEqual(saved.version, 1)
        stored = self.state.get_timesheet(timesheet_id)
        self.assertEqual(stored.entries, entries)
        self.assertEqual(self.state.find_timesheet("u4", date(2025, 2, 24)).id, timesheet_id)

    def test_existing_status_is_preserved(self):
        """Saving rows of a submitted timesheet keeps its status and timestamps."""
        before = self.state.get_timesheet("ts1")
        entries = [self.make_entry("p1", "", [8, 8, 8, 8, 8, 0, 0])]

        saved = TimesheetService.save_draft(self.state, "ts1", entries)

        self.assertEqual(saved.status, "submitted")
        self.assertEqual(saved.submitted_at, before.submitted_at)
        self.assertEqual(saved.remarks, before.remarks)
        self.assertEqual(saved.total_hours, 40)

    def test_submit_then_save(self):
        """A save after submitting does not pull the timesheet back to draft."""
        ApprovalWorkflow.submit(self.state, "ts6")

        saved = TimesheetService.save_draft(
            self.state, "ts6", [self.make_entry("p1", "", [8, 8, 8, 0, 0, 0, 0])],
        )

        self.assertEqual(saved.status, "submitted")
        self.assertEqual(saved.total_hours, 24)

    def test_total_must_match_rows(self):
        """A stated total that disagrees with the rows is refused and nothing changes."""
        entries = [self.make_entry("p1", "", [8, 0, 0, 0, 0, 0, 0])]

        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(self.state, "ts6", entries, total=9)

        self.assertEqual(self.state.get_timesheet("ts6").total_hours, 16)

    def test_new_timesheet_needs_owner_and_monday(self):
        """Creating a week requires a known user and a Monday start."""
        entries = [self.make_entry("p1", "", [1, 0, 0, 0, 0, 0, 0])]

        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(self.state, "ts_new", entries)
        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(self.state, "ts_new", entries, user_id="u4", week_start=date(2025, 2, 25))
        with self.assertRaises(NotFound):
            TimesheetService.save_draft(self.state, "ts_new", entries, user_id="nobody", week_start=date(2025, 2, 24))
        self.assertFalse(self.state.has_timesheet("ts_new"))

    def test_one_timesheet_per_week(self):
        """A second timesheet for a user's week is refused."""
        entries = [self.make_entry("p1", "", [1, 0, 0, 0, 0, 0, 0])]

        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(
                self.state, "ts_other", entries, user_id="u3", week_start=date(2025, 2, 17),
            )

    def test_unknown_references(self):
        """Rows pointing at missing projects or tasks are refused."""
        with self.assertRaises(NotFound):
            TimesheetService.save_draft(self.state, "ts6", [self.make_entry("p9", "", [1, 0, 0, 0, 0, 0, 0])])
        with self.assertRaises(NotFound):
            TimesheetService.save_draft(self.state, "ts6", [self.make_entry("p1", "task9", [1, 0, 0, 0, 0, 0, 0])])

    def test_version_conflict(self):
        """A save based on a stale version is refused."""
        entries = [self.make_entry("p1", "", [1, 0, 0, 0, 0, 0, 0])]

        with self.assertRaises(VersionConflict):
            TimesheetService.save_draft(self.state, "ts6", entries, expected_version=5)

        saved = TimesheetService.save_draft(self.state, "ts6", entries, expected_version=0)
        self.assertEqual(saved.version, 1)
        with self.assertRaises(VersionConflict):
            TimesheetService.save_draft(self.state, "ts6", entries, expected_version=0)

    def test_set_hours(self):
        """One cell of an editable week changes and the total follows."""
        saved = TimesheetService.set_hours(self.state, "ts6", 0, 2, "9")

        self.assertEqual(saved.entries[0].hours, [8, 8, 9, 0, 0, 0, 0])
        self.assertEqual(saved.total_hours, 25)

        with self.assertRaises(InvalidStateTransition):
            TimesheetService.set_hours(self.state, "ts1", 0, 5, "2")

    def test_legacy_rows_stay_editable(self):
        """Rows holding a category id in task_id are saved with it moved to category_id."""
        saved = TimesheetService.set_hours(self.state, "ts6", 0, 3, "4")

        self.assertEqual(saved.entries[0].task_id, "")
        self.assertEqual(saved.entries[0].category_id, "t1")
        self.assertEqual(saved.total_hours, 20)

        saved = TimesheetService.save_draft(self.state, "ts3", self.state.get_timesheet("ts3").entries)
        self.assertEqual((saved.entries[0].task_id, saved.entries[0].category_id), ("", "t4"))

    def test_out_of_range_hours(self):
        """Malformed rows are refused as a validation error of the service."""
        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(self.state, "ts6", [{"project_id": "p1", "hours": [25, 0, 0, 0, 0, 0, 0]}])
        with self.assertRaises(ValidationError):
            TimesheetService.save_draft(self.state, "ts6", [{"project_id": "p1", "hours": [8, 8]}])

        self.assertEqual(self.state.get_timesheet("ts6").total_hours, 16)


class SubmitTest(TimesheetTestBase):
    """Test submitting timesheets for approval."""

    def test_submit_draft(self):
        """A draft with hours becomes submitted with a timestamp."""
        submitted = ApprovalWorkflow.submit(self.state, "ts6")

        self.assertEqual(submitted.status, "submitted")
        self.assertEqual(submitted.submitted_at, NOW)

    def test_submit_without_hours(self):
        """A week with no hours cannot be submitted."""
        with self.assertRaisesMessage(ValidationError, "log at least some hours before submitting"):
            ApprovalWorkflow.submit(self.state, "ts7")

        self.assertEqual(self.state.get_timesheet("ts7").status, "draft")

    def test_resubmit_rejected(self):
        """A rejected timesheet can be sent back for review."""
        self.assertEqual(ApprovalWorkflow.submit(self.state, "ts3").status, "submitted")

    def test_submit_twice(self):
        """Submitted and approved timesheets cannot be submitted again."""
        with self.assertRaises(InvalidStateTransition):
            ApprovalWorkflow.submit(self.state, "ts1")
        with self.assertRaises(InvalidStateTransition):
            ApprovalWorkflow.submit(self.state, "ts2")

    def test_unknown_timesheet(self):
        """Missing ids raise NotFound."""
        with self.assertRaises(NotFound):
            ApprovalWorkflow.submit(self.state, "missing")
        with self.assertRaises(NotFound):
            ApprovalWorkflow.approve(self.state, "missing")


class ReviewTest(TimesheetTestBase):
    """Test approving and rejecting submitted timesheets."""

    def test_approve(self):
        """Approval records the time and the reviewer's remarks."""
        approved = ApprovalWorkflow.approve(self.state, "ts1", "Good", reviewer_id="u2")

        self.assertEqual(approved.status, "approved")
        self.assertEqual(approved.approved_at, NOW)
        self.assertEqual(approved.remarks, "Good")

    def test_approve_without_remarks(self):
        """Remarks are optional on approval."""
        self.assertEqual(ApprovalWorkflow.approve(self.state, "ts1", None).remarks, "")

    def test_approve_draft(self):
        """Only submitted timesheets can be approved."""
        with self.assertRaises(InvalidStateTransition):
            ApprovalWorkflow.approve(self.state, "ts6")

        self.assertEqual(self.state.get_timesheet("ts6").status, "draft")

    def test_reject_requires_reason(self):
        """Blank reasons are refused and the timesheet stays submitted."""
        for remarks in ("", "   ", None):
            with self.subTest(remarks=remarks):
                with self.assertRaisesMessage(ValidationError, "rejection reason required"):
                    ApprovalWorkflow.reject(self.state, "ts1", remarks)
        self.assertEqual(self.state.get_timesheet("ts1").status, "submitted")

    def test_reject(self):
        """Rejection stores the reason as given and leaves the approval time empty."""
        rejected = ApprovalWorkflow.reject(self.state, "ts1", "Missing hours Monday", reviewer_id="u2")

        self.assertEqual(rejected.status, "rejected")
        self.assertEqual(rejected.remarks, "Missing hours Monday")
        self.assertIsNone(rejected.approved_at)

    def test_reject_keeps_remarks_untrimmed(self):
        """Surrounding whitespace only matters for the blank check."""
        rejected = ApprovalWorkflow.reject(self.state, "ts1", "  Missing hours Monday ")

        self.assertEqual(rejected.remarks, "  Missing hours Monday ")
        self.assertIsNone(rejected.approved_at)

    def test_reject_approved(self):
        """An approved timesheet stays approved."""
        with self.assertRaises(InvalidStateTransition):
            ApprovalWorkflow.reject(self.state, "ts2", "Too late")

        self.assertEqual(self.state.get_timesheet("ts2").status, "approved")

    def test_reject_resubmit_approve(self):
        """A rejected week can be corrected, resubmitted and approved."""
        ApprovalWorkflow.reject(self.state, "ts1", "Wrong project")
        TimesheetService.set_hours(self.state, "ts1", 1, 2, 0)
        ApprovalWorkflow.submit(self.state, "ts1")
        approved = ApprovalWorkflow.approve(self.state, "ts1")

        self.assertEqual(approved.status, "approved")
        self.assertEqual(approved.total_hours, 39)

    def test_decisions_are_audited(self):
        """Approvals and rejections appear in the audit log under the reviewer."""
        ApprovalWorkflow.approve(self.state, "ts1", "Good", reviewer_id="u2")

        events = self.state.audit_log(search="timesheet.approved")
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].actor_id, "u2")
        self.assertEqual(events[0].target, "timesheet ts1")


class ApprovalQueueTest(TimesheetTestBase):
    """Test the reviewer's queue, counts and daily view."""

    def test_daily_entries(self):
        """Entries of submitted weeks with hours on the day are listed."""
        rows = ApprovalWorkflow.daily_entries_for(date(2025, 2, 12), self.state.timesheets())

        self.assertEqual(len(rows), 2)
        self.assertEqual({r.timesheet_id for r in rows}, {"ts1"})
        self.assertEqual([r.day_hours for r in rows], [7, 1])
        self.assertEqual(rows[0].day_index, 2)
        self.assertEqual(rows[1].project_id, "p2")

    def test_daily_entries_skip_empty_days(self):
        """Rows with no hours on the day and days outside the week are left out."""
        rows = ApprovalWorkflow.daily_entries_for(date(2025, 2, 11), self.state.timesheets())
        self.assertEqual([r.day_hours for r in rows], [8])

        self.assertEqual(ApprovalWorkflow.daily_entries_for(date(2025, 3, 3), self.state.timesheets()), [])

    def test_queue(self):
        """Drafts are never queued; 'all' shows every reviewed status."""
        self.assertEqual([t.id for t in ApprovalWorkflow.queue(self.state)], ["ts1"])
        self.assertEqual([t.id for t in ApprovalWorkflow.queue(self.state, "all")], ["ts1", "ts2", "ts3"])
        self.assertEqual([t.id for t in ApprovalWorkflow.queue(self.state, "rejected")], ["ts3"])
        with self.assertRaises(ValidationError):
            ApprovalWorkflow.queue(self.state, "draft")

    def test_counts(self):
        """Counts per status leave drafts out."""
        counts = ApprovalWorkflow.counts(self.state)

        self.assertEqual(counts.all, 3)
        self.assertEqual(counts.submitted, 1)
        self.assertEqual(counts.approved, 1)
        self.assertEqual(counts.rejected, 1)


class SeedDataWorkflowTest(SimpleTestCase):
    """Test editing and reviewing the bundled fixtures, whose rows keep category ids in task_id."""

    def setUp(self):
        """Set up common test data"""
        self.state = load_seed_data(settings.TIMEPRO_SEED_DIR)

    def test_set_hours_on_seeded_draft(self):
        saved = TimesheetService.set_hours(self.state, "ts6", 0, 2, "4")

        self.assertEqual(saved.entries[0].hours, [8, 8, 4, 0, 0, 0, 0])
        self.assertEqual(saved.entries[0].category_id, "t1")
        self.assertEqual(saved.total_hours, 20)

    def test_reject_correct_resubmit(self):
        """A seeded submitted week can be rejected, corrected and sent back."""
        ApprovalWorkflow.reject(self.state, "ts1", "Monday is short", reviewer_id="u2")
        TimesheetService.set_hours(self.state, "ts1", 0, 0, "6")
        resubmitted = ApprovalWorkflow.submit(self.state, "ts1")

        self.assertEqual(resubmitted.status, "submitted")
        self.assertEqual(resubmitted.total_hours, 38)

    def test_save_rejected_week_unchanged(self):
        saved = TimesheetService.save_draft(self.state, "ts3", self.state.get_timesheet("ts3").entries)

        self.assertEqual(saved.status, "rejected")
        self.assertEqual(saved.total_hours, 32)
