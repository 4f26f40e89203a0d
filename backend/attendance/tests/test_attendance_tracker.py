from datetime import date, timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone

from attendance import models as att_models
from attendance.services import tracker
from attendance.signals import attendance_marked
from courses import models as course_models
from planner import exceptions as errors
from promotions.services import cohort_store, session_linkage

Outcome = att_models.AttendanceRecord.Outcome


class AttendanceTrackerTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.admin = User.objects.create_user(username='admin', role=User.Role.ADMIN)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.other_teacher = User.objects.create_user(username='teacher2', role=User.Role.TEACHER)
        self.s1 = User.objects.create_user(username='s1', role=User.Role.STUDENT)
        self.s2 = User.objects.create_user(username='s2', role=User.Role.STUDENT)
        self.outsider = User.objects.create_user(username='s3', role=User.Role.STUDENT)
        self.course = course_models.Course.objects.create(code='PY101', title='Python', instructor=self.teacher)
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        cohort_store.add_members(self.promotion.pk, [self.s1.pk, self.s2.pk], self.staff)
        self.now = timezone.now()
        self.past = self._session(self.now - timedelta(days=1))
        self.future = self._session(self.now + timedelta(days=1))
        cohort_store.activate(self.promotion.pk, self.staff)

    def _session(self, start, teacher=None):
        return session_linkage.create_session(
            self.promotion.pk, self.course.pk, (teacher or self.teacher).pk, start, start + timedelta(hours=2), self.staff,
        )

    def test_mark_twice_keeps_one_record_and_audits_previous_value(self):
        tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(self.past.pk, self.s1.pk, Outcome.ABSENT, self.teacher)

        records = att_models.AttendanceRecord.objects.filter(session=self.past, student=self.s1)
        self.assertEqual(records.count(), 1)
        self.assertEqual(records.get().outcome, Outcome.ABSENT)
        audit = att_models.AttendanceAuditEntry.objects.get(record=records.get())
        self.assertEqual(audit.previous_outcome, Outcome.ATTENDED)
        self.assertEqual(audit.previous_marked_by, self.teacher)
        self.assertEqual(audit.new_outcome, Outcome.ABSENT)

    def test_same_outcome_again_is_noop(self):
        tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        self.assertFalse(att_models.AttendanceAuditEntry.objects.exists())

    def test_only_session_teacher_or_admin_may_mark(self):
        with self.assertRaises(errors.AuthorizationError):
            tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.other_teacher)
        with self.assertRaises(errors.AuthorizationError):
            tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.staff)
        record = tracker.mark(self.past.pk, self.s1.pk, Outcome.EXCUSED, self.admin)
        self.assertEqual(record.marked_by, self.admin)

    def test_rejects_bad_outcomes_future_sessions_and_non_members(self):
        with self.assertRaises(errors.ValidationError):
            tracker.mark(self.past.pk, self.s1.pk, Outcome.UNMARKED, self.teacher)
        with self.assertRaises(errors.ValidationError):
            tracker.mark(self.past.pk, self.s1.pk, 'late', self.teacher)
        with self.assertRaises(errors.PreconditionError):
            tracker.mark(self.future.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        with self.assertRaises(errors.NotFoundError):
            tracker.mark(self.past.pk, self.outsider.pk, Outcome.ATTENDED, self.teacher)
        with self.assertRaises(errors.NotFoundError):
            tracker.mark(999999, self.s1.pk, Outcome.ATTENDED, self.teacher)

    @override_settings(ATTENDANCE_OVERWRITE_GRACE_HOURS=1)
    def test_overwrite_grace_limits_teachers_not_admins(self):
        tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        with self.assertRaises(errors.PreconditionError):
            tracker.mark(self.past.pk, self.s1.pk, Outcome.ABSENT, self.teacher)
        record = tracker.mark(self.past.pk, self.s1.pk, Outcome.ABSENT, self.admin)
        self.assertEqual(record.outcome, Outcome.ABSENT)

    @override_settings(ATTENDANCE_OVERWRITE_GRACE_HOURS=0.25)
    def test_overwrite_grace_runs_from_session_end(self):
        start = self.now - timedelta(minutes=30)
        running = session_linkage.create_session(
            self.promotion.pk, self.course.pk, self.teacher.pk, start, self.now + timedelta(hours=3), self.staff,
        )
        tracker.mark(running.pk, self.s1.pk, Outcome.ATTENDED, self.teacher, now=self.now)
        record = tracker.mark(running.pk, self.s1.pk, Outcome.ABSENT, self.teacher, now=self.now)
        self.assertEqual(record.outcome, Outcome.ABSENT)

        late = running.end_at + timedelta(minutes=20)
        with self.assertRaises(errors.PreconditionError):
            tracker.mark(running.pk, self.s1.pk, Outcome.ATTENDED, self.teacher, now=late)

    def test_notes_only_edit_keeps_previous_notes(self):
        tracker.mark(self.past.pk, self.s1.pk, Outcome.EXCUSED, self.teacher, notes='doctor')
        tracker.mark(self.past.pk, self.s1.pk, Outcome.EXCUSED, self.teacher, notes='doctor, certificate received')

        audit = att_models.AttendanceAuditEntry.objects.get(record__session=self.past, record__student=self.s1)
        self.assertEqual(audit.previous_outcome, Outcome.EXCUSED)
        self.assertEqual(audit.new_outcome, Outcome.EXCUSED)
        self.assertEqual(audit.previous_notes, 'doctor')

    def test_records_visible_to(self):
        tracker.ensure_unmarked_records(self.past)
        everyone = [self.s1.pk, self.s2.pk]
        for viewer in (self.teacher, self.admin, self.staff):
            with self.subTest(viewer=viewer.username):
                self.assertEqual(
                    list(tracker.records_visible_to(self.past.pk, viewer).values_list('student_id', flat=True)),
                    everyone,
                )
        own = tracker.records_visible_to(self.past.pk, self.s1)
        self.assertEqual(list(own.values_list('student_id', flat=True)), [self.s1.pk])
        with self.assertRaises(errors.AuthorizationError):
            tracker.records_visible_to(self.past.pk, self.other_teacher)
        with self.assertRaises(errors.NotFoundError):
            tracker.records_visible_to(999999, self.teacher)

    def test_marked_signal_is_sent_after_commit(self):
        received = []

        def _listener(sender, **kwargs):
            received.append(kwargs)

        attendance_marked.connect(_listener)
        try:
            with self.captureOnCommitCallbacks(execute=True):
                tracker.mark(self.past.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        finally:
            attendance_marked.disconnect(_listener)
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]['student_id'], self.s1.pk)
        self.assertEqual(received[0]['promotion_id'], self.promotion.pk)

    def test_ensure_unmarked_records_only_for_started_sessions(self):
        self.assertEqual(tracker.ensure_unmarked_records(self.past), 2)
        self.assertEqual(tracker.ensure_unmarked_records(self.past), 0)
        self.assertEqual(tracker.ensure_unmarked_records(self.future), 0)
        self.assertEqual(
            set(self.past.attendance_records.values_list('outcome', flat=True)), {Outcome.UNMARKED},
        )

    def test_bulk_mark_collects_errors(self):
        result = tracker.bulk_mark(self.past.pk, [
            {'student': self.s1.pk, 'outcome': Outcome.ATTENDED},
            {'student': self.outsider.pk, 'outcome': Outcome.ATTENDED},
        ], self.teacher)
        self.assertEqual(result['marked'], [self.s1.pk])
        self.assertEqual(result['errors'][self.outsider.pk]['kind'], 'not_found')


class AttendanceRatioTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.student = User.objects.create_user(username='s1', role=User.Role.STUDENT)
        self.course = course_models.Course.objects.create(code='PY101', title='Python')
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        cohort_store.add_members(self.promotion.pk, [self.student.pk], self.staff)
        self.now = timezone.now()

    def _sessions(self, past, future):
        created = []
        for i in range(past):
            start = self.now - timedelta(days=past - i)
            created.append(session_linkage.create_session(
                self.promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=1), self.staff))
        for i in range(future):
            start = self.now + timedelta(days=i + 1)
            session_linkage.create_session(
                self.promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=1), self.staff)
        return created

    def test_future_sessions_are_not_counted(self):
        held = self._sessions(past=3, future=7)
        tracker.mark(held[0].pk, self.student.pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(held[1].pk, self.student.pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(held[2].pk, self.student.pk, Outcome.ABSENT, self.teacher)
        self.assertAlmostEqual(tracker.attendance_ratio(self.student.pk, self.promotion.pk, now=self.now), 2 / 3)

    def test_no_session_held_yet_is_full_attendance(self):
        self._sessions(past=0, future=2)
        self.assertEqual(tracker.attendance_ratio(self.student.pk, self.promotion.pk, now=self.now), 1.0)

    def test_excused_and_unmarked_do_not_count_as_attended(self):
        held = self._sessions(past=2, future=0)
        tracker.mark(held[0].pk, self.student.pk, Outcome.EXCUSED, self.teacher)
        self.assertEqual(tracker.attendance_ratio(self.student.pk, self.promotion.pk, now=self.now), 0.0)

    def test_consecutive_absences_and_alerts(self):
        held = self._sessions(past=4, future=1)
        tracker.mark(held[0].pk, self.student.pk, Outcome.ATTENDED, self.teacher)
        for session in held[1:]:
            tracker.mark(session.pk, self.student.pk, Outcome.ABSENT, self.teacher)

        self.assertEqual(tracker.consecutive_absences(self.student.pk, self.promotion.pk, now=self.now), 3)
        kinds = {a['kind'] for a in tracker.attendance_alerts(self.promotion.pk, now=self.now)}
        self.assertEqual(kinds, {'low_attendance', 'consecutive_absences'})

        severities = {a['kind']: a['severity'] for a in tracker.attendance_alerts(self.promotion.pk, now=self.now)}
        self.assertEqual(severities, {'low_attendance': 'high', 'consecutive_absences': 'medium'})

    def test_five_absences_in_a_row_is_high_severity(self):
        held = self._sessions(past=5, future=0)
        for session in held:
            tracker.mark(session.pk, self.student.pk, Outcome.ABSENT, self.teacher)
        alerts = tracker.attendance_alerts(self.promotion.pk, now=self.now)
        streak = [a for a in alerts if a['kind'] == 'consecutive_absences']
        self.assertEqual(streak[0]['value'], 5)
        self.assertEqual(streak[0]['severity'], 'high')

    def test_alerts_for_unknown_promotion(self):
        with self.assertRaises(errors.NotFoundError):
            tracker.attendance_alerts(999999, now=self.now)


class AttendanceTrendTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.students = [
            User.objects.create_user(username=f's{i}', role=User.Role.STUDENT) for i in range(2)
        ]
        self.course = course_models.Course.objects.create(code='PY101', title='Python')
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        cohort_store.add_members(self.promotion.pk, [s.pk for s in self.students], self.staff)
        self.now = timezone.now()

    def _held(self, days_ago):
        start = self.now - timedelta(days=days_ago)
        return session_linkage.create_session(
            self.promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=1), self.staff)

    def _mark_all(self, session, outcome):
        for student in self.students:
            tracker.mark(session.pk, student.pk, outcome, self.teacher)

    def test_no_marks_is_flat(self):
        self._held(3)
        trend = tracker.attendance_trend(self.promotion.pk, now=self.now)
        self.assertEqual(trend['decline'], 0)
        self.assertFalse(trend['is_decreasing'])
        self.assertEqual(trend['severity'], 'low')

    def test_drop_in_second_half_is_high_severity(self):
        for days_ago in (12, 10):
            self._mark_all(self._held(days_ago), Outcome.ATTENDED)
        for days_ago in (4, 2):
            self._mark_all(self._held(days_ago), Outcome.ABSENT)
        # older than the window
        self._mark_all(self._held(20), Outcome.ABSENT)

        trend = tracker.attendance_trend(self.promotion.pk, now=self.now)
        self.assertEqual(trend['first_half_rate'], 100.0)
        self.assertEqual(trend['second_half_rate'], 0.0)
        self.assertEqual(trend['decline'], 100.0)
        self.assertTrue(trend['is_decreasing'])
        self.assertEqual(trend['severity'], 'high')

    def test_ten_point_decline_is_decreasing_but_low_severity(self):
        first = self._held(10)
        self._mark_all(first, Outcome.ATTENDED)
        second = [self._held(days_ago) for days_ago in (5, 4, 3, 2, 1)]
        for session in second[:-1]:
            self._mark_all(session, Outcome.ATTENDED)
        tracker.mark(second[-1].pk, self.students[0].pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(second[-1].pk, self.students[1].pk, Outcome.ABSENT, self.teacher)

        trend = tracker.attendance_trend(self.promotion.pk, now=self.now)
        self.assertEqual(trend['second_half_rate'], 90.0)
        self.assertEqual(trend['decline'], 10.0)
        self.assertTrue(trend['is_decreasing'])
        self.assertEqual(trend['severity'], 'low')
