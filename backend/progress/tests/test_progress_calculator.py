from datetime import date, timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from attendance import models as att_models
from attendance.services import tracker
from courses import models as course_models
from planner import exceptions as errors
from progress import models as progress_models
from progress.services import calculator, statistics
from promotions.services import cohort_store, session_linkage

Outcome = att_models.AttendanceRecord.Outcome


class FailingSource:
    def get_completion_ratio(self, student_id, course_id):
        raise errors.ExternalDependencyError('course service down')


class FixedSource:
    def __init__(self, ratios):
        self.ratios = ratios

    def get_completion_ratio(self, student_id, course_id):
        return self.ratios.get(course_id, 0.0)


class ComputeProgressTests(TestCase):
    def test_weighted_sum(self):
        for c, a in [(0.0, 0.0), (1.0, 1.0), (0.5, 0.2), (0.25, 1.0), (1.0, 0.0)]:
            with self.subTest(c=c, a=a):
                score = calculator.compute_progress(c, a)
                self.assertEqual(score, 0.7 * c + 0.3 * a)
                self.assertGreaterEqual(score, 0.0)
                self.assertLessEqual(score, 1.0)

    def test_clamped_to_unit_interval(self):
        self.assertEqual(calculator.compute_progress(2.0, 2.0), 1.0)
        self.assertEqual(calculator.compute_progress(-1.0, 0.0), 0.0)

    def test_display_score(self):
        self.assertEqual(calculator.display_score(0.7345), 73.45)


class RecomputeTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.student = User.objects.create_user(username='s1', first_name='Ada', last_name='L', role=User.Role.STUDENT)
        self.x = course_models.Course.objects.create(code='X', title='X')
        self.y = course_models.Course.objects.create(code='Y', title='Y')
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        cohort_store.add_members(self.promotion.pk, [self.student.pk], self.staff)
        self.now = timezone.now()
        start = self.now - timedelta(days=1)
        self.sx = session_linkage.create_session(self.promotion.pk, self.x.pk, self.teacher.pk, start, start + timedelta(hours=1), self.staff)
        start = self.now + timedelta(days=1)
        session_linkage.create_session(self.promotion.pk, self.y.pk, self.teacher.pk, start, start + timedelta(hours=1), self.staff)
        course_models.CourseProgress.objects.create(student=self.student, course=self.x, progress_percentage=80)
        course_models.CourseProgress.objects.create(student=self.student, course=self.y, progress_percentage=40)

    def test_completion_is_mean_over_cohort_courses(self):
        self.assertAlmostEqual(calculator.completion_ratio(self.student.pk, self.promotion.pk), 0.6)

    def test_cohort_without_courses_has_zero_completion(self):
        empty = cohort_store.create_cohort({
            'name': 'E', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        self.assertEqual(calculator.completion_ratio(self.student.pk, empty.pk), 0.0)

    def test_recompute_writes_weighted_snapshot(self):
        tracker.mark(self.sx.pk, self.student.pk, Outcome.ATTENDED, self.teacher)
        snapshot = calculator.recompute(self.student.pk, self.promotion.pk, now=self.now)
        self.assertAlmostEqual(snapshot.completion_ratio, 0.6)
        self.assertEqual(snapshot.attendance_ratio, 1.0)
        self.assertAlmostEqual(snapshot.score, 0.7 * 0.6 + 0.3 * 1.0)
        self.assertEqual(calculator.get_progress(self.student.pk, self.promotion.pk), snapshot)

    def test_recompute_twice_is_identical(self):
        first = calculator.recompute(self.student.pk, self.promotion.pk, now=self.now)
        second = calculator.recompute(self.student.pk, self.promotion.pk, now=self.now + timedelta(minutes=5))
        first.refresh_from_db()
        self.assertEqual(
            (first.completion_ratio, first.attendance_ratio, first.score, first.computed_at),
            (second.completion_ratio, second.attendance_ratio, second.score, second.computed_at),
        )
        self.assertEqual(progress_models.ProgressSnapshot.objects.count(), 1)

    def test_source_failure_keeps_previous_snapshot(self):
        before = calculator.recompute(self.student.pk, self.promotion.pk, now=self.now)
        tracker.mark(self.sx.pk, self.student.pk, Outcome.ABSENT, self.teacher)
        with self.assertRaises(errors.ExternalDependencyError):
            calculator.recompute(self.student.pk, self.promotion.pk, now=self.now, source=FailingSource())
        after = calculator.get_progress(self.student.pk, self.promotion.pk)
        self.assertEqual((after.score, after.computed_at), (before.score, before.computed_at))

    def test_get_progress_before_compute(self):
        with self.assertRaises(errors.NotFoundError):
            calculator.get_progress(self.student.pk, self.promotion.pk)

    def test_recompute_cohort_collects_failures(self):
        result = calculator.recompute_cohort(self.promotion.pk, now=self.now, source=FailingSource())
        self.assertEqual(result['recomputed'], 0)
        self.assertEqual(result['errors'][self.student.pk]['kind'], 'external_dependency')

    def test_snapshot_survives_archive(self):
        calculator.recompute(self.student.pk, self.promotion.pk, now=self.now)
        cohort_store.archive(self.promotion.pk, self.staff)
        self.assertTrue(progress_models.ProgressSnapshot.objects.filter(promotion=self.promotion).exists())

    def test_recompute_unknown_student_is_not_found(self):
        with self.assertRaises(errors.NotFoundError):
            calculator.recompute(987654, self.promotion.pk, now=self.now)
        self.assertFalse(progress_models.ProgressSnapshot.objects.exists())

        result = calculator.recompute_cohort(self.promotion.pk, now=self.now, student_ids=[987654, self.student.pk])
        self.assertEqual(result['recomputed'], 1)
        self.assertEqual(result['errors'][987654]['kind'], 'not_found')

    def test_recompute_requires_membership(self):
        User = get_user_model()
        stranger = User.objects.create_user(username='s2', role=User.Role.STUDENT)
        with self.assertRaises(errors.NotFoundError):
            calculator.recompute(stranger.pk, self.promotion.pk, now=self.now)
        self.assertFalse(progress_models.ProgressSnapshot.objects.filter(student=stranger).exists())

    def test_former_member_can_still_be_recomputed(self):
        cohort_store.remove_member(self.promotion.pk, self.student.pk, self.staff)
        snapshot = calculator.recompute(self.student.pk, self.promotion.pk, now=self.now)
        self.assertAlmostEqual(snapshot.completion_ratio, 0.6)


class StatisticsTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        now = timezone.now()
        self.students = []
        for i, (completion, attendance) in enumerate([(1.0, 1.0), (0.5, 0.8), (0.1, 0.5)]):
            student = User.objects.create_user(username=f's{i}', role=User.Role.STUDENT)
            self.students.append(student)
            progress_models.ProgressSnapshot.objects.create(
                student=student, promotion=self.promotion, completion_ratio=completion,
                attendance_ratio=attendance, score=calculator.compute_progress(completion, attendance), computed_at=now,
            )
        cohort_store.add_members(self.promotion.pk, [s.pk for s in self.students], self.staff)

    def test_promotion_statistics(self):
        stats = statistics.promotion_statistics(self.promotion.pk)
        self.assertEqual(stats['total_students'], 3)
        self.assertEqual(stats['completion_rate'], 33.33)
        self.assertEqual(stats['at_risk_students'], 1)
        self.assertAlmostEqual(stats['average_attendance'], 76.67)

    def test_report_statuses(self):
        statuses = {row['student_id']: row['status'] for row in statistics.progress_report(self.promotion.pk)}
        self.assertEqual(statuses[self.students[0].pk], 'excelling')
        self.assertEqual(statuses[self.students[1].pk], 'on-track')
        self.assertEqual(statuses[self.students[2].pk], 'at-risk')

    def test_at_risk_and_top_performers(self):
        at_risk = list(statistics.at_risk_students(self.promotion.pk).values_list('student_id', flat=True))
        self.assertEqual(at_risk, [self.students[2].pk])
        top = list(statistics.top_performers(self.promotion.pk, limit=1))
        self.assertEqual(top[0].student_id, self.students[0].pk)
