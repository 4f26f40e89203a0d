from datetime import date, timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from courses import models as course_models
from planner import exceptions as errors
from promotions import models as promo_models
from promotions.services import cohort_store, session_linkage


def definition(**overrides):
    data = {
        'name': 'September 2025-2026 - Semester 1',
        'academic_year': '2025-2026',
        'intake': 'september',
        'semester': 1,
        'start_date': date(2025, 9, 1),
        'end_date': date(2026, 6, 30),
    }
    data.update(overrides)
    return data


class CohortDefinitionTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)

    def test_create_cohort_starts_as_draft(self):
        promotion = cohort_store.create_cohort(definition(), self.staff)
        self.assertEqual(promotion.status, promo_models.Promotion.Status.DRAFT)
        self.assertEqual(promotion.created_by, self.staff)

    def test_accepts_iso_date_strings(self):
        promotion = cohort_store.create_cohort(definition(start_date='2025-09-01', end_date='2026-06-30'), self.staff)
        self.assertEqual(promotion.start_date, date(2025, 9, 1))

    def test_invalid_definitions_are_rejected(self):
        bad = [
            definition(semester=0),
            definition(semester=11),
            definition(semester=2),  # even semester in a september intake
            definition(intake='march', semester=3),
            definition(intake='january'),
            definition(academic_year='2025/2026'),
            definition(academic_year='2025-2027'),
            definition(end_date=date(2025, 9, 1)),
            definition(name=''),
            definition(max_students=0),
        ]
        for d in bad:
            with self.subTest(d=d):
                with self.assertRaises(errors.ValidationError):
                    cohort_store.create_cohort(d, self.staff)

    def test_march_intake_runs_even_semesters(self):
        promotion = cohort_store.create_cohort(definition(intake='march', semester=2), self.staff)
        self.assertEqual(promotion.intake, 'march')

    def test_teacher_cannot_create_cohorts(self):
        with self.assertRaises(errors.AuthorizationError):
            cohort_store.create_cohort(definition(), self.teacher)


class MembershipTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.s1 = User.objects.create_user(username='s1', role=User.Role.STUDENT)
        self.s2 = User.objects.create_user(username='s2', role=User.Role.STUDENT)
        self.s3 = User.objects.create_user(username='s3', role=User.Role.STUDENT)
        self.course = course_models.Course.objects.create(code='PY101', title='Python', instructor=self.teacher)
        self.p1 = cohort_store.create_cohort(definition(name='P1'), self.staff)
        self.p2 = cohort_store.create_cohort(definition(name='P2'), self.staff)

    def _add_session(self, promotion):
        start = timezone.now() + timedelta(days=1)
        return session_linkage.create_session(promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=2), self.staff)

    def test_add_members_keeps_order(self):
        cohort_store.add_members(self.p1.pk, [self.s2.pk, self.s1.pk], self.staff)
        self.assertEqual(cohort_store.live_member_ids(self.p1), [self.s2.pk, self.s1.pk])

    def test_re_adding_member_is_noop(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        created = cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        self.assertEqual(created, [])
        self.assertEqual(self.p1.memberships.count(), 1)

    def test_student_in_another_cohort_conflicts(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        with self.assertRaises(errors.ConflictError) as ctx:
            cohort_store.add_members(self.p2.pk, [self.s1.pk], self.staff)
        self.assertEqual(ctx.exception.detail['conflicting_students'], [self.s1.pk])

    def test_conflict_adds_nobody(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        with self.assertRaises(errors.ConflictError):
            cohort_store.add_members(self.p2.pk, [self.s2.pk, self.s1.pk, self.s3.pk], self.staff)
        self.assertFalse(self.p2.memberships.exists())

    def test_lost_race_on_insert_adds_nobody(self):
        cohort_store.add_members(self.p1.pk, [self.s2.pk], self.staff)
        # the pre-checks miss s2's live membership, only the unique constraint sees it
        with mock.patch.object(
            cohort_store, '_live_memberships', return_value=promo_models.PromotionMembership.objects.none(),
        ):
            with self.assertRaises(errors.ConflictError) as ctx:
                cohort_store.add_members(self.p2.pk, [self.s1.pk, self.s2.pk], self.staff)
        self.assertEqual(ctx.exception.detail['conflicting_students'], [self.s2.pk])
        self.assertFalse(self.p2.memberships.exists())
        self.assertIsNone(cohort_store.current_cohort_for(self.s1.pk))
        self.assertEqual(cohort_store.current_cohort_for(self.s2.pk), self.p1)

    def test_at_most_one_live_cohort_per_student(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        for promotion in (self.p2, self.p1):
            try:
                cohort_store.add_members(promotion.pk, [self.s1.pk], self.staff)
            except errors.ConflictError:
                pass
        live = promo_models.PromotionMembership.objects.filter(student=self.s1, left_at__isnull=True).count()
        self.assertEqual(live, 1)
        self.assertEqual(cohort_store.current_cohort_for(self.s1.pk), self.p1)

    def test_unknown_and_non_student_users(self):
        with self.assertRaises(errors.NotFoundError):
            cohort_store.add_members(self.p1.pk, [999999], self.staff)
        with self.assertRaises(errors.ValidationError):
            cohort_store.add_members(self.p1.pk, [self.teacher.pk], self.staff)
        with self.assertRaises(errors.NotFoundError):
            cohort_store.add_members(999999, [self.s1.pk], self.staff)

    def test_capacity_is_enforced(self):
        small = cohort_store.create_cohort(definition(name='Small', max_students=2), self.staff)
        with self.assertRaises(errors.ConflictError):
            cohort_store.add_members(small.pk, [self.s1.pk, self.s2.pk, self.s3.pk], self.staff)
        cohort_store.add_members(small.pk, [self.s1.pk, self.s2.pk], self.staff)
        self.assertEqual(len(cohort_store.live_member_ids(small)), 2)

    def test_removed_student_can_join_another_cohort(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        cohort_store.remove_member(self.p1.pk, self.s1.pk, self.staff)
        cohort_store.add_members(self.p2.pk, [self.s1.pk], self.staff)
        self.assertEqual(cohort_store.current_cohort_for(self.s1.pk), self.p2)
        # history is kept
        self.assertEqual(promo_models.PromotionMembership.objects.filter(student=self.s1).count(), 2)

    def test_remove_non_member(self):
        with self.assertRaises(errors.NotFoundError):
            cohort_store.remove_member(self.p1.pk, self.s1.pk, self.staff)

    def test_activate_requires_sessions(self):
        with self.assertRaises(errors.PreconditionError):
            cohort_store.activate(self.p1.pk, self.staff)
        self._add_session(self.p1)
        promotion = cohort_store.activate(self.p1.pk, self.staff)
        self.assertEqual(promotion.status, promo_models.Promotion.Status.ACTIVE)
        # activating again is harmless
        self.assertEqual(cohort_store.activate(self.p1.pk, self.staff).status, promo_models.Promotion.Status.ACTIVE)

    def test_archive_is_terminal_and_idempotent(self):
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        cohort_store.archive(self.p1.pk, self.staff)
        again = cohort_store.archive(self.p1.pk, self.staff)
        self.assertEqual(again.status, promo_models.Promotion.Status.ARCHIVED)
        self.assertIsNone(cohort_store.current_cohort_for(self.s1.pk))
        with self.assertRaises(errors.PreconditionError):
            cohort_store.add_members(self.p1.pk, [self.s2.pk], self.staff)
        with self.assertRaises(errors.PreconditionError):
            cohort_store.activate(self.p1.pk, self.staff)
        self.assertTrue(promo_models.Promotion.objects.filter(pk=self.p1.pk).exists())

    def test_complete_requires_active(self):
        with self.assertRaises(errors.PreconditionError):
            cohort_store.complete(self.p1.pk, self.staff)
        self._add_session(self.p1)
        cohort_store.add_members(self.p1.pk, [self.s1.pk], self.staff)
        cohort_store.activate(self.p1.pk, self.staff)
        promotion = cohort_store.complete(self.p1.pk, self.staff)
        self.assertEqual(promotion.status, promo_models.Promotion.Status.COMPLETED)
        self.assertIsNone(cohort_store.current_cohort_for(self.s1.pk))


class CohortUpdateTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.s1 = User.objects.create_user(username='s1', role=User.Role.STUDENT)
        self.s2 = User.objects.create_user(username='s2', role=User.Role.STUDENT)
        self.course = course_models.Course.objects.create(code='PY101', title='Python', instructor=self.teacher)
        self.promotion = cohort_store.create_cohort(definition(), self.staff)

    def _activate(self):
        start = timezone.now() + timedelta(days=1)
        session_linkage.create_session(
            self.promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=2), self.staff)
        cohort_store.activate(self.promotion.pk, self.staff)

    def test_draft_accepts_any_editable_field(self):
        promotion = cohort_store.update_cohort(self.promotion.pk, {
            'name': 'March 2026 - Semester 2', 'intake': 'march', 'semester': '2', 'max_students': 30,
        }, self.staff)
        promotion.refresh_from_db()
        self.assertEqual(promotion.name, 'March 2026 - Semester 2')
        self.assertEqual((promotion.intake, promotion.semester), ('march', 2))
        self.assertEqual(promotion.max_students, 30)
        self.assertEqual(promotion.status, promo_models.Promotion.Status.DRAFT)

    def test_changes_are_validated_against_the_whole_definition(self):
        with self.assertRaises(errors.ValidationError):
            cohort_store.update_cohort(self.promotion.pk, {'semester': 2}, self.staff)
        with self.assertRaises(errors.ValidationError):
            cohort_store.update_cohort(self.promotion.pk, {'end_date': date(2025, 8, 1)}, self.staff)
        with self.assertRaises(errors.ValidationError) as ctx:
            cohort_store.update_cohort(self.promotion.pk, {'status': 'active', 'name': 'x'}, self.staff)
        self.assertEqual(ctx.exception.detail['invalid_fields'], ['status'])
        self.promotion.refresh_from_db()
        self.assertEqual(self.promotion.status, promo_models.Promotion.Status.DRAFT)

    def test_active_cohort_keeps_its_identity(self):
        self._activate()
        with self.assertRaises(errors.PreconditionError) as ctx:
            cohort_store.update_cohort(self.promotion.pk, {'academic_year': '2026-2027'}, self.staff)
        self.assertEqual(ctx.exception.detail['frozen_fields'], ['academic_year'])

        # same value in another form is not a change
        cohort_store.update_cohort(self.promotion.pk, {'semester': '1', 'description': 'Evening group'}, self.staff)
        self.promotion.refresh_from_db()
        self.assertEqual(self.promotion.description, 'Evening group')

    def test_capacity_cannot_drop_below_members(self):
        cohort_store.add_members(self.promotion.pk, [self.s1.pk, self.s2.pk], self.staff)
        with self.assertRaises(errors.ConflictError):
            cohort_store.update_cohort(self.promotion.pk, {'max_students': 1}, self.staff)
        cohort_store.update_cohort(self.promotion.pk, {'max_students': 2}, self.staff)

    def test_closed_cohort_and_non_managers(self):
        with self.assertRaises(errors.AuthorizationError):
            cohort_store.update_cohort(self.promotion.pk, {'name': 'x'}, self.teacher)
        cohort_store.archive(self.promotion.pk, self.staff)
        with self.assertRaises(errors.PreconditionError):
            cohort_store.update_cohort(self.promotion.pk, {'name': 'x'}, self.staff)
        with self.assertRaises(errors.NotFoundError):
            cohort_store.update_cohort(999999, {'name': 'x'}, self.staff)


class NextSemesterTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.student = User.objects.create_user(username='s1', role=User.Role.STUDENT)

    def test_september_to_march_keeps_academic_year(self):
        current = cohort_store.create_cohort(definition(name='S1'), self.staff)
        target = cohort_store.create_cohort(definition(
            name='S2', intake='march', semester=2, start_date=date(2026, 3, 1), end_date=date(2026, 12, 30),
        ), self.staff)
        cohort_store.add_members(current.pk, [self.student.pk], self.staff)

        moved_to = cohort_store.progress_student_to_next_semester(self.student.pk, self.staff)
        self.assertEqual(moved_to, target)
        self.assertEqual(cohort_store.current_cohort_for(self.student.pk), target)

    def test_march_to_september_rolls_academic_year(self):
        current = cohort_store.create_cohort(definition(name='S2', intake='march', semester=2), self.staff)
        self.assertEqual(cohort_store.next_semester_target(current), (3, 'september', '2026-2027'))

    def test_missing_target_raises_not_found(self):
        current = cohort_store.create_cohort(definition(name='S1'), self.staff)
        cohort_store.add_members(current.pk, [self.student.pk], self.staff)
        with self.assertRaises(errors.NotFoundError):
            cohort_store.progress_student_to_next_semester(self.student.pk, self.staff)
        self.assertEqual(cohort_store.current_cohort_for(self.student.pk), current)

    def test_final_semester_has_no_successor(self):
        last = cohort_store.create_cohort(definition(name='S10', intake='march', semester=10), self.staff)
        with self.assertRaises(errors.PreconditionError):
            cohort_store.next_semester_target(last)
