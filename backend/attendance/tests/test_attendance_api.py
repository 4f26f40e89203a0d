from datetime import date, timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from attendance import models as att_models
from attendance.services import tracker
from courses import models as course_models
from promotions.services import cohort_store, session_linkage

Outcome = att_models.AttendanceRecord.Outcome


class AttendanceApiTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user(username='staff', role=User.Role.STAFF)
        self.teacher = User.objects.create_user(username='teacher', role=User.Role.TEACHER)
        self.other_teacher = User.objects.create_user(username='teacher2', role=User.Role.TEACHER)
        self.s1 = User.objects.create_user(username='s1', role=User.Role.STUDENT)
        self.s2 = User.objects.create_user(username='s2', role=User.Role.STUDENT)
        self.course = course_models.Course.objects.create(code='PY101', title='Python')
        self.promotion = cohort_store.create_cohort({
            'name': 'P', 'academic_year': '2025-2026', 'intake': 'september', 'semester': 1,
            'start_date': date(2025, 9, 1), 'end_date': date(2026, 6, 30),
        }, self.staff)
        cohort_store.add_members(self.promotion.pk, [self.s1.pk, self.s2.pk], self.staff)
        start = timezone.now() - timedelta(days=1)
        self.session = session_linkage.create_session(
            self.promotion.pk, self.course.pk, self.teacher.pk, start, start + timedelta(hours=2), self.staff,
        )
        cohort_store.activate(self.promotion.pk, self.staff)
        tracker.mark(self.session.pk, self.s1.pk, Outcome.ATTENDED, self.teacher)
        tracker.mark(self.session.pk, self.s2.pk, Outcome.ABSENT, self.teacher)
        self.client = APIClient()

    def _get(self, user, url):
        self.client.force_authenticate(user=user)
        return self.client.get(url)

    def test_session_records_for_teacher_and_staff(self):
        for user in (self.teacher, self.staff):
            with self.subTest(user=user.username):
                resp = self._get(user, f'/api/attendance/sessions/{self.session.pk}/')
                self.assertEqual(resp.status_code, 200)
                self.assertEqual([r['student'] for r in resp.data], [self.s1.pk, self.s2.pk])

    def test_student_sees_only_own_record(self):
        resp = self._get(self.s2, f'/api/attendance/sessions/{self.session.pk}/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data), 1)
        self.assertEqual(resp.data[0]['student'], self.s2.pk)
        self.assertEqual(resp.data[0]['outcome'], Outcome.ABSENT)

    def test_other_teacher_cannot_read_session_records(self):
        resp = self._get(self.other_teacher, f'/api/attendance/sessions/{self.session.pk}/')
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.data['kind'], 'authorization')

    def test_alerts_and_trend_are_not_for_students(self):
        for url in (
            f'/api/attendance/promotions/{self.promotion.pk}/alerts/',
            f'/api/attendance/promotions/{self.promotion.pk}/trend/',
        ):
            with self.subTest(url=url):
                self.assertEqual(self._get(self.s1, url).status_code, 403)
                self.assertEqual(self._get(self.other_teacher, url).status_code, 403)

    def test_alerts_for_cohort_teacher_carry_severity(self):
        resp = self._get(self.teacher, f'/api/attendance/promotions/{self.promotion.pk}/alerts/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['promotion'], self.promotion.pk)
        low = [a for a in resp.data['alerts'] if a['kind'] == 'low_attendance']
        self.assertEqual([a['student_id'] for a in low], [self.s2.pk])
        self.assertEqual(low[0]['severity'], 'high')

    def test_trend_for_staff(self):
        resp = self._get(self.staff, f'/api/attendance/promotions/{self.promotion.pk}/trend/')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['promotion_id'], self.promotion.pk)
        self.assertIn('is_decreasing', resp.data)

    def test_unknown_promotion_is_not_found(self):
        for url in ('/api/attendance/promotions/999999/alerts/', '/api/attendance/promotions/999999/trend/'):
            with self.subTest(url=url):
                self.assertEqual(self._get(self.staff, url).status_code, 404)
