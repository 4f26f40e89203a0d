"""What a student sees of their current promotion."""
from typing import Dict, Optional

from django.utils import timezone

from courses import models as course_models
from progress import models as progress_models
from promotions import models as promo_models
from promotions.services import cohort_store

UPCOMING_LIMIT = 10


def _session_row(session: promo_models.Session) -> Dict:
    teacher = session.teacher
    return {
        'id': session.pk,
        'course': {'id': session.course_id, 'code': session.course.code, 'title': session.course.title},
        'teacher': {'id': teacher.pk, 'name': teacher.get_full_name() or teacher.username},
        'start_at': session.start_at,
        'end_at': session.end_at,
        'location': session.location,
    }


def _progress_row(student_id, promotion: promo_models.Promotion) -> Optional[Dict]:
    snapshot = progress_models.ProgressSnapshot.objects.filter(student_id=student_id, promotion=promotion).first()
    course_ids = promotion.sessions.values_list('course_id', flat=True).distinct()
    courses_completed = course_models.CourseProgress.objects.filter(
        student_id=student_id, course_id__in=course_ids, progress_percentage__gte=100,
    ).count()
    if snapshot is None:
        return {
            'overall_progress': None,
            'completion': None,
            'attendance_rate': None,
            'courses_completed': courses_completed,
            'computed_at': None,
        }
    return {
        'overall_progress': snapshot.display_score,
        'completion': round(snapshot.completion_ratio * 100, 2),
        'attendance_rate': round(snapshot.attendance_ratio * 100, 2),
        'courses_completed': courses_completed,
        'computed_at': snapshot.computed_at,
    }


def student_promotion_view(student_id, now=None, limit: int = UPCOMING_LIMIT) -> Optional[Dict]:
    """Current promotion, next sessions and progress; None without a live promotion."""
    promotion = cohort_store.current_cohort_for(student_id)
    if promotion is None:
        return None
    now = now or timezone.now()
    upcoming = (
        promotion.sessions
        .filter(start_at__gte=now)
        .select_related('course', 'teacher')
        .order_by('start_at', 'id')[:limit]
    )
    return {
        'promotion': promotion,
        'upcoming_sessions': [_session_row(s) for s in upcoming],
        'progress': _progress_row(student_id, promotion),
    }
