"""Link courses to promotions through scheduled sessions.

Course access is derived, never stored: a student may open a course when a
session of their live, active promotion references it.
"""
import logging
from typing import Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from accounts import services as account_services
from courses import models as course_models
from planner import exceptions as errors
from promotions import models as promo_models

logger = logging.getLogger(__name__)


def _coerce_datetime(value, field: str):
    if hasattr(value, 'tzinfo'):
        dt = value
    else:
        dt = parse_datetime(str(value or '')) if value else None
        if dt is None:
            raise errors.ValidationError(f'{field} must be an ISO datetime')
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


def _check_window(start, end):
    start = _coerce_datetime(start, 'start')
    end = _coerce_datetime(end, 'end')
    if end <= start:
        raise errors.ValidationError('Session end must be after its start')
    return start, end


def _lock_teacher(teacher_id):
    User = get_user_model()
    try:
        teacher = User.objects.select_for_update().get(pk=teacher_id)
    except User.DoesNotExist:
        raise errors.NotFoundError(f'Teacher {teacher_id} not found')
    if not account_services.can_teach(teacher):
        raise errors.ValidationError(f'User {teacher_id} cannot teach sessions')
    return teacher


def find_teacher_overlap(teacher_id, start, end, exclude_session_id=None) -> Optional[promo_models.Session]:
    """Return a session of the teacher overlapping [start, end), if any."""
    qs = promo_models.Session.objects.filter(teacher_id=teacher_id, start_at__lt=end, end_at__gt=start)
    if exclude_session_id is not None:
        qs = qs.exclude(pk=exclude_session_id)
    return qs.order_by('start_at').first()


def _raise_overlap(clash: promo_models.Session, teacher_id):
    raise errors.ConflictError(
        f'Teacher {teacher_id} already teaches session {clash.pk} '
        f'from {clash.start_at.isoformat()} to {clash.end_at.isoformat()}',
        detail={'conflicting_session': clash.pk},
    )


@transaction.atomic
def create_session(cohort_id, course_id, teacher_id, start, end, actor,
                   location: str = '', metadata: Optional[Dict] = None,
                   allow_teacher_overlap: bool = False) -> promo_models.Session:
    """Schedule a course delivery for a promotion.

    The teacher row is locked while checking for overlaps so two concurrent
    bookings for the same teacher are serialized.
    """
    user = account_services.require_cohort_manager(actor)
    start, end = _check_window(start, end)

    try:
        promotion = promo_models.Promotion.objects.select_for_update().get(pk=cohort_id)
    except promo_models.Promotion.DoesNotExist:
        raise errors.NotFoundError(f'Promotion {cohort_id} not found')
    if promotion.is_closed:
        raise errors.PreconditionError(f'Promotion {promotion.pk} is {promotion.status}; sessions cannot be added')

    try:
        course = course_models.Course.objects.get(pk=course_id)
    except course_models.Course.DoesNotExist:
        raise errors.NotFoundError(f'Course {course_id} not found')

    teacher = _lock_teacher(teacher_id)
    if not allow_teacher_overlap:
        clash = find_teacher_overlap(teacher.pk, start, end)
        if clash is not None:
            _raise_overlap(clash, teacher.pk)

    session = promo_models.Session.objects.create(
        promotion=promotion,
        course=course,
        teacher=teacher,
        start_at=start,
        end_at=end,
        location=location or '',
        metadata=metadata or {},
        created_by=user,
    )
    logger.info('Session created: id=%s promotion=%s course=%s teacher=%s start=%s',
                session.pk, promotion.pk, course.pk, teacher.pk, start.isoformat())
    return session


@transaction.atomic
def reschedule_session(session_id, start, end, actor, location: Optional[str] = None) -> promo_models.Session:
    """Move a session that has not started yet."""
    account_services.require_cohort_manager(actor)
    start, end = _check_window(start, end)
    try:
        session = promo_models.Session.objects.select_for_update().get(pk=session_id)
    except promo_models.Session.DoesNotExist:
        raise errors.NotFoundError(f'Session {session_id} not found')
    if session.has_started(timezone.now()):
        raise errors.PreconditionError(f'Session {session.pk} has already started')

    _lock_teacher(session.teacher_id)
    clash = find_teacher_overlap(session.teacher_id, start, end, exclude_session_id=session.pk)
    if clash is not None:
        _raise_overlap(clash, session.teacher_id)

    session.start_at = start
    session.end_at = end
    fields = ['start_at', 'end_at', 'updated_at']
    if location is not None:
        session.location = location
        fields.append('location')
    session.save(update_fields=fields)
    logger.info('Session rescheduled: id=%s start=%s end=%s', session.pk, start.isoformat(), end.isoformat())
    return session


def sessions_for_cohort(cohort_id):
    return promo_models.Session.objects.filter(promotion_id=cohort_id).select_related('course', 'teacher').order_by('start_at', 'id')


def course_access_for(student_id, course_id) -> bool:
    """True iff a session of the student's live, active promotion uses the course.

    Always reads the database so a membership change is visible to the next call.
    """
    return promo_models.Session.objects.filter(
        course_id=course_id,
        promotion__status=promo_models.Promotion.Status.ACTIVE,
        promotion__memberships__student_id=student_id,
        promotion__memberships__left_at__isnull=True,
    ).exists()
