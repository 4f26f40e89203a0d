"""Progress calculation for (student, promotion) pairs.

`recompute` gathers every input before touching the database, so a failing
course-progress source leaves the previous snapshot untouched. Writing a
snapshot whose values did not change is skipped, which makes recompute
idempotent and safe to run concurrently from the scheduler and from
attendance marks.
"""
import logging
from typing import Dict, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from attendance.services import tracker
from courses.services.completion import get_completion_source
from planner import exceptions as errors
from progress import models as progress_models
from promotions import models as promo_models

logger = logging.getLogger(__name__)

COMPLETION_WEIGHT = 0.7
ATTENDANCE_WEIGHT = 0.3


def compute_progress(completion: float, attendance: float) -> float:
    score = COMPLETION_WEIGHT * completion + ATTENDANCE_WEIGHT * attendance
    return min(1.0, max(0.0, score))


def display_score(score: float) -> float:
    return round(score * 100, 2)


def completion_ratio(student_id, cohort_id, source=None) -> float:
    """Mean completion over the distinct courses taught to the promotion."""
    course_ids = list(
        promo_models.Session.objects
        .filter(promotion_id=cohort_id)
        .order_by('course_id')
        .values_list('course_id', flat=True)
        .distinct()
    )
    if not course_ids:
        return 0.0
    source = source or get_completion_source()
    total = 0.0
    for course_id in course_ids:
        total += source.get_completion_ratio(student_id, course_id)
    return total / len(course_ids)


def _get_promotion(cohort_id):
    try:
        return promo_models.Promotion.objects.get(pk=cohort_id)
    except promo_models.Promotion.DoesNotExist:
        raise errors.NotFoundError(f'Promotion {cohort_id} not found')


def _write_snapshot(student_id, promotion, values: Dict, now) -> progress_models.ProgressSnapshot:
    snapshot = (
        progress_models.ProgressSnapshot.objects
        .select_for_update()
        .filter(student_id=student_id, promotion=promotion)
        .first()
    )
    if snapshot is None:
        try:
            with transaction.atomic():
                return progress_models.ProgressSnapshot.objects.create(
                    student_id=student_id, promotion=promotion, computed_at=now, **values,
                )
        except IntegrityError:
            # created concurrently; fall through and update that row
            snapshot = progress_models.ProgressSnapshot.objects.select_for_update().get(
                student_id=student_id, promotion=promotion,
            )

    if all(getattr(snapshot, field) == value for field, value in values.items()):
        return snapshot

    for field, value in values.items():
        setattr(snapshot, field, value)
    snapshot.computed_at = now
    snapshot.save(update_fields=list(values) + ['computed_at'])
    return snapshot


def recompute(student_id, cohort_id, now=None, source=None) -> progress_models.ProgressSnapshot:
    """Recompute the snapshot of a current or former member of the promotion."""
    promotion = _get_promotion(cohort_id)
    if not get_user_model().objects.filter(pk=student_id).exists():
        raise errors.NotFoundError(f'Student {student_id} not found')
    if not promotion.memberships.filter(student_id=student_id).exists():
        raise errors.NotFoundError(f'Student {student_id} was never a member of promotion {promotion.pk}')
    now = now or timezone.now()

    try:
        completion = completion_ratio(student_id, promotion.pk, source=source)
    except errors.ExternalDependencyError:
        logger.warning('Progress not recomputed: completion source failed for student=%s promotion=%s',
                       student_id, promotion.pk)
        raise
    attendance = tracker.attendance_ratio(student_id, promotion.pk, now=now)
    values = {
        'completion_ratio': completion,
        'attendance_ratio': attendance,
        'score': compute_progress(completion, attendance),
    }

    with transaction.atomic():
        snapshot = _write_snapshot(student_id, promotion, values, now)
    logger.debug('Progress recomputed: student=%s promotion=%s score=%s', student_id, promotion.pk, snapshot.score)
    return snapshot


def get_progress(student_id, cohort_id) -> progress_models.ProgressSnapshot:
    snapshot = progress_models.ProgressSnapshot.objects.filter(student_id=student_id, promotion_id=cohort_id).first()
    if snapshot is None:
        raise errors.NotFoundError(f'No progress computed for student {student_id} in promotion {cohort_id}')
    return snapshot


def recompute_cohort(cohort_id, now=None, source=None, student_ids=None) -> Dict:
    """Recompute every live member (or `student_ids`); failures are collected."""
    promotion = _get_promotion(cohort_id)
    if student_ids is None:
        student_ids = list(
            promotion.memberships.filter(left_at__isnull=True).order_by('position', 'id').values_list('student_id', flat=True)
        )
    source = source or get_completion_source()
    recomputed = 0
    failures: Dict[int, Dict] = {}
    for sid in student_ids:
        try:
            recompute(sid, promotion.pk, now=now, source=source)
            recomputed += 1
        except errors.PlanningError as exc:
            failures[sid] = exc.as_dict()
        except Exception as exc:
            logger.exception('Unexpected error recomputing student=%s promotion=%s', sid, promotion.pk)
            failures[sid] = {'kind': 'error', 'detail': str(exc)}
    return {'promotion_id': promotion.pk, 'recomputed': recomputed, 'errors': failures}
