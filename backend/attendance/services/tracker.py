"""Attendance tracking for promotion sessions.

Per (student, session) the state machine is
``unmarked -> attended | absent | excused``; an authorized actor may
overwrite a mark at any time and every overwrite leaves an audit entry.
"""
import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts import services as account_services
from attendance import models as att_models
from attendance.signals import attendance_marked
from planner import exceptions as errors
from promotions import models as promo_models

logger = logging.getLogger(__name__)

Outcome = att_models.AttendanceRecord.Outcome
MARKABLE_OUTCOMES = (Outcome.ATTENDED, Outcome.ABSENT, Outcome.EXCUSED)

HIGH_SEVERITY_ATTENDANCE = 0.5
HIGH_SEVERITY_ABSENCES = 5
# percentage points of decline between the two halves of the trend window
TREND_DECLINE_THRESHOLD = 5
TREND_MEDIUM_DECLINE = 10
TREND_HIGH_DECLINE = 20


def _overwrite_grace() -> Optional[timedelta]:
    hours = getattr(settings, 'ATTENDANCE_OVERWRITE_GRACE_HOURS', None)
    if hours is None:
        return None
    return timedelta(hours=float(hours))


def _is_live_member(promotion_id, student_id) -> bool:
    return promo_models.PromotionMembership.objects.filter(
        promotion_id=promotion_id, student_id=student_id, left_at__isnull=True,
    ).exists()


def ensure_unmarked_records(session: promo_models.Session, now=None) -> int:
    """Create `unmarked` records for live members once a session has started."""
    now = now or timezone.now()
    if not session.has_started(now):
        return 0
    member_ids = set(
        promo_models.PromotionMembership.objects
        .filter(promotion_id=session.promotion_id, left_at__isnull=True)
        .values_list('student_id', flat=True)
    )
    existing = set(session.attendance_records.values_list('student_id', flat=True))
    missing = sorted(member_ids - existing)
    if not missing:
        return 0
    att_models.AttendanceRecord.objects.bulk_create(
        [att_models.AttendanceRecord(session=session, student_id=sid, outcome=Outcome.UNMARKED) for sid in missing],
        ignore_conflicts=True,
    )
    return len(missing)


@transaction.atomic
def mark(session_id, student_id, outcome, actor, notes: str = '', now=None) -> att_models.AttendanceRecord:
    """Record a student's attendance at a session.

    Setting the same outcome again is a no-op. Overwriting a different
    outcome keeps the previous value in the audit trail.
    """
    user = account_services.resolve_actor(actor)
    try:
        session = promo_models.Session.objects.select_related('promotion').get(pk=session_id)
    except promo_models.Session.DoesNotExist:
        raise errors.NotFoundError(f'Session {session_id} not found')

    if not account_services.can_mark_attendance(user, session):
        raise errors.AuthorizationError(f'User {user.pk} may not mark attendance for session {session.pk}')
    if outcome not in MARKABLE_OUTCOMES:
        raise errors.ValidationError(f'outcome must be one of {", ".join(MARKABLE_OUTCOMES)}')

    now = now or timezone.now()
    if not session.has_started(now):
        raise errors.PreconditionError(f'Session {session.pk} has not started yet')
    if not _is_live_member(session.promotion_id, student_id):
        raise errors.NotFoundError(f'Student {student_id} is not a member of promotion {session.promotion_id}')

    record, _ = att_models.AttendanceRecord.objects.select_for_update().get_or_create(
        session=session, student_id=student_id, defaults={'outcome': Outcome.UNMARKED},
    )

    previous = record.outcome
    if previous == outcome and record.notes == (notes or ''):
        return record

    if previous != Outcome.UNMARKED:
        grace = _overwrite_grace()
        if grace is not None and not account_services.is_admin(user) and now > session.end_at + grace:
            raise errors.PreconditionError(f'Attendance for session {session.pk} can no longer be changed')
        att_models.AttendanceAuditEntry.objects.create(
            record=record,
            previous_outcome=previous,
            previous_marked_by_id=record.marked_by_id,
            previous_marked_at=record.marked_at,
            previous_notes=record.notes,
            new_outcome=outcome,
            changed_by=user,
            changed_at=now,
        )

    record.outcome = outcome
    record.notes = notes or ''
    record.marked_at = now
    record.marked_by = user
    record.save(update_fields=['outcome', 'notes', 'marked_at', 'marked_by'])

    logger.info('Attendance marked: session=%s student=%s %s->%s actor=%s',
                session.pk, student_id, previous, outcome, user.pk)

    payload = {
        'record_id': record.pk,
        'session_id': session.pk,
        'student_id': int(student_id),
        'promotion_id': session.promotion_id,
    }
    transaction.on_commit(lambda: attendance_marked.send(sender=att_models.AttendanceRecord, **payload))
    return record


def bulk_mark(session_id, marks: Iterable[Dict], actor) -> Dict:
    """Mark several students; failures are collected per student."""
    marked: List[int] = []
    failed: Dict[int, Dict] = {}
    for entry in marks:
        sid = entry.get('student')
        try:
            mark(session_id, sid, entry.get('outcome'), actor, notes=entry.get('notes', ''))
            marked.append(sid)
        except errors.PlanningError as exc:
            failed[sid] = exc.as_dict()
    return {'marked': marked, 'errors': failed}


def _past_sessions(cohort_id, now):
    return promo_models.Session.objects.filter(promotion_id=cohort_id, start_at__lte=now)


def attendance_ratio(student_id, cohort_id, now=None) -> float:
    """Attended sessions over sessions that have started.

    Future sessions are excluded from the denominator. With no session held
    yet the ratio is 1.0. Excused absences do not count as attended.
    """
    now = now or timezone.now()
    past = _past_sessions(cohort_id, now)
    total = past.count()
    if total == 0:
        return 1.0
    attended = att_models.AttendanceRecord.objects.filter(
        session__in=past, student_id=student_id, outcome=Outcome.ATTENDED,
    ).count()
    return attended / total


def consecutive_absences(student_id, cohort_id, now=None) -> int:
    """Number of most recent held sessions the student was marked absent from."""
    now = now or timezone.now()
    outcomes = dict(
        att_models.AttendanceRecord.objects
        .filter(session__promotion_id=cohort_id, student_id=student_id)
        .values_list('session_id', 'outcome')
    )
    streak = 0
    for session_id in _past_sessions(cohort_id, now).order_by('-start_at', '-id').values_list('id', flat=True):
        if outcomes.get(session_id) != Outcome.ABSENT:
            break
        streak += 1
    return streak


def attendance_alerts(cohort_id, now=None, threshold=None, absence_limit=None) -> List[Dict]:
    """Low-attendance and consecutive-absence alerts for live members.

    Severity is `high` below 50 % attendance or from five absences in a row,
    `medium` otherwise.
    """
    if not promo_models.Promotion.objects.filter(pk=cohort_id).exists():
        raise errors.NotFoundError(f'Promotion {cohort_id} not found')
    now = now or timezone.now()
    if threshold is None:
        threshold = float(getattr(settings, 'LOW_ATTENDANCE_THRESHOLD', 0.75))
    if absence_limit is None:
        absence_limit = int(getattr(settings, 'CONSECUTIVE_ABSENCE_LIMIT', 3))

    student_ids = (
        promo_models.PromotionMembership.objects
        .filter(promotion_id=cohort_id, left_at__isnull=True)
        .order_by('position', 'id')
        .values_list('student_id', flat=True)
    )
    alerts = []
    for sid in student_ids:
        ratio = attendance_ratio(sid, cohort_id, now=now)
        if ratio < threshold:
            alerts.append({
                'student_id': sid,
                'kind': 'low_attendance',
                'value': round(ratio, 4),
                'severity': 'high' if ratio < HIGH_SEVERITY_ATTENDANCE else 'medium',
            })
        streak = consecutive_absences(sid, cohort_id, now=now)
        if streak >= absence_limit:
            alerts.append({
                'student_id': sid,
                'kind': 'consecutive_absences',
                'value': streak,
                'severity': 'high' if streak >= HIGH_SEVERITY_ABSENCES else 'medium',
            })
    return alerts


def attendance_trend(cohort_id, now=None, period_days=None) -> Dict:
    """Compare the attendance rate of the two halves of a recent window.

    Only marked records of sessions started inside the window count; a half
    without any is taken as 100 %. `decline` is in percentage points.
    """
    now = now or timezone.now()
    if period_days is None:
        period_days = int(getattr(settings, 'ATTENDANCE_TREND_PERIOD_DAYS', 14))
    start = now - timedelta(days=period_days)
    middle = now - timedelta(days=period_days / 2)

    marked = att_models.AttendanceRecord.objects.filter(session__promotion_id=cohort_id).exclude(outcome=Outcome.UNMARKED)

    def _rate(qs):
        total = qs.count()
        if total == 0:
            return 100.0
        return qs.filter(outcome=Outcome.ATTENDED).count() * 100 / total

    first = _rate(marked.filter(session__start_at__gte=start, session__start_at__lt=middle))
    second = _rate(marked.filter(session__start_at__gte=middle, session__start_at__lte=now))
    decline = round(first - second, 2)
    if decline > TREND_HIGH_DECLINE:
        severity = 'high'
    elif decline > TREND_MEDIUM_DECLINE:
        severity = 'medium'
    else:
        severity = 'low'
    return {
        'promotion_id': int(cohort_id),
        'first_half_rate': round(first, 2),
        'second_half_rate': round(second, 2),
        'decline': decline,
        'is_decreasing': decline > TREND_DECLINE_THRESHOLD,
        'severity': severity,
    }


def can_view_cohort_attendance(user, cohort_id) -> bool:
    """Admins, staff and teachers of one of the promotion's sessions."""
    if account_services.can_manage_cohorts(user):
        return True
    return promo_models.Session.objects.filter(promotion_id=cohort_id, teacher_id=user.pk).exists()


def records_visible_to(session_id, actor):
    """Attendance records of a session as far as `actor` may see them.

    The session teacher, admins and staff see every record; a student only
    their own.
    """
    user = account_services.resolve_actor(actor)
    try:
        session = promo_models.Session.objects.get(pk=session_id)
    except promo_models.Session.DoesNotExist:
        raise errors.NotFoundError(f'Session {session_id} not found')

    records = att_models.AttendanceRecord.objects.filter(session=session).order_by('student_id')
    if account_services.can_mark_attendance(user, session) or account_services.can_manage_cohorts(user):
        return records
    if account_services.resolve_role(user) == user.Role.STUDENT:
        return records.filter(student_id=user.pk)
    raise errors.AuthorizationError(f'User {user.pk} may not view attendance for session {session.pk}')
