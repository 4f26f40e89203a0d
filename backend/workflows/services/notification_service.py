"""Notification sink for the planning services.

Delivery belongs to another service; here a notification is a structured
log record. Callers treat notify as fire-and-forget.
"""
import logging
from typing import Dict, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


def _log(event: str, target_user_ids: List[int], payload: Dict):
    record = {
        'event': event,
        'target_user_ids': target_user_ids,
    }
    record.update(payload)
    logger.info('%s', record)


def notify(recipient_id: Optional[int], event_kind: str, payload: Dict) -> None:
    _log(event_kind, [recipient_id] if recipient_id else [], payload)


def get_notifier():
    """Return the configured notify callable (see NOTIFICATION_SINK)."""
    dotted = getattr(settings, 'NOTIFICATION_SINK', '') or 'workflows.services.notification_service.notify'
    return import_string(dotted)


def notify_missing_attendance(notifier, session, student_ids: List[int]) -> bool:
    """Ask the session's teacher to mark attendance. Never raises."""
    payload = {
        'session_id': session.pk,
        'promotion_id': session.promotion_id,
        'course_id': session.course_id,
        'session_end': session.end_at.isoformat(),
        'student_ids': student_ids,
        'reason': f'Attendance not marked for {len(student_ids)} student(s)',
    }
    try:
        notifier(session.teacher_id, 'attendance_missing', payload)
        return True
    except Exception:
        logger.exception('Missing-attendance notification failed for session=%s', session.pk)
        return False


def admin_recipient_ids() -> List[int]:
    User = get_user_model()
    return list(
        User.objects.filter(is_active=True)
        .filter(Q(role=User.Role.ADMIN) | Q(is_superuser=True))
        .order_by('id')
        .values_list('id', flat=True)
    )


def notify_declining_trend(notifier, promotion, trend: Dict, recipient_ids: List[int]) -> int:
    """Tell every admin that a promotion's attendance is falling. Returns notifications sent."""
    payload = {
        'promotion_id': promotion.pk,
        'promotion_name': promotion.name,
        'decline': trend['decline'],
        'first_half_rate': trend['first_half_rate'],
        'second_half_rate': trend['second_half_rate'],
        'severity': trend['severity'],
        'reason': f'Promotion-wide attendance declining by {trend["decline"]:.1f} points',
    }
    sent = 0
    for recipient_id in recipient_ids:
        try:
            notifier(recipient_id, 'attendance_trend_declining', payload)
            sent += 1
        except Exception:
            logger.exception('Trend notification failed for promotion=%s recipient=%s', promotion.pk, recipient_id)
    return sent
