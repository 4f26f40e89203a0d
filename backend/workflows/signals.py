import logging

from django.conf import settings
from django.dispatch import receiver

from attendance.signals import attendance_marked
from planner import exceptions as errors
from progress.services import calculator

logger = logging.getLogger(__name__)


@receiver(attendance_marked, dispatch_uid='workflows.recompute_on_mark')
def recompute_on_mark(sender, student_id=None, promotion_id=None, **kwargs):
    """Refresh the marked student's progress once the mark is committed.

    Failures are logged only; the next scheduled run recomputes anyway.
    """
    if not getattr(settings, 'ATTENDANCE_RECOMPUTE_ON_MARK', True):
        return
    try:
        calculator.recompute(student_id, promotion_id)
    except errors.PlanningError as exc:
        logger.warning('Recompute after mark failed: student=%s promotion=%s kind=%s detail=%s',
                       student_id, promotion_id, exc.kind, exc.message)
    except Exception:
        logger.exception('Recompute after mark failed: student=%s promotion=%s', student_id, promotion_id)
