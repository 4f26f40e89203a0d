"""Read-side summaries built from progress snapshots."""
from typing import Dict, List

from django.db.models import Avg, Q

from progress import models as progress_models
from progress.services.calculator import display_score
from promotions import models as promo_models

EXCELLING_PROGRESS = 80
EXCELLING_ATTENDANCE = 90
AT_RISK_PROGRESS = 30
AT_RISK_ATTENDANCE = 70
# float tolerance for a full score
COMPLETE_SCORE = 1.0 - 1e-9


def _percent(ratio) -> float:
    return round((ratio or 0.0) * 100, 2)


def classify(progress_percent: float, attendance_percent: float) -> str:
    if progress_percent >= EXCELLING_PROGRESS and attendance_percent >= EXCELLING_ATTENDANCE:
        return 'excelling'
    if progress_percent < AT_RISK_PROGRESS or attendance_percent < AT_RISK_ATTENDANCE:
        return 'at-risk'
    return 'on-track'


def promotion_statistics(cohort_id) -> Dict:
    snapshots = progress_models.ProgressSnapshot.objects.filter(promotion_id=cohort_id)
    agg = snapshots.aggregate(avg_score=Avg('score'), avg_attendance=Avg('attendance_ratio'))
    total = snapshots.count()
    completed = snapshots.filter(score__gte=COMPLETE_SCORE).count()
    at_risk = snapshots.filter(score__lt=AT_RISK_PROGRESS / 100).count()
    return {
        'promotion_id': int(cohort_id),
        'total_students': promo_models.PromotionMembership.objects.filter(
            promotion_id=cohort_id, left_at__isnull=True,
        ).count(),
        'tracked_students': total,
        'average_progress': _percent(agg['avg_score']),
        'average_attendance': _percent(agg['avg_attendance']),
        'completion_rate': round(completed * 100 / total, 2) if total else 0.0,
        'at_risk_students': at_risk,
    }


def progress_report(cohort_id) -> List[Dict]:
    rows = []
    snapshots = (
        progress_models.ProgressSnapshot.objects
        .filter(promotion_id=cohort_id)
        .select_related('student')
        .order_by('-score', 'student_id')
    )
    for snap in snapshots:
        progress_percent = display_score(snap.score)
        attendance_percent = _percent(snap.attendance_ratio)
        rows.append({
            'student_id': snap.student_id,
            'student_name': snap.student.get_full_name() or snap.student.username,
            'overall_progress': progress_percent,
            'completion': _percent(snap.completion_ratio),
            'attendance_rate': attendance_percent,
            'status': classify(progress_percent, attendance_percent),
            'computed_at': snap.computed_at,
        })
    return rows


def at_risk_students(cohort_id, progress_threshold=AT_RISK_PROGRESS, attendance_threshold=AT_RISK_ATTENDANCE):
    return (
        progress_models.ProgressSnapshot.objects
        .filter(promotion_id=cohort_id)
        .filter(Q(score__lt=progress_threshold / 100) | Q(attendance_ratio__lt=attendance_threshold / 100))
        .order_by('score', 'student_id')
    )


def top_performers(cohort_id, limit: int = 10):
    return progress_models.ProgressSnapshot.objects.filter(promotion_id=cohort_id).order_by('-score', 'student_id')[:limit]
