"""Recurring attendance workflow.

Each run:
1. creates `unmarked` records for started sessions of active promotions,
2. flags records still unmarked once a session ended more than the grace
   period ago and notifies the teacher, exactly once per (session, student),
3. recomputes progress for promotions whose attendance changed since the
   previous run (every active promotion when `full_recompute` is set),
4. optionally evaluates attendance alerts,
5. optionally compares recent attendance trends and tells admins about a
   sharp decline.

Nothing here marks a student absent. Per-item failures are collected in
the run report; a run never raises because one item failed.
"""
import logging
import threading
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Exists, OuterRef
from django.utils import timezone

from attendance import models as att_models
from attendance.services import tracker
from planner import exceptions as errors
from progress.services import calculator
from promotions import models as promo_models
from workflows import models as wf_models
from workflows.services import notification_service

logger = logging.getLogger(__name__)

ACTIVE = promo_models.Promotion.Status.ACTIVE


@dataclass
class WorkflowReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    records_created: int = 0
    flagged: List[Dict] = field(default_factory=list)
    notifications_sent: int = 0
    promotions_recomputed: List[int] = field(default_factory=list)
    snapshots_recomputed: int = 0
    alerts: List[Dict] = field(default_factory=list)
    trends: List[Dict] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)

    def as_dict(self) -> Dict:
        data = asdict(self)
        data['started_at'] = self.started_at.isoformat()
        data['finished_at'] = self.finished_at.isoformat() if self.finished_at else None
        return data


def _default_grace() -> timedelta:
    return timedelta(hours=float(getattr(settings, 'ATTENDANCE_FOLLOWUP_GRACE_HOURS', 24)))


def _default_watermark_overlap() -> timedelta:
    return timedelta(seconds=float(getattr(settings, 'ATTENDANCE_WORKFLOW_WATERMARK_OVERLAP_SECONDS', 300)))


class AttendanceWorkflow:
    def __init__(self, clock: Callable[[], datetime] = None, notifier: Callable = None,
                 grace: Optional[timedelta] = None, full_recompute: bool = False,
                 evaluate_alerts: bool = False, completion_source=None,
                 analyze_trends: bool = False, watermark_overlap: Optional[timedelta] = None):
        self.clock = clock or timezone.now
        self.notifier = notifier or notification_service.get_notifier()
        self.grace = grace if grace is not None else _default_grace()
        self.full_recompute = full_recompute
        self.evaluate_alerts = evaluate_alerts
        self.completion_source = completion_source
        self.analyze_trends = analyze_trends
        self.watermark_overlap = watermark_overlap if watermark_overlap is not None else _default_watermark_overlap()

    def _previous_watermark(self) -> Optional[datetime]:
        last = wf_models.WorkflowRun.objects.filter(finished_at__isnull=False).order_by('-watermark', '-id').first()
        return last.watermark if last else None

    def _started_sessions(self, now):
        return promo_models.Session.objects.filter(promotion__status=ACTIVE, start_at__lte=now).select_related('promotion')

    def _create_unmarked(self, now, report: WorkflowReport):
        for session in self._started_sessions(now):
            try:
                report.records_created += tracker.ensure_unmarked_records(session, now=now)
            except Exception as exc:
                logger.exception('Could not create attendance records for session=%s', session.pk)
                report.errors.append({'step': 'create_unmarked', 'session_id': session.pk, 'detail': str(exc)})

    def _flag_unmarked(self, now, run, report: WorkflowReport):
        already_flagged = wf_models.AttendanceFollowUp.objects.filter(
            session_id=OuterRef('session_id'), student_id=OuterRef('student_id'),
        )
        overdue = (
            att_models.AttendanceRecord.objects
            .filter(
                outcome=att_models.AttendanceRecord.Outcome.UNMARKED,
                session__promotion__status=ACTIVE,
                session__end_at__lte=now - self.grace,
            )
            .filter(~Exists(already_flagged))
            .select_related('session')
            .order_by('session_id', 'student_id')
        )
        newly_flagged = defaultdict(list)
        sessions = {}
        for record in overdue:
            session = record.session
            try:
                with transaction.atomic():
                    wf_models.AttendanceFollowUp.objects.create(
                        session=session, student_id=record.student_id, teacher_id=session.teacher_id,
                        flagged_at=now, run=run,
                    )
            except IntegrityError:
                continue
            newly_flagged[session.pk].append(record.student_id)
            sessions[session.pk] = session
            report.flagged.append({'session_id': session.pk, 'student_id': record.student_id})

        for session_id, student_ids in newly_flagged.items():
            if notification_service.notify_missing_attendance(self.notifier, sessions[session_id], student_ids):
                report.notifications_sent += 1

    def _promotions_to_recompute(self, now, watermark) -> List[int]:
        if self.full_recompute or watermark is None:
            return list(promo_models.Promotion.objects.filter(status=ACTIVE).order_by('id').values_list('id', flat=True))
        # marks stamped just before the previous run may have committed after it read
        since = watermark - self.watermark_overlap
        marked = set(
            att_models.AttendanceRecord.objects
            .filter(marked_at__gt=since, marked_at__lte=now, session__promotion__status=ACTIVE)
            .values_list('session__promotion_id', flat=True)
        )
        started = set(
            promo_models.Session.objects
            .filter(start_at__gt=since, start_at__lte=now, promotion__status=ACTIVE)
            .values_list('promotion_id', flat=True)
        )
        return sorted(marked | started)

    def _recompute(self, now, watermark, report: WorkflowReport):
        for promotion_id in self._promotions_to_recompute(now, watermark):
            try:
                result = calculator.recompute_cohort(promotion_id, now=now, source=self.completion_source)
            except errors.PlanningError as exc:
                report.errors.append({'step': 'recompute', 'promotion_id': promotion_id, **exc.as_dict()})
                continue
            report.promotions_recomputed.append(promotion_id)
            report.snapshots_recomputed += result['recomputed']
            for student_id, failure in result['errors'].items():
                report.errors.append({'step': 'recompute', 'promotion_id': promotion_id, 'student_id': student_id, **failure})

    def _alerts(self, now, report: WorkflowReport):
        for promotion_id in promo_models.Promotion.objects.filter(status=ACTIVE).order_by('id').values_list('id', flat=True):
            for alert in tracker.attendance_alerts(promotion_id, now=now):
                report.alerts.append({'promotion_id': promotion_id, **alert})

    def _trends(self, now, report: WorkflowReport):
        admin_ids = None
        for promotion in promo_models.Promotion.objects.filter(status=ACTIVE).order_by('id'):
            trend = tracker.attendance_trend(promotion.pk, now=now)
            report.trends.append(trend)
            if not (trend['is_decreasing'] and trend['severity'] == 'high'):
                continue
            if admin_ids is None:
                admin_ids = notification_service.admin_recipient_ids()
            report.notifications_sent += notification_service.notify_declining_trend(self.notifier, promotion, trend, admin_ids)

    def run_once(self) -> WorkflowReport:
        now = self.clock()
        watermark = self._previous_watermark()
        run = wf_models.WorkflowRun.objects.create(started_at=now, full_recompute=self.full_recompute)
        report = WorkflowReport(started_at=now)

        self._create_unmarked(now, report)
        try:
            self._flag_unmarked(now, run, report)
        except Exception as exc:
            logger.exception('Flagging unmarked attendance failed')
            report.errors.append({'step': 'flag_unmarked', 'detail': str(exc)})
        self._recompute(now, watermark, report)
        if self.evaluate_alerts:
            try:
                self._alerts(now, report)
            except Exception as exc:
                logger.exception('Attendance alert evaluation failed')
                report.errors.append({'step': 'alerts', 'detail': str(exc)})
        if self.analyze_trends:
            try:
                self._trends(now, report)
            except Exception as exc:
                logger.exception('Attendance trend analysis failed')
                report.errors.append({'step': 'trends', 'detail': str(exc)})

        report.finished_at = self.clock()
        run.finished_at = report.finished_at
        run.watermark = now
        run.report = report.as_dict()
        run.save(update_fields=['finished_at', 'watermark', 'report'])
        logger.info('Attendance workflow run %s: created=%s flagged=%s recomputed=%s errors=%s',
                    run.pk, report.records_created, len(report.flagged), report.snapshots_recomputed, len(report.errors))
        return report

    def run_forever(self, interval_seconds: float, stop_event: threading.Event) -> int:
        """Run until `stop_event` is set; returns the number of runs."""
        runs = 0
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception('Attendance workflow run failed')
            runs += 1
            stop_event.wait(interval_seconds)
        return runs
