"""Execute and roll back the legacy enrollment migration.

`execute` backs up the legacy tables, then turns every candidate from the
analysis into an active promotion with one term-long session per course.
Each enrollment ends up `migrated` or `failed`; a failure never stops the
other records. `rollback` restores the backup and deletes what the run
created. It is all or nothing, not per record.
"""
import logging
from collections import defaultdict
from datetime import datetime, time
from typing import Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from accounts import services as account_services
from courses import models as course_models
from legacy_migration import models as mig_models
from legacy_migration.services import backup
from legacy_migration.services.analysis import CandidateCohort, analyze
from planner import exceptions as errors
from promotions import models as promo_models
from promotions.services import cohort_store, session_linkage

logger = logging.getLogger(__name__)

RunStatus = mig_models.MigrationRun.Status
RecordStatus = mig_models.MigrationRecord.Status
ACTIVE_RUN_STATUSES = (RunStatus.BACKED_UP, RunStatus.EXECUTED)


def active_run() -> Optional[mig_models.MigrationRun]:
    return mig_models.MigrationRun.objects.filter(status__in=ACTIVE_RUN_STATUSES).order_by('-id').first()


def _aware(day, at: time):
    return timezone.make_aware(datetime.combine(day, at))


def _fail(records: List[mig_models.MigrationRecord], message: str):
    for rec in records:
        rec.status = RecordStatus.FAILED
        rec.error = message
        rec.save(update_fields=['status', 'error', 'updated_at'])


def _create_promotion(candidate: CandidateCohort, user):
    """Create the promotion and its sessions; returns (promotion, sessions by course, course errors)."""
    course_errors: Dict[int, str] = {}
    sessions: Dict[int, promo_models.Session] = {}
    with transaction.atomic():
        promotion = cohort_store.create_cohort(candidate.definition(), user)
        courses = course_models.Course.objects.in_bulk(candidate.course_ids)
        for course_id in candidate.course_ids:
            course = courses[course_id]
            if course.instructor_id is None:
                course_errors[course_id] = f'Course {course.code} has no instructor'
                continue
            try:
                with transaction.atomic():
                    sessions[course_id] = session_linkage.create_session(
                        promotion.pk, course.pk, course.instructor_id,
                        _aware(candidate.start_date, time(9, 0)), _aware(candidate.end_date, time(17, 0)),
                        user,
                        location='Virtual Classroom',
                        metadata={
                            'migration_source': 'enrollment-to-promotion',
                            'course_title': course.title,
                            'promotion_name': promotion.name,
                        },
                        allow_teacher_overlap=True,
                    )
            except errors.PlanningError as exc:
                course_errors[course_id] = exc.message
        if not sessions:
            raise errors.PreconditionError(
                'No session could be created: ' + '; '.join(course_errors.values() or ['no courses'])
            )
        cohort_store.activate(promotion.pk, user)
    return promotion, sessions, course_errors


def _repoint(enrollment_id, promotion):
    course_models.CourseProgress.objects.filter(legacy_enrollment_id=enrollment_id).update(
        promotion=promotion, legacy_enrollment=None,
    )
    course_models.Submission.objects.filter(legacy_enrollment_id=enrollment_id).update(
        promotion=promotion, legacy_enrollment=None,
    )
    course_models.LegacyEnrollment.objects.filter(pk=enrollment_id).update(is_active=False)


def _migrate_candidate(run, candidate: CandidateCohort, user) -> Dict:
    enrollments = list(course_models.LegacyEnrollment.objects.filter(pk__in=candidate.enrollment_ids).order_by('pk'))
    records = {
        enr.pk: mig_models.MigrationRecord.objects.create(
            run=run,
            enrollment_ref=enr.enrollment_ref,
            legacy_enrollment=enr,
            student_id=enr.student_id,
            course_id=enr.course_id,
        )
        for enr in enrollments
    }

    try:
        promotion, sessions, course_errors = _create_promotion(candidate, user)
    except errors.PlanningError as exc:
        logger.warning('Migration run %s: candidate %r failed: %s', run.pk, candidate.name, exc.message)
        _fail(list(records.values()), exc.message)
        return {'name': candidate.name, 'promotion_id': None, 'migrated': 0, 'failed': len(records)}

    run.created_promotion_ids = list(run.created_promotion_ids) + [promotion.pk]
    run.save(update_fields=['created_promotion_ids'])

    by_student = defaultdict(list)
    for enr in enrollments:
        by_student[enr.student_id].append(enr)

    migrated = failed = 0
    for student_id, student_enrollments in by_student.items():
        student_records = [records[e.pk] for e in student_enrollments]
        try:
            cohort_store.add_members(promotion.pk, [student_id], user)
        except errors.PlanningError as exc:
            _fail(student_records, exc.message)
            failed += len(student_records)
            continue

        for enr in student_enrollments:
            rec = records[enr.pk]
            if enr.course_id in course_errors:
                _fail([rec], course_errors[enr.course_id])
                failed += 1
                continue
            with transaction.atomic():
                _repoint(enr.pk, promotion)
                rec.promotion = promotion
                rec.session = sessions[enr.course_id]
                rec.status = RecordStatus.MIGRATED
                rec.error = ''
                rec.save(update_fields=['promotion', 'session', 'status', 'error', 'updated_at'])
            migrated += 1

    logger.info('Migration run %s: promotion %s (%s) migrated=%s failed=%s',
                run.pk, promotion.pk, promotion.name, migrated, failed)
    return {'name': candidate.name, 'promotion_id': promotion.pk, 'migrated': migrated, 'failed': failed}


def execute(actor, today=None) -> mig_models.MigrationRun:
    """Run the migration. A second call while a run is active is a no-op."""
    existing = active_run()
    if existing is not None:
        logger.info('Migration run %s is already %s; nothing to do', existing.pk, existing.status)
        return existing

    user = account_services.require_cohort_manager(actor)
    analysis = analyze(today=today)

    with transaction.atomic():
        run = mig_models.MigrationRun.objects.create(status=RunStatus.ANALYZED, created_by=user, report=analysis.as_dict())
        backup.take_backup(run)
        run.status = RunStatus.BACKED_UP
        run.save(update_fields=['status'])

    results = []
    for candidate in analysis.candidates:
        try:
            results.append(_migrate_candidate(run, candidate, user))
        except Exception as exc:
            logger.exception('Migration run %s: unexpected error on candidate %r', run.pk, candidate.name)
            pending = run.records.filter(status=RecordStatus.PENDING, legacy_enrollment_id__in=candidate.enrollment_ids)
            pending.update(status=RecordStatus.FAILED, error=str(exc))
            results.append({'name': candidate.name, 'promotion_id': None, 'migrated': 0,
                            'failed': len(candidate.enrollment_ids)})

    report = dict(run.report)
    report['results'] = results
    report['summary'] = {
        'promotions_created': len(run.created_promotion_ids),
        'sessions_created': promo_models.Session.objects.filter(promotion_id__in=run.created_promotion_ids).count(),
        'records_migrated': run.records.filter(status=RecordStatus.MIGRATED).count(),
        'records_failed': run.records.filter(status=RecordStatus.FAILED).count(),
    }
    run.report = report
    run.status = RunStatus.EXECUTED
    run.executed_at = timezone.now()
    run.save(update_fields=['report', 'status', 'executed_at'])
    logger.info('Migration run %s executed: %s', run.pk, report['summary'])
    return run


@transaction.atomic
def rollback(run: Optional[mig_models.MigrationRun] = None) -> Optional[mig_models.MigrationRun]:
    """Restore the legacy tables from the active run's backup.

    Promotions created by the run are deleted together with their sessions,
    memberships, attendance and snapshots. No-op without an active backup.
    """
    run = run or active_run()
    if run is None or run.status not in ACTIVE_RUN_STATUSES:
        logger.info('No migration backup to roll back')
        return None

    deleted, _ = promo_models.Promotion.objects.filter(pk__in=run.created_promotion_ids).delete()
    restored = backup.restore_backup(run)

    run.status = RunStatus.ROLLED_BACK
    run.rolled_back_at = timezone.now()
    report = dict(run.report)
    report['rollback'] = {'rows_restored': restored, 'objects_deleted': deleted}
    run.report = report
    run.save(update_fields=['status', 'rolled_back_at', 'report'])
    logger.info('Migration run %s rolled back: restored=%s deleted=%s', run.pk, restored, deleted)
    return run
