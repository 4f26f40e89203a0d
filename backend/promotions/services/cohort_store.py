"""Service layer for promotions (cohorts) and their membership.

All mutations run inside a transaction. The "one live promotion per student"
rule is enforced by the `unique_live_promotion_per_student` constraint: each
member insert runs in its own savepoint and an IntegrityError is reported as
a conflict, so two concurrent `add_members` calls cannot both win.
"""
import logging
import re
from datetime import date
from typing import Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone
from django.utils.dateparse import parse_date

from accounts import services as account_services
from planner import exceptions as errors
from promotions import models as promo_models

logger = logging.getLogger(__name__)

ACADEMIC_YEAR_RE = re.compile(r'^(\d{4})-(\d{4})$')
MIN_SEMESTER = 1
MAX_SEMESTER = 10

Intake = promo_models.Promotion.Intake
Status = promo_models.Promotion.Status

OPEN_STATUSES = (Status.DRAFT, Status.ACTIVE)


def intake_for_semester(semester: int) -> str:
    """September intakes run odd semesters, March intakes even ones."""
    return Intake.SEPTEMBER if semester % 2 == 1 else Intake.MARCH


def parse_academic_year(value: str):
    m = ACADEMIC_YEAR_RE.match(str(value or ''))
    if not m:
        raise errors.ValidationError(f'academic_year must look like YYYY-YYYY, got {value!r}')
    start, end = int(m.group(1)), int(m.group(2))
    if end != start + 1:
        raise errors.ValidationError(f'academic_year must span consecutive years, got {value!r}')
    return start, end


def _coerce_date(value, field: str) -> date:
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value or '')) if value else None
    if parsed is None:
        raise errors.ValidationError(f'{field} must be an ISO date')
    return parsed


def validate_definition(definition: Dict) -> Dict:
    """Validate a promotion definition and return model field values."""
    name = str(definition.get('name') or '').strip()
    if not name:
        raise errors.ValidationError('name is required')

    intake = definition.get('intake')
    if intake not in Intake.values:
        raise errors.ValidationError(f'intake must be one of {", ".join(Intake.values)}')

    try:
        semester = int(definition.get('semester'))
    except (TypeError, ValueError):
        raise errors.ValidationError('semester must be an integer')
    if semester < MIN_SEMESTER or semester > MAX_SEMESTER:
        raise errors.ValidationError(f'semester must be between {MIN_SEMESTER} and {MAX_SEMESTER}')
    if intake_for_semester(semester) != intake:
        raise errors.ValidationError(
            f'semester {semester} does not match the {intake} intake '
            '(september runs odd semesters, march runs even semesters)'
        )

    academic_year = str(definition.get('academic_year') or '')
    parse_academic_year(academic_year)

    start_date = _coerce_date(definition.get('start_date'), 'start_date')
    end_date = _coerce_date(definition.get('end_date'), 'end_date')
    if end_date <= start_date:
        raise errors.ValidationError('end_date must be after start_date')

    max_students = definition.get('max_students')
    if max_students is not None:
        try:
            max_students = int(max_students)
        except (TypeError, ValueError):
            raise errors.ValidationError('max_students must be an integer')
        if max_students < 1:
            raise errors.ValidationError('max_students must be at least 1')

    return {
        'name': name,
        'intake': intake,
        'semester': semester,
        'academic_year': academic_year,
        'start_date': start_date,
        'end_date': end_date,
        'max_students': max_students,
        'level': str(definition.get('level') or ''),
        'department': str(definition.get('department') or ''),
        'description': str(definition.get('description') or ''),
    }


def _lock_promotion(cohort_id) -> promo_models.Promotion:
    try:
        return promo_models.Promotion.objects.select_for_update().get(pk=cohort_id)
    except promo_models.Promotion.DoesNotExist:
        raise errors.NotFoundError(f'Promotion {cohort_id} not found')


def get_promotion(cohort_id) -> promo_models.Promotion:
    try:
        return promo_models.Promotion.objects.get(pk=cohort_id)
    except promo_models.Promotion.DoesNotExist:
        raise errors.NotFoundError(f'Promotion {cohort_id} not found')


@transaction.atomic
def create_cohort(definition: Dict, actor) -> promo_models.Promotion:
    """Create a promotion in `draft` status."""
    user = account_services.require_cohort_manager(actor)
    values = validate_definition(definition)
    promotion = promo_models.Promotion.objects.create(created_by=user, status=Status.DRAFT, **values)
    logger.info('Promotion created: id=%s name=%s year=%s semester=%s actor=%s',
                promotion.pk, promotion.name, promotion.academic_year, promotion.semester, user.pk)
    return promotion


# Fields that define which semester a promotion is; frozen once it is active.
IDENTITY_FIELDS = ('intake', 'semester', 'academic_year')
EDITABLE_FIELDS = ('name', 'start_date', 'end_date', 'level', 'department', 'description', 'max_students') + IDENTITY_FIELDS


@transaction.atomic
def update_cohort(cohort_id, changes: Dict, actor) -> promo_models.Promotion:
    """Edit a draft or active promotion. Status moves only through the transitions."""
    user = account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    if promotion.is_closed:
        raise errors.PreconditionError(f'Promotion {promotion.pk} is {promotion.status}; it can no longer be edited')

    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise errors.ValidationError(f'Fields cannot be changed: {unknown}', detail={'invalid_fields': unknown})
    definition = {field: getattr(promotion, field) for field in EDITABLE_FIELDS}
    definition.update(changes)
    values = validate_definition(definition)

    if promotion.status == Status.ACTIVE:
        frozen = [f for f in IDENTITY_FIELDS if values[f] != getattr(promotion, f)]
        if frozen:
            raise errors.PreconditionError(
                f'Promotion {promotion.pk} is active; {", ".join(frozen)} can no longer change',
                detail={'frozen_fields': frozen},
            )

    if values['max_students'] is not None:
        live_count = _live_memberships().filter(promotion=promotion).count()
        if values['max_students'] < live_count:
            raise errors.ConflictError(
                f'Promotion {promotion.pk} already has {live_count} members',
                detail={'capacity': values['max_students'], 'current': live_count},
            )

    changed = [field for field, value in values.items() if getattr(promotion, field) != value]
    if not changed:
        return promotion
    for field in changed:
        setattr(promotion, field, values[field])
    promotion.save(update_fields=changed + ['updated_at'])
    logger.info('Promotion updated: id=%s fields=%s actor=%s', promotion.pk, ','.join(changed), user.pk)
    return promotion


def _live_memberships():
    return promo_models.PromotionMembership.objects.filter(left_at__isnull=True)


@transaction.atomic
def add_members(cohort_id, student_ids: Iterable, actor) -> List[promo_models.PromotionMembership]:
    """Add students to a promotion.

    All-or-nothing: if any student cannot be added nothing is written.
    Re-adding a current member is a no-op for that student.
    """
    account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    if promotion.is_closed:
        raise errors.PreconditionError(f'Promotion {promotion.pk} is {promotion.status}; members cannot be added')

    try:
        ids = list(dict.fromkeys(int(s) for s in student_ids))
    except (TypeError, ValueError):
        raise errors.ValidationError('student ids must be integers')
    if not ids:
        return []

    User = get_user_model()
    users = User.objects.in_bulk(ids)
    missing = [sid for sid in ids if sid not in users]
    if missing:
        raise errors.NotFoundError(f'Unknown students: {missing}', detail={'missing_students': missing})
    non_students = [sid for sid in ids if users[sid].role != User.Role.STUDENT]
    if non_students:
        raise errors.ValidationError(f'Users are not students: {non_students}', detail={'invalid_students': non_students})

    already = set(_live_memberships().filter(promotion=promotion, student_id__in=ids).values_list('student_id', flat=True))
    new_ids = [sid for sid in ids if sid not in already]

    clashes = list(
        _live_memberships()
        .filter(student_id__in=new_ids)
        .exclude(promotion=promotion)
        .values_list('student_id', 'promotion_id')
    )
    if clashes:
        conflicting = sorted({sid for sid, _ in clashes})
        raise errors.ConflictError(
            f'Students already belong to another promotion: {conflicting}',
            detail={'conflicting_students': conflicting},
        )

    if promotion.max_students is not None:
        live_count = _live_memberships().filter(promotion=promotion).count()
        if live_count + len(new_ids) > promotion.max_students:
            raise errors.ConflictError(
                f'Promotion {promotion.pk} would exceed its capacity of {promotion.max_students}',
                detail={'capacity': promotion.max_students, 'current': live_count, 'requested': len(new_ids)},
            )

    position = (promotion.memberships.aggregate(m=Max('position'))['m'] or 0)
    created = []
    lost_race = []
    for sid in new_ids:
        position += 1
        try:
            with transaction.atomic():
                created.append(promo_models.PromotionMembership.objects.create(
                    promotion=promotion, student_id=sid, position=position,
                ))
        except IntegrityError:
            lost_race.append(sid)

    if lost_race:
        # raising inside the outer atomic block undoes the inserts above
        raise errors.ConflictError(
            f'Students already belong to another promotion: {lost_race}',
            detail={'conflicting_students': lost_race},
        )

    logger.info('Promotion %s: added %s students (%s already members)', promotion.pk, len(created), len(already))
    return created


@transaction.atomic
def remove_member(cohort_id, student_id, actor) -> promo_models.PromotionMembership:
    """End a student's live membership. Course access is revoked immediately."""
    account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    membership = _live_memberships().filter(promotion=promotion, student_id=student_id).first()
    if membership is None:
        raise errors.NotFoundError(f'Student {student_id} is not a member of promotion {promotion.pk}')
    membership.left_at = timezone.now()
    membership.save(update_fields=['left_at'])
    logger.info('Promotion %s: removed student %s', promotion.pk, student_id)
    return membership


def _close_memberships(promotion: promo_models.Promotion) -> int:
    return _live_memberships().filter(promotion=promotion).update(left_at=timezone.now())


@transaction.atomic
def activate(cohort_id, actor) -> promo_models.Promotion:
    account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    if promotion.status == Status.ACTIVE:
        return promotion
    if promotion.status != Status.DRAFT:
        raise errors.PreconditionError(f'Promotion {promotion.pk} is {promotion.status}; only drafts can be activated')
    if not promotion.sessions.exists():
        raise errors.PreconditionError(f'Promotion {promotion.pk} has no sessions linked')

    promotion.status = Status.ACTIVE
    promotion.save(update_fields=['status', 'updated_at'])
    logger.info('Promotion activated: id=%s', promotion.pk)
    return promotion


@transaction.atomic
def complete(cohort_id, actor) -> promo_models.Promotion:
    account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    if promotion.status == Status.COMPLETED:
        return promotion
    if promotion.status != Status.ACTIVE:
        raise errors.PreconditionError(f'Promotion {promotion.pk} is {promotion.status}; only active promotions can be completed')

    closed = _close_memberships(promotion)
    promotion.status = Status.COMPLETED
    promotion.save(update_fields=['status', 'updated_at'])
    logger.info('Promotion completed: id=%s memberships_closed=%s', promotion.pk, closed)
    return promotion


@transaction.atomic
def archive(cohort_id, actor) -> promo_models.Promotion:
    """Archive a promotion. Terminal and idempotent; snapshots are kept."""
    account_services.require_cohort_manager(actor)
    promotion = _lock_promotion(cohort_id)
    if promotion.status == Status.ARCHIVED:
        return promotion

    closed = _close_memberships(promotion)
    promotion.status = Status.ARCHIVED
    promotion.save(update_fields=['status', 'updated_at'])
    logger.info('Promotion archived: id=%s memberships_closed=%s', promotion.pk, closed)
    return promotion


def current_cohort_for(student_id) -> Optional[promo_models.Promotion]:
    membership = _live_memberships().select_related('promotion').filter(student_id=student_id).first()
    return membership.promotion if membership else None


def live_member_ids(promotion) -> List[int]:
    return list(
        _live_memberships().filter(promotion=promotion).order_by('position', 'id').values_list('student_id', flat=True)
    )


def next_semester_target(promotion: promo_models.Promotion):
    """Return (semester, intake, academic_year) of the semester following `promotion`."""
    if promotion.semester >= MAX_SEMESTER:
        raise errors.PreconditionError(f'Semester {promotion.semester} is the final semester')
    semester = promotion.semester + 1
    intake = intake_for_semester(semester)
    academic_year = promotion.academic_year
    if promotion.intake == Intake.MARCH and intake == Intake.SEPTEMBER:
        _, end = parse_academic_year(promotion.academic_year)
        academic_year = f'{end}-{end + 1}'
    return semester, intake, academic_year


@transaction.atomic
def progress_student_to_next_semester(student_id, actor) -> promo_models.Promotion:
    """Move a student from their live promotion into the next semester's one."""
    account_services.require_cohort_manager(actor)
    membership = _live_memberships().select_for_update().select_related('promotion').filter(student_id=student_id).first()
    if membership is None:
        raise errors.NotFoundError(f'Student {student_id} has no current promotion')
    current = membership.promotion
    semester, intake, academic_year = next_semester_target(current)

    target = promo_models.Promotion.objects.filter(
        semester=semester, intake=intake, academic_year=academic_year, status__in=OPEN_STATUSES,
    ).order_by('id').first()
    if target is None:
        raise errors.NotFoundError(f'No promotion found for semester {semester} ({intake} {academic_year})')

    membership.left_at = timezone.now()
    membership.save(update_fields=['left_at'])
    add_members(target.pk, [student_id], actor)
    logger.info('Student %s progressed from semester %s (promotion %s) to %s (promotion %s)',
                student_id, current.semester, current.pk, semester, target.pk)
    return target
