from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q


class Promotion(models.Model):
    """A cohort of students following the same semester of study.

    Promotions are never deleted by normal operations; they move through
    draft -> active -> completed and are finally archived.
    """

    class Intake(models.TextChoices):
        SEPTEMBER = 'september', 'September'
        MARCH = 'march', 'March'

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        ACTIVE = 'active', 'Active'
        COMPLETED = 'completed', 'Completed'
        ARCHIVED = 'archived', 'Archived'

    name = models.CharField(max_length=255)
    academic_year = models.CharField(max_length=9, db_index=True)
    intake = models.CharField(max_length=16, choices=Intake.choices)
    semester = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(10)])
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT, db_index=True)

    level = models.CharField(max_length=64, blank=True, default='')
    department = models.CharField(max_length=128, blank=True, default='')
    description = models.TextField(blank=True, default='')
    max_students = models.PositiveIntegerField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_promotions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('-academic_year', 'semester', 'name')
        indexes = [
            models.Index(fields=['academic_year', 'intake', 'semester'], name='promotion_year_intake_sem_idx'),
        ]

    def __str__(self):
        return self.name

    @property
    def is_closed(self) -> bool:
        return self.status in (self.Status.COMPLETED, self.Status.ARCHIVED)


class PromotionMembership(models.Model):
    """Time-bound membership of a student in a promotion.

    Rows are kept after a student leaves (`left_at` is set) so history is
    preserved. The live row, if any, is the student's current promotion.
    """
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='memberships')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='promotion_memberships')
    position = models.PositiveIntegerField(default=0)
    joined_at = models.DateTimeField(auto_now_add=True)
    left_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ('promotion', 'position', 'id')
        constraints = [
            models.UniqueConstraint(fields=['student'], condition=Q(left_at__isnull=True), name='unique_live_promotion_per_student')
        ]

    def __str__(self):
        return f'{self.student_id} in {self.promotion_id}'

    @property
    def is_live(self) -> bool:
        return self.left_at is None


class Session(models.Model):
    """One scheduled delivery of a course to a promotion."""
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='sessions')
    course = models.ForeignKey('courses.Course', on_delete=models.PROTECT, related_name='sessions')
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='taught_sessions')
    start_at = models.DateTimeField(db_index=True)
    end_at = models.DateTimeField()
    location = models.CharField(max_length=255, blank=True, default='')
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_sessions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('start_at', 'id')
        indexes = [
            models.Index(fields=['teacher', 'start_at'], name='session_teacher_start_idx'),
        ]

    def __str__(self):
        return f'{self.course_id} for {self.promotion_id} @ {self.start_at:%Y-%m-%d %H:%M}'

    def has_started(self, now) -> bool:
        return self.start_at <= now
