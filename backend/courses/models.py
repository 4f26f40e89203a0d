from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Course(models.Model):
    code = models.CharField(max_length=32, unique=True)
    title = models.CharField(max_length=255)
    instructor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='instructed_courses',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ('code',)

    def __str__(self):
        return f'{self.code} - {self.title}'


class LegacyEnrollment(models.Model):
    """Direct student -> course enrollment from before promotions existed.

    Read only for the migration tool; rows are deactivated, never deleted,
    once their data has been moved onto a promotion.
    """
    enrollment_ref = models.CharField(max_length=64, unique=True)
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='legacy_enrollments')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='legacy_enrollments')
    enrolled_at = models.DateTimeField()
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ('enrolled_at', 'id')

    def __str__(self):
        return f'{self.enrollment_ref} ({self.student_id} -> {self.course_id})'


class CourseProgress(models.Model):
    """Per-student completion of a course, 0..100.

    Historically keyed by a legacy enrollment; after migration it is scoped
    to the student's promotion instead.
    """
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='course_progress')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='progress_rows')
    progress_percentage = models.FloatField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    legacy_enrollment = models.ForeignKey(
        LegacyEnrollment, on_delete=models.SET_NULL, null=True, blank=True, related_name='progress_rows'
    )
    promotion = models.ForeignKey(
        'promotions.Promotion', on_delete=models.SET_NULL, null=True, blank=True, related_name='course_progress'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = (('student', 'course'),)


class Submission(models.Model):
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='submissions')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='submissions')
    exercise_ref = models.CharField(max_length=64, blank=True, default='')
    score = models.FloatField(null=True, blank=True)
    submitted_at = models.DateTimeField()
    legacy_enrollment = models.ForeignKey(
        LegacyEnrollment, on_delete=models.SET_NULL, null=True, blank=True, related_name='submissions'
    )
    promotion = models.ForeignKey(
        'promotions.Promotion', on_delete=models.SET_NULL, null=True, blank=True, related_name='submissions'
    )

    class Meta:
        ordering = ('-submitted_at',)
