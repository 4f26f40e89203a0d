from django.conf import settings
from django.db import models


class MigrationRun(models.Model):
    """One execution of the enrollment -> promotion migration."""

    class Status(models.TextChoices):
        ANALYZED = 'analyzed', 'Analyzed'
        BACKED_UP = 'backed_up', 'Backed up'
        EXECUTED = 'executed', 'Executed'
        ROLLED_BACK = 'rolled_back', 'Rolled back'

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ANALYZED, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='migration_runs'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    executed_at = models.DateTimeField(null=True, blank=True)
    rolled_back_at = models.DateTimeField(null=True, blank=True)
    report = models.JSONField(default=dict, blank=True)
    created_promotion_ids = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ('-created_at', '-id')

    def __str__(self):
        return f'Migration run {self.pk} ({self.status})'


class MigrationRecord(models.Model):
    """Outcome of migrating one legacy enrollment."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        MIGRATED = 'migrated', 'Migrated'
        FAILED = 'failed', 'Failed'

    run = models.ForeignKey(MigrationRun, on_delete=models.CASCADE, related_name='records')
    enrollment_ref = models.CharField(max_length=64)
    legacy_enrollment = models.ForeignKey(
        'courses.LegacyEnrollment', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    course = models.ForeignKey('courses.Course', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    promotion = models.ForeignKey('promotions.Promotion', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    session = models.ForeignKey('promotions.Session', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    error = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = (('run', 'enrollment_ref'),)
        ordering = ('run', 'id')


class MigrationBackup(models.Model):
    """Serialized copy of one legacy table taken before a migration run."""
    run = models.ForeignKey(MigrationRun, on_delete=models.CASCADE, related_name='backups')
    label = models.CharField(max_length=100)
    payload = models.TextField()
    row_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ('run', 'id')
        unique_together = (('run', 'label'),)
