from django.conf import settings
from django.db import models


class WorkflowRun(models.Model):
    """One pass of the attendance workflow.

    `watermark` is the clock reading the run started from; the next run
    only looks at attendance changed after it.
    """
    started_at = models.DateTimeField()
    finished_at = models.DateTimeField(null=True, blank=True)
    watermark = models.DateTimeField(null=True, blank=True)
    full_recompute = models.BooleanField(default=False)
    report = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ('-started_at', '-id')

    def __str__(self):
        return f'Workflow run {self.pk} @ {self.started_at:%Y-%m-%d %H:%M}'


class AttendanceFollowUp(models.Model):
    """A session/student pair left unmarked past the grace period.

    Exists at most once per pair so the teacher is notified only once.
    """
    session = models.ForeignKey('promotions.Session', on_delete=models.CASCADE, related_name='attendance_followups')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='attendance_followups')
    teacher = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    flagged_at = models.DateTimeField()
    run = models.ForeignKey(WorkflowRun, on_delete=models.SET_NULL, null=True, blank=True, related_name='followups')

    class Meta:
        unique_together = (('session', 'student'),)
        ordering = ('-flagged_at',)
