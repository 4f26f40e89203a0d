from django.conf import settings
from django.db import models


class AttendanceRecord(models.Model):
    """Attendance of one student at one session.

    Records start `unmarked` and are only ever set by a teacher or admin;
    nothing marks a student absent automatically.
    """

    class Outcome(models.TextChoices):
        UNMARKED = 'unmarked', 'Unmarked'
        ATTENDED = 'attended', 'Attended'
        ABSENT = 'absent', 'Absent'
        EXCUSED = 'excused', 'Excused'

    session = models.ForeignKey('promotions.Session', on_delete=models.CASCADE, related_name='attendance_records')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='attendance_records')
    outcome = models.CharField(max_length=16, choices=Outcome.choices, default=Outcome.UNMARKED, db_index=True)
    notes = models.TextField(blank=True, default='')
    marked_at = models.DateTimeField(null=True, blank=True, db_index=True)
    marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='marked_attendance'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = (('session', 'student'),)
        ordering = ('session', 'student')

    def __str__(self):
        return f'{self.student_id} @ {self.session_id}: {self.outcome}'


class AttendanceAuditEntry(models.Model):
    """Previous outcome and notes of a record, written every time a mark is overwritten."""
    record = models.ForeignKey(AttendanceRecord, on_delete=models.CASCADE, related_name='audit_entries')
    previous_outcome = models.CharField(max_length=16, choices=AttendanceRecord.Outcome.choices)
    previous_marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    previous_marked_at = models.DateTimeField(null=True, blank=True)
    previous_notes = models.TextField(blank=True, default='')
    new_outcome = models.CharField(max_length=16, choices=AttendanceRecord.Outcome.choices)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='attendance_changes'
    )
    changed_at = models.DateTimeField()

    class Meta:
        ordering = ('record', 'changed_at', 'id')
