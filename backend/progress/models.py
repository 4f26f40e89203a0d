from django.conf import settings
from django.db import models


class ProgressSnapshot(models.Model):
    """Derived progress of a student in a promotion.

    `score` is `0.7 * completion_ratio + 0.3 * attendance_ratio`, clamped to
    [0, 1]. Snapshots survive archival of their promotion.
    """
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='progress_snapshots')
    promotion = models.ForeignKey('promotions.Promotion', on_delete=models.CASCADE, related_name='progress_snapshots')
    completion_ratio = models.FloatField(default=0.0)
    attendance_ratio = models.FloatField(default=1.0)
    score = models.FloatField(default=0.0, db_index=True)
    computed_at = models.DateTimeField()

    class Meta:
        unique_together = (('student', 'promotion'),)
        ordering = ('promotion', '-score', 'student')

    def __str__(self):
        return f'{self.student_id} in {self.promotion_id}: {self.score:.4f}'

    @property
    def display_score(self) -> float:
        return round(self.score * 100, 2)
