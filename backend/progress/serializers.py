from rest_framework import serializers

from progress import models as progress_models


class ProgressSnapshotSerializer(serializers.ModelSerializer):
    display_score = serializers.FloatField(read_only=True)

    class Meta:
        model = progress_models.ProgressSnapshot
        fields = ('student', 'promotion', 'completion_ratio', 'attendance_ratio', 'score', 'display_score', 'computed_at')
        read_only_fields = fields
