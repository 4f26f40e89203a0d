from rest_framework import serializers

from attendance import models as att_models


class AttendanceRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = att_models.AttendanceRecord
        fields = ('id', 'session', 'student', 'outcome', 'notes', 'marked_at', 'marked_by')
        read_only_fields = fields


class MarkSerializer(serializers.Serializer):
    student = serializers.IntegerField()
    outcome = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BulkMarkSerializer(serializers.Serializer):
    marks = MarkSerializer(many=True)
