from rest_framework import serializers

from promotions import models as promo_models


class PromotionSerializer(serializers.ModelSerializer):
    member_count = serializers.SerializerMethodField()

    class Meta:
        model = promo_models.Promotion
        fields = (
            'id', 'name', 'academic_year', 'intake', 'semester', 'start_date', 'end_date', 'status',
            'level', 'department', 'description', 'max_students', 'member_count', 'created_at',
        )
        read_only_fields = fields

    def get_member_count(self, obj):
        return obj.memberships.filter(left_at__isnull=True).count()


class SessionSerializer(serializers.ModelSerializer):
    course_code = serializers.CharField(source='course.code', read_only=True)

    class Meta:
        model = promo_models.Session
        fields = ('id', 'promotion', 'course', 'course_code', 'teacher', 'start_at', 'end_at', 'location', 'metadata')
        read_only_fields = fields


class SessionCreateSerializer(serializers.Serializer):
    course = serializers.IntegerField()
    teacher = serializers.IntegerField()
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    location = serializers.CharField(required=False, allow_blank=True, default='')
    metadata = serializers.DictField(required=False, default=dict)


class MembersSerializer(serializers.Serializer):
    student_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
