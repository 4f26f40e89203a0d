from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from attendance.serializers import AttendanceRecordSerializer, BulkMarkSerializer, MarkSerializer
from attendance.services import tracker
from planner import exceptions as errors
from promotions.services import cohort_store


class SessionAttendanceView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, id: int, *args, **kwargs):
        qs = tracker.records_visible_to(id, request.user)
        return Response(AttendanceRecordSerializer(qs, many=True).data)


class MarkAttendanceView(APIView):
    permission_classes = (IsAuthenticated,)

    def post(self, request, id: int, *args, **kwargs):
        serializer = MarkSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = tracker.mark(id, data['student'], data['outcome'], request.user, notes=data.get('notes', ''))
        return Response(AttendanceRecordSerializer(record).data)


class BulkMarkAttendanceView(APIView):
    permission_classes = (IsAuthenticated,)

    def post(self, request, id: int, *args, **kwargs):
        serializer = BulkMarkSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(tracker.bulk_mark(id, serializer.validated_data['marks'], request.user))


class PromotionAttendanceAlertsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, *args, **kwargs):
        cohort_store.get_promotion(promotion_id)
        if not tracker.can_view_cohort_attendance(request.user, promotion_id):
            raise errors.AuthorizationError('Not authorized to view attendance alerts for this promotion')
        return Response({'promotion': promotion_id, 'alerts': tracker.attendance_alerts(promotion_id)})


class PromotionAttendanceTrendView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, *args, **kwargs):
        cohort_store.get_promotion(promotion_id)
        if not tracker.can_view_cohort_attendance(request.user, promotion_id):
            raise errors.AuthorizationError('Not authorized to view attendance trends for this promotion')
        return Response(tracker.attendance_trend(promotion_id))
