from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts import services as account_services
from planner import exceptions as errors
from progress.serializers import ProgressSnapshotSerializer
from progress.services import calculator, statistics


def _require_staff_or_self(user, student_id=None):
    if student_id is not None and user.pk == student_id:
        return
    if account_services.can_manage_cohorts(user) or account_services.can_teach(user):
        return
    raise errors.AuthorizationError('Not authorized to view this progress')


class StudentProgressView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, student_id: int, *args, **kwargs):
        _require_staff_or_self(request.user, student_id)
        snapshot = calculator.get_progress(student_id, promotion_id)
        return Response(ProgressSnapshotSerializer(snapshot).data)

    def post(self, request, promotion_id: int, student_id: int, *args, **kwargs):
        _require_staff_or_self(request.user)
        snapshot = calculator.recompute(student_id, promotion_id)
        return Response(ProgressSnapshotSerializer(snapshot).data)


class PromotionStatisticsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, *args, **kwargs):
        _require_staff_or_self(request.user)
        return Response(statistics.promotion_statistics(promotion_id))


class PromotionReportView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, *args, **kwargs):
        _require_staff_or_self(request.user)
        return Response(statistics.progress_report(promotion_id))


class AtRiskStudentsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, promotion_id: int, *args, **kwargs):
        _require_staff_or_self(request.user)
        try:
            progress_threshold = float(request.query_params.get('progress', statistics.AT_RISK_PROGRESS))
            attendance_threshold = float(request.query_params.get('attendance', statistics.AT_RISK_ATTENDANCE))
        except (TypeError, ValueError):
            raise errors.ValidationError('progress and attendance thresholds must be numbers')
        qs = statistics.at_risk_students(promotion_id, progress_threshold, attendance_threshold)
        return Response(ProgressSnapshotSerializer(qs, many=True).data)
