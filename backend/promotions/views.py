from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts import services as account_services
from planner import exceptions as errors
from promotions import models as promo_models
from promotions.serializers import (
    MembersSerializer,
    PromotionSerializer,
    SessionCreateSerializer,
    SessionSerializer,
)
from promotions.services import cohort_store, session_linkage, student_view


def _require_staff_or_self(user, student_id):
    if user.pk == student_id:
        return
    if account_services.can_manage_cohorts(user) or account_services.can_teach(user):
        return
    raise errors.AuthorizationError("Not authorized to view another student's promotion data")


class PromotionListCreateView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, *args, **kwargs):
        qs = promo_models.Promotion.objects.all()
        status_filter = request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)
        return Response(PromotionSerializer(qs, many=True).data)

    def post(self, request, *args, **kwargs):
        promotion = cohort_store.create_cohort(request.data, request.user)
        return Response(PromotionSerializer(promotion).data, status=status.HTTP_201_CREATED)


class PromotionDetailView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, id: int, *args, **kwargs):
        return Response(PromotionSerializer(cohort_store.get_promotion(id)).data)

    def patch(self, request, id: int, *args, **kwargs):
        promotion = cohort_store.update_cohort(id, dict(request.data.items()), request.user)
        return Response(PromotionSerializer(promotion).data)


class PromotionMembersView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, id: int, *args, **kwargs):
        promotion = cohort_store.get_promotion(id)
        return Response({'promotion': promotion.pk, 'student_ids': cohort_store.live_member_ids(promotion)})

    def post(self, request, id: int, *args, **kwargs):
        serializer = MembersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        created = cohort_store.add_members(id, serializer.validated_data['student_ids'], request.user)
        return Response({'added': [m.student_id for m in created]}, status=status.HTTP_201_CREATED)


class PromotionMemberDetailView(APIView):
    permission_classes = (IsAuthenticated,)

    def delete(self, request, id: int, student_id: int, *args, **kwargs):
        cohort_store.remove_member(id, student_id, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PromotionTransitionView(APIView):
    permission_classes = (IsAuthenticated,)
    transitions = {
        'activate': cohort_store.activate,
        'complete': cohort_store.complete,
        'archive': cohort_store.archive,
    }

    def post(self, request, id: int, action: str, *args, **kwargs):
        transition = self.transitions.get(action)
        if transition is None:
            raise errors.ValidationError(f'Unknown transition {action!r}')
        promotion = transition(id, request.user)
        return Response(PromotionSerializer(promotion).data)


class PromotionSessionsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, id: int, *args, **kwargs):
        cohort_store.get_promotion(id)
        return Response(SessionSerializer(session_linkage.sessions_for_cohort(id), many=True).data)

    def post(self, request, id: int, *args, **kwargs):
        serializer = SessionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        session = session_linkage.create_session(
            id, data['course'], data['teacher'], data['start_at'], data['end_at'], request.user,
            location=data.get('location', ''), metadata=data.get('metadata') or {},
        )
        return Response(SessionSerializer(session).data, status=status.HTTP_201_CREATED)


class CourseAccessView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, *args, **kwargs):
        try:
            student_id = int(request.query_params.get('student', request.user.pk))
            course_id = int(request.query_params['course'])
        except (KeyError, TypeError, ValueError):
            raise errors.ValidationError('course (and optionally student) must be integer ids')
        _require_staff_or_self(request.user, student_id)
        return Response({
            'student': student_id,
            'course': course_id,
            'allowed': session_linkage.course_access_for(student_id, course_id),
        })


class StudentPromotionView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, student_id: int, *args, **kwargs):
        _require_staff_or_self(request.user, student_id)
        view = student_view.student_promotion_view(student_id)
        if view is None:
            raise errors.NotFoundError(f'Student {student_id} has no current promotion')
        view['promotion'] = PromotionSerializer(view['promotion']).data
        return Response(view)
