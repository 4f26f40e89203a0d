from django.urls import path

from promotions.views import (
    CourseAccessView,
    PromotionDetailView,
    PromotionListCreateView,
    PromotionMemberDetailView,
    PromotionMembersView,
    PromotionSessionsView,
    PromotionTransitionView,
    StudentPromotionView,
)

urlpatterns = [
    path('', PromotionListCreateView.as_view(), name='promotion-list-create'),
    path('access/', CourseAccessView.as_view(), name='promotion-course-access'),
    path('students/<int:student_id>/', StudentPromotionView.as_view(), name='student-promotion-view'),
    path('<int:id>/', PromotionDetailView.as_view(), name='promotion-detail'),
    path('<int:id>/members/', PromotionMembersView.as_view(), name='promotion-members'),
    path('<int:id>/members/<int:student_id>/', PromotionMemberDetailView.as_view(), name='promotion-member-detail'),
    path('<int:id>/sessions/', PromotionSessionsView.as_view(), name='promotion-sessions'),
    path('<int:id>/<str:action>/', PromotionTransitionView.as_view(), name='promotion-transition'),
]
