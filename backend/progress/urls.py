from django.urls import path

from progress.views import AtRiskStudentsView, PromotionReportView, PromotionStatisticsView, StudentProgressView

urlpatterns = [
    path('<int:promotion_id>/students/<int:student_id>/', StudentProgressView.as_view(), name='student-progress'),
    path('<int:promotion_id>/statistics/', PromotionStatisticsView.as_view(), name='promotion-statistics'),
    path('<int:promotion_id>/report/', PromotionReportView.as_view(), name='promotion-progress-report'),
    path('<int:promotion_id>/at-risk/', AtRiskStudentsView.as_view(), name='promotion-at-risk'),
]
