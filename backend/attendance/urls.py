from django.urls import path

from attendance.views import (
    BulkMarkAttendanceView,
    MarkAttendanceView,
    PromotionAttendanceAlertsView,
    PromotionAttendanceTrendView,
    SessionAttendanceView,
)

urlpatterns = [
    path('sessions/<int:id>/', SessionAttendanceView.as_view(), name='session-attendance'),
    path('sessions/<int:id>/mark/', MarkAttendanceView.as_view(), name='session-attendance-mark'),
    path('sessions/<int:id>/bulk-mark/', BulkMarkAttendanceView.as_view(), name='session-attendance-bulk-mark'),
    path('promotions/<int:promotion_id>/alerts/', PromotionAttendanceAlertsView.as_view(), name='promotion-attendance-alerts'),
    path('promotions/<int:promotion_id>/trend/', PromotionAttendanceTrendView.as_view(), name='promotion-attendance-trend'),
]
