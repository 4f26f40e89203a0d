from django.contrib import admin

from .models import AttendanceFollowUp, WorkflowRun


@admin.register(WorkflowRun)
class WorkflowRunAdmin(admin.ModelAdmin):
    list_display = ('id', 'started_at', 'finished_at', 'watermark', 'full_recompute')
    readonly_fields = ('report',)


@admin.register(AttendanceFollowUp)
class AttendanceFollowUpAdmin(admin.ModelAdmin):
    list_display = ('session', 'student', 'teacher', 'flagged_at')
