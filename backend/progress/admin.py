from django.contrib import admin

from .models import ProgressSnapshot


@admin.register(ProgressSnapshot)
class ProgressSnapshotAdmin(admin.ModelAdmin):
    list_display = ('student', 'promotion', 'completion_ratio', 'attendance_ratio', 'score', 'computed_at')
    list_filter = ('promotion',)
    readonly_fields = ('computed_at',)
