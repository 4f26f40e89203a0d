from django.contrib import admin

from .models import AttendanceAuditEntry, AttendanceRecord


class AttendanceAuditEntryInline(admin.TabularInline):
    model = AttendanceAuditEntry
    extra = 0
    can_delete = False
    readonly_fields = ('previous_outcome', 'previous_marked_by', 'previous_marked_at', 'previous_notes', 'new_outcome', 'changed_by', 'changed_at')


@admin.register(AttendanceRecord)
class AttendanceRecordAdmin(admin.ModelAdmin):
    list_display = ('session', 'student', 'outcome', 'marked_at', 'marked_by')
    list_filter = ('outcome',)
    inlines = (AttendanceAuditEntryInline,)
