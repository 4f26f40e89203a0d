from django.contrib import admin

from .models import MigrationBackup, MigrationRecord, MigrationRun


class MigrationRecordInline(admin.TabularInline):
    model = MigrationRecord
    extra = 0
    can_delete = False
    readonly_fields = ('enrollment_ref', 'student', 'course', 'promotion', 'session', 'status', 'error')


@admin.register(MigrationRun)
class MigrationRunAdmin(admin.ModelAdmin):
    list_display = ('id', 'status', 'created_by', 'created_at', 'executed_at', 'rolled_back_at')
    list_filter = ('status',)
    readonly_fields = ('report', 'created_promotion_ids')
    inlines = (MigrationRecordInline,)


@admin.register(MigrationBackup)
class MigrationBackupAdmin(admin.ModelAdmin):
    list_display = ('run', 'label', 'row_count', 'created_at')
    exclude = ('payload',)
