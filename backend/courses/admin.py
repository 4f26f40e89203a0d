from django.contrib import admin

from .models import Course, CourseProgress, LegacyEnrollment, Submission


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('code', 'title', 'instructor')
    search_fields = ('code', 'title')


@admin.register(LegacyEnrollment)
class LegacyEnrollmentAdmin(admin.ModelAdmin):
    list_display = ('enrollment_ref', 'student', 'course', 'enrolled_at', 'is_active')
    list_filter = ('is_active',)


@admin.register(CourseProgress)
class CourseProgressAdmin(admin.ModelAdmin):
    list_display = ('student', 'course', 'progress_percentage', 'promotion', 'legacy_enrollment')


admin.site.register(Submission)
