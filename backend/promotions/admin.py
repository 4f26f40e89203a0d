from django.contrib import admin

from .models import Promotion, PromotionMembership, Session


class PromotionMembershipInline(admin.TabularInline):
    model = PromotionMembership
    extra = 0
    readonly_fields = ('joined_at',)


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ('name', 'academic_year', 'intake', 'semester', 'status')
    list_filter = ('status', 'intake', 'semester')
    search_fields = ('name', 'academic_year')
    inlines = (PromotionMembershipInline,)


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ('promotion', 'course', 'teacher', 'start_at', 'end_at')
    list_filter = ('promotion',)
