from django.contrib import admin
from .models import (
    Question, Bookmark, TestSeries, FreePractice, Participation, ViolationEvent, StudentActivity,
)


# ----- Inlines -----
class ViolationEventInline(admin.TabularInline):
    model = ViolationEvent
    extra = 0
    fields = ("type", "occurred_at")
    readonly_fields = ("type", "occurred_at")
    ordering = ("occurred_at",)


class ParticipationInline(admin.TabularInline):
    model = Participation
    fk_name = "test_series"
    extra = 0
    raw_id_fields = ("user",)
    fields = ("user", "start_time", "end_time", "submitted_at", "violations", "auto_submitted")
    readonly_fields = ("start_time", "end_time", "submitted_at", "violations", "auto_submitted")
    show_change_link = True


# ----- ModelAdmins -----
@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ("id", "short_text", "category", "subcategory", "level",
                    "correct_ans", "visibility", "created_by", "created_at")
    list_filter = ("visibility", "level", "category")
    search_fields = ("question", "category", "subcategory")
    raw_id_fields = ("created_by",)
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-created_at",)

    def short_text(self, obj):
        return (obj.question or "")[:80]


@admin.register(Bookmark)
class BookmarkAdmin(admin.ModelAdmin):
    list_display = ("user", "question", "created_at")
    search_fields = ("user__email", "question__question")
    raw_id_fields = ("user", "question")


@admin.register(TestSeries)
class TestSeriesAdmin(admin.ModelAdmin):
    list_display = (
        "title", "start_time", "end_time", "requires_code", "contest_code",
        "started_notified_at", "ended_notified_at", "created_by",
    )
    list_filter = ("requires_code",)
    search_fields = ("title", "description", "contest_code")
    date_hierarchy = "start_time"
    filter_horizontal = ("questions",)
    inlines = [ParticipationInline]
    readonly_fields = ("created_at", "updated_at", "reminder_sent_at", "started_notified_at", "ended_notified_at")


@admin.register(FreePractice)
class FreePracticeAdmin(admin.ModelAdmin):
    list_display = ("title", "created_by", "category", "subcategory", "level", "start_time", "end_time")
    list_filter = ("level", "category")
    search_fields = ("title", "created_by__email")
    raw_id_fields = ("created_by",)
    filter_horizontal = ("questions",)


@admin.register(Participation)
class ParticipationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "test_series", "free_practice", "start_time",
                    "submitted_at", "violations", "auto_submitted")
    list_filter = ("contest", "practice_test", "auto_submitted", "test_series")
    search_fields = ("user__email", "user__full_name", "test_series__title")
    raw_id_fields = ("user", "test_series", "free_practice")
    readonly_fields = ("created_at", "updated_at")
    inlines = [ViolationEventInline]


@admin.register(StudentActivity)
class StudentActivityAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "question", "test_series", "free_practice", "selected_answer", "time")
    list_filter = ("test_series",)
    search_fields = ("user__email", "question__question")
    raw_id_fields = ("user", "question", "test_series", "free_practice")
    readonly_fields = ("time",)
