# exams/serializers.py
from rest_framework import serializers

from common.enums import Level, ViolationType
from .models import Bookmark, FreePractice, Participation, Question, StudentActivity, TestSeries
from .services.scoring import as_selected


class AuthorSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    full_name = serializers.CharField()
    email = serializers.EmailField()


# ---------- Question Bank ----------
class QuestionSerializer(serializers.ModelSerializer):
    """Full question, including the answer key (staff views)."""
    author = AuthorSerializer(source="created_by", read_only=True)

    class Meta:
        model = Question
        fields = [
            "id", "category", "subcategory", "level", "question", "options",
            "correct_ans", "explanation", "visibility", "author", "created_at", "updated_at",
        ]
        read_only_fields = ["id", "author", "created_at", "updated_at"]

    def validate_options(self, value):
        if not isinstance(value, dict) or len(value) < 2:
            raise serializers.ValidationError("Provide at least two options as an object of key → text.")
        cleaned = {str(k).strip(): str(v).strip() for k, v in value.items()}
        if any(not k or not v for k, v in cleaned.items()):
            raise serializers.ValidationError("Option keys and texts cannot be blank.")
        return cleaned

    def validate(self, attrs):
        options = attrs.get("options", getattr(self.instance, "options", None)) or {}
        correct = attrs.get("correct_ans", getattr(self.instance, "correct_ans", None))
        if correct not in options:
            raise serializers.ValidationError({"correct_ans": "correct_ans must be one of the option keys."})
        return attrs


class QuestionPublicSerializer(serializers.ModelSerializer):
    """Question as shown to a candidate: no answer key, no explanation."""

    class Meta:
        model = Question
        fields = ["id", "category", "subcategory", "level", "question", "options"]


class QuestionBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = ["id", "question", "category", "subcategory", "level"]


class PracticeRequestSerializer(serializers.Serializer):
    category = serializers.CharField()
    subcategory = serializers.CharField()
    level = serializers.ChoiceField(choices=Level.choices)
    numQuestions = serializers.IntegerField(min_value=1, max_value=200)
    title = serializers.CharField(required=False, allow_blank=True)


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    sheet = serializers.CharField(required=False, allow_blank=True)


class BookmarkSerializer(serializers.ModelSerializer):
    question = QuestionSerializer(read_only=True)

    class Meta:
        model = Bookmark
        fields = ["id", "question", "created_at"]


# ---------- Contests ----------
class TestSeriesSerializer(serializers.ModelSerializer):
    question_ids = serializers.PrimaryKeyRelatedField(
        source="questions", queryset=Question.objects.all(), many=True, write_only=True, required=False,
    )
    question_count = serializers.SerializerMethodField()
    participant_count = serializers.SerializerMethodField()
    status = serializers.CharField(read_only=True)
    author = AuthorSerializer(source="created_by", read_only=True)

    class Meta:
        model = TestSeries
        fields = [
            "id", "title", "description", "start_time", "end_time",
            "requires_code", "contest_code", "question_ids", "question_count",
            "participant_count", "status", "author", "created_at",
        ]
        read_only_fields = ["id", "status", "author", "created_at"]

    def get_question_count(self, obj):
        return obj.questions.count()

    def get_participant_count(self, obj):
        return obj.participations.count()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if not getattr(user, "is_staff_member", False):
            data.pop("contest_code", None)
        return data

    def validate(self, attrs):
        start = attrs.get("start_time", getattr(self.instance, "start_time", None))
        end = attrs.get("end_time", getattr(self.instance, "end_time", None))
        if start and end and start >= end:
            raise serializers.ValidationError({"end_time": "end_time must be after start_time."})
        if self.instance is None and not attrs.get("questions"):
            raise serializers.ValidationError({"question_ids": "Select at least one question."})
        if "questions" in attrs and not attrs["questions"]:
            raise serializers.ValidationError({"question_ids": "Select at least one question."})
        code = attrs.get("contest_code")
        if code is not None:
            attrs["contest_code"] = code.strip().upper() or None
        return attrs


class ExtendContestSerializer(serializers.Serializer):
    end_time = serializers.DateTimeField(required=False)
    minutes = serializers.IntegerField(required=False, min_value=1)

    def validate(self, attrs):
        if not attrs.get("end_time") and not attrs.get("minutes"):
            raise serializers.ValidationError("Provide end_time or minutes.")
        return attrs


class BulkDeleteSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class JoinSerializer(serializers.Serializer):
    code = serializers.CharField(required=False, allow_blank=True)


class JoinByCodeSerializer(serializers.Serializer):
    code = serializers.CharField()


class AnswersSerializer(serializers.Serializer):
    """
    Body: { "answers": [ { "questionId": "...", "selectedOption": "A" }, ... ] }
    snake_case keys are accepted too.
    """
    answers = serializers.ListField(child=serializers.DictField(), allow_empty=False)

    def validate_answers(self, value):
        out = []
        for a in value:
            qid = a.get("question_id", a.get("questionId"))
            if qid in (None, ""):
                raise serializers.ValidationError("Each answer needs a questionId.")
            selected = a.get("selected_option", a.get("selectedOption"))
            if isinstance(selected, (dict, list)):
                raise serializers.ValidationError("selectedOption must be a single value.")
            out.append({
                "question_id": str(qid),
                "selected_option": as_selected(selected),
            })
        return out


class SaveAnswerSerializer(serializers.Serializer):
    questionId = serializers.UUIDField()
    selectedOption = serializers.CharField(allow_blank=True, allow_null=True, required=False)


class ViolationSerializer(serializers.Serializer):
    type = serializers.CharField(required=False, allow_blank=True, default=ViolationType.OTHER)

    def validate_type(self, value):
        value = (value or "").strip().lower()
        return value if value in ViolationType.values else ViolationType.OTHER


class ParticipationSerializer(serializers.ModelSerializer):
    test_series_title = serializers.CharField(source="test_series.title", read_only=True, default=None)
    free_practice_title = serializers.CharField(source="free_practice.title", read_only=True, default=None)

    class Meta:
        model = Participation
        fields = [
            "id", "test_series", "test_series_title", "free_practice", "free_practice_title",
            "start_time", "end_time", "submitted_at", "violations",
            "practice_test", "contest", "auto_submitted",
        ]


# ---------- Free practice ----------
class FreePracticeSerializer(serializers.ModelSerializer):
    questions = QuestionPublicSerializer(many=True, read_only=True)
    is_submitted = serializers.BooleanField(read_only=True)

    class Meta:
        model = FreePractice
        fields = [
            "id", "title", "category", "subcategory", "level",
            "start_time", "end_time", "is_submitted", "questions",
        ]


class RecentTestSerializer(serializers.ModelSerializer):
    question_count = serializers.SerializerMethodField()

    class Meta:
        model = FreePractice
        fields = ["id", "title", "category", "subcategory", "level", "start_time", "end_time", "question_count"]

    def get_question_count(self, obj):
        return len(obj.questions.all())


# ---------- Activity log ----------
class RefSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    title = serializers.CharField()


class StudentActivitySerializer(serializers.ModelSerializer):
    user = AuthorSerializer(read_only=True)
    question = QuestionBriefSerializer(read_only=True)
    test_series = RefSerializer(read_only=True)
    free_practice = RefSerializer(read_only=True)

    class Meta:
        model = StudentActivity
        fields = ["id", "user", "question", "test_series", "free_practice", "time", "selected_answer"]


