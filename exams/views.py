# exams/views.py
import logging

from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdminOrModerator
from notifications.services import get_dispatcher
from .models import Bookmark, FreePractice, Participation, Question, StudentActivity, TestSeries
from .serializers import (
    AnswersSerializer,
    BookmarkSerializer,
    BulkDeleteSerializer,
    ExtendContestSerializer,
    FileUploadSerializer,
    FreePracticeSerializer,
    JoinByCodeSerializer,
    JoinSerializer,
    ParticipationSerializer,
    PracticeRequestSerializer,
    QuestionPublicSerializer,
    QuestionSerializer,
    RecentTestSerializer,
    SaveAnswerSerializer,
    StudentActivitySerializer,
    TestSeriesSerializer,
    ViolationSerializer,
)
from .services import contests, exports, importer, practice, submission
from .services.leaderboard import build_leaderboard, contest_stats, question_analysis

logger = logging.getLogger(__name__)


def _is_staff(user) -> bool:
    return bool(getattr(user, "is_staff_member", False))


# ---------- Question Bank ----------
class QuestionViewSet(viewsets.ModelViewSet):
    """
    /api/questions/            CRUD (admin/moderator)
    /api/questions/practice    POST random practice set (any user)
    /api/questions/categories  GET category → subcategories of visible questions
    /api/questions/bulk        POST list of question payloads
    /api/questions/import      POST multipart file (.xlsx/.csv/.json)
    /api/questions/bookmarks   GET my bookmarks
    /api/questions/<id>/bookmark  POST / DELETE
    """
    queryset = Question.objects.select_related("created_by")
    serializer_class = QuestionSerializer
    filterset_fields = ["category", "subcategory", "level", "visibility"]
    user_actions = {"practice", "categories", "bookmarks", "bookmark"}

    def get_permissions(self):
        if self.action in self.user_actions:
            return [permissions.IsAuthenticated()]
        return [IsAdminOrModerator()]

    def perform_create(self, serializer):
        q = serializer.save(created_by=self.request.user)
        get_dispatcher().notify_new_question(q)

    @action(detail=False, methods=["post"], url_path="practice")
    def practice(self, request):
        ser = PracticeRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        d = ser.validated_data
        questions = practice.pick_practice_questions(d["category"], d["subcategory"], d["level"], d["numQuestions"])
        return Response({
            "test": {
                "category": d["category"],
                "subcategory": d["subcategory"],
                "level": d["level"],
                "questions": QuestionPublicSerializer(questions, many=True).data,
                "created_at": timezone.now(),
            }
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="categories")
    def categories(self, request):
        pairs = (
            Question.objects.filter(visibility=True)
            .order_by("category", "subcategory")
            .values_list("category", "subcategory")
            .distinct()
        )
        grouped = {}
        for category, subcategory in pairs:
            grouped.setdefault(category, []).append(subcategory)
        return Response([{"category": c, "subcategories": subs} for c, subs in grouped.items()])

    @action(detail=False, methods=["post"], url_path="bulk")
    def bulk(self, request):
        rows = request.data.get("questions") if isinstance(request.data, dict) else request.data
        if not isinstance(rows, list):
            raise ValidationError("Expected a list of questions.")
        created = self._import(rows)
        return Response({"created": len(created)}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="import",
            parser_classes=[MultiPartParser, FormParser])
    def import_file(self, request):
        upload = FileUploadSerializer(data=request.data)
        upload.is_valid(raise_exception=True)
        f = upload.validated_data["file"]
        try:
            rows = importer.read_rows(f, f.name, sheet=upload.validated_data.get("sheet") or 0)
        except ValueError as e:
            raise ValidationError(f"Could not read file: {e}")
        created = self._import(rows)
        return Response({"created": len(created)}, status=status.HTTP_201_CREATED)

    def _import(self, rows):
        try:
            created = importer.import_questions(rows, created_by=self.request.user)
        except importer.ImportRowError as e:
            raise ValidationError({"detail": str(e), "row": e.row})
        logger.info("User %s imported %d question(s)", self.request.user.pk, len(created))
        return created

    @action(detail=False, methods=["get"], url_path="bookmarks")
    def bookmarks(self, request):
        qs = Bookmark.objects.filter(user=request.user).select_related("question", "question__created_by")
        return Response(BookmarkSerializer(qs, many=True).data)

    @action(detail=True, methods=["post", "delete"], url_path="bookmark")
    def bookmark(self, request, pk=None):
        question = get_object_or_404(Question, pk=pk)
        if request.method == "DELETE":
            deleted, _ = Bookmark.objects.filter(user=request.user, question=question).delete()
            if not deleted:
                raise NotFound("Bookmark not found.")
            return Response(status=status.HTTP_204_NO_CONTENT)

        if Bookmark.objects.filter(user=request.user, question=question).exists():
            raise ValidationError("Question already bookmarked.")
        b = Bookmark.objects.create(user=request.user, question=question)
        return Response(BookmarkSerializer(b).data, status=status.HTTP_201_CREATED)


# ---------- Contests ----------
class TestSeriesViewSet(viewsets.ModelViewSet):
    """
    /api/testseries/                      list / create (admin/moderator)
    /api/testseries/contests/upcoming     GET
    /api/testseries/<id>                  GET / PUT / PATCH / DELETE
    /api/testseries/<id>/questions        GET (once started, staff any time)
    /api/testseries/<id>/join             POST { code? }
    /api/testseries/join-by-code          POST { code }
    /api/testseries/<id>/answer           POST { questionId, selectedOption }
    /api/testseries/<id>/submit           POST { answers: [...] }
    /api/testseries/<id>/violation        POST { type }
    /api/testseries/<id>/leaderboard      GET
    """
    queryset = TestSeries.objects.select_related("created_by").prefetch_related("questions")
    serializer_class = TestSeriesSerializer
    staff_actions = {
        "create", "update", "partial_update", "destroy", "bulk_delete", "extend",
        "stats_all", "participants", "export", "download_results", "detailed_analysis",
        "recalculate_results",
    }

    def get_permissions(self):
        if self.action in self.staff_actions:
            return [IsAdminOrModerator()]
        return [permissions.IsAuthenticated()]

    def perform_create(self, serializer):
        contest = contests.after_create(serializer.save(created_by=self.request.user))
        get_dispatcher().notify_contest_announced(contest)

    def perform_update(self, serializer):
        contests.ensure_editable(serializer.instance)
        before = set(serializer.instance.questions.values_list("pk", flat=True))
        contest = serializer.save()
        if contest.requires_code and not contest.contest_code:
            contest.ensure_code()
            contest.save(update_fields=["contest_code", "updated_at"])
        contests.sync_question_visibility(contest, before)

    def destroy(self, request, *args, **kwargs):
        contests.delete_contests([self.get_object()])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["post"], url_path="bulk-delete")
    def bulk_delete(self, request):
        ser = BulkDeleteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        deleted = contests.delete_contests(TestSeries.objects.filter(pk__in=ser.validated_data["ids"]))
        return Response({"deleted": deleted})

    @action(detail=False, methods=["get"], url_path="contests/upcoming")
    def upcoming(self, request):
        qs = self.get_queryset().filter(start_time__gt=timezone.now()).order_by("start_time")
        return Response(self.get_serializer(qs, many=True).data)

    @action(detail=True, methods=["put", "patch"], url_path="extend")
    def extend(self, request, pk=None):
        ser = ExtendContestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        contest = contests.extend_contest(self.get_object(), **ser.validated_data)
        return Response(self.get_serializer(contest).data)

    @action(detail=True, methods=["get"], url_path="questions")
    def questions(self, request, pk=None):
        contest = self.get_object()
        staff = _is_staff(request.user)
        if not staff and not contest.has_started:
            raise PermissionDenied("Contest has not started yet.")
        qs = contest.questions.all().order_by("created_at")
        data = QuestionSerializer(qs, many=True).data if staff else QuestionPublicSerializer(qs, many=True).data
        return Response({
            "contest": self.get_serializer(contest).data,
            "questions": data,
        })

    # ----- candidate flow -----
    def _join_response(self, participation, created):
        return Response(
            ParticipationSerializer(participation).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"], url_path="join")
    def join(self, request, pk=None):
        ser = JoinSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        p, created = submission.join_contest(request.user, self.get_object(), ser.validated_data.get("code"))
        return self._join_response(p, created)

    @action(detail=False, methods=["post"], url_path="join-by-code")
    def join_by_code(self, request):
        ser = JoinByCodeSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        code = ser.validated_data["code"].strip()
        contest = TestSeries.objects.filter(contest_code__iexact=code).first()
        if not contest:
            raise NotFound("No contest found for this code.")
        p, created = submission.join_contest(request.user, contest, code)
        return self._join_response(p, created)

    @action(detail=True, methods=["post"], url_path="answer")
    def answer(self, request, pk=None):
        ser = SaveAnswerSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        row = submission.save_answer(
            request.user, self.get_object(),
            ser.validated_data["questionId"], ser.validated_data.get("selectedOption"),
        )
        return Response({"saved": True, "time": row.time}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request, pk=None):
        ser = AnswersSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = submission.submit_contest(
            request.user, self.get_object(), ser.validated_data["answers"], dispatcher=get_dispatcher(),
        )
        return Response(result)

    @action(detail=True, methods=["post"], url_path="violation")
    def violation(self, request, pk=None):
        ser = ViolationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(submission.violation_for_user(request.user, self.get_object(), ser.validated_data["type"]))

    @action(detail=False, methods=["get"], url_path="participations")
    def participations(self, request):
        qs = (
            Participation.objects.filter(user=request.user, test_series__isnull=False)
            .select_related("test_series")
        )
        return Response(ParticipationSerializer(qs, many=True).data)

    @action(detail=True, methods=["get"], url_path="result")
    def result(self, request, pk=None):
        contest = self.get_object()
        participation = (
            Participation.objects.filter(user=request.user, test_series=contest).order_by("-start_time").first()
        )
        if participation is None:
            raise NotFound("You have not participated in this contest.")

        entry = next((e for e in build_leaderboard(contest) if e["user_id"] == request.user.pk), None)
        closed = not participation.is_live or contest.has_ended
        answers = exports.participant_answers(contest, request.user.pk)
        if not closed:
            for a in answers:
                a.pop("correct_answer")
                a.pop("is_correct")
                a.pop("explanation")
        return Response({
            "contest": self.get_serializer(contest).data,
            "participation": ParticipationSerializer(participation).data,
            "result": entry,
            "answers": answers,
        })

    # ----- analytics -----
    def _board_for(self, request, contest):
        board = build_leaderboard(contest)
        if not _is_staff(request.user):
            for e in board:
                if e["user_id"] != request.user.pk:
                    e.pop("email")
        return board

    @action(detail=True, methods=["get"], url_path="leaderboard")
    def leaderboard(self, request, pk=None):
        contest = self.get_object()
        return Response({
            "contest": self.get_serializer(contest).data,
            "leaderboard": self._board_for(request, contest),
        })

    @action(detail=True, methods=["post"], url_path="recalculate-results")
    def recalculate_results(self, request, pk=None):
        contest = self.get_object()
        board = build_leaderboard(contest)
        logger.info("Recalculated results for contest %s (%d entries)", contest.pk, len(board))
        return Response({"leaderboard": board, "stats": contest_stats(contest, board)})

    @action(detail=True, methods=["get"], url_path="stats")
    def stats(self, request, pk=None):
        return Response(contest_stats(self.get_object()))

    @action(detail=False, methods=["get"], url_path="stats/all")
    def stats_all(self, request):
        return Response([contest_stats(c) for c in TestSeries.objects.order_by("-start_time")])

    @action(detail=True, methods=["get"], url_path="participants")
    def participants(self, request, pk=None):
        contest = self.get_object()
        qs = Participation.objects.filter(test_series=contest).select_related("user").order_by("start_time")
        return Response([
            {
                "user_id": p.user_id,
                "full_name": p.user.full_name,
                "email": p.user.email,
                **ParticipationSerializer(p).data,
            }
            for p in qs
        ])

    @action(detail=True, methods=["get"], url_path=r"participant/(?P<user_id>[0-9]+)/answers")
    def participant_answers(self, request, pk=None, user_id=None):
        contest = self.get_object()
        if not _is_staff(request.user) and str(request.user.pk) != str(user_id):
            raise PermissionDenied("Forbidden: Insufficient role")
        if not Participation.objects.filter(test_series=contest, user_id=user_id).exists():
            raise NotFound("Participant not found.")
        return Response({
            "user_id": int(user_id),
            "answers": exports.participant_answers(contest, user_id),
        })

    @action(detail=True, methods=["get"], url_path="export")
    def export(self, request, pk=None):
        contest = self.get_object()
        resp = HttpResponse(exports.leaderboard_csv(contest), content_type="text/csv")
        resp["Content-Disposition"] = f'attachment; filename="{exports.export_filename(contest, "csv")}"'
        return resp

    @action(detail=True, methods=["post", "get"], url_path="download-results")
    def download_results(self, request, pk=None):
        contest = self.get_object()
        resp = HttpResponse(exports.results_workbook(contest), content_type=exports.XLSX_CONTENT_TYPE)
        resp["Content-Disposition"] = f'attachment; filename="{exports.export_filename(contest, "xlsx")}"'
        return resp

    @action(detail=True, methods=["get"], url_path="detailed-analysis")
    def detailed_analysis(self, request, pk=None):
        contest = self.get_object()
        return Response({
            "contest": self.get_serializer(contest).data,
            "stats": contest_stats(contest),
            "questions": question_analysis(contest),
        })


# ---------- Free practice ----------
class FreePracticeViewSet(viewsets.GenericViewSet):
    """
    /api/free-practice/               GET mine / POST create
    /api/free-practice/<id>/submit    POST { answers: [...] }
    /api/free-practice/<id>/results   GET
    /api/free-practice/stats          GET
    """
    serializer_class = FreePracticeSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return FreePractice.objects.filter(created_by=self.request.user).prefetch_related("questions")

    def list(self, request):
        return Response({"free_practices": self.get_serializer(self.get_queryset(), many=True).data})

    def create(self, request):
        ser = PracticeRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        d = ser.validated_data
        fp = practice.create_free_practice(
            request.user,
            category=d["category"], subcategory=d["subcategory"], level=d["level"],
            num_questions=d["numQuestions"], title=d.get("title"),
        )
        return Response({"free_practice": self.get_serializer(fp).data}, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(self.get_serializer(self.get_object()).data)

    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request, pk=None):
        fp = get_object_or_404(FreePractice, pk=pk)
        ser = AnswersSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(practice.submit_free_practice(request.user, fp, ser.validated_data["answers"]))

    @action(detail=True, methods=["get"], url_path="results")
    def results(self, request, pk=None):
        fp = self.get_object()
        if not fp.is_submitted:
            raise ValidationError("Practice has not been submitted yet.")
        return Response(practice.practice_results(fp))

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        data = practice.practice_stats(request.user)
        if data["average_percentage"] is None:
            data["average_display"] = "N/A"
        else:
            data["average_display"] = f"{data['average_percentage']}%"
        return Response(data)


# ---------- Dashboard ----------
class DashboardStatsView(APIView):
    """
    GET /api/dashboard/stats/
    """

    def get(self, request):
        return Response(practice.dashboard_stats(request.user))


class RecentTestsView(APIView):
    """
    GET /api/dashboard/recent-tests/
    """

    def get(self, request):
        return Response(RecentTestSerializer(practice.recent_tests(request.user), many=True).data)


# ---------- Activity log ----------
class ResultListView(APIView):
    """
    GET /api/results/   (admin/moderator)
    Optional ?test_series=<id>&user=<id>
    """
    permission_classes = [IsAdminOrModerator]

    def get(self, request):
        qs = StudentActivity.objects.select_related("user", "question", "test_series", "free_practice")
        ts = request.query_params.get("test_series")
        if ts:
            qs = qs.filter(test_series_id=ts)
        user_id = request.query_params.get("user")
        if user_id:
            qs = qs.filter(user_id=user_id)
        return Response({"results": StudentActivitySerializer(qs, many=True).data})


class MyResultsView(APIView):
    """
    GET /api/results/my/
    """

    def get(self, request):
        qs = (
            StudentActivity.objects.filter(user=request.user)
            .filter(Q(test_series__isnull=False) | Q(free_practice__isnull=False))
            .select_related("user", "question", "test_series", "free_practice")
        )
        return Response({"results": StudentActivitySerializer(qs, many=True).data})
