# core/urls.py
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from rest_framework.routers import DefaultRouter

from exams.views import (
    QuestionViewSet, TestSeriesViewSet, FreePracticeViewSet,
    DashboardStatsView, RecentTestsView, ResultListView, MyResultsView,
)

from accounts.views import (
    SignupView, LoginView, LogoutView, MeView, VerifyEmailView, ResendVerificationView,
    ForgotPasswordView, ResetPasswordView, GoogleAuthView,
    CreateModeratorView, ModeratorListView, ModeratorDeleteView, UserListView, AdminStatsView,
)

from notifications.views import (
    NotificationListView, UnreadCountView, MarkReadView, MarkAllReadView,
    NotificationDeleteView, TestNotificationView, SystemUpdateView,
)

router = DefaultRouter()
router.register(r"questions", QuestionViewSet, basename="question")
router.register(r"testseries", TestSeriesViewSet, basename="testseries")
router.register(r"free-practice", FreePracticeViewSet, basename="free-practice")


urlpatterns = [
    path('admin/', admin.site.urls),

    path("api/auth/signup/",              SignupView.as_view(),             name="auth-signup"),
    path("api/auth/login/",               LoginView.as_view(),              name="auth-login"),
    path("api/auth/logout/",              LogoutView.as_view(),             name="auth-logout"),
    path("api/auth/me/",                  MeView.as_view(),                 name="auth-me"),
    path("api/auth/verify-email/",        VerifyEmailView.as_view(),        name="auth-verify-email"),
    path("api/auth/resend-verification/", ResendVerificationView.as_view(), name="auth-resend-verification"),
    path("api/auth/forgot-password/",     ForgotPasswordView.as_view(),     name="auth-forgot-password"),
    path("api/auth/reset-password/",      ResetPasswordView.as_view(),      name="auth-reset-password"),
    path("api/auth/google-auth/",         GoogleAuthView.as_view(),         name="auth-google"),

    path("api/auth/create-moderator/",     CreateModeratorView.as_view(), name="auth-create-moderator"),
    path("api/auth/moderators/",           ModeratorListView.as_view(),   name="auth-moderators"),
    path("api/auth/moderators/<int:pk>/",  ModeratorDeleteView.as_view(), name="auth-moderator-delete"),
    path("api/auth/users/",                UserListView.as_view(),        name="auth-users"),
    path("api/auth/admin/stats/",          AdminStatsView.as_view(),      name="auth-admin-stats"),

    path("api/dashboard/stats/",        DashboardStatsView.as_view(), name="dashboard-stats"),
    path("api/dashboard/recent-tests/", RecentTestsView.as_view(),    name="dashboard-recent-tests"),

    path("api/results/",    ResultListView.as_view(), name="results"),
    path("api/results/my/", MyResultsView.as_view(),  name="results-my"),

    path("api/notifications/",                 NotificationListView.as_view(),   name="notifications"),
    path("api/notifications/unread-count/",    UnreadCountView.as_view(),        name="notifications-unread-count"),
    path("api/notifications/read-all/",        MarkAllReadView.as_view(),        name="notifications-read-all"),
    path("api/notifications/test/",            TestNotificationView.as_view(),   name="notifications-test"),
    path("api/notifications/system-update/",   SystemUpdateView.as_view(),       name="notifications-system-update"),
    path("api/notifications/<int:pk>/read/",   MarkReadView.as_view(),           name="notifications-read"),
    path("api/notifications/<int:pk>/",        NotificationDeleteView.as_view(), name="notifications-delete"),

    path("api/", include(router.urls)),
]

if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
