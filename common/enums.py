from django.db import models


class Level(models.TextChoices):
    EASY = "easy", "Easy"
    MEDIUM = "medium", "Medium"
    HARD = "hard", "Hard"


class ViolationType(models.TextChoices):
    TAB_SWITCH      = "tab_switch",      "Tab/Window switch"
    FULLSCREEN_EXIT = "fullscreen_exit", "Fullscreen exit"
    DEVTOOLS_OPEN   = "devtools",        "DevTools opened"
    COPY            = "copy",            "Copy"
    PASTE           = "paste",           "Paste"
    MULTI_WINDOW    = "multi_window",    "Multiple windows"
    OTHER           = "other",           "Other"


class NotificationType(models.TextChoices):
    CONTEST_ANNOUNCED = "CONTEST_ANNOUNCED", "Contest announced"
    CONTEST_STARTED   = "CONTEST_STARTED",   "Contest started"
    CONTEST_ENDED     = "CONTEST_ENDED",     "Contest ended"
    RESULT_AVAILABLE  = "RESULT_AVAILABLE",  "Result available"
    HIGH_SCORE        = "HIGH_SCORE",        "High score"
    SYSTEM_UPDATE     = "SYSTEM_UPDATE",     "System update"
    NEW_QUESTION      = "NEW_QUESTION",      "New question"
    GENERAL           = "GENERAL",           "General"
