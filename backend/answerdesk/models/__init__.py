from answerdesk.models.user import User
from answerdesk.models.student import Student
from answerdesk.models.exam import Exam
from answerdesk.models.answer_sheet import AnswerSheet, AnswerSheetFlag
from answerdesk.models.notification import Notification
from answerdesk.models.missing_paper import MissingPaperTracking

__all__ = [
    "User", "Student", "Exam", "AnswerSheet", "AnswerSheetFlag",
    "Notification", "MissingPaperTracking",
]
