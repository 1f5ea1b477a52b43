from opvera.models.user import User, UserRole
from opvera.models.student_profile import StudentProfile
from opvera.models.project import Project
from opvera.models.assignment import Assignment
from opvera.models.quiz import Quiz, QuizAttempt, QuizDifficulty
from opvera.models.leaderboard import LeaderboardEntry
from opvera.models.channel import Channel, ChannelType, Message
from opvera.models.audit_log import AuditLog

__all__ = [
    "User", "UserRole", "StudentProfile", "Project", "Assignment",
    "Quiz", "QuizAttempt", "QuizDifficulty", "LeaderboardEntry",
    "Channel", "ChannelType", "Message", "AuditLog",
]
