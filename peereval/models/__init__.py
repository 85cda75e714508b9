from .account import Account
from .student import StudentRecord
from .professor import ProfessorRecord
from .course import Course, Enrollment
from .group import Group, GroupMembership
from .evaluation import EvaluationAssignment, Evaluation, EvaluationTarget

__all__ = [
    "Account",
    "StudentRecord",
    "ProfessorRecord",
    "Course",
    "Enrollment",
    "Group",
    "GroupMembership",
    "EvaluationAssignment",
    "Evaluation",
    "EvaluationTarget"
]
