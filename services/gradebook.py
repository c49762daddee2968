"""
services/gradebook.py - Gradebook Projector
Derives points possible, percentage and letter grade for one
(student, assignment) pair. Grading and excusal are the only writers.
"""

import csv
import io
import logging
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func

from errors import AccessDenied, ValidationError
from extensions import db
from models import Assignment, Class, Enrollment, GradebookEntry, User
from services.access import get_or_404, require_teacher
from services.store import insert_if_absent

logger = logging.getLogger(__name__)

# Lower bound (inclusive) of each letter, checked top-down
LETTER_GRADE_THRESHOLDS = [
    (90, 'A'),
    (80, 'B'),
    (70, 'C'),
    (60, 'D'),
]
FAILING_LETTER = 'F'

EXPORT_COLUMNS = [
    'student_id',
    'student_first_name',
    'student_last_name',
    'student_email',
    'assignment_id',
    'assignment_title',
    'points_earned',
    'points_possible',
    'percentage',
    'letter_grade',
    'is_excused',
]


@dataclass
class AssignmentAverage:
    assignment_id: int
    average: float

    def to_dict(self):
        return asdict(self)


@dataclass
class ExportRow:
    student_id: int
    student_first_name: str
    student_last_name: str
    student_email: str
    assignment_id: int
    assignment_title: str
    points_earned: Optional[float]
    points_possible: int
    percentage: Optional[int]
    letter_grade: Optional[str]
    is_excused: bool

    def to_dict(self):
        return asdict(self)


# === Grade arithmetic ===

def validate_points_input(points):
    """
    Validates and normalizes a points-earned value.

    Raises:
        ValidationError: If the input is not a finite, non-negative number.
    """
    if isinstance(points, bool):
        raise ValidationError("Points earned must be a number.")
    try:
        points = float(points)
    except (TypeError, ValueError):
        raise ValidationError("Points earned must be a number.")

    if not math.isfinite(points):
        raise ValidationError("Points earned must be a finite number.")

    if points < 0:
        raise ValidationError("Points earned cannot be less than zero.")

    return points


def points_possible_for(assignment):
    return assignment.max_points or current_app.config.get('DEFAULT_POINTS_POSSIBLE', 100)


def percentage_for(points_earned, points_possible):
    """
    Integer percentage, rounding halves up: 89.5 -> 90, 88.5 -> 89.
    """
    ratio = Decimal(str(points_earned)) * 100 / Decimal(str(points_possible))
    return int(ratio.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def letter_grade_for(percentage):
    for threshold, letter in LETTER_GRADE_THRESHOLDS:
        if percentage >= threshold:
            return letter
    return FAILING_LETTER


# === Projection (no commit; callers own the transaction) ===

def _entry_for(student_id, assignment):
    entry, created = insert_if_absent(
        GradebookEntry,
        {'student_id': student_id, 'assignment_id': assignment.id},
        {
            'class_id': assignment.class_id,
            'points_possible': points_possible_for(assignment),
            'is_excused': False,
        }
    )
    if created:
        logger.debug("Created gradebook entry for student %s on assignment %s", student_id, assignment.id)
    return entry


def project_grade(student_id, assignment, points_earned):
    """Write the graded projection for (student, assignment) into the session"""
    points_possible = points_possible_for(assignment)
    if points_earned > points_possible:
        raise ValidationError(f"Points earned cannot exceed {points_possible} points possible.")

    entry = _entry_for(student_id, assignment)
    percentage = percentage_for(points_earned, points_possible)

    entry.class_id = assignment.class_id
    entry.points_earned = points_earned
    entry.points_possible = points_possible
    entry.percentage = percentage
    entry.letter_grade = letter_grade_for(percentage)
    entry.is_excused = False
    return entry


def project_excusal(student_id, assignment):
    """Write the excused projection, clearing any earlier grade fields"""
    entry = _entry_for(student_id, assignment)
    entry.class_id = assignment.class_id
    entry.points_earned = None
    entry.points_possible = points_possible_for(assignment)
    entry.percentage = None
    entry.letter_grade = None
    entry.is_excused = True
    return entry


# === Writes ===

def upsert_grade(student_id, assignment_id, points_earned, teacher_id):
    """
    Record a grade for a student on an assignment.

    Returns:
        GradebookEntry: the single entry for the pair
    """
    points_earned = validate_points_input(points_earned)
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')
    get_or_404(User, student_id, 'Student')
    require_teacher(teacher_id, assignment)

    try:
        entry = project_grade(student_id, assignment, points_earned)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Gradebook: student %s assignment %s -> %s%% (%s)",
        student_id, assignment_id, entry.percentage, entry.letter_grade
    )
    return entry


def excuse(student_id, assignment_id, teacher_id):
    """Excuse a student from an assignment; the entry stays, without a grade"""
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')
    get_or_404(User, student_id, 'Student')
    require_teacher(teacher_id, assignment)

    try:
        entry = project_excusal(student_id, assignment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Gradebook: student %s excused from assignment %s", student_id, assignment_id)
    return entry


# === Reads ===

def by_class(class_id, teacher_id):
    cls = get_or_404(Class, class_id, 'Class')
    require_teacher(teacher_id, cls)

    return GradebookEntry.query.filter_by(class_id=class_id).order_by(
        GradebookEntry.assignment_id, GradebookEntry.student_id
    ).all()


def by_student(student_id, requester_id, class_id=None):
    """
    Grades for one student. The student sees all of their own entries;
    a teacher sees only the entries in classes they teach.
    """
    query = GradebookEntry.query.filter_by(student_id=student_id)

    if requester_id != student_id:
        if class_id is not None:
            require_teacher(requester_id, get_or_404(Class, class_id, 'Class'))
        else:
            taught = [
                row.id for row in db.session.query(Class.id).join(
                    Enrollment, Enrollment.class_id == Class.id
                ).filter(
                    Class.teacher_id == requester_id,
                    Enrollment.user_id == student_id
                ).all()
            ]
            if not taught:
                raise AccessDenied("Access denied")
            query = query.filter(GradebookEntry.class_id.in_(taught))

    if class_id is not None:
        query = query.filter_by(class_id=class_id)

    return query.order_by(GradebookEntry.class_id, GradebookEntry.assignment_id).all()


def class_averages(class_id, teacher_id):
    """
    Average percentage per assignment. Excused and ungraded entries are
    left out of both the sum and the count.
    """
    cls = get_or_404(Class, class_id, 'Class')
    require_teacher(teacher_id, cls)

    rows = db.session.query(
        GradebookEntry.assignment_id,
        func.avg(GradebookEntry.percentage)
    ).filter(
        GradebookEntry.class_id == class_id,
        GradebookEntry.is_excused.is_(False),
        GradebookEntry.percentage.isnot(None)
    ).group_by(GradebookEntry.assignment_id).order_by(GradebookEntry.assignment_id).all()

    return [AssignmentAverage(assignment_id, round(float(avg), 2)) for assignment_id, avg in rows]


def export(class_id, teacher_id):
    cls = get_or_404(Class, class_id, 'Class')
    require_teacher(teacher_id, cls)

    rows = db.session.query(GradebookEntry, User, Assignment).join(
        User, User.id == GradebookEntry.student_id
    ).join(
        Assignment, Assignment.id == GradebookEntry.assignment_id
    ).filter(
        GradebookEntry.class_id == class_id
    ).order_by(User.last_name, User.first_name, Assignment.id).all()

    return [
        ExportRow(
            student_id=student.id,
            student_first_name=student.first_name,
            student_last_name=student.last_name,
            student_email=student.email,
            assignment_id=assignment.id,
            assignment_title=assignment.title,
            points_earned=entry.points_earned,
            points_possible=entry.points_possible,
            percentage=entry.percentage,
            letter_grade=entry.letter_grade,
            is_excused=entry.is_excused,
        )
        for entry, student, assignment in rows
    ]


def export_csv(class_id, teacher_id):
    """Same rows as export(), rendered as CSV text with a header row"""
    stream = io.StringIO()
    writer = csv.DictWriter(stream, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for row in export(class_id, teacher_id):
        writer.writerow(row.to_dict())
    return stream.getvalue()
