"""
models.py - Database Models for the Submission & Grading Engine
Users, classes, assignments, submissions, quiz questions/answers,
the gradebook projection and notifications.
"""

import enum
import json
import logging
from datetime import datetime, timezone

from flask_login import UserMixin

from errors import InvalidState
from extensions import db

logger = logging.getLogger(__name__)


def utcnow():
    """Naive UTC timestamp, matching how every DateTime column is stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_column(enum_cls, **kwargs):
    # Store the enum's value ('submitted'), not its member name ('SUBMITTED')
    return db.Column(
        db.Enum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            validate_strings=True,
            length=20,
        ),
        **kwargs
    )


def _iso(value):
    return value.isoformat() if value else None


class SubmissionStatus(str, enum.Enum):
    PENDING = 'pending'
    SUBMITTED = 'submitted'
    GRADED = 'graded'
    RETURNED = 'returned'


# action -> (statuses the action may start from, status it ends in)
SUBMISSION_TRANSITIONS = {
    'submit': (
        {SubmissionStatus.PENDING, SubmissionStatus.SUBMITTED, SubmissionStatus.RETURNED},
        SubmissionStatus.SUBMITTED,
    ),
    'grade': (
        {SubmissionStatus.SUBMITTED, SubmissionStatus.GRADED, SubmissionStatus.RETURNED},
        SubmissionStatus.GRADED,
    ),
    'return': (
        {SubmissionStatus.SUBMITTED, SubmissionStatus.GRADED, SubmissionStatus.RETURNED},
        SubmissionStatus.RETURNED,
    ),
}


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = 'multiple_choice'
    TRUE_FALSE = 'true_false'
    SHORT_ANSWER = 'short_answer'
    ESSAY = 'essay'

    @property
    def is_auto_scored(self):
        return self is not QuestionType.ESSAY


class User(UserMixin, db.Model):
    """
    User - Authentication and identity for students and teachers
    """
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False)  # 'student', 'teacher'
    created_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    teaching_classes = db.relationship('Class', backref='teacher', lazy='dynamic')
    enrollments = db.relationship('Enrollment', backref='user', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def is_teacher(self):
        return self.role == 'teacher'

    def is_student(self):
        return self.role == 'student'

    def get_full_name(self):
        """Return full name"""
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.get_full_name(),
            'role': self.role,
        }


class Class(db.Model):
    """
    Class - Owned by exactly one teacher, joined to students through Enrollment
    """
    __tablename__ = 'class'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    enrollments = db.relationship('Enrollment', backref='class_', lazy='dynamic', cascade='all, delete-orphan')
    assignments = db.relationship('Assignment', backref='class_', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Class {self.code} - {self.name}>'

    def is_taught_by(self, user_id):
        return self.teacher_id == user_id

    def has_student(self, user_id):
        return self.enrollments.filter_by(user_id=user_id).count() > 0


class Enrollment(db.Model):
    """
    Enrollment - Links students to classes (many-to-many relationship)
    """
    __tablename__ = 'enrollment'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'class_id', name='uq_enrollment_user_class'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False, index=True)
    enrolled_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<Enrollment User:{self.user_id} Class:{self.class_id}>'


class Assignment(db.Model):
    """
    Assignment - Posted by the class's teacher; a quiz when type == 'quiz'
    """
    __tablename__ = 'assignment'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(20), nullable=False, default='assignment')  # 'assignment', 'quiz', 'question'
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    due_date = db.Column(db.DateTime, nullable=True)
    max_points = db.Column(db.Integer, nullable=True, default=100)  # NULL = not graded by points
    is_published = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    submissions = db.relationship('Submission', backref='assignment', lazy='dynamic', cascade='all, delete-orphan')
    questions = db.relationship(
        'QuizQuestion',
        backref='assignment',
        lazy='dynamic',
        cascade='all, delete-orphan',
        order_by='QuizQuestion.order_index'
    )
    gradebook_entries = db.relationship('GradebookEntry', backref='assignment', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Assignment {self.title} - Class:{self.class_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'type': self.type,
            'class_id': self.class_id,
            'teacher_id': self.teacher_id,
            'due_date': _iso(self.due_date),
            'max_points': self.max_points,
            'is_published': self.is_published,
        }


class Submission(db.Model):
    """
    Submission - A student's work on one assignment.
    At most one row per (assignment, student); resubmitting updates it.
    """
    __tablename__ = 'submission'
    __table_args__ = (
        db.UniqueConstraint('assignment_id', 'student_id', name='uq_submission_assignment_student'),
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignment.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    content = db.Column(db.Text, nullable=True)
    status = _enum_column(SubmissionStatus, nullable=False, default=SubmissionStatus.PENDING)
    points_earned = db.Column(db.Float, nullable=True)
    feedback = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime, nullable=True)
    graded_at = db.Column(db.DateTime, nullable=True)
    graded_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    student = db.relationship('User', foreign_keys=[student_id])
    answers = db.relationship('QuizAnswer', backref='submission', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Submission Assignment:{self.assignment_id} Student:{self.student_id} ({self.status})>'

    def advance(self, action, allow_unsubmitted=False):
        """
        Move the submission along the state machine.

        Args:
            action: 'submit', 'grade' or 'return'
            allow_unsubmitted: let 'grade' start from 'pending'

        Raises:
            InvalidState: If the action is not allowed from the current status
        """
        allowed, target = SUBMISSION_TRANSITIONS[action]
        current = self.status or SubmissionStatus.PENDING

        if current not in allowed and not (
            action == 'grade' and allow_unsubmitted and current is SubmissionStatus.PENDING
        ):
            logger.warning("Rejected %s on submission %s (status %s)", action, self.id, current.value)
            raise InvalidState(f"Cannot {action} a submission that is {current.value}")

        self.status = target
        return target

    def to_dict(self):
        return {
            'id': self.id,
            'assignment_id': self.assignment_id,
            'student_id': self.student_id,
            'content': self.content,
            'status': self.status.value if self.status else None,
            'points_earned': self.points_earned,
            'feedback': self.feedback,
            'submitted_at': _iso(self.submitted_at),
            'graded_at': _iso(self.graded_at),
            'graded_by': self.graded_by,
        }


class QuizQuestion(db.Model):
    """
    QuizQuestion - One question of a quiz assignment.
    order_index is contiguous within an assignment.
    """
    __tablename__ = 'quiz_question'

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignment.id'), nullable=False, index=True)

    question_text = db.Column(db.Text, nullable=False)
    question_type = _enum_column(QuestionType, nullable=False)
    correct_answer = db.Column(db.Text, nullable=True)  # NULL for essay questions

    # Answer choices (JSON format), e.g. ["3", "4", "5"]
    answer_choices = db.Column(db.Text, nullable=True)

    points = db.Column(db.Integer, nullable=False, default=1)
    order_index = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    answers = db.relationship('QuizAnswer', backref='question', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<QuizQuestion #{self.order_index} Assignment:{self.assignment_id}>'

    def get_answer_choices(self):
        """Parse and return answer choices as list"""
        if self.answer_choices:
            try:
                return json.loads(self.answer_choices)
            except json.JSONDecodeError:
                return []
        return []

    def set_answer_choices(self, choices):
        """Set answer choices from list (None clears them)"""
        self.answer_choices = json.dumps(list(choices)) if choices is not None else None

    def to_dict(self, include_answer=True):
        return {
            'id': self.id,
            'assignment_id': self.assignment_id,
            'question_text': self.question_text,
            'question_type': self.question_type.value,
            'correct_answer': self.correct_answer if include_answer else None,
            'answer_choices': self.get_answer_choices() if self.answer_choices else None,
            'points': self.points,
            'order_index': self.order_index,
        }


class QuizAnswer(db.Model):
    """
    QuizAnswer - A student's answer to one question, replaced on re-answer
    """
    __tablename__ = 'quiz_answer'
    __table_args__ = (
        db.UniqueConstraint('submission_id', 'question_id', name='uq_quiz_answer_submission_question'),
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('quiz_question.id'), nullable=False, index=True)

    answer_text = db.Column(db.Text, nullable=True)
    is_correct = db.Column(db.Boolean, nullable=True)  # NULL = needs manual grading
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<QuizAnswer Submission:{self.submission_id} Question:{self.question_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'submission_id': self.submission_id,
            'question_id': self.question_id,
            'answer_text': self.answer_text,
            'is_correct': self.is_correct,
            'points_earned': self.points_earned,
        }


class GradebookEntry(db.Model):
    """
    GradebookEntry - Derived (student, assignment) grade.
    Written only by grading and excusal; never edited directly.
    """
    __tablename__ = 'gradebook_entry'
    __table_args__ = (
        db.UniqueConstraint('student_id', 'assignment_id', name='uq_gradebook_student_assignment'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=False, index=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignment.id'), nullable=False, index=True)

    points_earned = db.Column(db.Float, nullable=True)
    points_possible = db.Column(db.Integer, nullable=False)
    percentage = db.Column(db.Integer, nullable=True)  # 0-100, rounded
    letter_grade = db.Column(db.String(2), nullable=True)
    is_excused = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    student = db.relationship('User', foreign_keys=[student_id])

    def __repr__(self):
        return f'<GradebookEntry Student:{self.student_id} Assignment:{self.assignment_id} {self.letter_grade}>'

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'class_id': self.class_id,
            'assignment_id': self.assignment_id,
            'points_earned': self.points_earned,
            'points_possible': self.points_possible,
            'percentage': self.percentage,
            'letter_grade': self.letter_grade,
            'is_excused': self.is_excused,
            'updated_at': _iso(self.updated_at),
        }


class Notification(db.Model):
    """
    Notification - Fire-and-forget message to a user
    """
    __tablename__ = 'notification'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    # 'assignment_posted', 'deadline_reminder', 'grade_received', 'comment_added', 'class_announcement'
    type = db.Column(db.String(30), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('class.id'), nullable=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignment.id'), nullable=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<Notification User:{self.user_id} {self.type}>'
