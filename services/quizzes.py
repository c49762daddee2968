"""
services/quizzes.py - Quiz Scoring Engine
Question management with contiguous ordering, objective auto-scoring of
student answers, and the teacher's per-student results view.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import func

from errors import AccessDenied, NotFound, ValidationError
from extensions import db
from models import (Assignment, QuestionType, QuizAnswer, QuizQuestion, Submission,
                    User, utcnow)
from services.access import can_access, get_or_404, is_enrolled, require_teacher

logger = logging.getLogger(__name__)

DEFAULT_BASE_INDEX = 1

UPDATABLE_FIELDS = {
    'question_text',
    'question_type',
    'correct_answer',
    'answer_choices',
    'points',
    'order_index',
}


@dataclass
class QuestionAnswer:
    question: QuizQuestion
    answer: QuizAnswer

    def to_dict(self):
        return {'question': self.question.to_dict(), 'answer': self.answer.to_dict()}


@dataclass
class QuizResult:
    student: User
    submission: Submission
    answers: List[QuestionAnswer] = field(default_factory=list)

    def to_dict(self):
        return {
            'student': self.student.to_dict(),
            'submission': self.submission.to_dict(),
            'answers': [pair.to_dict() for pair in self.answers],
        }


# === Scoring ===

def normalize_answer(text):
    return (text or '').strip().lower()


def score_answer(question, answer_text):
    """
    Score one answer against the question's key.

    Returns:
        tuple: (is_correct, points). is_correct is None when the question
        needs manual grading (essay, or no key set); points is then 0.
    """
    if question.correct_answer is None or not question.question_type.is_auto_scored:
        return None, 0

    is_correct = normalize_answer(answer_text) == normalize_answer(question.correct_answer)
    return is_correct, question.points if is_correct else 0


# === Validation ===

def _validate_question_type(value):
    try:
        return QuestionType(value)
    except ValueError:
        allowed = ', '.join(t.value for t in QuestionType)
        raise ValidationError(f"Question type must be one of: {allowed}")


def _validate_points(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("Question points must be a whole number of at least 1")
    return value


def _validate_text(value):
    if not value or not str(value).strip():
        raise ValidationError("Question text is required")
    return str(value).strip()


def _validate_choices(value):
    if value is not None and not isinstance(value, (list, tuple)):
        raise ValidationError("Answer choices must be a list")
    return value


def _validate_index(value):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("order_index must be a non-negative whole number")
    return value


# === Ordering helpers ===

def _lock_assignment(assignment_id):
    """Row-lock the parent assignment so ordering changes on it serialize"""
    assignment = Assignment.query.filter_by(id=assignment_id).with_for_update().first()
    if assignment is None:
        raise NotFound("Assignment not found")
    return assignment


def _index_range(assignment_id):
    return db.session.query(
        func.min(QuizQuestion.order_index),
        func.max(QuizQuestion.order_index)
    ).filter(QuizQuestion.assignment_id == assignment_id).one()


def _shift(assignment_id, delta, lower=None, upper=None, exclude_id=None):
    """Add ``delta`` to order_index for questions with lower <= index <= upper"""
    query = QuizQuestion.query.filter(QuizQuestion.assignment_id == assignment_id)
    if lower is not None:
        query = query.filter(QuizQuestion.order_index >= lower)
    if upper is not None:
        query = query.filter(QuizQuestion.order_index <= upper)
    if exclude_id is not None:
        query = query.filter(QuizQuestion.id != exclude_id)
    return query.update(
        {QuizQuestion.order_index: QuizQuestion.order_index + delta},
        synchronize_session='fetch'
    )


def _move(question, new_index):
    base, top = _index_range(question.assignment_id)
    if not base <= new_index <= top:
        raise ValidationError(f"order_index must be between {base} and {top}")

    old_index = question.order_index
    if new_index < old_index:
        _shift(question.assignment_id, 1, lower=new_index, upper=old_index - 1, exclude_id=question.id)
    elif new_index > old_index:
        _shift(question.assignment_id, -1, lower=old_index + 1, upper=new_index, exclude_id=question.id)
    question.order_index = new_index


# === Question management ===

def create_question(assignment_id, question_text, question_type, teacher_id,
                    correct_answer=None, answer_choices=None, points=1, order_index=None):
    """
    Add a question to an assignment.

    With no ``order_index`` the question goes last. A supplied index may be
    anywhere from the first position to one past the last; questions at or
    after it move down one place. The first question of an assignment sets
    the base index (default 1).
    """
    question_text = _validate_text(question_text)
    question_type = _validate_question_type(question_type)
    points = _validate_points(points)
    answer_choices = _validate_choices(answer_choices)
    order_index = _validate_index(order_index)

    try:
        assignment = _lock_assignment(assignment_id)
        require_teacher(teacher_id, assignment)

        base, top = _index_range(assignment_id)
        if top is None:
            order_index = DEFAULT_BASE_INDEX if order_index is None else order_index
        elif order_index is None:
            order_index = top + 1
        elif not base <= order_index <= top + 1:
            raise ValidationError(f"order_index must be between {base} and {top + 1}")
        elif order_index <= top:
            _shift(assignment_id, 1, lower=order_index)

        question = QuizQuestion(
            assignment_id=assignment_id,
            question_text=question_text,
            question_type=question_type,
            correct_answer=correct_answer,
            points=points,
            order_index=order_index
        )
        question.set_answer_choices(answer_choices)
        db.session.add(question)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Created question %s at #%s on assignment %s", question.id, order_index, assignment_id)
    return question


def update_question(question_id, teacher_id, changes):
    """
    Change any of a question's fields; a new order_index moves it.

    Args:
        changes: dict of field -> new value, keys from UPDATABLE_FIELDS
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")

    question = get_or_404(QuizQuestion, question_id, 'Question')

    try:
        _lock_assignment(question.assignment_id)
        require_teacher(teacher_id, question)

        if 'question_text' in changes:
            question.question_text = _validate_text(changes['question_text'])
        if 'question_type' in changes:
            question.question_type = _validate_question_type(changes['question_type'])
        if 'correct_answer' in changes:
            question.correct_answer = changes['correct_answer']
        if 'answer_choices' in changes:
            question.set_answer_choices(_validate_choices(changes['answer_choices']))
        if 'points' in changes:
            question.points = _validate_points(changes['points'])
        if changes.get('order_index') is not None:
            _move(question, _validate_index(changes['order_index']))

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Updated question %s (%s)", question.id, ', '.join(sorted(changes)))
    return question


def delete_question(question_id, teacher_id):
    """Delete a question and close the gap it leaves in the ordering"""
    question = get_or_404(QuizQuestion, question_id, 'Question')
    assignment_id = question.assignment_id

    try:
        _lock_assignment(assignment_id)
        require_teacher(teacher_id, question)

        deleted_index = question.order_index
        db.session.delete(question)
        db.session.flush()
        moved = _shift(assignment_id, -1, lower=deleted_index + 1)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Deleted question %s (#%s) from assignment %s, %s moved up",
        question_id, deleted_index, assignment_id, moved
    )


def get_questions(assignment_id, user_id):
    """
    Questions in order. Only the owning teacher sees correct answers.

    Returns:
        list[dict]: serialized questions
    """
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')
    access = can_access(user_id, assignment)

    if not access.allow:
        if not assignment.is_published and is_enrolled(assignment.class_id, user_id):
            raise NotFound("Assignment not found")
        raise AccessDenied("Access denied")

    include_answer = access.role == 'teacher'
    return [q.to_dict(include_answer=include_answer) for q in assignment.questions.all()]


# === Answers ===

def _validate_answers(answers):
    """Last answer wins when a question appears twice"""
    latest = {}
    for item in answers:
        question_id = item.get('question_id')
        if isinstance(question_id, bool) or not isinstance(question_id, int):
            raise ValidationError("question_id must be a whole number")
        answer_text = item.get('answer_text')
        if answer_text is not None and not isinstance(answer_text, str):
            raise ValidationError("answer_text must be a string")
        latest[question_id] = answer_text
    return latest


def auto_scored_total(submission_id):
    """
    Sum of awarded points over the submission's auto-scored answers,
    or None when it has none.
    """
    return db.session.query(
        func.sum(QuizAnswer.points_earned)
    ).filter(
        QuizAnswer.submission_id == submission_id,
        QuizAnswer.is_correct.isnot(None)
    ).scalar()


def submit_answers(submission_id, student_id, answers):
    """
    Save a student's quiz answers and auto-score the objective ones.

    Args:
        answers: iterable of {'question_id': int, 'answer_text': str}

    Each answer replaces any earlier answer to the same question. The
    submission's points become the total over all auto-scored answers.
    """
    latest = _validate_answers(answers)

    try:
        # Concurrent answer saves for one submission serialize on its row
        submission = Submission.query.filter_by(id=submission_id).with_for_update().populate_existing().first()
        if submission is None:
            raise NotFound("Submission not found")
        if submission.student_id != student_id:
            raise AccessDenied("Access denied")

        questions = {q.id: q for q in submission.assignment.questions.all()}
        for question_id in latest:
            if question_id not in questions:
                raise NotFound(f"Question {question_id} not found")

        submission.advance('submit')

        for question_id, answer_text in latest.items():
            is_correct, points = score_answer(questions[question_id], answer_text)
            QuizAnswer.query.filter_by(
                submission_id=submission.id,
                question_id=question_id
            ).delete(synchronize_session='fetch')
            db.session.add(QuizAnswer(
                submission_id=submission.id,
                question_id=question_id,
                answer_text=answer_text,
                is_correct=is_correct,
                points_earned=points
            ))
        db.session.flush()

        total = auto_scored_total(submission.id)
        submission.points_earned = total
        submission.submitted_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Scored %s answer(s) on submission %s: %s auto-scored points",
        len(latest), submission.id, total
    )
    return submission


def quiz_results(assignment_id, teacher_id):
    """Every submission on a quiz with its answers, grouped per student"""
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')
    require_teacher(teacher_id, assignment)

    submissions = Submission.query.join(
        User, User.id == Submission.student_id
    ).filter(
        Submission.assignment_id == assignment_id
    ).order_by(User.last_name, User.first_name).all()

    results = []
    for submission in submissions:
        pairs = db.session.query(QuizQuestion, QuizAnswer).join(
            QuizAnswer, QuizAnswer.question_id == QuizQuestion.id
        ).filter(
            QuizAnswer.submission_id == submission.id
        ).order_by(QuizQuestion.order_index).all()

        results.append(QuizResult(
            student=submission.student,
            submission=submission,
            answers=[QuestionAnswer(question, answer) for question, answer in pairs]
        ))
    return results
