"""
services/submissions.py - Submission Store
One submission per (assignment, student), moved through the status
state machine by student submits and teacher grading/returns.
"""

import logging

from flask import current_app

from errors import AccessDenied, EnrollmentRequired, NotFound, ValidationError
from extensions import db
from models import Assignment, Class, Submission, SubmissionStatus, utcnow
from services import gradebook, quizzes
from services.access import can_access, get_or_404, is_enrolled, require_access, require_teacher
from services.notifications import COMMENT_ADDED, GRADE_RECEIVED, NotificationEvent, notifier
from services.store import insert_if_absent

logger = logging.getLogger(__name__)


def open_submission(assignment_id, student_id):
    """
    Check that the student may submit to the assignment, then return their
    submission row (created as 'pending' if absent) locked for update.
    Runs inside the caller's transaction.
    """
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')

    if not is_enrolled(assignment.class_id, student_id):
        raise EnrollmentRequired("You must be enrolled in this class to submit")

    # Unpublished work is invisible to students
    if not assignment.is_published:
        raise NotFound("Assignment not found")

    submission, created = insert_if_absent(
        Submission,
        {'assignment_id': assignment_id, 'student_id': student_id},
        {'status': SubmissionStatus.PENDING}
    )
    return submission, created


def submit_work(assignment_id, student_id, content=None):
    """
    Create or update a student's submission for an assignment.

    Re-submitting updates the existing row in place. A text resubmission
    drops any earlier points; a quiz keeps the total of its auto-scored answers.

    Returns:
        Submission: the (possibly pre-existing) row

    Raises:
        NotFound: unknown or unpublished assignment
        EnrollmentRequired: student not enrolled in the assignment's class
        InvalidState: the submission is graded and has not been returned
    """
    try:
        submission, created = open_submission(assignment_id, student_id)
        submission.advance('submit')
        submission.content = content
        if submission.assignment.type == 'quiz':
            submission.points_earned = quizzes.auto_scored_total(submission.id)
        else:
            submission.points_earned = None
        submission.submitted_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "%s submission %s (assignment %s, student %s)",
        'Created' if created else 'Resubmitted', submission.id, assignment_id, student_id
    )
    return submission


def grade_submission(submission_id, points_earned, feedback, grader_id):
    """
    Grade a submission and project the grade into the gradebook.

    The submission update and the gradebook upsert commit together; the
    student's notification is sent after the commit.
    Re-grading overwrites the previous grade.
    """
    points_earned = gradebook.validate_points_input(points_earned)
    submission = get_or_404(Submission, submission_id, 'Submission')
    assignment = submission.assignment
    require_teacher(grader_id, assignment)

    try:
        previous = submission.status
        submission.advance(
            'grade',
            allow_unsubmitted=current_app.config.get('ALLOW_GRADING_UNSUBMITTED', True)
        )
        submission.points_earned = points_earned
        submission.feedback = feedback
        submission.graded_at = utcnow()
        submission.graded_by = grader_id

        entry = gradebook.project_grade(submission.student_id, assignment, points_earned)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Graded submission %s: %s -> graded, %s/%s (%s)",
        submission.id, previous.value, points_earned, entry.points_possible, entry.letter_grade
    )

    notifier.emit(NotificationEvent(
        recipient_id=submission.student_id,
        title='Assignment graded',
        message=f'Your submission for "{assignment.title}" has been graded: '
                f'{entry.percentage}% ({entry.letter_grade})',
        type=GRADE_RECEIVED,
        class_id=assignment.class_id,
        assignment_id=assignment.id
    ))
    return submission


def return_for_revision(submission_id, feedback, grader_id):
    """
    Send a submission back to the student with feedback.
    Points and the gradebook entry are left as they are.
    """
    feedback = (feedback or '').strip()
    if not feedback:
        raise ValidationError("Feedback is required when returning a submission")

    submission = get_or_404(Submission, submission_id, 'Submission')
    assignment = submission.assignment
    require_teacher(grader_id, assignment)

    try:
        submission.advance('return')
        submission.feedback = feedback
        submission.graded_by = grader_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Returned submission %s to student %s", submission.id, submission.student_id)

    notifier.emit(NotificationEvent(
        recipient_id=submission.student_id,
        title='Submission returned for revision',
        message=f'Your submission for "{assignment.title}" was returned: {feedback}',
        type=COMMENT_ADDED,
        class_id=assignment.class_id,
        assignment_id=assignment.id
    ))
    return submission


# === Reads ===

def submissions_for_assignment(assignment_id, teacher_id):
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')
    require_teacher(teacher_id, assignment)
    return assignment.submissions.order_by(Submission.submitted_at, Submission.id).all()


def submission_for_student(assignment_id, student_id, requester_id):
    """The student's submission, or None if they have not submitted yet"""
    assignment = get_or_404(Assignment, assignment_id, 'Assignment')

    if can_access(requester_id, assignment).role != 'teacher':
        if requester_id != student_id:
            raise AccessDenied("Access denied")
        require_access(requester_id, assignment)

    return Submission.query.filter_by(
        assignment_id=assignment_id,
        student_id=student_id
    ).first()


def pending_submissions(teacher_id):
    """Ungraded work across every assignment in the teacher's classes"""
    return Submission.query.join(
        Assignment, Assignment.id == Submission.assignment_id
    ).join(
        Class, Class.id == Assignment.class_id
    ).filter(
        Class.teacher_id == teacher_id,
        Submission.status.in_([SubmissionStatus.PENDING, SubmissionStatus.SUBMITTED])
    ).order_by(Submission.submitted_at, Submission.id).all()
