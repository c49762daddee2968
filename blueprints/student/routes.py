"""
blueprints/student/routes.py - Student Blueprint
Handles student-specific routes: submitting work and quiz answers,
reading quiz questions, own submission and own grades.
"""

from functools import wraps

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from errors import ValidationError
from services import gradebook, quizzes, submissions

# Initialize the blueprint for student-related routes
student_bp = Blueprint('student', __name__)


def student_required(f):
    """
    Decorator to ensure only students can access the route
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_student():
            return jsonify({'success': False, 'error': 'Access denied. Students only.'}), 403
        return f(*args, **kwargs)
    return decorated_function


@student_bp.route('/assignments/<int:assignment_id>/submission', methods=['POST'])
@student_required
def submit_work(assignment_id):
    """
    Submit (or resubmit) work. Body: {"content": "..."} (optional)
    """
    data = request.get_json(silent=True) or {}
    submission = submissions.submit_work(assignment_id, current_user.id, data.get('content'))
    return jsonify({'success': True, 'submission': submission.to_dict()})


@student_bp.route('/assignments/<int:assignment_id>/submission', methods=['GET'])
@student_required
def my_submission(assignment_id):
    submission = submissions.submission_for_student(assignment_id, current_user.id, current_user.id)
    return jsonify({
        'success': True,
        'submission': submission.to_dict() if submission else None
    })


@student_bp.route('/assignments/<int:assignment_id>/questions')
@student_required
def quiz_questions(assignment_id):
    return jsonify({'success': True, 'questions': quizzes.get_questions(assignment_id, current_user.id)})


@student_bp.route('/submissions/<int:submission_id>/answers', methods=['POST'])
@student_required
def submit_answers(submission_id):
    """
    Submit quiz answers.
    Body: {"answers": [{"question_id": 1, "answer_text": "4"}, ...]}
    """
    data = request.get_json(silent=True) or {}
    answers = data.get('answers')
    if not isinstance(answers, list) or not all(isinstance(a, dict) for a in answers):
        raise ValidationError("answers must be a list of {question_id, answer_text} objects")

    submission = quizzes.submit_answers(submission_id, current_user.id, answers)
    return jsonify({'success': True, 'submission': submission.to_dict()})


@student_bp.route('/grades')
@student_required
def my_grades():
    """
    Own gradebook entries, optionally ?class_id= filtered
    """
    class_id = request.args.get('class_id', type=int)
    entries = gradebook.by_student(current_user.id, current_user.id, class_id)
    return jsonify({'success': True, 'entries': [e.to_dict() for e in entries]})
