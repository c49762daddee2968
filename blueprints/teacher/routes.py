"""
blueprints/teacher/routes.py - Teacher Blueprint
Grading, returns, quiz question management, quiz results and the gradebook.
Engine errors propagate to the JSON error handlers registered in app.py.
"""

from functools import wraps

from flask import Blueprint, jsonify, make_response, request
from flask_login import current_user, login_required

from errors import ValidationError
from services import gradebook, quizzes, submissions

# Initialize the blueprint for teacher-related routes
teacher_bp = Blueprint('teacher', __name__)


def teacher_required(f):
    """
    Decorator to ensure only teachers can access the route
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_teacher():
            return jsonify({'success': False, 'error': 'Access denied. Teachers only.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# === Submissions ===

@teacher_bp.route('/assignments/<int:assignment_id>/submissions')
@teacher_required
def assignment_submissions(assignment_id):
    rows = submissions.submissions_for_assignment(assignment_id, current_user.id)
    return jsonify({'success': True, 'submissions': [s.to_dict() for s in rows]})


@teacher_bp.route('/submissions/pending')
@teacher_required
def pending_submissions():
    rows = submissions.pending_submissions(current_user.id)
    return jsonify({'success': True, 'submissions': [s.to_dict() for s in rows]})


@teacher_bp.route('/submissions/<int:submission_id>/grade', methods=['POST'])
@teacher_required
def grade_submission(submission_id):
    """
    Grade a submission. Body: {"points_earned": 85, "feedback": "..."}
    """
    data = _json_body()
    submission = submissions.grade_submission(
        submission_id,
        data.get('points_earned'),
        data.get('feedback'),
        current_user.id
    )
    return jsonify({'success': True, 'submission': submission.to_dict()})


@teacher_bp.route('/submissions/<int:submission_id>/return', methods=['POST'])
@teacher_required
def return_submission(submission_id):
    """
    Return a submission for revision. Body: {"feedback": "..."}
    """
    data = _json_body()
    submission = submissions.return_for_revision(submission_id, data.get('feedback'), current_user.id)
    return jsonify({'success': True, 'submission': submission.to_dict()})


# === Quiz questions ===

@teacher_bp.route('/assignments/<int:assignment_id>/questions', methods=['GET'])
@teacher_required
def list_questions(assignment_id):
    return jsonify({'success': True, 'questions': quizzes.get_questions(assignment_id, current_user.id)})


@teacher_bp.route('/assignments/<int:assignment_id>/questions', methods=['POST'])
@teacher_required
def create_question(assignment_id):
    """
    Add a quiz question. order_index is optional; omitted means "last".
    """
    data = _json_body()
    question = quizzes.create_question(
        assignment_id,
        data.get('question_text'),
        data.get('question_type'),
        current_user.id,
        correct_answer=data.get('correct_answer'),
        answer_choices=data.get('answer_choices'),
        points=data.get('points', 1),
        order_index=data.get('order_index')
    )
    return jsonify({'success': True, 'question': question.to_dict()}), 201


@teacher_bp.route('/questions/<int:question_id>', methods=['PATCH'])
@teacher_required
def update_question(question_id):
    question = quizzes.update_question(question_id, current_user.id, _json_body())
    return jsonify({'success': True, 'question': question.to_dict()})


@teacher_bp.route('/questions/<int:question_id>', methods=['DELETE'])
@teacher_required
def delete_question(question_id):
    quizzes.delete_question(question_id, current_user.id)
    return jsonify({'success': True})


@teacher_bp.route('/assignments/<int:assignment_id>/quiz-results')
@teacher_required
def quiz_results(assignment_id):
    results = quizzes.quiz_results(assignment_id, current_user.id)
    return jsonify({'success': True, 'results': [r.to_dict() for r in results]})


# === Gradebook ===

@teacher_bp.route('/classes/<int:class_id>/gradebook')
@teacher_required
def class_gradebook(class_id):
    entries = gradebook.by_class(class_id, current_user.id)
    return jsonify({'success': True, 'entries': [e.to_dict() for e in entries]})


@teacher_bp.route('/assignments/<int:assignment_id>/students/<int:student_id>/grade', methods=['PUT'])
@teacher_required
def upsert_grade(assignment_id, student_id):
    """
    Set a gradebook grade directly. Body: {"points_earned": 85}
    """
    data = _json_body()
    entry = gradebook.upsert_grade(student_id, assignment_id, data.get('points_earned'), current_user.id)
    return jsonify({'success': True, 'entry': entry.to_dict()})


@teacher_bp.route('/assignments/<int:assignment_id>/students/<int:student_id>/excuse', methods=['POST'])
@teacher_required
def excuse_student(assignment_id, student_id):
    entry = gradebook.excuse(student_id, assignment_id, current_user.id)
    return jsonify({'success': True, 'entry': entry.to_dict()})


@teacher_bp.route('/classes/<int:class_id>/averages')
@teacher_required
def class_averages(class_id):
    averages = gradebook.class_averages(class_id, current_user.id)
    return jsonify({'success': True, 'averages': [a.to_dict() for a in averages]})


@teacher_bp.route('/classes/<int:class_id>/gradebook/export')
@teacher_required
def export_gradebook(class_id):
    """
    Export the class gradebook. ?format=csv downloads a CSV file.
    """
    if request.args.get('format', 'json') == 'csv':
        response = make_response(gradebook.export_csv(class_id, current_user.id))
        response.headers["Content-Disposition"] = f"attachment; filename=gradebook_class_{class_id}.csv"
        response.headers["Content-Type"] = "text/csv"
        return response

    rows = gradebook.export(class_id, current_user.id)
    return jsonify({'success': True, 'rows': [r.to_dict() for r in rows]})


@teacher_bp.route('/students/<int:student_id>/grades')
@teacher_required
def student_grades(student_id):
    class_id = request.args.get('class_id', type=int)
    entries = gradebook.by_student(student_id, current_user.id, class_id)
    return jsonify({'success': True, 'entries': [e.to_dict() for e in entries]})
