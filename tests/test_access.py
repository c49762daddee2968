import pytest

from conftest import make_assignment
from errors import AccessDenied, InvalidState, NotAuthorized, NotFound
from models import Class, GradebookEntry, QuizQuestion, Submission, SubmissionStatus
from services.access import can_access, get_or_404, require_access, require_teacher


@pytest.mark.parametrize('start, action, end', [
    (SubmissionStatus.PENDING, 'submit', SubmissionStatus.SUBMITTED),
    (SubmissionStatus.SUBMITTED, 'submit', SubmissionStatus.SUBMITTED),
    (SubmissionStatus.RETURNED, 'submit', SubmissionStatus.SUBMITTED),
    (SubmissionStatus.SUBMITTED, 'grade', SubmissionStatus.GRADED),
    (SubmissionStatus.GRADED, 'grade', SubmissionStatus.GRADED),
    (SubmissionStatus.RETURNED, 'grade', SubmissionStatus.GRADED),
    (SubmissionStatus.SUBMITTED, 'return', SubmissionStatus.RETURNED),
    (SubmissionStatus.GRADED, 'return', SubmissionStatus.RETURNED),
])
def test_allowed_transitions(start, action, end):
    submission = Submission(status=start)
    assert submission.advance(action) is end
    assert submission.status is end


@pytest.mark.parametrize('start, action', [
    (SubmissionStatus.GRADED, 'submit'),
    (SubmissionStatus.PENDING, 'grade'),
    (SubmissionStatus.PENDING, 'return'),
])
def test_rejected_transitions(start, action):
    submission = Submission(status=start)
    with pytest.raises(InvalidState):
        submission.advance(action)
    assert submission.status is start


def test_grading_pending_when_allowed():
    submission = Submission(status=SubmissionStatus.PENDING)
    assert submission.advance('grade', allow_unsubmitted=True) is SubmissionStatus.GRADED


def test_class_access(teacher, enrolled, outsider, school_class):
    assert can_access(teacher.id, school_class) == (True, 'teacher')
    assert can_access(enrolled.id, school_class) == (True, 'student')
    assert can_access(outsider.id, school_class).allow is False


def test_assignment_access_follows_publication(teacher, enrolled, outsider, school_class, assignment):
    draft = make_assignment(school_class, title='Draft', is_published=False)

    assert can_access(enrolled.id, assignment).role == 'student'
    assert can_access(enrolled.id, draft).allow is False
    assert can_access(teacher.id, draft).role == 'teacher'
    assert can_access(outsider.id, assignment).allow is False


def test_question_access_follows_assignment(teacher, enrolled, quiz):
    question = QuizQuestion.query.filter_by(assignment_id=quiz.id).first()
    assert can_access(teacher.id, question).role == 'teacher'
    assert can_access(enrolled.id, question).role == 'student'


def test_gradebook_entry_access(teacher, enrolled, outsider, assignment):
    entry = GradebookEntry(
        student_id=enrolled.id,
        class_id=assignment.class_id,
        assignment_id=assignment.id,
        points_possible=100
    )
    assert can_access(teacher.id, entry).role == 'teacher'
    assert can_access(enrolled.id, entry).role == 'student'
    assert can_access(outsider.id, entry).allow is False


def test_require_helpers(teacher, enrolled, outsider, school_class):
    assert require_teacher(teacher.id, school_class).role == 'teacher'
    assert require_access(enrolled.id, school_class).role == 'student'

    with pytest.raises(NotAuthorized):
        require_teacher(enrolled.id, school_class)
    with pytest.raises(AccessDenied):
        require_access(outsider.id, school_class)


def test_get_or_404(app, school_class):
    assert get_or_404(Class, school_class.id) is school_class
    with pytest.raises(NotFound, match='Class not found'):
        get_or_404(Class, 999)
    with pytest.raises(NotFound, match='Widget not found'):
        get_or_404(Class, None, 'Widget')


def test_model_role_helpers(teacher, enrolled, outsider, school_class):
    assert teacher.is_teacher() and not teacher.is_student()
    assert enrolled.is_student() and not enrolled.is_teacher()
    assert teacher.get_full_name() == 'Tina Teacher'
    assert enrolled.to_dict()['full_name'] == 'Sam Student'

    assert school_class.is_taught_by(teacher.id)
    assert not school_class.is_taught_by(enrolled.id)
    assert school_class.has_student(enrolled.id)
    assert not school_class.has_student(outsider.id)
