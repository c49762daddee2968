import pytest

from conftest import make_assignment
from errors import AccessDenied, EnrollmentRequired, InvalidState, NotAuthorized, NotFound, ValidationError
from extensions import db
from models import GradebookEntry, Notification, Submission, SubmissionStatus
from services import submissions
from services.notifications import notifier


def test_submit_creates_submitted_row(enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'My essay')

    assert submission.status is SubmissionStatus.SUBMITTED
    assert submission.content == 'My essay'
    assert submission.submitted_at is not None
    assert submission.points_earned is None


def test_resubmit_updates_the_same_row(enrolled, assignment):
    first = submissions.submit_work(assignment.id, enrolled.id, 'Draft')
    second = submissions.submit_work(assignment.id, enrolled.id, 'Final')

    assert first.id == second.id
    assert second.content == 'Final'
    assert Submission.query.filter_by(assignment_id=assignment.id, student_id=enrolled.id).count() == 1


def test_submit_requires_enrollment(outsider, assignment):
    with pytest.raises(EnrollmentRequired):
        submissions.submit_work(assignment.id, outsider.id, 'Sneaky')
    assert Submission.query.count() == 0


def test_submit_unknown_assignment(enrolled):
    with pytest.raises(NotFound):
        submissions.submit_work(999, enrolled.id, 'Nothing')


def test_unpublished_assignment_is_hidden_from_students(enrolled, school_class):
    draft = make_assignment(school_class, title='Draft', is_published=False)

    with pytest.raises(NotFound):
        submissions.submit_work(draft.id, enrolled.id, 'Early')


def test_grade_projects_into_gradebook_and_notifies(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    graded = submissions.grade_submission(submission.id, 85, 'Good job', teacher.id)

    assert graded.status is SubmissionStatus.GRADED
    assert graded.points_earned == 85
    assert graded.feedback == 'Good job'
    assert graded.graded_by == teacher.id
    assert graded.graded_at is not None

    entry = GradebookEntry.query.filter_by(student_id=enrolled.id, assignment_id=assignment.id).one()
    assert entry.percentage == 85
    assert entry.letter_grade == 'B'
    assert entry.points_possible == 100

    notification = Notification.query.filter_by(user_id=enrolled.id).one()
    assert notification.type == 'grade_received'
    assert notification.assignment_id == assignment.id


def test_regrading_keeps_one_gradebook_entry(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    submissions.grade_submission(submission.id, 70, None, teacher.id)
    submissions.grade_submission(submission.id, 95, 'Regraded', teacher.id)

    entries = GradebookEntry.query.filter_by(student_id=enrolled.id, assignment_id=assignment.id).all()
    assert len(entries) == 1
    assert entries[0].points_earned == 95
    assert entries[0].letter_grade == 'A'


def test_grade_by_other_teacher_is_rejected(other_teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    with pytest.raises(NotAuthorized):
        submissions.grade_submission(submission.id, 90, None, other_teacher.id)
    assert GradebookEntry.query.count() == 0


@pytest.mark.parametrize('points', [-1, 'abc', None, float('inf')])
def test_grade_rejects_bad_points(teacher, enrolled, assignment, points):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    with pytest.raises(ValidationError):
        submissions.grade_submission(submission.id, points, None, teacher.id)


def test_grade_above_points_possible_leaves_submission_untouched(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    with pytest.raises(ValidationError):
        submissions.grade_submission(submission.id, 101, None, teacher.id)

    assert submission.status is SubmissionStatus.SUBMITTED
    assert submission.points_earned is None
    assert GradebookEntry.query.count() == 0
    assert Notification.query.count() == 0


def test_graded_submission_cannot_be_resubmitted(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')
    submissions.grade_submission(submission.id, 80, None, teacher.id)

    with pytest.raises(InvalidState):
        submissions.submit_work(assignment.id, enrolled.id, 'Sneaky edit')


def test_returned_submission_can_be_resubmitted(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')
    submissions.grade_submission(submission.id, 50, None, teacher.id)

    returned = submissions.return_for_revision(submission.id, 'Please add sources', teacher.id)
    assert returned.status is SubmissionStatus.RETURNED
    assert returned.points_earned == 50

    resubmitted = submissions.submit_work(assignment.id, enrolled.id, 'Work with sources')
    assert resubmitted.status is SubmissionStatus.SUBMITTED
    assert resubmitted.points_earned is None

    # Gradebook keeps the last finalized grade until the next grading
    entry = GradebookEntry.query.filter_by(student_id=enrolled.id).one()
    assert entry.points_earned == 50


def test_return_requires_feedback(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    with pytest.raises(ValidationError):
        submissions.return_for_revision(submission.id, '   ', teacher.id)


def test_return_notifies_with_comment(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')
    submissions.return_for_revision(submission.id, 'Fix the intro', teacher.id)

    notification = Notification.query.filter_by(user_id=enrolled.id).one()
    assert notification.type == 'comment_added'
    assert 'Fix the intro' in notification.message


def test_grading_pending_submission_follows_config(app, teacher, enrolled, assignment):
    submission, _ = submissions.open_submission(assignment.id, enrolled.id)
    db.session.commit()
    assert submission.status is SubmissionStatus.PENDING

    app.config['ALLOW_GRADING_UNSUBMITTED'] = False
    with pytest.raises(InvalidState):
        submissions.grade_submission(submission.id, 10, None, teacher.id)

    app.config['ALLOW_GRADING_UNSUBMITTED'] = True
    graded = submissions.grade_submission(submission.id, 10, None, teacher.id)
    assert graded.status is SubmissionStatus.GRADED


def test_sink_failure_is_logged_not_raised(monkeypatch, caplog, teacher, enrolled, assignment):
    class BrokenSink:
        def send(self, event):
            raise RuntimeError('mail server down')

    monkeypatch.setattr(notifier, 'sink', BrokenSink())
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    graded = submissions.grade_submission(submission.id, 88, None, teacher.id)

    assert graded.status is SubmissionStatus.GRADED
    assert GradebookEntry.query.filter_by(student_id=enrolled.id).one().percentage == 88
    assert 'Failed to deliver grade_received notification' in caplog.text


def test_submission_reads(teacher, other_teacher, enrolled, outsider, assignment):
    assert submissions.submission_for_student(assignment.id, enrolled.id, enrolled.id) is None

    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')

    assert submissions.submission_for_student(assignment.id, enrolled.id, teacher.id).id == submission.id
    assert [s.id for s in submissions.submissions_for_assignment(assignment.id, teacher.id)] == [submission.id]
    assert [s.id for s in submissions.pending_submissions(teacher.id)] == [submission.id]
    assert submissions.pending_submissions(other_teacher.id) == []

    with pytest.raises(AccessDenied):
        submissions.submission_for_student(assignment.id, enrolled.id, outsider.id)
    with pytest.raises(AccessDenied):
        submissions.submission_for_student(assignment.id, outsider.id, outsider.id)
    with pytest.raises(NotAuthorized):
        submissions.submissions_for_assignment(assignment.id, other_teacher.id)


def test_graded_work_leaves_pending_list(teacher, enrolled, assignment):
    submission = submissions.submit_work(assignment.id, enrolled.id, 'Work')
    submissions.grade_submission(submission.id, 75, None, teacher.id)

    assert submissions.pending_submissions(teacher.id) == []
