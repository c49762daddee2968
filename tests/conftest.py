import pytest

from app import create_app
from extensions import bcrypt, db
from models import Assignment, Class, Enrollment, QuestionType, QuizQuestion, User

PASSWORD = 'password123'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, role, first_name='Test', last_name='User'):
    user = User(
        email=email,
        password=bcrypt.generate_password_hash(PASSWORD).decode('utf-8'),
        first_name=first_name,
        last_name=last_name,
        role=role
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def teacher(app):
    return make_user('teacher@school.test', 'teacher', 'Tina', 'Teacher')


@pytest.fixture
def other_teacher(app):
    return make_user('other.teacher@school.test', 'teacher', 'Otto', 'Other')


@pytest.fixture
def student(app):
    return make_user('student@school.test', 'student', 'Sam', 'Student')


@pytest.fixture
def outsider(app):
    return make_user('outsider@school.test', 'student', 'Olga', 'Outsider')


@pytest.fixture
def school_class(teacher):
    cls = Class(name='Algebra I', code='ALG101', teacher_id=teacher.id)
    db.session.add(cls)
    db.session.commit()
    return cls


@pytest.fixture
def enrolled(school_class, student):
    db.session.add(Enrollment(user_id=student.id, class_id=school_class.id))
    db.session.commit()
    return student


def make_assignment(school_class, title='Homework 1', type='assignment', max_points=100, is_published=True):
    assignment = Assignment(
        title=title,
        type=type,
        class_id=school_class.id,
        teacher_id=school_class.teacher_id,
        max_points=max_points,
        is_published=is_published
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment


@pytest.fixture
def assignment(school_class):
    return make_assignment(school_class)


@pytest.fixture
def quiz(school_class):
    """A published quiz with a multiple-choice, a true/false and an essay question"""
    quiz = make_assignment(school_class, title='Quiz 1', type='quiz', max_points=5)
    db.session.add_all([
        QuizQuestion(
            assignment_id=quiz.id,
            question_text='What is 2 + 2?',
            question_type=QuestionType.MULTIPLE_CHOICE,
            correct_answer='4',
            answer_choices='["3", "4", "5"]',
            points=2,
            order_index=1
        ),
        QuizQuestion(
            assignment_id=quiz.id,
            question_text='The earth is round.',
            question_type=QuestionType.TRUE_FALSE,
            correct_answer='True',
            points=1,
            order_index=2
        ),
        QuizQuestion(
            assignment_id=quiz.id,
            question_text='Explain why.',
            question_type=QuestionType.ESSAY,
            points=2,
            order_index=3
        ),
    ])
    db.session.commit()
    return quiz


def login(client, user):
    return client.post('/auth/login', json={'email': user.email, 'password': PASSWORD})
