"""
services/access.py - Authorization Guard
Decides whether a principal may read or act on an entity. Call sites pick
which failure to raise; there is no global policy table.
"""

from collections import namedtuple

from errors import AccessDenied, NotAuthorized, NotFound
from extensions import db
from models import Assignment, Class, Enrollment, GradebookEntry, QuizQuestion, Submission

Access = namedtuple('Access', ['allow', 'role'])

DENIED = Access(False, None)


def get_or_404(model, ident, label=None):
    """Load a row by primary key or raise NotFound"""
    obj = db.session.get(model, ident) if ident is not None else None
    if obj is None:
        raise NotFound(f"{label or model.__name__} not found")
    return obj


# === Class/Enrollment lookup ===

def is_teacher(class_id, user_id):
    return db.session.query(
        Class.query.filter_by(id=class_id, teacher_id=user_id).exists()
    ).scalar()


def is_enrolled(class_id, user_id):
    return db.session.query(
        Enrollment.query.filter_by(class_id=class_id, user_id=user_id).exists()
    ).scalar()


# === Access decisions ===

def can_access(principal_id, resource):
    """
    Decide whether ``principal_id`` may access ``resource``.

    Returns:
        Access: (allow, role) where role is 'teacher' or 'student'
    """
    if isinstance(resource, Class):
        if resource.is_taught_by(principal_id):
            return Access(True, 'teacher')
        if resource.has_student(principal_id):
            return Access(True, 'student')
        return DENIED

    if isinstance(resource, Assignment):
        # Ownership follows the class, not the assignment's own teacher_id
        if resource.class_.is_taught_by(principal_id):
            return Access(True, 'teacher')
        if resource.is_published and is_enrolled(resource.class_id, principal_id):
            return Access(True, 'student')
        return DENIED

    if isinstance(resource, QuizQuestion):
        return can_access(principal_id, resource.assignment)

    if isinstance(resource, Submission):
        if resource.assignment.class_.is_taught_by(principal_id):
            return Access(True, 'teacher')
        if resource.student_id == principal_id:
            return Access(True, 'student')
        return DENIED

    if isinstance(resource, GradebookEntry):
        if is_teacher(resource.class_id, principal_id):
            return Access(True, 'teacher')
        if resource.student_id == principal_id:
            return Access(True, 'student')
        return DENIED

    raise TypeError(f"No access rule for {type(resource).__name__}")


def require_teacher(principal_id, resource):
    """Raise NotAuthorized unless the principal owns the resource as its teacher"""
    access = can_access(principal_id, resource)
    if not access.allow or access.role != 'teacher':
        raise NotAuthorized("Not authorized")
    return access


def require_access(principal_id, resource):
    """Raise AccessDenied unless the principal may read the resource in any role"""
    access = can_access(principal_id, resource)
    if not access.allow:
        raise AccessDenied("Access denied")
    return access
