"""
services/store.py - Atomic insert-if-absent for rows keyed by a unique constraint.

Submissions, gradebook entries and quiz answers are all "one row per pair".
Checking for a row and inserting it in two steps lets two concurrent
requests both insert, so the insert itself has to tolerate the conflict.
"""

import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from extensions import db

logger = logging.getLogger(__name__)

_CONFLICT_AWARE_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


def insert_if_absent(model, key, defaults=None):
    """
    Make sure a row exists for ``key`` and return it locked for update.

    Args:
        model: Mapped class whose table has a unique constraint on exactly
            the columns named in ``key``
        key: dict of unique-key column -> value
        defaults: extra column values used only when the row is created

    Returns:
        tuple: (row, created)
    """
    values = dict(defaults or {})
    values.update(key)

    insert = _CONFLICT_AWARE_INSERTS.get(db.engine.dialect.name)
    if insert is not None:
        stmt = insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(key)
        )
        created = db.session.execute(stmt).rowcount == 1
    else:
        created = False
        if model.query.filter_by(**key).first() is None:
            try:
                with db.session.begin_nested():
                    db.session.add(model(**values))
                created = True
            except IntegrityError:
                # Lost the race: the other writer's row is the one we update
                logger.debug("Concurrent insert on %s %s", model.__tablename__, key)

    row = model.query.filter_by(**key).with_for_update().populate_existing().one()
    return row, created
