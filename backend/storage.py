"""Single-statement upserts keyed by a natural unique key."""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from models import db


def upsert(model, key_values, update_values, insert_values=None):
    """
    INSERT ... ON CONFLICT (key columns) DO UPDATE SET update_values.
    insert_values are extra columns used only when the row is new. Does not
    commit; the caller owns the transaction.
    """
    table = model.__table__
    row = dict(key_values)
    row.update(insert_values or {})
    row.update(update_values)
    dialect = db.session.get_bind().dialect.name

    if dialect in ('sqlite', 'postgresql'):
        insert_fn = sqlite_insert if dialect == 'sqlite' else pg_insert
        stmt = insert_fn(table).values(**row).on_conflict_do_update(
            index_elements=list(key_values.keys()),
            set_=update_values,
        )
        db.session.execute(stmt)
        return

    # Other backends: insert inside a savepoint, fall back to a keyed update
    try:
        with db.session.begin_nested():
            db.session.execute(table.insert().values(**row))
    except IntegrityError:
        conditions = [table.c[name] == value for name, value in key_values.items()]
        db.session.execute(table.update().where(*conditions).values(**update_values))
