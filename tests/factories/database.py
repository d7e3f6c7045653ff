"""
SQLite engine helpers for tests.
"""

from sqlalchemy import event


def enable_sqlite_savepoints(engine, begin_statement: str = "BEGIN"):
    """
    Let SQLAlchemy own BEGIN on SQLite so SAVEPOINT/begin_nested() behave.

    The driver's implicit transaction handling is switched off and the
    statement is emitted on every begin instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(begin_statement)

    return engine
