"""
Pytest configuration and shared fixtures for dbadapter tests.

Both drivers are replaced by in-memory fakes, so the suite runs without a
SQL Server or an ODBC runtime:

- fake_pyodbc stands in for the pyodbc module used by DirectBackend
- fake_engine_factory stands in for sqlalchemy.create_engine in PooledBackend

Each fake takes a responder(sql, params) that decides what the "server"
returns for a statement.
"""

from types import SimpleNamespace

import pytest

from dbadapter.adapters import sqlserver_backends
from dbadapter.adapters.sqlserver_adapter import SqlServerConnectionInfo


# =============================================================================
# FAKE PYODBC
# =============================================================================

class FakeCursor:
    """
    Cursor over a scripted list of result sets.

    A result set is (columns, rows), or None for a statement that returns
    no rows (e.g. the INSERT part of a batch).
    """

    def __init__(self, connection):
        self.connection = connection
        self._sets = []
        self._index = 0

    def execute(self, sql, params=None):
        self.connection.driver.executed.append((sql, params))
        outcome = self.connection.driver.responder(sql, params)
        if isinstance(outcome, Exception):
            raise outcome
        self._sets = list(outcome or [None])
        self._index = 0
        return self

    @property
    def description(self):
        current = self._sets[self._index]
        if current is None:
            return None
        columns, _rows = current
        return [(name, None, None, None, None, None, True) for name in columns]

    def fetchall(self):
        _columns, rows = self._sets[self._index]
        return [tuple(row) for row in rows]

    def nextset(self):
        self._index += 1
        if self._index < len(self._sets):
            return True
        self._index = len(self._sets) - 1
        return None


class FakeOdbcConnection:
    def __init__(self, driver, connection_string, autocommit):
        self.driver = driver
        self.connection_string = connection_string
        self.autocommit = autocommit
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True
        self.driver.closed += 1


class FakePyodbc:
    def __init__(self, responder):
        self.responder = responder
        self.connect_calls = []
        self.executed = []
        self.closed = 0
        self.connect_error = None

    def connect(self, connection_string, autocommit=False):
        self.connect_calls.append(connection_string)
        if self.connect_error is not None:
            raise self.connect_error
        return FakeOdbcConnection(self, connection_string, autocommit)


def odbc_default_responder(sql, params):
    if "TestConnection" in sql:
        return [(["TestConnection"], [(1,)])]
    if sql.startswith("SELECT ? AS V"):
        return [(["V"], [(params[0],)])]
    return [None]


@pytest.fixture
def fake_pyodbc(monkeypatch):
    """Install a fake pyodbc module into the backends module."""
    driver = FakePyodbc(odbc_default_responder)
    monkeypatch.setattr(sqlserver_backends, "pyodbc", driver)
    monkeypatch.setattr(sqlserver_backends, "PYODBC_AVAILABLE", True)
    return driver


# =============================================================================
# FAKE SQLALCHEMY ENGINE
# =============================================================================

class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    @property
    def returns_rows(self):
        return self._rows is not None

    def __iter__(self):
        for row in self._rows or []:
            yield SimpleNamespace(_mapping=dict(row))


class FakeEngineConnection:
    def __init__(self, engine):
        self.engine = engine

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, statement, binds=None):
        sql = str(statement)
        self.engine.executed.append((sql, binds))
        outcome = self.engine.responder(sql, binds)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResult(outcome)

    def exec_driver_sql(self, sql):
        self.engine.executed.append((sql, None))
        outcome = self.engine.responder(sql, None)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResult(outcome)


class FakeEngine:
    def __init__(self, responder, url, kwargs):
        self.responder = responder
        self.url = url
        self.kwargs = kwargs
        self.executed = []
        self.disposed = False

    def connect(self):
        return FakeEngineConnection(self)

    def begin(self):
        return FakeEngineConnection(self)

    def dispose(self):
        self.disposed = True


def engine_default_responder(sql, binds):
    if "TestConnection" in sql:
        return [{"TestConnection": 1}]
    if sql.startswith("SELECT :param0 AS V"):
        return [{"V": binds["param0"]}]
    return None


class FakeEngineFactory:
    def __init__(self, responder=engine_default_responder):
        self.responder = responder
        self.engines = []

    def __call__(self, url, **kwargs):
        engine = FakeEngine(self.responder, url, kwargs)
        self.engines.append(engine)
        return engine

    @property
    def engine(self):
        return self.engines[-1]


@pytest.fixture
def fake_engine_factory():
    return FakeEngineFactory()


# =============================================================================
# CONNECTION INFO
# =============================================================================

@pytest.fixture
def named_instance_info():
    return SqlServerConnectionInfo(
        server="HOST\\INSTANCE",
        database="master",
        user="sa",
        password="x",
    )


@pytest.fixture
def integrated_info():
    return SqlServerConnectionInfo(server="db01", database="sales")
