import mysql.connector
import pytest

from dbstudio.app import create_app

VAR_STRING = 253


class FakeCursor:
    def __init__(self, connection, dictionary=False):
        self.connection = connection
        self.dictionary = dictionary
        self.description = None
        self.rowcount = -1
        self.closed = False
        self._rows = []

    def execute(self, operation, params=None):
        self.connection.executed.append((operation, params))
        for pattern, response in self.connection.responses:
            if pattern in operation:
                break
        else:
            response = {"rows": None, "columns": None, "rowcount": self.connection.default_rowcount}

        if response.get("error") is not None:
            raise response["error"]

        rows = response["rows"]
        if rows is None:
            self.description = None
            self._rows = []
            self.rowcount = response["rowcount"]
            return

        columns = response["columns"]
        if columns is None:
            columns = list(rows[0].keys()) if rows and isinstance(rows[0], dict) else []
        self.description = [(name, VAR_STRING, None, None, None, None, 1, 0) for name in columns]
        if self.dictionary:
            self._rows = [dict(row) for row in rows]
        else:
            self._rows = [tuple(row.values()) if isinstance(row, dict) else tuple(row) for row in rows]
        self.rowcount = len(rows)

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        self.closed = True


class FakeConnection:
    """Stands in for a mysql.connector connection; responses are matched by SQL substring."""

    def __init__(self):
        self.responses = []
        self.executed = []
        self.connect_kwargs = []
        self.default_rowcount = 0
        self.committed = False
        self.rolled_back = False
        self.closed = False
        self.database = None

    def respond(self, pattern, rows=None, columns=None, rowcount=0, error=None):
        self.responses.append((pattern, {"rows": rows, "columns": columns, "rowcount": rowcount, "error": error}))

    def statements(self):
        return [sql for sql, _ in self.executed]

    def cursor(self, dictionary=False):
        return FakeCursor(self, dictionary=dictionary)

    def get_server_info(self):
        return "8.0.36"

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def is_connected(self):
        return not self.closed

    def close(self):
        self.closed = True


@pytest.fixture
def app():
    return create_app({"TESTING": True, "GEMINI_API_KEY": "test-key", "AI_MAX_RETRIES": 3})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_db(monkeypatch):
    connection = FakeConnection()

    def connect(**kwargs):
        connection.connect_kwargs.append(kwargs)
        return connection

    monkeypatch.setattr(mysql.connector, "connect", connect)
    return connection


@pytest.fixture
def unreachable_db(monkeypatch):
    def connect(**kwargs):
        raise mysql.connector.Error(msg="Can't connect to MySQL server on 'nowhere:3306'", errno=2003)

    monkeypatch.setattr(mysql.connector, "connect", connect)
