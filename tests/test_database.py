# tests/test_database.py

"""
Exam record persistence tests.

The MySQL pool is replaced with a fake connection whose cursor records every
statement, so no server is needed.
"""

import json

import pytest

import database
from models import ExamResult, ExamStatus, Module, ModuleScore, Source


class FakeCursor:
    def __init__(self):
        self.executed = []
        self.lastrowid = 11

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def close(self):
        pass


class FakeConnection:
    def __init__(self):
        self.cursor_obj = FakeCursor()
        self.committed = False
        self.closed = False

    def cursor(self, dictionary=False):
        return self.cursor_obj

    def commit(self):
        self.committed = True

    def close(self):
        self.closed = True


@pytest.fixture
def conn(monkeypatch):
    fake = FakeConnection()
    monkeypatch.setattr(database, "get_connection", lambda: fake)
    return fake


# =============================================================================
# COMPLETING AN EXAM
# =============================================================================

class TestCompleteExam:

    def test_incomplete_result_is_not_marked_completed(self, conn):
        result = ExamResult(status=ExamStatus.INCOMPLETE, summary="IELTS Band Score: incomplete")
        database.complete_exam(3, result)

        _, params = conn.cursor_obj.executed[0]
        assert params[0] is False
        assert params[5] is None
        assert params[6] == "incomplete"
        assert params[-1] == 3
        assert conn.committed and conn.closed

    def test_complete_result_stores_bands(self, conn):
        writing = ModuleScore(module=Module.WRITING, overall=6.5, source=Source.AI)
        speaking = ModuleScore(module=Module.SPEAKING, overall=7.0, source=Source.FALLBACK)
        result = ExamResult(scores={Module.WRITING: writing, Module.SPEAKING: speaking},
                            overall_band=7.0, status=ExamStatus.COMPLETE, summary="IELTS Band Score: 7.0")
        database.complete_exam(4, result)

        _, params = conn.cursor_obj.executed[0]
        assert params[0] is True
        assert params[1:5] == (0, 0, 6.5, 7.0)
        assert params[5] == 7.0
        assert params[6] == "complete"
        assert json.loads(params[7])["scores"]["writing"]["source"] == "ai"


# =============================================================================
# QUESTION BANK
# =============================================================================

class TestAddQuestion:

    def test_task_type_is_stored(self, conn):
        question_id = database.add_question("writing", "Describe the chart.", task_type="task1")

        sql, params = conn.cursor_obj.executed[0]
        assert "task_type" in sql
        assert params[-1] == "task1"
        assert question_id == 11
