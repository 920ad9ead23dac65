"""
Tests: student queries to the team's guide.

A member asks, the team's guide answers once; only the most recent answered
queries of a team are retained.
"""

import pytest
from sqlalchemy import select

from capstone.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from capstone.models import db
from capstone.models.notification import EmailLog
from capstone.models.query import StudentQuery
from capstone.services import query_service


def _ask_and_answer(reg_num, question):
    row = query_service.submit_query(reg_num, question)
    query_service.reply_to_query("G1", row["query_id"], f"Answer to {question}")
    return row["query_id"]


class TestSubmit:

    def test_query_addressed_to_team_guide(self, mentored_team):
        row = query_service.submit_query("S2", "  Which dataset should we use?  ")

        assert row["team_id"] == mentored_team
        assert row["guide_reg_num"] == "G1"
        assert row["team_member"] == "S2"
        assert row["question"] == "Which dataset should we use?"
        assert row["project_name"] == "Smart Irrigation Controller"
        assert row["answered"] is False
        assert row["notified"] is True

        log = db.session.execute(select(EmailLog)).scalar_one()
        assert log.template_name == "student_query"
        assert log.recipient_email == "g1@campus.example.org"

    def test_blank_question_rejected(self, mentored_team):
        with pytest.raises(ValidationError):
            query_service.submit_query("S1", "   ")

    def test_student_without_team_not_found(self, make_user):
        make_user("S9")
        with pytest.raises(NotFoundError):
            query_service.submit_query("S9", "Hello?")

    def test_team_without_guide_conflict(self, make_user, make_team):
        make_user("S1")
        make_team("TEAM-0001", "S1")
        with pytest.raises(ConflictError):
            query_service.submit_query("S1", "Who is our guide?")


class TestReply:

    def test_guide_answers_once(self, mentored_team):
        query_id = query_service.submit_query("S1", "Can we change scope?")["query_id"]

        row = query_service.reply_to_query("G1", query_id, "Yes, within the cluster")

        assert row["answered"] is True
        assert row["reply"] == "Yes, within the cluster"
        assert row["replied_at"] is not None
        with pytest.raises(ConflictError):
            query_service.reply_to_query("G1", query_id, "Changed my mind")

    def test_only_addressed_guide_may_answer(self, mentored_team):
        query_id = query_service.submit_query("S1", "Question")["query_id"]
        with pytest.raises(ForbiddenError):
            query_service.reply_to_query("E1", query_id, "Not mine to answer")

    def test_blank_reply_rejected(self, mentored_team):
        query_id = query_service.submit_query("S1", "Question")["query_id"]
        with pytest.raises(ValidationError):
            query_service.reply_to_query("G1", query_id, "")

    def test_unknown_query(self, mentored_team):
        with pytest.raises(NotFoundError):
            query_service.reply_to_query("G1", 999, "Answer")


class TestRetention:

    def test_old_answered_queries_pruned_on_new_query(self, app, mentored_team, monkeypatch):
        monkeypatch.setitem(app.config, "ANSWERED_QUERIES_KEPT", 2)
        oldest = _ask_and_answer("S1", "q1")
        kept = [_ask_and_answer("S1", "q2"), _ask_and_answer("S2", "q3")]
        open_query = query_service.submit_query("S2", "q4")["query_id"]

        ids = db.session.execute(select(StudentQuery.query_id)).scalars().all()
        assert oldest not in ids
        assert set(ids) == {*kept, open_query}

    def test_unanswered_queries_never_pruned(self, app, mentored_team, monkeypatch):
        monkeypatch.setitem(app.config, "ANSWERED_QUERIES_KEPT", 1)
        for i in range(3):
            query_service.submit_query("S1", f"open {i}")

        assert len(query_service.queries_for_team_of("S1")) == 3


class TestViews:

    def test_guide_inbox_and_unanswered_filter(self, mentored_team):
        answered = _ask_and_answer("S1", "first")
        pending = query_service.submit_query("S2", "second")["query_id"]

        everything = query_service.queries_for_guide("G1")
        assert [q["query_id"] for q in everything] == [answered, pending]
        unanswered = query_service.queries_for_guide("G1", unanswered_only=True)
        assert [q["query_id"] for q in unanswered] == [pending]

    def test_team_view_shared_by_members_newest_first(self, mentored_team):
        first = query_service.submit_query("S1", "first")["query_id"]
        second = query_service.submit_query("S2", "second")["query_id"]

        assert [q["query_id"] for q in query_service.queries_for_team_of("S1")] == [second, first]
        assert query_service.queries_for_team_of("S2") == query_service.queries_for_team_of("S1")
