"""Tests for persisted record types."""

import json

import pytest

from src.store.models import (
    ConversationMessage,
    FocusSession,
    Goal,
    MoodEntry,
    Task,
    VoiceNote,
)


class TestTask:
    def test_defaults(self):
        task = Task(user_id="u1", title="Write report")
        assert task.priority == "medium"
        assert task.completed is False
        assert len(task.id) == 32
        assert task.created_at

    def test_rejects_unknown_priority(self):
        with pytest.raises(ValueError, match="priority"):
            Task(user_id="u1", title="x", priority="urgent")

    def test_row_round_trip(self):
        task = Task(user_id="u1", title="x", due_date="2025-03-07", completed=True)
        assert Task.from_row(task.to_row()) == task


class TestFocusSession:
    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError, match="session type"):
            FocusSession(user_id="u1", duration_minutes=25, type="work")

    def test_rejects_non_positive_duration(self):
        with pytest.raises(ValueError, match="positive"):
            FocusSession(user_id="u1", duration_minutes=0)

    def test_row_round_trip(self):
        session = FocusSession(user_id="u1", duration_minutes=30, type="long-break")
        restored = FocusSession.from_row(session.to_row())
        assert restored == session
        assert restored.completed_at is None


class TestVoiceNote:
    def test_embedding_stored_as_json(self):
        note = VoiceNote(user_id="u1", content="hi", embedding=[0.1, 0.2])
        assert json.loads(note.to_row()[6]) == [0.1, 0.2]
        assert VoiceNote.from_row(note.to_row()).embedding == [0.1, 0.2]

    def test_to_dict_omits_embedding(self):
        note = VoiceNote(user_id="u1", content="hi", embedding=[0.1], summary="greeting")
        data = note.to_dict()
        assert "embedding" not in data
        assert data["summary"] == "greeting"
        assert data["source"] == "voice_input"


class TestConversationMessage:
    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError, match="role"):
            ConversationMessage(user_id="u1", role="bot", content="hi")

    def test_row_round_trip(self):
        msg = ConversationMessage(user_id="u1", role="assistant", content="ok", category="coaching")
        assert ConversationMessage.from_row(msg.to_row()) == msg


class TestMoodEntry:
    @pytest.mark.parametrize(("mood", "energy"), [(0, 3), (3, 6)])
    def test_rejects_out_of_range(self, mood, energy):
        with pytest.raises(ValueError, match="between 1 and 5"):
            MoodEntry(user_id="u1", mood=mood, energy_level=energy)

    def test_accepts_bounds(self):
        entry = MoodEntry(user_id="u1", mood=1, energy_level=5)
        assert MoodEntry.from_row(entry.to_row()) == entry


def test_goal_row_round_trip():
    goal = Goal(user_id="u1", title="Run a marathon", progress=40)
    assert Goal.from_row(goal.to_row()) == goal
