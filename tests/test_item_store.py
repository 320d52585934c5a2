"""Tests for the conversation item store."""

from assistant.models.items import (
    Annotation,
    AssistantMessage,
    SystemMessage,
    ToolCallRequest,
    ToolCallResult,
    UserMessage,
)
from assistant.services.item_store import ConversationItemStore


class TestAppend:
    """Tests for the committed log."""

    def test_append_preserves_order(self):
        store = ConversationItemStore()
        items = [UserMessage(text="hi"), AssistantMessage(text="hello"), UserMessage(text="bye")]
        for item in items:
            store.append(item)

        assert store.all() == items
        assert len(store) == 3

    def test_all_returns_a_copy(self):
        store = ConversationItemStore()
        store.append(UserMessage(text="hi"))
        store.all().clear()
        assert len(store) == 1

    def test_displayable_excludes_system_items(self):
        store = ConversationItemStore()
        store.append(SystemMessage(text="High priority notes: ..."))
        store.append(UserMessage(text="hi"))
        store.append(SystemMessage(text="more context"))
        store.append(AssistantMessage(text="hello"))

        displayable = store.displayable()
        assert [item.type for item in displayable] == ["user_message", "assistant_message"]
        assert len(store.all()) == 4

    def test_displayable_with_drafts(self):
        store = ConversationItemStore()
        store.append(UserMessage(text="hi"))
        store.upsert_draft("m1", AssistantMessage(id="m1", text="typing"))

        assert len(store.displayable()) == 1
        assert store.displayable(include_drafts=True)[-1].text == "typing"


class TestPairing:
    """Tests for tool call request/result pairing."""

    def test_result_completes_its_request(self):
        store = ConversationItemStore()
        request = store.append(ToolCallRequest(call_id="c1", tool_name="get_weather"))
        result = store.append(ToolCallResult(call_id="c1", tool_name="get_weather", output_json={"temp": 72}))

        assert request.status == "completed"
        assert result.status == "completed"
        assert store.pending_requests() == []

    def test_failed_result_still_completes_request(self):
        store = ConversationItemStore()
        request = store.append(ToolCallRequest(call_id="c1", tool_name="create_task"))
        store.append(ToolCallResult(call_id="c1", output_json={"error": "boom"}, status="failed"))

        assert request.status == "completed"
        assert store.all()[-1].status == "failed"

    def test_orphan_result_is_stored_as_orphaned(self, caplog):
        store = ConversationItemStore("conv_1")
        request = store.append(ToolCallRequest(call_id="c1", tool_name="get_weather"))

        with caplog.at_level("WARNING"):
            orphan = store.append(ToolCallResult(call_id="unknown", output_json={}))

        assert orphan.status == "orphaned"
        assert request.status == "pending"
        assert store.all()[-1] is orphan
        assert "Protocol anomaly" in caplog.text

    def test_second_result_for_same_call_is_orphaned(self):
        store = ConversationItemStore()
        store.append(ToolCallRequest(call_id="c1", tool_name="get_weather"))
        store.append(ToolCallResult(call_id="c1", output_json={}))
        duplicate = store.append(ToolCallResult(call_id="c1", output_json={}))

        assert duplicate.status == "orphaned"

    def test_pending_requests_in_log_order(self):
        store = ConversationItemStore()
        store.append(ToolCallRequest(call_id="c1"))
        store.append(ToolCallRequest(call_id="c2"))

        assert [request.call_id for request in store.pending_requests()] == ["c1", "c2"]
        assert store.has_call_id("c2")
        assert store.get_request("c3") is None


class TestDrafts:
    """Tests for in-progress items."""

    def test_upsert_keeps_first_seen_position(self):
        store = ConversationItemStore()
        store.upsert_draft("a", AssistantMessage(id="a", text="1"))
        store.upsert_draft("b", ToolCallRequest(id="b", call_id="b"))
        store.upsert_draft("a", AssistantMessage(id="a", text="12"))

        committed = store.commit_drafts()
        assert [item.id for item in committed] == ["a", "b"]
        assert committed[0].text == "12"
        assert store.drafts() == []

    def test_commit_drops_replayed_call(self):
        store = ConversationItemStore()
        store.append(ToolCallRequest(call_id="c1"))
        store.upsert_draft("c1", ToolCallRequest(id="c1", call_id="c1"))

        assert store.commit_drafts() == []
        assert len(store) == 1

    def test_discard_drafts(self):
        store = ConversationItemStore()
        store.upsert_draft("m1", AssistantMessage(id="m1", text="partial"))

        assert store.discard_drafts() == 1
        assert store.drafts() == []
        assert store.all() == []

    def test_attach_annotations_to_committed_message(self):
        store = ConversationItemStore()
        store.append(AssistantMessage(id="m1", text="Sources say"))

        assert store.attach_annotations("m1", [Annotation(type="citation", url="https://example.com")])
        assert store.all()[0].annotations[0].url == "https://example.com"
        assert not store.attach_annotations("missing", [Annotation()])
