"""Tests for domain connectors: real collaborator path vs deterministic mock fallback."""
import httpx
import pytest

from workflow_testlab.collaborators import (
    Collaborators,
    HttpAuthProvider,
    HttpDocumentService,
    HttpRecordStore,
)
from workflow_testlab.config import Settings
from workflow_testlab.engine import WorkflowTestEngine
from workflow_testlab.exceptions import CollaboratorError
from workflow_testlab.models import LogKind, NodeStatus
from workflow_testlab.workflows import meeting_intake_graph

CONNECTOR_KEYS = ("payload", "webhook", "googleDoc", "aiAnalysis", "deal", "processedActions", "createdTasks", "meeting")


class FakeDocuments:
    def __init__(self):
        self.calls = []

    async def create_document(self, title, content, folder_id=None):
        self.calls.append({"title": title, "content": content, "folder_id": folder_id})
        return {"id": "doc-1", "url": "https://docs.test/doc-1"}


class FakeRecords:
    """Synchronous on purpose: connectors accept plain return values too."""

    def __init__(self):
        self.inserts = []
        self.upserts = []

    def insert(self, table, rows):
        self.inserts.append((table, rows))
        return [{**row, "id": f"{table}-{i}"} for i, row in enumerate(rows)]

    def upsert(self, table, key, values):
        self.upserts.append((table, key, values))
        return {**values, "id": "rec-1"}


class FailingRecords:
    def insert(self, table, rows):
        raise RuntimeError("database is down")

    def upsert(self, table, key, values):
        raise RuntimeError("database is down")


class FakeAuth:
    async def current_user_id(self):
        return "user-42"


@pytest.fixture
def fakes():
    return Collaborators(documents=FakeDocuments(), records=FakeRecords(), auth=FakeAuth())


def data_log(state, node_id):
    return next(log for log in state.logs if log.node_id == node_id and log.kind == LogKind.DATA)


class TestMeetingIntake:
    @pytest.mark.asyncio
    async def test_real_collaborators(self, make_engine, recorder, fakes):
        nodes, edges = meeting_intake_graph()
        engine = make_engine(nodes, edges, collaborators=fakes)

        await engine.start("meeting_recorded")

        state = recorder.last
        ctx = state.shared_context
        assert all(s.status != NodeStatus.FAILED for s in state.node_states.values())
        assert ctx["webhook"]["received_by"] == "user-42"
        assert ctx["webhook"]["recording_id"] == "rec_test_001"
        assert ctx["googleDoc"]["id"] == "doc-1"
        assert fakes.documents.calls[0]["title"] == "Meeting Transcript - Discovery Call - Acme Corp"
        assert ctx["processedActions"]["count"] == 2
        assert ctx["createdTasks"]["ids"] == ["tasks-0", "tasks-1"]
        assert ctx["meeting"]["id"] == "rec-1"
        assert ctx["meeting"]["fathom_recording_id"] == "rec_test_001"

        table, key, values = fakes.records.upserts[0]
        assert (table, key) == ("meetings", "fathom_recording_id")
        assert values["owner_user_id"] == "user-42"

        log = data_log(state, "create-transcript-doc")
        assert log.message.startswith("Real:")
        assert log.payload["mode"] == "real"

    @pytest.mark.asyncio
    async def test_offline_falls_back_to_mocks(self, make_engine, recorder):
        nodes, edges = meeting_intake_graph()
        engine = make_engine(nodes, edges, collaborators=Collaborators.offline())

        await engine.start("meeting_recorded")

        state = recorder.last
        ctx = state.shared_context
        assert all(s.status != NodeStatus.FAILED for s in state.node_states.values())
        assert ctx["webhook"]["received_by"] == "test-user"
        assert ctx["googleDoc"]["id"] == "doc_create-transcript-doc"
        assert ctx["createdTasks"]["ids"] == ["task_create-tasks_1", "task_create-tasks_2"]
        assert ctx["meeting"]["id"] == "meetings_upsert-meeting"

        log = data_log(state, "upsert-meeting")
        assert log.message.startswith("Mock:")
        assert log.payload["mode"] == "mock"
        assert "not configured" in log.payload["fallback_reason"]

    @pytest.mark.asyncio
    async def test_both_paths_write_the_same_keys(self, make_engine, recorder, fakes):
        nodes, edges = meeting_intake_graph()

        await make_engine(nodes, edges, collaborators=fakes).start("meeting_recorded")
        real_keys = set(recorder.last.shared_context)
        await make_engine(nodes, edges, collaborators=Collaborators.offline()).start("meeting_recorded")
        mock_keys = set(recorder.last.shared_context)

        assert set(CONNECTOR_KEYS) <= real_keys
        assert real_keys == mock_keys

    @pytest.mark.asyncio
    async def test_action_items_are_classified(self, make_engine, recorder):
        nodes, edges = meeting_intake_graph()
        await make_engine(nodes, edges).start("meeting_recorded")

        pricing, deep_dive = recorder.last.shared_context["processedActions"]["items"]
        assert pricing["priority"] == "high"
        assert pricing["category"] == "Commercial"
        assert deep_dive["priority"] == "medium"
        assert deep_dive["category"] == "Technical"
        assert deep_dive["deadline"] == "2024-01-04"

    @pytest.mark.asyncio
    async def test_failing_store_only_affects_its_writes(self, make_engine, recorder):
        collaborators = Collaborators(documents=FakeDocuments(), records=FailingRecords(), auth=FakeAuth())
        nodes, edges = meeting_intake_graph()

        await make_engine(nodes, edges, collaborators=collaborators).start("meeting_recorded")

        state = recorder.last
        assert state.shared_context["googleDoc"]["id"] == "doc-1"
        log = data_log(state, "process-actions")
        assert log.message.startswith("Mock:")
        assert log.payload["fallback_reason"] == "database is down"
        assert state.node_states["process-actions"].status == NodeStatus.SUCCESS


def db_write_graph(**data):
    nodes = [
        {"id": "start", "type": "trigger", "data": {"label": "Start", "type": "deal_created"}},
        {"id": "write", "type": "databaseWrite", "data": {"label": "Save Deal", **data}},
    ]
    return nodes, [{"id": "e1", "source": "start", "target": "write"}]


class TestDatabaseWrite:
    @pytest.mark.asyncio
    async def test_upsert_with_mappings(self, make_engine, recorder, fakes):
        nodes, edges = db_write_graph(
            table="deals", operation="upsert", upsertKey="deal_id",
            mappings={"deal_id": "{{deal_id}}", "name": "{{deal_name}}"},
        )
        await make_engine(nodes, edges, collaborators=fakes).start()

        table, key, row = fakes.records.upserts[0]
        assert (table, key) == ("deals", "deal_id")
        assert row == {"deal_id": "test_deal_123", "name": "Standard Deal - Test Co", "user_id": "user-42"}
        assert recorder.last.shared_context["dbWrite"]["record"]["id"] == "rec-1"

    @pytest.mark.asyncio
    async def test_insert_mock(self, make_engine, recorder):
        nodes, edges = db_write_graph()
        await make_engine(nodes, edges).start()

        written = recorder.last.shared_context["dbWrite"]
        assert written["table"] == "workflow_records"
        assert written["operation"] == "insert"
        assert written["record"]["id"] == "workflow_records_write"


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://collab.test")


class TestHttpCollaborators:
    @pytest.mark.asyncio
    async def test_create_document(self):
        def handler(request):
            assert request.url.path == "/documents"
            return httpx.Response(201, json={"id": "d-9", "url": "http://docs/d-9"})

        async with mock_client(handler) as client:
            doc = await HttpDocumentService(client).create_document("Title", "Body")
        assert doc["id"] == "d-9"

    @pytest.mark.asyncio
    async def test_server_error_becomes_collaborator_error(self):
        async with mock_client(lambda request: httpx.Response(500)) as client:
            with pytest.raises(CollaboratorError):
                await HttpRecordStore(client).insert("tasks", [{"title": "x"}])

    @pytest.mark.asyncio
    async def test_upsert_sends_conflict_key(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["on_conflict"] = request.url.params["on_conflict"]
            return httpx.Response(200, json=[{"id": "m-1"}])

        async with mock_client(handler) as client:
            record = await HttpRecordStore(client).upsert("meetings", "fathom_recording_id", {"title": "x"})
        assert record == {"id": "m-1"}
        assert seen == {"method": "PUT", "on_conflict": "fathom_recording_id"}

    @pytest.mark.asyncio
    async def test_auth_falls_back_to_configured_user(self):
        async with mock_client(lambda request: httpx.Response(401)) as client:
            assert await HttpAuthProvider(client, "svc-user").current_user_id() == "svc-user"
            with pytest.raises(CollaboratorError):
                await HttpAuthProvider(client).current_user_id()

    def test_from_settings_without_url_is_offline(self):
        collaborators = Collaborators.from_settings(Settings(_env_file=None))
        with pytest.raises(CollaboratorError):
            collaborators.auth.current_user_id()


class TestClientLifecycle:
    settings = Settings(_env_file=None, node_delay_seconds=0, collaborator_base_url="http://collab.test")

    @pytest.mark.asyncio
    async def test_aclose_closes_rest_client(self):
        collaborators = Collaborators.from_settings(self.settings)
        assert not collaborators.client.is_closed

        await collaborators.aclose()
        assert collaborators.client.is_closed

    @pytest.mark.asyncio
    async def test_offline_aclose_is_a_no_op(self):
        await Collaborators.offline().aclose()

    @pytest.mark.asyncio
    async def test_engine_closes_only_collaborators_it_built(self, recorder):
        nodes = [{"id": "start", "type": "trigger", "data": {}}]
        owned = WorkflowTestEngine(nodes, [], recorder, settings=self.settings)
        await owned.aclose()
        assert owned.collaborators.client.is_closed

        shared = Collaborators.from_settings(self.settings)
        borrowed = WorkflowTestEngine(nodes, [], recorder, settings=self.settings, collaborators=shared)
        await borrowed.aclose()
        assert not shared.client.is_closed
        await shared.aclose()
