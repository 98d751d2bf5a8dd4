"""Tests for the plugin RPC layer and the bridge wrappers."""

import asyncio
import json

import pytest

import figma_bridge
from figma_communicator import FigmaCommunicator, ToolExecutionError, set_communicator


class FakeWebSocket:
    """Records sent frames; answers tool_calls through a callback."""

    def __init__(self):
        self.sent = []
        self.on_tool_call = None

    async def send(self, raw):
        message = json.loads(raw)
        self.sent.append(message)
        if message.get("type") == "tool_call" and self.on_tool_call:
            asyncio.get_running_loop().call_soon(self.on_tool_call, message)


@pytest.fixture
def websocket():
    return FakeWebSocket()


@pytest.fixture
def communicator(websocket):
    comm = FigmaCommunicator(websocket, timeout=0.5)
    set_communicator(comm)
    yield comm
    set_communicator(None)


class TestFigmaCommunicator:
    """tool_call / tool_response round trips."""

    async def test_result_resolves_call(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response({"id": m["id"], "result": {"ok": 1}})

        assert await communicator.send_command("get_page_tree") == {"ok": 1}
        assert communicator.pending_requests == {}
        statuses = [m["message"]["status"] for m in websocket.sent if m["type"] == "progress_update"]
        assert statuses == ["tool_called", "step_succeeded"]

    async def test_structured_error(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response(
            {"id": m["id"], "error_structured": {"code": "node_locked", "message": "locked", "details": {"id": "1"}}}
        )

        with pytest.raises(ToolExecutionError) as exc_info:
            await communicator.send_command("set_text_characters", {"node_id": "1"})
        assert exc_info.value.code == "node_locked"
        assert exc_info.value.command == "set_text_characters"

    async def test_string_error_is_parsed(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response(
            {"id": m["id"], "error": json.dumps({"code": "font_load_failed", "message": "nope"})}
        )

        with pytest.raises(ToolExecutionError) as exc_info:
            await communicator.send_command("set_text_characters")
        assert exc_info.value.code == "font_load_failed"

    async def test_plain_error_text(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response({"id": m["id"], "error": "kaboom"})

        with pytest.raises(ToolExecutionError) as exc_info:
            await communicator.send_command("get_local_variables")
        assert exc_info.value.code == "unknown_plugin_error"
        assert str(exc_info.value) == "kaboom"

    async def test_success_false_result(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response(
            {"id": m["id"], "result": {"success": False, "message": "variables_api_unavailable"}}
        )

        with pytest.raises(ToolExecutionError) as exc_info:
            await communicator.send_command("get_local_variables")
        assert exc_info.value.code == "plugin_reported_failure"

    async def test_timeout(self, communicator):
        communicator.timeout = 0.05

        with pytest.raises(asyncio.TimeoutError):
            await communicator.send_command("get_page_tree")
        assert communicator.pending_requests == {}

    async def test_unknown_id_is_ignored(self, communicator):
        communicator.handle_tool_response({"id": "nope", "result": {}})
        communicator.handle_tool_response({"result": {}})

    async def test_cleanup_cancels_pending(self, communicator):
        task = asyncio.create_task(communicator.send_command("get_page_tree"))
        await asyncio.sleep(0.01)
        communicator.cleanup_pending_requests()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestFigmaBridge:
    """Typed wrappers over send_command."""

    async def test_parses_variables(self, websocket, communicator):
        payload = {"variables": [{
            "id": "V:1", "name": "spacing/md", "resolvedType": "FLOAT",
            "variableCollectionId": "C:1", "valuesByMode": {"1:0": 16},
        }]}
        websocket.on_tool_call = lambda m: communicator.handle_tool_response({"id": m["id"], "result": payload})

        variables = await figma_bridge.get_local_variables()
        assert variables[0].name == "spacing/md"
        assert variables[0].values_by_mode == {"1:0": 16.0}

    async def test_invalid_payload(self, websocket, communicator):
        websocket.on_tool_call = lambda m: communicator.handle_tool_response(
            {"id": m["id"], "result": {"collections": [{"name": "no id"}]}}
        )

        with pytest.raises(ToolExecutionError) as exc_info:
            await figma_bridge.get_local_variable_collections()
        assert exc_info.value.code == "invalid_plugin_payload"

    async def test_timeout_becomes_communication_error(self, communicator):
        communicator.timeout = 0.05

        with pytest.raises(ToolExecutionError) as exc_info:
            await figma_bridge.get_page_tree()
        assert exc_info.value.code == "communication_error"

    async def test_set_text_requires_node_id(self, communicator):
        with pytest.raises(ToolExecutionError) as exc_info:
            await figma_bridge.set_text_characters("", "x")
        assert exc_info.value.code == "missing_parameter"
