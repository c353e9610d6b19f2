import asyncio
import json

import pytest

from figma_communicator import (
    COMMAND_LOAD_FONTS,
    COMMAND_SET_CHARACTERS,
    FigmaCommunicator,
    ToolExecutionError,
)


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send(self, data):
        self.sent.append(json.loads(data))


async def _call_and_respond(response_for_call, **communicator_kwargs):
    ws = FakeWebSocket()
    communicator = FigmaCommunicator(ws, **communicator_kwargs)
    task = asyncio.create_task(communicator.load_fonts("1:2"))
    await asyncio.sleep(0)
    call = ws.sent[0]
    communicator.handle_tool_response(response_for_call(call))
    try:
        return await task, call, communicator
    finally:
        assert communicator.pending_requests == {}


def test_send_command_resolves_with_result():
    result, call, _ = asyncio.run(
        _call_and_respond(lambda call: {"type": "tool_response", "id": call["id"], "result": {"loaded": 2}})
    )
    assert result == {"loaded": 2}
    assert call["type"] == "tool_call"
    assert call["command"] == COMMAND_LOAD_FONTS
    assert call["params"] == {"nodeId": "1:2"}


def test_structured_error_raises_tool_execution_error():
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(_call_and_respond(lambda call: {
            "id": call["id"],
            "error_structured": {"code": "node_not_found", "message": "No node 1:2"},
        }))
    assert excinfo.value.code == "node_not_found"
    assert excinfo.value.command == COMMAND_LOAD_FONTS
    assert str(excinfo.value) == "No node 1:2"


def test_string_error_is_wrapped():
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(_call_and_respond(lambda call: {"id": call["id"], "error": "font missing"}))
    assert excinfo.value.code == "unknown_plugin_error"
    assert excinfo.value.message == "font missing"


def test_success_false_result_is_a_failure():
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(_call_and_respond(lambda call: {
            "id": call["id"],
            "result": {"success": False, "message": "Selection is locked"},
        }))
    assert excinfo.value.code == "plugin_reported_failure"


def test_timeout_cleans_up_pending_request():
    async def scenario():
        communicator = FigmaCommunicator(FakeWebSocket(), timeout=0.01)
        with pytest.raises(asyncio.TimeoutError):
            await communicator.set_characters("1:2", "Hi")
        return communicator

    communicator = asyncio.run(scenario())
    assert communicator.pending_requests == {}
    assert communicator.request_meta == {}


def test_unknown_response_id_is_ignored():
    async def scenario():
        ws = FakeWebSocket()
        communicator = FigmaCommunicator(ws)
        task = asyncio.create_task(communicator.set_characters("1:2", "Hi"))
        await asyncio.sleep(0)
        communicator.handle_tool_response({"id": "other", "result": {}})
        communicator.handle_tool_response({"result": {}})
        assert not task.done()
        assert ws.sent[0]["command"] == COMMAND_SET_CHARACTERS
        communicator.cleanup_pending_requests()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_send_without_websocket_fails():
    with pytest.raises(RuntimeError):
        asyncio.run(FigmaCommunicator(None).get_selection_snapshot())
