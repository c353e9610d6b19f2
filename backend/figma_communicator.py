"""
Figma Communicator - RPC layer between the copy agent and the Figma plugin.

The agent cannot touch the canvas directly. It sends ``tool_call`` messages
over the bridge WebSocket and waits for the matching ``tool_response``:
reading the selection snapshot, loading fonts and writing characters.
"""

import asyncio
import json
import uuid
import logging
import time
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

COMMAND_GET_SELECTION_SNAPSHOT = "get_selection_snapshot"
COMMAND_LOAD_FONTS = "load_fonts"
COMMAND_SET_CHARACTERS = "set_characters"


class ToolExecutionError(Exception):
    """
    A plugin command failed.

    Expected payload shape: { code: str, message: str, details?: dict }
    """

    def __init__(self, payload: Any, command: str | None = None, params: Dict[str, Any] | None = None):
        self.command = command
        self.params = params

        if isinstance(payload, dict):
            self.code: str = str(payload.get("code", "unknown_plugin_error"))
            self.message: str = str(payload.get("message", ""))
            self.details: Dict[str, Any] = payload.get("details", {}) or {}
            normalized_payload = payload
        else:
            self.code = "unknown_plugin_error"
            self.message = str(payload)
            self.details = {}
            normalized_payload = {"code": self.code, "message": self.message, "details": self.details}

        self.payload = normalized_payload
        super().__init__(self.message if self.message else self.code)


class FigmaCommunicator:
    """
    Tracks in-flight plugin commands by id and resolves them from tool_response messages.
    """

    def __init__(self, websocket, timeout: Optional[float] = 30.0):
        """
        Args:
            websocket: Connection with an async ``send(str)`` method
            timeout: Seconds to wait for each response; None waits indefinitely
        """
        self.websocket = websocket
        self.timeout = timeout
        self.pending_requests: Dict[str, asyncio.Future] = {}
        self.request_timestamps: Dict[str, float] = {}
        self.request_meta: Dict[str, Dict[str, Any]] = {}

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    def _forget(self, request_id: str) -> Optional[float]:
        self.pending_requests.pop(request_id, None)
        self.request_meta.pop(request_id, None)
        return self.request_timestamps.pop(request_id, None)

    async def send_command(self, command: str, params: Dict[str, Any] = None) -> Any:
        """
        Send a command to the plugin and wait for its result.

        Raises:
            asyncio.TimeoutError: If no response arrives in time
            ToolExecutionError: If the plugin reports a failure
        """
        if not self.websocket:
            raise RuntimeError("WebSocket connection not available")

        request_id = self.generate_id()
        tool_call_message = {
            "type": "tool_call",
            "id": request_id,
            "command": command,
            "params": params or {},
        }

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        self.request_timestamps[request_id] = time.time()
        self.request_meta[request_id] = {"command": command, "params": params or {}}

        try:
            logger.info(f"🚀 Sending tool_call: {command} with ID: {request_id}")
            await self.websocket.send(json.dumps(tool_call_message))
            return await asyncio.wait_for(future, timeout=self.timeout)

        except asyncio.TimeoutError:
            start_time = self._forget(request_id)
            elapsed = time.time() - start_time if start_time else (self.timeout or 0)
            logger.error(f"⏰ Tool call {command} (ID: {request_id}) timed out after {elapsed:.3f}s")
            raise asyncio.TimeoutError(f"Tool call '{command}' timed out after {elapsed:.1f} seconds")

        except Exception as e:
            self._forget(request_id)
            logger.error(f"Tool call {command} (ID: {request_id}) failed: {e}")
            raise

    def handle_tool_response(self, message: Dict[str, Any]) -> None:
        """Resolve the pending future that matches ``message['id']``."""
        request_id = message.get("id")
        if not request_id:
            logger.warning("❌ Received tool_response without ID")
            return

        future = self.pending_requests.pop(request_id, None)
        start_time = self.request_timestamps.pop(request_id, None)
        meta = self.request_meta.pop(request_id, None) or {}
        cmd = meta.get("command")
        params = meta.get("params")

        if not future:
            logger.warning(f"❌ Received tool_response for unknown ID: {request_id}")
            return
        if future.done():
            logger.debug(f"⚠️ Future already completed for {request_id}")
            return

        elapsed = time.time() - start_time if start_time else 0

        error_val = message.get("error_structured") or message.get("error")
        if error_val:
            if isinstance(error_val, str):
                try:
                    error_val = json.loads(error_val)
                except json.JSONDecodeError:
                    pass
            if not isinstance(error_val, dict):
                error_val = {"code": "unknown_plugin_error", "message": str(error_val)}
            logger.error(f"❌ Tool call {cmd} ({request_id}) failed after {elapsed:.3f}s: {error_val.get('message')}")
            future.set_exception(ToolExecutionError(error_val, command=cmd, params=params))
            return

        result = message.get("result", {})
        if isinstance(result, dict) and result.get("success") is False:
            err_text = result.get("message") or "Tool reported failure"
            logger.error(f"❌ Tool call {cmd} ({request_id}) reported failure after {elapsed:.3f}s: {err_text}")
            future.set_exception(ToolExecutionError(
                {"code": "plugin_reported_failure", "message": str(err_text), "details": {"result": result}},
                command=cmd,
                params=params,
            ))
            return

        logger.info(f"✅ Tool call {cmd} ({request_id}) completed after {elapsed:.3f}s")
        future.set_result(result)

    def cleanup_pending_requests(self) -> None:
        """Cancel all pending requests (called on shutdown)."""
        for request_id, future in self.pending_requests.items():
            if not future.done():
                future.cancel()
                logger.info(f"Cancelled pending request: {request_id}")
        self.pending_requests.clear()
        self.request_timestamps.clear()
        self.request_meta.clear()

    async def get_selection_snapshot(self) -> Any:
        return await self.send_command(COMMAND_GET_SELECTION_SNAPSHOT)

    async def load_fonts(self, node_id: str) -> Any:
        return await self.send_command(COMMAND_LOAD_FONTS, {"nodeId": node_id})

    async def set_characters(self, node_id: str, text: str) -> Any:
        return await self.send_command(COMMAND_SET_CHARACTERS, {"nodeId": node_id, "text": text})
