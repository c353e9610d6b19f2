import json
import os
import sys
import signal
import logging
import asyncio
from typing import Dict, Any, Optional
import websockets
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from figma_communicator import FigmaCommunicator, ToolExecutionError
from copy_client import CopyServiceClient, CopyServiceError, ConfigurationError
from design_nodes import SelectionSnapshot, parse_selection_snapshot, resolve_element_context
from generation_history import HistoryStore
from plugin_data import DocumentDataStore, get_project_context, set_project_context
from request_assembler import assemble_request, record_generation
from surrounding_copy import CollectionLimits

logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] [agent] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%dT%H:%M:%S'
)
logger = logging.getLogger(__name__)

# Bridge housekeeping
MESSAGE_TYPE_JOIN = "join"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_TOOL_RESPONSE = "tool_response"

# Triggers from the plugin UI / host
MESSAGE_TYPE_GET_CONTEXT = "get-context"
MESSAGE_TYPE_SAVE_CONTEXT = "save-context"
MESSAGE_TYPE_GENERATE = "generate"
MESSAGE_TYPE_APPLY_TEXT = "apply-text"
MESSAGE_TYPE_CLOSE = "close"
MESSAGE_TYPE_SELECTION_CHANGED = "selection-changed"

# Replies to the plugin UI
MESSAGE_TYPE_CONTEXT_DATA = "context-data"
MESSAGE_TYPE_GENERATED = "generated"
MESSAGE_TYPE_ERROR = "error"
MESSAGE_TYPE_NOTIFY = "notify"
MESSAGE_TYPE_CLOSE_PLUGIN = "close-plugin"


class CopyAssistantAgent:
    def __init__(
        self,
        bridge_url: str,
        channel: str,
        api_endpoint: Optional[str],
        api_secret: Optional[str],
        data_store: DocumentDataStore,
        limits: CollectionLimits = CollectionLimits(),
        tool_timeout: Optional[float] = 30.0,
        api_timeout: Optional[float] = None,
    ):
        self.bridge_url = bridge_url
        self.channel = channel
        self.api_endpoint = api_endpoint
        self.api_secret = api_secret
        self.data_store = data_store
        self.limits = limits
        self.tool_timeout = tool_timeout
        self.api_timeout = api_timeout
        self.websocket = None
        self.running = True
        self.reconnect_delay = 1  # Start with 1 second
        self.max_reconnect_delay = 30  # Max 30 seconds
        self._keep_alive_task = None
        self._background_tasks: set[asyncio.Task] = set()
        self.communicator: Optional[FigmaCommunicator] = None

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        """Send a JSON-serializable payload over the websocket."""
        if not self.websocket:
            raise RuntimeError("WebSocket not connected")
        await self.websocket.send(json.dumps(payload, ensure_ascii=False))

    async def _notify(self, message: str, error: bool = False) -> None:
        await self._send_json({"type": MESSAGE_TYPE_NOTIFY, "message": message, "error": error})

    async def _send_error(self, message: str) -> None:
        await self._send_json({"type": MESSAGE_TYPE_ERROR, "message": message})

    async def _read_selection(self, message: Optional[Dict[str, Any]] = None) -> SelectionSnapshot:
        """Use the snapshot carried by the message, otherwise ask the plugin for one."""
        raw = (message or {}).get("snapshot")
        if raw is None:
            if not self.communicator:
                raise RuntimeError("Communicator not initialized")
            raw = await self.communicator.get_selection_snapshot()
        return parse_selection_snapshot(raw)

    def _selection_message(self, msg_type: str, snapshot: SelectionSnapshot) -> Dict[str, Any]:
        selected_text = snapshot.selected_text
        element = resolve_element_context(snapshot.selected_text_node)
        return {
            "type": msg_type,
            "selectedText": selected_text,
            "hasSelection": selected_text is not None,
            "elementContext": element.to_message() if element else None,
        }

    def _api_client(self, message: Dict[str, Any]) -> CopyServiceClient:
        endpoint = message.get("apiEndpoint") or self.api_endpoint
        secret = message.get("apiSecret") or self.api_secret
        return CopyServiceClient(endpoint, secret, timeout=self.api_timeout)

    async def connect(self) -> bool:
        """Connect to the bridge and join the plugin's channel"""
        try:
            logger.info(f"Connecting to bridge at {self.bridge_url}")
            # Page snapshots can be large
            self.websocket = await websockets.connect(self.bridge_url, max_size=None)

            await self._send_json({"type": MESSAGE_TYPE_JOIN, "role": "agent", "channel": self.channel})
            logger.info(f"Sent join message for channel: {self.channel}")
            await self._send_json({"type": MESSAGE_TYPE_PING})

            self._keep_alive_task = asyncio.create_task(self._websocket_keep_alive())
            logger.info("💓 Started WebSocket keep-alive mechanism")

            self.communicator = FigmaCommunicator(self.websocket, timeout=self.tool_timeout)
            logger.info(f"Initialized FigmaCommunicator (timeout: {self.tool_timeout}s)")

            self.reconnect_delay = 1
            return True

        except (OSError, websockets.WebSocketException) as e:
            logger.error(f"Failed to connect: {e}")
            return False

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Dispatch one decoded bridge message to its handler."""
        msg_type = message.get("type")
        logger.info(f"🔍 Message received - Type: '{msg_type}', Keys: {list(message.keys())}")

        handlers = {
            MESSAGE_TYPE_SYSTEM: self._handle_system,
            MESSAGE_TYPE_PONG: self._handle_pong,
            MESSAGE_TYPE_TOOL_RESPONSE: self._handle_tool_response,
            MESSAGE_TYPE_ERROR: self._handle_bridge_error,
            MESSAGE_TYPE_GET_CONTEXT: self._handle_get_context,
            MESSAGE_TYPE_SAVE_CONTEXT: self._handle_save_context,
            MESSAGE_TYPE_GENERATE: self._schedule_generate,
            MESSAGE_TYPE_APPLY_TEXT: self._handle_apply_text,
            MESSAGE_TYPE_CLOSE: self._handle_close,
            MESSAGE_TYPE_SELECTION_CHANGED: self._handle_selection_changed,
        }

        handler = handlers.get(msg_type, self._handle_unknown)
        await handler(message)

    async def _handle_system(self, message: Dict[str, Any]) -> None:
        logger.info(f"🔧 System message: {message.get('message')}")

    async def _handle_pong(self, _: Dict[str, Any]) -> None:
        logger.info("🏓 Received pong")

    async def _handle_tool_response(self, message: Dict[str, Any]) -> None:
        if self.communicator:
            self.communicator.handle_tool_response(message)
        else:
            logger.warning("Received tool_response but communicator not initialized")

    async def _handle_bridge_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"Bridge error: {message.get('message', 'Unknown error')}")

    async def _handle_unknown(self, message: Dict[str, Any]) -> None:
        logger.debug(f"Ignoring unknown message type: {message.get('type')}")

    async def _handle_get_context(self, message: Dict[str, Any]) -> None:
        snapshot = await self._read_selection(message)
        reply = self._selection_message(MESSAGE_TYPE_CONTEXT_DATA, snapshot)
        reply["context"] = get_project_context(self.data_store, snapshot.file_key)
        await self._send_json(reply)

    async def _handle_save_context(self, message: Dict[str, Any]) -> None:
        file_key = message.get("fileKey")
        if file_key is None:
            file_key = (await self._read_selection()).file_key
        set_project_context(self.data_store, file_key, message.get("context") or "")
        logger.info(f"📝 Saved project context for {file_key or 'unsaved file'}")
        await self._notify("Project context saved ✓")

    async def _handle_selection_changed(self, message: Dict[str, Any]) -> None:
        snapshot = await self._read_selection(message)
        await self._send_json(self._selection_message(MESSAGE_TYPE_SELECTION_CHANGED, snapshot))

    async def _schedule_generate(self, message: Dict[str, Any]) -> None:
        # Run in the background so tool_responses keep flowing through listen()
        task = asyncio.create_task(self.generate(message))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def generate(self, message: Dict[str, Any]) -> None:
        """Handle one ``generate`` trigger end to end."""
        try:
            await self._run_generate(message)
        except asyncio.CancelledError:
            logger.info("🛑 Generate task cancelled")
            raise
        except Exception as e:
            logger.error(f"❌ Generate failed: {e}")
            try:
                await self._send_error(str(e) or type(e).__name__)
            except (RuntimeError, websockets.ConnectionClosed) as send_error:
                logger.warning(f"Could not report generate failure to the UI: {send_error}")

    async def _run_generate(self, message: Dict[str, Any]) -> None:
        client = self._api_client(message)
        if not client.endpoint:
            logger.error("❌ API endpoint not configured")
            await self._notify("API endpoint not configured", error=True)
            await self._send_error("API endpoint not configured")
            return

        try:
            snapshot = await self._read_selection(message)
        except (ToolExecutionError, asyncio.TimeoutError, RuntimeError) as e:
            logger.error(f"❌ Could not read selection: {e}")
            await self._send_error(str(e))
            return

        target = snapshot.selected_text_node
        element = resolve_element_context(target)
        history = HistoryStore(self.data_store, snapshot.file_key)
        user_request = message.get("prompt") or ""

        payload = assemble_request(
            project_context=get_project_context(self.data_store, snapshot.file_key),
            audience=message.get("audience"),
            element=element,
            root=snapshot.page,
            target=target,
            history=history,
            current_text=snapshot.selected_text,
            user_request=user_request,
            limits=self.limits,
        )
        # Drop node references before suspending; the canvas may change meanwhile
        del snapshot, target

        try:
            text = await client.generate(payload)
        except (ConfigurationError, CopyServiceError) as e:
            logger.error(f"❌ Generation failed: {e}")
            await self._send_error(str(e))
            return

        await self._send_json({"type": MESSAGE_TYPE_GENERATED, "text": text})
        record_generation(history, element, user_request, text)

    async def _handle_apply_text(self, message: Dict[str, Any]) -> None:
        snapshot = await self._read_selection(message)
        target = snapshot.selected_text_node
        if target is None:
            await self._notify("Select a text layer first", error=True)
            return

        node_id = target.id
        await self.communicator.load_fonts(node_id)
        await self.communicator.set_characters(node_id, message.get("prompt") or "")
        logger.info(f"✍️ Applied text to node {node_id}")
        await self._notify("Text applied ✓")

    async def _handle_close(self, _: Dict[str, Any]) -> None:
        await self._send_json({"type": MESSAGE_TYPE_CLOSE_PLUGIN})
        self.shutdown()

    async def listen(self) -> None:
        """Listen for messages from the bridge"""
        logger.info("🎧 Starting to listen for messages from bridge")
        while self.running and self.websocket:
            try:
                raw_message = await self.websocket.recv()
            except asyncio.CancelledError:
                logger.info("🛑 Listen loop cancelled")
                break
            except websockets.ConnectionClosed as e:
                logger.error(f"❌ Connection closed: {e}")
                break

            if not raw_message:
                logger.warning("📡 Received empty WebSocket message")
                continue

            logger.debug(f"📡 Raw WebSocket message received: {raw_message[:200]}...")
            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError as e:
                logger.error(f"❌ Failed to decode message: {e}, Raw: {raw_message}")
                continue
            if not isinstance(message, dict):
                logger.error(f"❌ Ignoring non-object message: {raw_message[:200]}")
                continue

            try:
                await self.handle_message(message)
            except Exception as e:
                logger.error(f"❌ Error handling {message.get('type')}: {e}")
                try:
                    await self._send_error(str(e))
                except (RuntimeError, websockets.ConnectionClosed):
                    pass

    async def _websocket_keep_alive(self, interval: int = 30) -> None:
        """Keep WebSocket connection alive with periodic pings"""
        try:
            while self.running and self.websocket:
                await asyncio.sleep(interval)
                if not self.websocket:
                    break
                try:
                    pong_waiter = await self.websocket.ping()
                    await asyncio.wait_for(pong_waiter, timeout=10)
                    logger.debug("💓 WebSocket keep-alive ping successful")
                except asyncio.TimeoutError:
                    logger.warning("💔 WebSocket keep-alive ping timed out")
                    break
                except websockets.ConnectionClosed as e:
                    logger.error(f"💔 WebSocket keep-alive ping failed: {e}")
                    break
        except asyncio.CancelledError:
            logger.debug("💓 WebSocket keep-alive task cancelled")

    async def run_with_reconnect(self) -> None:
        """Main loop with reconnection logic"""
        while self.running:
            if await self.connect():
                logger.info("🌉 Connected to bridge successfully")
                await self.listen()
            else:
                logger.warning("Failed to connect to bridge")

            if self.running:
                logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
                await asyncio.sleep(self.reconnect_delay)
                # Exponential backoff up to max delay
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    def shutdown(self) -> None:
        """Graceful shutdown"""
        logger.info("Shutting down agent")
        self.running = False

        if self._keep_alive_task and not self._keep_alive_task.done():
            self._keep_alive_task.cancel()

        for task in list(self._background_tasks):
            if not task.done():
                task.cancel()

        if self.communicator:
            self.communicator.cleanup_pending_requests()
            logger.info("Cleaned up pending tool calls")


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


def get_config(argv: Optional[list[str]] = None) -> Dict[str, Any]:
    """Get configuration from environment variables or CLI args"""
    config: Dict[str, Any] = {
        "bridge_url": os.getenv("BRIDGE_URL", "ws://localhost:3055"),
        "channel": os.getenv("FIGMA_CHANNEL"),
        "api_endpoint": os.getenv("COPY_API_ENDPOINT"),
        "api_secret": os.getenv("PLUGIN_API_SECRET", ""),
        "data_dir": os.getenv("COPY_DATA_DIR", ".copy-assistant"),
        "tool_timeout": _optional_float(os.getenv("FIGMA_TOOL_TIMEOUT", "30.0")),
        "api_timeout": _optional_float(os.getenv("COPY_API_TIMEOUT")),
        "limits": CollectionLimits(
            max_levels=int(os.getenv("CONTEXT_MAX_LEVELS", "4")),
            per_level_limit=int(os.getenv("CONTEXT_PER_LEVEL_LIMIT", "10")),
            total_char_limit=int(os.getenv("CONTEXT_TOTAL_CHAR_LIMIT", "1200")),
            max_snippet_length=int(os.getenv("CONTEXT_MAX_SNIPPET_LENGTH", "160")),
        ),
    }

    # Parse CLI args for overrides
    overrides = {
        "--channel=": "channel",
        "--bridge-url=": "bridge_url",
        "--api-endpoint=": "api_endpoint",
        "--api-secret=": "api_secret",
        "--data-dir=": "data_dir",
    }
    for arg in (sys.argv[1:] if argv is None else argv):
        for prefix, key in overrides.items():
            if arg.startswith(prefix):
                config[key] = arg.split("=", 1)[1]

    if not config["channel"]:
        config["channel"] = "figma-copy-assistant-default"
        logger.info(f"No channel specified, using default: {config['channel']}")

    if not config["api_endpoint"]:
        # Not fatal: the UI may send apiEndpoint with each generate message
        logger.warning("COPY_API_ENDPOINT is not set; generate requests must carry apiEndpoint")

    return config


def main():
    config = get_config()
    secret = config["api_secret"] or ""

    logger.info("Starting Figma Copy Assistant agent")
    logger.info(f"Bridge URL: {config['bridge_url']}")
    logger.info(f"Channel: {config['channel']}")
    logger.info(f"Copy API endpoint: {config['api_endpoint']}")
    logger.info(f"Copy API secret: {(secret[:4] + '****') if secret else 'None'}")
    logger.info(f"Plugin data dir: {config['data_dir']}")

    agent = CopyAssistantAgent(
        config["bridge_url"],
        config["channel"],
        config["api_endpoint"],
        secret,
        DocumentDataStore(config["data_dir"]),
        limits=config["limits"],
        tool_timeout=config["tool_timeout"],
        api_timeout=config["api_timeout"],
    )

    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        agent.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        asyncio.run(agent.run_with_reconnect())
    except KeyboardInterrupt:
        logger.info("Agent interrupted")
    finally:
        agent.shutdown()


if __name__ == "__main__":
    main()
