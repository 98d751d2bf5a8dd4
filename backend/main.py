import json
import os
import sys
import signal
import logging
import asyncio
from typing import Dict, Any, List, Optional
import websockets
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from agents import Agent, Runner, ModelSettings
from agents.extensions.models.litellm_model import LitellmModel

from agents.tracing import set_tracing_disabled
set_tracing_disabled(True)

from figma_communicator import FigmaCommunicator, set_communicator
from reconcile import SyncSettings, run_sync
from system_prompt import SYSTEM_PROMPT
import figma_tools

logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] [agent] [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%dT%H:%M:%S'
)
logger = logging.getLogger(__name__)

MESSAGE_TYPE_JOIN = "join"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_PROGRESS_UPDATE = "progress_update"
MESSAGE_TYPE_USER_PROMPT = "user_prompt"
MESSAGE_TYPE_TOOL_RESPONSE = "tool_response"
MESSAGE_TYPE_ERROR = "error"
MESSAGE_TYPE_NEW_CHAT = "new_chat"

COMMAND_SYNC_DOCS = "sync-docs"

AGENT_TOOLS = [figma_tools.get_token_table, figma_tools.audit_token_docs, figma_tools.sync_token_docs]


class FigmaAgent:
    """Bridge client. Runs the token docs assistant, or a single sync."""

    def __init__(self, bridge_url: str, channel: str, model: Optional[str] = None, api_key: Optional[str] = None):
        self.bridge_url = bridge_url
        self.channel = channel
        self.websocket: Optional[Any] = None
        self.running = True
        self.reconnect_delay = 1
        self.max_reconnect_delay = 30
        self._background_tasks: set[asyncio.Task] = set()
        self.communicator: Optional[FigmaCommunicator] = None
        self.history: List[Dict[str, Any]] = []

        self.agent: Optional[Agent] = None
        if model and api_key:
            self.agent = Agent(
                name="TokenDocs",
                instructions=SYSTEM_PROMPT,
                model=LitellmModel(model=model, api_key=api_key),
                model_settings=ModelSettings(include_usage=True),
                tools=AGENT_TOOLS,
            )
            logger.info(f"🧰 Tools enabled: {', '.join(t.name for t in AGENT_TOOLS)}")
        try:
            self.max_turns = int(os.getenv("AGENT_MAX_TURNS", "10"))
        except ValueError:
            self.max_turns = 10

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        if not self.websocket:
            raise RuntimeError("WebSocket not connected")
        await self.websocket.send(json.dumps(payload))

    async def connect(self) -> bool:
        """Connect to the bridge and join as agent"""
        try:
            logger.info(f"Connecting to bridge at {self.bridge_url}")
            self.websocket = await websockets.connect(self.bridge_url, max_size=None, ping_interval=30, ping_timeout=10)
            await self._send_json({"type": MESSAGE_TYPE_JOIN, "role": "agent", "channel": self.channel})
            logger.info(f"Sent join message for channel: {self.channel}")
            await self._send_json({"type": MESSAGE_TYPE_PING})

            tool_timeout = float(os.getenv("FIGMA_TOOL_TIMEOUT", "30.0"))
            self.communicator = FigmaCommunicator(self.websocket, timeout=tool_timeout)
            set_communicator(self.communicator)
            logger.info(f"Initialized FigmaCommunicator for tool calls (timeout: {tool_timeout}s)")

            self.reconnect_delay = 1
            return True
        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            return False

    async def handle_message(self, message: Dict[str, Any]) -> None:
        msg_type = message.get("type")
        logger.debug(f"🔍 Message received - Type: '{msg_type}', Keys: {list(message.keys())}")

        handlers = {
            MESSAGE_TYPE_SYSTEM: self._handle_system,
            MESSAGE_TYPE_PONG: self._handle_pong,
            MESSAGE_TYPE_PROGRESS_UPDATE: self._handle_progress_update,
            MESSAGE_TYPE_USER_PROMPT: self._handle_user_prompt,
            MESSAGE_TYPE_TOOL_RESPONSE: self._handle_tool_response,
            MESSAGE_TYPE_NEW_CHAT: self._handle_new_chat,
            MESSAGE_TYPE_ERROR: self._handle_bridge_error,
        }
        handler = handlers.get(msg_type, self._handle_unknown)
        await handler(message)

    async def _handle_system(self, message: Dict[str, Any]) -> None:
        sys_msg = message.get('message')
        logger.info(f"🔧 System message: {sys_msg}")
        if isinstance(sys_msg, str) and 'disconnected' in sys_msg.lower() and 'plugin' in sys_msg.lower():
            await self.cancel_active_operations(reason="plugin_disconnected")

    async def _handle_pong(self, _: Dict[str, Any]) -> None:
        logger.info("🏓 Received pong response")

    async def _handle_progress_update(self, message: Dict[str, Any]) -> None:
        logger.debug(f"📈 Progress update received: {message.get('message') or {}}")

    async def _handle_user_prompt(self, message: Dict[str, Any]) -> None:
        prompt = message.get("prompt", "")
        logger.info(f"💬 Received user prompt: {prompt}")
        if self.agent is None:
            await self._send_json({
                "type": "agent_response",
                "prompt": "The assistant is not configured (LITELLM_API_KEY missing).",
                "is_final": True
            })
            return
        task = asyncio.create_task(self._answer(prompt))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _handle_tool_response(self, message: Dict[str, Any]) -> None:
        if self.communicator:
            self.communicator.handle_tool_response(message)
        else:
            logger.warning("Received tool_response but communicator not initialized")

    async def _handle_bridge_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"Bridge error: {message.get('message', 'Unknown error')}")

    async def _handle_unknown(self, message: Dict[str, Any]) -> None:
        logger.debug(f"Ignoring unknown message type: {message.get('type')}")

    async def _handle_new_chat(self, _: Dict[str, Any]) -> None:
        await self.cancel_active_operations("new_chat")
        self.history = []
        logger.info("🧼 Cleared conversation history for new chat")

    async def _answer(self, user_prompt: str) -> None:
        """Stream one assistant turn back to the plugin chat."""
        input_items = self.history + [{"role": "user", "content": user_prompt or ""}]
        full_response = ""
        try:
            stream_result = Runner.run_streamed(self.agent, input=input_items, max_turns=self.max_turns)
            async for event in stream_result.stream_events():
                if event.type == "raw_response_event" and getattr(event.data, "type", "") == "response.output_text.delta":
                    chunk_text = event.data.delta
                    full_response += chunk_text
                    await self._send_json({"type": "agent_response_chunk", "chunk": chunk_text, "is_partial": True})
                elif event.type == "run_item_stream_event":
                    logger.info(f"🧰 Stream event: {getattr(event.item, 'type', 'unknown')}")
            self.history = stream_result.to_input_list()
        except asyncio.CancelledError:
            logger.info("🛑 Streaming task cancelled")
            raise
        except Exception as e:
            logger.error(f"❌ Agent run failed: {e}")
            full_response = f"I'm having trouble processing your request right now. Error: {str(e)}"

        await self._send_json({"type": "agent_response", "prompt": full_response.strip(), "is_final": True})
        logger.info(f"✨ Sent final response with length: {len(full_response)} chars")

    async def cancel_active_operations(self, reason: str = "") -> None:
        """Cancel in-flight assistant turns and pending tool calls."""
        if self._background_tasks:
            logger.info(f"🧹 Cancelling {len(self._background_tasks)} active task(s) ({reason})")
            for task in list(self._background_tasks):
                if not task.done():
                    task.cancel()
            await asyncio.sleep(0)
        if self.communicator:
            self.communicator.cleanup_pending_requests()

    async def listen(self) -> None:
        """Listen for messages from the bridge"""
        logger.info("🎧 Starting to listen for messages from bridge")
        while self.running and self.websocket:
            try:
                raw_message = await self.websocket.recv()
            except asyncio.CancelledError:
                logger.info("🛑 Listen loop cancelled")
                break
            except Exception as e:
                logger.error(f"❌ Error receiving message: {e}")
                break

            if not raw_message:
                continue
            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError as e:
                logger.error(f"❌ Failed to decode message: {e}, Raw: {raw_message}")
                continue
            try:
                await self.handle_message(message)
            except Exception as e:
                logger.error(f"❌ Error handling message: {e}")

    async def run_with_reconnect(self) -> None:
        """Assistant mode: stay connected, answering prompts."""
        while self.running:
            try:
                if await self.connect():
                    logger.info("🌉 Connected to bridge successfully")
                    await self.listen()
                else:
                    logger.warning("Failed to connect to bridge")
            except Exception as e:
                logger.error(f"Unexpected error: {e}")

            if self.running:
                logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
                await asyncio.sleep(self.reconnect_delay)
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def sync_once(self, settings: SyncSettings) -> str:
        """Single invocation: connect, reconcile once, return the printable summary."""
        if not await self.connect():
            return f"❌ Token docs sync failed: could not connect to bridge at {self.bridge_url}"
        listener = asyncio.create_task(self.listen())
        try:
            report = await run_sync(settings)
            return report.summary()
        finally:
            self.running = False
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)
            if self.websocket:
                await self.websocket.close()

    def shutdown(self) -> None:
        logger.info("Shutting down agent")
        self.running = False
        if self.communicator:
            self.communicator.cleanup_pending_requests()
            logger.info("Cleaned up pending tool calls")
        set_communicator(None)
        self.websocket = None


def get_config():
    """Get configuration from environment variables (.env supported)."""
    command = sys.argv[1] if len(sys.argv) > 1 else None
    bridge_url = os.getenv("BRIDGE_URL", "ws://localhost:3055")
    channel = os.getenv("FIGMA_CHANNEL") or "figma-copilot-default"
    model = os.getenv("LITELLM_MODEL", "gpt-4.1-nano")
    api_key = os.getenv("LITELLM_API_KEY")

    if command not in (None, COMMAND_SYNC_DOCS):
        logger.error(f"Unknown command '{command}'. Usage: main.py [{COMMAND_SYNC_DOCS}]")
        sys.exit(2)
    if command is None and not api_key:
        logger.error("LITELLM_API_KEY environment variable is required for assistant mode")
        sys.exit(1)

    return command, bridge_url, channel, model, api_key


def main():
    command, bridge_url, channel, model, api_key = get_config()
    logger.info(f"Bridge URL: {bridge_url}")
    logger.info(f"Channel: {channel}")

    if command == COMMAND_SYNC_DOCS:
        agent = FigmaAgent(bridge_url, channel)
        try:
            summary = asyncio.run(agent.sync_once(SyncSettings.from_env()))
        except Exception as e:
            logger.error(f"❌ Token docs sync failed: {e}")
            summary = f"❌ Token docs sync failed: {e}"
        finally:
            agent.shutdown()
        print(summary)
        return

    logger.info(f"Starting Token Docs assistant (LiteLLM model: {model})")
    agent = FigmaAgent(bridge_url, channel, model, api_key)

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
