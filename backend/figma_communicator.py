"""
Figma Communicator - RPC Communication Layer

Sends bridge commands to the Figma plugin as `tool_call` messages and
resolves them when the matching `tool_response` arrives.
"""

import asyncio
import json
import uuid
import logging
import time
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ToolExecutionError(Exception):
    """
    Structured failure reported by the plugin (or by the bridge wrappers).

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
    Handles RPC communication with the Figma plugin.

    - Sends tool_call messages and tracks them by request id
    - Resolves futures when tool_response messages arrive
    - Applies a per-call timeout
    """

    def __init__(self, websocket, timeout: float = 30.0):
        self.websocket = websocket
        self.timeout = timeout
        self.pending_requests: Dict[str, asyncio.Future] = {}
        self.request_timestamps: Dict[str, float] = {}
        self.request_meta: Dict[str, Dict[str, Any]] = {}

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    async def _send_progress(self, status: str, message: str, data: Dict[str, Any]) -> None:
        # Progress updates are informational for the plugin UI only
        try:
            await self.websocket.send(json.dumps({
                "type": "progress_update",
                "message": {"phase": 3, "status": status, "message": message, "data": data}
            }))
        except Exception as e:
            logger.debug(f"Failed to send progress update ({status}): {e}")

    def _forget(self, request_id: str) -> Optional[float]:
        self.pending_requests.pop(request_id, None)
        self.request_meta.pop(request_id, None)
        return self.request_timestamps.pop(request_id, None)

    async def send_command(self, command: str, params: Dict[str, Any] = None) -> Any:
        """
        Send a command to the Figma plugin and wait for the response.

        Raises:
            asyncio.TimeoutError: If the plugin does not answer within `timeout`
            ToolExecutionError: If the plugin reports an error
        """
        if not self.websocket:
            raise RuntimeError("WebSocket connection not available")

        request_id = self.generate_id()
        tool_call_message = {
            "type": "tool_call",
            "id": request_id,
            "command": command,
            "params": params or {}
        }

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        self.request_timestamps[request_id] = time.time()
        self.request_meta[request_id] = {"command": command, "params": params or {}}
        logger.debug(f"📝 Added to pending requests: {request_id} (total={len(self.pending_requests)})")

        try:
            await self._send_progress("tool_called", f"🛠️ {command}", {"command": command, "id": request_id})
            logger.info(f"🚀 Sending tool_call: {command} with ID: {request_id}")
            logger.debug(f"🚀 Tool call payload: {json.dumps(tool_call_message)}")
            await self.websocket.send(json.dumps(tool_call_message))

            result = await asyncio.wait_for(future, timeout=self.timeout)
            await self._send_progress("step_succeeded", f"✅ {command}", {"command": command, "id": request_id})
            return result

        except asyncio.TimeoutError:
            start_time = self._forget(request_id)
            elapsed = time.time() - start_time if start_time else self.timeout
            logger.error(f"⏰ Tool call {command} (ID: {request_id}) timed out after {elapsed:.3f}s (limit: {self.timeout}s)")
            await self._send_progress("step_failed", f"❗ {command} timed out", {"command": command, "id": request_id, "elapsed_ms": int(elapsed * 1000)})
            raise asyncio.TimeoutError(f"Tool call '{command}' timed out after {elapsed:.1f} seconds")

        except Exception as e:
            self._forget(request_id)
            logger.error(f"Tool call {command} (ID: {request_id}) failed: {e}")
            await self._send_progress("step_failed", f"❗ {command} failed", {"command": command, "id": request_id, "error": str(e)})
            raise

    @staticmethod
    def _error_payload(message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Structured error carried by a tool_response, or None on success."""
        if isinstance(message.get("error_structured"), dict):
            return message["error_structured"]
        if "error" in message:
            raw = message["error"]
            if isinstance(raw, dict):
                return raw
            try:
                parsed = json.loads(raw)
            except (TypeError, ValueError):
                parsed = None
            return parsed if isinstance(parsed, dict) else {"code": "unknown_plugin_error", "message": str(raw)}
        result = message.get("result")
        if isinstance(result, dict) and result.get("success") is False:
            return {
                "code": result.get("code") or "plugin_reported_failure",
                "message": str(result.get("message") or "Tool reported failure"),
                "details": {"result": result},
            }
        return None

    def handle_tool_response(self, message: Dict[str, Any]) -> None:
        """Resolve the pending future matching an incoming tool_response."""
        request_id = message.get("id")
        if not request_id:
            logger.warning("❌ Received tool_response without ID")
            return

        future = self.pending_requests.get(request_id)
        if future is None:
            logger.warning(f"❌ Received tool_response for unknown ID: {request_id}")
            return
        meta = self.request_meta.get(request_id) or {}
        start_time = self._forget(request_id)
        if future.done():
            logger.debug(f"⚠️ Future already completed or cancelled for {request_id}")
            return

        elapsed = time.time() - start_time if start_time else 0
        error_payload = self._error_payload(message)
        if error_payload is not None:
            logger.error(f"❌ Tool call {request_id} failed after {elapsed:.3f}s: code={error_payload.get('code')}, message={error_payload.get('message')}")
            future.set_exception(ToolExecutionError(error_payload, command=meta.get("command"), params=meta.get("params")))
            return

        result = message.get("result", {})
        logger.info(f"✅ Tool call {request_id} completed successfully after {elapsed:.3f}s")
        logger.debug(f"🎯 Result payload: {result}")
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


# Global communicator instance (set by main.py once connected)
_communicator: Optional[FigmaCommunicator] = None

def set_communicator(communicator: Optional[FigmaCommunicator]) -> None:
    global _communicator
    _communicator = communicator

def get_communicator() -> FigmaCommunicator:
    if _communicator is None:
        raise RuntimeError("Communicator not initialized. Call set_communicator() first.")
    return _communicator

async def send_command(command: str, params: Dict[str, Any] = None) -> Any:
    """Send a command using the global communicator."""
    return await get_communicator().send_command(command, params)
