"""
Figma Bridge - typed wrappers around the plugin commands used by the token sync.

Each wrapper re-raises structured plugin errors unchanged and wraps any other
failure as a `communication_error`.
"""

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from figma_communicator import send_command, ToolExecutionError
from figma_models import DocNode, FontName, Variable, VariableCollection

logger = logging.getLogger(__name__)


async def _call(command: str, params: Dict[str, Any] | None = None) -> Any:
    try:
        return await send_command(command, params or {})
    except ToolExecutionError as te:
        logger.error(f"❌ Tool {command} raised ToolExecutionError | code={te.code} | details={te.details}")
        raise
    except Exception as e:
        logger.error(f"❌ Communication/system error in {command}: {str(e)}")
        raise ToolExecutionError({
            "code": "communication_error",
            "message": f"Failed to call {command}: {str(e)}",
            "details": {"command": command}
        }, command=command, params=params)


def _invalid_payload(command: str, error: ValidationError) -> ToolExecutionError:
    return ToolExecutionError({
        "code": "invalid_plugin_payload",
        "message": f"Unexpected {command} payload: {error.error_count()} validation error(s)",
        "details": {"command": command, "errors": error.errors(include_url=False)}
    }, command=command)


async def get_local_variable_collections() -> List[VariableCollection]:
    logger.info("🗂️ Fetching local variable collections")
    result = await _call("get_local_variable_collections")
    try:
        return [VariableCollection.model_validate(c) for c in (result or {}).get("collections", [])]
    except ValidationError as e:
        raise _invalid_payload("get_local_variable_collections", e)


async def get_local_variables() -> List[Variable]:
    logger.info("🧪 Fetching local variables")
    result = await _call("get_local_variables")
    try:
        return [Variable.model_validate(v) for v in (result or {}).get("variables", [])]
    except ValidationError as e:
        raise _invalid_payload("get_local_variables", e)


async def get_page_tree() -> DocNode:
    logger.info("🌳 Fetching current page tree")
    result = await _call("get_page_tree")
    try:
        return DocNode.model_validate((result or {}).get("page") or {})
    except ValidationError as e:
        raise _invalid_payload("get_page_tree", e)


async def load_font(font: FontName) -> Any:
    logger.info(f"🔤 Loading font {font.family} {font.style}")
    return await _call("load_font", {"family": font.family, "style": font.style})


async def set_text_characters(node_id: str, new_characters: str) -> Any:
    if not isinstance(node_id, str) or not node_id:
        raise ToolExecutionError({"code": "missing_parameter", "message": "'node_id' must be a non-empty string", "details": {"node_id": node_id}})
    logger.info(f"✏️ set_text_characters: node_id={node_id}")
    return await _call("set_text_characters", {"node_id": node_id, "new_characters": new_characters})
