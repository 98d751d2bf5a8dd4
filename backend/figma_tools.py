"""
Figma Tools - OpenAI Agent Tools

Tools the token docs assistant can call. Each one runs part of the
documentation sync against the plugin through the figma_communicator.
"""


import logging
import json
from typing import Any, Optional

from agents import function_tool

import figma_bridge
from figma_communicator import ToolExecutionError
from reconcile import SyncSettings, run_sync
from tokens import build_token_table, normalize_token_name

logger = logging.getLogger(__name__)


# ============================================
# ============ INTERNAL HELPERS ==============
# ============================================

def _to_json_string(result: Any) -> str:
    """Convert a tool result to a JSON string for model reasoning."""
    try:
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps({"result": str(result)}, ensure_ascii=False)


async def _run(command: str, dry_run: bool) -> str:
    try:
        settings = SyncSettings.from_env()
    except ValueError as e:
        logger.error(f"❌ Invalid TOKEN_DOCS_* setting for {command}: {e}")
        raise ToolExecutionError({
            "code": "invalid_config",
            "message": f"Invalid TOKEN_DOCS_* setting: {e}",
            "details": {"command": command}
        })
    settings.dry_run = dry_run
    try:
        report = await run_sync(settings)
    except ToolExecutionError:
        logger.error(f"❌ Tool {command} raised ToolExecutionError")
        raise
    payload = report.to_dict()
    payload["summary"] = report.summary()
    return _to_json_string(payload)


# ============================================
# ===============  TOOLS  ====================
# ============================================

@function_tool
async def get_token_table(name_filter: Optional[str] = None) -> str:
    """Return the resolved display value of every local variable, per mode.

    Purpose & Use Case
    --------------------
    Builds the lookup table the documentation sync compares against: token
    name → { mode name → display string }. Aliases show the name of the
    variable they finally point to, colors show as hex, and size/spacing
    numbers carry a `px` suffix.

    Parameters (Args)
    ------------------
    name_filter (str, optional): Case-insensitive substring; only tokens whose
        normalised name contains it are returned.

    Returns
    -------
    (str): JSON string { "tokens": {name: {mode: value}}, "warnings": [...] }

    Raises (Errors & Pitfalls)
    --------------------------
    ToolExecutionError: Propagated unchanged. Known codes:
      - `variables_api_unavailable`, `invalid_plugin_payload`, `communication_error`.
    """
    try:
        collections = await figma_bridge.get_local_variable_collections()
        variables = await figma_bridge.get_local_variables()
    except ToolExecutionError:
        logger.error("❌ Tool get_token_table raised ToolExecutionError")
        raise

    table, warnings = build_token_table(collections, variables)
    if name_filter:
        needle = normalize_token_name(name_filter).lower()
        table = {name: modes for name, modes in table.items() if needle in name.lower()}
    return _to_json_string({
        "tokens": table,
        "warnings": [w.__dict__ for w in warnings],
    })


@function_tool
async def audit_token_docs() -> str:
    """Compare documentation tables on the current page with the variables, without editing.

    Purpose & Use Case
    --------------------
    Dry run of the sync. Finds frames whose layers are named like "table" or
    "tokens", reads every row after the header (token name in cell 0, Light
    in cell 2, Dark in cell 4) and lists the cells that differ from the
    variables.

    Returns
    -------
    (str): JSON report with `changes` (applied=false), `orphaned_rows`,
        `undocumented_tokens`, `warnings`, and a printable `summary`.

    Agent Guidance
    --------------
    When to Use: before `sync_token_docs`, or whenever the user only wants to
    know what is out of date.
    """
    return await _run("audit_token_docs", dry_run=True)


@function_tool
async def sync_token_docs() -> str:
    """Rewrite outdated Light/Dark values in documentation tables on the current page.

    Purpose & Use Case
    --------------------
    Runs the full sync: builds the token table, finds documentation tables,
    and overwrites each mismatching text cell with the variable's value.
    Rows whose token does not exist are reported as orphaned and left alone;
    variables without a row are reported as undocumented and never added.

    Returns
    -------
    (str): JSON report with applied `changes`, `orphaned_rows`,
        `undocumented_tokens`, `warnings` and a printable `summary`.

    Raises (Errors & Pitfalls)
    --------------------------
    ToolExecutionError: only when variables or the page tree cannot be read,
    or `invalid_config` when a TOKEN_DOCS_* column setting is not an integer.
    Per-cell problems (`text_locked`, `font_not_loaded`, `write_failed`) are
    listed under `warnings` instead.

    Agent Guidance
    --------------
    Running it twice is safe; the second run reports no changes.
    """
    return await _run("sync_token_docs", dry_run=False)
