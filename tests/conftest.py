"""Shared fixtures: a fake plugin answering bridge commands in memory."""

import copy
from typing import Any, Dict, List, Optional

import pytest

import figma_bridge
from figma_communicator import ToolExecutionError


def text(node_id: str, characters: str, name: Optional[str] = None, **extra) -> Dict[str, Any]:
    node = {
        "id": node_id,
        "name": name or characters,
        "type": "TEXT",
        "characters": characters,
        "fontName": {"family": "Inter", "style": "Regular"},
    }
    node.update(extra)
    return node


def separator(node_id: str) -> Dict[str, Any]:
    return {"id": node_id, "name": "Divider", "type": "RECTANGLE"}


def doc_row(prefix: str, token: str, light: str, dark: str, name: str = "Row") -> Dict[str, Any]:
    return {
        "id": prefix,
        "name": name,
        "type": "FRAME",
        "children": [
            text(f"{prefix}:name", token, name="Token"),
            separator(f"{prefix}:sep1"),
            text(f"{prefix}:light", light, name="Light"),
            separator(f"{prefix}:sep2"),
            text(f"{prefix}:dark", dark, name="Dark"),
        ],
    }


def header_row() -> Dict[str, Any]:
    return doc_row("hdr", "Token", "Light", "Dark", name="Header Row")


def collections_payload() -> List[Dict[str, Any]]:
    return [
        {
            "id": "VariableCollectionId:1",
            "name": "Primitives",
            "modes": [{"modeId": "1:0", "name": "Value"}],
            "variableIds": ["VariableID:white", "VariableID:black", "VariableID:blue"],
        },
        {
            "id": "VariableCollectionId:2",
            "name": "Semantic",
            "modes": [{"modeId": "2:0", "name": "Light"}, {"modeId": "2:1", "name": "Dark"}],
            "variableIds": ["VariableID:title", "VariableID:spacing", "VariableID:brand"],
        },
    ]


def variables_payload() -> List[Dict[str, Any]]:
    return [
        {
            "id": "VariableID:white",
            "name": "neutral/white",
            "resolvedType": "COLOR",
            "variableCollectionId": "VariableCollectionId:1",
            "valuesByMode": {"1:0": {"r": 1, "g": 1, "b": 1, "a": 1}},
        },
        {
            "id": "VariableID:black",
            "name": "neutral/black",
            "resolvedType": "COLOR",
            "variableCollectionId": "VariableCollectionId:1",
            "valuesByMode": {"1:0": {"r": 0, "g": 0, "b": 0, "a": 1}},
        },
        {
            "id": "VariableID:blue",
            "name": "blue/500",
            "resolvedType": "COLOR",
            "variableCollectionId": "VariableCollectionId:1",
            "valuesByMode": {"1:0": {"r": 0.2, "g": 0.4, "b": 1, "a": 1}},
        },
        {
            "id": "VariableID:title",
            "name": "color/text/title",
            "resolvedType": "COLOR",
            "variableCollectionId": "VariableCollectionId:2",
            "valuesByMode": {
                "2:0": {"type": "VARIABLE_ALIAS", "id": "VariableID:black"},
                "2:1": {"type": "VARIABLE_ALIAS", "id": "VariableID:white"},
            },
        },
        {
            "id": "VariableID:spacing",
            "name": "spacing/md",
            "resolvedType": "FLOAT",
            "variableCollectionId": "VariableCollectionId:2",
            "valuesByMode": {"2:0": 16, "2:1": 16},
        },
        {
            "id": "VariableID:brand",
            "name": "color/brand",
            "resolvedType": "COLOR",
            "variableCollectionId": "VariableCollectionId:2",
            "valuesByMode": {
                "2:0": {"type": "VARIABLE_ALIAS", "id": "VariableID:blue"},
                "2:1": {"r": 1, "g": 0.5, "b": 0, "a": 1},
            },
        },
    ]


def page_payload() -> Dict[str, Any]:
    return {
        "id": "0:1",
        "name": "Design System",
        "type": "PAGE",
        "children": [
            {"id": "10:1", "name": "Cover", "type": "FRAME", "children": [text("10:2", "Welcome")]},
            {
                "id": "20:1",
                "name": "Colors",
                "type": "FRAME",
                "children": [
                    text("20:2", "Color tokens overview", name="Title"),
                    {
                        "id": "20:3",
                        "name": "Tokens Table",
                        "type": "FRAME",
                        "children": [
                            header_row(),
                            doc_row("r1", "color-text-title", "neutral-black", "neutral-black"),
                            doc_row("r2", "spacing-md", "16px", "16px"),
                            doc_row("r3", "color-ghost", "#000000", "#FFFFFF"),
                        ],
                    },
                ],
            },
        ],
    }


class FakePlugin:
    """Answers bridge commands from in-memory payloads and applies text writes."""

    def __init__(self, collections=None, variables=None, page=None):
        self.collections = collections if collections is not None else collections_payload()
        self.variables = variables if variables is not None else variables_payload()
        self.page = page if page is not None else page_payload()
        self.calls: List[tuple] = []
        self.write_errors: Dict[str, List[Dict[str, Any]]] = {}
        self.loaded_fonts: List[Dict[str, Any]] = []

    def _find(self, node: Dict[str, Any], node_id: str) -> Optional[Dict[str, Any]]:
        if node.get("id") == node_id:
            return node
        for child in node.get("children", []):
            found = self._find(child, node_id)
            if found is not None:
                return found
        return None

    def fail_write(self, node_id: str, *errors: Dict[str, Any]) -> None:
        """Queue structured errors returned by successive writes to `node_id`."""
        self.write_errors.setdefault(node_id, []).extend(errors)

    def writes(self) -> List[tuple]:
        return [(p["node_id"], p["new_characters"]) for c, p in self.calls if c == "set_text_characters"]

    async def send_command(self, command: str, params: Dict[str, Any] = None) -> Any:
        params = params or {}
        self.calls.append((command, params))
        if command == "get_local_variable_collections":
            return {"collections": copy.deepcopy(self.collections)}
        if command == "get_local_variables":
            return {"variables": copy.deepcopy(self.variables)}
        if command == "get_page_tree":
            return {"page": copy.deepcopy(self.page)}
        if command == "load_font":
            self.loaded_fonts.append(params)
            return {"loaded": True}
        if command == "set_text_characters":
            queued = self.write_errors.get(params["node_id"])
            if queued:
                raise ToolExecutionError(queued.pop(0), command=command, params=params)
            node = self._find(self.page, params["node_id"])
            if node is not None:
                node["characters"] = params["new_characters"]
            return {"modified_node_ids": [params["node_id"]]}
        raise ToolExecutionError({"code": "unknown_command", "message": command})


@pytest.fixture
def plugin(monkeypatch):
    fake = FakePlugin()
    monkeypatch.setattr(figma_bridge, "send_command", fake.send_command)
    return fake
