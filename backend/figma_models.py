"""
Pydantic models for the plugin payloads the token sync reads.

Field aliases follow the Figma Plugin API's camelCase names so bridge
results can be validated as-is.
"""

from typing import Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RGBAColor(BaseModel):
    model_config = ConfigDict(extra='forbid')
    r: float
    g: float
    b: float
    a: Optional[float] = 1.0


class FontName(BaseModel):
    model_config = ConfigDict(extra='forbid')
    family: str
    style: str


class VariableAlias(BaseModel):
    type: Literal["VARIABLE_ALIAS"]
    id: str


VariableValue = Union[VariableAlias, RGBAColor, bool, float, str]


class VariableMode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    mode_id: str = Field(alias="modeId")
    name: str


class VariableCollection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    modes: List[VariableMode] = Field(default_factory=list)
    variable_ids: List[str] = Field(default_factory=list, alias="variableIds")

    @property
    def default_mode(self) -> Optional[VariableMode]:
        return self.modes[0] if self.modes else None

    def mode_named(self, name: str) -> Optional[VariableMode]:
        for mode in self.modes:
            if mode.name == name:
                return mode
        return None


class Variable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    resolved_type: Literal["COLOR", "FLOAT", "STRING", "BOOLEAN"] = Field(alias="resolvedType")
    variable_collection_id: str = Field(alias="variableCollectionId")
    values_by_mode: Dict[str, VariableValue] = Field(default_factory=dict, alias="valuesByMode")


class DocNode(BaseModel):
    """A canvas node as returned by `get_page_tree`."""

    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str = ""
    type: str = "FRAME"
    characters: Optional[str] = None
    font_name: Optional[FontName] = Field(default=None, alias="fontName")
    locked: bool = False
    children: List["DocNode"] = Field(default_factory=list)

    @field_validator("font_name", mode="before")
    @classmethod
    def _drop_mixed_font(cls, value: Any) -> Any:
        # Text with several fonts comes back as a sentinel string
        return value if isinstance(value, (dict, FontName)) else None

    @property
    def is_text(self) -> bool:
        return self.type == "TEXT"

    def walk(self) -> Iterator["DocNode"]:
        """Yield descendants depth-first in document order (self excluded)."""
        for child in self.children:
            yield child
            yield from child.walk()

    def first_text(self) -> Optional["DocNode"]:
        if self.is_text:
            return self
        for node in self.walk():
            if node.is_text:
                return node
        return None


DocNode.model_rebuild()
