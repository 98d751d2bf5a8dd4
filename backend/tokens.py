"""
Token table collector.

Flattens variable collections into a lookup table of token name → mode name
→ display string, the same strings the documentation tables show.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from figma_models import RGBAColor, Variable, VariableAlias, VariableCollection, VariableValue

logger = logging.getLogger(__name__)

SIZE_NAME_PATTERN = re.compile(r"size|spacing|space|radius|gap|padding|margin|width|height|border|stroke", re.IGNORECASE)
SIZE_UNIT = "px"


@dataclass
class TokenWarning:
    code: str
    message: str
    token: Optional[str] = None
    mode: Optional[str] = None


TokenTable = Dict[str, Dict[str, str]]


def normalize_token_name(name: str) -> str:
    """`color/text/title` and ` color-text-title ` name the same token."""
    return "-".join(part.strip() for part in name.strip().split("/"))


def format_color(color: RGBAColor) -> str:
    def to_byte(component: Optional[float]) -> int:
        value = 1.0 if component is None else max(0.0, min(1.0, float(component)))
        return round(value * 255)

    hex_color = "#{:02X}{:02X}{:02X}".format(to_byte(color.r), to_byte(color.g), to_byte(color.b))
    alpha = to_byte(color.a)
    if alpha != 255:
        hex_color += f"{alpha:02X}"
    return hex_color


def format_number(value: float, name: str = "") -> str:
    # Shortest round-trip digits, positional notation
    text = str(int(value)) if float(value).is_integer() else format(Decimal(repr(float(value))), "f")
    if SIZE_NAME_PATTERN.search(name):
        text += SIZE_UNIT
    return text


def format_literal(value: VariableValue, variable: Variable) -> str:
    if isinstance(value, RGBAColor):
        return format_color(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value, variable.name)
    return str(value).strip()


@dataclass
class _Index:
    collections: Dict[str, VariableCollection] = field(default_factory=dict)
    variables: Dict[str, Variable] = field(default_factory=dict)

    def mode_id_for(self, variable: Variable, mode_name: str) -> Optional[str]:
        """Mode of `variable`'s collection matching `mode_name`, else its default mode."""
        collection = self.collections.get(variable.variable_collection_id)
        if collection is None:
            # Collection not shared with us; fall back to whatever the variable carries
            return next(iter(variable.values_by_mode), None)
        mode = collection.mode_named(mode_name) or collection.default_mode
        return mode.mode_id if mode else None


class AliasError(Exception):
    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(message)


def resolve_value(variable: Variable, mode_name: str, index: _Index) -> str:
    """Display string for one variable in one mode.

    Aliases resolve to the name of the terminal variable holding a literal.
    Raises AliasError when a target is missing or the chain loops.
    """
    visited = {variable.id}
    current = variable
    value = current.values_by_mode.get(index.mode_id_for(current, mode_name) or "")
    if value is None:
        raise AliasError("mode_missing", f"{variable.name} has no value for mode {mode_name}")

    while isinstance(value, VariableAlias):
        target = index.variables.get(value.id)
        if target is None:
            raise AliasError("alias_unresolved", f"{current.name} ({mode_name}) aliases missing variable {value.id}")
        if target.id in visited:
            raise AliasError("alias_unresolved", f"{variable.name} ({mode_name}) has an alias cycle through {target.name}")
        visited.add(target.id)
        current = target
        value = current.values_by_mode.get(index.mode_id_for(current, mode_name) or "")
        if value is None:
            raise AliasError("alias_unresolved", f"{current.name} has no value for mode {mode_name}")

    if current is variable:
        return format_literal(value, variable)
    return normalize_token_name(current.name)


def build_token_table(
    collections: List[VariableCollection],
    variables: List[Variable],
) -> Tuple[TokenTable, List[TokenWarning]]:
    """Build the full lookup table before any documentation row is read."""
    index = _Index(
        collections={c.id: c for c in collections},
        variables={v.id: v for v in variables},
    )
    table: TokenTable = {}
    warnings: List[TokenWarning] = []

    for variable in variables:
        collection = index.collections.get(variable.variable_collection_id)
        if collection is None:
            warnings.append(TokenWarning("collection_missing", f"{variable.name} belongs to unknown collection {variable.variable_collection_id}", token=variable.name))
            continue
        token = normalize_token_name(variable.name)
        if token in table:
            logger.warning(f"⚠️ Duplicate token name {token}; later variable wins ({collection.name})")
            warnings.append(TokenWarning("duplicate_token", f"{variable.name} in {collection.name} redefines {token}; the later variable wins", token=token))
        entry: Dict[str, str] = {}
        for mode in collection.modes:
            try:
                entry[mode.name] = resolve_value(variable, mode.name, index)
            except AliasError as e:
                logger.warning(f"⚠️ {e}")
                warnings.append(TokenWarning(e.code, str(e), token=token, mode=mode.name))
        table[token] = entry

    logger.info(f"🧮 Token table built: {len(table)} tokens from {len(collections)} collections")
    return table, warnings
