"""Locate documentation tables on a page by layer-name heuristics."""

import logging
from typing import List

from figma_models import DocNode

logger = logging.getLogger(__name__)

TABLE_MARKERS = ("table", "tokens")
ROW_MARKER = "row"


def is_table_label(name: str) -> bool:
    label = (name or "").lower()
    return any(marker in label for marker in TABLE_MARKERS)


def is_row_label(name: str) -> bool:
    return ROW_MARKER in (name or "").lower()


def find_documentation_frames(page: DocNode) -> List[DocNode]:
    """Top-level frames whose own label, or any descendant's, marks a table.

    Page order is preserved; every match is returned.
    """
    frames = []
    for child in page.children:
        if is_table_label(child.name) or any(is_table_label(node.name) for node in child.walk()):
            frames.append(child)
    logger.info(f"🔎 Found {len(frames)} documentation frame(s) on page '{page.name}'")
    return frames


def find_tables(frame: DocNode) -> List[DocNode]:
    """Outermost table-labelled nodes in `frame` (the frame itself if it is one)."""
    if is_table_label(frame.name):
        return [frame]
    tables: List[DocNode] = []

    def visit(node: DocNode) -> None:
        for child in node.children:
            if is_table_label(child.name):
                tables.append(child)
            else:
                visit(child)

    visit(frame)
    return tables


def extract_rows(table: DocNode) -> List[DocNode]:
    """Row nodes in document order, header row dropped."""
    rows: List[DocNode] = []

    def visit(node: DocNode) -> None:
        for child in node.children:
            if is_row_label(child.name):
                rows.append(child)
            else:
                visit(child)

    visit(table)
    return rows[1:]
