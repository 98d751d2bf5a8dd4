"""
Documentation table reconciler.

Compares the Light/Dark values shown in documentation rows with the token
table and rewrites the cells that drifted. Every problem is recorded on the
report and skipped; nothing aborts a run once the inputs are loaded.
"""

import logging
import os
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Set

import figma_bridge
from discovery import extract_rows, find_documentation_frames, find_tables
from figma_communicator import ToolExecutionError
from figma_models import DocNode
from tokens import TokenTable, TokenWarning, build_token_table, normalize_token_name

logger = logging.getLogger(__name__)

FONT_ERROR_CODES = {"font_load_failed", "font_not_loaded"}
LOCKED_ERROR_CODES = {"node_locked"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SyncSettings:
    mode_columns: Dict[str, int] = field(default_factory=lambda: {"Light": 2, "Dark": 4})
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            mode_columns={
                "Light": int(os.getenv("TOKEN_DOCS_LIGHT_COLUMN", "2")),
                "Dark": int(os.getenv("TOKEN_DOCS_DARK_COLUMN", "4")),
            },
            dry_run=_env_flag("TOKEN_DOCS_DRY_RUN"),
        )


@dataclass
class CellChange:
    frame: str
    token: str
    mode: str
    old: str
    new: str
    node_id: str
    applied: bool = True

    def log_line(self) -> str:
        return f'✅ {self.frame}/{self.token} {self.mode}: "{self.old}" → "{self.new}"'


@dataclass
class SyncReport:
    frames_scanned: int = 0
    rows_checked: int = 0
    changes: List[CellChange] = field(default_factory=list)
    orphaned_rows: List[str] = field(default_factory=list)
    undocumented_tokens: List[str] = field(default_factory=list)
    warnings: List[TokenWarning] = field(default_factory=list)
    dry_run: bool = False

    def warn(self, code: str, message: str, token: Optional[str] = None, mode: Optional[str] = None) -> None:
        logger.warning(f"⚠️ [{code}] {message}")
        self.warnings.append(TokenWarning(code, message, token=token, mode=mode))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        verb = "proposed" if self.dry_run else "applied"
        lines = [
            f"📋 Token docs sync: {self.frames_scanned} frame(s), {self.rows_checked} row(s) checked, "
            f"{len(self.changes)} change(s) {verb}"
        ]
        lines.extend(change.log_line() for change in self.changes)
        if self.orphaned_rows:
            lines.append(f"👻 Orphaned rows ({len(self.orphaned_rows)}): {', '.join(self.orphaned_rows)}")
        if self.undocumented_tokens:
            lines.append(f"📝 Undocumented tokens ({len(self.undocumented_tokens)}): {', '.join(self.undocumented_tokens)}")
        for warning in self.warnings:
            lines.append(f"⚠️ [{warning.code}] {warning.message}")
        if not self.changes and not self.warnings and not self.orphaned_rows:
            lines.append("✨ Documentation is in sync")
        return "\n".join(lines)


class Reconciler:
    def __init__(self, table: TokenTable, settings: Optional[SyncSettings] = None):
        self.table = table
        self.settings = settings or SyncSettings()
        self._documented: Set[str] = set()

    @property
    def _min_cells(self) -> int:
        return max([0, *self.settings.mode_columns.values()]) + 1

    async def run(self, frames: List[DocNode], report: Optional[SyncReport] = None) -> SyncReport:
        report = report or SyncReport(dry_run=self.settings.dry_run)
        self._documented = set()
        if not frames:
            report.warn("no_table_found", "No documentation table found on the current page")
            return report

        for frame in frames:
            await self.reconcile_frame(frame, report)

        report.undocumented_tokens = [token for token in self.table if token not in self._documented]
        for token in report.undocumented_tokens:
            logger.info(f"📝 Undocumented token: {token}")
        return report

    async def reconcile_frame(self, frame: DocNode, report: SyncReport) -> None:
        report.frames_scanned += 1
        tables = find_tables(frame)
        logger.info(f"📑 Reconciling frame '{frame.name}' ({len(tables)} table(s))")
        for table in tables:
            for row in extract_rows(table):
                await self._reconcile_row(frame.name, row, report)

    async def _reconcile_row(self, frame_name: str, row: DocNode, report: SyncReport) -> None:
        cells = row.children
        if len(cells) < self._min_cells:
            report.warn("malformed_row", f"{frame_name}/{row.name} has {len(cells)} cell(s), expected {self._min_cells}")
            return
        name_node = cells[0].first_text()
        token = normalize_token_name(name_node.characters or "") if name_node else ""
        if not token:
            report.warn("malformed_row", f"{frame_name}/{row.name} has no token name")
            return

        report.rows_checked += 1
        self._documented.add(token)
        expected_by_mode = self.table.get(token)
        if expected_by_mode is None:
            logger.warning(f"👻 Orphaned documentation row: {frame_name}/{token}")
            report.orphaned_rows.append(f"{frame_name}/{token}")
            return

        for mode, column in self.settings.mode_columns.items():
            cell = cells[column].first_text()
            if cell is None:
                report.warn("malformed_row", f"{frame_name}/{token} has no text in the {mode} column", token=token, mode=mode)
                continue
            expected = expected_by_mode.get(mode)
            if expected is None:
                report.warn("mode_missing", f"{token} has no resolved {mode} value", token=token, mode=mode)
                continue
            old = cell.characters or ""
            if old.strip() == expected.strip():
                continue
            if cell.locked:
                report.warn("text_locked", f"{frame_name}/{token} {mode} is locked", token=token, mode=mode)
                continue

            change = CellChange(frame=frame_name, token=token, mode=mode, old=old, new=expected, node_id=cell.id)
            if self.settings.dry_run:
                change.applied = False
                logger.info(f"🔍 {frame_name}/{token} {mode}: \"{old}\" ≠ \"{expected}\"")
                report.changes.append(change)
                continue
            if await self._write(cell, expected, change, report):
                cell.characters = expected
                logger.info(change.log_line())
                report.changes.append(change)

    async def _write(self, cell: DocNode, text: str, change: CellChange, report: SyncReport) -> bool:
        where = f"{change.frame}/{change.token} {change.mode}"
        try:
            await figma_bridge.set_text_characters(cell.id, text)
            return True
        except ToolExecutionError as te:
            if te.code in LOCKED_ERROR_CODES:
                report.warn("text_locked", f"{where} is locked", token=change.token, mode=change.mode)
                return False
            if te.code not in FONT_ERROR_CODES or cell.font_name is None:
                report.warn("write_failed", f"{where}: {te}", token=change.token, mode=change.mode)
                return False

        logger.info(f"🔁 Font not loaded for {where}; loading {cell.font_name.family} {cell.font_name.style} and retrying")
        try:
            await figma_bridge.load_font(cell.font_name)
            await figma_bridge.set_text_characters(cell.id, text)
            return True
        except ToolExecutionError as te:
            report.warn("font_not_loaded", f"{where}: {te}", token=change.token, mode=change.mode)
            return False


async def run_sync(settings: Optional[SyncSettings] = None) -> SyncReport:
    """Collect tokens, discover documentation tables, reconcile them."""
    settings = settings or SyncSettings.from_env()
    collections = await figma_bridge.get_local_variable_collections()
    variables = await figma_bridge.get_local_variables()
    table, token_warnings = build_token_table(collections, variables)

    page = await figma_bridge.get_page_tree()
    frames = find_documentation_frames(page)

    report = SyncReport(dry_run=settings.dry_run, warnings=list(token_warnings))
    await Reconciler(table, settings).run(frames, report)
    logger.info(
        f"🏁 Sync finished: {len(report.changes)} change(s), {len(report.orphaned_rows)} orphaned row(s), "
        f"{len(report.undocumented_tokens)} undocumented token(s), {len(report.warnings)} warning(s)"
    )
    return report
