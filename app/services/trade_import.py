"""CSV trade import.

Four pieces, used in order:

* :func:`parse_csv_text` splits uploaded text into headers and raw rows.
* :func:`infer_mapping` guesses which trade field each header feeds.
* :func:`coerce_row` turns one raw row into a trade record (or rejects it).
* :class:`ImportSession` drives upload -> mapping -> preview -> importing.

The file format is intentionally naive: lines are split on ``\\n`` and cells
on ``,`` with every ``"`` removed, so quoted commas are not supported.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

import pandas as pd  # type: ignore[import]

from app.logging_config import get_logger

logger = get_logger("imports")

SKIP = "skip"
DEFAULT_TOTAL_LOTS = 0.01
DEFAULT_ENTRY_PRICE = 0.0
REQUIRED_FIELDS = ("symbol", "direction", "entry_time")

# Every choice a column can be mapped to, with the label shown to users.
TARGET_FIELDS: Dict[str, str] = {
    SKIP: "Skip this column",
    "symbol": "Symbol (e.g., EURUSD)",
    "direction": "Direction (buy/sell)",
    "entry_time": "Entry Date/Time",
    "exit_time": "Exit Date/Time",
    "entry_price": "Entry Price",
    "exit_price": "Exit Price",
    "total_lots": "Lot Size",
    "sl_initial": "Stop Loss",
    "tp_initial": "Take Profit",
    "net_pnl": "P&L",
    "r_multiple_actual": "RR (Risk-Reward)",
    "session": "Session",
}

RawRow = Dict[str, str]
TradeRecord = Dict[str, Any]
TradeCreator = Callable[[TradeRecord], Awaitable[Any]]


class CsvParseError(ValueError):
    pass


class ImportStateError(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass
class ParsedCsv:
    headers: List[str]
    rows: List[RawRow]


def _clean_cell(value: str) -> str:
    return value.strip().replace('"', "")


def parse_csv_text(text: str) -> ParsedCsv:
    """Split raw file text into a header list and one dict per data row.

    Blank lines are dropped. Rows shorter than the header get ``""`` for the
    missing trailing cells; extra cells are ignored.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        raise CsvParseError("file must have header + at least one data row")

    headers = [_clean_cell(cell) for cell in lines[0].split(",")]
    rows: List[RawRow] = []
    for line in lines[1:]:
        values = [_clean_cell(cell) for cell in line.split(",")]
        rows.append(
            {
                header: values[idx] if idx < len(values) else ""
                for idx, header in enumerate(headers)
            }
        )
    return ParsedCsv(headers=headers, rows=rows)


# ---------------------------------------------------------------------------
# Mapping inference
# ---------------------------------------------------------------------------


@dataclass
class ColumnMapping:
    source_column: str
    target_field: str


HeaderPredicate = Callable[[str], bool]


def _contains_any(*needles: str) -> HeaderPredicate:
    return lambda header: any(needle in header for needle in needles)


def _contains_all(*needles: str) -> HeaderPredicate:
    return lambda header: all(needle in header for needle in needles)


def _equals_any(*values: str) -> HeaderPredicate:
    return lambda header: header in values


# Evaluated top to bottom against the lower-cased header; first match wins.
MAPPING_RULES: Tuple[Tuple[HeaderPredicate, str], ...] = (
    (_contains_any("pair", "symbol", "instrument"), "symbol"),
    (_contains_any("direction", "side", "type"), "direction"),
    (_contains_all("entry", "time"), "entry_time"),
    (_contains_all("exit", "time"), "exit_time"),
    (_contains_all("entry", "price"), "entry_price"),
    (_contains_all("exit", "price"), "exit_price"),
    (_contains_any("lot", "size", "volume"), "total_lots"),
    (_contains_any("sl", "stop"), "sl_initial"),
    (_contains_any("tp", "take profit", "target"), "tp_initial"),
    (_contains_any("pnl", "profit", "p&l", "result"), "net_pnl"),
    (_contains_any("r/r", "rr", "r:r", "r-multiple"), "r_multiple_actual"),
    (_contains_any("session"), "session"),
    (_equals_any("date", "time", "datetime"), "entry_time"),
)


def infer_field(header: str) -> str:
    lower = header.lower()
    for predicate, target in MAPPING_RULES:
        if predicate(lower):
            return target
    return SKIP


def infer_mapping(headers: Iterable[str]) -> List[ColumnMapping]:
    return [ColumnMapping(source_column=h, target_field=infer_field(h)) for h in headers]


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

_NON_LETTERS = re.compile(r"[^A-Z]")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")
_TIME_ONLY = re.compile(r"^\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?\s*(?:[ap]\.?m\.?)?$", re.IGNORECASE)

_BUY_WORDS = {"buy", "long", "b"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def _parse_timestamp(value: str) -> Optional[str]:
    text = value.strip()
    # Relative words such as "now" or "today" and bare clock times carry no date
    if not any(ch.isdigit() for ch in text) or _TIME_ONLY.match(text):
        return None
    try:
        ts = pd.Timestamp(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    # Offset-less values are read as UTC
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return _to_iso(ts.to_pydatetime())


def _parse_float(value: str) -> Optional[float]:
    """Strip all but digits, '.' and '-', then read the leading number."""
    match = _NUMBER.match(_NON_NUMERIC.sub("", value))
    if match is None:
        return None
    return float(match.group(0))


def _first_number(value: str) -> Optional[float]:
    match = _NUMBER.search(value)
    if match is None:
        return None
    return float(match.group(0))


def parse_symbol(value: str) -> str:
    return _NON_LETTERS.sub("", value.upper())


def parse_direction(value: str) -> str:
    # Known quirk: anything that is not an explicit buy word becomes "sell",
    # including typos and empty strings.
    if value.strip().lower() in _BUY_WORDS:
        return "buy"
    return "sell"


def parse_session(value: str) -> Optional[str]:
    lower = value.strip().lower()
    if "tokyo" in lower or "asia" in lower:
        return "tokyo"
    if "london" in lower or "ldn" in lower:
        return "london"
    if "ny am" in lower or "new york am" in lower:
        return "new_york_am"
    if "ny pm" in lower or "new york pm" in lower:
        return "new_york_pm"
    if "new york" in lower or "ny" in lower or "us" in lower:
        return "new_york_am"
    return None


def detect_session(entry_time: str | datetime) -> str:
    """Bucket an entry time into a trading session.

    Uses a fixed UTC-5 offset with no daylight-saving adjustment, so during
    US summer time every window is effectively one hour late.
    """
    try:
        ts = pd.Timestamp(entry_time)
    except (ValueError, TypeError, OverflowError):
        return "off_hours"
    if pd.isna(ts):
        return "off_hours"
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC")

    est_hour = (ts.hour - 5 + 24) % 24
    est_time = est_hour + ts.minute / 60

    if est_time >= 20:
        return "tokyo"
    if 2 <= est_time < 5:
        return "london"
    if 8.5 <= est_time < 11:
        return "new_york_am"
    if 13 <= est_time < 16:
        return "new_york_pm"
    return "off_hours"


def _coerce_entry_time(value: str) -> str:
    # Unparseable entry times fall back to "now"; exit times are dropped instead.
    return _parse_timestamp(value) or _to_iso(_utcnow())


def _coerce_entry_price(value: str) -> float:
    return _parse_float(value) or DEFAULT_ENTRY_PRICE


def _coerce_total_lots(value: str) -> float:
    return _parse_float(value) or DEFAULT_TOTAL_LOTS


def _coerce_optional_float(value: str) -> Optional[float]:
    # Zero reads as "not provided"
    return _parse_float(value) or None


COERCERS: Dict[str, Callable[[str], Any]] = {
    "symbol": parse_symbol,
    "direction": parse_direction,
    "entry_time": _coerce_entry_time,
    "exit_time": _parse_timestamp,
    "entry_price": _coerce_entry_price,
    "exit_price": _coerce_optional_float,
    "total_lots": _coerce_total_lots,
    "sl_initial": _coerce_optional_float,
    "tp_initial": _coerce_optional_float,
    "net_pnl": _first_number,
    "r_multiple_actual": _first_number,
    "session": parse_session,
}


def coerce_row(row: Mapping[str, str], mapping: Iterable[ColumnMapping]) -> Optional[TradeRecord]:
    """Build a trade record from one raw row, or return None if it is unusable.

    A row is unusable when symbol, direction or entry_time is missing after
    coercion. Later mappings onto the same field overwrite earlier ones.
    """
    trade: TradeRecord = {}
    for entry in mapping:
        if entry.target_field == SKIP:
            continue
        value = row.get(entry.source_column)
        if not value:
            continue
        coerced = COERCERS[entry.target_field](value)
        if coerced is None or coerced == "":
            trade.pop(entry.target_field, None)
        else:
            trade[entry.target_field] = coerced

    if not all(trade.get(name) for name in REQUIRED_FIELDS):
        return None

    trade.setdefault("total_lots", DEFAULT_TOTAL_LOTS)
    trade.setdefault("entry_price", DEFAULT_ENTRY_PRICE)
    if not trade.get("session"):
        trade["session"] = detect_session(trade["entry_time"])
    trade["is_open"] = "exit_time" not in trade and "exit_price" not in trade
    return trade


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class ImportStep(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    IMPORTING = "importing"


@dataclass
class ImportProgress:
    processed: int
    total: int
    imported: int
    failed: int

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.processed / self.total * 100.0


@dataclass
class ImportResult:
    imported: int
    failed: int
    total: int

    @property
    def message(self) -> str:
        return f"{self.imported} trades imported, {self.failed} failed"


@dataclass
class ImportNotice:
    title: str
    description: str
    error: bool = False


Notifier = Callable[[ImportNotice], None]
ProgressCallback = Callable[[ImportProgress], None]


def log_notice(notice: ImportNotice) -> None:
    if notice.error:
        logger.warning("%s: %s", notice.title, notice.description)
    else:
        logger.info("%s: %s", notice.title, notice.description)


class ImportSession:
    """One user's walk through a CSV import.

    Steps only move upload -> mapping -> preview -> importing -> upload, with
    ``back()`` stepping from preview to mapping and from mapping to upload.
    Rows are submitted to ``creator`` one at a time; a failing row is counted
    and skipped, never retried.
    """

    def __init__(
        self,
        creator: TradeCreator,
        *,
        notifier: Optional[Notifier] = None,
        on_progress: Optional[ProgressCallback] = None,
        preview_rows: int = 5,
    ) -> None:
        self.id: UUID = uuid4()
        self._creator = creator
        self._notifier = notifier or log_notice
        self._on_progress = on_progress
        self.preview_rows = preview_rows
        self.step = ImportStep.UPLOAD
        self.filename: Optional[str] = None
        self.headers: List[str] = []
        self.rows: List[RawRow] = []
        self.mapping: List[ColumnMapping] = []
        self.progress: Optional[ImportProgress] = None
        self.last_result: Optional[ImportResult] = None
        self.last_notice: Optional[ImportNotice] = None

    def _require(self, step: ImportStep, action: str) -> None:
        if self.step is not step:
            raise ImportStateError(f"cannot {action} while in '{self.step.value}' step")

    def _notify(self, title: str, description: str, *, error: bool = False) -> None:
        notice = ImportNotice(title=title, description=description, error=error)
        self.last_notice = notice
        self._notifier(notice)

    def _clear(self) -> None:
        self.filename = None
        self.headers = []
        self.rows = []
        self.mapping = []

    def load_file(self, text: str, filename: Optional[str] = None) -> None:
        self._require(ImportStep.UPLOAD, "load a file")
        self._clear()
        try:
            parsed = parse_csv_text(text)
        except CsvParseError as exc:
            self._notify("Invalid CSV", str(exc), error=True)
            raise

        self.filename = filename
        self.headers = parsed.headers
        self.rows = parsed.rows
        self.mapping = infer_mapping(parsed.headers)
        self.step = ImportStep.MAPPING
        logger.info(
            "Parsed %s: %d columns, %d rows",
            filename or "upload",
            len(self.headers),
            len(self.rows),
        )

    def apply_mappings(self, changes: Mapping[str, str]) -> None:
        """Reassign source columns; all changes are validated before any apply."""
        self._require(ImportStep.MAPPING, "change mappings")
        known = {entry.source_column for entry in self.mapping}
        for column, target in changes.items():
            if column not in known:
                raise ValueError(f"unknown column '{column}'")
            if target not in TARGET_FIELDS:
                raise ValueError(f"unknown target field '{target}'")
        self.mapping = [
            ColumnMapping(entry.source_column, changes.get(entry.source_column, entry.target_field))
            for entry in self.mapping
        ]

    def update_mapping(self, source_column: str, target_field: str) -> None:
        self.apply_mappings({source_column: target_field})

    def continue_to_preview(self) -> None:
        self._require(ImportStep.MAPPING, "continue to preview")
        self.step = ImportStep.PREVIEW

    def back(self) -> None:
        if self.step is ImportStep.PREVIEW:
            self.step = ImportStep.MAPPING
        elif self.step is ImportStep.MAPPING:
            self._clear()
            self.step = ImportStep.UPLOAD
        else:
            raise ImportStateError(f"cannot go back from '{self.step.value}' step")

    def preview(self, limit: Optional[int] = None) -> List[TradeRecord]:
        """Coerce the first ``limit`` rows, leaving out the rejected ones."""
        count = self.preview_rows if limit is None else limit
        records = (coerce_row(row, self.mapping) for row in self.rows[:count])
        return [record for record in records if record is not None]

    async def run(self) -> ImportResult:
        self._require(ImportStep.PREVIEW, "import")
        self.step = ImportStep.IMPORTING
        rows = list(self.rows)
        mapping = list(self.mapping)
        total = len(rows)
        imported = 0
        failed = 0
        self.progress = ImportProgress(processed=0, total=total, imported=0, failed=0)
        logger.info("Importing %d rows from %s", total, self.filename or "upload")

        for index, row in enumerate(rows, start=1):
            record = coerce_row(row, mapping)
            if record is None:
                failed += 1
                logger.debug("Row %d rejected: missing symbol, direction or entry_time", index)
            else:
                try:
                    await self._creator(record)
                except Exception:
                    failed += 1
                    logger.error("Failed to import trade from row %d", index, exc_info=True)
                else:
                    imported += 1

            self.progress = ImportProgress(
                processed=index, total=total, imported=imported, failed=failed
            )
            if self._on_progress is not None:
                self._on_progress(self.progress)

        result = ImportResult(imported=imported, failed=failed, total=total)
        self.last_result = result
        self._notify("Import complete", result.message)
        self._clear()
        self.step = ImportStep.UPLOAD
        return result


__all__ = [
    "SKIP",
    "TARGET_FIELDS",
    "MAPPING_RULES",
    "COERCERS",
    "CsvParseError",
    "ImportStateError",
    "ParsedCsv",
    "ColumnMapping",
    "ImportStep",
    "ImportProgress",
    "ImportResult",
    "ImportNotice",
    "ImportSession",
    "parse_csv_text",
    "infer_field",
    "infer_mapping",
    "parse_symbol",
    "parse_direction",
    "parse_session",
    "detect_session",
    "coerce_row",
    "log_notice",
]
