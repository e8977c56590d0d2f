"""CSV-backed Audiences and Rules sheets.

The operator edits two tables, exported from (or kept instead of) the
original spreadsheet tabs:

- ``Audiences``: one row per remarketing list, plus bookkeeping columns
  (status, checksums and the JSON snapshot written when loading).
- ``Rules``: one row per custom variable condition, keyed by audience ID.
"""

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from audience_manager_mcp.core.exceptions import DataError

logger = logging.getLogger(__name__)

AUDIENCE_COLUMNS = [
    "id",
    "name",
    "description",
    "life_span",
    "floodlight",
    "shares",
    "status",
    "checksum",
    "shares_checksum",
    "json",
]

RULE_COLUMNS = [
    "audience_id",
    "group",
    "variable",
    "operator",
    "values",
    "negation",
]


class AudienceSheet:
    """Reads and writes the Audiences and Rules sheets."""

    def __init__(self, audiences_path: str | Path, rules_path: str | Path):
        self.audiences_path = Path(audiences_path)
        self.rules_path = Path(rules_path)
        self._audiences: pd.DataFrame | None = None
        self._rules: pd.DataFrame | None = None

    @property
    def audiences(self) -> pd.DataFrame:
        if self._audiences is None:
            if not self.audiences_path.exists():
                raise DataError(f"Audiences sheet not found: {self.audiences_path}")
            self._audiences = self._read(self.audiences_path, AUDIENCE_COLUMNS)
        return self._audiences

    @property
    def rules(self) -> pd.DataFrame:
        if self._rules is None:
            if self.rules_path.exists():
                self._rules = self._read(self.rules_path, RULE_COLUMNS)
            else:
                logger.info(f"Rules sheet not found, using an empty one: {self.rules_path}")
                self._rules = pd.DataFrame(columns=RULE_COLUMNS, dtype=str)
        return self._rules

    def read_audience_rows(self) -> list[dict[str, str]]:
        """Return all audience rows as dicts of strings, in sheet order."""
        return self.audiences.to_dict(orient="records")

    def read_rule_rows(self) -> list[dict[str, str]]:
        """Return all rule rows that are not entirely blank."""
        return [
            row
            for row in self.rules.to_dict(orient="records")
            if any(str(value).strip() for value in row.values())
        ]

    def write_audience_rows(self, rows: list[dict[str, Any]]) -> None:
        """Replace the contents of the Audiences sheet."""
        self._audiences = self._frame(rows, AUDIENCE_COLUMNS)

    def write_rule_rows(self, rows: list[dict[str, Any]]) -> None:
        """Replace the contents of the Rules sheet."""
        self._rules = self._frame(rows, RULE_COLUMNS)

    def update_audience_cells(self, index: int, **values: Any) -> None:
        """Set cells of the audience row at ``index``.

        Raises:
            DataError: If the row or a column does not exist
        """
        audiences = self.audiences
        if index < 0 or index >= len(audiences):
            raise DataError(f"Audience row {index} does not exist")

        for column, value in values.items():
            if column not in audiences.columns:
                raise DataError(f"Unknown Audiences column: {column}")
            audiences.at[audiences.index[index], column] = "" if value is None else str(value)

    def replace_audience_id_in_rules(self, old_id: str, new_id: str) -> int:
        """Point rules of audience ``old_id`` to ``new_id``.

        Returns:
            The number of rule rows updated
        """
        rules = self.rules
        mask = rules["audience_id"] == str(old_id)
        rules.loc[mask, "audience_id"] = str(new_id)
        return int(mask.sum())

    def save(self) -> None:
        """Write every loaded sheet back to its CSV file."""
        if self._audiences is not None:
            self._write(self._audiences, self.audiences_path)
        if self._rules is not None:
            self._write(self._rules, self.rules_path)

    @staticmethod
    def _read(path: Path, columns: list[str]) -> pd.DataFrame:
        try:
            frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise DataError(f"Failed to parse sheet {path}: {e}") from e
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=columns, dtype=str)

        frame.columns = [str(column).strip() for column in frame.columns]
        missing = [column for column in columns if column not in frame.columns]
        if missing:
            raise DataError(
                f"Sheet {path} is missing required columns: {', '.join(missing)}"
            )
        return frame

    @staticmethod
    def _frame(rows: list[dict[str, Any]], columns: list[str]) -> pd.DataFrame:
        records = [
            {
                column: "" if row.get(column) is None else str(row.get(column))
                for column in columns
            }
            for row in rows
        ]
        return pd.DataFrame(records, columns=columns, dtype=str)

    @staticmethod
    def _write(frame: pd.DataFrame, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(path, index=False)
        logger.debug(f"Wrote {len(frame)} row(s) to {path}")
