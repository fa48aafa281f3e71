"""Word frequency ranks loaded from a spreadsheet."""

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from packages.common.exceptions import FrequencyLoadError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)


class FrequencyTable:
    """Exact-match mapping of word -> frequency rank.

    The first row is a header; every following row holds one word in its
    first column and the rank is the row's position after the header.
    """

    def __init__(self, ranks: dict[str, int] | None = None) -> None:
        self._ranks = dict(ranks or {})

    def __len__(self) -> int:
        return len(self._ranks)

    def __contains__(self, word: object) -> bool:
        return word in self._ranks

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[Any]]) -> "FrequencyTable":
        """Build a table from spreadsheet rows, header first.

        A word listed more than once keeps the rank of its last row.
        """
        ranks: dict[str, int] = {}
        for index, row in enumerate(rows):
            if index == 0 or not row:
                continue
            word = row[0]
            if word is None or word == "":
                continue
            ranks[str(word)] = index
        return cls(ranks)

    @classmethod
    def load(cls, path: str | Path, sheet_index: int = 1) -> "FrequencyTable":
        """Read a frequency table from an .xlsx workbook.

        Args:
            path: Workbook path.
            sheet_index: Zero-based sheet index. Workbooks with a single
                sheet use that sheet regardless of the index.

        Raises:
            FrequencyLoadError: If the workbook cannot be opened or read.
        """
        path = Path(path)
        try:
            workbook = load_workbook(path, read_only=True, data_only=True)
        except Exception as exc:
            # openpyxl surfaces broken files as zip, XML or key errors alike
            raise FrequencyLoadError(
                f"Could not read frequency list: {exc}",
                context={"path": str(path)},
            ) from exc

        try:
            sheets = workbook.worksheets
            if len(sheets) == 1:
                sheet = sheets[0]
            elif sheet_index < len(sheets):
                sheet = sheets[sheet_index]
            else:
                raise FrequencyLoadError(
                    f"Frequency list has no sheet {sheet_index}",
                    context={"path": str(path), "sheets": len(sheets)},
                )
            table = cls.from_rows(sheet.iter_rows(values_only=True))
        except FrequencyLoadError:
            raise
        except Exception as exc:
            raise FrequencyLoadError(
                f"Could not read frequency list: {exc}",
                context={"path": str(path)},
            ) from exc
        finally:
            workbook.close()

        logger.info("frequency_table_loaded", path=str(path), words=len(table))
        return table

    def rank(self, word: str) -> int | None:
        """Rank of ``word``, or None when it is unranked."""
        return self._ranks.get(word)


class FrequencyService:
    """Loads a frequency table on first use and keeps it for this instance.

    A missing path or an unreadable file yields an empty table, so every
    card is unranked but the import goes on.
    """

    def __init__(self, path: str | Path | None = None, sheet_index: int = 1) -> None:
        self.path = Path(path) if path is not None else None
        self.sheet_index = sheet_index
        self._table: FrequencyTable | None = None

    def get_table(self) -> FrequencyTable:
        """Return the cached table, loading it on first call."""
        if self._table is None:
            self._table = self._load()
        return self._table

    def _load(self) -> FrequencyTable:
        if self.path is None:
            logger.info("frequency_table_not_configured")
            return FrequencyTable()
        try:
            return FrequencyTable.load(self.path, self.sheet_index)
        except FrequencyLoadError as exc:
            logger.warning("frequency_table_unavailable", error=str(exc), **exc.context)
            return FrequencyTable()

    def clear(self) -> None:
        """Drop the cached table; the next lookup reloads it."""
        self._table = None
