"""Google Sheets REST v4 reader."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from task_follower.core.config import constants, settings
from task_follower.core.errors import SourceReadError


logger = logging.getLogger(__name__)

# Columns read from every tab
DEFAULT_COLUMNS = "A:Z"


class GoogleSheetsReader:
    """Reads tab titles and cell values with an API key.

    Every failure, HTTP or network, surfaces as SourceReadError so the
    reconciler can skip the unit it was reading and carry on.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = settings.sheets_api_base_url,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    async def _get(
        self,
        path: str,
        *,
        sheet_id: str,
        tab: str | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        query = {"key": self._api_key, **(params or {})}
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS, transport=self._transport) as client:
                response = await client.get(f"{self._base_url}{path}", params=query)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise SourceReadError(sheet_id, f"HTTP {e.response.status_code}", tab=tab) from e
        except httpx.HTTPError as e:
            raise SourceReadError(sheet_id, f"{type(e).__name__}: {e}", tab=tab) from e
        except ValueError as e:
            raise SourceReadError(sheet_id, "invalid JSON response", tab=tab) from e

    async def list_tabs(self, sheet_id: str) -> list[str]:
        """Every tab title of the spreadsheet, in sheet order."""
        data = await self._get(
            f"/spreadsheets/{quote(sheet_id, safe='')}",
            sheet_id=sheet_id,
            params={"fields": "sheets.properties.title"},
        )
        return [sheet["properties"]["title"] for sheet in data.get("sheets", []) if sheet.get("properties")]

    async def list_project_tabs(self, sheet_id: str) -> list[str]:
        """Tab titles minus the reserved ones (contacts, imported)."""
        reserved = {name.strip().lower() for name in settings.reserved_tabs}
        tabs = await self.list_tabs(sheet_id)
        return [tab for tab in tabs if tab.strip().lower() not in reserved]

    async def read_rows(self, sheet_id: str, tab: str) -> list[list[str]]:
        """Header row followed by data rows; trailing empty cells are omitted by the API."""
        cell_range = quote(f"'{tab}'!{DEFAULT_COLUMNS}", safe="")
        data = await self._get(
            f"/spreadsheets/{quote(sheet_id, safe='')}/values/{cell_range}",
            sheet_id=sheet_id,
            tab=tab,
        )
        rows = data.get("values", [])
        logger.debug("Read sheet rows", extra={"sheet_id": sheet_id, "tab": tab, "rows": len(rows)})
        return [[str(cell) for cell in row] for row in rows]
