"""Google Sheets and Drive client."""

from typing import Any
from urllib.parse import quote

from src.integrations.base import AuthorizedApiClient

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_FILES_API = "https://www.googleapis.com/drive/v3/files"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


class SheetsClient(AuthorizedApiClient):
    """Reads and writes spreadsheet values on behalf of a user."""

    provider_id = "google"

    async def find_sheet_by_name(self, name: str) -> dict[str, Any] | None:
        """Find the first spreadsheet the user can see with an exact name.

        Returns:
            ``{"id": ..., "name": ...}`` or None
        """
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        data = await self._request(
            "GET",
            DRIVE_FILES_API,
            params={
                "q": (
                    f"name = '{escaped}' and mimeType = '{SPREADSHEET_MIME_TYPE}' "
                    "and trashed = false"
                ),
                "fields": "files(id, name)",
                "pageSize": "1",
            },
        )
        files = data.get("files", [])
        return files[0] if files else None

    async def get_values(self, spreadsheet_id: str, range_: str) -> list[list[Any]]:
        """Read a range (A1 notation). Empty ranges return []."""
        data = await self._request(
            "GET",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_, safe='')}",
        )
        return data.get("values", [])

    async def update_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: list[list[Any]],
    ) -> int:
        """Overwrite a range. Returns the number of updated cells."""
        data = await self._request(
            "PUT",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_, safe='')}",
            params={"valueInputOption": "RAW"},
            json={"values": values},
        )
        return int(data.get("updatedCells", 0))

    async def append_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: list[list[Any]],
    ) -> int:
        """Append rows after the last row of a table. Returns updated cells."""
        data = await self._request(
            "POST",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_, safe='')}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": values},
        )
        return int(data.get("updates", {}).get("updatedCells", 0))
