"""Member directory backed by the members spreadsheet."""

import logging

from task_follower.core.column_mapping import MEMBER_ROW_SCHEMA
from task_follower.core.ports import SourceReader
from task_follower.domain.contact import Contact


logger = logging.getLogger(__name__)


class SheetIdentityDirectory:
    """Lists members with their Telegram ids from one tab of a spreadsheet."""

    def __init__(self, reader: SourceReader, *, sheet_id: str, tab: str) -> None:
        self._reader = reader
        self._sheet_id = sheet_id
        self._tab = tab

    async def list_all(self) -> list[Contact]:
        rows = await self._reader.read_rows(self._sheet_id, self._tab)
        contacts: list[Contact] = []
        for record in MEMBER_ROW_SCHEMA.map_rows(rows):
            if record is None or not record["number"]:
                continue
            contacts.append(
                Contact(
                    person_id=record["number"],
                    name=record["name"],
                    channel_address=record["telegram_id"] or None,
                    channel_handle=record["telegram_username"].lstrip("@") or None,
                    email=record["email"] or None,
                    phone=record["phone"] or None,
                )
            )
        logger.info("Loaded member directory", extra={"members": len(contacts)})
        return contacts
