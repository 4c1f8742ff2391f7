"""Header-to-field mapping for sheet tabs.

Each logical field declares the header synonyms it accepts. A tab's header
row is mapped once per read, then every data row is turned into a plain
dict keyed by logical field name, so the fuzzy matching stays here and the
rest of the pipeline works with typed records.
"""

from collections.abc import Sequence

from pydantic import BaseModel


class FieldSpec(BaseModel):
    """A logical field and the header words that identify it."""

    name: str
    synonyms: tuple[str, ...]
    all_words: bool = False  # Every synonym must appear in the header


class RowSchema(BaseModel):
    """Ordered field specs; earlier fields claim ambiguous headers first."""

    fields: tuple[FieldSpec, ...]

    def map_header(self, header: Sequence[str]) -> dict[str, int]:
        """Resolve each field to a column index.

        Priority per field: exact header match > header contains a synonym.
        A column is claimed by at most one field.

        Args:
            header: The tab's first row

        Returns:
            Field name -> column index, for the fields that were found
        """
        normalized = [_normalize(cell) for cell in header]
        claimed: set[int] = set()
        mapping: dict[str, int] = {}

        # Exact matches first so "Task" never loses to a field that merely contains it
        for spec in self.fields:
            for index, cell in enumerate(normalized):
                if index not in claimed and cell in spec.synonyms:
                    mapping[spec.name] = index
                    claimed.add(index)
                    break

        for spec in self.fields:
            if spec.name in mapping:
                continue
            for index, cell in enumerate(normalized):
                if index in claimed or not cell:
                    continue
                if _contains(cell, spec):
                    mapping[spec.name] = index
                    claimed.add(index)
                    break

        return mapping

    def map_rows(self, rows: Sequence[Sequence[str]]) -> list[dict[str, str] | None]:
        """Map data rows (header first) to records.

        Fully blank rows come back as None so callers can keep source order.
        """
        if not rows:
            return []
        mapping = self.map_header(rows[0])
        records: list[dict[str, str] | None] = []
        for row in rows[1:]:
            if not any(str(cell).strip() for cell in row):
                records.append(None)
                continue
            record = {spec.name: "" for spec in self.fields}
            for field_name, index in mapping.items():
                if index < len(row) and row[index] is not None:
                    record[field_name] = str(row[index]).strip()
            records.append(record)
        return records


def _normalize(cell: object) -> str:
    return " ".join(str(cell or "").lower().split())


def _contains(cell: str, spec: FieldSpec) -> bool:
    if spec.all_words:
        return all(word in cell for word in spec.synonyms)
    return any(word in cell for word in spec.synonyms)


TASK_ROW_SCHEMA = RowSchema(
    fields=(
        FieldSpec(name="owner", synonyms=("owner", "assigned")),
        FieldSpec(name="manager", synonyms=("manager",)),
        FieldSpec(name="description", synonyms=("task", "description")),
        FieldSpec(name="status", synonyms=("status",)),
        FieldSpec(name="priority", synonyms=("priority",)),
        FieldSpec(name="points", synonyms=("points", "point", "effort")),
        FieldSpec(name="start_date", synonyms=("start", "date"), all_words=True),
        FieldSpec(name="due_date", synonyms=("due", "delivery", "deadline")),
        FieldSpec(name="notes", synonyms=("notes", "note")),
        FieldSpec(name="milestone", synonyms=("milestone",)),
    )
)

CONTACT_ROW_SCHEMA = RowSchema(
    fields=(
        FieldSpec(name="number", synonyms=("number", "membership")),
        FieldSpec(name="name", synonyms=("name",)),
        FieldSpec(name="email", synonyms=("email", "mail")),
        FieldSpec(name="phone", synonyms=("phone", "whatsapp")),
    )
)

MEMBER_ROW_SCHEMA = RowSchema(
    fields=(
        FieldSpec(name="telegram_id", synonyms=("telegram_id", "telegram id", "chat id")),
        FieldSpec(name="telegram_username", synonyms=("telegram_username", "telegram username", "username")),
        FieldSpec(name="number", synonyms=("membership_number", "membership number", "number", "membership")),
        FieldSpec(name="name", synonyms=("latin_name", "name")),
        FieldSpec(name="email", synonyms=("email", "mail")),
        FieldSpec(name="phone", synonyms=("phone", "whatsapp")),
    )
)


def match_name(candidates: Sequence[str], query: str) -> int | None:
    """Fuzzy match a person's name against roster names.

    Priority: exact match > contains match > shared word.

    Args:
        candidates: Roster names in roster order
        query: Name as written in the task row

    Returns:
        Index of the best match, or None
    """
    wanted = _normalize(query)
    if not wanted:
        return None
    names = [_normalize(name) for name in candidates]

    for index, name in enumerate(names):
        if name and name == wanted:
            return index

    for index, name in enumerate(names):
        if name and (wanted in name or name in wanted):
            return index

    query_words = set(wanted.split())
    for index, name in enumerate(names):
        if name and query_words & set(name.split()):
            return index

    return None
