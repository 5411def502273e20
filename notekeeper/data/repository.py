import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from notekeeper.data.schema import DEFAULT_FOLDER_KEY, SCHEMA_SQL
from notekeeper.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

_NOTE_ORDER = "ORDER BY is_pinned DESC, updated_at DESC, id DESC"


def _casefold(value: object) -> str | None:
    if value is None:
        return None
    return str(value).casefold()


class Repository:
    def __init__(self, db_path: str, default_folder_name: str = "Notes") -> None:
        self._db_path = db_path
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.create_function("casefold", 1, _casefold, deterministic=True)
            self._init_schema()
            self._default_folder_id = self._init_default_folder(default_folder_name)
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def default_folder_id(self) -> int:
        return self._default_folder_id

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _storage(self) -> Iterator[sqlite3.Connection]:
        """Run statements on the connection, committing on success.

        Any engine error rolls back the open transaction and is re-raised as
        StorageError carrying the original message.
        """
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error("Storage operation failed: %s", exc)
            raise StorageError(str(exc)) from exc

    def _init_schema(self) -> None:
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def _init_default_folder(self, name: str) -> int:
        """Seed the default folder on first run and return its id.

        Databases created before ``app_meta`` existed fall back to the lowest
        folder id.
        """
        row = self._conn.execute(
            "SELECT value FROM app_meta WHERE key = ?", (DEFAULT_FOLDER_KEY,)
        ).fetchone()
        if row is not None:
            return int(row["value"])

        row = self._conn.execute("SELECT MIN(id) AS id FROM folders").fetchone()
        if row is not None and row["id"] is not None:
            folder_id = int(row["id"])
        else:
            cur = self._conn.execute("INSERT INTO folders(name) VALUES (?)", (name,))
            assert cur.lastrowid is not None
            folder_id = int(cur.lastrowid)
            logger.info("Seeded default folder '%s' (id=%d)", name, folder_id)

        self._conn.execute(
            "INSERT INTO app_meta(key, value) VALUES (?, ?)",
            (DEFAULT_FOLDER_KEY, str(folder_id)),
        )
        self._conn.commit()
        return folder_id

    # -- folders --------------------------------------------------------------

    def list_folders(self) -> list[dict]:
        with self._storage() as conn:
            cur = conn.execute("SELECT * FROM folders ORDER BY name COLLATE NOCASE, id")
            return [dict(row) for row in cur.fetchall()]

    def get_folder(self, folder_id: int) -> dict | None:
        with self._storage() as conn:
            row = conn.execute(
                "SELECT * FROM folders WHERE id = ?", (folder_id,)
            ).fetchone()
            return dict(row) if row else None

    def create_folder(self, name: str) -> dict:
        with self._storage() as conn:
            cur = conn.execute("INSERT INTO folders(name) VALUES (?)", (name,))
            assert cur.lastrowid is not None
            folder_id = int(cur.lastrowid)
        folder = self.get_folder(folder_id)
        assert folder is not None
        return folder

    def update_folder(self, folder_id: int, name: str) -> int:
        with self._storage() as conn:
            cur = conn.execute(
                """
                UPDATE folders
                SET name = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (name, folder_id),
            )
            return cur.rowcount

    def delete_folder(self, folder_id: int) -> int:
        """Move the folder's notes to the default folder, then delete it.

        Both statements share one transaction so a failure leaves no note
        pointing at a missing folder.
        """
        if folder_id == self._default_folder_id:
            raise ValidationError("The default folder cannot be deleted")
        with self._storage() as conn:
            moved = conn.execute(
                "UPDATE notes SET folder_id = ? WHERE folder_id = ?",
                (self._default_folder_id, folder_id),
            )
            logger.debug(
                "Moved %d note(s) from folder %d to default folder %d",
                moved.rowcount,
                folder_id,
                self._default_folder_id,
            )
            cur = conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
            return cur.rowcount

    # -- notes ----------------------------------------------------------------

    def list_notes(self, folder_id: int | None = None) -> list[dict]:
        with self._storage() as conn:
            if folder_id is not None:
                cur = conn.execute(
                    f"SELECT * FROM notes WHERE folder_id = ? {_NOTE_ORDER}",
                    (folder_id,),
                )
            else:
                cur = conn.execute(f"SELECT * FROM notes {_NOTE_ORDER}")
            return [dict(row) for row in cur.fetchall()]

    def get_note(self, note_id: int) -> dict | None:
        with self._storage() as conn:
            row = conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
            return dict(row) if row else None

    def create_note(
        self,
        title: str | None = None,
        content: str | None = None,
        folder_id: int | None = None,
    ) -> dict:
        with self._storage() as conn:
            cur = conn.execute(
                "INSERT INTO notes(title, content, folder_id) VALUES (?, ?, ?)",
                (title, content, folder_id),
            )
            assert cur.lastrowid is not None
            note_id = int(cur.lastrowid)
        note = self.get_note(note_id)
        assert note is not None
        return note

    def update_note(
        self,
        note_id: int,
        title: str | None,
        content: str | None,
        folder_id: int | None,
        is_pinned: bool = False,
        is_favorite: bool = False,
    ) -> int:
        with self._storage() as conn:
            cur = conn.execute(
                """
                UPDATE notes
                SET title = ?, content = ?, folder_id = ?, is_pinned = ?,
                    is_favorite = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (title, content, folder_id, int(is_pinned), int(is_favorite), note_id),
            )
            return cur.rowcount

    def delete_note(self, note_id: int) -> int:
        with self._storage() as conn:
            cur = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            return cur.rowcount

    def search_notes(self, term: str) -> list[dict]:
        """Case-insensitive substring search over title and content.

        Ordered like ``list_notes``. Wildcard characters in *term* are
        matched literally.
        """
        with self._storage() as conn:
            cur = conn.execute(
                f"""
                SELECT * FROM notes
                WHERE instr(casefold(title), casefold(?1)) > 0
                   OR instr(casefold(content), casefold(?1)) > 0
                {_NOTE_ORDER}
                """,
                (term,),
            )
            results = [dict(row) for row in cur.fetchall()]
        logger.debug("Search for '%s' matched %d note(s)", term[:50], len(results))
        return results

    def toggle_pinned(self, note_id: int) -> bool:
        """Toggle the is_pinned flag. Returns the new value."""
        return self._toggle_flag(note_id, "is_pinned")

    def toggle_favorite(self, note_id: int) -> bool:
        """Toggle the is_favorite flag. Returns the new value."""
        return self._toggle_flag(note_id, "is_favorite")

    def _toggle_flag(self, note_id: int, column: str) -> bool:
        with self._storage() as conn:
            row = conn.execute(
                f"SELECT {column} FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
            if row is None:
                return False
            new_val = 0 if row[column] else 1
            conn.execute(
                f"UPDATE notes SET {column} = ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ?",
                (new_val, note_id),
            )
            return bool(new_val)

    # -- sync bookkeeping -----------------------------------------------------

    def list_notes_for_sync(self) -> list[dict]:
        with self._storage() as conn:
            cur = conn.execute("SELECT * FROM notes ORDER BY id")
            return [dict(row) for row in cur.fetchall()]

    def mark_note_synced(self, note_id: int, drive_file_id: str) -> None:
        with self._storage() as conn:
            conn.execute(
                """
                UPDATE notes
                SET drive_sync_id = ?, last_synced = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (drive_file_id, note_id),
            )
