"""DuckDB-based message and user store.

This module is the durable, authoritative record of users and messages.
The real-time core never caches what it reads from here; every edit,
delete and read-marking re-reads the current row first.

Database Schema:
    users table:
        - id: Opaque user ID (UUID string)
        - username: Unique login name
        - role: 'admin' or 'customer'
        - created_at: Creation time (UTC)

    messages table:
        - seq: Insertion order, breaks timestamp ties
        - id: Message ID (UUID string)
        - sender_id / receiver_id: The two participants
        - room_id: Derived conversation key
        - content: Text, or image reference for image messages
        - message_type: 'text' or 'image'
        - timestamp: Creation time (UTC)
        - is_edited / is_deleted / is_read: Independent flags
        - version: Bumped on every write, used for compare-and-set

Thread Safety:
    A single DuckDB connection is shared and guarded by a lock. The
    FastAPI test client runs the app on a worker thread, so calls may
    arrive from more than one thread even though the server itself is
    single-threaded.

Usage:
    store = MessageStore.get_instance()
    message = store.create_message(sender_id, receiver_id, room_id, "Hello")
    history = store.find_messages_by_room(room_id)
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, List, Optional, Sequence

import duckdb

from supportchat.chat.errors import TransportFailure
from supportchat.chat.schemas import (
    CustomerSummary,
    LastMessage,
    Message,
    MessageType,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = """
    m.id, m.sender_id, m.receiver_id, COALESCE(u.username, ''), m.content,
    m.timestamp, m.room_id, m.message_type, m.is_edited, m.is_deleted,
    m.is_read, m.version
"""

# Columns update_message() is allowed to touch, keyed by keyword argument
_UPDATABLE = {
    "content": "content",
    "edited": "is_edited",
    "deleted": "is_deleted",
}


def _row_to_message(row: Sequence[Any]) -> Message:
    return Message(
        id=row[0],
        senderId=row[1],
        receiverId=row[2],
        senderUsername=row[3],
        content=row[4],
        timestamp=row[5],
        roomId=row[6],
        type=MessageType(row[7]),
        edited=row[8],
        deleted=row[9],
        read=row[10],
        version=row[11],
    )


def _row_to_user(row: Sequence[Any]) -> User:
    return User(id=row[0], username=row[1], role=UserRole(row[2]), createdAt=row[3])


class MessageStore:
    """Singleton store for users and messages in DuckDB.

    Attributes:
        _instance: Singleton instance of the store.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["MessageStore"] = None
    _db_path: str = "supportchat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the store, creating the schema if needed.

        Args:
            db_path: Path to DuckDB file, or ":memory:".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MessageStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _execute(self, sql: str, params: Optional[list] = None) -> List[tuple]:
        """Run one statement and fetch its rows.

        Raises:
            TransportFailure: If DuckDB rejects or cannot run the statement.
        """
        with self._lock:
            try:
                return self._get_connection().execute(sql, params or []).fetchall()
            except duckdb.Error as exc:
                logger.error("[Store] Query failed: %s", exc)
                raise TransportFailure(str(exc)) from exc

    def _initialize_db(self) -> None:
        """Create tables, sequence and indexes (idempotent)."""
        self._execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        self._execute("""
            CREATE TABLE IF NOT EXISTS users (
                id VARCHAR PRIMARY KEY,
                username VARCHAR NOT NULL UNIQUE,
                role VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)
        self._execute("""
            CREATE TABLE IF NOT EXISTS messages (
                seq BIGINT DEFAULT nextval('messages_seq'),
                id VARCHAR PRIMARY KEY,
                sender_id VARCHAR NOT NULL,
                receiver_id VARCHAR NOT NULL,
                room_id VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                message_type VARCHAR NOT NULL,
                timestamp TIMESTAMP NOT NULL,
                is_edited BOOLEAN NOT NULL DEFAULT FALSE,
                is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
                is_read BOOLEAN NOT NULL DEFAULT FALSE,
                version INTEGER NOT NULL DEFAULT 0
            )
        """)
        self._execute("CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id)")

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(self, username: str, role: UserRole = UserRole.CUSTOMER) -> User:
        user = User(id=str(uuid.uuid4()), username=username, role=role)
        self._execute(
            "INSERT INTO users (id, username, role, created_at) VALUES (?, ?, ?, ?)",
            [user.id, user.username, user.role.value, user.createdAt],
        )
        logger.info("[Store] Created %s user %s (%s)", user.role.value, username, user.id)
        return user

    def resolve_user(self, user_id: str) -> Optional[User]:
        rows = self._execute(
            "SELECT id, username, role, created_at FROM users WHERE id = ?", [user_id]
        )
        return _row_to_user(rows[0]) if rows else None

    def find_user_by_username(self, username: str) -> Optional[User]:
        rows = self._execute(
            "SELECT id, username, role, created_at FROM users WHERE username = ?", [username]
        )
        return _row_to_user(rows[0]) if rows else None

    def find_single_admin(self) -> Optional[User]:
        """Return the admin user, or None before provisioning."""
        rows = self._execute(
            """
            SELECT id, username, role, created_at FROM users
            WHERE role = ?
            ORDER BY created_at
            LIMIT 1
            """,
            [UserRole.ADMIN.value],
        )
        return _row_to_user(rows[0]) if rows else None

    def ensure_admin(self, username: str = "admin") -> User:
        """Create the admin user if none exists yet."""
        admin = self.find_single_admin()
        if admin is not None:
            logger.info("[Store] Admin user already exists: %s", admin.username)
            return admin
        return self.create_user(username, UserRole.ADMIN)

    def delete_user(self, user_id: str) -> int:
        """Physically remove a user and every message they sent or received.

        Returns:
            Number of messages removed.
        """
        with self._lock:
            conn = self._get_connection()
            try:
                conn.begin()
                removed = conn.execute(
                    "DELETE FROM messages WHERE sender_id = ? OR receiver_id = ? RETURNING id",
                    [user_id, user_id],
                ).fetchall()
                conn.execute("DELETE FROM users WHERE id = ?", [user_id])
                conn.commit()
            except duckdb.Error as exc:
                conn.rollback()
                logger.error("[Store] Failed to delete user %s: %s", user_id, exc)
                raise TransportFailure(str(exc)) from exc
        logger.info("[Store] Deleted user %s and %d messages", user_id, len(removed))
        return len(removed)

    # =========================================================================
    # Messages
    # =========================================================================

    def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        room_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Persist a new message with all flags false and timestamp = now."""
        message_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO messages (id, sender_id, receiver_id, room_id, content, message_type, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [message_id, sender_id, receiver_id, room_id, content,
             message_type.value, datetime.utcnow()],
        )
        message = self.find_message_by_id(message_id)
        if message is None:
            raise TransportFailure(f"Message {message_id} missing after insert")
        return message

    def find_message_by_id(self, message_id: str) -> Optional[Message]:
        """Return a message by ID, including soft-deleted ones."""
        rows = self._execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m LEFT JOIN users u ON u.id = m.sender_id
            WHERE m.id = ?
            """,
            [message_id],
        )
        return _row_to_message(rows[0]) if rows else None

    def find_messages_by_room(self, room_id: str, limit: int = 0) -> List[Message]:
        """Return the non-deleted messages of a room, oldest first.

        Args:
            room_id: Conversation key.
            limit: Keep only the most recent ``limit`` messages (0 = all).
        """
        rows = self._execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m LEFT JOIN users u ON u.id = m.sender_id
            WHERE m.room_id = ? AND NOT m.is_deleted
            ORDER BY m.timestamp ASC, m.seq ASC
            """,
            [room_id],
        )
        messages = [_row_to_message(row) for row in rows]
        if limit > 0:
            messages = messages[-limit:]
        return messages

    def update_message(self, message_id: str, expected_version: int, **changes: Any) -> Optional[Message]:
        """Compare-and-set update of a message.

        Args:
            message_id: Message to update.
            expected_version: Version the caller evaluated its policy against.
            **changes: Any of ``content``, ``edited``, ``deleted``.

        Returns:
            The updated message, or None if the row changed (or vanished)
            since ``expected_version`` was read.
        """
        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")
        if not changes:
            raise ValueError("No message fields to update")

        assignments = ", ".join(f"{_UPDATABLE[key]} = ?" for key in changes)
        rows = self._execute(
            f"""
            UPDATE messages SET {assignments}, version = version + 1
            WHERE id = ? AND version = ?
            RETURNING id
            """,
            [*changes.values(), message_id, expected_version],
        )
        if not rows:
            logger.info(
                "[Store] Compare-and-set failed for message %s at version %d",
                message_id, expected_version,
            )
            return None
        return self.find_message_by_id(message_id)

    def bulk_mark_read(self, room_id: str, reader_id: str) -> int:
        """Mark every unread message in a room addressed to reader_id as read.

        Runs as a single UPDATE, so observers never see a partial result.

        Returns:
            Number of messages that transitioned to read.
        """
        rows = self._execute(
            """
            UPDATE messages SET is_read = TRUE, version = version + 1
            WHERE room_id = ? AND receiver_id = ? AND NOT is_read
            RETURNING id
            """,
            [room_id, reader_id],
        )
        return len(rows)

    def mark_conversation_read(self, sender_id: str, receiver_id: str) -> int:
        """Mark every unread message from sender_id to receiver_id as read."""
        rows = self._execute(
            """
            UPDATE messages SET is_read = TRUE, version = version + 1
            WHERE sender_id = ? AND receiver_id = ? AND NOT is_read
            RETURNING id
            """,
            [sender_id, receiver_id],
        )
        return len(rows)

    # =========================================================================
    # Reporting
    # =========================================================================

    def customer_summaries(self) -> List[CustomerSummary]:
        """Dashboard rows: every customer with last message and unread count.

        ``unreadCount`` counts non-deleted messages from the customer to the
        admin that the admin has not read yet. Rows are ordered by last
        message time (newest first, customers without messages last), then
        by customer creation time.
        """
        rows = self._execute(
            """
            WITH conversation AS (
                SELECT
                    CASE WHEN s.role = 'customer' THEN m.sender_id ELSE m.receiver_id END
                        AS customer_id,
                    m.content, m.timestamp, m.is_read, m.sender_id,
                    s.username AS sender_username,
                    row_number() OVER (
                        PARTITION BY
                            CASE WHEN s.role = 'customer' THEN m.sender_id ELSE m.receiver_id END
                        ORDER BY m.timestamp DESC, m.seq DESC
                    ) AS rn
                FROM messages m
                JOIN users s ON s.id = m.sender_id
                WHERE NOT m.is_deleted
            ),
            unread AS (
                SELECT m.sender_id AS customer_id, count(*) AS unread_count
                FROM messages m
                JOIN users r ON r.id = m.receiver_id
                WHERE r.role = 'admin' AND NOT m.is_read AND NOT m.is_deleted
                GROUP BY m.sender_id
            )
            SELECT
                c.id, c.username, c.created_at,
                lm.content, lm.timestamp, lm.is_read, lm.sender_id, lm.sender_username,
                COALESCE(un.unread_count, 0)
            FROM users c
            LEFT JOIN conversation lm ON lm.customer_id = c.id AND lm.rn = 1
            LEFT JOIN unread un ON un.customer_id = c.id
            WHERE c.role = 'customer'
            ORDER BY lm.timestamp DESC NULLS LAST, c.created_at DESC
            """
        )
        summaries = []
        for row in rows:
            last_message = None
            if row[3] is not None:
                last_message = LastMessage(
                    content=row[3],
                    timestamp=row[4],
                    read=row[5],
                    senderId=row[6],
                    senderUsername=row[7],
                )
            summaries.append(CustomerSummary(
                id=row[0],
                username=row[1],
                createdAt=row[2],
                lastMessage=last_message,
                unreadCount=row[8],
            ))
        return summaries
