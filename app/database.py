import aiosqlite

from app.config import settings

CREATE_CLASSES = """
CREATE TABLE IF NOT EXISTS classes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    sync_key TEXT,
    sync_enabled INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_LECTURES = """
CREATE TABLE IF NOT EXISTS lectures (
    id TEXT PRIMARY KEY,
    class_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    original_name TEXT,
    descriptor TEXT,
    kind TEXT NOT NULL DEFAULT 'LECTURE',
    mime TEXT,
    status TEXT NOT NULL DEFAULT 'PROCESSING',
    sync_key TEXT,
    include_in_memory INTEGER NOT NULL DEFAULT 1,
    transcript TEXT,
    text_content TEXT,
    summary TEXT,
    key_terms_json TEXT NOT NULL DEFAULT '[]',
    duration_sec INTEGER,
    segments_json TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (class_id) REFERENCES classes(id)
)
"""

# vector_json is '' until an embedding has been attached.
CREATE_CHUNKS = """
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    class_id TEXT NOT NULL,
    lecture_id TEXT NOT NULL,
    source TEXT NOT NULL,
    start_sec REAL,
    end_sec REAL,
    text TEXT NOT NULL,
    vector_json TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (lecture_id) REFERENCES lectures(id)
)
"""

CREATE_LECTURE_USER_PREFS = """
CREATE TABLE IF NOT EXISTS lecture_user_prefs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    lecture_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    include_in_ai_summary INTEGER NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (lecture_id) REFERENCES lectures(id),
    UNIQUE(lecture_id, user_id)
)
"""

CREATE_CHAT_MESSAGES = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    class_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    citations_json TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (class_id) REFERENCES classes(id)
)
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_lectures_class ON lectures(class_id)",
    "CREATE INDEX IF NOT EXISTS idx_lectures_sync_key ON lectures(sync_key)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_lecture ON chunks(lecture_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_class ON chunks(class_id)",
    "CREATE INDEX IF NOT EXISTS idx_chat_class_user ON chat_messages(class_id, user_id)",
]

_DDL = [
    CREATE_CLASSES,
    CREATE_LECTURES,
    CREATE_CHUNKS,
    CREATE_LECTURE_USER_PREFS,
    CREATE_CHAT_MESSAGES,
    *_INDEXES,
]


async def init_db(db_path: str | None = None) -> None:
    """Create all tables. Called once at server startup via FastAPI lifespan."""
    async with aiosqlite.connect(db_path or settings.db_path) as db:
        for stmt in _DDL:
            await db.execute(stmt)
        await db.commit()


async def get_async_conn(db_path: str | None = None) -> aiosqlite.Connection:
    """Async connection for use in FastAPI route handlers."""
    conn = await aiosqlite.connect(db_path or settings.db_path)
    await conn.execute("PRAGMA busy_timeout = 5000")
    conn.row_factory = aiosqlite.Row
    return conn
