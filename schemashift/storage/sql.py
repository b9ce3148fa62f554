"""
SQL helpers shared by migration targets.

- split_sql_statements(): break a migration script into single statements
- enable_transactional_ddl(): make SQLite DDL take part in transactions
"""
import re

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

# PostgreSQL dollar-quote opener: $$ or $tag$ (never $1 parameters)
_DOLLAR_TAG = re.compile(r'\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$')


def _is_escape_string_prefix(sql: str, i: int) -> bool:
    """True if the quote at sql[i] opens an E'...' string."""
    if i == 0 or sql[i - 1] not in 'Ee':
        return False
    return i == 1 or not (sql[i - 2].isalnum() or sql[i - 2] == '_')


def _block_comment_end(sql: str, i: int) -> int:
    """Index just past the /* ... */ comment starting at sql[i], or -1.

    Comments nest, as in PostgreSQL.
    """
    depth = 0
    while i < len(sql):
        if sql.startswith('/*', i):
            depth += 1
            i += 2
        elif sql.startswith('*/', i):
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return -1


def split_sql_statements(sql: str) -> list[str]:
    """Split SQL string into individual statements.

    Handles semicolon-separated statements while preserving string
    literals (including E'...' strings with backslash escapes), quoted
    identifiers and dollar-quoted bodies. Line and block comments outside
    literals are dropped. Required because SQLite and asyncpg prepared
    statements accept one statement at a time.

    An unterminated block comment is kept as-is so the database reports it.

    Args:
        sql: SQL string with one or more statements

    Returns:
        List of individual SQL statements (without trailing semicolons)

    Example:
        >>> split_sql_statements("INSERT INTO t VALUES ('a;b'); SELECT 1;")
        ["INSERT INTO t VALUES ('a;b')", 'SELECT 1']
    """
    statements = []
    current = []
    quote = None
    escapes = False
    i = 0

    def flush():
        stmt = ''.join(current).strip()
        if stmt:
            statements.append(stmt)
        current.clear()

    while i < len(sql):
        if quote:
            if escapes and sql[i] == '\\':
                current.append(sql[i:i + 2])
                i += 2
            elif sql.startswith(quote, i):
                current.append(quote)
                i += len(quote)
                quote = None
            else:
                current.append(sql[i])
                i += 1
            continue

        char = sql[i]

        if char in ('"', "'"):
            quote = char
            escapes = char == "'" and _is_escape_string_prefix(sql, i)
        elif char == '$':
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                quote = match.group(0)
                escapes = False
                current.append(quote)
                i = match.end()
                continue
        elif sql.startswith('--', i):
            newline = sql.find('\n', i)
            if newline == -1:
                break
            i = newline
            continue
        elif sql.startswith('/*', i):
            end = _block_comment_end(sql, i)
            if end == -1:
                current.append(sql[i:])
                break
            current.append(' ')
            i = end
            continue
        elif char == ';':
            flush()
            i += 1
            continue

        current.append(char)
        i += 1

    flush()
    return statements


def enable_transactional_ddl(engine: AsyncEngine) -> AsyncEngine:
    """Let SQLAlchemy emit BEGIN itself on SQLite connections.

    pysqlite/aiosqlite only open a transaction before DML, so CREATE/ALTER/DROP
    would autocommit and survive a rollback. Disabling the driver's implicit
    BEGIN and issuing our own on SQLAlchemy's "begin" event makes DDL
    transactional. No-op for other dialects.

    Args:
        engine: Async engine, before any connection has been made

    Returns:
        The same engine
    """
    if engine.dialect.name != 'sqlite':
        return engine

    @event.listens_for(engine.sync_engine, 'connect')
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, 'begin')
    def _emit_begin(conn):
        conn.exec_driver_sql('BEGIN')

    return engine
