"""
Version state store for Postgres.
"""

from keel.state.base import VersionStateStore
from keel.utils.sql_escape import escape_identifier


class PostgresStateStore(VersionStateStore):
    """Bookkeeping tables in Postgres."""

    def _create_table_statements(self) -> list[str]:
        statements = []
        if self.schema:
            statements.append(f"CREATE SCHEMA IF NOT EXISTS {escape_identifier(self.schema)}")
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {self.version_table_sql} (
                version VARCHAR(64) NOT NULL PRIMARY KEY,
                applied_at BIGINT NOT NULL,
                log_text TEXT NOT NULL
            )
            """
        )
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {self.rollback_table_sql} (
                version VARCHAR(64) NOT NULL REFERENCES {self.version_table_sql} (version) DEFERRABLE INITIALLY DEFERRED,
                script_name VARCHAR(255) NOT NULL,
                kind VARCHAR(16) NOT NULL,
                source_path TEXT,
                content TEXT NOT NULL,
                PRIMARY KEY (version, script_name)
            )
            """
        )
        return statements
