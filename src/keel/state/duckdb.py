"""
Version state store for DuckDB.
"""

from keel.state.base import VersionStateStore
from keel.utils.sql_escape import escape_identifier


class DuckDBStateStore(VersionStateStore):
    """Bookkeeping tables in DuckDB."""

    def _create_table_statements(self) -> list[str]:
        statements = []
        if self.schema:
            statements.append(f"CREATE SCHEMA IF NOT EXISTS {escape_identifier(self.schema)}")
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {self.version_table_sql} (
                version VARCHAR PRIMARY KEY,
                applied_at BIGINT NOT NULL,
                log_text VARCHAR NOT NULL
            )
            """
        )
        statements.append(
            f"""
            CREATE TABLE IF NOT EXISTS {self.rollback_table_sql} (
                version VARCHAR NOT NULL,
                script_name VARCHAR NOT NULL,
                kind VARCHAR NOT NULL,
                source_path VARCHAR,
                content VARCHAR NOT NULL,
                PRIMARY KEY (version, script_name)
            )
            """
        )
        return statements
