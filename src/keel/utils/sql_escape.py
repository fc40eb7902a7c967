"""
SQL identifier escaping utilities.

Bookkeeping table and schema names come from configuration, so they are
validated and quoted before being interpolated into DDL. Values always go
through driver parameters.
"""

import re

_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def escape_identifier(identifier: str) -> str:
    """
    Escape SQL identifier (table name, column name, schema name).

    Wraps identifier in double quotes and escapes any double quotes within.
    This is safe for PostgreSQL and DuckDB.

    Args:
        identifier: SQL identifier to escape

    Returns:
        Escaped identifier wrapped in double quotes

    Example:
        >>> escape_identifier("__migration")
        '"__migration"'
        >>> escape_identifier('table"name')
        '"table""name"'
    """
    if not identifier:
        raise ValueError("Identifier cannot be empty")

    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def escape_qualified_name(schema: str | None, table: str) -> str:
    """
    Escape a possibly schema-qualified table name.

    Args:
        schema: Schema name, or None for the connection's default schema
        table: Table name

    Returns:
        Escaped name: "table" or "schema"."table"
    """
    if schema:
        return f"{escape_identifier(schema)}.{escape_identifier(table)}"
    return escape_identifier(table)


def validate_identifier(identifier: str) -> bool:
    """
    Validate that identifier contains only letters, digits and underscores.

    Args:
        identifier: Identifier to validate

    Returns:
        True if identifier is safe, False otherwise
    """
    if not identifier:
        return False
    return bool(_IDENTIFIER_PATTERN.match(identifier))
