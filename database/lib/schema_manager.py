"""Database schema management module.

Schema versions live in database/schema/vN.py, each exporting a ``schema``
dict:

    {
        'version': N,
        'tables': [{'name', 'columns', 'primary_key'?, 'foreign_keys'?, 'indexes'?}],
        'migrations': [SQL applied when upgrading from version N-1]
    }

A fresh database gets the latest version built directly from its tables; an
existing database replays the migrations of every newer version in order.
The applied versions are recorded in the ``schema_version`` table.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'
SCHEMA_PACKAGE = 'database.schema'

VERSION_TABLE = '''
    CREATE TABLE IF NOT EXISTS schema_version (
        version INT8 PRIMARY KEY,
        applied_at TIMESTAMP NOT NULL DEFAULT now()
    )
'''

def column_sql(column: Dict[str, Any]) -> str:
    parts = [column['name'], column['type']]
    if 'default' in column:
        parts.append(f"DEFAULT {column['default']}")
    if column.get('nullable') is False:
        parts.append('NOT NULL')
    return ' '.join(parts)

def table_sql(table: Dict[str, Any]) -> str:
    """CREATE TABLE statement for a table, without its foreign keys."""
    definitions = [column_sql(col) for col in table['columns']]

    key = table.get('primary_key') or [
        col['name'] for col in table['columns'] if col.get('primary_key')
    ]
    if key:
        definitions.append(f"PRIMARY KEY ({', '.join(key)})")
    definitions.extend(
        f"UNIQUE ({col['name']})" for col in table['columns'] if col.get('unique')
    )

    body = ',\n    '.join(definitions)
    return f"CREATE TABLE IF NOT EXISTS {table['name']} (\n    {body}\n)"

def foreign_key_sql(table: Dict[str, Any], fk: Dict[str, Any]) -> str:
    columns = ', '.join(fk['columns'])
    return (
        f"ALTER TABLE {table['name']} "
        f"ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]} "
        f"FOREIGN KEY ({columns}) REFERENCES {fk['references']}"
    )

def index_sql(table: Dict[str, Any], index: Dict[str, Any]) -> str:
    unique = 'UNIQUE ' if index.get('unique') else ''
    statement = (
        f"CREATE {unique}INDEX IF NOT EXISTS {index['name']} "
        f"ON {table['name']} ({', '.join(index['columns'])})"
    )
    if index.get('where'):
        statement += f" WHERE {index['where']}"
    return statement

def fresh_install_statements(schema: Dict[str, Any]) -> List[str]:
    """Every statement needed to build ``schema`` on an empty database.

    Tables come first so that foreign keys may reference any of them.
    """
    tables = schema.get('tables', [])
    statements = [table_sql(table) for table in tables]
    for table in tables:
        statements.extend(foreign_key_sql(table, fk) for fk in table.get('foreign_keys', []))
        statements.extend(index_sql(table, idx) for idx in table.get('indexes', []))
    return statements

class SchemaManager:
    """Brings the database up to the newest schema version."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        self.pool = pool
        self.schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0

    async def initialize(self) -> None:
        """Create the version table and apply whatever is pending.

        Raises:
            DatabaseSchemaError: If no schema files exist or applying them fails
        """
        schemas = self.load_schemas()
        if not schemas:
            raise DatabaseSchemaError(f"No schema files found in {self.schema_dir}")

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(VERSION_TABLE)
                self.current_version = await conn.fetchval(
                    'SELECT COALESCE(MAX(version), 0) FROM schema_version'
                )

                latest = max(schemas)
                if self.current_version >= latest:
                    logger.info(f"Schema is up to date (v{self.current_version})")
                    return

                logger.info(f"Updating schema from v{self.current_version} to v{latest}")
                if self.current_version == 0:
                    await self._apply(conn, latest, fresh_install_statements(schemas[latest]))
                else:
                    for version in sorted(v for v in schemas if v > self.current_version):
                        await self._apply(conn, version, schemas[version].get('migrations', []))
                self.current_version = latest

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    def load_schemas(self) -> Dict[int, Dict[str, Any]]:
        """Import every vN.py under the schema directory, keyed by version.

        Raises:
            DatabaseSchemaError: If a file lacks a schema or declares the wrong version
        """
        schemas: Dict[int, Dict[str, Any]] = {}

        for file in sorted(self.schema_dir.glob('v*.py')):
            try:
                version = int(file.stem[1:])
            except ValueError:
                logger.warning(f"Ignoring schema file with bad name: {file.name}")
                continue

            module = importlib.import_module(f"{SCHEMA_PACKAGE}.{file.stem}")
            schema = getattr(module, 'schema', None)
            if schema is None:
                raise DatabaseSchemaError(f"{file.name} has no 'schema' definition")
            if schema.get('version') != version:
                raise DatabaseSchemaError(
                    f"{file.name} declares version {schema.get('version')}, expected {version}"
                )
            schemas[version] = schema

        return schemas

    async def _apply(self, conn, version: int, statements: List[str]) -> None:
        """Run one version's statements and record it, atomically."""
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)
            await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', version)
        logger.info(f"Applied schema v{version} ({len(statements)} statements)")
