from django.db import migrations


RLS_TABLES = [
    "accounts_organization",
    "accounts_membership",
    "projects_client",
    "projects_project",
    "projects_projectteammember",
    "projects_task",
    "ledger_expense",
    "ledger_payment",
]

BYPASS = "current_setting('app.rls_bypass', true) = 'on'"
CURRENT_ORGANIZATION = "NULLIF(current_setting('app.current_organization_id', true), '')::bigint"


def _predicate(table: str) -> str:
    column = "id" if table == "accounts_organization" else "organization_id"
    return f"{BYPASS} OR {column} = {CURRENT_ORGANIZATION}"


def _build_rls_sql() -> list:
    statements = []
    for table in RLS_TABLES:
        predicate = _predicate(table)
        statements.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
        statements.append(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY;")
        statements.append(f"DROP POLICY IF EXISTS rls_tenant_isolation ON {table};")
        statements.append(
            "CREATE POLICY rls_tenant_isolation ON {table} "
            "USING ({predicate}) WITH CHECK ({predicate});".format(
                table=table,
                predicate=predicate,
            )
        )
    return statements


def _build_rls_reverse_sql() -> list:
    statements = []
    for table in RLS_TABLES:
        statements.append(f"DROP POLICY IF EXISTS rls_tenant_isolation ON {table};")
        statements.append(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY;")
        statements.append(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY;")
    return statements


def _run(statements):
    def apply(apps, schema_editor):
        # Row-level security is PostgreSQL only; SQLite relies on ORM filters.
        if schema_editor.connection.vendor != "postgresql":
            return
        for statement in statements:
            schema_editor.execute(statement)
    return apply


class Migration(migrations.Migration):

    dependencies = [
        ("accounts", "0001_initial"),
        ("projects", "0001_initial"),
        ("ledger", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            _run(_build_rls_sql()),
            _run(_build_rls_reverse_sql()),
        ),
    ]
