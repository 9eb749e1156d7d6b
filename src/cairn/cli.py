from __future__ import annotations

import json
import os
import subprocess
import sys
from typing import Optional

import typer
import uvicorn

from cairn import __version__
from cairn.config import get_settings
from cairn.context import tenant_id_var

app = typer.Typer(add_completion=False, help="Cairn CMS administration CLI")
acl_app = typer.Typer(add_completion=False, help="Inspect access control")
app.add_typer(acl_app, name="acl")


@app.command()
def start(
    host: Optional[str] = typer.Option(None, help="Bind host"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
    reload: bool = typer.Option(False, help="Auto-reload on changes (dev)"),
) -> None:
    settings = get_settings()
    uvicorn.run(
        "cairn.api.app:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
    )


@app.command()
def version() -> None:
    typer.echo(__version__)


def _engine_for(tenant: Optional[str]):
    from cairn.database import engine, get_engine_for_tenant

    settings = get_settings()
    if settings.TENANCY_MODE == "db-per-tenant":
        return get_engine_for_tenant(tenant)
    return engine


@app.command("init-db")
def init_db_command(
    tenant: Optional[str] = typer.Option(
        None, "--tenant", help="Tenant id (used when TENANCY_MODE=db-per-tenant)"
    ),
) -> None:
    """
    Create the schema in the configured database (dev convenience).
    """
    from cairn.database import init_db

    if tenant is not None:
        tenant_id_var.set(tenant)
    init_db(create_tables=True, bind_engine=_engine_for(tenant))
    typer.echo("Database initialized.")


@app.command()
def seed(
    tenant: str = typer.Option("default", "--tenant", help="Tenant id"),
    username: str = typer.Option("admin", help="Admin username"),
    password: str = typer.Option("admin", help="Admin password (dev only)"),
    email: str = typer.Option("admin@example.com", help="Admin email"),
    demo: bool = typer.Option(False, "--demo", help="Also seed Faker demo editors"),
    demo_users: int = typer.Option(5, help="Number of demo users"),
    faker_seed: Optional[int] = typer.Option(None, help="Seed Faker for repeatable demo data"),
) -> None:
    """
    Seed a tenant, its admin user and super group; optionally demo data.
    """
    from cairn.database import get_db_session, init_db
    from cairn.seeder import SeederRegistry

    tenant_id_var.set(tenant)
    init_db(create_tables=True, bind_engine=_engine_for(tenant))

    with get_db_session() as session:
        ran = SeederRegistry.run_all(
            session,
            tenant_id=tenant,
            include_demo=demo,
            seed=faker_seed,
            options={
                "admin_username": username,
                "admin_password": password,
                "admin_email": email,
                "demo_users": demo_users,
            },
        )

    typer.echo(f"Seeded tenant={tenant}, admin={username} ({', '.join(ran)})")


@app.command()
def packages(
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """
    List the registered packages and the resources they own.
    """
    from cairn.security.acl.packages import load_registry, parse_package_dirs

    settings = get_settings()
    registry = load_registry(parse_package_dirs(settings.PACKAGE_DIRS))
    rows = [
        {"name": p.name, "title": p.title, "version": p.version, "controllers": list(p.controllers)}
        for p in registry.packages()
    ]
    if as_json:
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        typer.echo(f"No packages found in {settings.PACKAGE_DIRS}")
        return
    for row in rows:
        typer.echo(f"{row['name']} ({row['title']}): {', '.join(row['controllers']) or '-'}")


@acl_app.command("resolve")
def acl_resolve(
    username: str = typer.Argument(..., help="Username to resolve"),
    tenant: str = typer.Option("default", "--tenant", help="Tenant id"),
    policy: Optional[str] = typer.Option(
        None, "--policy", help="Override ACL_CONFLICT_POLICY (last-wins|most-restrictive)"
    ),
) -> None:
    """
    Print a user's effective permission map as JSON.
    """
    from cairn.database import get_db_session
    from cairn.exceptions.handlers import CMSException
    from cairn.security.acl.packages import load_registry, parse_package_dirs
    from cairn.security.acl.resolver import PermissionResolver
    from cairn.security.acl.rules import Subject
    from cairn.security.acl.store import SQLRuleStore
    from cairn.security.auth.service import AuthService

    settings = get_settings()
    tenant_id_var.set(tenant)
    registry = load_registry(parse_package_dirs(settings.PACKAGE_DIRS))

    with get_db_session() as session:
        user = AuthService(session).get_user(tenant_id=tenant, username=username)
        if user is None:
            typer.echo(f"User not found: {username} (tenant {tenant})", err=True)
            raise typer.Exit(1)
        resolver = PermissionResolver(
            SQLRuleStore(session),
            registry,
            conflict_policy=policy or settings.ACL_CONFLICT_POLICY,
            strict_packages=settings.ACL_STRICT_PACKAGES,
        )
        try:
            permission_map = resolver.resolve(
                Subject(id=user.id, tenant_id=tenant, username=user.username)
            )
        except CMSException as exc:
            typer.echo(json.dumps(exc.to_dict(), indent=2), err=True)
            raise typer.Exit(2)

    typer.echo(json.dumps(permission_map.to_dict(), indent=2))


@app.command("db")
def db_command(
    action: str = typer.Argument(
        ..., help="upgrade|downgrade|revision|current|history"
    ),
    message: Optional[str] = typer.Option(
        None, "--message", "-m", help="Migration message (for revision)"
    ),
    autogenerate: bool = typer.Option(
        True, "--autogenerate/--no-autogenerate", help="Autogenerate migration"
    ),
    revision: Optional[str] = typer.Option(
        None, "--revision", "-r", help="Target revision (for upgrade/downgrade)"
    ),
) -> None:
    """
    Database migrations via Alembic.

    Actions:
      upgrade   - Apply migrations (default: head)
      downgrade - Revert migrations
      revision  - Create new migration
      current   - Show current revision
      history   - Show migration history
    """
    alembic_ini = os.path.join(os.getcwd(), "alembic.ini")
    if not os.path.exists(alembic_ini):
        pkg_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        alembic_ini = os.path.join(os.path.dirname(pkg_dir), "alembic.ini")
        if not os.path.exists(alembic_ini):
            typer.echo("Error: alembic.ini not found", err=True)
            raise typer.Exit(1)

    cmd = [sys.executable, "-m", "alembic", "-c", alembic_ini]

    if action == "upgrade":
        cmd.extend(["upgrade", revision or "head"])
    elif action == "downgrade":
        cmd.extend(["downgrade", revision or "-1"])
    elif action == "revision":
        cmd.append("revision")
        if autogenerate:
            cmd.append("--autogenerate")
        if message:
            cmd.extend(["-m", message])
        else:
            typer.echo("Warning: No message provided, using default", err=True)
            cmd.extend(["-m", "auto migration"])
    elif action == "current":
        cmd.append("current")
    elif action == "history":
        cmd.append("history")
    else:
        typer.echo(f"Unknown action: {action}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Running: {' '.join(cmd)}", err=True)
    result = subprocess.run(cmd, cwd=os.getcwd())
    raise typer.Exit(result.returncode)


if __name__ == "__main__":
    app()
