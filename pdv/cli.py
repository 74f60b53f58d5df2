# pdv/cli.py
from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from pdv.core.database import initialize_database
from pdv.core.services import create_user, transaction


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Cria tabelas, admin padrão e configurações da loja (idempotente)."""
    result = initialize_database(current_app._get_current_object())
    click.echo(
        f"tabelas criadas={result.tables_created} "
        f"admin criado={result.admin_created} ({result.admin_email}) "
        f"configurações criadas={result.settings_created}"
    )


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", default="Administrador", show_default=True)
@with_appcontext
def create_admin_command(email: str, password: str, name: str):
    """Cria um usuário ADMIN adicional."""
    with transaction():
        user = create_user({"name": name, "email": email, "password": password, "role": "ADMIN"})
    click.echo(f"Admin criado: {user.email} (id={user.id})")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
