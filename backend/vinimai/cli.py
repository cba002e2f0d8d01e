from __future__ import annotations

import os

import click

from vinimai.extensions import db
from vinimai.models import Product, User
from vinimai.seed import seed_sample_data

BOOTSTRAP_ENVS = ("dev", "development", "local", "test")


def register_cli(app) -> None:
    @app.cli.command("bootstrap-admin")
    def bootstrap_admin():
        """Create or promote the admin account named by ADMIN_MOBILE."""
        env = app.config.get("VINIMAI_ENV", "dev")
        if env not in BOOTSTRAP_ENVS and (os.getenv("ALLOW_ADMIN_BOOTSTRAP") or "").strip() != "1":
            raise click.ClickException("Admin bootstrap disabled. Set ALLOW_ADMIN_BOOTSTRAP=1 or VINIMAI_ENV=dev.")

        mobile = (os.getenv("ADMIN_MOBILE") or "").strip()
        password = (os.getenv("ADMIN_PASSWORD") or "").strip()
        username = (os.getenv("ADMIN_USERNAME") or "admin").strip()
        if not mobile or not password:
            raise click.ClickException("ADMIN_MOBILE and ADMIN_PASSWORD must be set.")

        admin = User.query.filter_by(mobile=mobile).first()
        if admin is None:
            if User.query.filter_by(username=username).first() is not None:
                raise click.ClickException(f"Username {username!r} is taken; set ADMIN_USERNAME.")
            admin = User(username=username, mobile=mobile)
            db.session.add(admin)
        admin.role = "admin"
        admin.is_verified = True
        admin.set_password(password)
        db.session.commit()
        click.echo(f"admin_bootstrap_ok {admin.username}")

    @app.cli.command("seed-database")
    @click.option("--password", default="Demo@1234", show_default=True, help="Password for the seeded accounts")
    def seed_database(password: str):
        """Load demo accounts and approved listings into an empty catalogue."""
        if Product.query.first() is not None:
            raise click.ClickException("Database already has products; refusing to seed.")
        users, products = seed_sample_data(password)
        click.echo(f"seed_ok users={users} products={products}")
