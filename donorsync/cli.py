import click
from flask import current_app

from donorsync.extensions import db
from donorsync.models.user_model import User


def register_commands(app):
    @app.cli.command('init-db')
    def init_db():
        """Create all tables for the configured database."""
        db.create_all()
        click.echo(f"Initialized database at {current_app.config['SQLALCHEMY_DATABASE_URI']}")

    @app.cli.command('create-admin')
    @click.argument('email')
    @click.argument('password')
    @click.option('--name', default='Administrator')
    def create_admin(email, password, name):
        """Create an admin account, or promote an existing user."""
        user = User.query.filter_by(email=email.lower()).first()
        if user is None:
            user = User(full_name=name, email=email.lower())
            user.set_password(password)
            db.session.add(user)
        user.role = 'admin'
        db.session.commit()
        click.echo(f'{user.email} is now an admin')
