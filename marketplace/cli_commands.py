"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-admin: Create a platform admin user
"""

import click
import re
from marketplace.database import create_tables, get_session
from marketplace.models import User, UserRole, normalize_zone


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        create_tables()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-admin')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--name', default=None, help='Display name')
    @click.option('--role', type=click.Choice(['SUPER_ADMIN', 'LOCATION_ADMIN']), default='SUPER_ADMIN')
    @click.option('--zone', 'zones', multiple=True, help='Zone managed by a location admin (repeatable)')
    def create_admin(email, name, role, zones):
        """Create a platform admin user."""
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('Invalid email. Use the format user@example.com', fg='red'))
            return

        parsed_zones = []
        for raw in zones:
            zone = normalize_zone(raw)
            if zone is None:
                click.echo(click.style(f'Unknown zone: {raw}', fg='red'))
                return
            parsed_zones.append(zone.value)

        db_session = get_session()
        if db_session.query(User).filter_by(email=email).first():
            click.echo(click.style(f'A user with email {email} already exists', fg='red'))
            return

        try:
            admin = User(
                email=email,
                name=name,
                role=UserRole(role).value,
                zones=parsed_zones,
                is_active=True,
            )
            db_session.add(admin)
            db_session.commit()

            click.echo(click.style('\nAdmin created successfully!', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   Role: {role}')
            click.echo(f'   ID: {admin.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error creating admin: {str(e)}', fg='red'))
