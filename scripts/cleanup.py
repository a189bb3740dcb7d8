from datetime import datetime, timedelta
from pathlib import Path

import click
from flask import current_app
from werkzeug.security import generate_password_hash

from database import db
from models import Fabric, User
from security_utils import validate_password_strength
from utils.storage import FABRIC_IMAGE_DIR, delete_fabric_image


def register_cleanup_commands(app):
    """Register the maintenance CLI commands."""

    @app.cli.command("users:create")
    @click.argument("username")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option(
        "--role", type=click.Choice(["admin", "user"]), default="user", show_default=True
    )
    def create_user(username: str, password: str, role: str):
        """Create a login account."""
        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"User {username} already exists")

        valid, error = validate_password_strength(password)
        if not valid:
            raise click.ClickException(error)

        db.session.add(
            User(username=username, password=generate_password_hash(password), role=role)
        )
        db.session.commit()
        current_app.logger.info(f"User {username} created from CLI (role={role})")
        click.echo(f"User {username} created")

    @app.cli.command("cleanup:sessions")
    @click.option(
        "--dry-run/--no-dry-run", default=True, help="Report only, delete nothing"
    )
    def cleanup_sessions(dry_run: bool):
        """Delete file sessions older than PERMANENT_SESSION_LIFETIME."""
        if current_app.config.get("SESSION_TYPE") != "filesystem":
            current_app.logger.info("File sessions not in use, nothing to clean")
            return

        session_dir = Path(current_app.config.get("SESSION_FILE_DIR", ""))
        if not session_dir.exists():
            current_app.logger.info("Session directory not found")
            return

        lifetime = current_app.permanent_session_lifetime
        now = datetime.utcnow()
        checked = removed = 0

        for path in session_dir.glob("*"):
            if not path.is_file():
                continue
            checked += 1
            mtime = datetime.utcfromtimestamp(path.stat().st_mtime)
            if now - mtime <= lifetime:
                continue
            if dry_run:
                current_app.logger.info(f"Would delete {path} (dry-run)")
                continue
            try:
                path.unlink()
                removed += 1
                current_app.logger.info(f"Deleted {path}")
            except OSError as e:
                current_app.logger.error(f"Could not delete {path}: {e}")

        current_app.logger.info(f"Files checked: {checked}, deleted: {removed}")
        click.echo(f"checked={checked} removed={removed}")

    @app.cli.command("cleanup:uploads")
    @click.option(
        "--dry-run/--no-dry-run", default=True, help="Report only, delete nothing"
    )
    def cleanup_uploads(dry_run: bool):
        """Delete fabric images that no fabric references."""
        upload_root = Path(current_app.config["UPLOAD_FOLDER"])
        image_dir = upload_root / FABRIC_IMAGE_DIR
        if not image_dir.exists():
            current_app.logger.info("Upload directory not found")
            return

        referenced = {
            (upload_root / rel).resolve()
            for (rel,) in db.session.query(Fabric.image_path).all()
            if rel
        }

        checked = removed = 0
        for file in image_dir.rglob("*"):
            if not file.is_file():
                continue
            checked += 1
            if file.resolve() in referenced:
                continue
            if dry_run:
                current_app.logger.info(f"Orphaned file: {file} (dry-run)")
                continue
            try:
                file.unlink()
                removed += 1
                current_app.logger.info(f"Deleted {file}")
            except OSError as e:
                current_app.logger.error(f"Could not delete {file}: {e}")

        current_app.logger.info(f"Files checked: {checked}, deleted: {removed}")
        click.echo(f"checked={checked} removed={removed}")

    @app.cli.command("cleanup:recycle-bin")
    @click.option(
        "--days",
        type=int,
        default=None,
        help="Purge fabrics deleted more than N days ago (RECYCLE_BIN_DAYS)",
    )
    @click.option(
        "--dry-run/--no-dry-run", default=True, help="Report only, delete nothing"
    )
    def cleanup_recycle_bin(days, dry_run: bool):
        """Permanently delete old recycle bin entries not used by any order."""
        if days is None:
            days = current_app.config.get("RECYCLE_BIN_DAYS", 30)
        cutoff = datetime.utcnow() - timedelta(days=days)

        candidates = Fabric.query.filter(
            Fabric.deleted_at.isnot(None), Fabric.deleted_at < cutoff
        ).all()

        purged = skipped = 0
        for fabric in candidates:
            if fabric.order_lines.count():
                skipped += 1
                current_app.logger.info(
                    f"Fabric {fabric.id} kept: referenced by cutting orders"
                )
                continue
            if dry_run:
                current_app.logger.info(f"Would purge fabric {fabric.id} (dry-run)")
                continue
            image_path = fabric.image_path
            db.session.delete(fabric)
            db.session.commit()
            delete_fabric_image(image_path)
            purged += 1

        current_app.logger.info(
            f"Recycle bin: {len(candidates)} candidates, {purged} purged, "
            f"{skipped} kept"
        )
        click.echo(f"candidates={len(candidates)} purged={purged} skipped={skipped}")
