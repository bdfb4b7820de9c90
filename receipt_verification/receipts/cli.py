"""CLI commands for verifying receipts from the command line."""

from __future__ import annotations

import json

import click
from flask.cli import with_appcontext

from receipt_verification.receipts.exceptions import ReceiptValidationError
from receipt_verification.receipts.services import ReceiptSubmission, verify_receipt
from receipt_verification.services.receipt_parser import parse_receipt_text
from receipt_verification.utils.antifraud import validate_oib_checksum


@click.group("receipts")
def receipts_cli():
    """Receipt verification commands."""


def register_commands(app):
    """Register CLI commands with the application."""
    app.cli.add_command(receipts_cli)

    receipts_cli.add_command(parse_command)
    receipts_cli.add_command(verify_command)
    receipts_cli.add_command(check_oib_command)


def _echo_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@click.command("parse")
@click.argument("text_file", type=click.File("r", encoding="utf-8"))
def parse_command(text_file) -> None:
    """Parse OCR text from a file (or - for stdin) and print the fields as JSON.

    Examples:
        flask receipts parse receipt.txt
        tesseract receipt.jpg - -l hrv | flask receipts parse -
    """
    _echo_json(parse_receipt_text(text_file.read()).to_dict())


@click.command("verify")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option("--declared-total", type=float, help="Total the user says they paid")
@click.option("--restaurant-id", type=int, help="Restaurant the receipt was submitted for")
@click.option("--lat", "latitude", type=float, help="User latitude at submission")
@click.option("--lng", "longitude", type=float, help="User longitude at submission")
@click.option("--known-hash", "known_hashes", multiple=True, help="Previously seen image hash (repeatable)")
@with_appcontext
def verify_command(
    image: str,
    declared_total: float | None,
    restaurant_id: int | None,
    latitude: float | None,
    longitude: float | None,
    known_hashes: tuple[str, ...],
) -> None:
    """Run the full verification pipeline on a receipt photo.

    Examples:
        flask receipts verify receipt.jpg --declared-total 25.50 --restaurant-id 1
    """
    with open(image, "rb") as f:
        image_bytes = f.read()

    submission = ReceiptSubmission(
        image_bytes=image_bytes,
        declared_total=declared_total,
        latitude=latitude,
        longitude=longitude,
        restaurant_id=restaurant_id,
        known_hashes=known_hashes,
    )
    try:
        result = verify_receipt(submission)
    except ReceiptValidationError as e:
        raise click.ClickException(e.message) from e

    _echo_json(result.to_dict())


@click.command("check-oib")
@click.argument("oib")
def check_oib_command(oib: str) -> None:
    """Check an OIB against its ISO 7064 MOD 11,10 check digit."""
    if validate_oib_checksum(oib):
        click.echo(f"✅ {oib} is a valid OIB")
    else:
        click.echo(f"❌ {oib} is not a valid OIB")
        raise SystemExit(1)
