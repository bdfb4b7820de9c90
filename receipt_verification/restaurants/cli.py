"""CLI commands for restaurant management."""

from __future__ import annotations

import json

import click
from flask.cli import with_appcontext

from receipt_verification.restaurants.exceptions import RestaurantNotFoundError, RestaurantValidationError
from receipt_verification.restaurants.models import Restaurant
from receipt_verification.restaurants.services import create_restaurant, get_restaurant, list_restaurants


@click.group("restaurant")
def restaurant_cli():
    """Restaurant management commands."""


def register_commands(app):
    """Register CLI commands with the application."""
    app.cli.add_command(restaurant_cli)

    restaurant_cli.add_command(add_restaurant)
    restaurant_cli.add_command(list_restaurants_command)
    restaurant_cli.add_command(show_restaurant)


def _format_restaurant(restaurant: Restaurant) -> str:
    location = (
        f"({restaurant.latitude:.6f}, {restaurant.longitude:.6f})" if restaurant.has_coordinates else "(no location)"
    )
    city = f", {restaurant.city}" if restaurant.city else ""
    return f"   • {restaurant.id}: {restaurant.name}{city} OIB={restaurant.oib or '-'} {location}"


@click.command("add")
@click.argument("name")
@click.option("--oib", type=str, help="11 digit Croatian tax number")
@click.option("--lat", "latitude", type=float, help="Latitude of the restaurant")
@click.option("--lng", "longitude", type=float, help="Longitude of the restaurant")
@click.option("--address", type=str, help="Street address")
@click.option("--city", type=str, help="City")
@with_appcontext
def add_restaurant(
    name: str,
    oib: str | None,
    latitude: float | None,
    longitude: float | None,
    address: str | None,
    city: str | None,
) -> None:
    """Register a restaurant.

    Examples:
        flask restaurant add "Bistro Mali" --oib 12345678903 --lat 45.8150 --lng 15.9819
    """
    try:
        restaurant = create_restaurant(
            name, oib=oib, address=address, city=city, latitude=latitude, longitude=longitude
        )
    except RestaurantValidationError as e:
        raise click.ClickException(e.message) from e

    click.echo(f"✅ Created restaurant {restaurant.id}: {restaurant.name}")


@click.command("list")
@click.option("--oib", type=str, help="Only show restaurants registered under this OIB")
@click.option("--json", "as_json", is_flag=True, help="Print restaurants as JSON")
@with_appcontext
def list_restaurants_command(oib: str | None, as_json: bool) -> None:
    """List restaurants.

    Examples:
        flask restaurant list
        flask restaurant list --oib 12345678903
    """
    restaurants = list_restaurants(oib)
    if as_json:
        click.echo(json.dumps([r.to_dict() for r in restaurants], indent=2, ensure_ascii=False))
        return

    if not restaurants:
        click.echo("   (No restaurants)")
        return

    click.echo(f"🍽️  {len(restaurants)} restaurant(s):\n")
    for restaurant in restaurants:
        click.echo(_format_restaurant(restaurant))


@click.command("show")
@click.argument("restaurant_id", type=int)
@with_appcontext
def show_restaurant(restaurant_id: int) -> None:
    """Show one restaurant as JSON."""
    try:
        restaurant = get_restaurant(restaurant_id)
    except RestaurantNotFoundError as e:
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps(restaurant.to_dict(), indent=2, ensure_ascii=False))
