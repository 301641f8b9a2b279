"""
Cart API CLI.

Command-line interface for common operations.
"""

import typer
from rich.console import Console
from rich.table import Table

from shared.config.logging import setup_logging

app = typer.Typer(
    name="cart-checkout",
    help="Cart & Checkout service CLI",
    add_completion=False,
)
console = Console()


@app.callback()
def main():
    """Cart & Checkout service CLI."""
    setup_logging()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def db_create():
    """Create database tables."""
    from shared.infrastructure.db import engine
    from cart_api.models import Base

    try:
        Base.metadata.create_all(bind=engine)
        console.print("[green]✓ Tables created[/green]")
    except Exception as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def db_seed(
    force: bool = typer.Option(False, "--force", "-f", help="Allow seeding in production"),
):
    """Seed database with a demo catalog and coupons."""
    from shared.config.settings import settings
    from shared.infrastructure.db import get_db_context
    from cart_api.seed import seed

    if settings.environment == "production" and not force:
        console.print("[red]Cannot seed production without --force[/red]")
        raise typer.Exit(1)

    try:
        with get_db_context() as db:
            counts = seed(db)
    except Exception as e:
        console.print(f"[red]✗ Seeding failed: {e}[/red]")
        raise typer.Exit(1)

    if counts["products"]:
        console.print(
            f"[green]✓ Seeded {counts['products']} products and {counts['coupons']} coupons[/green]"
        )
    else:
        console.print("[yellow]Catalog already seeded, nothing to do[/yellow]")


# =============================================================================
# Cart Commands
# =============================================================================

def _print_cart(cart) -> None:
    table = Table(title=f"Cart {cart.id} (user {cart.user_id}, {cart.status})")
    table.add_column("Item", style="cyan")
    table.add_column("Product")
    table.add_column("Qty", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column("Subtotal", justify="right", style="green")

    for item in cart.items:
        table.add_row(
            str(item.id),
            item.product_name,
            str(item.quantity),
            str(item.price_at_addition),
            str(item.subtotal),
        )
    console.print(table)

    for coupon in cart.applied_coupons:
        source = "auto" if coupon.is_auto_applied else "manual"
        console.print(f"  coupon [cyan]{coupon.code}[/cyan] ({source}): -{coupon.discount_amount}")

    summary = cart.summary
    console.print(
        f"Subtotal {summary.subtotal}  Discount {summary.total_discount}  "
        f"[bold]Total {summary.final_amount}[/bold]  ({summary.item_count} items)"
    )


@app.command()
def cart_show(user_id: int = typer.Argument(..., help="User ID")):
    """Show a user's active cart."""
    from shared.infrastructure.db import get_db_context
    from cart_api.services.domain import CartService

    with get_db_context() as db:
        cart = CartService(db).get_cart(user_id)
    _print_cart(cart)


@app.command()
def checkout(user_id: int = typer.Argument(..., help="User ID")):
    """Check out a user's active cart."""
    from shared.infrastructure.db import get_db_context
    from shared.utils.exceptions import AppException
    from cart_api.services.domain import CheckoutService

    try:
        with get_db_context() as db:
            result = CheckoutService(db).checkout(user_id)
    except AppException as e:
        console.print(f"[red]✗ Checkout failed ({e.status_code}): {e.detail}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Cart {result.cart_id} checked out at {result.checked_out_at}[/green]")
    for coupon in result.coupons:
        console.print(f"  coupon [cyan]{coupon.code}[/cyan]: -{coupon.discount_amount}")
    console.print(f"[bold]Total {result.summary.final_amount}[/bold]")


if __name__ == "__main__":
    app()
