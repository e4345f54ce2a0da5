import json
import logging
import click
from buyer_leads_app.config import settings
from buyer_leads_app.database.database import init_db
from buyer_leads_app.buyers import search_buyers, get_all_buyers_for_export, get_buyer_with_history, bulk_import_buyers
from buyer_leads_app.csv_io import parse_csv_content, validate_csv_rows, convert_csv_rows_to_buyers, read_csv_file, write_csv_file
from buyer_leads_app.errors import ValidationError


def _dump(data):
    click.echo(json.dumps(data, default=str))


@click.group()
@click.option("--owner", default=None, help="Owner user id (defaults to the demo user).")
@click.pass_context
def cli(ctx, owner):
    logging.basicConfig(level=settings.LOG_LEVEL)
    ctx.obj = {"owner": owner or settings.DEMO_USER_ID}


@cli.group()
def db():
    pass


@db.command("init")
def db_init():
    init_db()
    _dump({"initialized": True})


@cli.group()
def buyers():
    pass


@buyers.command("list")
@click.option("--search", default=None)
@click.option("--city", default=None)
@click.option("--status", default=None)
@click.option("--page", default=1, type=int)
@click.option("--limit", default=10, type=int)
@click.pass_context
def buyers_list(ctx, search, city, status, page, limit):
    filters = {"search": search, "city": city, "status": status, "page": page, "limit": limit}
    try:
        _dump(search_buyers(filters, ctx.obj["owner"]))
    except ValidationError as e:
        _dump({"error": "Invalid filters", "details": e.errors})
        ctx.exit(1)


@buyers.command("export")
@click.argument("path")
@click.option("--city", default=None)
@click.option("--status", default=None)
@click.pass_context
def buyers_export(ctx, path, city, status):
    try:
        rows = get_all_buyers_for_export({"city": city, "status": status}, ctx.obj["owner"])
    except ValidationError as e:
        _dump({"error": "Invalid filters", "details": e.errors})
        ctx.exit(1)
    write_csv_file(path, rows)
    _dump({"exported": len(rows), "path": path})


@buyers.command("import")
@click.argument("path")
@click.option("--partial", is_flag=True, help="Import valid rows even when some rows fail validation.")
@click.pass_context
def buyers_import(ctx, path, partial):
    rows = parse_csv_content(read_csv_file(path))
    if len(rows) - 1 > settings.BULK_IMPORT_MAX_ROWS:
        _dump({"error": "Too many rows. Maximum is %d per import." % settings.BULK_IMPORT_MAX_ROWS})
        ctx.exit(1)
    check = validate_csv_rows(rows)
    if not check.success and not partial:
        _dump(check.to_dict())
        ctx.exit(1)
    result = bulk_import_buyers(convert_csv_rows_to_buyers(rows), ctx.obj["owner"])
    result["errors"] = check.errors
    _dump(result)


@buyers.command("history")
@click.argument("buyer_id")
@click.pass_context
def buyers_history(ctx, buyer_id):
    buyer = get_buyer_with_history(buyer_id, ctx.obj["owner"])
    if not buyer:
        _dump({"error": "Buyer not found"})
        ctx.exit(1)
    _dump(buyer["history"])


def main():
    cli()


if __name__ == "__main__":
    main()
