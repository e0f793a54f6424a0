"""CLI entrypoint: Typer app definition and command registration"""

import typer

from mdcms.cli.commands import (
    archive_cmd,
    categories_cmd,
    category_create_cmd,
    category_delete_cmd,
    docs_cmd,
    init_cmd,
    move_cmd,
    newsletter_send_cmd,
    show_cmd,
    unarchive_cmd,
)


app = typer.Typer(name="mdcms", no_args_is_help=True, help="Git-backed blog content store and comment tooling")

app.command(name="init")(init_cmd)
app.command(name="categories")(categories_cmd)
app.command(name="docs")(docs_cmd)
app.command(name="show")(show_cmd)
app.command(name="archive")(archive_cmd)
app.command(name="unarchive")(unarchive_cmd)
app.command(name="move")(move_cmd)
app.command(name="category-create")(category_create_cmd)
app.command(name="category-delete")(category_delete_cmd)
app.command(name="newsletter-send")(newsletter_send_cmd)
