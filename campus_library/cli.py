import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from campus_library.actions import ApiActions
from campus_library.borrow import BorrowActionClient
from campus_library.config import settings
from campus_library.forms import BookForm
from campus_library.library import Library
from campus_library.models import BorrowEligibility, SelectedFile, UserRole, UserStatus
from campus_library.notifications import Notifier, Toast
from campus_library.services.http_client import cleanup_http_client
from campus_library.upload import FileUploadWidget, UploadKind, UploadState

APP_NAME = "Campus Library CLI"

console = Console()
app = typer.Typer(help=APP_NAME)


class ConsoleNotifier(Notifier):
    """Prints toasts to the terminal."""

    def show(self, title: str, description: str, variant: str = "default") -> Toast:
        toast = super().show(title, description, variant)
        style = "bold red" if toast.is_error else "bold green"
        console.print(f"[{style}]{escape(title)}[/] {escape(description)}")
        return toast


class ProgressWidget(FileUploadWidget):
    """Upload widget mirroring its progress onto a rich progress bar."""

    def __init__(self, *args, progress: Progress, task_id, **kwargs):
        super().__init__(*args, **kwargs)
        self._bar = progress
        self._task_id = task_id

    def report_progress(self, loaded: int, total: int) -> None:
        super().report_progress(loaded, total)
        self._bar.update(self._task_id, completed=self.progress)


async def _run(coro):
    try:
        return await coro
    finally:
        await cleanup_http_client()


@app.callback()
def _global_options(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@app.command("list")
def cli_list(limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum books to show")):
    """List books in the catalog."""
    books = Library().list_books(limit=limit)
    if not books:
        console.print("No books in library.")
        return
    table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
    table.add_column("ID", style="magenta", no_wrap=True)
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Genre")
    table.add_column("Available", justify="right")
    for book in books:
        table.add_row(book.id, book.title, book.author, book.genre,
                      f"{book.available_copies}/{book.total_copies}")
    console.print(table)


@app.command("upload")
def cli_upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    kind: UploadKind = typer.Option(UploadKind.IMAGE, "--kind", "-k", help="image or video"),
    folder: str = typer.Option("", "--folder", "-f", help="CDN folder"),
):
    """Upload a file to the media CDN and print its asset path."""
    file = SelectedFile.from_path(path)
    paths = []
    with Progress(SpinnerColumn(), TextColumn("{task.description}"), BarColumn(), TaskProgressColumn(),
                  console=console) as progress:
        task_id = progress.add_task(f"Uploading {file.name}", total=100)
        widget = ProgressWidget(kind, settings.upload_config(), on_file_change=paths.append,
                                notifier=ConsoleNotifier(), folder=folder,
                                progress=progress, task_id=task_id)
        state = asyncio.run(_run(widget.upload(file)))
    if state is not UploadState.SUCCEEDED:
        raise typer.Exit(code=1)
    console.print(paths[-1])


@app.command("add-book")
def cli_add_book(
    title: str = typer.Option(..., "--title"),
    author: str = typer.Option(..., "--author"),
    genre: str = typer.Option(..., "--genre"),
    rating: int = typer.Option(..., "--rating"),
    total_copies: int = typer.Option(..., "--copies"),
    color: str = typer.Option(..., "--color", help="Cover color, e.g. #1c1f40"),
    description: str = typer.Option(..., "--description"),
    summary: str = typer.Option(..., "--summary"),
    cover: Path = typer.Option(..., "--cover", exists=True, dir_okay=False),
    video: Path = typer.Option(..., "--video", exists=True, dir_okay=False),
):
    """Upload cover and trailer, then create the book through the API."""
    notifier = ConsoleNotifier()
    remote = ApiActions(settings.api_endpoint, api_key=settings.api_key)
    form = BookForm(remote.create_book, settings.upload_config(), notifier=notifier)
    for name, value in (("title", title), ("author", author), ("genre", genre), ("rating", rating),
                        ("total_copies", total_copies), ("description", description), ("summary", summary)):
        form.set_value(name, value)
    form.pick_color(color)

    async def submit():
        for name, path in (("cover_url", cover), ("video_url", video)):
            state = await form.uploads[name].upload(SelectedFile.from_path(path))
            if state is not UploadState.SUCCEEDED:
                return None
        return await form.submit()

    result = asyncio.run(_run(submit()))
    if form.errors:
        for name, messages in form.errors.items():
            console.print(f"[red]{name}[/]: {'; '.join(messages)}")
    if not result or not result.get("success"):
        raise typer.Exit(code=1)
    console.print(f"Created book {result['data']['id']}")


@app.command("borrow")
def cli_borrow(user_id: str, book_id: str):
    """Borrow a book for a user through the API."""
    remote = ApiActions(settings.api_endpoint)
    notifier = ConsoleNotifier()

    async def borrow():
        try:
            eligibility = await remote.eligibility(user_id, book_id)
        except httpx.HTTPError as exc:
            notifier.error("Error", f"Could not check eligibility: {exc}")
            return False
        client = BorrowActionClient(
            user_id, book_id,
            BorrowEligibility(eligibility["isEligible"], eligibility["message"]),
            remote.borrow_book, notifier=notifier,
        )
        return await client.handle_borrow()

    if not asyncio.run(_run(borrow())):
        raise typer.Exit(code=1)


@app.command("approve")
def cli_approve(user_id: str, reject: bool = typer.Option(False, "--reject", help="Reject instead of approve")):
    """Approve (or reject) a pending account."""
    status = UserStatus.REJECTED if reject else UserStatus.APPROVED
    try:
        user = Library().set_user_status(user_id, status)
    except LookupError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(code=1)
    console.print(f"{user.full_name} is now {user.status.value}.")


@app.command("promote")
def cli_promote(user_id: str, revoke: bool = typer.Option(False, "--revoke", help="Take admin rights away")):
    """Grant (or revoke) admin rights."""
    role = UserRole.USER if revoke else UserRole.ADMIN
    try:
        user = Library().set_user_role(user_id, role)
    except LookupError as e:
        console.print(f"[bold red]{e}[/]")
        raise typer.Exit(code=1)
    console.print(f"{user.full_name} is {'now' if user.is_admin else 'no longer'} an admin.")


@app.command("serve")
def cli_serve(host: Optional[str] = None, port: Optional[int] = None):
    """Run the API with uvicorn."""
    import uvicorn

    logging.getLogger().setLevel(logging.INFO)
    uvicorn.run("campus_library.api:app", host=host or settings.api_host, port=port or settings.api_port)


def main():
    app()


if __name__ == "__main__":
    main()
