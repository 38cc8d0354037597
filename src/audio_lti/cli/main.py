"""
Main CLI entry point for the audio LTI tool.

Usage:
    lti-audio serve --port 3000
    lti-audio init-db
    lti-audio submissions list --user u1
    lti-audio submissions show <submission-id> --user u1
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="lti-audio", help="Canvas Audio LTI Tool admin CLI")
console = Console()


def run_async(coro):
    """Helper to run async functions from Typer commands."""
    return asyncio.run(coro)


def _database():
    from audio_api.database import Database
    from audio_api.settings import get_settings

    settings = get_settings()
    path = settings.resolved_database_path
    if path == ":memory:":
        typer.echo("No DATABASE_PATH configured; using a throwaway in-memory database.", err=True)
    return Database.from_path(path)


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default: PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the web service."""
    import uvicorn

    from audio_api.settings import get_settings

    settings = get_settings()
    uvicorn.run(
        "audio_api.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        proxy_headers=True,
        log_level=settings.log_level.lower(),
    )


@app.command("init-db")
def init_db():
    """Create the submissions table if it does not exist."""

    async def _init():
        database = _database()
        try:
            await database.create_all()
        finally:
            await database.close()
        return database.url

    url = run_async(_init())
    typer.echo(f"Database ready: {url}")


# ============================================================================
# Submission Commands
# ============================================================================

submissions_app = typer.Typer(help="Inspect stored submissions")
app.add_typer(submissions_app, name="submissions")


@submissions_app.command("list")
def submissions_list(
    user_id: str = typer.Option(None, "--user", "-u", help="Only this LTI user_id"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum submissions to show"),
):
    """List recent submissions, newest first."""
    from audio_lti.services.submission_service import list_all_submissions

    async def _list():
        database = _database()
        try:
            await database.create_all()
            async with database.session() as session:
                return await list_all_submissions(session, user_id=user_id, limit=limit)
        finally:
            await database.close()

    submissions = run_async(_list())

    if not submissions:
        typer.echo("No submissions found.")
        return

    table = Table(title="Submissions")
    table.add_column("ID")
    table.add_column("User")
    table.add_column("Course")
    table.add_column("Assignment")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    for s in submissions:
        table.add_row(
            s.id,
            s.user_id,
            s.course_id or "-",
            s.assignment_id or "-",
            str(s.file_size),
            s.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)


@submissions_app.command("show")
def submissions_show(
    submission_id: str = typer.Argument(..., help="Submission ID"),
    user_id: str = typer.Option(..., "--user", "-u", help="Owning LTI user_id"),
):
    """Show one submission, including its storage URL."""
    from audio_lti.services.submission_service import (
        SubmissionNotFoundError,
        get_submission_for_user,
    )

    async def _show():
        database = _database()
        try:
            await database.create_all()
            async with database.session() as session:
                return await get_submission_for_user(session, submission_id, user_id)
        finally:
            await database.close()

    try:
        submission = run_async(_show())
    except SubmissionNotFoundError:
        typer.echo(f"Submission {submission_id} not found", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Submission: {submission.id}")
    typer.echo(f"  User: {submission.user_id}")
    typer.echo(f"  Course: {submission.course_id}")
    typer.echo(f"  Assignment: {submission.assignment_id}")
    typer.echo(f"  File: {submission.file_name} ({submission.file_size} bytes)")
    typer.echo(f"  URL: {submission.audio_url}")
    typer.echo(f"  Created: {submission.created_at.isoformat()}")


if __name__ == "__main__":
    app()
