"""
Tests for the Database wrapper and the declarative base.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import sqlite
from sqlalchemy.schema import CreateTable

from audio_api.database import Database
from audio_lti.models import Base, SubmissionModel


def make_row(submission_id: str = "sub-1") -> SubmissionModel:
    return SubmissionModel(
        id=submission_id,
        user_id="u1",
        course_id="c1",
        assignment_id="a1",
        audio_url=f"/uploads/{submission_id}.webm",
        file_name=f"{submission_id}.webm",
        file_size=10,
    )


async def count_rows(database: Database) -> int:
    async with database.session() as session:
        return await session.scalar(select(func.count()).select_from(SubmissionModel))


class TestDatabaseSession:
    async def test_commits_on_success(self, database):
        async with database.session() as session:
            session.add(make_row())

        assert await count_rows(database) == 1

    async def test_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            async with database.session() as session:
                session.add(make_row())
                await session.flush()
                raise RuntimeError("boom")

        assert await count_rows(database) == 0


class TestDatabaseSetup:
    def test_memory_path(self):
        database = Database.from_path(":memory:")
        assert database.is_memory

    async def test_file_path_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "data" / "submissions.db"
        database = Database.from_path(str(path))
        try:
            assert not database.is_memory
            assert path.parent.is_dir()
            await database.create_all()
            await database.create_all()
            assert path.exists()
        finally:
            await database.close()

    def test_naming_convention_applied(self):
        ddl = str(CreateTable(SubmissionModel.__table__).compile(dialect=sqlite.dialect()))

        assert Base.metadata is SubmissionModel.metadata
        assert "CONSTRAINT pk_submissions PRIMARY KEY" in ddl
