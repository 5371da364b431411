"""
Database models for procsentry.

Uses Peewee ORM with SQLite. Stores the history of lifecycle transitions
so STATISTICS can show what happened even after the supervisor exits.
"""

from datetime import datetime
from pathlib import Path

from peewee import (
    AutoField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    IntegerField,
    Model,
    SqliteDatabase,
    TextField,
)

database = DatabaseProxy()


def initialize_db(db_path: Path):
    """Initialize database connection and create tables."""
    db = SqliteDatabase(
        str(db_path),
        pragmas={
            "journal_mode": "wal",
            "busy_timeout": 5000,
        },
    )
    database.initialize(db)
    database.create_tables([Transition], safe=True)


class BaseModel(Model):
    """Base model with common configuration."""

    class Meta:
        database = database


class Transition(BaseModel):
    """A completed move of the supervisor from one state to another."""

    id = AutoField()
    from_state = CharField()
    to_state = CharField(index=True)
    pid = IntegerField(null=True)
    note = TextField(null=True)
    timestamp = DateTimeField(default=datetime.now, index=True)

    class Meta:
        table_name = "transitions"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "pid": self.pid,
            "note": self.note,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
