from __future__ import annotations

from ..extensions import db


class LocalStorageEntry(db.Model):
    """
    Device-local key-value storage.

    Values are opaque string blobs (JSON-serialized by callers). Entries
    survive process restarts and are only removed by an explicit call.
    """
    __tablename__ = "local_storage_entries"

    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class RemoteDocument(db.Model):
    """
    One account subtree of the remote keyed store (the first two path
    segments, e.g. "users/<uid>"), stored as a JSON document. Lives in the
    "remote" bind, separate from the device database.
    """
    __bind_key__ = "remote"
    __tablename__ = "remote_documents"

    root = db.Column(db.String(255), primary_key=True)
    body = db.Column(db.JSON, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version}
