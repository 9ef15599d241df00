"""Peewee ORM models for the local link store."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee

from linkshelf.core.time_utils import utc_now

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


def _utcnow() -> _dt.datetime:
    return utc_now()


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    def save(self, *args: Any, **kwargs: Any) -> int:
        """Keep updated_at current on every save."""
        if hasattr(self, "updated_at"):
            self.updated_at = _utcnow()
        return super().save(*args, **kwargs)

    class Meta:
        database = database_proxy
        legacy_table_names = False


class Collection(BaseModel):
    id = peewee.AutoField()
    remote_id = peewee.TextField(null=True, unique=True)
    name = peewee.TextField(unique=True)
    description = peewee.TextField(default="")
    visibility = peewee.TextField(default="private")
    link_count = peewee.IntegerField(default=0)
    is_dirty = peewee.BooleanField(default=True)
    last_synced_at = peewee.DateTimeField(null=True)
    created_at = peewee.DateTimeField(default=_utcnow)
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = "collections"
        indexes = ((("is_dirty", "last_synced_at"), False),)


class Link(BaseModel):
    id = peewee.AutoField()
    url = peewee.TextField(unique=True)
    normalized_url = peewee.TextField(index=True)
    title = peewee.TextField(default="")
    notes = peewee.TextField(default="")
    # Comma-separated, order preserved.
    tags = peewee.TextField(default="")
    # Collection *name*; NULL means uncategorized.
    collection = peewee.TextField(null=True, index=True)
    is_private = peewee.BooleanField(default=False)
    remote_id = peewee.TextField(null=True, index=True)
    is_dirty = peewee.BooleanField(default=True)
    last_synced_at = peewee.DateTimeField(null=True)
    created_at = peewee.DateTimeField(default=_utcnow)
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = "links"
        indexes = ((("is_dirty", "last_synced_at"), False),)


class CollectionTag(BaseModel):
    # Plain integer column so orphaned rows can be detected and cleaned up.
    collection_id = peewee.IntegerField(index=True)
    tag_name = peewee.TextField()

    class Meta:
        table_name = "collection_tags"
        indexes = ((("collection_id", "tag_name"), True),)


class AppSetting(BaseModel):
    key = peewee.TextField(primary_key=True)
    value = peewee.TextField(null=True)
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = "app_settings"


ALL_MODELS: tuple[type[BaseModel], ...] = (
    Collection,
    Link,
    CollectionTag,
    AppSetting,
)
