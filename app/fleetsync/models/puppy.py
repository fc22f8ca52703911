"""Puppy queue entries: reboot-required installs waiting to be walked."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class PuppyQueueEntry(BaseModel):
    """One deferred install.

    The admin, force and expiration values are captured when the entry is
    queued and reused verbatim when the queue is flushed.
    """

    model_config = ConfigDict(extra="forbid")

    title: Annotated[str, Field(description="Title identifier")]
    package_id: Annotated[int, Field(description="Package id to install")]
    version: str
    admin: str
    force: bool = False
    expiration: Annotated[int | None, Field(ge=0, description="Custom expiration days")] = None
    manual: bool = False
    queued_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(UTC))]

    @property
    def edition(self) -> str:
        """Title and version joined by a dash."""
        return f"{self.title}-{self.version}"
