# users/directory.py
"""
Student Directory.

Resolves student ids <-> names for the registration subsystem. Bulk import
resolves names in chunks against a deadline; names that could not be looked
up before the deadline are reported back instead of failing the batch.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from django.conf import settings
from django.contrib.auth import get_user_model

logger = logging.getLogger('cos.users.directory')

User = get_user_model()


@dataclass
class DirectoryLookup:
    """Outcome of a batch name lookup."""
    found: dict = field(default_factory=dict)       # name -> User
    missing: set = field(default_factory=set)       # no student with that name
    ambiguous: set = field(default_factory=set)     # more than one student with that name
    timed_out: set = field(default_factory=set)     # not looked up before the deadline


class StudentDirectory:
    def __init__(self, timeout: Optional[float] = None, chunk_size: Optional[int] = None, clock=time.monotonic):
        config = getattr(settings, "REGISTRATION", {})
        self.timeout = timeout if timeout is not None else config.get("DIRECTORY_TIMEOUT_SECONDS", 2.0)
        self.chunk_size = chunk_size or config.get("DIRECTORY_CHUNK_SIZE", 200)
        self.clock = clock

    def get(self, student_id) -> Optional[User]:
        return User.objects.filter(pk=student_id, is_active=True).first()

    def resolve_name(self, name: str) -> Optional[User]:
        """Exact (trimmed) match on real name. Returns None when missing or ambiguous."""
        name = (name or "").strip()
        if not name:
            return None
        matches = list(User.objects.filter(real_name=name, is_active=True)[:2])
        return matches[0] if len(matches) == 1 else None

    def resolve_many(self, names: Iterable[str]) -> DirectoryLookup:
        wanted = sorted({(n or "").strip() for n in names if n and n.strip()})
        result = DirectoryLookup()
        deadline = self.clock() + self.timeout

        for start in range(0, len(wanted), self.chunk_size):
            chunk = wanted[start:start + self.chunk_size]
            if self.clock() > deadline:
                result.timed_out.update(wanted[start:])
                logger.warning(
                    f"Directory lookup deadline hit after {start} of {len(wanted)} names"
                )
                break

            by_name = {}
            for user in User.objects.filter(real_name__in=chunk, is_active=True):
                by_name.setdefault(user.real_name, []).append(user)

            for name in chunk:
                matches = by_name.get(name, [])
                if len(matches) == 1:
                    result.found[name] = matches[0]
                elif matches:
                    result.ambiguous.add(name)
                else:
                    result.missing.add(name)

        return result
