import hashlib
import logging
import time
from typing import Iterable

from migration_engine.domain.entities.schema import DatabaseObject

logger = logging.getLogger(__name__)


class SchemaHasher:
    """
    Fingerprints a set of schema objects.
    Single Responsibility: hashing only.
    """

    def __init__(self, algorithm: str = "sha256"):
        self._algorithm = algorithm

    def hash(self, objects: Iterable[DatabaseObject]) -> str:
        try:
            canonical = self.canonical_form(objects)
        except Exception as e:
            logger.error(f"[SchemaHasher] Could not canonicalize objects, using timestamp hash: {e}")
            return format(time.time_ns(), "x")

        try:
            digest = hashlib.new(self._algorithm)
        except ValueError:
            logger.warning(f"[SchemaHasher] Digest {self._algorithm!r} unavailable, using rolling hash")
            return self.rolling_hash(canonical)

        digest.update(canonical.encode("utf-8"))
        return digest.hexdigest()

    @staticmethod
    def canonical_form(objects: Iterable[DatabaseObject]) -> str:
        """``type:schema:name:definition`` per object, sorted, joined by ``|``."""
        ordered = sorted(objects, key=lambda o: (o.object_type, o.schema, o.name))
        return "|".join(
            f"{o.object_type}:{o.schema}:{o.name}:{o.definition or ''}" for o in ordered
        )

    @staticmethod
    def rolling_hash(text: str) -> str:
        h = 0
        for ch in text:
            h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
        if h & 0x80000000:
            h -= 1 << 32
        return format(abs(h), "x")
