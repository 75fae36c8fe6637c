"""File-backed user consent store.

Keeps a set of (user_id, consent_type) pairs and persists it as a
JSON array of ``{"userId", "consentType"}`` objects. Every mutation
rewrites the file through a temporary file and ``os.replace`` so a
crash mid-write leaves the previous file intact.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import List, Set

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConsentError

logger = structlog.get_logger("slashbot.consent")


class ConsentRecord(BaseModel):
    """One user's consent to one consent type."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: int = Field(alias="userId", ge=0)
    consent_type: str = Field(alias="consentType")


def _require_type(consent_type: str) -> str:
    if consent_type is None or not str(consent_type).strip():
        raise ConsentError("Consent type cannot be null or empty.")
    return str(consent_type).strip()


class ConsentStore:
    """Idempotent consent key-set with JSON persistence.

    Thread-safe: a lock guards the in-memory set and the file rewrite.

    Args:
        path: JSON file location. Created on first mutation.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._records: Set[ConsentRecord] = self._load()

    def _load(self) -> Set[ConsentRecord]:
        if not self.path.exists():
            return set()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
            if not isinstance(raw, list):
                raise ValueError("expected a JSON array")
            records = {ConsentRecord.model_validate(item) for item in raw}
        except (OSError, ValueError, ValidationError) as e:
            logger.error("consent_file_unreadable", path=str(self.path), error=str(e))
            return set()
        logger.info("consent_file_loaded", path=str(self.path), records=len(records))
        return records

    def _save(self) -> None:
        # Caller holds the lock
        payload = [
            r.model_dump(by_alias=True)
            for r in sorted(self._records, key=lambda r: (r.user_id, r.consent_type))
        ]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=".consent-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("consent_file_saved", path=str(self.path), records=len(payload))

    def has_consent(self, user_id: int, consent_type: str) -> bool:
        record = ConsentRecord(user_id=user_id, consent_type=_require_type(consent_type))
        with self._lock:
            result = record in self._records
        logger.info(
            "consent_checked",
            user_id=user_id,
            consent_type=record.consent_type,
            has_consent=result,
        )
        return result

    def add_consent(self, user_id: int, consent_type: str) -> bool:
        """Record consent. Returns False if it was already present."""
        record = ConsentRecord(user_id=user_id, consent_type=_require_type(consent_type))
        with self._lock:
            if record in self._records:
                logger.info(
                    "consent_already_present",
                    user_id=user_id,
                    consent_type=record.consent_type,
                )
                return False
            self._records.add(record)
            self._save()
        logger.info("consent_added", user_id=user_id, consent_type=record.consent_type)
        return True

    def remove_consent(self, user_id: int, consent_type: str) -> bool:
        """Withdraw consent. Returns False if there was nothing to remove."""
        record = ConsentRecord(user_id=user_id, consent_type=_require_type(consent_type))
        with self._lock:
            if record not in self._records:
                logger.info(
                    "consent_not_present",
                    user_id=user_id,
                    consent_type=record.consent_type,
                )
                return False
            self._records.discard(record)
            self._save()
        logger.info("consent_removed", user_id=user_id, consent_type=record.consent_type)
        return True

    def records(self) -> List[ConsentRecord]:
        with self._lock:
            return sorted(self._records, key=lambda r: (r.user_id, r.consent_type))
