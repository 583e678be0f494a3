# Patient registry store - single source of truth for patient records
from __future__ import annotations

import abc
import itertools
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import hn as hn_scheme
from errors import AlreadyExists, InternalFailure, NotFound, ValidationFailed
from models import GENDERS, MUTABLE_FIELDS, PatientRecord
from validation import MAX_AGE, MIN_STORED_AGE

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReadWriteLock:
    """
    Shared/exclusive lock. Any number of readers, or one writer.
    Once a writer is waiting, new readers queue behind it.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class PatientStore(abc.ABC):
    """
    Store interface. Implementations must make create/update/delete atomic and
    linearizable with list/get; a durable backend would use transactions.
    """

    @abc.abstractmethod
    def list(self) -> List[PatientRecord]:
        """All live records, most recently created first."""

    @abc.abstractmethod
    def get(self, hn: str) -> PatientRecord:
        """Raises NotFound."""

    @abc.abstractmethod
    def create(self, record: PatientRecord) -> PatientRecord:
        """Raises AlreadyExists or ValidationFailed. Allocates an HN when record.hn is None."""

    @abc.abstractmethod
    def update(self, hn: str, patch: PatientRecord) -> PatientRecord:
        """Replace all mutable fields. Raises NotFound or ValidationFailed."""

    @abc.abstractmethod
    def delete(self, hn: str) -> None:
        """Raises NotFound."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Drop every record."""

    @abc.abstractmethod
    def replace_all(self, records: List[PatientRecord]) -> List[PatientRecord]:
        """
        Swap the whole contents for `records` in one step. Readers see either the
        old set or the new one. Raises ValidationFailed or AlreadyExists (for a
        repeated HN in the batch) and leaves the store untouched.
        """


def check_record(record: PatientRecord) -> None:
    """Shape checks the store repeats even though callers run the validation engine first."""
    errors: Dict[str, Dict[str, str]] = {}
    if record.hn is not None and hn_scheme.parse(record.hn) != record.hn:
        errors["hn"] = {"code": "not_canonical", "message": "Hospital number must be in HNXXXXXX form"}
    if not record.fullName or not isinstance(record.fullName, str):
        errors["fullName"] = {"code": "required", "message": "Full name is required"}
    if record.gender not in GENDERS:
        errors["gender"] = {"code": "invalid_choice", "message": f"Gender must be one of {', '.join(GENDERS)}"}
    age = record.age
    if isinstance(age, bool) or not isinstance(age, int) or not MIN_STORED_AGE <= age <= MAX_AGE:
        errors["age"] = {"code": "out_of_range", "message": f"Age must be between {MIN_STORED_AGE} and {MAX_AGE}"}
    if errors:
        raise ValidationFailed(errors)


class InMemoryPatientStore(PatientStore):
    """Dict of hn -> record guarded by one reader/writer lock."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = ReadWriteLock()
        # hn -> (insertion sequence, record); sequence breaks createdAt ties
        self._records: Dict[str, Tuple[int, PatientRecord]] = {}
        self._sequence = itertools.count()

    def list(self) -> List[PatientRecord]:
        with self._lock.read():
            entries = list(self._records.values())
        entries.sort(key=lambda e: (e[1].createdAt, e[0]), reverse=True)
        return [record.copy() for _, record in entries]

    def get(self, hn: str) -> PatientRecord:
        with self._lock.read():
            entry = self._records.get(hn)
            if entry is None:
                raise NotFound(hn)
            return entry[1].copy()

    def create(self, record: PatientRecord) -> PatientRecord:
        check_record(record)
        with self._lock.write():
            hn = record.hn if record.hn is not None else self._allocate_hn()
            if hn in self._records:
                raise AlreadyExists(hn)
            now = self._clock()
            stored = record.copy(hn=hn, createdAt=now, updatedAt=now)
            self._records[hn] = (next(self._sequence), stored)
        logger.info("Created patient %s", hn)
        return stored.copy()

    def update(self, hn: str, patch: PatientRecord) -> PatientRecord:
        if patch.hn is not None and patch.hn != hn:
            raise ValidationFailed({"hn": {"code": "immutable", "message": "Hospital number cannot be changed"}})
        check_record(patch)
        with self._lock.write():
            entry = self._records.get(hn)
            if entry is None:
                raise NotFound(hn)
            seq, existing = entry
            changes = {name: getattr(patch, name) for name in MUTABLE_FIELDS}
            # updatedAt never goes backwards, even if the clock does
            updated_at = max(self._clock(), existing.updatedAt)
            stored = existing.copy(updatedAt=updated_at, **changes)
            self._records[hn] = (seq, stored)
        logger.info("Updated patient %s", hn)
        return stored.copy()

    def delete(self, hn: str) -> None:
        with self._lock.write():
            if self._records.pop(hn, None) is None:
                raise NotFound(hn)
        logger.info("Deleted patient %s", hn)

    def clear(self) -> None:
        with self._lock.write():
            self._records.clear()

    def replace_all(self, records: List[PatientRecord]) -> List[PatientRecord]:
        for record in records:
            check_record(record)
        with self._lock.write():
            replacement: Dict[str, Tuple[int, PatientRecord]] = {}
            for record in records:
                hn = record.hn if record.hn is not None else self._allocate_hn(replacement)
                if hn in replacement:
                    raise AlreadyExists(hn)
                now = self._clock()
                replacement[hn] = (next(self._sequence), record.copy(hn=hn, createdAt=now, updatedAt=now))
            self._records = replacement
        logger.info("Replaced registry contents with %d patients", len(replacement))
        return [stored.copy() for _, stored in replacement.values()]

    def _allocate_hn(self, records: Optional[Dict[str, Tuple[int, PatientRecord]]] = None) -> str:
        """Next hospital number after the highest in use. Caller holds the write lock."""
        records = self._records if records is None else records
        highest = max((hn_scheme.to_surrogate(hn) for hn in records), default=0)
        if highest < hn_scheme.MAX_SURROGATE:
            return hn_scheme.from_surrogate(highest + 1)
        # Top of the range is taken; fall back to the lowest free number
        for n in range(1, hn_scheme.MAX_SURROGATE + 1):
            candidate = hn_scheme.from_surrogate(n)
            if candidate not in records:
                return candidate
        raise InternalFailure("Hospital number space exhausted")


# Process-wide store used by the API
store: PatientStore = InMemoryPatientStore()
