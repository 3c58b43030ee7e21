"""In-memory MasteryStore with failure injection."""

from collections import defaultdict
from dataclasses import replace
from uuid import UUID, uuid4

from studygarden.core.app_exceptions import ConcurrentUpdateError, PersistenceError
from studygarden.learning_engine.mastery.store import ConceptMasteryRecord


class InMemoryMasteryStore:
    """
    Dict-backed store honouring the same version contract as the SQL store.

    Failures are scripted per concept: `fail_saves[topic] = n` makes the next
    n saves of that concept raise PersistenceError, and `conflicts[topic] = n`
    makes them raise ConcurrentUpdateError after bumping the stored version,
    as a competing writer would.

    `errors[topic]` is raised as-is from every load of that concept, and
    `pass_chance_error` from every pass chance write, to stand in for
    failures the store does not translate.
    """

    def __init__(self) -> None:
        self.rows: dict[tuple[UUID, UUID, str], ConceptMasteryRecord] = {}
        self.pass_chances: dict[tuple[UUID, UUID], int] = {}
        self.fail_saves: dict[str, int] = defaultdict(int)
        self.conflicts: dict[str, int] = defaultdict(int)
        self.fail_pass_chance = 0
        self.errors: dict[str, Exception] = {}
        self.pass_chance_error: Exception | None = None
        self.save_calls: list[str] = []

    async def load_concept(self, user_id, subject_id, topic_name):
        if topic_name in self.errors:
            raise self.errors[topic_name]
        return self.rows.get((user_id, subject_id, topic_name))

    async def save_concept(self, record: ConceptMasteryRecord) -> ConceptMasteryRecord:
        self.save_calls.append(record.topic_name)
        key = (record.user_id, record.subject_id, record.topic_name)

        if self.fail_saves[record.topic_name] > 0:
            self.fail_saves[record.topic_name] -= 1
            raise PersistenceError(f"Injected failure for {record.topic_name!r}")

        if self.conflicts[record.topic_name] > 0:
            self.conflicts[record.topic_name] -= 1
            stored = self.rows.get(key)
            if stored is not None:
                self.rows[key] = replace(stored, version=stored.version + 1)
            raise ConcurrentUpdateError(f"Injected conflict for {record.topic_name!r}")

        stored = self.rows.get(key)
        if record.is_new:
            if stored is not None:
                raise ConcurrentUpdateError(f"{record.topic_name!r} already exists")
            saved = replace(record, id=uuid4(), version=1)
        else:
            if stored is None or stored.version != record.version:
                raise ConcurrentUpdateError(f"{record.topic_name!r} version moved")
            saved = replace(record, version=record.version + 1)
        self.rows[key] = saved
        return saved

    async def list_subject_concepts(self, user_id, subject_id):
        return sorted(
            (r for (u, s, _), r in self.rows.items() if u == user_id and s == subject_id),
            key=lambda r: (r.mastery_level, r.topic_name),
        )

    async def save_pass_chance(self, user_id, subject_id, pass_chance):
        if self.pass_chance_error is not None:
            raise self.pass_chance_error
        if self.fail_pass_chance > 0:
            self.fail_pass_chance -= 1
            raise PersistenceError("Injected pass chance failure")
        self.pass_chances[(user_id, subject_id)] = pass_chance
        return True
