"""
IDENTITY MAPPER TESTS

Per-run ephemeral -> real id arena.
"""
import uuid

from finalization.identity_map import IdentityKind, IdentityMapper


class TestIdentityMapper:

    def test_put_then_resolve(self):
        mapper = IdentityMapper()
        real = uuid.uuid4()
        mapper.put(IdentityKind.OPERATION, "op-1", real)
        assert mapper.resolve(IdentityKind.OPERATION, "op-1") == real

    def test_resolve_absent_key_returns_none(self):
        mapper = IdentityMapper()
        assert mapper.resolve(IdentityKind.OPERATION, "missing") is None
        assert mapper.resolve(IdentityKind.METRIC, None) is None

    def test_kinds_are_separate_namespaces(self):
        mapper = IdentityMapper()
        op_id, metric_id = uuid.uuid4(), uuid.uuid4()
        mapper.put(IdentityKind.OPERATION, "Sleep", op_id)
        mapper.put(IdentityKind.METRIC, "Sleep", metric_id)
        assert mapper.resolve(IdentityKind.OPERATION, "Sleep") == op_id
        assert mapper.resolve(IdentityKind.METRIC, "Sleep") == metric_id

    def test_first_mapping_wins(self):
        """Append-only: a duplicate key does not overwrite"""
        mapper = IdentityMapper()
        first, second = uuid.uuid4(), uuid.uuid4()
        mapper.put(IdentityKind.METRIC, "Steps", first)
        mapper.put(IdentityKind.METRIC, "Steps", second)
        assert mapper.resolve(IdentityKind.METRIC, "Steps") == first

    def test_none_key_is_ignored(self):
        mapper = IdentityMapper()
        mapper.put(IdentityKind.HABIT, None, uuid.uuid4())
        assert len(mapper) == 0

    def test_accepts_kind_values(self):
        mapper = IdentityMapper()
        real = uuid.uuid4()
        mapper.put("habit", "h-1", real)
        assert mapper.resolve(IdentityKind.HABIT, "h-1") == real

    def test_real_ids_in_insertion_order(self):
        mapper = IdentityMapper()
        ids = [uuid.uuid4() for _ in range(3)]
        for index, real in enumerate(ids):
            mapper.put(IdentityKind.OPERATION, f"op-{index}", real)
        assert mapper.real_ids(IdentityKind.OPERATION) == ids

    def test_mappers_do_not_share_state(self):
        a, b = IdentityMapper(), IdentityMapper()
        a.put(IdentityKind.OPERATION, "op-1", uuid.uuid4())
        assert b.resolve(IdentityKind.OPERATION, "op-1") is None
