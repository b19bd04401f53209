from roomcast.realtime import identity_from
from roomcast.registry import ConnectionRegistry, Identity


def test_register_overwrites_previous_identity():
    reg = ConnectionRegistry()
    reg.register("c1", Identity("1", "A", "student", "morning"))
    reg.register("c1", Identity("1", "A", "representative", "evening"))
    assert len(reg) == 1
    assert reg.lookup("c1").role == "representative"
    assert reg.lookup("c1").cohort == "evening"


def test_same_user_on_several_connections():
    reg = ConnectionRegistry()
    reg.register("phone", Identity("7", "U"))
    reg.register("laptop", Identity("7", "U"))
    assert sorted(cid for cid, _ in reg.snapshot()) == ["laptop", "phone"]


def test_remove_and_lookup_missing():
    reg = ConnectionRegistry()
    reg.register("c1", Identity("1", "A"))
    assert reg.remove("c1").user_id == "1"
    assert reg.remove("c1") is None
    assert reg.lookup("c1") is None
    assert "c1" not in reg


def test_for_each_survives_removal_during_scan():
    reg = ConnectionRegistry()
    for i in range(5):
        reg.register(f"c{i}", Identity(str(i), f"U{i}"))
    seen = []

    def visitor(connection_id, identity):
        seen.append(connection_id)
        reg.remove("c4")
        reg.register("late", Identity("9", "Late"))

    reg.for_each(visitor)
    assert seen == ["c0", "c1", "c2", "c3", "c4"]
    assert "c4" not in reg
    assert "late" in reg


def test_identity_defaults_cohort_to_morning():
    identity = identity_from(42, "A", "", None)
    assert identity.user_id == "42"
    assert identity.role == "student"
    assert identity.cohort == "morning"
