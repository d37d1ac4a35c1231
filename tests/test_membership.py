import pytest

from aiosyncroom.server.membership import Membership, Participant


def names(membership: Membership) -> list[str]:
    return [p.name for p in membership.participants]


def test_first_participant_becomes_host() -> None:
    members = Membership()

    assert members.join(Participant("c1", "alice")) is True
    assert members.join(Participant("c2", "bob")) is False

    assert members.host is not None
    assert members.host.name == "alice"
    assert members.is_host("c1")
    assert not members.is_host("c2")


def test_host_moves_to_earliest_remaining_participant() -> None:
    members = Membership()
    for connection_id, name in (("c1", "A"), ("c2", "B"), ("c3", "C")):
        members.join(Participant(connection_id, name))

    result = members.leave("c1")
    assert result.participant is not None
    assert result.participant.name == "A"
    assert result.new_host is not None
    assert result.new_host.name == "B"

    result = members.leave("c2")
    assert result.new_host is not None
    assert result.new_host.name == "C"
    assert names(members) == ["C"]


def test_non_host_leaving_keeps_host() -> None:
    members = Membership()
    members.join(Participant("c1", "A"))
    members.join(Participant("c2", "B"))

    result = members.leave("c2")

    assert result.new_host is None
    assert members.is_host("c1")


def test_last_participant_leaving_clears_host() -> None:
    members = Membership()
    members.join(Participant("c1", "A"))

    result = members.leave("c1")

    assert result.new_host is None
    assert members.host is None
    assert len(members) == 0


def test_host_invariant_holds_through_churn() -> None:
    members = Membership()
    operations = [
        ("join", "c1"),
        ("join", "c2"),
        ("leave", "c1"),
        ("join", "c3"),
        ("leave", "c2"),
        ("leave", "c3"),
        ("join", "c4"),
    ]
    for operation, connection_id in operations:
        if operation == "join":
            members.join(Participant(connection_id, connection_id))
        else:
            members.leave(connection_id)
        if len(members) == 0:
            assert members.host is None
        else:
            assert members.host in members.participants


def test_leave_unknown_connection() -> None:
    result = Membership().leave("nobody")

    assert result.participant is None
    assert result.new_host is None


def test_duplicate_join_is_rejected() -> None:
    members = Membership()
    members.join(Participant("c1", "A"))

    with pytest.raises(ValueError):
        members.join(Participant("c1", "A again"))
