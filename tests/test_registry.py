from relay.connection import BroadcasterRole


def test_register_broadcaster_assigns_id_and_default_name(registry, make_conn):
    first = make_conn()
    second = make_conn()

    first_id = registry.register_broadcaster(first, None)
    second_id = registry.register_broadcaster(second, "")

    assert first_id != second_id
    assert first.role == BroadcasterRole(first_id, "Model 1")
    assert second.role.name == "Model 2"
    assert registry.broadcasters == {first_id: first, second_id: second}


def test_register_broadcaster_keeps_requested_name(registry, make_conn):
    conn = make_conn()
    registry.register_broadcaster(conn, "Kitchen")
    assert conn.role.name == "Kitchen"


def test_non_string_name_falls_back(registry, make_conn):
    conn = make_conn()
    registry.register_broadcaster(conn, 42)
    assert conn.role.name == "Model 1"


def test_reregistration_is_ignored(registry, make_conn):
    conn = make_conn()
    broadcaster_id = registry.register_broadcaster(conn, "Cam")

    assert registry.register_broadcaster(conn, "Other") is None
    assert registry.register_viewer(conn) is False
    assert conn.broadcaster_id == broadcaster_id
    assert conn.role.name == "Cam"
    assert registry.viewer_count == 0


def test_ids_stay_unique_across_cycles(registry, make_conn):
    seen = set()
    for _ in range(200):
        conn = make_conn()
        broadcaster_id = registry.register_broadcaster(conn)
        assert broadcaster_id not in seen
        seen.add(broadcaster_id)
        assert registry.remove_broadcaster(conn) == broadcaster_id
    assert registry.broadcaster_count == 0


def test_remove_broadcaster_only_once(registry, make_conn):
    conn = make_conn()
    broadcaster_id = registry.register_broadcaster(conn)
    assert registry.remove_broadcaster(conn) == broadcaster_id
    assert registry.remove_broadcaster(conn) is None


def test_photographer_rebind_is_last_write_wins(registry, make_conn):
    v1, v2 = make_conn(), make_conn()
    registry.register_viewer(v1)
    registry.register_viewer(v2)

    assert registry.set_photographer_status(v1, True) is True
    assert registry.photographer_holder is v1
    assert registry.set_photographer_status(v2, True) is True
    assert registry.photographer_holder is v2
    assert not v1.is_photographer
    assert v2.is_photographer


def test_any_viewer_can_release_photographer(registry, make_conn):
    holder, other = make_conn(), make_conn()
    registry.register_viewer(holder)
    registry.register_viewer(other)
    registry.set_photographer_status(holder, True)

    assert registry.set_photographer_status(other, False) is False
    assert registry.photographer_holder is None
    assert not holder.is_photographer


def test_non_viewer_cannot_take_photographer(registry, make_conn):
    broadcaster = make_conn()
    registry.register_broadcaster(broadcaster)
    assert registry.set_photographer_status(broadcaster, True) is False
    assert registry.photographer_holder is None


def test_single_photographer_over_many_claims(registry, make_conn):
    viewers = [make_conn() for _ in range(5)]
    for v in viewers:
        registry.register_viewer(v)

    for i in range(50):
        registry.set_photographer_status(viewers[i % 5], i % 7 != 0)
        holders = [v for v in viewers if v.is_photographer]
        assert len(holders) <= 1
        assert holders == ([registry.photographer_holder] if registry.photographer_taken else [])


def test_remove_viewer_reports_released_photographer(registry, make_conn):
    holder, other = make_conn(), make_conn()
    registry.register_viewer(holder)
    registry.register_viewer(other)
    registry.set_photographer_status(holder, True)

    assert registry.remove_viewer(other) is False
    assert registry.remove_viewer(holder) is True
    assert registry.photographer_taken is False
    assert registry.viewer_count == 0


def test_list_broadcasters_snapshot(registry, make_conn):
    a, b = make_conn(), make_conn()
    a_id = registry.register_broadcaster(a, "A")
    b_id = registry.register_broadcaster(b, "B")

    listing = registry.list_broadcasters()
    registry.remove_broadcaster(b)
    assert dict(listing) == {a_id: "A", b_id: "B"}
    assert dict(registry.list_broadcasters()) == {a_id: "A"}


def test_sweep_removes_only_closed_entries(registry, make_conn):
    live_b, dead_b = make_conn(), make_conn()
    live_v, dead_v = make_conn(), make_conn()
    bare = make_conn()
    registry.register_broadcaster(live_b)
    dead_id = registry.register_broadcaster(dead_b)
    registry.register_viewer(live_v)
    registry.register_viewer(dead_v)
    registry.set_photographer_status(dead_v, True)

    dead_b.ws.closed = True
    dead_v.ws.closed = True
    bare.ws.closed = True
    live_v.transport.closing = True

    result = registry.sweep_dead()

    assert result.removed_broadcaster_ids == [dead_id]
    assert result.removed_viewer_count == 1
    assert result.photographer_released is True
    assert result.removed_unclassified_count == 1
    assert registry.broadcasters == {live_b.broadcaster_id: live_b}
    assert registry.viewers == {live_v}
    assert bare not in registry.connections


def test_stats(registry, make_conn):
    registry.register_viewer(make_conn())
    registry.register_broadcaster(make_conn())
    make_conn()
    assert registry.stats() == {
        "broadcasters": 1, "viewers": 1, "connections": 3, "photographer": False,
    }
