import pytest

from fluentkit.route import Route, RouteMatch, new_route


def test_label_and_tag_are_equal_and_prefixed():
    route = new_route("main", "kubesphere-logging-system", "fluentd-config", [])
    assert route.id == "main"
    assert route.label == route.tag
    assert route.label.startswith("@")
    assert len(route.label) == 33
    int(route.label[1:], 16)


def test_label_is_deterministic():
    first = new_route("a", "ns", "cfg", [RouteMatch(namespaces=["x", "y"])])
    second = new_route("b", "ns", "cfg", [RouteMatch(namespaces=["x", "y"])])
    assert first.label == second.label


def test_namespace_order_does_not_matter_and_is_sorted_in_place():
    match = RouteMatch(namespaces=["zeta", "alpha", "mid"])
    first = new_route("r", "ns", "cfg", [match])
    assert match.namespaces == ["alpha", "mid", "zeta"]
    second = new_route("r", "ns", "cfg", [RouteMatch(namespaces=["alpha", "mid", "zeta"])])
    assert first.label == second.label


def test_label_key_order_does_not_matter():
    first = new_route("r", "ns", "cfg", [RouteMatch(labels={"app": "nginx", "tier": "web"})])
    second = new_route("r", "ns", "cfg", [RouteMatch(labels={"tier": "web", "app": "nginx"})])
    assert first.label == second.label


@pytest.mark.parametrize(
    "other",
    [
        ("other-ns", "cfg", []),
        ("ns", "other-cfg", []),
        ("ns", "cfg", [RouteMatch(namespaces=["default"])]),
        ("ns", "cfg", [RouteMatch(labels={"app": "nginx"})]),
    ],
)
def test_identity_changes_label(other):
    base = new_route("r", "ns", "cfg", [])
    assert new_route("r", *other).label != base.label


def test_hosts_and_container_names_do_not_affect_label():
    plain = new_route("r", "ns", "cfg", [RouteMatch(namespaces=["default"])])
    extended = new_route(
        "r",
        "ns",
        "cfg",
        [RouteMatch(namespaces=["default"], hosts=["node-1"], container_names=["app"], negate=True)],
    )
    assert plain.label == extended.label


def test_namespace_and_name_are_concatenated_without_separator():
    assert new_route("r", "ab", "c", []).label == new_route("r", "a", "bc", []).label


def test_calculate_route_label_updates_existing_route():
    route = Route(id="x")
    assert route.label is None
    result = route.calculate_route_label("ns", "cfg")
    assert route.label == result
    assert route.tag == result
    assert result == new_route("y", "ns", "cfg", None).label