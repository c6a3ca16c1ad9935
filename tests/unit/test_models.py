"""Unit tests for kubecontroller.models.

Tests cover: resource version ordering, identity keys, notification
helpers, and the derived event payload.
"""

import pytest

from kubecontroller.constants import constants
from kubecontroller.models import (
    ChangeNotification,
    DerivedEvent,
    NodeCondition,
    NodeInfo,
    NotificationKind,
    ResourceIdentity,
    compare_resource_versions,
)
from tests.conftest import make_node, make_pod

# ---------------------------------------------------------------------------
# Resource version ordering
# ---------------------------------------------------------------------------


class TestCompareResourceVersions:
    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ("1", "2", -1),
            ("10", "9", 1),
            ("42", "42", 0),
            ("", "1", -1),
            ("1", "", 1),
            ("", "", 0),
            (None, "3", -1),
        ],
    )
    def test_ordering(self, a, b, expected) -> None:
        assert compare_resource_versions(a, b) == expected

    def test_numeric_not_lexical(self) -> None:
        """'100' is newer than '99' even though it sorts first as a string."""
        assert compare_resource_versions("99", "100") < 0

    def test_non_numeric_longer_is_newer(self) -> None:
        assert compare_resource_versions("abc", "abcd") < 0
        assert compare_resource_versions("abd", "abc") > 0


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestResourceIdentity:
    def test_namespaced_key(self) -> None:
        assert ResourceIdentity("default", "p1").key == "default/p1"

    def test_cluster_scoped_key(self) -> None:
        identity = ResourceIdentity("", "n1")
        assert identity.key == "n1"
        assert str(identity) == "n1"

    def test_from_key(self) -> None:
        assert ResourceIdentity.from_key("kube-system/dns") == ResourceIdentity("kube-system", "dns")
        assert ResourceIdentity.from_key("n1") == ResourceIdentity("", "n1")

    def test_hashable_and_equal(self) -> None:
        assert {ResourceIdentity("a", "b"), ResourceIdentity("a", "b")} == {ResourceIdentity("a", "b")}


# ---------------------------------------------------------------------------
# Records and notifications
# ---------------------------------------------------------------------------


class TestRecords:
    def test_record_properties(self) -> None:
        pod = make_pod("p1", "team-a")
        assert pod.key == "team-a/p1"
        assert pod.name == "p1"
        assert pod.namespace == "team-a"

    def test_node_ready(self) -> None:
        assert NodeInfo(conditions=(NodeCondition("Ready", "True"),)).is_ready()
        assert not NodeInfo(conditions=(NodeCondition("Ready", "False"),)).is_ready()
        assert not NodeInfo().is_ready()


class TestChangeNotification:
    def test_added(self) -> None:
        node = make_node("n1", "5")
        n = ChangeNotification.added(node, "5")
        assert n.kind == NotificationKind.ADDED
        assert n.resource_type == constants.RESOURCE_NODE
        assert n.identity == ResourceIdentity("", "n1")
        assert n.resume_token == "5"

    def test_modified_carries_old_record(self) -> None:
        old, new = make_node("n1", "1"), make_node("n1", "2")
        n = ChangeNotification.modified(new, "2", old_record=old)
        assert n.kind == NotificationKind.MODIFIED
        assert n.old_record is old

    def test_resynced_snapshot(self) -> None:
        records = [make_pod("p1"), make_pod("p2")]
        n = ChangeNotification.resynced(constants.RESOURCE_POD, records, "77")
        assert n.kind == NotificationKind.RESYNCED
        assert n.snapshot.records == tuple(records)
        assert n.snapshot.resource_version == "77"
        assert n.resume_token == "77"
        assert n.identity is None

    def test_sync_error(self) -> None:
        n = ChangeNotification.sync_error(constants.RESOURCE_POD, "gone")
        assert n.kind == NotificationKind.SYNC_ERROR
        assert n.reason == "gone"
        assert n.record is None


class TestDerivedEvent:
    def test_to_dict(self) -> None:
        assert DerivedEvent("svc-a.example", 30080).to_dict() == {
            "serviceName": "svc-a.example",
            "nodePort": 30080,
        }

    def test_missing_node_port(self) -> None:
        assert DerivedEvent("svc", None).to_dict()["nodePort"] is None
