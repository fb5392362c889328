"""
Tests for the stack record models.
"""

import pytest
from pydantic import ValidationError

from ledgerstack.core.models.compose import ComposeDocument, ComposeService, ServiceDefinition
from ledgerstack.core.models.stack import ManifestEntry, Member, Stack, VersionManifest
from ledgerstack.core.models.state import StackState
from ledgerstack.core.services.ports import allocate_ports


def _member(index: int, **kwargs) -> Member:
    return Member(
        id=str(index),
        index=index,
        address=f"0x{index:040x}",
        ports=allocate_ports(5100, 5000, index),
        **kwargs,
    )


class TestMember:
    def test_default_names(self):
        m = _member(0)
        assert m.org_name == "org_0"
        assert m.node_name == "node_0"

    def test_explicit_names_kept(self):
        m = _member(1, org_name="acme", node_name="acme-node")
        assert m.org_name == "acme"
        assert m.node_name == "acme-node"

    def test_private_key_never_serialized(self):
        m = _member(0, private_key="0xsecret")
        assert "private_key" not in m.model_dump()
        assert "0xsecret" not in m.model_dump_json()
        assert "0xsecret" not in repr(m)

    def test_frozen(self):
        m = _member(0)
        with pytest.raises(ValidationError):
            m.external = True


class TestStack:
    def test_minimal(self):
        stack = Stack(name="dev", members=[_member(0)])
        assert stack.blockchain_provider == "geth"
        assert stack.database == "sqlite3"

    @pytest.mark.parametrize("name", ["bad name", "a/b", "", "dots.bad"])
    def test_invalid_name(self, name):
        with pytest.raises(ValidationError):
            Stack(name=name, members=[_member(0)])

    def test_invalid_database(self):
        with pytest.raises(ValidationError, match="invalid database"):
            Stack(name="dev", members=[_member(0)], database="mysql")

    def test_needs_members(self):
        with pytest.raises(ValidationError, match="at least one member"):
            Stack(name="dev", members=[])

    def test_member_indexes_contiguous(self):
        with pytest.raises(ValidationError, match="expected 1"):
            Stack(name="dev", members=[_member(0), _member(2)])

    def test_internal_external_split(self):
        stack = Stack(name="dev", members=[_member(0, external=True), _member(1)])
        assert [m.id for m in stack.external_members()] == ["0"]
        assert [m.id for m in stack.internal_members()] == ["1"]

    def test_member_lookup(self):
        stack = Stack(name="dev", members=[_member(0)])
        assert stack.member(0).id == "0"
        with pytest.raises(IndexError, match="no member 3"):
            stack.member(3)

    def test_json_round_trip_keeps_manifest_aliases(self):
        manifest = VersionManifest.model_validate({
            "firefly": {"image": "ff", "tag": "v1"},
            "dataexchange-https": {"image": "dx", "tag": "v2"},
        })
        stack = Stack(name="dev", members=[_member(0)], version_manifest=manifest)
        data = stack.model_dump(mode="json", by_alias=True)
        assert "dataexchange-https" in data["version_manifest"]
        loaded = Stack.model_validate(data)
        assert loaded.version_manifest.dataexchange_https.tag == "v2"


class TestManifest:
    def test_image_ref_prefers_sha(self):
        assert ManifestEntry(image="img", tag="v1", sha="abc").image_ref() == "img@sha256:abc"
        assert ManifestEntry(image="img", tag="v1").image_ref() == "img:v1"
        assert ManifestEntry(image="img").image_ref() == "img"

    def test_require_missing(self):
        with pytest.raises(ValueError, match="no entry for 'ethconnect'"):
            VersionManifest().require("ethconnect")

    def test_entries_in_declaration_order(self):
        manifest = VersionManifest.model_validate({
            "signer": {"image": "s"},
            "firefly": {"image": "f"},
        })
        assert [e.image for e in manifest.entries()] == ["f", "s"]


class TestStackState:
    def test_defaults(self):
        state = StackState()
        assert state.deployed_contracts == []
        assert state.first_start_completed_at is None


class TestComposeDocument:
    def test_empty_keys_dropped(self):
        svc = ComposeService(image="busybox")
        assert svc.to_dict() == {"image": "busybox"}

    def test_add_collects_volumes(self):
        doc = ComposeDocument()
        doc.add(ServiceDefinition(
            service_name="a",
            service=ComposeService(image="a", volumes=["v1:/data"]),
            volume_names=["v1"],
        ))
        doc.add(ServiceDefinition(
            service_name="b",
            service=ComposeService(image="b", volumes=["v1:/data"]),
            volume_names=["v1"],
        ))
        assert list(doc.volumes) == ["v1"]
        assert list(doc.services) == ["a", "b"]

    def test_yaml_round_trip(self):
        doc = ComposeDocument()
        doc.add(ServiceDefinition(
            service_name="a",
            service=ComposeService(
                image="a",
                depends_on={"b": {"condition": "service_started"}},
                entrypoint=["/bin/sh", "-c", "exit", "0"],
            ),
            volume_names=["v1"],
        ))
        again = ComposeDocument.from_yaml(doc.to_yaml())
        assert again.to_dict() == doc.to_dict()
