"""
Fabric network artefacts: cryptogen, configtx, connection profile and
fabconnect config.

Single orderer (``fabric_orderer``), single peer org (``Org1MSP``) with
one peer (``fabric_peer``) and one client user per stack member.
Everything is mounted from the ``firefly_fabric`` volume at
``/etc/firefly``.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

CHANNEL = "firefly"
CHAINCODE = "firefly"
ORG_DOMAIN = "org1.example.com"
ORDERER_DOMAIN = "example.com"
MSP_ID = "Org1MSP"

ORGS = "/etc/firefly/organizations"
PEER_ORG = f"{ORGS}/peerOrganizations/{ORG_DOMAIN}"
ORDERER_ORG = f"{ORGS}/ordererOrganizations/{ORDERER_DOMAIN}"
ORDERER_NODE = f"{ORDERER_ORG}/orderers/fabric_orderer.{ORDERER_DOMAIN}"
PEER_NODE = f"{PEER_ORG}/peers/fabric_peer.{ORG_DOMAIN}"
PEER_ADMIN = f"{PEER_ORG}/users/Admin@{ORG_DOMAIN}"
ORDERER_ADMIN = f"{ORDERER_ORG}/users/Admin@{ORDERER_DOMAIN}"
ORDERER_TLS_CA = f"{ORDERER_NODE}/msp/tlscacerts/tlsca.{ORDERER_DOMAIN}-cert.pem"


class _NoAliasDumper(yaml.SafeDumper):
    """Shared sub-dicts are written out in full, never as &anchors."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _write(path: Path, data: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.dump(data, Dumper=_NoAliasDumper, sort_keys=False)
    path.write_text(text, encoding="utf-8")
    return path


def write_cryptogen_config(path: Path, member_count: int) -> Path:
    return _write(path, {
        "OrdererOrgs": [{
            "Name": "Orderer",
            "Domain": ORDERER_DOMAIN,
            "EnableNodeOUs": True,
            "Specs": [{"Hostname": "fabric_orderer", "SANS": ["localhost"]}],
        }],
        "PeerOrgs": [{
            "Name": "Org1",
            "Domain": ORG_DOMAIN,
            "EnableNodeOUs": True,
            "CA": {"Hostname": "fabric_ca"},
            "Specs": [{"Hostname": "fabric_peer", "SANS": ["localhost"]}],
            "Users": {"Count": member_count},
        }],
    })


def _signature(rule: str) -> dict[str, str]:
    return {"Type": "Signature", "Rule": rule}


def _implicit(rule: str) -> dict[str, str]:
    return {"Type": "ImplicitMeta", "Rule": rule}


def configtx() -> dict[str, Any]:
    """configtx.yaml with a single-org application channel genesis profile."""
    orderer_org = {
        "Name": "OrdererOrg",
        "ID": "OrdererMSP",
        "MSPDir": f"{ORDERER_ORG}/msp",
        "Policies": {
            "Readers": _signature("OR('OrdererMSP.member')"),
            "Writers": _signature("OR('OrdererMSP.member')"),
            "Admins": _signature("OR('OrdererMSP.admin')"),
        },
        "OrdererEndpoints": ["fabric_orderer:7050"],
    }
    peer_org = {
        "Name": MSP_ID,
        "ID": MSP_ID,
        "MSPDir": f"{PEER_ORG}/msp",
        "Policies": {
            "Readers": _signature(f"OR('{MSP_ID}.admin', '{MSP_ID}.peer', '{MSP_ID}.client')"),
            "Writers": _signature(f"OR('{MSP_ID}.admin', '{MSP_ID}.client')"),
            "Admins": _signature(f"OR('{MSP_ID}.admin')"),
            "Endorsement": _signature(f"OR('{MSP_ID}.peer')"),
        },
    }
    v2 = {"V2_0": True}
    standard_policies = {
        "Readers": _implicit("ANY Readers"),
        "Writers": _implicit("ANY Writers"),
        "Admins": _implicit("MAJORITY Admins"),
    }
    application = {
        "Organizations": [],
        "Policies": {
            **standard_policies,
            "LifecycleEndorsement": _implicit("MAJORITY Endorsement"),
            "Endorsement": _implicit("MAJORITY Endorsement"),
        },
        "Capabilities": v2,
    }
    orderer = {
        "OrdererType": "etcdraft",
        "Addresses": ["fabric_orderer:7050"],
        "EtcdRaft": {
            "Consenters": [{
                "Host": "fabric_orderer",
                "Port": 7050,
                "ClientTLSCert": f"{ORDERER_NODE}/tls/server.crt",
                "ServerTLSCert": f"{ORDERER_NODE}/tls/server.crt",
            }],
        },
        "BatchTimeout": "2s",
        "BatchSize": {
            "MaxMessageCount": 10,
            "AbsoluteMaxBytes": "99 MB",
            "PreferredMaxBytes": "512 KB",
        },
        "Organizations": [],
        "Policies": {**standard_policies, "BlockValidation": _implicit("ANY Writers")},
    }
    channel = {"Policies": standard_policies, "Capabilities": v2}

    profile = copy.deepcopy(channel)
    profile["Orderer"] = copy.deepcopy(orderer)
    profile["Orderer"]["Organizations"] = [copy.deepcopy(orderer_org)]
    profile["Orderer"]["Capabilities"] = dict(v2)
    profile["Application"] = copy.deepcopy(application)
    profile["Application"]["Organizations"] = [copy.deepcopy(peer_org)]

    return {
        "Organizations": [orderer_org, peer_org],
        "Capabilities": {"Channel": v2, "Orderer": dict(v2), "Application": dict(v2)},
        "Application": application,
        "Orderer": orderer,
        "Channel": channel,
        "Profiles": {"SingleOrgApplicationGenesis": profile},
    }


def write_configtx(path: Path) -> Path:
    return _write(path, configtx())


def write_connection_profile(path: Path) -> Path:
    """ccp.yaml used by fabconnect to reach the peer, orderer and CA."""
    users = f"{PEER_ORG}/users"
    return _write(path, {
        "certificateAuthorities": {
            ORG_DOMAIN: {
                "tlsCACerts": {"path": f"{PEER_ORG}/ca/fabric_ca.{ORG_DOMAIN}-cert.pem"},
                "url": "http://fabric_ca:7054",
                "registrar": {"enrollId": "admin", "enrollSecret": "adminpw"},
            },
        },
        "channels": {
            CHANNEL: {
                "orderers": ["fabric_orderer"],
                "peers": {
                    "fabric_peer": {
                        "chaincodeQuery": True,
                        "endorsingPeer": True,
                        "eventSource": True,
                        "ledgerQuery": True,
                    },
                },
            },
        },
        "client": {
            "BCCSP": {
                "security": {
                    "default": {"provider": "SW"},
                    "enabled": True,
                    "hashAlgorithm": "SHA2",
                    "level": 256,
                    "softVerify": True,
                },
            },
            "credentialStore": {"cryptoStore": {"path": users}, "path": users},
            "cryptoconfig": {"path": users},
            "logging": {"level": "info"},
            "organization": ORG_DOMAIN,
            "tlsCerts": {
                "client": {
                    "cert": {"path": f"{PEER_ADMIN}/tls/client.crt"},
                    "key": {"path": f"{PEER_ADMIN}/tls/client.key"},
                },
            },
        },
        "orderers": {
            "fabric_orderer": {
                "tlsCACerts": {"path": f"{ORDERER_ORG}/tlsca/tlsca.{ORDERER_DOMAIN}-cert.pem"},
                "url": "grpcs://fabric_orderer:7050",
            },
        },
        "organizations": {
            ORG_DOMAIN: {
                "certificateAuthorities": [ORG_DOMAIN],
                "cryptoPath": "/tmp/msp",
                "mspid": MSP_ID,
                "peers": ["fabric_peer"],
            },
        },
        "peers": {
            "fabric_peer": {
                "tlsCACerts": {"path": f"{PEER_ORG}/tlsca/tlsca.{ORG_DOMAIN}-cert.pem"},
                "url": "grpcs://fabric_peer:7051",
            },
        },
        "version": "1.1.0%",
    })


def write_fabconnect_config(path: Path) -> Path:
    return _write(path, {
        "maxinflight": 10,
        "maxtxwaittime": 60,
        "sendconcurrency": 25,
        "receipts": {
            "maxdocs": 1000,
            "querylimit": 100,
            "retryinitialdelay": 5,
            "retrytimeout": 30,
            "leveldb": {"path": "/fabconnect/receipts"},
        },
        "events": {
            "webhooksAllowPrivateIPs": True,
            "leveldb": {"path": "/fabconnect/events"},
        },
        "http": {"port": 3000},
        "rpc": {"useSyncBroadcast": True, "configpath": "/fabconnect/ccp.yaml"},
    })
