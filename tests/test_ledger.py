"""Address ledger and verification artifact bookkeeping."""

from pathlib import Path

import pytest

from eth_deployer.ledger import AddressLedger, VerificationArtifact, merge_verification_artifacts

ZERO = "0x0000000000000000000000000000000000000000"
MAILBOX = "0x000000000000000000000000000000000000dEaD"


def test_seed_skips_zero_address():
    ledger = AddressLedger({"arbitrum": {"mailbox": MAILBOX.lower(), "proxyAdmin": ZERO}})
    assert ledger.lookup("arbitrum", "mailbox") == MAILBOX
    assert ledger.lookup("arbitrum", "proxyAdmin") is None
    assert ledger.lookup("optimism", "mailbox") is None


def test_bind_rejects_zero_address():
    ledger = AddressLedger()
    with pytest.raises(AssertionError):
        ledger.bind("arbitrum", "mailbox", ZERO)


def test_bind_last_write_wins():
    ledger = AddressLedger()
    ledger.bind("arbitrum", "mailbox", "0x0000000000000000000000000000000000000001")
    ledger.bind("arbitrum", "mailbox", MAILBOX)
    assert ledger.slice("arbitrum") == {"mailbox": MAILBOX}
    assert ledger.chains() == ["arbitrum"]


def test_json_round_trip(tmp_path: Path):
    path = tmp_path / "addresses.json"
    assert AddressLedger.load_json(path).to_dict() == {}

    ledger = AddressLedger({"arbitrum": {"mailbox": MAILBOX}})
    ledger.save_json(path)
    assert AddressLedger.load_json(path).to_dict() == {"arbitrum": {"mailbox": MAILBOX}}


def test_merge_verification_artifacts():
    """New entries replace old ones with the same name and address."""
    old = VerificationArtifact("Mailbox", MAILBOX, "0x01")
    other = VerificationArtifact("ProxyAdmin", "0x0000000000000000000000000000000000000001", "0x")
    new = VerificationArtifact("Mailbox", MAILBOX, "0x02")

    merged = merge_verification_artifacts({"arbitrum": [old, other]}, {"arbitrum": [new], "base": [other]})
    assert merged["arbitrum"] == [new, other]
    assert merged["base"] == [other]


def test_verification_artifact_dict():
    artifact = VerificationArtifact("TransparentUpgradeableProxy", MAILBOX, "0x1234", is_proxy=True, expected_implementation=MAILBOX)
    data = artifact.to_dict()
    assert data["constructorArguments"] == "0x1234"
    assert data["isProxy"] is True
    assert data["expectedimplementation"] == MAILBOX
    assert VerificationArtifact.from_dict(data) == artifact
