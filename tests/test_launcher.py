from __future__ import annotations

import json

import pytest

from landmap import launcher
from landmap.claim_codec import ClaimAttributes, encode_claim

ALICE = "a" * 64
BOB = "b" * 64


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    monkeypatch.delenv("LANDMAP_SETTINGS", raising=False)
    monkeypatch.delenv("LANDMAP_DEV_MODE", raising=False)
    monkeypatch.chdir(tmp_path)


def _events():
    return [
        {"kind": 0, "pubkey": ALICE, "content": json.dumps({"name": "alice"})},
        {"kind": 0, "pubkey": BOB, "content": "{}"},
        encode_claim(BOB, ClaimAttributes(title="Bob's base"), now=1700000000).to_mapping(),
        {"kind": 1, "pubkey": ALICE, "content": "unrelated note"},
    ]


def test_load_event_file_accepts_array_and_json_lines(tmp_path):
    array_path = tmp_path / "events.json"
    array_path.write_text(json.dumps(_events() + ["junk"]), encoding="utf-8")
    assert len(launcher.load_event_file(array_path)) == 4

    lines_path = tmp_path / "events.jsonl"
    lines = [json.dumps(event) for event in _events()]
    lines.insert(1, "{broken")
    lines.insert(2, "")
    lines_path.write_text("\n".join(lines), encoding="utf-8")
    assert len(launcher.load_event_file(lines_path)) == 4


def test_split_events_routes_by_kind():
    identities, claims = launcher.split_events(_events())
    assert [entry.pubkey for entry in identities] == [ALICE, BOB]
    assert [claim.owner for claim in claims] == [BOB]

    identities, claims = launcher.split_events(_events(), limit=1)
    assert [entry.pubkey for entry in identities] == [ALICE]
    assert len(claims) == 1


def test_dump_prints_frame(tmp_path, capsys):
    events_path = tmp_path / "events.json"
    events_path.write_text(json.dumps(_events()), encoding="utf-8")

    exit_code = launcher.main(
        ["--events", str(events_path), "--pubkey", ALICE, "--dump", "--width", "640", "--height", "480"]
    )

    assert exit_code == 0
    frame = json.loads(capsys.readouterr().out)
    assert frame[0] == {"type": "clear", "width": 640.0, "height": 480.0, "color": "#0a0a0a"}
    assert frame[-1]["text"] == "Bases: 1/2"
    circles = [command for command in frame if command["type"] == "circle"]
    current = [circle for circle in circles if circle["fill"] == "#22c55e"]
    assert len(current) == 1
    assert (current[0]["x"], current[0]["y"]) == pytest.approx((320.0, 240.0))


def test_missing_events_file_returns_error(tmp_path):
    assert launcher.main(["--events", str(tmp_path / "missing.json"), "--dump"]) == 2


def test_invalid_pubkey_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        launcher.main(["--pubkey", "npub1xyz", "--dump"])
    assert excinfo.value.code == 2


def test_pubkey_accepts_npub(tmp_path, capsys):
    npub = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"
    assert launcher.main(["--pubkey", npub, "--dump", "--width", "200", "--height", "100"]) == 0
    frame = json.loads(capsys.readouterr().out)
    current = [command for command in frame if command["type"] == "circle" and command["fill"] == "#22c55e"]
    assert len(current) == 1
    assert (current[0]["x"], current[0]["y"]) == pytest.approx((100.0, 50.0))
    assert frame[-1]["text"] == "Bases: 0/0"


def test_undecodable_events_file_returns_error(tmp_path):
    events_path = tmp_path / "events.json"
    events_path.write_bytes(b'[{"kind": 0, "content": "\xff\xfe"}]')
    assert launcher.main(["--events", str(events_path), "--dump"]) == 2


def test_split_events_ignores_boolean_kinds():
    events = [
        {"kind": False, "pubkey": ALICE, "content": "{}"},
        {"kind": True, "pubkey": BOB, "content": "{}"},
        {"kind": 0, "pubkey": BOB, "content": "{}"},
    ]
    identities, claims = launcher.split_events(events)
    assert [entry.pubkey for entry in identities] == [BOB]
    assert claims == []
