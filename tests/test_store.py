from pathlib import Path

import pytest

from winewarden.errors import WineWardenIOError
from winewarden.store import ExecutableIdentity, TrustStore
from winewarden.trust import TrustTier


@pytest.fixture
def game(tmp_path):
    exe = tmp_path / "game.exe"
    exe.write_bytes(b"MZ fake game binary")
    return ExecutableIdentity.from_path(exe)


def test_identity_of_empty_file(tmp_path):
    empty = tmp_path / "empty.exe"
    empty.write_bytes(b"")
    identity = ExecutableIdentity.from_path(empty)
    assert identity.sha256 == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert identity.path == empty


def test_identity_depends_on_contents(tmp_path, game):
    other = tmp_path / "other.exe"
    other.write_bytes(b"MZ fake game binary")
    assert ExecutableIdentity.from_path(other).sha256 == game.sha256
    other.write_bytes(b"MZ patched")
    assert ExecutableIdentity.from_path(other).sha256 != game.sha256
    assert len(game.sha256) == 64


def test_identity_missing_file(tmp_path):
    with pytest.raises(WineWardenIOError):
        ExecutableIdentity.from_path(tmp_path / "missing.exe")


def test_record_run_counts_and_updates_tier(game):
    store = TrustStore()
    store.record_run(game, TrustTier.YELLOW)
    store.record_run(game, TrustTier.GREEN)
    record = store.records[game.sha256]
    assert record.runs == 2
    assert record.tier is TrustTier.GREEN
    assert store.get_tier(game) is TrustTier.GREEN


def test_record_run_updates_path(game):
    store = TrustStore()
    store.record_run(game, TrustTier.RED)
    moved = ExecutableIdentity(path=Path("/new/place/game.exe"), sha256=game.sha256)
    store.record_run(moved, TrustTier.RED)
    assert store.records[game.sha256].identity.path == Path("/new/place/game.exe")


def test_get_tier_unknown(game):
    assert TrustStore().get_tier(game) is None


def test_set_tier_does_not_count_run(game):
    store = TrustStore()
    store.set_tier(game, TrustTier.RED)
    assert store.records[game.sha256].runs == 0
    assert store.get_tier(game) is TrustTier.RED


def test_save_and_load(tmp_path, game):
    store = TrustStore()
    store.record_run(game, TrustTier.GREEN)
    target = tmp_path / "deep" / "trust.json"
    store.save(target)
    assert TrustStore.load(target) == store


def test_load_missing_is_empty(tmp_path):
    assert TrustStore.load(tmp_path / "none.json").records == {}


def test_load_invalid_json(tmp_path):
    bad = tmp_path / "trust.json"
    bad.write_text("{not json")
    with pytest.raises(ValueError):
        TrustStore.load(bad)