from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from vimmarch.utils.backup import BackupStore
from vimmarch.utils.exceptions import BackupIntegrityError

# ======= Execute with: pytest tests/test_backup.py ========

class FakeClock:
    """Returns a strictly increasing time, one second per call."""
    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture
def store(tmp_path, mock_rich_logger):
    return BackupStore(tmp_path / "backups", mock_rich_logger, clock=FakeClock())


@pytest.fixture
def pacman_conf(tmp_path):
    path = tmp_path / "etc" / "pacman.conf"
    path.parent.mkdir()
    path.write_text("[options]\n#Color\n", encoding="utf-8")
    return path


def test_backup_creates_timestamped_verified_copy(store, pacman_conf, mock_rich_logger):
    record = store.backup(pacman_conf)

    assert record.original == pacman_conf
    assert record.backup.name == "pacman.conf.20240501_120000_000000"
    assert record.backup.read_bytes() == pacman_conf.read_bytes()
    assert record.created == datetime(2024, 5, 1, 12, 0, 0)
    mock_rich_logger.info.assert_called_once()


def test_backup_missing_source_raises(store, tmp_path, mock_rich_logger):
    with pytest.raises(BackupIntegrityError, match="source missing"):
        store.backup(tmp_path / "does-not-exist")
    mock_rich_logger.error.assert_called_once()


def test_backup_mismatch_removes_partial_copy(store, pacman_conf):
    with patch('vimmarch.utils.backup.filecmp.cmp', return_value=False):
        with pytest.raises(BackupIntegrityError, match="verification failed"):
            store.backup(pacman_conf)
    assert store.backups_for("pacman.conf") == []


def test_backup_copy_failure_raises(store, pacman_conf):
    with patch('vimmarch.utils.backup.shutil.copy2', side_effect=OSError("No space left on device")):
        with pytest.raises(BackupIntegrityError, match="copy failed"):
            store.backup(pacman_conf)
    assert store.backups_for("pacman.conf") == []


def test_same_tick_backups_get_distinct_names(tmp_path, mock_rich_logger, pacman_conf):
    frozen = datetime(2024, 5, 1, 12, 0, 0)
    store = BackupStore(tmp_path / "backups", mock_rich_logger, clock=lambda: frozen)

    first = store.backup(pacman_conf)
    second = store.backup(pacman_conf)

    assert first.backup != second.backup
    assert second.backup.name.endswith("_1")


def test_restore_is_byte_identical_and_idempotent(store, pacman_conf):
    original_bytes = pacman_conf.read_bytes()
    record = store.backup(pacman_conf)
    pacman_conf.write_text("garbage", encoding="utf-8")

    store.restore(record)
    assert pacman_conf.read_bytes() == original_bytes

    store.restore(record)
    assert pacman_conf.read_bytes() == original_bytes


def test_restore_missing_backup_raises(store, pacman_conf):
    record = store.backup(pacman_conf)
    record.backup.unlink()

    with pytest.raises(BackupIntegrityError, match="missing"):
        store.restore(record)


def test_prune_keeps_newest(store, pacman_conf):
    records = [store.backup(pacman_conf) for _ in range(7)]

    deleted = store.prune("pacman.conf", keep=5)

    assert sorted(deleted) == sorted(r.backup for r in records[:2])
    remaining = store.backups_for("pacman.conf")
    assert remaining == [r.backup for r in reversed(records[2:])]


def test_prune_only_touches_its_target(store, pacman_conf, tmp_path):
    mirrorlist = tmp_path / "etc" / "mirrorlist"
    mirrorlist.write_text("Server = x\n", encoding="utf-8")
    store.backup(mirrorlist)
    for _ in range(3):
        store.backup(pacman_conf)

    store.prune("pacman.conf", keep=1)

    assert len(store.backups_for("pacman.conf")) == 1
    assert len(store.backups_for("mirrorlist")) == 1


def test_prune_negative_keep_is_rejected(store):
    with pytest.raises(ValueError):
        store.prune("pacman.conf", keep=-1)


def test_same_tick_backups_order_by_counter_past_nine(tmp_path, mock_rich_logger, pacman_conf):
    frozen = datetime(2024, 5, 1, 12, 0, 0)
    store = BackupStore(tmp_path / "backups", mock_rich_logger, clock=lambda: frozen)
    records = [store.backup(pacman_conf) for _ in range(12)]

    assert store.backups_for("pacman.conf") == [r.backup for r in reversed(records)]

    deleted = store.prune("pacman.conf", keep=5)

    assert sorted(deleted) == sorted(r.backup for r in records[:7])
    assert records[-1].backup.name.endswith("_11")
    assert records[-1].backup.exists()
