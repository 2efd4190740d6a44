import tempfile
import time
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from filerelay.retention import RetentionScheduler, expire_artifact
from filerelay.storage import Artifact


def _wait_for(predicate, timeout=5.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class ExpireArtifactTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "warm-wolf.txt"

    def tearDown(self):
        self.tmp.cleanup()

    def test_deletes_existing_file(self):
        self.path.write_bytes(b"bye")
        self.assertTrue(expire_artifact(self.path, self.path.name))
        self.assertFalse(self.path.exists())

    def test_missing_file_is_not_an_error(self):
        self.assertFalse(expire_artifact(self.path, self.path.name))

    def test_other_errors_are_logged_and_swallowed(self):
        self.path.write_bytes(b"stuck")
        with mock.patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            with self.assertLogs("filerelay.retention", level="WARNING") as captured:
                self.assertFalse(expire_artifact(self.path, self.path.name))
        self.assertIn("retention_delete_failed", captured.output[0])
        self.assertTrue(self.path.exists())


class RetentionSchedulerTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)
        self.scheduler = RetentionScheduler(default_ttl=timedelta(days=7))
        self.scheduler.start()

    def tearDown(self):
        self.scheduler.shutdown()
        self.tmp.cleanup()

    def _artifact(self, filename: str, created_at: float = None) -> Artifact:
        path = self.directory / filename
        path.write_bytes(b"payload")
        name, ext = filename.rsplit(".", 1)
        return Artifact(
            name=name,
            ext=ext,
            size=7,
            created_at=time.time() if created_at is None else created_at,
            path=path,
        )

    def test_deadline_is_creation_time_plus_ttl(self):
        created_at = time.time()
        artifact = self._artifact("keen-kiwi.txt", created_at=created_at)

        deadline = self.scheduler.schedule(artifact)

        expected = datetime.fromtimestamp(created_at, tz=timezone.utc) + timedelta(days=7)
        self.assertEqual(deadline, expected)
        self.assertIn("keen-kiwi.txt", self.scheduler.pending())
        self.assertTrue(artifact.path.exists())

    def test_artifact_deleted_after_ttl(self):
        artifact = self._artifact("fast-fox.bin")
        self.scheduler.schedule(artifact, ttl=0.1)

        self.assertTrue(_wait_for(lambda: not artifact.path.exists()))
        self.assertTrue(_wait_for(lambda: "fast-fox.bin" not in self.scheduler.pending()))

    def test_firing_after_file_is_gone_is_harmless(self):
        artifact = self._artifact("gone-goat.txt")
        artifact.path.unlink()
        self.scheduler.schedule(artifact, ttl=0.05)
        self.assertTrue(_wait_for(lambda: not self.scheduler.pending()))

    def test_cancel_withdraws_pending_deletion(self):
        artifact = self._artifact("calm-crab.txt")
        self.scheduler.schedule(artifact, ttl=0.3)

        self.assertTrue(self.scheduler.cancel("calm-crab.txt"))
        self.assertFalse(self.scheduler.cancel("calm-crab.txt"))
        time.sleep(0.6)
        self.assertTrue(artifact.path.exists())

    def test_schedule_path_uses_now_when_creation_time_unknown(self):
        path = self.directory / "half-done.txt"
        path.write_bytes(b"par")
        before = datetime.now(timezone.utc)

        deadline = self.scheduler.schedule_path(path, ttl=timedelta(hours=1))

        self.assertGreaterEqual(deadline, before + timedelta(hours=1))
        self.assertIn("half-done.txt", self.scheduler.pending())

    def test_shutdown_is_safe_to_repeat(self):
        self.scheduler.shutdown()
        self.scheduler.shutdown()
        self.assertFalse(self.scheduler.running)


if __name__ == "__main__":
    unittest.main()
