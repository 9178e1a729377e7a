import io
import logging
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import replace
from pathlib import Path

from support import build_chain

import run_replay
from retarget.config import MAINNET, TESTNET
from retarget.replay import as_candidate, replay_headers
from retarget.storage import HeaderStore


class ReplayTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = HeaderStore(Path(self.tmpdir.name) / "headers.sqlite3")

    def tearDown(self) -> None:
        self.store.close()
        self.tmpdir.cleanup()

    def test_empty_store(self) -> None:
        report = replay_headers(TESTNET, self.store)
        self.assertTrue(report.ok)
        self.assertEqual(report.checked, 0)

    def test_replays_checkpointed_history(self) -> None:
        _, headers = build_chain(3060, start=2990, bits_at=lambda h: 0x1E0FFFF0 if h < 3015 else 0x1E0F5546)
        self.store.store_headers(headers)
        report = replay_headers(TESTNET, self.store, start=3001, end=3015)
        # Heights up to 3014 lack a full 24 block window above the checkpoint.
        self.assertTrue(report.ok, report.error)
        self.assertEqual(report.checked, 15)
        self.assertEqual(report.trusted, 14)
        self.assertEqual(report.last_trusted, 3014)

    def test_small_batches_match_single_pass(self) -> None:
        _, headers = build_chain(700)
        headers[650] = replace(headers[650], bits=0x1E0FFFEF)
        self.store.store_headers(headers)
        whole = replay_headers(MAINNET, self.store)
        paged = replay_headers(MAINNET, self.store, batch_size=7)
        self.assertEqual(paged, whole)
        self.assertEqual(paged.failed_height, 650)

    def test_stops_at_first_rejected_header(self) -> None:
        _, headers = build_chain(700)
        headers[650] = replace(headers[650], bits=0x1E0FFFEF)
        self.store.store_headers(headers)
        report = replay_headers(MAINNET, self.store)
        self.assertFalse(report.ok)
        self.assertEqual(report.failed_height, 650)
        self.assertEqual(report.checked, 649)
        self.assertIn("Unexpected change in difficulty", report.error)

    def test_missing_parent_fails(self) -> None:
        _, headers = build_chain(20)
        self.store.store_headers(headers[:10] + headers[11:])
        report = replay_headers(MAINNET, self.store)
        self.assertEqual(report.failed_height, 11)
        self.assertIn("not stored", report.error)

    def test_genesis_is_not_a_candidate(self) -> None:
        _, headers = build_chain(0)
        with self.assertRaises(ValueError):
            as_candidate(headers[0])


class ReplayCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.db_path = self.root / "headers" / "mainnet.sqlite3"

    def tearDown(self) -> None:
        logger = logging.getLogger("retarget")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)
        self.tmpdir.cleanup()

    def run_cli(self, *extra: str) -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        argv = ["--data-dir", str(self.root), "--header-db", str(self.db_path), "--log-level", "warning", *extra]
        with redirect_stdout(out), redirect_stderr(err):
            code = run_replay.main(argv)
        return code, out.getvalue(), err.getvalue()

    def store(self, headers) -> None:
        with HeaderStore(self.db_path) as store:
            store.store_headers(headers)

    def test_valid_history(self) -> None:
        _, headers = build_chain(600)
        self.store(headers)
        code, out, _ = self.run_cli("--network", "mainnet", "--config", str(self.root / "absent.json"))
        self.assertEqual(code, 0)
        self.assertIn("Validated 600 headers (0 accepted on trust)", out)

    def test_rejected_history(self) -> None:
        _, headers = build_chain(600)
        headers[576] = replace(headers[576], bits=0x1E03FFFC)
        self.store(headers)
        code, _, err = self.run_cli("--config", str(self.root / "absent.json"))
        self.assertEqual(code, 1)
        self.assertIn("Rejected at height 576", err)

    def test_config_error(self) -> None:
        code, _, err = self.run_cli("--network", "nowhere", "--config", str(self.root / "absent.json"))
        self.assertEqual(code, 1)
        self.assertIn("Config error", err)


if __name__ == "__main__":
    unittest.main()
