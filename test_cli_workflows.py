from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from asarkit.header import FileRecord
from asarkit.reader import read_header


def _random_bytes(size: int) -> bytes:
    return os.urandom(size)


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "docs").mkdir()
    (root / "docs" / "notes").mkdir()
    content = b"hello world\n" * 20
    (root / "docs" / "readme.txt").write_bytes(content)
    files["docs/readme.txt"] = content

    bin_data = _random_bytes(2048)
    (root / "docs" / "notes" / "binary.bin").write_bytes(bin_data)
    files["docs/notes/binary.bin"] = bin_data

    (root / "docs" / "notes" / "empty.txt").write_text("")
    files["docs/notes/empty.txt"] = b""

    (root / "main.js").write_bytes(b"require('./docs');\n")
    files["main.js"] = b"require('./docs');\n"
    return files


def _compare_trees(src: Path, dst: Path):
    for root_src, dirs_src, files_src in os.walk(src):
        rel = os.path.relpath(root_src, src)
        root_dst = os.path.join(dst, rel) if rel != "." else dst
        assert os.path.isdir(root_dst), f"Missing directory: {root_dst}"

        dirs_dst = sorted(d for d in os.listdir(root_dst) if os.path.isdir(os.path.join(root_dst, d)))
        assert dirs_dst == sorted(dirs_src), f"Directory mismatch under {root_src}: {dirs_dst} != {sorted(dirs_src)}"

        for fname in files_src:
            with open(Path(root_src) / fname, "rb") as sf, open(Path(root_dst) / fname, "rb") as df:
                assert sf.read() == df.read(), f"File contents differ: {Path(root_dst) / fname}"


class CLIIntegrationTests(unittest.TestCase):
    def setUp(self):
        self._cfg_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._cfg_dir.cleanup)
        self.config_path = Path(self._cfg_dir.name) / "config.toml"

    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None, text: bool = True):
        cmd = [sys.executable, "-m", "asarkit.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        # Keep the user's own config file out of the run
        env["ASARKIT_CONFIG"] = str(self.config_path)
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=text,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_pack_inspect_and_extract(self):
        tmp_src = tempfile.TemporaryDirectory()
        tmp_workspace = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_src.cleanup)
        self.addCleanup(tmp_workspace.cleanup)

        src_root = Path(tmp_src.name)
        workspace = Path(tmp_workspace.name)
        files = _build_fixture_tree(src_root)

        archive = workspace / "app.asar"
        pack_proc = self.run_cli(["pack", str(src_root), str(archive)])
        self.assertIn("Done: 4 files", pack_proc.stdout)
        self.assertIn("packing: main.js", pack_proc.stdout)

        list_proc = self.run_cli(["list", str(archive)])
        lines = list_proc.stdout.splitlines()
        self.assertIn("dir\t-\tdocs", lines)
        self.assertIn(f"file\t{len(files['docs/readme.txt'])}\tdocs/readme.txt", lines)
        self.assertIn("file\t0\tdocs/notes/empty.txt", lines)

        info_proc = self.run_cli(["info", str(archive)])
        self.assertIn("Files: 4", info_proc.stdout)
        self.assertIn("Directories: 2", info_proc.stdout)
        self.assertIn(f"Data size: {sum(len(v) for v in files.values())}", info_proc.stdout)
        self.assertIn("Integrity records: 0", info_proc.stdout)

        cat_proc = self.run_cli(["cat", str(archive), "docs/notes/binary.bin"], text=False)
        self.assertEqual(cat_proc.stdout, files["docs/notes/binary.bin"])

        verify_proc = self.run_cli(["verify", str(archive)])
        self.assertIn("OK", verify_proc.stdout)

        extract_dir = workspace / "extract"
        extract_proc = self.run_cli(["extract", str(archive), "--outdir", str(extract_dir), "--quiet"])
        self.assertNotIn("extracting:", extract_proc.stdout)
        _compare_trees(src_root, extract_dir)

        partial = workspace / "partial"
        self.run_cli(["extract", str(archive), "docs/notes", "--outdir", str(partial)])
        self.assertEqual((partial / "docs" / "notes" / "binary.bin").read_bytes(), files["docs/notes/binary.bin"])
        self.assertFalse((partial / "main.js").exists())

    def test_backup_and_restore(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            (src / "index.js").write_text("original")
            archive = root / "app.asar"
            bak_path = Path(str(archive) + ".backup")

            first = self.run_cli(["pack", str(src), str(archive)])
            self.assertNotIn("Backup", first.stdout)
            self.assertFalse(bak_path.exists())
            original = archive.read_bytes()

            (src / "index.js").write_text("patched")
            second = self.run_cli(["pack", str(src), str(archive)])
            self.assertIn("Backup written to", second.stdout)
            self.assertEqual(bak_path.read_bytes(), original)

            third = self.run_cli(["repack", str(archive), "--sort"])
            self.assertIn("Rewrote", third.stdout)
            self.assertEqual(bak_path.read_bytes(), original)
            cat_proc = self.run_cli(["cat", str(archive), "index.js"])
            self.assertEqual(cat_proc.stdout, "patched")

            restore_proc = self.run_cli(["restore", str(archive)])
            self.assertIn("Restored", restore_proc.stdout)
            self.assertEqual(archive.read_bytes(), original)

            other = root / "other.asar"
            self.run_cli(["pack", str(src), str(other), "--no-backup"])
            self.run_cli(["pack", str(src), str(other), "--no-backup"])
            self.assertFalse(Path(str(other) + ".backup").exists())
            missing = self.run_cli(["restore", str(other)], expect=2)
            self.assertIn("Nothing to restore", missing.stderr)

    def test_integrity_detects_corruption(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "data"
            src.mkdir()
            (src / "file.bin").write_bytes(_random_bytes(2048))
            archive = root / "sample.asar"
            self.run_cli(["pack", str(src), str(archive), "--integrity"])

            info_proc = self.run_cli(["info", str(archive)])
            self.assertIn("Integrity records: 1", info_proc.stdout)
            self.assertIn("OK", self.run_cli(["verify", str(archive)]).stdout)

            with open(archive, "rb") as fh:
                header = read_header(fh)
            rec = header.root.children["file.bin"]
            self.assertIsInstance(rec, FileRecord)
            pos = header.data_offset + rec.offset + 100
            with open(archive, "rb+") as fh:
                fh.seek(pos)
                b = fh.read(1)
                fh.seek(pos)
                fh.write(bytes([b[0] ^ 0x55]))

            verify_fail = self.run_cli(["verify", str(archive)], expect=1)
            self.assertIn("FAIL", verify_fail.stdout)
            self.assertIn("integrity mismatch: file.bin", verify_fail.stderr)

    def test_errors_exit_with_status_2(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            (src / "a.txt").write_text("a")
            archive = root / "app.asar"
            self.run_cli(["pack", str(src), str(archive), "--quiet"])

            proc = self.run_cli(["cat", str(archive), "missing.txt"], expect=2)
            self.assertIn("missing.txt", proc.stderr)

            # The JSON header starts right after the 16-byte preamble
            raw = bytearray(archive.read_bytes())
            raw[16] = ord("X")
            archive.write_bytes(bytes(raw))
            proc = self.run_cli(["list", str(archive)], expect=2)
            self.assertIn("Error", proc.stderr)

            truncated = root / "short.asar"
            truncated.write_bytes(b"\x04\x00\x00")
            self.run_cli(["info", str(truncated)], expect=2)
            self.run_cli(["verify", str(root / "nope.asar")], expect=2)

    def test_config_init_and_settings(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            init_proc = self.run_cli(["config", "--init"])
            self.assertIn("Wrote default config", init_proc.stdout)
            self.assertTrue(self.config_path.exists())

            self.config_path.write_text("progress = false\nmake_backup = false\n", encoding="utf-8")
            show = self.run_cli(["config"])
            self.assertIn("make_backup = false", show.stdout)

            src = root / "src"
            src.mkdir()
            (src / "a.txt").write_text("a")
            archive = root / "app.asar"
            self.run_cli(["pack", str(src), str(archive)])
            again = self.run_cli(["pack", str(src), str(archive)])
            self.assertNotIn("packing:", again.stdout)
            self.assertFalse(Path(str(archive) + ".backup").exists())


if __name__ == "__main__":
    unittest.main()
