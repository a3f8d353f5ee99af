import os
import shutil
import tempfile
import unittest

from buildforge.repository import SourceRepo


class TestSourceRepo(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        for path in ("a.csproj", "src/web/web.csproj", ".git/x.csproj", "notes.txt"):
            full = os.path.join(self.test_dir, path)
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "w") as f:
                f.write("{}")
        self.repo = SourceRepo(self.test_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_file_and_dir_exists(self):
        self.assertTrue(self.repo.file_exists("src", "web", "web.csproj"))
        self.assertFalse(self.repo.file_exists("src"))
        self.assertTrue(self.repo.dir_exists("src"))

    def test_read_json(self):
        self.assertEqual(self.repo.read_json("notes.txt"), {})
        with open(os.path.join(self.test_dir, "bad.json"), "w") as f:
            f.write("{")
        with self.assertRaises(ValueError):
            self.repo.read_json("bad.json")

    def test_enumerate_files(self):
        self.assertEqual(
            self.repo.enumerate_files("*.csproj"),
            ["a.csproj", os.path.join("src", "web", "web.csproj")],
        )
        self.assertEqual(self.repo.enumerate_files("*.csproj", search_subdirectories=False), ["a.csproj"])


if __name__ == '__main__':
    unittest.main()
