import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import requests
from github import GithubException, UnknownObjectException

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from codearmor.errors import UpstreamError, UpstreamTimeout  # noqa: E402
from codearmor.github_source import GitHubSource, is_repository_target  # noqa: E402


def _pull(number, title="t", body="b", merged_at=None, closed_at=None):
    pr = MagicMock()
    pr.number = number
    pr.title = title
    pr.body = body
    pr.merged_at = merged_at
    pr.closed_at = closed_at
    return pr


class GitHubSourceTests(unittest.TestCase):
    def setUp(self):
        self.repo = MagicMock()
        self.client = MagicMock()
        self.client.get_repo.return_value = self.repo
        self.source = GitHubSource(client=self.client)

    def test_get_pull_files_maps_fields(self):
        f = MagicMock()
        f.filename = "app/api/route.ts"
        f.status = "modified"
        f.additions = 3
        f.deletions = 1
        f.changes = 4
        f.patch = "@@ -1 +1 @@\n-a\n+b"
        self.repo.get_pull.return_value.get_files.return_value = [f]

        files = self.source.get_pull_files("o", "r", 7)

        self.client.get_repo.assert_called_with("o/r")
        self.repo.get_pull.assert_called_with(7)
        self.assertEqual(files[0].filename, "app/api/route.ts")
        self.assertEqual((files[0].additions, files[0].deletions, files[0].changes), (3, 1, 4))
        self.assertEqual(files[0].patch, "@@ -1 +1 @@\n-a\n+b")

    def test_get_pull_details(self):
        pr = _pull(7, title="Add login")
        pr.state = "open"
        pr.head.sha = "abc"
        pr.base.ref = "main"
        self.repo.get_pull.return_value = pr

        details = self.source.get_pull("o", "r", 7)
        self.assertEqual(details.title, "Add login")
        self.assertEqual(details.head_sha, "abc")

    def test_list_closed_pulls_respects_limit(self):
        merged = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        self.repo.get_pulls.return_value = iter(
            [_pull(n, merged_at=merged) for n in range(100, 40, -1)]
        )

        history = self.source.list_closed_pulls("o", "r", limit=50)

        self.repo.get_pulls.assert_called_with(state="closed", sort="updated", direction="desc")
        self.assertEqual(len(history), 50)
        self.assertEqual(history[0].number, 100)
        self.assertEqual(history[0].fix_date, "2024-05-01T10:00:00+00:00")

    def test_github_error_becomes_upstream_error(self):
        self.repo.get_pull.side_effect = GithubException(502, {"message": "bad gateway"})
        with self.assertRaises(UpstreamError) as ctx:
            self.source.get_pull_files("o", "r", 7)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.user_message, "Failed to reach GitHub. Please try again.")

    def test_timeout_becomes_retryable(self):
        self.client.get_repo.side_effect = requests.ReadTimeout("slow")
        with self.assertRaises(UpstreamTimeout):
            self.source.list_closed_pulls("o", "r")

    def test_collect_repository_files(self):
        def item(path, kind="blob"):
            entry = MagicMock()
            entry.path = path
            entry.type = kind
            return entry

        self.repo.get_git_tree.return_value.tree = [
            item("app/page.tsx"),
            item("app/api/users/route.ts"),
            item("app/api", kind="tree"),
            item("supabase/schema.sql"),
            item("README.md"),
            item("middleware.ts"),
        ]

        def get_contents(path, ref):
            if path == "middleware.ts":
                raise UnknownObjectException(404, {"message": "Not Found"})
            content = MagicMock()
            content.type = "file"
            content.decoded_content = f"// {path}".encode()
            return content

        self.repo.get_contents.side_effect = get_contents

        files = self.source.collect_repository_files("o", "r", "main")

        self.repo.get_git_tree.assert_called_with("main", recursive=True)
        self.assertEqual(
            list(files),
            ["app/page.tsx", "app/api/users/route.ts", "supabase/schema.sql"],
        )
        self.assertEqual(files["app/page.tsx"], "// app/page.tsx")

    def test_repository_targets(self):
        self.assertTrue(is_repository_target(".env.example"))
        self.assertTrue(is_repository_target("app/api/a/b/route.ts"))
        self.assertFalse(is_repository_target("app/api/a/helper.ts"))
        self.assertFalse(is_repository_target("supabase/config.toml"))


if __name__ == "__main__":
    unittest.main()
