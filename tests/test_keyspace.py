import unittest

from s3_folders.keyspace import (
    belongs_to_scope,
    bundle_filename,
    compose_key,
    derive_display_name,
    normalize_prefix,
    object_filename,
    parent_prefix,
)


class DeriveDisplayNameTests(unittest.TestCase):
    def test_root_scope_returns_key_unchanged(self):
        self.assertEqual("readme.txt", derive_display_name("readme.txt", ""))
        self.assertEqual("docs/guide.pdf", derive_display_name("docs/guide.pdf", ""))
        self.assertEqual("docs/", derive_display_name("docs/", ""))

    def test_marker_object_is_hidden(self):
        self.assertIsNone(derive_display_name("docs/", "docs/"))

    def test_strips_scope_prefix(self):
        self.assertEqual("guide.pdf", derive_display_name("docs/guide.pdf", "docs/"))
        self.assertEqual("sub/file.txt", derive_display_name("docs/sub/file.txt", "docs/"))

    def test_strips_exactly_one_leading_separator(self):
        self.assertEqual("file.txt", derive_display_name("docs//file.txt", "docs/"))
        self.assertEqual("file.txt", derive_display_name("docs/file.txt", "docs"))
        self.assertEqual("/file.txt", derive_display_name("docs///file.txt", "docs/"))

    def test_key_outside_scope_is_returned_unchanged(self):
        self.assertEqual("other/file.txt", derive_display_name("other/file.txt", "docs/"))

    def test_none_only_for_marker_or_empty_remainder(self):
        keys = ["docs/", "docs/a", "docs", "doc", "docs//", "other/", "a"]
        scopes = ["", "docs/", "docs", "other/"]
        for key in keys:
            for scope in scopes:
                expected_none = bool(scope) and (key == scope or (key.startswith(scope) and key[len(scope):] == ""))
                with self.subTest(key=key, scope=scope):
                    self.assertEqual(expected_none, derive_display_name(key, scope) is None)

    def test_scoped_names_never_start_with_separator(self):
        for scope in ["docs/", "docs", "docs/sub/"]:
            for key in ["docs/a.txt", "docs/sub/", "docs/sub/b.txt", "docsx/a"]:
                name = derive_display_name(key, scope)
                with self.subTest(key=key, scope=scope):
                    if name is not None:
                        self.assertFalse(name.startswith("/"))


class ScopeHelpersTests(unittest.TestCase):
    def test_belongs_to_scope(self):
        self.assertTrue(belongs_to_scope("anything", ""))
        self.assertTrue(belongs_to_scope("docs/a.txt", "docs/"))
        self.assertFalse(belongs_to_scope("readme.txt", "docs/"))

    def test_normalize_prefix(self):
        self.assertEqual("", normalize_prefix(None))
        self.assertEqual("", normalize_prefix("  "))
        self.assertEqual("docs/", normalize_prefix("/docs"))
        self.assertEqual("docs/sub/", normalize_prefix("docs/sub/"))

    def test_compose_key(self):
        self.assertEqual("file.txt", compose_key("", "file.txt"))
        self.assertEqual("docs/file.txt", compose_key("docs/", "file.txt"))
        self.assertEqual("docs/file.txt", compose_key("docs", "file.txt"))
        with self.assertRaises(ValueError):
            compose_key("docs/", "  ")

    def test_parent_prefix(self):
        self.assertEqual("", parent_prefix("docs/"))
        self.assertEqual("docs/", parent_prefix("docs/sub/"))

    def test_object_filename(self):
        self.assertEqual("guide.pdf", object_filename("docs/guide.pdf"))
        self.assertEqual("readme.txt", object_filename("readme.txt"))
        self.assertEqual("download", object_filename(""))

    def test_bundle_filename(self):
        self.assertEqual("docs.zip", bundle_filename("docs/"))
        self.assertEqual("a_b.zip", bundle_filename("a/b/"))


if __name__ == "__main__":
    unittest.main()
