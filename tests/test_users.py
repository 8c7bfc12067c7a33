"""Tests for src.ids.users — local account registry."""

from __future__ import annotations

from src.ids.users import UserRegistry


class TestUserRegistry:
    def test_from_passwd(self, tmp_path):
        passwd = tmp_path / "passwd"
        passwd.write_text(
            "root:x:0:0:root:/root:/bin/bash\n"
            "# comment\n"
            "\n"
            "alice:x:1000:1000::/home/alice:/bin/bash\n",
            encoding="utf-8",
        )
        registry = UserRegistry.from_passwd(passwd)
        assert len(registry) == 2
        assert registry.exists("root")
        assert registry.exists("alice")
        assert not registry.exists("admin")

    def test_unreadable_file_gives_empty_registry(self, tmp_path, caplog):
        with caplog.at_level("WARNING"):
            registry = UserRegistry.from_passwd(tmp_path / "missing")
        assert len(registry) == 0
        assert not registry.exists("root")
        assert "Cannot read user database" in caplog.text

    def test_snapshot_is_not_refreshed(self, tmp_path):
        passwd = tmp_path / "passwd"
        passwd.write_text("root:x:0:0::/root:/bin/sh\n", encoding="utf-8")
        registry = UserRegistry.from_passwd(passwd)
        passwd.write_text("root:x:0:0::/root:/bin/sh\nnewbie:x:1001:1001::/:/bin/sh\n",
                          encoding="utf-8")
        assert "newbie" not in registry

    def test_empty_names_dropped(self):
        assert len(UserRegistry(["", "bob"])) == 1
