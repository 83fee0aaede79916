from quill.workspace.context import (
    DEFAULT_SCORE,
    EXACT_NAME_SCORE,
    PATH_MATCH_SCORE,
    ContextManager,
)


def _populate(root):
    (root / "src" / "auth").mkdir(parents=True)
    (root / "src" / "auth" / "login.ts").write_text("export const login = 1;\n", encoding="utf-8")
    (root / "src" / "index.ts").write_text("import './auth/login';\n", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")


def test_score_tiers(workspace):
    manager = ContextManager(workspace)

    assert manager.score("src/auth/login.ts", ["login.ts"]) == EXACT_NAME_SCORE
    assert manager.score("src/auth/login.ts", ["auth"]) == PATH_MATCH_SCORE
    assert manager.score("src/auth/login.ts", ["billing"]) == DEFAULT_SCORE


def test_score_is_case_insensitive(workspace):
    assert ContextManager(workspace).score("src/Auth/Login.ts", ["login.ts"]) == EXACT_NAME_SCORE


def test_gather_ranks_and_attaches_full_content(workspace):
    _populate(workspace.root)

    ranked = ContextManager(workspace).gather("update Login.ts")

    assert ranked[0].path == "src/auth/login.ts"
    assert ranked[0].tier == "full"
    assert ranked[0].content == "export const login = 1;\n"
    for ctx in ranked[1:]:
        assert ctx.tier == "path"
        assert ctx.content is None
        assert ctx.relevance == DEFAULT_SCORE


def test_gather_keeps_scan_order_for_ties(workspace):
    _populate(workspace.root)
    manager = ContextManager(workspace)

    ranked = manager.gather("nothing matches")

    assert [c.path for c in ranked] == manager.scanner.scan()


def test_gather_survives_unreadable_match(workspace):
    (workspace.root / "blob.bin").write_bytes(b"\xff\xfe\x00bad")

    ranked = ContextManager(workspace).gather("blob.bin")

    assert ranked[0].relevance == EXACT_NAME_SCORE
    assert ranked[0].tier == "path"
    assert ranked[0].content is None
