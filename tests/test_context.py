from pathlib import Path

from patchbot.context import PriorArtifact, RequestContext, ReviewComment, ThreadComment


def test_render_orders_sections(tree: Path):
    artifact = PriorArtifact(
        number=7,
        title="Greeting is wrong",
        body="It says hello instead of hi.",
        is_pull_request=True,
        comments=[ThreadComment(author="octo", body="agreed")],
        diff="-a\n+b",
        review_comment=ReviewComment(path="src/app.py", line=2, diff_hunk="@@ -1 +1 @@"),
    )
    context = RequestContext("@patchbot fix\n/add src/app.py", tree, artifact=artifact)
    context.plan = "- change main"
    context.append_follow_up("try again")

    text = context.render()
    order = [
        "Pull request #7: Greeting is wrong",
        "Description:\nIt says hello instead of hi.",
        "Conversation:\n@octo: agreed",
        "Request: @patchbot fix\n/add src/app.py",
        "Plan:\n- change main",
        "Available files and contents:\n--- src/app.py ---\ndef main():",
        "Diff:\n```diff\n-a\n+b\n```",
        "Review comment:",
        "Additional context:\ntry again",
    ]
    positions = [text.index(part) for part in order]
    assert positions == sorted(positions)
    assert str(context) == text


def test_title_equal_to_request_is_not_repeated(tree: Path):
    artifact = PriorArtifact(number=1, title="@patchbot add docs", body="")
    text = RequestContext("@patchbot add docs", tree, artifact=artifact).render()
    assert "Issue #1" not in text


def test_files_are_reread_on_every_render(tree: Path):
    context = RequestContext("/add src/util.py", tree)
    assert "X = 1" in context.file_copy()
    (tree / "src" / "util.py").write_text("X = 2\n")
    assert "X = 2" in context.file_copy()


def test_path_list_is_cached(tree: Path):
    context = RequestContext("/add src/", tree)
    assert context.file_paths == ["src/app.py", "src/util.py"]
    (tree / "src" / "extra.py").write_text("")
    assert context.file_paths == ["src/app.py", "src/util.py"]


def test_long_files_are_truncated(tmp_path: Path):
    (tmp_path / "big.txt").write_text("\n".join(str(i) for i in range(10)))
    context = RequestContext("/add big.txt", tmp_path, max_file_lines=3)
    content = context.read_files()["big.txt"]
    assert content.startswith("0\n1\n2")
    assert content.endswith("... truncated (10 lines total, only the first 3 are shown)")


def test_unreadable_file_gets_marker(tmp_path: Path):
    (tmp_path / "bin.dat").write_bytes(b"\xff\xfe\x00\x81")
    content = RequestContext("/add bin.dat", tmp_path).read_files()["bin.dat"]
    assert content.startswith("[Error reading file:")


def test_follow_ups_accumulate(tmp_path: Path):
    context = RequestContext("x", tmp_path)
    context.append_follow_up("one")
    context.append_follow_up("two")
    assert context.follow_ups == ["one", "two"]
    assert context.render().index("one") < context.render().index("two")


def test_review_comment_json():
    rc = ReviewComment(path="a.py", line=3, diff_hunk="@@", position=1, commit_id="abc")
    assert '"path": "a.py"' in rc.to_context()
    assert '"commit_id": "abc"' in rc.to_context()


def test_file_contents_are_verbatim(tmp_path: Path):
    (tmp_path / "win.py").write_bytes(b"a = 1\r\nb = 2\r\n")
    (tmp_path / "odd.txt").write_text("x y\x0cz\n", encoding="utf-8", newline="")
    context = RequestContext("/add win.py odd.txt", tmp_path)

    contents = context.read_files()
    assert contents["win.py"] == "a = 1\r\nb = 2\r\n"
    assert contents["odd.txt"] == "x y\x0cz\n"
    assert "--- win.py ---\na = 1\r\nb = 2\r\n" in context.render()


def test_truncation_keeps_line_endings(tmp_path: Path):
    (tmp_path / "win.py").write_bytes(b"1\r\n2\r\n3\r\n")
    content = RequestContext("/add win.py", tmp_path, max_file_lines=2).read_files()["win.py"]
    assert content.startswith("1\r\n2\r\n\n... truncated (3 lines total")
