"""Tests for the toiletmap command line."""

import json

import pytest

from toiletmap.cli import main

ADD = ["add", "--name", "Park", "--address", "Lane 1", "--lat", "1.5", "--lng", "2.5"]


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    """Run every command in a directory with an fs-backed toiletmap.toml."""
    (tmp_path / "toiletmap.toml").write_text(
        '[store]\nbackend = "fs"\nroot = "store"\npublic_base_url = "https://cdn.example.test"\n\n[log]\nlevel = "WARNING"\n'
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOILETMAP_LOG_LEVEL", raising=False)
    return tmp_path


def run(capsys, *argv):
    """Run the CLI and return (exit code, stdout, stderr)."""
    with pytest.raises(SystemExit) as excinfo:
        main(list(argv))
    captured = capsys.readouterr()
    return excinfo.value.code, captured.out, captured.err


def test_add_quiet_prints_id(capsys):
    """Test that add -q prints only the new id."""
    assert run(capsys, "-q", *ADD)[:2] == (0, "1\n")
    assert run(capsys, "-q", *ADD)[1] == "2\n"


def test_add_prints_record(capsys):
    """Test that add prints the record as JSON."""
    code, out, _ = run(capsys, *ADD, "--paid", "--description", "Behind the kiosk")

    assert code == 0
    record = json.loads(out)
    assert record["id"] == "1"
    assert record["isFree"] is False
    assert record["description"] == "Behind the kiosk"


def test_add_with_image(capsys, workspace):
    """Test attaching an image file."""
    image = workspace / "photo.jpg"
    image.write_bytes(b"\xff\xd8\xff\xe0jpeg")

    code, out, _ = run(capsys, *ADD, "--image", str(image))

    assert code == 0
    images = json.loads(out)["images"]
    assert len(images) == 1
    assert images[0].startswith("https://cdn.example.test/data/images/toilet-1-")


def test_ls(capsys):
    """Test the tab-separated listing."""
    run(capsys, "-q", *ADD)

    code, out, _ = run(capsys, "ls")

    assert code == 0
    assert out == "1\tPark\tLane 1\tfree\t0.0 (0)\n"


def test_ls_json_reports_skipped(capsys, workspace):
    """Test JSON listing with an undecodable record."""
    run(capsys, "-q", *ADD)
    (workspace / "store" / "data" / "toilets" / "2.md").write_text("garbage")

    code, out, err = run(capsys, "ls", "--json")

    assert code == 0
    assert [r["id"] for r in json.loads(out)] == ["1"]
    assert "Skipped 2.md" in err


def test_vote_commands(capsys):
    """Test like, repeated like and switching to dislike."""
    run(capsys, "-q", *ADD)

    assert run(capsys, "like", "1")[1] == "1 updated: likes=1 dislikes=0 rating=5.0\n"
    assert run(capsys, "like", "1", "--previous", "like")[1].startswith("1 unchanged")
    assert run(capsys, "dislike", "1", "--previous", "like")[1] == (
        "1 updated: likes=0 dislikes=1 rating=1.0\n"
    )


def test_edit(capsys):
    """Test editing the cost and name."""
    run(capsys, "-q", *ADD)

    code, out, _ = run(capsys, "edit", "1", "--name", "Park West", "--paid")

    assert code == 0
    record = json.loads(out)
    assert record["name"] == "Park West"
    assert record["address"] == "Lane 1"
    assert record["isFree"] is False


def test_next_id_fills_gaps(capsys):
    """Test that next-id reuses a deleted id."""
    for _ in range(3):
        run(capsys, "-q", *ADD)
    run(capsys, "rm", "2", "--yes")

    assert run(capsys, "next-id")[:2] == (0, "2\n")


def test_rm_and_show_missing(capsys):
    """Test deleting a toilet and showing it afterwards."""
    run(capsys, "-q", *ADD)

    assert run(capsys, "rm", "1", "--yes")[:2] == (0, "Deleted toilet 1\n")

    code, _, err = run(capsys, "show", "1")
    assert code == 1
    assert err.startswith("Error:")


def test_rm_aborted(capsys, monkeypatch):
    """Test that declining the prompt keeps the toilet."""
    run(capsys, "-q", *ADD)
    monkeypatch.setattr("builtins.input", lambda prompt: "n")

    code, out, _ = run(capsys, "rm", "1")

    assert code == 1
    assert "Aborted" in out
    assert json.loads(run(capsys, "show", "1")[1])["id"] == "1"


def test_missing_github_settings(capsys, workspace, monkeypatch):
    """Test that the GitHub backend without credentials fails cleanly."""
    (workspace / "toiletmap.toml").write_text('[store]\nbackend = "github"\n')
    for name in ("GITHUB_TOKEN", "GITHUB_REPO_OWNER", "GITHUB_REPO_NAME"):
        monkeypatch.delenv(name, raising=False)

    code, _, err = run(capsys, "ls")

    assert code == 1
    assert "Missing GitHub configuration" in err
