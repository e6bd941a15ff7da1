import os

import pytest

from callwatch.core.id_generator import is_valid_id
from callwatch.host import HostInfo, PROCESS_ID
from callwatch.scm import ScmInfo, detect_scm


def test_host_params():
    params = HostInfo().as_params()

    assert set(params) == {"ip", "mac", "hostname", "pid", "os_name", "os_version", "arch"}
    assert params["pid"] == os.getpid()
    assert len(params["mac"].split(":")) == 6


def test_process_id_is_stable_hex():
    assert is_valid_id(PROCESS_ID)


def test_scm_params():
    info = ScmInfo(revision="abc", time="2024-01-01T00:00:00Z", scm_type="git", url="https://example.com/r.git")

    assert info.as_params() == {
        "scm_revision": "abc",
        "scm_time": "2024-01-01T00:00:00Z",
        "scm_type": "git",
        "scm_url": "https://example.com/r.git",
    }


def test_no_repository(tmp_path):
    assert detect_scm(tmp_path) is None


def test_git_repository(tmp_path):
    git = pytest.importorskip("git")
    repo = git.Repo.init(tmp_path)
    assert detect_scm(tmp_path) is None

    author = git.Actor("Dev", "dev@example.com")
    commit = repo.index.commit("initial", author=author, committer=author)
    repo.create_remote("origin", "https://example.com/shop.git")

    subdir = tmp_path / "pkg"
    subdir.mkdir()

    info = detect_scm(subdir)
    assert info.revision == commit.hexsha
    assert info.scm_type == "git"
    assert info.url == "https://example.com/shop.git"
    assert info.time.endswith("Z")
