"""Tests for core/state.py."""

from __future__ import annotations

import json
from pathlib import Path

from gitgrip.core.result import Err, Ok
from gitgrip.core.state import CheckDetails, LinkedPR, StateFile


def _link(repo: str, number: int, **flags: bool) -> LinkedPR:
    return LinkedPR(
        repo_name=repo,
        owner="acme",
        repo=repo,
        number=number,
        url=f"https://github.com/acme/{repo}/pull/{number}",
        **flags,
    )


class TestStateFile:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        result = StateFile.load(tmp_path / "state.json")
        assert result == Ok(StateFile())

    def test_corrupt_file_is_error(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        result = StateFile.load(path)
        assert isinstance(result, Err)
        assert result.error.kind == "parse"
        assert result.error.hint is not None

    def test_save_uses_camel_case(self, tmp_path: Path) -> None:
        state = StateFile()
        state.current_manifest_pr = 7
        state.set_pr_for_branch("feat", 7)
        state.add_linked_pr(7, _link("api", 12, approved=True))
        path = tmp_path / ".gitgrip" / "state.json"
        assert state.save(path) == Ok(None)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["currentManifestPr"] == 7
        assert data["branchToPr"] == {"feat": 7}
        link = data["prLinks"]["7"][0]
        assert link["repoName"] == "api"
        assert link["checksPass"] is False

        loaded = StateFile.load(path)
        assert isinstance(loaded, Ok)
        assert loaded.value.get_linked_prs(7) == [_link("api", 12, approved=True)]

    def test_check_details_survive_reload(self) -> None:
        state = StateFile()
        link = _link("web", 3)
        link.check_details = CheckDetails(state="failure", passed=2, failed=1)
        state.add_linked_pr(1, link)
        reparsed = StateFile.parse(json.dumps(state.to_dict()))
        assert isinstance(reparsed, Ok)
        links = reparsed.value.get_linked_prs(1)
        assert links is not None
        assert links[0].check_details == CheckDetails(state="failure", passed=2, failed=1)

    def test_add_replaces_same_repo(self) -> None:
        state = StateFile()
        state.add_linked_pr(1, _link("api", 10))
        state.add_linked_pr(1, _link("api", 11))
        links = state.get_linked_prs(1)
        assert links is not None
        assert [link.number for link in links] == [11]

    def test_remove_branch_drops_links(self) -> None:
        state = StateFile(current_manifest_pr=5)
        state.set_pr_for_branch("feat", 5)
        state.add_linked_pr(5, _link("api", 1))
        state.remove_branch("feat")
        assert state.get_pr_for_branch("feat") is None
        assert state.get_linked_prs(5) is None
        assert state.current_manifest_pr is None

    def test_update_linked_pr(self) -> None:
        state = StateFile()
        state.add_linked_pr(1, _link("api", 10))

        def merged(link: LinkedPR) -> None:
            link.state = "merged"

        assert state.update_linked_pr(1, "api", merged)
        assert not state.update_linked_pr(1, "web", merged)
        links = state.get_linked_prs(1)
        assert links is not None
        assert links[0].state == "merged"

    def test_all_ready(self) -> None:
        state = StateFile()
        assert not state.all_linked_prs_ready(1)
        state.add_linked_pr(1, _link("api", 1, approved=True, checks_pass=True, mergeable=True))
        assert state.all_linked_prs_ready(1)
        state.add_linked_pr(1, _link("web", 2, approved=True, checks_pass=False, mergeable=True))
        assert not state.all_linked_prs_ready(1)

    def test_bad_entries_are_skipped(self) -> None:
        text = json.dumps({"branchToPr": {"a": 1, "b": "x", "c": True}, "prLinks": {"1": [{"owner": "o"}]}})
        result = StateFile.parse(text)
        assert isinstance(result, Ok)
        assert result.value.branch_to_pr == {"a": 1}
        assert result.value.pr_links == {"1": []}
