"""Tests for action resolution."""

import json
import shutil

import pytest

from ghrun.actions.context import Context
from ghrun.actions.models import ActionRunsUsing
from ghrun.actions.resolver import (
    ActionResolver,
    GitSourceFetcher,
    RepoRef,
    is_local_reference,
    parse_repo_ref,
)
from ghrun.exceptions import ActionNotFoundError, ActionResolutionError
from ghrun.state import ActionState

NODE_ACTION = """
name: Hello
description: Says hello
inputs:
  who:
    description: Who to greet
    default: world
    required: true
outputs:
  greeting:
    description: The greeting
runs:
  using: node20
  pre: setup.js
  main: index.js
  post: cleanup.js
  post-if: success()
"""


class CountingFetcher:
    """Fetcher double that serves a fixed directory and counts calls."""

    def __init__(self, directory):
        self.directory = directory
        self.calls = []

    def fetch(self, reference):
        self.calls.append(reference)
        return self.directory


class TestReferences:

    def test_parse_repo_ref(self):
        assert parse_repo_ref("actions/checkout@v4") == RepoRef("actions/checkout", "", "v4")
        assert parse_repo_ref("owner/repo/sub/dir@main") == RepoRef("owner/repo", "sub/dir", "main")

    @pytest.mark.parametrize("reference", ["checkout", "actions/checkout", "@v1", "owner/@v1"])
    def test_invalid_repo_ref(self, reference):
        with pytest.raises(ActionResolutionError, match="invalid action reference"):
            parse_repo_ref(reference)

    def test_local_references(self):
        assert is_local_reference("./my-action")
        assert is_local_reference("/opt/actions/x")
        assert not is_local_reference("actions/checkout@v4")


class TestActionResolver:

    def test_local_action(self, make_action):
        directory = make_action(NODE_ACTION)
        cache = {}

        path, action = ActionResolver(cache).resolve(str(directory))

        assert path == directory
        assert action.name.value == "Hello"
        assert action.runs.using == ActionRunsUsing.NODE20.value
        assert action.runs.main == "index.js"
        assert action.runs.post_if.value == "success()"
        assert action.inputs["who"].default.value == "world"
        assert action.inputs["who"].required.value is True
        assert cache[str(directory)].path == str(directory)

    def test_quoted_defaults_stay_literal(self, make_action):
        directory = make_action(
            "runs:\n  using: node20\n  main: index.js\n"
            "inputs:\n"
            "  quoted:\n    default: '${{ env.SHA }}'\n"
            "  double:\n    default: \"${{ env.SHA }}\"\n"
            "  plain:\n    default: ${{ env.SHA }}\n"
        )
        cache = {}
        context = Context(env={"SHA": "abc"})

        _, action = ActionResolver(cache).resolve(str(directory))

        assert action.inputs["quoted"].default.eval(context) == "${{ env.SHA }}"
        assert action.inputs["double"].default.eval(context) == "${{ env.SHA }}"
        assert action.inputs["plain"].default.eval(context) == "abc"

        # the cached metadata keeps quoting through the state file
        reloaded = ActionState.from_dict(json.loads(json.dumps(cache[str(directory)].to_dict())))
        assert reloaded.metadata.inputs["quoted"].default.eval(context) == "${{ env.SHA }}"

    def test_action_yaml_fallback(self, make_action):
        directory = make_action(NODE_ACTION, file_name="action.yaml")

        _, action = ActionResolver({}).resolve(str(directory))

        assert action.description.value == "Says hello"

    def test_action_yml_preferred(self, make_action):
        directory = make_action(NODE_ACTION)
        (directory / "action.yaml").write_text("name: Other\nruns:\n  using: node20\n  main: other.js\n")

        _, action = ActionResolver({}).resolve(str(directory))

        assert action.name.value == "Hello"

    def test_metadata_not_found(self, tmp_path):
        directory = tmp_path / "empty"
        (directory / "nested").mkdir(parents=True)
        (directory / "nested" / "action.yml").write_text(NODE_ACTION)

        with pytest.raises(ActionNotFoundError):
            ActionResolver({}).resolve(str(directory))

    def test_invalid_yaml(self, make_action):
        directory = make_action("runs: [unclosed")

        with pytest.raises(ActionResolutionError, match="failed to unmarshal"):
            ActionResolver({}).resolve(str(directory))

    def test_missing_local_directory(self, tmp_path):
        with pytest.raises(ActionResolutionError, match="not found"):
            ActionResolver({}).resolve(str(tmp_path / "missing"))

    def test_remote_action_uses_fetcher(self, make_action):
        directory = make_action(NODE_ACTION)
        fetcher = CountingFetcher(directory)

        path, action = ActionResolver({}, fetcher).resolve("octo/hello@v1")

        assert fetcher.calls == ["octo/hello@v1"]
        assert path == directory
        assert action.name.value == "Hello"

    def test_second_resolve_is_cache_hit(self, make_action):
        """The same reference is fetched and parsed exactly once."""
        directory = make_action(NODE_ACTION)
        fetcher = CountingFetcher(directory)
        resolver = ActionResolver({}, fetcher)

        first = resolver.resolve("octo/hello@v1")
        # Removing the tree proves the second call neither fetches nor parses
        shutil.rmtree(directory)
        second = resolver.resolve("octo/hello@v1")

        assert fetcher.calls == ["octo/hello@v1"]
        assert second == first

    def test_invalid_remote_reference_is_not_fetched(self, make_action):
        fetcher = CountingFetcher(make_action(NODE_ACTION))

        with pytest.raises(ActionResolutionError):
            ActionResolver({}, fetcher).resolve("not-a-reference")

        assert fetcher.calls == []


class TestGitSourceFetcher:

    def test_clone_failure_is_resolution_error(self, tmp_path, monkeypatch):
        fetcher = GitSourceFetcher(server_url="file:///nonexistent", root=tmp_path)
        monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")

        if shutil.which("git") is None:
            pytest.skip("git not available")

        with pytest.raises(ActionResolutionError):
            fetcher.fetch("octo/missing@v1")
