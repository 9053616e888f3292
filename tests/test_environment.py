"""Tests for step environment construction."""

import logging

import pytest

from ghrun.actions.models import Action, ActionStage, Step
from ghrun.actions.values import String
from ghrun.exceptions import ExpressionError
from ghrun.exec.environment import build_step_env, file_commands_dir
from ghrun.state import RunState


def _strings(values):
    return {k: String(v) for k, v in values.items()}


ACTION = Action.from_dict({
    "name": "Greeter",
    "inputs": {
        "who": {"default": "world"},
        "greeting": {"default": "${{ env.DEFAULT_GREETING }}"},
        "empty": {"default": ""},
        "token": {"required": True},
        "old": {"deprecationMessage": "use 'who' instead"},
    },
    "runs": {"using": "node20", "main": "index.js"},
})


class TestBuildStepEnv:

    @pytest.fixture
    def run_state(self):
        state = RunState()
        state.add_workflow_and_job("build", {"A": "1"}, {"A": "2", "B": "1"}, [])
        return state

    def _build(self, run_state, step_state, stage=ActionStage.MAIN, base_env=None, action_path=None):
        context = run_state.build_context({})
        return build_step_env(base_env or {}, run_state.env, step_state, stage, context, action_path)

    def test_precedence(self, ghrun_home, run_state):
        """Job env beats workflow env, step env beats both, with: becomes INPUT_*."""
        step_state = run_state.add_step(Step(
            id="greet",
            uses="./greeter",
            with_inputs=_strings({"C": "x"}),
            env=_strings({"B": "2"}),
        ))

        env = self._build(run_state, step_state)

        assert env["A"] == "2"
        assert env["B"] == "2"
        assert env["INPUT_C"] == "x"

    def test_base_env_is_lowest(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(id="s", run="true"))

        env = self._build(run_state, step_state, base_env={"A": "0", "HOME": "/home/me"})

        assert env["A"] == "2"
        assert env["HOME"] == "/home/me"

    def test_saved_state_exposed(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(id="s", uses="./greeter", env=_strings({"STATE_pid": "step"})))
        step_state.state["pid"] = "42"
        step_state.state["other"] = "x"

        env = self._build(run_state, step_state, stage=ActionStage.POST)

        assert env["STATE_other"] == "x"
        # step env is applied after saved state
        assert env["STATE_pid"] == "step"

    def test_input_defaults(self, ghrun_home, run_state, caplog):
        run_state.env["DEFAULT_GREETING"] = "Hi"
        step_state = run_state.add_step(Step(
            id="greet",
            uses="./greeter",
            with_inputs=_strings({"Who": "octocat", "old": "legacy"}),
        ))
        step_state.action = ACTION

        with caplog.at_level(logging.WARNING, logger="ghrun.exec.environment"):
            env = self._build(run_state, step_state, action_path=ghrun_home / "greeter")

        assert env["INPUT_WHO"] == "octocat"
        assert env["INPUT_GREETING"] == "Hi"
        assert env["INPUT_OLD"] == "legacy"
        assert "INPUT_EMPTY" not in env
        assert "INPUT_TOKEN" not in env
        assert env["GITHUB_ACTION_PATH"] == str(ghrun_home / "greeter")
        assert "Input required and not supplied: token" in caplog.text
        assert "use 'who' instead" in caplog.text

    def test_with_values_are_evaluated(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(
            id="greet",
            uses="./greeter",
            with_inputs=_strings({"who": "${{ env.A }}-${{ env.B }}"}),
            env=_strings({"DERIVED": "${{ env.A }}"}),
        ))

        env = self._build(run_state, step_state)

        assert env["INPUT_WHO"] == "2-1"
        assert env["DERIVED"] == "2"

    def test_run_steps_get_no_inputs(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(id="s", run="true", with_inputs=_strings({"x": "1"})))

        env = self._build(run_state, step_state)

        assert "INPUT_X" not in env

    def test_invalid_expression(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(id="s", run="true", env=_strings({"X": "${{ bogus.value }}"})))

        with pytest.raises(ExpressionError):
            self._build(run_state, step_state)

    def test_fresh_marker_files(self, ghrun_home, run_state):
        step_state = run_state.add_step(Step(id="s", run="true"))
        directory = file_commands_dir("s", ActionStage.MAIN)
        directory.mkdir(parents=True)
        (directory / "env").write_text("STALE=1\n")

        env = self._build(run_state, step_state)

        assert directory == ghrun_home / "steps" / "s" / "main" / "file_commands"
        assert env["GITHUB_ENV"] == str(directory / "env")
        assert env["GITHUB_PATH"] == str(directory / "path")
        assert env["GITHUB_STEP_SUMMARY"] == str(directory / "step_summary")
        assert env["GITHUB_OUTPUT"] == str(directory / "output")
        for name in ("env", "path", "step_summary", "output"):
            assert (directory / name).read_text() == ""
