"""
Unit tests for the GitHub Actions compiler.
"""

import yaml

from workflow_dag.compilers import GitHubActionsCompiler, compile_to_github_actions
from workflow_dag.compilers.github_actions import secret_ref
from workflow_dag.config import CompilerSettings
from workflow_dag.core import builder
from workflow_dag.core.models import Defaults, PullRequestTrigger, PushTrigger, ScheduleTrigger


class TestJobs:
    """Tests for task-to-job mapping."""

    def test_linear_chain(self, linear_graph, compiler_settings):
        workflow = compile_to_github_actions(linear_graph, compiler_settings)

        assert list(workflow) == ["name", "on", "jobs"]
        assert workflow["name"] == "linear"
        assert workflow["jobs"]["checkout"] == {
            "runs-on": "ubuntu-latest",
            "steps": [{"name": "checkout", "uses": "actions/checkout@v4"}],
        }
        assert workflow["jobs"]["build"]["needs"] == ["checkout"]
        assert workflow["jobs"]["test"]["needs"] == ["build"]
        assert workflow["jobs"]["test"]["steps"] == [{"name": "test", "run": "pnpm test"}]

    def test_structural_nodes_are_not_jobs(self, diamond_graph, compiler_settings):
        """Test fanout and fanin are traced through, not emitted."""
        jobs = compile_to_github_actions(diamond_graph, compiler_settings)["jobs"]

        assert list(jobs) == ["checkout", "lint", "unit", "package"]
        assert jobs["lint"]["needs"] == ["checkout"]
        assert jobs["unit"]["needs"] == ["checkout"]
        assert jobs["package"]["needs"] == ["lint", "unit"]

    def test_gate_becomes_if(self, gated_deploy_graph, compiler_settings):
        """Test a gate turns into the downstream job's condition."""
        jobs = compile_to_github_actions(gated_deploy_graph, compiler_settings)["jobs"]

        assert "only_main" not in jobs
        assert jobs["deploy"]["needs"] == ["build"]
        assert jobs["deploy"]["if"] == "github.ref == 'refs/heads/main'"
        assert "if" not in jobs["build"]

    def test_env_and_secrets(self, gated_deploy_graph, compiler_settings):
        step = compile_to_github_actions(gated_deploy_graph, compiler_settings)["jobs"]["deploy"]["steps"][0]

        assert step["env"] == {
            "STAGE": "prod",
            "DEPLOY_TOKEN": "${{ secrets.DEPLOY_TOKEN }}",
        }

    def test_multiple_gates_are_anded(self, compiler_settings):
        graph = builder.workflow(
            "two_gates",
            "1.0.0",
            [PushTrigger()],
            builder.task("build", run="make"),
            builder.gate("on_main", "github.ref == 'refs/heads/main'"),
            builder.gate("is_push", "github.event_name == 'push'"),
            builder.task("deploy", run="make deploy"),
            builder.edge("build", "on_main"),
            builder.edge("build", "is_push"),
            builder.edge("on_main", "deploy"),
            builder.edge("is_push", "deploy"),
        )

        job = compile_to_github_actions(graph, compiler_settings)["jobs"]["deploy"]

        assert job["if"] == "(github.ref == 'refs/heads/main') && (github.event_name == 'push')"
        assert job["needs"] == ["build"]

    def test_gate_traced_through_fanout(self, compiler_settings):
        """Test a gate above a fanout guards every branch."""
        graph = builder.workflow(
            "gated_fanout",
            "1.0.0",
            [PushTrigger()],
            builder.task("build", run="make"),
            builder.gate("on_main", "github.ref == 'refs/heads/main'"),
            builder.fanout("split"),
            builder.task("east", run="deploy east"),
            builder.task("west", run="deploy west"),
            builder.edge("build", "on_main"),
            builder.edge("on_main", "split"),
            builder.edge("split", "east"),
            builder.edge("split", "west"),
        )

        jobs = compile_to_github_actions(graph, compiler_settings)["jobs"]

        for name in ("east", "west"):
            assert jobs[name]["needs"] == ["build"]
            assert jobs[name]["if"] == "github.ref == 'refs/heads/main'"

    def test_defaults(self, compiler_settings):
        """Test the graph timeout and env are carried over."""
        graph = builder.workflow(
            "defaults",
            "1.0.0",
            [PushTrigger()],
            builder.task("build", run="make"),
            defaults=Defaults(timeout=90000, env={"CI": "true"}),
        )

        workflow = compile_to_github_actions(graph, compiler_settings)

        assert list(workflow) == ["name", "on", "env", "jobs"]
        assert workflow["env"] == {"CI": "true"}
        assert workflow["jobs"]["build"]["timeout-minutes"] == 2

    def test_runs_on_setting(self, linear_graph):
        settings = CompilerSettings(runs_on="self-hosted")

        jobs = GitHubActionsCompiler(settings).compile(linear_graph)["jobs"]

        assert {job["runs-on"] for job in jobs.values()} == {"self-hosted"}


class TestTriggers:
    """Tests for trigger mapping."""

    def test_all_trigger_kinds(self, compiler_settings):
        graph = builder.workflow(
            "triggers",
            "1.0.0",
            [
                PushTrigger(branches=["main"], paths=["src/**"]),
                PullRequestTrigger(branches=["main"]),
                ScheduleTrigger(cron="0 3 * * 1"),
                ScheduleTrigger(cron="0 4 * * 5"),
            ],
            builder.task("build", run="make"),
        )

        on = compile_to_github_actions(graph, compiler_settings)["on"]

        assert on == {
            "push": {"branches": ["main"], "paths": ["src/**"]},
            "pull_request": {"branches": ["main"]},
            "schedule": [{"cron": "0 3 * * 1"}, {"cron": "0 4 * * 5"}],
        }

    def test_unfiltered_pull_request(self, diamond_graph, compiler_settings):
        assert compile_to_github_actions(diamond_graph, compiler_settings)["on"] == {"pull_request": {}}


class TestPreview:
    """Tests for YAML output."""

    def test_preview_is_valid_yaml(self, gated_deploy_graph, compiler_settings):
        compiler = GitHubActionsCompiler(compiler_settings)

        text = compiler.preview(gated_deploy_graph)

        assert text.startswith("name: build_and_release\n")
        assert yaml.safe_load(text) == compiler.compile(gated_deploy_graph)

    def test_secret_ref(self):
        assert secret_ref("NPM_TOKEN") == "${{ secrets.NPM_TOKEN }}"
