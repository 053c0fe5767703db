"""Unit tests for the stackdeck deploy CLI command.

Tests cover:
- Deploy command group and subcommand help
- plan output, including plan errors
- run with a mocked orchestrator, dry run mode and exit codes
- status and destroy against persisted rollout state
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from stackdeck.cli.commands.deploy import (
    EXIT_CANCELLED,
    EXIT_CONFIG,
    EXIT_DEPLOYMENT,
    EXIT_UNSUCCESSFUL,
    deploy,
)
from stackdeck.cli.main import main
from stackdeck.deploy.state import (
    get_rollout_result,
    get_state_path,
    record_rollout_result,
)
from stackdeck.lib.errors import DeploymentError
from stackdeck.models.rollout import (
    FailureReason,
    IngressBinding,
    RolloutResult,
    RolloutStatus,
    TierState,
    TierStatus,
)
from stackdeck.models.stack import IngressRule

STACK_YAML = """
name: shop
tiers:
  - name: frontend
    depends_on: [backend]
    manifests:
      - apiVersion: apps/v1
        kind: Deployment
        metadata:
          name: frontend
  - name: database
  - name: backend
    depends_on: [database]
ingress:
  name: shop
  rules:
    - path: /
      tier: frontend
"""

FOR_STACK = "stackdeck.cli.commands.deploy.Orchestrator.for_stack"


def _result(
    status: RolloutStatus = RolloutStatus.SUCCEEDED,
    address: str | None = "shop.example.com",
) -> RolloutResult:
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    tier_status = (
        TierStatus.READY if status == RolloutStatus.SUCCEEDED else TierStatus.FAILED
    )
    error = (
        None
        if status == RolloutStatus.SUCCEEDED
        else FailureReason(kind="ProbeTimeout", message="not ready", tier="backend")
    )
    return RolloutResult(
        rollout_id="01J0000000000000000000000A",
        stack="shop",
        plan=["database", "backend", "frontend"],
        status=status,
        tiers=[
            TierState(name="database", status=TierStatus.READY),
            TierState(name="backend", status=tier_status, error=error),
            TierState(name="frontend", status=tier_status),
        ],
        ingress=IngressBinding(
            name="shop", rules=[IngressRule(tier="frontend")], address=address
        ),
        error=error,
        started_at=now,
        finished_at=now,
    )


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def stack_file(tmp_path: Path) -> Path:
    """Create a temporary stack.yaml."""
    path = tmp_path / "stack.yaml"
    path.write_text(STACK_YAML)
    return path


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep CLI invocations from reconfiguring logging."""
    with patch("stackdeck.cli.commands.deploy.setup_logging") as mock_setup:
        yield mock_setup


def _mock_orchestrator(result: RolloutResult) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.deploy_stack = AsyncMock(return_value=result)
    orchestrator.teardown_ingress = AsyncMock(return_value=result.ingress)
    orchestrator.status.return_value = result
    return orchestrator


@pytest.mark.unit
class TestDeployCommandGroup:
    """Tests for the deploy command group."""

    def test_deploy_group_shows_help(self, runner: CliRunner) -> None:
        """Invoking the group alone prints help."""
        result = runner.invoke(deploy, [])

        assert result.exit_code == 0
        for name in ("plan", "run", "status", "destroy"):
            assert name in result.output

    def test_main_registers_deploy(self, runner: CliRunner) -> None:
        """The top-level group exposes deploy and a version option."""
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "stackdeck" in result.output

    def test_run_help(self, runner: CliRunner) -> None:
        """run documents its flags."""
        result = runner.invoke(deploy, ["run", "--help"])

        assert result.exit_code == 0
        assert "--dry-run" in result.output
        assert "--fresh" in result.output

    def test_missing_stack_file(self, runner: CliRunner, tmp_path: Path) -> None:
        """A missing stack file is a usage error."""
        result = runner.invoke(deploy, ["plan", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 2
        assert "does not exist" in result.output


@pytest.mark.unit
class TestPlanCommand:
    """Tests for deploy plan."""

    def test_plan_lists_tiers_in_order(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """Tiers are printed dependencies first."""
        result = runner.invoke(deploy, ["plan", str(stack_file)])

        assert result.exit_code == 0
        assert "1. database\n" in result.output
        assert "2. backend  (after database)" in result.output
        assert "-> ingress shop" in result.output

    def test_plan_quiet(self, runner: CliRunner, stack_file: Path) -> None:
        """Quiet mode prints only the ordered names."""
        result = runner.invoke(deploy, ["plan", str(stack_file), "--quiet"])

        assert result.exit_code == 0
        assert result.output.strip() == "database backend frontend"

    def test_plan_cycle_exits_with_config_code(
        self, runner: CliRunner, tmp_path: Path
    ) -> None:
        """Dependency cycles exit with the configuration exit code."""
        path = tmp_path / "stack.yaml"
        path.write_text(
            "name: loop\ntiers:\n"
            "  - name: a\n    depends_on: [b]\n"
            "  - name: b\n    depends_on: [a]\n"
        )

        result = runner.invoke(deploy, ["plan", str(path)])

        assert result.exit_code == EXIT_CONFIG
        assert "Invalid rollout plan" in result.output

    def test_invalid_config_exits_with_config_code(
        self, runner: CliRunner, tmp_path: Path
    ) -> None:
        """Schema errors exit with the configuration exit code."""
        path = tmp_path / "stack.yaml"
        path.write_text("name: shop\ntiers: []\n")

        result = runner.invoke(deploy, ["plan", str(path)])

        assert result.exit_code == EXIT_CONFIG
        assert "Configuration error" in result.output


@pytest.mark.unit
class TestRunCommand:
    """Tests for deploy run."""

    def test_dry_run_makes_no_calls(self, runner: CliRunner, stack_file: Path) -> None:
        """Dry run prints the plan and never builds an orchestrator."""
        with patch(FOR_STACK) as mock_for_stack:
            result = runner.invoke(deploy, ["run", str(stack_file), "--dry-run"])

        assert result.exit_code == 0
        assert "[DRY RUN]" in result.output
        assert "frontend (1 manifest(s))" in result.output
        mock_for_stack.assert_not_called()

    def test_successful_run_records_state(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """A successful rollout exits 0 and persists the result."""
        orchestrator = _mock_orchestrator(_result())

        with patch(FOR_STACK, return_value=orchestrator) as mock_for_stack:
            result = runner.invoke(deploy, ["run", str(stack_file)])

        assert result.exit_code == 0
        assert "Rollout Successful!" in result.output
        assert "shop -> shop.example.com" in result.output
        assert mock_for_stack.call_args.kwargs["previous"] is None
        stored = get_rollout_result(get_state_path(stack_file.resolve()), "shop")
        assert stored is not None
        assert stored.status == RolloutStatus.SUCCEEDED

    def test_previous_result_is_passed_unless_fresh(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """The persisted result seeds resume; --fresh ignores it."""
        state_path = get_state_path(stack_file.resolve())
        record_rollout_result(state_path, _result())
        orchestrator = _mock_orchestrator(_result())

        with patch(FOR_STACK, return_value=orchestrator) as mock_for_stack:
            runner.invoke(deploy, ["run", str(stack_file)])
            resumed = mock_for_stack.call_args.kwargs["previous"]
            runner.invoke(deploy, ["run", str(stack_file), "--fresh"])
            fresh = mock_for_stack.call_args.kwargs["previous"]

        assert resumed is not None
        assert resumed.rollout_id == "01J0000000000000000000000A"
        assert fresh is None

    def test_quiet_prints_address(self, runner: CliRunner, stack_file: Path) -> None:
        """Quiet mode prints only the ingress address."""
        orchestrator = _mock_orchestrator(_result())

        with patch(FOR_STACK, return_value=orchestrator):
            result = runner.invoke(deploy, ["run", str(stack_file), "-q"])

        assert result.exit_code == 0
        assert result.output.strip() == "shop.example.com"

    @pytest.mark.parametrize(
        ("status", "exit_code", "headline"),
        [
            (RolloutStatus.FAILED, EXIT_UNSUCCESSFUL, "Rollout Failed"),
            (RolloutStatus.INGRESS_FAILED, EXIT_UNSUCCESSFUL, "Ingress Failed"),
            (RolloutStatus.CANCELLED, EXIT_CANCELLED, "Rollout Cancelled"),
        ],
    )
    def test_unsuccessful_exit_codes(
        self,
        runner: CliRunner,
        stack_file: Path,
        status: RolloutStatus,
        exit_code: int,
        headline: str,
    ) -> None:
        """Unsuccessful outcomes map to their exit codes."""
        orchestrator = _mock_orchestrator(_result(status, address=None))

        with patch(FOR_STACK, return_value=orchestrator):
            result = runner.invoke(deploy, ["run", str(stack_file)])

        assert result.exit_code == exit_code
        assert headline in result.output
        assert "ProbeTimeout: not ready" in result.output

    def test_deployment_error_exit_code(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """DeploymentError exits with the deployment exit code."""
        with patch(
            FOR_STACK, side_effect=DeploymentError("deploy", "cluster unreachable")
        ):
            result = runner.invoke(deploy, ["run", str(stack_file)])

        assert result.exit_code == EXIT_DEPLOYMENT
        assert "cluster unreachable" in result.output

    def test_unexpected_error_exit_code(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """Unexpected exceptions exit with the deployment exit code."""
        orchestrator = MagicMock()
        orchestrator.deploy_stack = AsyncMock(side_effect=RuntimeError("boom"))

        with patch(FOR_STACK, return_value=orchestrator):
            result = runner.invoke(deploy, ["run", str(stack_file)])

        assert result.exit_code == EXIT_DEPLOYMENT
        assert "boom" in result.output


@pytest.mark.unit
class TestStatusCommand:
    """Tests for deploy status."""

    def test_no_record(self, runner: CliRunner, stack_file: Path) -> None:
        """Without a persisted result status is a configuration error."""
        result = runner.invoke(deploy, ["status", str(stack_file)])

        assert result.exit_code == EXIT_CONFIG
        assert "No rollout record found" in result.output

    def test_json_output(self, runner: CliRunner, stack_file: Path) -> None:
        """--json prints the stored result."""
        record_rollout_result(get_state_path(stack_file.resolve()), _result())

        result = runner.invoke(deploy, ["status", str(stack_file), "--json"])

        assert result.exit_code == 0
        parsed = RolloutResult.model_validate_json(result.output)
        assert parsed.rollout_id == "01J0000000000000000000000A"

    def test_quiet_prints_status(self, runner: CliRunner, stack_file: Path) -> None:
        """Quiet mode prints only the status value."""
        record_rollout_result(
            get_state_path(stack_file.resolve()), _result(RolloutStatus.FAILED)
        )

        result = runner.invoke(deploy, ["status", str(stack_file), "-q"])

        assert result.exit_code == 0
        assert result.output.strip() == RolloutStatus.FAILED.value


@pytest.mark.unit
class TestDestroyCommand:
    """Tests for deploy destroy."""

    def test_without_binding(self, runner: CliRunner, stack_file: Path) -> None:
        """Nothing recorded means nothing to destroy."""
        result = runner.invoke(deploy, ["destroy", str(stack_file), "--force"])

        assert result.exit_code == EXIT_CONFIG
        assert "No ingress binding recorded" in result.output

    def test_force_tears_down_and_records(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """--force skips confirmation and persists the new snapshot."""
        state_path = get_state_path(stack_file.resolve())
        record_rollout_result(state_path, _result())
        torn_down = _result(address=None)
        orchestrator = _mock_orchestrator(torn_down)

        with patch(FOR_STACK, return_value=orchestrator):
            result = runner.invoke(deploy, ["destroy", str(stack_file), "--force"])

        assert result.exit_code == 0
        assert "Ingress Destroyed" in result.output
        orchestrator.teardown_ingress.assert_awaited_once()
        stored = get_rollout_result(state_path, "shop")
        assert stored is not None
        assert stored.ingress is not None
        assert stored.ingress.address is None

    def test_abort_on_declined_confirmation(
        self, runner: CliRunner, stack_file: Path
    ) -> None:
        """Declining the prompt leaves everything in place."""
        record_rollout_result(get_state_path(stack_file.resolve()), _result())

        with patch(FOR_STACK) as mock_for_stack:
            result = runner.invoke(deploy, ["destroy", str(stack_file)], input="n\n")

        assert result.exit_code == 0
        assert "Destroy aborted." in result.output
        mock_for_stack.assert_not_called()
