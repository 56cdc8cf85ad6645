"""Tests for the click command-line interface."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from click.testing import CliRunner

from argowave.cli import cli
from argowave.errors import ArgoCDAPIError
from tests.conftest import FakeArgoCD, make_workload


class _CliClient:
    """Async-context wrapper exposing a FakeArgoCD the way ArgoCDClient is used."""

    def __init__(self, fake: FakeArgoCD) -> None:
        self._fake = fake
        self.logged_in = False

    async def __aenter__(self) -> _CliClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def login(self) -> None:
        self.logged_in = True

    def __getattr__(self, name: str):
        return getattr(self._fake, name)


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch, fake_argocd: FakeArgoCD) -> CliRunner:
    monkeypatch.setattr("argowave.cli.main.setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("argowave.cli.main.ArgoCDClient", lambda config: _CliClient(fake_argocd))
    monkeypatch.setenv("ARGOWAVE_POLL_INTERVAL", "0.1")
    monkeypatch.delenv("ARGOCD_SERVER", raising=False)
    return CliRunner()


class TestCli:
    def test_server_is_required(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["app", "get", "game"])

        assert result.exit_code == 2
        assert "ARGOCD_SERVER" in result.output

    def test_app_get(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--server", "argocd.example", "app", "get", "game"])

        assert result.exit_code == 0, result.output
        assert "game" in result.output
        assert "Sync:" in result.output

    def test_app_down_scales_in_wave_order(self, runner: CliRunner, fake_argocd: FakeArgoCD) -> None:
        fake_argocd.add_workload(make_workload("db", wave=0))
        fake_argocd.add_workload(make_workload("gate", wave=1))

        result = runner.invoke(cli, ["--server", "argocd.example", "app", "down", "game", "--project", "games"])

        assert result.exit_code == 0, result.output
        assert "scaled down 2 workloads in 2 waves" in result.output
        assert fake_argocd.index("patch", "gate") < fake_argocd.index("patch", "db")

    def test_app_down_no_grace_force_deletes(
        self, runner: CliRunner, fake_argocd: FakeArgoCD, fake_k8s: SimpleNamespace
    ) -> None:
        fake_argocd.add_workload(make_workload("room", wave=0, kind="GameStatefulSet"), pods=1, drain_after=None)

        result = runner.invoke(
            cli,
            ["--server", "argocd.example", "app", "down", "game", "--no-grace", "--grace-period", "3"],
        )

        assert result.exit_code == 0, result.output
        assert fake_argocd.deleted_pods == [("games", "room-0", 3)]

    def test_failure_exits_non_zero(self, runner: CliRunner, fake_argocd: FakeArgoCD) -> None:
        fake_argocd.app_error = ArgoCDAPIError("permission denied", status_code=403, code=7)

        result = runner.invoke(cli, ["--server", "argocd.example", "app", "down", "game"])

        assert result.exit_code == 1
