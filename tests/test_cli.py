"""
Tests for the command-line entry point.
"""

import pytest
from typer.testing import CliRunner

from fulfillment_core.cli import main as cli
from fulfillment_core.errors import WorkerAlreadyOnline

runner = CliRunner()


@pytest.fixture
def recorded(monkeypatch):
    """Replace every service runner with one that records its options."""
    calls = []
    for name, mode in list(cli.SERVICE_MODES.items()):
        monkeypatch.setitem(
            cli.SERVICE_MODES,
            name,
            cli.ServiceMode(lambda options, name=name: calls.append((name, options)), mode.validate),
        )
    return calls


class TestRunValidation:
    def test_unknown_mode(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "pizza-oven"])
        assert result.exit_code == 1
        assert recorded == []

    def test_kitchen_worker_needs_a_name(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "kitchen-worker"])
        assert result.exit_code == 1
        assert recorded == []

    def test_kitchen_worker_unknown_order_type(self, recorded):
        result = runner.invoke(
            cli.app, ["run", "--mode", "kitchen-worker", "--worker-name", "chef_mario", "--order-types", "dine_in,pickup"]
        )
        assert result.exit_code == 1

    def test_port_out_of_range(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "order-service", "--port", "70000"])
        assert result.exit_code == 1

    def test_prefetch_must_be_positive(self, recorded):
        result = runner.invoke(
            cli.app, ["run", "--mode", "kitchen-worker", "--worker-name", "chef_mario", "--prefetch", "0"]
        )
        assert result.exit_code == 1


class TestRunDispatch:
    def test_kitchen_worker_options(self, recorded):
        result = runner.invoke(
            cli.app,
            [
                "run",
                "--mode", "kitchen-worker",
                "--worker-name", "chef_mario",
                "--order-types", "dine_in,takeout",
                "--heartbeat-interval", "15",
                "--prefetch", "2",
            ],
        )

        assert result.exit_code == 0
        (name, options), = recorded
        assert name == "kitchen-worker"
        assert options.worker_name == "chef_mario"
        assert options.order_types == "dine_in,takeout"
        assert options.heartbeat_interval == 15
        assert options.prefetch == 2

    def test_order_service_defaults(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "order-service"])

        assert result.exit_code == 0
        (name, options), = recorded
        assert name == "order-service"
        assert options.port == 3000
        assert options.max_concurrent == 50

    def test_duplicate_worker_exits_non_zero(self, monkeypatch):
        def already_online(options):
            raise WorkerAlreadyOnline(options.worker_name)

        monkeypatch.setitem(
            cli.SERVICE_MODES,
            "kitchen-worker",
            cli.ServiceMode(already_online, cli.SERVICE_MODES["kitchen-worker"].validate),
        )

        result = runner.invoke(cli.app, ["run", "--mode", "kitchen-worker", "--worker-name", "chef_mario"])

        assert result.exit_code == 1

    def test_notification_subscriber_group(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "notification-subscriber", "--group", "front-desk"])

        assert result.exit_code == 0
        (name, options), = recorded
        assert name == "notification-subscriber"
        assert options.group == "front-desk"

    def test_notification_subscriber_private_by_default(self, recorded):
        result = runner.invoke(cli.app, ["run", "--mode", "notification-subscriber"])

        assert result.exit_code == 0
        (_, options), = recorded
        assert options.group is None

    def test_group_reaches_the_relay(self, monkeypatch):
        from notification_relay import main as relay_main

        calls = []
        monkeypatch.setattr(relay_main, "run", lambda group=None, prefetch=10: calls.append((group, prefetch)))

        result = runner.invoke(cli.app, ["run", "--mode", "notification-subscriber", "--group", "front-desk"])

        assert result.exit_code == 0
        assert calls == [("front-desk", 1)]
