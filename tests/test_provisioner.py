"""Tests for the provisioning convergence routine."""

import datetime

import pytest
import yaml

from n8n_provision.core.credentials import ENCRYPTION_KEY_VAR, parse_env
from n8n_provision.core.errors import ProvisionError
from n8n_provision.core.provisioner import Provisioner, StepStatus, compose_project_name


@pytest.fixture
def provisioner(runner, config):
    return Provisioner(config, runner)


def statuses(report):
    return {r.name: r.status for r in report.results}


class TestFreshHost:
    """A first run on a bare host."""

    def test_every_step_applies(self, provisioner):
        report = provisioner.run()

        assert all(r.status == StepStatus.APPLIED for r in report.results)
        assert [r.name for r in report.results][0] == "Update system packages"
        assert [r.name for r in report.results][-1] == "Enable autostart"

    def test_installs_docker_and_compose(self, host, provisioner):
        provisioner.run()

        assert "docker" in host.executables
        assert host.compose_plugin
        assert {"ufw", "gnupg", "lsb-release", "apt-transport-https"} <= host.packages

    def test_creates_user_and_owned_data_dir(self, host, provisioner):
        provisioner.run()

        assert "n8n" in host.users
        assert "/opt/n8n" in host.dirs
        assert host.owners["/opt/n8n"] == "n8n"

    def test_compose_file_has_two_services_and_domain(self, host, provisioner):
        provisioner.run()

        document = yaml.safe_load(host.files["/opt/n8n/docker-compose.yml"])
        assert len(document["services"]) == 2
        assert "Host(`n8n.example.org`)" in host.files["/opt/n8n/docker-compose.yml"]

    def test_timezone_read_from_host(self, host, provisioner):
        provisioner.run()

        assert "TZ=Europe/Berlin" in host.files["/opt/n8n/docker-compose.yml"]

    def test_firewall_enabled_with_only_configured_ports(self, host, provisioner):
        provisioner.run()

        assert host.ufw_active
        assert host.ufw_rules == ["22/tcp", "80/tcp", "443/tcp"]

    def test_unit_written_and_enabled(self, host, provisioner):
        provisioner.run()

        unit = host.files["/etc/systemd/system/n8n-stack.service"]
        assert "WorkingDirectory=/opt/n8n" in unit
        assert "WantedBy=multi-user.target" in unit
        assert "n8n-stack.service" in host.enabled_units
        assert host.ran("systemctl daemon-reload") == 1

    def test_stack_started_in_data_dir(self, host, provisioner):
        provisioner.run()

        assert host.stack_up
        assert host.ran("cd /opt/n8n && docker compose up -d") == 1

    def test_env_file_holds_key(self, host, provisioner):
        report = provisioner.run()

        env = parse_env(host.files["/opt/n8n/.env"])
        assert env[ENCRYPTION_KEY_VAR] == report.secrets.encryption_key
        assert host.modes["/opt/n8n/.env"] == "600"

    def test_callback_receives_progress(self, provisioner):
        messages = []

        provisioner.run(callback=messages.append)

        assert messages[0].startswith("Provisioning n8n for n8n.example.org")
        assert "✓ Install Docker" in messages


class TestRerun:
    """Idempotence across repeated runs."""

    def test_user_created_exactly_once(self, host, runner, config):
        Provisioner(config, runner).run()
        Provisioner(config, runner).run()

        assert host.counts["useradd"] == 1

    def test_guarded_steps_skip_on_second_run(self, runner, config):
        Provisioner(config, runner).run()
        report = Provisioner(config, runner).run()

        result = statuses(report)
        assert result["Install prerequisites"] == StepStatus.SKIPPED
        assert result["Install Docker"] == StepStatus.SKIPPED
        assert result["Install Docker Compose plugin"] == StepStatus.SKIPPED
        assert result["Create user 'n8n'"] == StepStatus.SKIPPED

    def test_unconditional_steps_reapply(self, host, runner, config):
        Provisioner(config, runner).run()
        report = Provisioner(config, runner).run()

        result = statuses(report)
        assert result["Prepare /opt/n8n"] == StepStatus.APPLIED
        assert result["Write docker-compose.yml"] == StepStatus.APPLIED
        assert result["Configure firewall"] == StepStatus.APPLIED
        assert result["Enable autostart"] == StepStatus.APPLIED
        assert host.ufw_rules == ["22/tcp", "80/tcp", "443/tcp"]

    def test_manual_compose_edits_are_overwritten(self, host, runner, config):
        Provisioner(config, runner).run()
        host.files["/opt/n8n/docker-compose.yml"] += "# local tweak\n"

        Provisioner(config, runner).run()

        assert "# local tweak" not in host.files["/opt/n8n/docker-compose.yml"]

    def test_encryption_key_persists_across_runs(self, runner, config):
        """A rerun keeps the stored key by default."""
        first = Provisioner(config, runner).run()
        second = Provisioner(config, runner).run()

        assert second.secrets.encryption_key == first.secrets.encryption_key
        assert not second.secrets.key_created

    def test_rotate_key_overwrites_encryption_key(self, host, runner, config):
        """rotate_key replaces the stored key."""
        first = Provisioner(config, runner).run()
        second = Provisioner(config, runner, rotate_key=True).run()

        assert second.secrets.encryption_key != first.secrets.encryption_key
        env = parse_env(host.files["/opt/n8n/.env"])
        assert env[ENCRYPTION_KEY_VAR] == second.secrets.encryption_key


class TestFailures:
    """Abort-on-first-failure behavior."""

    def test_failure_raises_and_stops(self, host, provisioner):
        host.fail_on.add("ufw allow")

        with pytest.raises(ProvisionError) as exc_info:
            provisioner.run()

        assert exc_info.value.step == "Configure firewall"
        assert not host.stack_up
        assert "/etc/systemd/system/n8n-stack.service" not in host.files

    def test_failure_output_is_kept(self, host, provisioner):
        host.fail_on.add("get.docker.com")

        with pytest.raises(ProvisionError) as exc_info:
            provisioner.run()

        assert exc_info.value.step == "Install Docker"
        assert "simulated failure" in exc_info.value.output
        assert "n8n" not in host.users

    def test_unexpected_exception_is_wrapped(self, provisioner, monkeypatch):
        def explode():
            raise OSError("connection reset")

        monkeypatch.setattr(provisioner.docker, "install_docker", explode)

        with pytest.raises(ProvisionError, match="connection reset"):
            provisioner.run()

    def test_check_exception_is_wrapped(self, host, config, runner):
        """A host that drops mid-check fails the step instead of escaping."""
        config.upgrade_system = False
        host.raise_on.add("dpkg-query")

        with pytest.raises(ProvisionError, match="connection reset by peer") as exc_info:
            Provisioner(config, runner).run()

        assert exc_info.value.step == "Install prerequisites"

    def test_plan_check_exception_is_wrapped(self, host, provisioner):
        host.raise_on.add("command -v docker")

        with pytest.raises(ProvisionError, match="check failed") as exc_info:
            provisioner.plan()

        assert exc_info.value.step == "Install Docker"


class TestPlan:
    """Dry runs."""

    def test_plan_on_fresh_host(self, host, provisioner):
        report = provisioner.plan()

        assert report.dry_run
        assert all(r.status == StepStatus.PLANNED for r in report.results)
        assert "n8n" not in host.users
        assert not host.ufw_active

    def test_plan_after_run_skips_guarded_steps(self, runner, config):
        Provisioner(config, runner).run()

        report = Provisioner(config, runner).plan()

        result = statuses(report)
        assert result["Install Docker"] == StepStatus.SKIPPED
        assert result["Launch n8n + Traefik stack"] == StepStatus.PLANNED

    def test_changed_lists_applied_steps_only(self, runner, config):
        Provisioner(config, runner).run()

        report = Provisioner(config, runner).run()

        changed = [r.name for r in report.changed]
        assert "Install Docker" not in changed
        assert "Configure firewall" in changed
        assert len(changed) < len(report.results)

    def test_upgrade_can_be_disabled(self, runner, config):
        config.upgrade_system = False

        names = [s.name for s in Provisioner(config, runner).build_steps()]

        assert "Update system packages" not in names


class TestMaintenance:
    """status, update, backup and teardown."""

    def test_status_after_run(self, runner, config):
        provisioner = Provisioner(config, runner)
        provisioner.run()

        report = provisioner.status()

        assert report.running
        assert {c.name for c in report.containers} == {"n8n", "traefik"}
        assert report.firewall.active
        assert report.unit_enabled
        assert report.unit_active

    def test_status_before_run(self, provisioner):
        report = provisioner.status()

        assert not report.running
        assert not report.unit_enabled

    def test_update_pulls_then_recreates(self, host, runner, config):
        provisioner = Provisioner(config, runner)
        provisioner.run()

        ok, _ = provisioner.update()

        assert ok
        pull = host.commands.index("cd /opt/n8n && docker compose pull")
        assert any("docker compose up -d" in c for c in host.commands[pull:])

    def test_teardown(self, host, runner, config):
        provisioner = Provisioner(config, runner)
        provisioner.run()

        ok, _ = provisioner.teardown()

        assert ok
        assert not host.stack_up

    def test_logs(self, runner, config):
        provisioner = Provisioner(config, runner)
        provisioner.run()

        assert "Editor is now accessible" in provisioner.logs(service="n8n", tail=10)

    def test_backup_archives_dir_and_volume(self, host, provisioner):
        host.executables.add("docker")

        ok, archives = provisioner.backup("/var/backups/n8n", date=datetime.date(2026, 10, 19))

        assert ok
        assert archives == [
            "/var/backups/n8n/n8n-config-2026-10-19.tar.gz",
            "/var/backups/n8n/n8n-data-2026-10-19.tar.gz",
        ]
        assert host.ran("-v n8n_n8n_data:/data:ro") == 1

    def test_backup_is_private(self, host, provisioner):
        """Archives hold the encryption key and ACME keys."""
        host.executables.add("docker")

        ok, archives = provisioner.backup("/var/backups/n8n", date=datetime.date(2026, 10, 19))

        assert ok
        assert host.modes["/var/backups/n8n"] == "700"
        assert all(host.modes[archive] == "600" for archive in archives)
        assert host.ran("umask 077 && tar czf /var/backups/n8n/") == 1
        assert host.ran("umask 077; tar czf /backup/") == 1

    def test_backup_rejects_relative_destination(self, host, provisioner):
        with pytest.raises(ProvisionError, match="absolute path"):
            provisioner.backup("backups")

        assert host.commands == []

    def test_backup_failure(self, host, provisioner):
        host.fail_on.add("tar czf")

        ok, archives = provisioner.backup("/var/backups/n8n")

        assert not ok
        assert archives == []


class TestSummary:
    """The final summary text."""

    def test_summary_lists_access_and_reminders(self, provisioner):
        text = provisioner.run().summary()

        assert "https://n8n.example.org" in text
        assert "Data directory: /opt/n8n" in text
        assert "systemd service 'n8n-stack'" in text
        assert "DNS A record" in text

    def test_generated_password_shown_once(self, runner, config):
        first = Provisioner(config, runner).run()
        second = Provisioner(config, runner).run()

        assert first.secrets.basic_auth_password in first.summary()
        assert second.secrets.basic_auth_password not in second.summary()


@pytest.mark.parametrize("data_dir,expected", [
    ("/opt/n8n", "n8n"),
    ("/srv/My.Stack/", "mystack"),
])
def test_compose_project_name(data_dir, expected):
    assert compose_project_name(data_dir) == expected
