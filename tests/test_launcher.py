import paramiko
import pytest

from ec2_fleet_monitor import launcher
from ec2_fleet_monitor.config import MonitorConfig
from ec2_fleet_monitor.errors import LaunchError
from ec2_fleet_monitor.models import InstanceRecord

from ssh_fakes import FakeSSH


NODE = InstanceRecord(instance_id="i-1", name="zen00az180_OS_2ms", public_ip="54.1.1.1")


@pytest.fixture
def config(tmp_path):
    key = tmp_path / "awssaopaulo.pem"
    key.write_text("fake")
    return MonitorConfig(key_path=str(key))


@pytest.fixture
def found(monkeypatch):
    monkeypatch.setattr(launcher.discovery, "find_instance_by_name", lambda client, name: NODE)


def test_tmux_command():
    assert launcher.tmux_command("zcsvs", "zen00az180_OS_2ms") == \
        "tmux new-session -d -s zcsvs 'cd zen00az180_OS_2ms && sh zcsvs'"


def test_launch_starts_tmux_session(config, found):
    fake = FakeSSH(responses={"tmux": ("", "", 0)})

    address, hint = launcher.launch_process("finalize", NODE.name, config, ec2_client=object(),
                                            ssh_factory=lambda: fake)

    assert address == "54.1.1.1"
    assert fake.commands[0][0] == "tmux new-session -d -s finalize 'cd zen00az180_OS_2ms && sh finalize'"
    assert hint.endswith("ubuntu@54.1.1.1 -t 'tmux attach -t finalize'")
    assert fake.closed


def test_launch_unknown_instance(config, monkeypatch):
    monkeypatch.setattr(launcher.discovery, "find_instance_by_name", lambda client, name: None)
    with pytest.raises(LaunchError) as exc:
        launcher.launch_process("zcsvs", "nope", config, ec2_client=object())
    assert "nope" in exc.value.message


def test_launch_tmux_failure(config, found):
    fake = FakeSSH(responses={"tmux": ("", "duplicate session: zcsvs", 1)})
    with pytest.raises(LaunchError) as exc:
        launcher.launch_process("zcsvs", NODE.name, config, ec2_client=object(), ssh_factory=lambda: fake)
    assert "duplicate session" in exc.value.message
    assert fake.closed


def test_launch_auth_failure(config, found):
    fake = FakeSSH(connect_error=paramiko.AuthenticationException("denied"))
    with pytest.raises(LaunchError) as exc:
        launcher.launch_process("zcsvs", NODE.name, config, ec2_client=object(), ssh_factory=lambda: fake)
    assert "auth" in exc.value.message


def test_launch_missing_key(tmp_path, found):
    config = MonitorConfig(key_path=str(tmp_path / "missing.pem"))
    with pytest.raises(LaunchError):
        launcher.launch_process("zcsvs", NODE.name, config, ec2_client=object(), ssh_factory=FakeSSH)
